"""Tests for the default embedding and completion services (SDKs mocked)."""

from unittest.mock import MagicMock, Mock, patch

import anthropic
import numpy as np
import pytest

from sitekb import embeddings
from sitekb.embeddings import ClaudeCompleter, SentenceTransformerEmbedder, ServiceError


class TestSentenceTransformerEmbedder:

    def test_loads_model_once_and_returns_floats(self):
        model = Mock()
        model.encode.return_value = np.array([0.25, -0.5, 1.0], dtype=np.float32)
        with patch.object(embeddings, "SentenceTransformer", return_value=model) as st:
            embedder = SentenceTransformerEmbedder("test-model")
            assert embedder.embed("one") == [0.25, -0.5, 1.0]
            embedder.embed("two")
        st.assert_called_once_with("test-model")
        assert all(isinstance(x, float) for x in embedder.embed("three"))


class TestClaudeCompleter:

    def _completer(self, client):
        completer = ClaudeCompleter(model="claude-test", max_tokens=50, api_key="k")
        completer._client = client
        return completer

    def test_system_messages_are_passed_separately(self):
        client = MagicMock()
        client.messages.create.return_value = Mock(content=[Mock(text="  hello  ")])
        messages = [
            {"role": "system", "content": "rules"},
            {"role": "system", "content": "context"},
            {"role": "user", "content": "hi"},
        ]
        assert self._completer(client).complete(messages, temperature=0.4) == "hello"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "rules\n\ncontext"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert kwargs["temperature"] == 0.4
        assert kwargs["model"] == "claude-test"

    def test_empty_content(self):
        client = MagicMock()
        client.messages.create.return_value = Mock(content=[])
        assert self._completer(client).complete([{"role": "user", "content": "hi"}]) == ""

    def test_api_error_becomes_service_error(self):
        client = MagicMock()
        client.messages.create.side_effect = anthropic.AnthropicError("boom")
        with pytest.raises(ServiceError):
            self._completer(client).complete([{"role": "user", "content": "hi"}])

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ServiceError):
            ClaudeCompleter().complete([{"role": "user", "content": "hi"}])

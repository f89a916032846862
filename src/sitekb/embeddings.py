"""
External services: text embedding (sentence-transformers) and chat
completion (Anthropic Claude). Anything with the same `embed` / `complete`
signatures can stand in for them.
"""
import logging
import os
import threading
from typing import Dict, List, Sequence

import anthropic
from sentence_transformers import SentenceTransformer

from sitekb import config

logger = logging.getLogger(__name__)


class ServiceError(RuntimeError):
    """An embedding or completion call failed."""


class SentenceTransformerEmbedder:
    """embed(text) -> fixed-length vector from a local sentence-transformers model."""

    def __init__(self, model_name: str = None):
        self.model_name = model_name or config.EMBED_MODEL
        self._model = None
        self._lock = threading.Lock()

    def load_model(self):
        with self._lock:
            if self._model is None:
                logger.info("Loading embedding model: %s", self.model_name)
                self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> List[float]:
        model = self.load_model()
        vec = model.encode(text)
        return [float(x) for x in vec]


class ClaudeCompleter:
    """complete(messages) -> reply text, via the Anthropic messages API."""

    def __init__(self, model: str = None, max_tokens: int = None, api_key: str = None):
        self.model = model or config.CLAUDE_MODEL
        self.max_tokens = int(max_tokens or config.CLAUDE_MAX_TOKENS)
        self.api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            api_key = self.api_key or os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                raise ServiceError("ANTHROPIC_API_KEY environment variable is not set.")
            self._client = anthropic.Anthropic(api_key=api_key)
        return self._client

    def complete(self, messages: Sequence[Dict[str, str]], temperature: float = 0.0) -> str:
        # Claude takes system text separately from the user/assistant turns
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [m for m in messages if m["role"] != "system"]
        client = self._get_client()
        try:
            resp = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                system=system,
                messages=turns,
            )
        except anthropic.AnthropicError as e:
            raise ServiceError(f"Claude API call failed: {e}") from e
        if not resp.content:
            return ""
        return resp.content[0].text.strip()

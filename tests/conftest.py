"""Shared test fixtures: in-memory site, fake embedding and completion services."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sitekb.store import EmbeddingRecord, VectorStore  # noqa: E402

ROOT = "https://site.test/"


def make_html(body_text, links=(), script=""):
    anchors = "".join(f'<a href="{href}">link</a>' for href in links)
    return (
        "<html><head><style>body { color: red; }</style>"
        f"<script>{script}</script></head>"
        f"<body><p>{body_text}</p>{anchors}</body></html>"
    )


class FakeSite:
    """fetch(url) over a dict of url -> html, recording every call."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        return self.pages.get(url)


class FakeEmbedder:
    """Maps known texts to fixed vectors; unknown texts get `default`."""

    def __init__(self, vectors=None, default=(1.0, 0.0), fail_times=None):
        self.vectors = vectors or {}
        self.default = default
        self.fail_times = dict(fail_times or {})
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        remaining = self.fail_times.get(text, 0)
        if remaining:
            self.fail_times[text] = remaining - 1
            raise RuntimeError("quota exceeded")
        return list(self.vectors.get(text, self.default))


class FakeCompleter:
    def __init__(self, reply="fake reply", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, messages, temperature=0.0):
        self.calls.append((messages, temperature))
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
def long_text():
    return "lorem ipsum " * 30  # 360 chars


@pytest.fixture
def small_site(long_text):
    return FakeSite({
        ROOT: make_html(long_text, ["/a", "/b", "https://other.test/x"]),
        ROOT + "a": make_html(long_text, ["/a/deep", "/?page=2", "/#top"]),
        ROOT + "a/deep": make_html(long_text),
        ROOT + "b": make_html(long_text, ["/a"]),
    })


@pytest.fixture
def three_record_store():
    return VectorStore([
        EmbeddingRecord("https://site.test/one", "first", [1.0, 0.0]),
        EmbeddingRecord("https://site.test/two", "second", [0.0, 1.0]),
        EmbeddingRecord("https://site.test/three", "third", [1.0, 1.0]),
    ])

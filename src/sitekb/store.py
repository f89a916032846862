"""
The persisted knowledge base: one JSON file holding every embedded chunk.

  [{"url": "...", "content": "...", "embedding": [0.1, ...]}, ...]

The builder writes it once per run (replacing any previous file); the server
loads it whole at startup and never mutates it. Ranking is a linear scan over
an in-memory matrix, which is fine for a few thousand chunks of one site. A
bigger corpus would need an approximate nearest-neighbour index instead.
"""
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import ujson

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingRecord:
    url: str
    content: str
    vector: Sequence[float]

    def to_dict(self):
        return {"url": self.url, "content": self.content, "embedding": list(self.vector)}


class VectorStore:
    """Ordered records that all share one vector dimension."""

    def __init__(self, records=()):
        self._records: List[EmbeddingRecord] = []
        self._matrix: Optional[np.ndarray] = None
        for r in records:
            self.add(r)

    @property
    def dimension(self) -> Optional[int]:
        if not self._records:
            return None
        return len(self._records[0].vector)

    def add(self, record: EmbeddingRecord):
        dim = self.dimension
        if dim is not None and len(record.vector) != dim:
            raise ValueError(
                f"vector for {record.url} has dimension {len(record.vector)}, store uses {dim}"
            )
        if len(record.vector) == 0:
            raise ValueError(f"empty vector for {record.url}")
        self._records.append(record)
        self._matrix = None

    @property
    def matrix(self) -> np.ndarray:
        """(n, dim) float matrix of all vectors, built lazily."""
        if self._matrix is None:
            if not self._records:
                self._matrix = np.zeros((0, 0), dtype=np.float64)
            else:
                self._matrix = np.array([r.vector for r in self._records], dtype=np.float64)
        return self._matrix

    @property
    def records(self):
        return tuple(self._records)

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __getitem__(self, i):
        return self._records[i]


def save_store(records, path):
    """Write every record to `path`, atomically replacing the old artifact."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        ujson.dump([r.to_dict() for r in records], f, ensure_ascii=False)
    os.replace(tmp, path)
    logger.info("Saved %d embeddings to %s", len(records), path)


def load_store(path) -> VectorStore:
    """
    Load the artifact at `path`.

    A missing, unparsable or inconsistent file yields an empty store so that
    the server still starts; retrieval then returns no context.
    """
    if not os.path.exists(path):
        logger.error("Knowledge base not found at %s; serving without context", path)
        return VectorStore()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = ujson.load(f)
        if not isinstance(raw, list):
            raise ValueError("top-level JSON value is not a list")
        store = VectorStore(
            EmbeddingRecord(
                url=str(item["url"]),
                content=str(item["content"]),
                vector=[float(x) for x in item["embedding"]],
            )
            for item in raw
        )
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error("Could not load knowledge base %s: %s", path, e)
        return VectorStore()
    logger.info("Loaded %d chunks from knowledge base", len(store))
    return store

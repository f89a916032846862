"""
Utilities for semantic retrieval over the loaded knowledge base and for
turning retrieved chunks into a grounded chat reply.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from sitekb import config
from sitekb.embeddings import ClaudeCompleter, SentenceTransformerEmbedder, ServiceError
from sitekb.store import EmbeddingRecord, VectorStore, load_store

logger = logging.getLogger(__name__)

EPSILON = 1e-8
CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class ScoredRecord:
    record: EmbeddingRecord
    score: float


def cosine_similarity(a, b) -> float:
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    return float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b) + EPSILON))


def rank(query_vector, store: VectorStore, top_k: int = 6, min_score: Optional[float] = None) -> List[ScoredRecord]:
    """
    Score every record against `query_vector` and return the best `top_k`,
    highest first. Equal scores keep store order.
    """
    if len(store) == 0 or top_k <= 0:
        return []
    q = np.asarray(query_vector, dtype=np.float64)
    if q.shape != (store.dimension,):
        raise ValueError(f"query vector has shape {q.shape}, store dimension is {store.dimension}")
    m = store.matrix
    scores = (m @ q) / (np.linalg.norm(m, axis=1) * np.linalg.norm(q) + EPSILON)
    order = np.argsort(-scores, kind="stable")
    results = []
    for i in order[:top_k]:
        score = float(scores[i])
        if min_score is not None and score < min_score:
            break
        results.append(ScoredRecord(store[int(i)], score))
    return results


def assemble_context(results: Sequence[ScoredRecord]) -> str:
    blocks = [
        f"Source {i} ({r.record.url}):\n{r.record.content}"
        for i, r in enumerate(results, start=1)
    ]
    return CONTEXT_SEPARATOR.join(blocks)


class Retriever:
    """Embeds a query and ranks the store against it."""

    def __init__(self, store: VectorStore, embedder, top_k: int = 6, min_score: Optional[float] = None):
        self.store = store
        self.embedder = embedder
        self.top_k = top_k
        self.min_score = min_score

    def retrieve(self, query: str) -> List[ScoredRecord]:
        # nothing to rank against, so skip the embedding call
        if len(self.store) == 0:
            return []
        try:
            vector = self.embedder.embed(query)
        except Exception as e:
            raise ServiceError(f"query embedding failed: {e}") from e
        try:
            return rank(vector, self.store, self.top_k, self.min_score)
        except ValueError as e:
            # store was built with a different embedding model
            raise ServiceError(f"query vector does not match the knowledge base: {e}") from e

    def get_relevant_context(self, query: str) -> str:
        return assemble_context(self.retrieve(query))


class ChatService:
    """
    Answers a chat message from site context.

    Messages sent to the completer are, in order: the system prompt, the
    retrieved website context, the last `history_turns` user/assistant
    turns and the new user message.
    """

    def __init__(self, retriever: Retriever, completer, system_prompt: str = None,
                 history_turns: int = 6, temperature: float = 0.4):
        self.retriever = retriever
        self.completer = completer
        self.system_prompt = system_prompt or config.SYSTEM_PROMPT
        self.history_turns = history_turns
        self.temperature = temperature

    def build_messages(self, message: str, history: Sequence[Dict[str, str]], context: str) -> List[Dict[str, str]]:
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "system", "content": f"Website context:\n\n{context}"},
        ]
        recent = list(history)[-self.history_turns:] if self.history_turns > 0 else []
        for turn in recent:
            messages.append({"role": "user", "content": turn.get("user", "")})
            messages.append({"role": "assistant", "content": turn.get("assistant", "")})
        messages.append({"role": "user", "content": message})
        return messages

    def reply(self, message: str, history: Sequence[Dict[str, str]] = ()) -> str:
        context = self.retriever.get_relevant_context(message)
        if not context:
            logger.info("No context retrieved for query")
        messages = self.build_messages(message, history, context)
        try:
            return self.completer.complete(messages, temperature=self.temperature)
        except ServiceError:
            raise
        except Exception as e:
            raise ServiceError(f"completion failed: {e}") from e


def create_chat_service(store_path: str = None) -> ChatService:
    """Wire the default store, embedder and completer from the environment."""
    store = load_store(store_path or config.STORE_PATH)
    retriever = Retriever(
        store,
        SentenceTransformerEmbedder(config.EMBED_MODEL),
        top_k=config.TOP_K,
        min_score=config.MIN_SCORE,
    )
    return ChatService(
        retriever,
        ClaudeCompleter(),
        history_turns=config.HISTORY_TURNS,
        temperature=config.TEMPERATURE,
    )

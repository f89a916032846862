"""
Build the knowledge base: crawl the site (or load a page snapshot), chunk
every page, embed the chunks and save them as one JSON artifact.
"""
import argparse
import logging
import random
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from tqdm import tqdm

from sitekb import config
from sitekb.embeddings import SentenceTransformerEmbedder
from sitekb.scraper import crawl, load_pages
from sitekb.store import EmbeddingRecord, VectorStore, save_store

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY = 30.0


@dataclass
class Chunk:
    source_url: str
    content: str
    index: int


def chunk_text(text, max_chars=1500, min_chars=100):
    """
    Split `text` into consecutive windows of `max_chars` characters.

    Windows do not overlap and ignore word boundaries. A final window shorter
    than `min_chars` is dropped.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    chunks = [text[start:start + max_chars] for start in range(0, len(text), max_chars)]
    if chunks and len(chunks[-1]) < min_chars:
        chunks.pop()
    return chunks


def chunk_pages(pages, max_chars=1500, min_chars=100) -> List[Chunk]:
    out = []
    for p in pages:
        for i, c in enumerate(chunk_text(p.text, max_chars, min_chars)):
            out.append(Chunk(source_url=p.url, content=c, index=i))
    return out


def _retry_delay(base, attempt):
    """Exponential backoff with jitter."""
    delay = base * (2 ** attempt)
    return min(delay + random.uniform(0.1, 0.3) * delay, MAX_RETRY_DELAY)


def _embed_one(embedder, chunk, max_retries, retry_delay) -> Optional[EmbeddingRecord]:
    for attempt in range(max_retries + 1):
        try:
            vector = embedder.embed(chunk.content)
            return EmbeddingRecord(url=chunk.source_url, content=chunk.content, vector=list(vector))
        except Exception as e:
            if attempt == max_retries:
                logger.warning(
                    "Skipping chunk %d of %s after %d attempts: %s",
                    chunk.index, chunk.source_url, attempt + 1, e,
                )
                return None
            delay = _retry_delay(retry_delay, attempt)
            logger.debug("Embedding failed for %s#%d (%s); retrying in %.1fs",
                         chunk.source_url, chunk.index, e, delay)
            time.sleep(delay)


def embed_chunks(chunks, embedder, workers=4, max_retries=3, retry_delay=1.0, progress=False) -> VectorStore:
    """
    Embed `chunks` with a fixed pool of `workers` threads.

    The store keeps chunk order. Chunks that still fail after `max_retries`
    retries, or whose vector dimension disagrees with the rest, are skipped.
    """
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        results = pool.map(lambda c: _embed_one(embedder, c, max_retries, retry_delay), chunks)
        records = [r for r in tqdm(results, total=len(chunks), desc="embedded", disable=not progress)
                   if r and r.vector]

    store = VectorStore()
    if records:
        # the most common vector length wins; ties go to the earliest chunk
        dim = Counter(len(r.vector) for r in records).most_common(1)[0][0]
        for record in records:
            if len(record.vector) != dim:
                logger.warning("Skipping chunk of %s: dimension %d, expected %d",
                               record.url, len(record.vector), dim)
                continue
            store.add(record)
    logger.info("Embedded %d of %d chunks", len(store), len(chunks))
    return store


def build(pages, embedder, out_path, max_chars=1500, min_chars=100, workers=4,
          max_retries=3, retry_delay=1.0, progress=False) -> VectorStore:
    """Chunk and embed `pages`, then save the store to `out_path`."""
    chunks = chunk_pages(pages, max_chars, min_chars)
    logger.info("Total chunks to embed: %d from %d pages", len(chunks), len(pages))
    store = embed_chunks(chunks, embedder, workers=workers, max_retries=max_retries,
                         retry_delay=retry_delay, progress=progress)
    if len(store) == 0:
        raise RuntimeError("No embeddings were created; check the crawl output.")
    save_store(store.records, out_path)
    return store


def main(argv=None):
    parser = argparse.ArgumentParser(description="Crawl a site and build its embeddings file.")
    parser.add_argument("--root", default=config.BASE_URL, help="root URL to crawl")
    parser.add_argument("--max-depth", type=int, default=config.MAX_DEPTH)
    parser.add_argument("--max-pages", type=int, default=config.MAX_PAGES)
    parser.add_argument("--pages", help="embed a saved page snapshot instead of crawling")
    parser.add_argument("--out", default=config.STORE_PATH)
    parser.add_argument("--workers", type=int, default=config.EMBED_WORKERS)
    args = parser.parse_args(argv)

    config.setup_logging()

    if args.pages:
        pages = load_pages(args.pages)
        logger.info("Loaded %d pages from %s", len(pages), args.pages)
    else:
        logger.info("Crawling %s ...", args.root)
        pages = crawl(args.root, max_depth=args.max_depth, max_pages=args.max_pages, progress=True)

    build(
        pages,
        SentenceTransformerEmbedder(config.EMBED_MODEL),
        args.out,
        max_chars=config.CHUNK_MAX_CHARS,
        min_chars=config.CHUNK_MIN_CHARS,
        workers=args.workers,
        max_retries=config.EMBED_MAX_RETRIES,
        retry_delay=config.EMBED_RETRY_DELAY,
        progress=True,
    )


if __name__ == "__main__":
    main()

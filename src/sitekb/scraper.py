"""
Origin-bounded crawler for a single website.
Running this module saves a page snapshot (RAW_PAGES_PATH) where each line is:
  {"url": "...", "text": "...", "depth": 0}
"""
import argparse
import json
import logging
import os
import re
import time
from dataclasses import dataclass, asdict
from typing import Callable, List, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup
from tqdm import tqdm

from sitekb import config

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}
WHITESPACE = re.compile(r"\s+")


@dataclass
class Page:
    url: str
    text: str
    depth: int = 0


def _origin(parts):
    port = parts.port or DEFAULT_PORTS.get(parts.scheme)
    return parts.scheme, (parts.hostname or ""), port


def normalize_url(url, base, origin=None):
    """
    Resolve `url` against `base` and return its canonical form, or None.

    The result is absolute, has no query or fragment, and shares its origin
    (scheme, host, port) with `origin` (defaults to `base`). Malformed input
    returns None instead of raising.
    """
    try:
        full = urlsplit(urljoin(base, url.strip()))
        scope = urlsplit(origin or base)
        if full.scheme not in DEFAULT_PORTS or not full.hostname:
            return None
        if _origin(full) != _origin(scope):
            return None
        netloc = f"[{full.hostname}]" if ":" in full.hostname else full.hostname
        if full.port and full.port != DEFAULT_PORTS[full.scheme]:
            netloc = f"{netloc}:{full.port}"
        return urlunsplit((full.scheme, netloc, full.path or "/", "", ""))
    except (ValueError, AttributeError):
        return None


def extract_text(html):
    """Drop script/style blocks, strip the remaining tags, collapse whitespace."""
    soup = BeautifulSoup(html, "html.parser")
    for s in soup(["script", "style", "noscript"]):
        s.decompose()
    text = soup.get_text(separator=" ")
    return WHITESPACE.sub(" ", text).strip()


def collect_links(html, base, origin=None):
    """Normalized same-origin links of `html`, in document order, deduplicated."""
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for tag in soup.find_all(href=True):
        full = normalize_url(tag["href"], base, origin)
        if full and full not in links:
            links.append(full)
    return links


def fetch_html(url, session=None, timeout=None):
    """GET `url` and return its markup, or None on any failure."""
    getter = session or requests
    try:
        resp = getter.get(
            url,
            timeout=timeout or config.REQUEST_TIMEOUT,
            headers={"User-Agent": config.USER_AGENT},
        )
    except requests.RequestException as e:
        logger.warning("Failed %s: %s", url, e)
        return None
    if not 200 <= resp.status_code < 300:
        logger.warning("Failed %s: %s", url, resp.status_code)
        return None
    ctype = resp.headers.get("Content-Type", "")
    if ctype and "html" not in ctype:
        logger.info("Skipping %s: content type %s", url, ctype)
        return None
    return resp.text


class Crawler:
    """
    Depth-first, origin-bounded crawl from one root URL.

    Each call to `crawl()` owns its own visited set and work stack, so one
    instance can be reused. Pages are collected in pre-order; when the page
    cap truncates the crawl, earlier branches win over later siblings.
    """

    def __init__(
        self,
        root: str,
        max_depth: int = 3,
        max_pages: int = 30,
        fetch: Optional[Callable[[str], Optional[str]]] = None,
        min_chars: int = 200,
        delay: float = 0.0,
        max_seconds: Optional[float] = None,
        progress: bool = False,
    ):
        self.root = root
        self.max_depth = max_depth
        self.max_pages = max_pages
        self.fetch = fetch or fetch_html
        self.min_chars = min_chars
        self.delay = delay
        self.max_seconds = max_seconds
        self.progress = progress

    def crawl(self) -> List[Page]:
        visited = set()
        pages: List[Page] = []
        stack = [(self.root, 0)]
        started = time.monotonic()
        pbar = tqdm(total=self.max_pages, desc="crawled", disable=not self.progress)

        while stack and len(pages) < self.max_pages:
            if self.max_seconds is not None and time.monotonic() - started > self.max_seconds:
                logger.warning("Crawl stopped after %.0fs with %d pages", self.max_seconds, len(pages))
                break
            url, depth = stack.pop()
            norm = normalize_url(url, self.root)
            if not norm or norm in visited or depth > self.max_depth:
                continue
            visited.add(norm)

            logger.debug("Fetching %s (depth %d)", norm, depth)
            html = self.fetch(norm)
            if not html:
                continue

            text = extract_text(html)
            if len(text) > self.min_chars:
                pages.append(Page(url=norm, text=text, depth=depth))
                pbar.update(1)

            if depth < self.max_depth:
                links = collect_links(html, norm, self.root)
                stack.extend((link, depth + 1) for link in reversed(links))
            if self.delay:
                time.sleep(self.delay)

        pbar.close()
        logger.info("Crawled %d pages (%d URLs visited)", len(pages), len(visited))
        return pages


def crawl(start=None, max_depth=None, max_pages=None, **kwargs):
    """Crawl with defaults taken from the environment."""
    crawler = Crawler(
        start or config.BASE_URL,
        max_depth=config.MAX_DEPTH if max_depth is None else max_depth,
        max_pages=config.MAX_PAGES if max_pages is None else max_pages,
        min_chars=kwargs.pop("min_chars", config.PAGE_MIN_CHARS),
        delay=kwargs.pop("delay", config.CRAWL_DELAY),
        max_seconds=kwargs.pop("max_seconds", config.CRAWL_MAX_SECONDS),
        **kwargs,
    )
    return crawler.crawl()


def save_jsonl(items, out=None):
    out = out or config.RAW_PAGES_PATH
    os.makedirs(os.path.dirname(out) or ".", exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        for it in items:
            f.write(json.dumps(asdict(it), ensure_ascii=False) + "\n")
    logger.info("Saved %d pages to %s", len(items), out)


def load_pages(path=None):
    path = path or config.RAW_PAGES_PATH
    if not os.path.exists(path):
        raise FileNotFoundError(f"raw pages not found at {path}")
    pages = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                d = json.loads(line)
                pages.append(Page(url=d["url"], text=d["text"], depth=d.get("depth", 0)))
    return pages


def main(argv=None):
    parser = argparse.ArgumentParser(description="Crawl one site and save a page snapshot.")
    parser.add_argument("--root", default=config.BASE_URL)
    parser.add_argument("--max-depth", type=int, default=config.MAX_DEPTH)
    parser.add_argument("--max-pages", type=int, default=config.MAX_PAGES)
    parser.add_argument("--out", default=config.RAW_PAGES_PATH)
    args = parser.parse_args(argv)

    config.setup_logging()
    items = crawl(args.root, max_depth=args.max_depth, max_pages=args.max_pages, progress=True)
    save_jsonl(items, args.out)


if __name__ == "__main__":
    main()

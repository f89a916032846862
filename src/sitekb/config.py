"""
Settings for the crawl/build and serve processes.
Values come from the environment (or a .env file next to the working dir).
"""
import os
import logging
from dotenv import load_dotenv

load_dotenv()


def _getenv_float(name, default=None):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return float(raw)


# crawl
BASE_URL = os.getenv("BASE_URL", "https://www.example.com").strip()
MAX_DEPTH = int(os.getenv("MAX_DEPTH", "3"))
MAX_PAGES = int(os.getenv("MAX_PAGES", "30"))
CRAWL_DELAY = float(os.getenv("CRAWL_DELAY", "0.3"))
CRAWL_MAX_SECONDS = _getenv_float("CRAWL_MAX_SECONDS")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))
USER_AGENT = os.getenv("USER_AGENT", "sitekb-crawler/0.1")
PAGE_MIN_CHARS = int(os.getenv("PAGE_MIN_CHARS", "200"))
RAW_PAGES_PATH = os.getenv("RAW_PAGES_PATH", os.path.join("data", "raw_pages.jsonl"))

# build
CHUNK_MAX_CHARS = int(os.getenv("CHUNK_MAX_CHARS", "1500"))
CHUNK_MIN_CHARS = int(os.getenv("CHUNK_MIN_CHARS", "100"))
EMBED_MODEL = os.getenv("EMBED_MODEL", "all-MiniLM-L6-v2")
EMBED_WORKERS = int(os.getenv("EMBED_WORKERS", "4"))
EMBED_MAX_RETRIES = int(os.getenv("EMBED_MAX_RETRIES", "3"))
EMBED_RETRY_DELAY = float(os.getenv("EMBED_RETRY_DELAY", "1.0"))
STORE_PATH = os.getenv("STORE_PATH", os.path.join("data", "site-embeddings.json"))

# serve
TOP_K = int(os.getenv("TOP_K", "6"))
HISTORY_TURNS = int(os.getenv("HISTORY_TURNS", "6"))
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.4"))
MIN_SCORE = _getenv_float("MIN_SCORE")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-3-5-haiku-latest")
CLAUDE_MAX_TOKENS = int(os.getenv("CLAUDE_MAX_TOKENS", "600"))
SITE_NAME = os.getenv("SITE_NAME", "this website")
SYSTEM_PROMPT = os.getenv("SYSTEM_PROMPT") or (
    "You are a guide to {site}. Answer ONLY from the website context provided. "
    "If the answer is not clearly supported by the context, say you are not sure "
    "and suggest where on the site the user could look. Be concise and specific."
).format(site=SITE_NAME)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(level=None):
    """Install one stream handler on the root logger."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

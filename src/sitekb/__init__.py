"""Single-site retrieval-augmented knowledge base: crawl, embed, retrieve."""

__version__ = "0.1.0"

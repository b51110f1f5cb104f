"""Knowledge retrieval for chat: ingest documents, search them, delete them."""

__version__ = "0.1.0"

"""Command-line tools for the knowledge base.

- ``python -m knowledge_base.cli.ingest``: ingest, search, list and delete
  documents without running the API server.
"""

"""Concrete adapters for the interfaces in ``knowledge_base.interfaces``."""

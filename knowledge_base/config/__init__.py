"""Configuration module: exports Settings and load_config."""

from knowledge_base.config.loader import load_config
from knowledge_base.config.settings import Settings

__all__ = ["Settings", "load_config"]

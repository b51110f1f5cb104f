"""Resolve the effective configuration as a plain dict.

``config/config.yaml`` supplies checked-in defaults.  Values derived from
:class:`Settings` (environment variables and ``.env``) are merged over it,
so a deploy-time variable always beats the YAML file.
"""

from pathlib import Path

import yaml

from knowledge_base.config.settings import Settings


def _settings_overlay(settings: Settings) -> dict:
    return {
        "app": {"host": settings.app_host, "port": settings.app_port, "env": settings.app_env},
        "embedding": {
            "model": settings.openai_embedding_model,
            "batch_size": settings.embedding_batch_size,
        },
        "vector_index": {
            "name": settings.vector_index_name,
            "remote": settings.uses_remote_chroma(),
        },
        "object_store": {"bucket": settings.s3_bucket, "region": settings.s3_region},
        "logging": {"level": settings.log_level},
    }


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Read *path* (missing file means no YAML defaults) and overlay *settings*.

    A fresh ``Settings()`` is constructed when *settings* is not given.
    """
    source = Path(path)
    resolved: dict = {}
    if source.exists():
        resolved = yaml.safe_load(source.read_text(encoding="utf-8")) or {}

    _deep_merge(resolved, _settings_overlay(settings or Settings()))
    return resolved


def _deep_merge(base: dict, overrides: dict) -> None:
    """Fold *overrides* into *base* in place, descending into nested dicts."""
    for key, incoming in overrides.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(incoming, dict):
            _deep_merge(current, incoming)
            continue
        base[key] = incoming

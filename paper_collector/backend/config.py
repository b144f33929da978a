"""
Runtime configuration for the paper collector backend.

All tunables are read from environment variables with sensible
defaults so the backend can run locally against a SQLite file without
any setup.  ``load_settings`` is called once by whoever wires the
orchestrator together; tests construct :class:`Settings` directly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = ["https://scholar.google.com", "https://researchgate.net"]


def get_database_url() -> str:
    """Resolve the database URL from environment variables.

    A ``DATABASE_URL`` environment variable overrides the default local
    SQLite file.  URLs beginning with ``postgres://`` are rewritten to
    ``postgresql://`` because SQLAlchemy does not recognise the former
    scheme.
    """
    url = os.getenv('DATABASE_URL')
    if url:
        if url.startswith('postgres://'):
            url = url.replace('postgres://', 'postgresql://', 1)
        return url
    default_path = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'papers.db')
    return f"sqlite:///{default_path}"


def _get_sources() -> List[str]:
    raw = os.getenv('PAPER_COLLECTOR_SOURCES')
    if not raw:
        return list(DEFAULT_SOURCES)
    return [s.strip().rstrip('/') for s in raw.split(',') if s.strip()]


@dataclass
class Settings:
    database_url: str = field(default_factory=get_database_url)
    default_api_key: str = field(
        default_factory=lambda: os.getenv('PAPER_COLLECTOR_DEFAULT_API_KEY', 'fc-demo-key')
    )
    source_domains: List[str] = field(default_factory=_get_sources)
    batch_size: int = field(default_factory=lambda: int(os.getenv('PAPER_COLLECTOR_BATCH_SIZE', '50')))
    progress_tick: float = field(
        default_factory=lambda: float(os.getenv('PAPER_COLLECTOR_PROGRESS_TICK', '0.2'))
    )
    progress_step: int = field(default_factory=lambda: int(os.getenv('PAPER_COLLECTOR_PROGRESS_STEP', '2')))
    progress_total: int = 100
    progress_stop_at: int = field(
        default_factory=lambda: int(os.getenv('PAPER_COLLECTOR_PROGRESS_STOP_AT', '95'))
    )


def load_settings() -> Settings:
    """Build a :class:`Settings` instance from the current environment."""
    settings = Settings()
    if settings.batch_size < 1:
        raise ValueError(f"Batch size must be positive, got {settings.batch_size}")
    logger.info(f"Loaded settings (sources: {', '.join(settings.source_domains)})")
    return settings


def mask_key(api_key: str) -> str:
    """Return a loggable form of an API key."""
    if not api_key or len(api_key) <= 6:
        return '***'
    return f"{api_key[:4]}…{api_key[-2:]}"

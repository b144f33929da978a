"""
Shared fixtures for the paper collector test suite.

Every test gets its own in-memory SQLite store and a signed-in owner.
The extraction service is never contacted; see ``fakes.py``.
"""

from __future__ import annotations

import pytest

from paper_collector.backend.auth import SessionAuth
from paper_collector.backend.config import Settings
from paper_collector.backend.credentials import CredentialStore, DefaultFallbackPolicy
from paper_collector.backend.database import Store
from paper_collector.tests.fakes import DEFAULT_KEY, OWNER


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url='sqlite:///:memory:',
        default_api_key=DEFAULT_KEY,
        source_domains=['https://scholar.google.com', 'https://researchgate.net'],
        batch_size=50,
        progress_tick=0.001,
        progress_step=2,
        progress_stop_at=95,
    )


@pytest.fixture
def store(settings: Settings) -> Store:
    db = Store(settings.database_url)
    db.init_db()
    return db


@pytest.fixture
def auth() -> SessionAuth:
    return SessionAuth(OWNER)


@pytest.fixture
def credentials(store: Store, auth: SessionAuth) -> CredentialStore:
    return CredentialStore(store, auth, DefaultFallbackPolicy(DEFAULT_KEY))

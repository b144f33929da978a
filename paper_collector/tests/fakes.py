"""Test doubles for the extraction service and the backing store."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from paper_collector.backend.auth import SessionAuth
from paper_collector.backend.config import Settings
from paper_collector.backend.credentials import CredentialStore, DefaultFallbackPolicy
from paper_collector.backend.database import Store
from paper_collector.backend.extraction import ExtractionClientProvider
from paper_collector.backend.orchestrator import QueryOrchestrator
from paper_collector.backend.persistence import ResultStore

DEFAULT_KEY = 'fc-default-test-key'
OWNER = 'owner-1'


def make_papers(count: int) -> List[Dict[str, Any]]:
    return [
        {
            'name': f'Paper {i}',
            'author': f'Author {i}',
            'year': 2015 + i,
            'abstract': f'Abstract {i}',
            'doi': f'10.1000/test.{i}',
        }
        for i in range(count)
    ]


class FakeExtractionClient:
    """Extraction client returning a fixed response or raising an error.

    When ``gate`` is given the call blocks until the event is set.
    """

    def __init__(
        self,
        response: Any = None,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
        delay: float = 0.02,
    ) -> None:
        self.response = response if response is not None else {'data': {'papers': []}}
        self.error = error
        self.gate = gate
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def extract(self, targets, prompt, schema):
        self.calls.append({'targets': targets, 'prompt': prompt, 'schema': schema})
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class CountingStore:
    """Stub store that records calls and can fail on a chosen batch."""

    def __init__(self, fail_on_batch: Optional[int] = None) -> None:
        self.fail_on_batch = fail_on_batch
        self.calls: List[str] = []
        self.batches: List[List[Dict[str, Any]]] = []

    def insert_results(self, rows):
        self.calls.append('insert_results')
        if self.fail_on_batch is not None and len(self.calls) >= self.fail_on_batch:
            raise RuntimeError('connection reset during insert')
        self.batches.append(list(rows))


class CountingAuth(SessionAuth):
    def __init__(self, owner_id=None) -> None:
        super().__init__(owner_id)
        self.lookups = 0

    def current_owner(self):
        self.lookups += 1
        return super().current_owner()


class FailingResultsStore(Store):
    """Real store whose result inserts fail from a given batch on."""

    def __init__(self, url: str, fail_on_batch: int = 1) -> None:
        super().__init__(url)
        self.fail_on_batch = fail_on_batch
        self.batches_attempted = 0

    def insert_results(self, rows):
        self.batches_attempted += 1
        if self.batches_attempted >= self.fail_on_batch:
            raise RuntimeError('connection reset during insert')
        super().insert_results(rows)


class FailingQueryStore(Store):
    """Real store that cannot save queries."""

    def insert_query(self, text, owner_id):
        raise RuntimeError('queries table is read-only')


def build_orchestrator(
    store: Store,
    auth: SessionAuth,
    settings: Settings,
    client: Optional[FakeExtractionClient] = None,
) -> QueryOrchestrator:
    credentials = CredentialStore(store, auth, DefaultFallbackPolicy(settings.default_api_key))
    fake = client or FakeExtractionClient()
    clients = ExtractionClientProvider(credentials, lambda api_key: fake)
    results = ResultStore(store, auth, settings.batch_size)
    return QueryOrchestrator(store, auth, credentials, results, clients, settings)

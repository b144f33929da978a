"""
Integration helpers for the Firecrawl extraction API.

This module defines a thin wrapper around the Firecrawl client that
builds the paper extraction prompt and schema and submits them for a
set of scholarly source domains.  The client is created lazily by
:class:`ExtractionClientProvider` with the signed-in owner's API key
and reused until that key changes.

Anything with an async ``extract(targets, prompt=..., schema=...)``
method returning ``{"data": {...}}`` can stand in for the Firecrawl
client; the tests use in-memory fakes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .config import mask_key
from .credentials import CredentialStore
from .errors import ClientInitFailure, ExtractionFailure

logger = logging.getLogger(__name__)

PAPER_SCHEMA: Dict[str, Any] = {
    'type': 'object',
    'properties': {
        'papers': {
            'type': 'array',
            'items': {
                'type': 'object',
                'properties': {
                    'name': {'type': 'string'},
                    'author': {'type': 'string'},
                    'year': {'type': 'number'},
                    'abstract': {'type': 'string'},
                    'doi': {'type': 'string'},
                    'research_question': {'type': 'string'},
                    'major_findings': {'type': 'string'},
                    'suggestions': {'type': 'string'},
                },
                'required': ['name', 'author', 'year'],
            },
        },
    },
}


def build_prompt(query: str) -> str:
    """Compose the natural-language extraction prompt for a topic."""
    return f"""Search for papers related to topic given below on different scholarly databases. Extract the paper's name, author, year, abstract, and DOI. Ensure that the name, author, year, and DOI are included for each paper.

topic is: {query}"""


def build_targets(domains: Sequence[str]) -> List[str]:
    """Turn source domains into wildcard extraction targets."""
    return [f"{domain.rstrip('/')}/*" for domain in domains]


class ExtractionClient(Protocol):
    async def extract(self, targets: List[str], prompt: str, schema: Dict[str, Any]) -> Mapping[str, Any]:
        ...


def _response_to_dict(response: Any) -> Dict[str, Any]:
    if response is None:
        raise ExtractionFailure('Empty response from extraction service')
    if isinstance(response, Mapping):
        result = dict(response)
    elif hasattr(response, 'model_dump'):
        result = response.model_dump()
    elif hasattr(response, 'data'):
        result = {'success': getattr(response, 'success', True), 'data': response.data,
                  'error': getattr(response, 'error', None)}
    else:
        raise ExtractionFailure(f"Unrecognised response type: {type(response).__name__}")
    if result.get('success') is False:
        raise ExtractionFailure(result.get('error') or 'Extraction request was not successful')
    return result


class FirecrawlExtractionClient:
    """Async adapter over the synchronous Firecrawl SDK."""

    def __init__(self, api_key: str) -> None:
        from firecrawl import FirecrawlApp  # type: ignore

        self.app = FirecrawlApp(api_key=api_key)
        logger.info(f"Firecrawl app initialized with key {mask_key(api_key)}")

    async def extract(self, targets: List[str], prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Making Firecrawl extract request for {len(targets)} targets")
        try:
            response = await asyncio.to_thread(self.app.extract, targets, prompt=prompt, schema=schema)
        except Exception as e:
            logger.error(f"Firecrawl extract request failed: {e}")
            raise ExtractionFailure(str(e)) from e
        return _response_to_dict(response)


ClientFactory = Callable[[str], ExtractionClient]


class ExtractionClientProvider:
    """Lazily create one extraction client and cache it.

    The cached client is dropped whenever the owner saves a new API
    key, so the next research run connects with that key.
    """

    def __init__(self, credentials: CredentialStore, factory: Optional[ClientFactory] = None) -> None:
        self.credentials = credentials
        self.factory: ClientFactory = factory or FirecrawlExtractionClient
        self._client: Optional[ExtractionClient] = None
        credentials.add_save_listener(self.reset)

    @property
    def initialized(self) -> bool:
        return self._client is not None

    async def get(self) -> ExtractionClient:
        """Return the cached client, creating it on first use.

        Raises:
            ClientInitFailure: if the client cannot be constructed.
        """
        if self._client is None:
            api_key = await self.credentials.get()
            try:
                self._client = self.factory(api_key)
            except Exception as e:
                logger.error(f"Error initializing extraction client: {e}")
                raise ClientInitFailure(f"Failed to initialize extraction client: {e}") from e
        return self._client

    def reset(self) -> None:
        self._client = None

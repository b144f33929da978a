"""
Per-owner storage of the extraction service API key.

Keys live in the ``credentials`` table, at most one row per owner is
read (the most recently created).  The adapter keeps an in-process
cache keyed by owner id so that switching the signed-in owner never
returns another owner's key; the cache for an owner is only replaced
by an explicit :meth:`CredentialStore.save` or dropped by
:meth:`CredentialStore.clear_cache`.

Store calls run in worker threads through :func:`asyncio.to_thread`.

Reads never fail.  When no key can be read, for whatever reason, the
:class:`DefaultFallbackPolicy` supplies a shared default key instead.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .auth import AuthProvider
from .config import mask_key
from .database import Store

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


class SaveOutcome(enum.Enum):
    SUCCESS = 'success'
    AUTH_REQUIRED = 'auth_required'
    PERSISTENCE_FAILURE = 'persistence_failure'


@dataclass(frozen=True)
class DefaultFallbackPolicy:
    """Key handed out whenever the owner's own key cannot be read."""

    default_key: str

    def resolve(self, reason: str) -> str:
        logger.warning(f"Using default API key: {reason}")
        return self.default_key


class CredentialStore:
    """Read and write the current owner's API key."""

    def __init__(
        self,
        store: Store,
        auth: AuthProvider,
        fallback: DefaultFallbackPolicy,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.store = store
        self.auth = auth
        self.fallback = fallback
        self.notifier = notifier
        self._cache: Dict[str, str] = {}
        self._save_listeners: List[Callable[[], None]] = []

    def add_save_listener(self, listener: Callable[[], None]) -> None:
        """Register a callable run after every successful save."""
        self._save_listeners.append(listener)

    def _owner(self) -> Optional[str]:
        try:
            return self.auth.current_owner()
        except Exception as e:
            logger.error(f"Could not resolve current owner: {e}")
            return None

    def _notify(self, level: str, message: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(level, message)
        except Exception as e:
            logger.error(f"Notifier failed: {e}")

    def _write(self, owner_id: str, api_key: str) -> None:
        existing_id = self.store.find_credential_id(owner_id)
        if existing_id:
            self.store.update_credential(existing_id, owner_id, api_key)
        else:
            self.store.insert_credential(owner_id, api_key)

    async def save(self, api_key: str) -> SaveOutcome:
        """Store ``api_key`` for the current owner.

        Updates the owner's existing row in place, or inserts one if
        none exists.  The cache is only touched once the write has
        succeeded.
        """
        owner_id = self._owner()
        if not owner_id:
            logger.error("User not authenticated")
            self._notify('error', 'You must be logged in to save API keys')
            return SaveOutcome.AUTH_REQUIRED
        logger.info(f"Saving API key {mask_key(api_key)} for owner {owner_id}")
        try:
            await asyncio.to_thread(self._write, owner_id, api_key)
        except Exception as e:
            logger.error(f"Error saving API key: {e}")
            self._notify('error', 'Failed to save API key')
            return SaveOutcome.PERSISTENCE_FAILURE
        self._cache[owner_id] = api_key
        for listener in self._save_listeners:
            listener()
        logger.info("API key saved successfully")
        self._notify('success', 'API key saved successfully')
        return SaveOutcome.SUCCESS

    async def get(self) -> str:
        """Return the current owner's API key, or the default key."""
        owner_id = self._owner()
        if not owner_id:
            return self.fallback.resolve('user not authenticated')
        cached = self._cache.get(owner_id)
        if cached:
            return cached
        try:
            api_key = await asyncio.to_thread(self.store.latest_credential, owner_id)
        except Exception as e:
            logger.error(f"Error fetching API key: {e}")
            return self.fallback.resolve('credential lookup failed')
        if not api_key:
            return self.fallback.resolve('no API key stored')
        self._cache[owner_id] = api_key
        return api_key

    async def exists(self) -> bool:
        """Return whether the current owner has stored an API key."""
        owner_id = self._owner()
        if not owner_id:
            return False
        try:
            return await asyncio.to_thread(self.store.count_credentials, owner_id) > 0
        except Exception as e:
            logger.error(f"Error checking for API key: {e}")
            return False

    def clear_cache(self, owner_id: Optional[str] = None) -> None:
        if owner_id is None:
            self._cache.clear()
        else:
            self._cache.pop(owner_id, None)

"""
Research query orchestration.

:class:`QueryOrchestrator` drives one research run from the submitted
topic to saved papers:

1. cancel any simulated progress left over from a previous run;
2. save the query for the signed-in owner;
3. obtain the extraction client (created lazily with the owner's key);
4. start the progress emitter and issue a single extraction request
   against the configured scholarly sources;
5. validate the response, save the papers in batches and report the
   outcome.

Every state change is reported through the caller's progress and
activity callbacks.  :meth:`QueryOrchestrator.process_query` never
raises: failures are turned into a :class:`QueryResult` with
``status == "failed"`` and an error entry in its activities.  If the
papers were extracted but could not be saved, the whole run counts as
failed.

Blocking store and SDK calls run in worker threads through
:func:`asyncio.to_thread`, so progress ticks keep flowing while they
wait.  Only one progress emitter is active per orchestrator: starting a
run's emitter first stops whichever emitter is currently registered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .activity import ActivityItem, ActivityLog
from .auth import AuthProvider, SessionAuth
from .config import Settings, load_settings
from .credentials import CredentialStore, DefaultFallbackPolicy, Notifier
from .database import Store
from .extraction import (
    PAPER_SCHEMA,
    ClientFactory,
    ExtractionClient,
    ExtractionClientProvider,
    build_prompt,
    build_targets,
)
from .models import ResultData, parse_result_data
from .persistence import ResultStore
from .progress import ProgressCallback, ProgressEmitter, ProgressState, notify_progress

logger = logging.getLogger(__name__)

ActivityCallback = Callable[[List[ActivityItem]], None]

STATUS_IN_PROGRESS = 'Research in progress...'
STATUS_COMPLETED = 'Research completed'
STATUS_FAILED = 'Research failed'


@dataclass
class QueryResult:
    """Outcome of a research run as returned to the caller."""

    sources: List[str] = field(default_factory=list)
    activities: List[ActivityItem] = field(default_factory=list)
    summary: Optional[str] = None
    data: Optional[ResultData] = None
    search_id: Optional[str] = None
    status: str = 'completed'

    @property
    def failed(self) -> bool:
        return self.status == 'failed'


class QueryOrchestrator:
    """Coordinate query persistence, extraction and result persistence."""

    def __init__(
        self,
        store: Store,
        auth: AuthProvider,
        credentials: CredentialStore,
        results: ResultStore,
        clients: ExtractionClientProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.auth = auth
        self.credentials = credentials
        self.results = results
        self.clients = clients
        self.settings = settings or Settings()
        self._active_emitter: Optional[ProgressEmitter] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        auth: Optional[AuthProvider] = None,
        client_factory: Optional[ClientFactory] = None,
        notifier: Optional[Notifier] = None,
    ) -> 'QueryOrchestrator':
        """Wire up the default store, adapters and Firecrawl client."""
        settings = settings or load_settings()
        auth = auth or SessionAuth()
        store = Store(settings.database_url)
        store.init_db()
        credentials = CredentialStore(store, auth, DefaultFallbackPolicy(settings.default_api_key), notifier)
        results = ResultStore(store, auth, settings.batch_size)
        clients = ExtractionClientProvider(credentials, client_factory)
        return cls(store, auth, credentials, results, clients, settings)

    @property
    def searching(self) -> bool:
        return self._active_emitter is not None and self._active_emitter.active

    def cancel_current_search(self) -> None:
        """Stop the simulated progress of the current run, if any.

        In-flight extraction or persistence calls are not aborted.
        """
        if self._active_emitter is not None:
            self._active_emitter.stop()
            self._active_emitter = None

    def _release(self, emitter: ProgressEmitter) -> None:
        emitter.stop()
        if self._active_emitter is emitter:
            self._active_emitter = None

    def _finish(self, progress: ProgressState, on_progress: Optional[ProgressCallback], status: str) -> None:
        progress.status = status
        progress.percentage = 100
        notify_progress(on_progress, progress)

    async def save_query(self, text: str) -> Optional[str]:
        """Persist the query for the current owner and return its id.

        Returns ``None`` when nobody is signed in or the write fails.
        """
        try:
            owner_id = self.auth.current_owner()
        except Exception as e:
            logger.error(f"Could not resolve current owner: {e}")
            return None
        if not owner_id:
            logger.error("User not authenticated")
            return None
        try:
            search_id = await asyncio.to_thread(self.store.insert_query, text, owner_id)
        except Exception as e:
            logger.error(f"Error saving search query: {e}")
            return None
        logger.info(f"Search saved successfully with ID: {search_id}")
        return search_id

    async def _extract(self, client: ExtractionClient, text: str, activities: ActivityLog) -> ResultData:
        logger.info(f"Making extraction request with query: {text}")
        try:
            response = await client.extract(
                build_targets(self.settings.source_domains),
                prompt=build_prompt(text),
                schema=PAPER_SCHEMA,
            )
            return parse_result_data(response)
        except Exception as e:
            logger.error(f"Error in extraction request: {e}")
            activities.add(
                'error',
                'Failed to connect to extraction service',
                str(e) or 'Network error occurred',
            )
            raise

    async def process_query(
        self,
        text: str,
        on_progress: Optional[ProgressCallback] = None,
        on_activity: Optional[ActivityCallback] = None,
    ) -> QueryResult:
        """Run a research query end to end.

        Args:
            text: The research topic.
            on_progress: Receives a copy of the progress state on every
                change.
            on_activity: Receives a copy of the activity list after
                every new entry.

        Returns:
            A :class:`QueryResult`.  This coroutine does not raise.
        """
        self.cancel_current_search()
        activities = ActivityLog(on_activity)
        progress = ProgressState(status=STATUS_IN_PROGRESS, total=self.settings.progress_total)
        notify_progress(on_progress, progress)
        emitter: Optional[ProgressEmitter] = None
        search_id: Optional[str] = None
        try:
            search_id = await self.save_query(text)
            if not search_id:
                activities.add('error', 'Failed to save search to database')
                self._finish(progress, on_progress, STATUS_FAILED)
                return QueryResult(activities=activities.snapshot(), status='failed')
            activities.add('info', 'Search query saved successfully')

            client = await self.clients.get()

            activities.add('analyzing', f'Starting research for: "{text}"')
            activities.add('analyzing', 'Searching scholarly databases...')

            emitter = ProgressEmitter(
                progress,
                on_progress,
                tick=self.settings.progress_tick,
                step=self.settings.progress_step,
                stop_at=self.settings.progress_stop_at,
            )
            # a run suspended before this point may have started its own emitter
            self.cancel_current_search()
            self._active_emitter = emitter
            emitter.start()

            data = await self._extract(client, text, activities)
            self._release(emitter)
            activities.add('success', 'Research completed successfully')

            count = len(data.papers)
            if count:
                try:
                    await self.results.save_batch(data.papers, search_id)
                except Exception as e:
                    logger.error(f"Error saving papers: {e}")
                    activities.add('error', 'Failed to save papers to database', str(e) or 'Unknown error')
                    raise
                activities.add(
                    'success',
                    f'Found and saved {count} relevant papers',
                    f'Extracted and saved information about {count} papers related to "{text}"',
                )
            else:
                activities.add('info', 'No papers found matching the criteria')

            progress.completed = progress.total
            self._finish(progress, on_progress, STATUS_COMPLETED)
            if count:
                found = f'Found and saved {count} papers related to the topic.'
            else:
                found = 'No specific papers were found.'
            return QueryResult(
                sources=list(self.settings.source_domains),
                activities=activities.snapshot(),
                summary=f'Completed research on "{text}". {found}',
                data=data,
                search_id=search_id,
            )
        except Exception as e:
            logger.error(f"Error in search: {e}")
            if emitter is not None:
                self._release(emitter)
            activities.add('error', 'An error occurred during research', str(e) or 'Unknown error')
            self._finish(progress, on_progress, STATUS_FAILED)
            return QueryResult(
                activities=activities.snapshot(),
                summary=f'Research on "{text}" encountered an error.',
                search_id=search_id,
                status='failed',
            )

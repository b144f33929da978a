"""
Batch persistence of extracted papers.

Papers returned by the extraction service are normalised into a
DataFrame, tagged with the originating query id and the owner id, and
written to the ``results`` table in fixed-size batches.  Batches are
written one after another and each batch is its own transaction: when
a batch fails the remaining batches are skipped and the failure is
raised, but batches already written stay in place.  Each insert runs
in a worker thread so the event loop is not blocked by the store.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd  # type: ignore

from .auth import AuthProvider
from .database import RESULT_COLUMNS, Store
from .errors import AuthRequired, PersistenceFailure, ValidationFailure
from .models import OPTIONAL_FIELDS, UNKNOWN_AUTHOR, Paper, optional_text, normalize_year

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

PaperLike = Union[Paper, Mapping[str, Any]]


def normalize_record(record: PaperLike) -> Dict[str, Any]:
    """Map a paper onto the ``results`` columns with defaults applied."""
    raw = record.to_dict() if isinstance(record, Paper) else dict(record)
    normalized: Dict[str, Any] = {
        'name': str(raw.get('name') or '').strip(),
        'author': optional_text(raw.get('author')) or UNKNOWN_AUTHOR,
        'year': normalize_year(raw.get('year')),
    }
    for key in OPTIONAL_FIELDS:
        normalized[key] = optional_text(raw.get(key))
    return normalized


def normalize_records(records: Sequence[PaperLike]) -> pd.DataFrame:
    """Build an object-typed frame of normalised papers.

    ``dtype=object`` keeps ``None`` and integer years intact instead of
    turning them into ``NaN`` and floats.
    """
    return pd.DataFrame([normalize_record(r) for r in records], columns=RESULT_COLUMNS, dtype=object)


class ResultStore:
    """Write and read the papers saved for a query."""

    def __init__(self, store: Store, auth: AuthProvider, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValidationFailure(f"Batch size must be positive, got {batch_size}")
        self.store = store
        self.auth = auth
        self.batch_size = batch_size

    def _require_owner(self) -> str:
        owner_id = self.auth.current_owner()
        if not owner_id:
            logger.error("User not authenticated")
            raise AuthRequired('User not authenticated')
        return owner_id

    async def save_batch(self, records: Sequence[PaperLike], query_id: str) -> int:
        """Save ``records`` under ``query_id`` and return the row count.

        Raises:
            AuthRequired: if nobody is signed in.
            PersistenceFailure: on the first batch that fails to write.
        """
        if not records:
            logger.info("No papers to save")
            return 0
        owner_id = self._require_owner()
        frame = normalize_records(records).assign(query_id=query_id, owner_id=owner_id)
        total = len(frame)
        batch_count = math.ceil(total / self.batch_size)
        logger.info(f"Saving {total} papers with query_id: {query_id}")
        for number, start in enumerate(range(0, total, self.batch_size), start=1):
            batch: List[Dict[str, Any]] = frame.iloc[start:start + self.batch_size].to_dict('records')
            try:
                await asyncio.to_thread(self.store.insert_results, batch)
            except Exception as e:
                logger.error(f"Error saving papers batch {number}: {e}")
                raise PersistenceFailure(f"Failed to save papers batch {number} of {batch_count}: {e}") from e
            logger.info(f"Saved batch {number} of {batch_count}")
        logger.info("All papers saved successfully")
        return total

    def list_queries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return the current owner's query history, most recent first."""
        owner_id = self._require_owner()
        try:
            return self.store.list_queries(owner_id, limit)
        except Exception as e:
            raise PersistenceFailure(f"Failed to list queries: {e}") from e

    def results_frame(self, query_id: str) -> pd.DataFrame:
        """Return the papers saved for ``query_id`` as a DataFrame."""
        owner_id = self._require_owner()
        try:
            rows = self.store.fetch_results(query_id, owner_id)
        except Exception as e:
            raise PersistenceFailure(f"Failed to load results for query {query_id}: {e}") from e
        return pd.DataFrame(rows, columns=RESULT_COLUMNS + ['query_id'])

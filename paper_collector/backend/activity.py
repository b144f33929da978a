"""
Activity log for a research run.

Activities are short, timestamped status entries shown to the user
while a query is processed.  They are transient: nothing here is
persisted.  :class:`ActivityLog` owns the growing list for one run and
hands the caller a fresh copy after every append, so callers never see
the list change underneath them.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .errors import ValidationFailure

logger = logging.getLogger(__name__)

ACTIVITY_KINDS = ('analyzing', 'success', 'info', 'error')


@dataclass(frozen=True)
class ActivityItem:
    id: str
    kind: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: Optional[str] = None


def create_activity(kind: str, message: str, details: Optional[str] = None) -> ActivityItem:
    """Create a new activity entry with a fresh short identifier."""
    if kind not in ACTIVITY_KINDS:
        raise ValidationFailure(f"Unknown activity kind: {kind}")
    return ActivityItem(id=uuid.uuid4().hex[:7], kind=kind, message=message, details=details)


class ActivityLog:
    """Append-only activity list that notifies a listener on every change."""

    def __init__(self, on_update: Optional[Callable[[List[ActivityItem]], None]] = None) -> None:
        self._items: List[ActivityItem] = []
        self._on_update = on_update

    def add(self, kind: str, message: str, details: Optional[str] = None) -> ActivityItem:
        item = create_activity(kind, message, details)
        self._items.append(item)
        if self._on_update is not None:
            try:
                self._on_update(self.snapshot())
            except Exception as e:
                logger.error(f"Activity listener failed: {e}")
        return item

    def snapshot(self) -> List[ActivityItem]:
        return list(self._items)

    def errors(self) -> List[ActivityItem]:
        return [item for item in self._items if item.kind == 'error']

    def __len__(self) -> int:
        return len(self._items)

"""Error types raised by the paper collector backend."""

from __future__ import annotations


class PaperCollectorError(Exception):
    """Base class for all backend errors."""


class AuthRequired(PaperCollectorError):
    """No authenticated owner is available for an owner-scoped operation."""


class PersistenceFailure(PaperCollectorError):
    """A read or write against the backing store failed."""


class ClientInitFailure(PaperCollectorError):
    """The extraction client could not be constructed."""


class ExtractionFailure(PaperCollectorError):
    """The extraction service failed or returned a malformed response."""


class ValidationFailure(PaperCollectorError):
    """An argument did not satisfy a precondition."""

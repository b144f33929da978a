"""
Authentication collaborator.

The backend never authenticates anyone itself; it only asks "who is the
current owner?".  Any object with a ``current_owner()`` method returning
an owner id (or ``None`` when signed out) can be passed in.
"""

from __future__ import annotations

from typing import Optional, Protocol


class AuthProvider(Protocol):
    def current_owner(self) -> Optional[str]:
        ...


class SessionAuth:
    """In-process session holding the signed-in owner id."""

    def __init__(self, owner_id: Optional[str] = None) -> None:
        self._owner_id = owner_id

    def sign_in(self, owner_id: str) -> None:
        self._owner_id = owner_id

    def sign_out(self) -> None:
        self._owner_id = None

    def current_owner(self) -> Optional[str]:
        return self._owner_id

"""
core/context.py -- Per-call caller context handed to every mutation handler.

The transport layer builds one CallerContext per request: the authenticated
user (or None) plus two callbacks that write and clear the session artifact on
the outgoing response. Handlers never reach for request globals, so tests can
drive them with a synthetic context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from core.errors import Unauthenticated

ArtifactWriter = Callable[[str, str, dict], None]
ArtifactClearer = Callable[[str], None]


def _discard_write(name: str, value: str, options: dict) -> None:
    return None


def _discard_clear(name: str) -> None:
    return None


@dataclass
class CallerContext:
    """Identity and response hooks for a single handler invocation.

    user is the full User record (with permissions) resolved from the session
    token, or None for anonymous callers.
    """

    user: Optional[Any] = None
    deliver_artifact: ArtifactWriter = field(default=_discard_write)
    clear_artifact: ArtifactClearer = field(default=_discard_clear)

    @property
    def user_id(self) -> Optional[int]:
        return self.user.id if self.user is not None else None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def require_user(self) -> Any:
        """Return the caller's User, or raise Unauthenticated for anonymous callers."""
        if self.user is None:
            raise Unauthenticated()
        return self.user

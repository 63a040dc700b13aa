"""
mutations/queries.py -- Read queries that make an authorization decision.

Plain catalogue reads are forwarded straight to the store by the API layer.
Only the two reads below depend on who is asking.
"""

from __future__ import annotations

from auth.models import User
from auth.permissions import PERMISSION_MANAGERS, authorize
from auth.store import UserStore
from core.context import CallerContext


class GuardedQueries:
    def __init__(self, users: UserStore) -> None:
        self.users = users

    def me(self, ctx: CallerContext) -> User | None:
        """Return the caller's own record, or None for anonymous callers."""
        if not ctx.is_authenticated:
            return None
        return self.users.get_by_id(ctx.user_id)

    def users_list(self, ctx: CallerContext) -> list[User]:
        """List every account. Restricted to ADMIN / PERMISSIONUPDATE."""
        caller = ctx.require_user()
        authorize(caller, PERMISSION_MANAGERS)
        return self.users.list_users()

"""
auth/permissions.py -- Authorization guard.

Two independent checks:

  Role check    -- authorize(caller, required) passes when the caller holds ANY
                   of the required permissions (set intersection, not subset).
  Ownership     -- owns(owner_id, caller) passes when the caller created the
                   resource, regardless of role.

Handlers that accept either combine the two with a plain `or`.

Layer rule: no imports from api/, shop/, or mutations/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.models import Permission, User
from core.errors import Forbidden, ValidationError

logger = logging.getLogger("storefront.auth")

# Role sets used by the mutation handlers.
ITEM_UPDATERS = frozenset({Permission.ADMIN, Permission.ITEMUPDATE})
ITEM_DELETERS = frozenset({Permission.ADMIN, Permission.ITEMDELETE})
PERMISSION_MANAGERS = frozenset({Permission.ADMIN, Permission.PERMISSIONUPDATE})


def parse_permissions(labels: Iterable[str | Permission]) -> set[Permission]:
    """Coerce raw labels into a deduplicated Permission set.

    Raises ValidationError naming the first unknown label.
    """
    result: set[Permission] = set()
    for label in labels:
        try:
            result.add(Permission(label))
        except ValueError as exc:
            raise ValidationError(f"Unknown permission: {label!r}") from exc
    return result


def has_permission(caller_permissions: Iterable[Permission], required: Iterable[Permission]) -> bool:
    """Return True if the caller holds at least one of the required permissions."""
    return not set(required).isdisjoint(caller_permissions)


def authorize(user: User, required: Iterable[Permission]) -> None:
    """Raise Forbidden unless user holds at least one required permission."""
    required = frozenset(required)
    if has_permission(user.permissions, required):
        return
    logger.warning(
        "Denied user_id=%s: needs one of %s",
        user.id,
        sorted(p.value for p in required),
    )
    raise Forbidden(
        "You do not have sufficient permissions. Need one of: "
        + ", ".join(sorted(p.value for p in required))
    )


def owns(owner_id: int | None, user: User | None) -> bool:
    """Return True if user is the resource's owner."""
    return user is not None and owner_id is not None and owner_id == user.id

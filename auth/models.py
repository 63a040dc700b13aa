"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in shop/models.py -- dataclasses own domain shape; stores and handlers do
the work.

Layer rule: no imports from api/, shop/, or mutations/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Permission(str, Enum):
    """Permission labels a user can hold.

    Stored as their string values. Parsing unknown strings through this enum
    (Permission("ADMNI") raises ValueError) stops typos from silently granting
    or denying access.
    """

    ADMIN = "ADMIN"
    USER = "USER"
    ITEMCREATE = "ITEMCREATE"
    ITEMUPDATE = "ITEMUPDATE"
    ITEMDELETE = "ITEMDELETE"
    PERMISSIONUPDATE = "PERMISSIONUPDATE"


@dataclass
class User:
    """A storefront account.

    email is stored lowercased. permissions is a set, so order and duplicates
    never matter. reset_token / reset_token_expiry are both set by a reset
    request and both cleared when the token is consumed; reset_token_expiry
    is absolute epoch seconds.

    id is None before the record is written to the database.
    """

    email: str
    name: str = ""
    hashed_password: str | None = None
    permissions: set[Permission] = field(default_factory=lambda: {Permission.USER})
    id: int | None = None
    reset_token: str | None = None
    reset_token_expiry: float | None = None
    created_at: str | None = None

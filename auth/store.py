"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as shop/store.py).
UserStore is the repository; _row_to_user is the mapper. Handler and
dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  consume_reset_token() is the only way a reset token is spent. The final
  UPDATE re-checks the token and expiry in its WHERE clause, so two concurrent
  requests racing on the same token cannot both succeed: the loser sees
  rowcount 0 because the winner already cleared reset_token.

Storage notes:
  permissions is a JSON array in a TEXT column, sorted on write so the stored
  form is stable. reset_token_expiry is epoch seconds (REAL) so the expiry
  comparison is numeric, not a string comparison of ISO timestamps.

Layer rule: no imports from api/, shop/, or mutations/.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine

from auth.models import Permission, User
from core.db import make_engine

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'storefront.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False, server_default=""),
    Column("hashed_password", Text),
    Column("permissions", Text, nullable=False, server_default='["USER"]'),  # JSON array
    Column("reset_token", String(64), unique=True),
    Column("reset_token_expiry", Float),  # epoch seconds
    Column("created_at", String(32), nullable=False),
)

# Columns update_user() may write. Anything else is a programming error.
_UPDATABLE = {"name", "hashed_password", "permissions", "reset_token", "reset_token_expiry"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump_permissions(permissions: Iterable[Permission]) -> str:
    return json.dumps(sorted({Permission(p).value for p in permissions}))


def _load_permissions(raw: str | None) -> set[Permission]:
    if not raw:
        return set()
    return {Permission(p) for p in json.loads(raw)}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="a@b.com", hashed_password=hash_password("secret")))
        user = store.get_by_email("a@b.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The signup handler turns that into AlreadyExists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    permissions=_dump_permissions(user.permissions),
                    reset_token=user.reset_token,
                    reset_token_expiry=user.reset_token_expiry,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Callers lowercase before calling."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, hashed_password, permissions, reset_token,
        reset_token_expiry. Unknown keys raise ValueError -- fail fast rather
        than silently dropping a write.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "permissions" in fields:
            fields["permissions"] = _dump_permissions(fields["permissions"])
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def set_permissions(self, user_id: int, permissions: Iterable[Permission]) -> bool:
        """Replace the user's permission set wholesale."""
        return self.update_user(user_id, permissions=set(permissions))

    def set_reset_token(self, user_id: int, token: str, expiry: float) -> bool:
        """Store a pending reset token and its absolute expiry (epoch seconds)."""
        return self.update_user(user_id, reset_token=token, reset_token_expiry=expiry)

    def consume_reset_token(self, token: str, now: float, hashed_password: str) -> User | None:
        """Atomically spend a live reset token and set a new password hash.

        A token is live while reset_token_expiry >= now. On success the new
        hash is written and both reset fields are cleared in the same UPDATE;
        the refreshed User is returned. Returns None if the token is unknown,
        expired, or was spent by a concurrent caller.
        """
        live = (_users.c.reset_token == token) & (_users.c.reset_token_expiry >= now)
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(live)).first()
        if row is None:
            return None
        # The UPDATE re-checks the token, so only one caller can match it.
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == row.id) & live)
                .values(hashed_password=hashed_password, reset_token=None, reset_token_expiry=None)
            )
            if result.rowcount != 1:
                return None
            updated = conn.execute(_users.select().where(_users.c.id == row.id)).fetchone()
        return _row_to_user(updated)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name or "",
        hashed_password=row.hashed_password,
        permissions=_load_permissions(row.permissions),
        reset_token=row.reset_token,
        reset_token_expiry=row.reset_token_expiry,
        created_at=row.created_at,
    )

"""
shop/store.py -- SQLAlchemy-backed persistence layer for items and carts.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in shop/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. ShopStore is the repository; the _row_to_*
functions are the mappers. Handlers never touch SQL directly.

Concurrency:
  add_to_cart() is a single INSERT ... ON CONFLICT (user_id, item_id)
  DO UPDATE SET quantity = quantity + 1. The UNIQUE constraint plus the
  conflict clause make merge-or-create atomic per (user, item): concurrent
  adds can neither create a duplicate row nor lose an increment. Only dialects
  with native upsert support (SQLite >= 3.24, PostgreSQL) are accepted; any
  other database URL is rejected with ValueError when the store is opened.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ShopStore()                               # SQLite default
    store = ShopStore("postgresql://user:pw@host/db") # PostgreSQL
    item_id = store.create_item(Item(title="Shoes", user_id=1, price=5000))
    cart_item = store.add_to_cart(user_id=1, item_id=item_id)
    store.close()
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import CheckConstraint, Column, Integer, MetaData, String, Table, Text, UniqueConstraint
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from core.db import make_engine
from shop.models import ITEM_FIELDS, CartItem, Item

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'storefront.db'}"

# Dialect-specific INSERT constructs that support on_conflict_do_update().
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_items = Table(
    "items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("price", Integer, nullable=False, server_default="0"),  # cents
    Column("image", Text),
    Column("large_image", Text),
    Column("user_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_cart_items = Table(
    "cart_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("item_id", Integer, nullable=False),
    Column("quantity", Integer, nullable=False, server_default="1"),
    UniqueConstraint("user_id", "item_id", name="uq_cart_user_item"),
    CheckConstraint("quantity > 0", name="ck_cart_quantity_positive"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ShopStore:
    """Repository for Item and CartItem entities."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)
        self._upsert_insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
        if self._upsert_insert is None:
            dialect = self.engine.dialect.name
            self.engine.dispose()
            raise ValueError(f"ShopStore needs native upsert support; {dialect!r} is not supported")
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def create_item(self, item: Item) -> int:
        """Insert a new item and return its assigned database ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.insert().values(
                    title=item.title,
                    description=item.description,
                    price=item.price,
                    image=item.image,
                    large_image=item.large_image,
                    user_id=item.user_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_item(self, item_id: int) -> Optional[Item]:
        """Return the item or None if it does not exist."""
        with self.engine.connect() as conn:
            row = conn.execute(_items.select().where(_items.c.id == item_id)).fetchone()
        return _row_to_item(row) if row is not None else None

    def list_items(self, user_id: Optional[int] = None) -> list[Item]:
        """Return items newest first, optionally filtered by owner."""
        query = _items.select().order_by(_items.c.id.desc())
        if user_id is not None:
            query = query.where(_items.c.user_id == user_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_item(r) for r in rows]

    def update_item(self, item_id: int, **fields) -> bool:
        """Write attribute fields onto an item.

        Only keys in ITEM_FIELDS are accepted; owner and id are immutable
        here. Unknown keys raise ValueError. Returns False if the item does
        not exist.
        """
        unknown = set(fields) - set(ITEM_FIELDS)
        if unknown:
            raise ValueError(f"Unknown item fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_item(item_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_items.update().where(_items.c.id == item_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_item(self, item_id: int) -> bool:
        """Delete an item and every cart row that references it.

        Both deletes run in one transaction so no cart row is left pointing at
        a missing item.
        """
        with self.engine.begin() as conn:
            conn.execute(_cart_items.delete().where(_cart_items.c.item_id == item_id))
            result = conn.execute(_items.delete().where(_items.c.id == item_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    def add_to_cart(self, user_id: int, item_id: int) -> CartItem:
        """Insert a cart row with quantity 1, or bump an existing row by 1.

        Atomic per (user_id, item_id); see module docstring.
        """
        stmt = (
            self._upsert_insert(_cart_items)
            .values(user_id=user_id, item_id=item_id, quantity=1)
            .on_conflict_do_update(
                index_elements=[_cart_items.c.user_id, _cart_items.c.item_id],
                set_={"quantity": _cart_items.c.quantity + 1},
            )
        )
        key = (_cart_items.c.user_id == user_id) & (_cart_items.c.item_id == item_id)
        with self.engine.begin() as conn:
            conn.execute(stmt)
            row = conn.execute(_cart_items.select().where(key)).fetchone()
        return _row_to_cart_item(row)

    def get_cart_item(self, cart_item_id: int) -> Optional[CartItem]:
        with self.engine.connect() as conn:
            row = conn.execute(_cart_items.select().where(_cart_items.c.id == cart_item_id)).fetchone()
        return _row_to_cart_item(row) if row is not None else None

    def get_cart(self, user_id: int) -> list[CartItem]:
        """Return the user's cart rows in insertion order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _cart_items.select().where(_cart_items.c.user_id == user_id).order_by(_cart_items.c.id)
            ).fetchall()
        return [_row_to_cart_item(r) for r in rows]

    def delete_cart_item(self, cart_item_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_cart_items.delete().where(_cart_items.c.id == cart_item_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_item(row) -> Item:
    return Item(
        id=row.id,
        title=row.title,
        description=row.description or "",
        price=row.price,
        image=row.image,
        large_image=row.large_image,
        user_id=row.user_id,
        created_at=row.created_at,
    )


def _row_to_cart_item(row) -> CartItem:
    return CartItem(
        id=row.id,
        user_id=row.user_id,
        item_id=row.item_id,
        quantity=row.quantity,
    )

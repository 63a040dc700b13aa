"""
shop/models.py -- Domain dataclasses for catalogue items and cart rows.

These are pure data containers with zero logic. Ownership checks and the cart
merge rule live in mutations/entities.py; persistence lives in shop/store.py.
"""

from dataclasses import dataclass
from typing import Optional

# Attribute fields a caller may set on an item. id and user_id are managed by
# the store and handlers.
ITEM_FIELDS = ("title", "description", "price", "image", "large_image")


@dataclass
class Item:
    """A product listed for sale.

    user_id is the creator. It is set once at creation and never reassigned.
    price is an integer number of cents.

    id is None before the record is written to the database.
    """

    title: str
    user_id: int
    description: str = ""
    price: int = 0
    image: Optional[str] = None
    large_image: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class CartItem:
    """One line in a user's cart.

    At most one row exists per (user_id, item_id); repeat adds bump quantity.
    """

    user_id: int
    item_id: int
    quantity: int = 1
    id: Optional[int] = None

"""
mutations/entities.py -- Item, permission and cart mutations.

Authorization per handler:

  create_item         any authenticated caller; caller becomes the owner
  update_item         owner, or ADMIN / ITEMUPDATE
  delete_item         owner, or ADMIN / ITEMDELETE
  update_permissions  ADMIN / PERMISSIONUPDATE (no self-service path)
  add_to_cart         any authenticated caller, own cart only
  remove_from_cart    owner of the cart row only

Every check runs before the store is written. Anonymous callers get
Unauthenticated before any lookup happens.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.models import Permission, User
from auth.permissions import (
    ITEM_DELETERS,
    ITEM_UPDATERS,
    PERMISSION_MANAGERS,
    authorize,
    has_permission,
    owns,
    parse_permissions,
)
from auth.store import UserStore
from core.context import CallerContext
from core.errors import Forbidden, NotFound, ValidationError
from shop.models import ITEM_FIELDS, CartItem, Item
from shop.store import ShopStore

logger = logging.getLogger("storefront.mutations")


def _check_item_fields(fields: dict) -> None:
    unknown = set(fields) - set(ITEM_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown item fields: {', '.join(sorted(unknown))}")
    if "price" in fields and (not isinstance(fields["price"], int) or fields["price"] < 0):
        raise ValidationError("Price must be a non-negative whole number of cents.")
    if "description" in fields and fields["description"] is None:
        raise ValidationError("Description cannot be null; send an empty string to clear it.")


class EntityMutations:
    def __init__(self, users: UserStore, shop: ShopStore) -> None:
        self.users = users
        self.shop = shop

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def create_item(self, ctx: CallerContext, **fields) -> Item:
        user = ctx.require_user()
        _check_item_fields(fields)
        if not fields.get("title"):
            raise ValidationError("Items need a title.")
        item_id = self.shop.create_item(Item(user_id=user.id, **fields))
        logger.info("user_id=%s created item_id=%s", user.id, item_id)
        return self.shop.get_item(item_id)

    def update_item(self, ctx: CallerContext, item_id: int, **fields) -> Item:
        """Write fields onto an item the caller owns or may manage.

        An "id" key in fields is ignored; the target is always item_id.
        """
        fields.pop("id", None)
        user = ctx.require_user()
        item = self._get_item(item_id)
        if not (owns(item.user_id, user) or has_permission(user.permissions, ITEM_UPDATERS)):
            logger.warning("user_id=%s denied update of item_id=%s", user.id, item_id)
            raise Forbidden("You don't have permission to update this item.")
        _check_item_fields(fields)
        if "title" in fields and not fields["title"]:
            raise ValidationError("Items need a title.")
        self.shop.update_item(item_id, **fields)
        return self.shop.get_item(item_id)

    def delete_item(self, ctx: CallerContext, item_id: int) -> Item:
        """Delete an item. Returns the item as it was before deletion."""
        user = ctx.require_user()
        item = self._get_item(item_id)
        owns_item = owns(item.user_id, user)
        has_role = has_permission(user.permissions, ITEM_DELETERS)
        if not (owns_item or has_role):
            logger.warning("user_id=%s denied delete of item_id=%s", user.id, item_id)
            raise Forbidden("You don't have permission to delete this item.")
        self.shop.delete_item(item_id)
        logger.info("user_id=%s deleted item_id=%s", user.id, item_id)
        return item

    def _get_item(self, item_id: int) -> Item:
        item = self.shop.get_item(item_id)
        if item is None:
            raise NotFound("Item not found.")
        return item

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def update_permissions(
        self, ctx: CallerContext, user_id: int, permissions: Iterable[str | Permission]
    ) -> User:
        """Replace the target user's permission set (not a merge)."""
        caller = ctx.require_user()
        authorize(caller, PERMISSION_MANAGERS)
        new_permissions = parse_permissions(permissions)
        if self.users.get_by_id(user_id) is None:
            raise NotFound("User not found.")
        self.users.set_permissions(user_id, new_permissions)
        logger.info(
            "user_id=%s set permissions of user_id=%s to %s",
            caller.id,
            user_id,
            sorted(p.value for p in new_permissions),
        )
        return self.users.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    def add_to_cart(self, ctx: CallerContext, item_id: int) -> CartItem:
        """Add one of item_id to the caller's cart, merging with an existing row."""
        user = ctx.require_user()
        self._get_item(item_id)
        return self.shop.add_to_cart(user_id=user.id, item_id=item_id)

    def remove_from_cart(self, ctx: CallerContext, cart_item_id: int) -> CartItem:
        user = ctx.require_user()
        cart_item = self.shop.get_cart_item(cart_item_id)
        if cart_item is None:
            raise NotFound("No cart item found.")
        if not owns(cart_item.user_id, user):
            logger.warning("user_id=%s denied removal of cart_item_id=%s", user.id, cart_item_id)
            raise Forbidden("That cart item is not yours.")
        self.shop.delete_cart_item(cart_item_id)
        return cart_item

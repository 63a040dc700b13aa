"""
tests/test_shop_store.py -- Unit tests for shop/store.py.

Covers:
  - item create/get/list/update
  - delete_item() removes dependent cart rows in the same transaction
  - add_to_cart(): merge-or-create, per-user isolation
  - add_to_cart() under concurrent callers: one row, no lost increments

The concurrency test uses a file-backed database in tmp_path because each
thread needs its own connection to the same data; :memory: gives every
connection a private database.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from shop.models import Item
from shop.store import ShopStore


def _item(shop_store, user_id: int = 1, title: str = "Shoes") -> int:
    return shop_store.create_item(Item(title=title, user_id=user_id, price=5000))


class TestItems:
    def test_create_and_get(self, shop_store) -> None:
        item = shop_store.get_item(_item(shop_store))
        assert item.title == "Shoes"
        assert item.price == 5000
        assert item.user_id == 1
        assert item.description == ""
        assert item.created_at

    def test_missing_item(self, shop_store) -> None:
        assert shop_store.get_item(123) is None

    def test_list_newest_first_and_filter(self, shop_store) -> None:
        first = _item(shop_store, user_id=1, title="A")
        second = _item(shop_store, user_id=2, title="B")
        assert [i.id for i in shop_store.list_items()] == [second, first]
        assert [i.id for i in shop_store.list_items(user_id=2)] == [second]

    def test_update_fields(self, shop_store) -> None:
        item_id = _item(shop_store)
        assert shop_store.update_item(item_id, title="Boots", price=100) is True
        item = shop_store.get_item(item_id)
        assert (item.title, item.price) == ("Boots", 100)

    def test_update_owner_not_allowed(self, shop_store) -> None:
        with pytest.raises(ValueError):
            shop_store.update_item(_item(shop_store), user_id=99)

    def test_update_missing_item(self, shop_store) -> None:
        assert shop_store.update_item(404, title="x") is False

    def test_delete_removes_cart_rows(self, shop_store) -> None:
        item_id = _item(shop_store)
        shop_store.add_to_cart(user_id=1, item_id=item_id)
        shop_store.add_to_cart(user_id=2, item_id=item_id)
        assert shop_store.delete_item(item_id) is True
        assert shop_store.get_item(item_id) is None
        assert shop_store.get_cart(1) == []
        assert shop_store.get_cart(2) == []


class TestCart:
    def test_first_add_creates_row(self, shop_store) -> None:
        row = shop_store.add_to_cart(user_id=1, item_id=_item(shop_store))
        assert row.quantity == 1
        assert row.id is not None

    def test_repeat_adds_increment(self, shop_store) -> None:
        """Three adds of the same item leave one row with quantity 3."""
        item_id = _item(shop_store)
        for _ in range(3):
            row = shop_store.add_to_cart(user_id=1, item_id=item_id)
        cart = shop_store.get_cart(1)
        assert len(cart) == 1
        assert cart[0].quantity == 3
        assert row.id == cart[0].id

    def test_users_have_separate_rows(self, shop_store) -> None:
        item_id = _item(shop_store)
        a = shop_store.add_to_cart(user_id=1, item_id=item_id)
        b = shop_store.add_to_cart(user_id=2, item_id=item_id)
        assert a.id != b.id
        assert a.quantity == b.quantity == 1

    def test_delete_cart_item(self, shop_store) -> None:
        row = shop_store.add_to_cart(user_id=1, item_id=_item(shop_store))
        assert shop_store.delete_cart_item(row.id) is True
        assert shop_store.get_cart_item(row.id) is None
        assert shop_store.delete_cart_item(row.id) is False


class TestConcurrentCart:
    def test_parallel_adds_do_not_lose_increments(self, tmp_path) -> None:
        store = ShopStore(f"sqlite:///{tmp_path / 'cart.db'}")
        try:
            item_id = _item(store)
            with ThreadPoolExecutor(max_workers=8) as pool:
                list(pool.map(lambda _: store.add_to_cart(user_id=1, item_id=item_id), range(40)))
            cart = store.get_cart(1)
            assert len(cart) == 1
            assert cart[0].quantity == 40
        finally:
            store.close()


class TestDialectSupport:
    def test_unsupported_dialect_rejected_at_open(self, monkeypatch) -> None:
        monkeypatch.setattr("shop.store._UPSERT_INSERTS", {})
        with pytest.raises(ValueError, match="sqlite"):
            ShopStore("sqlite:///:memory:")

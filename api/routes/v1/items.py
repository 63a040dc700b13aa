"""
api/routes/v1/items.py -- Catalogue item REST endpoints.

Routes:
  GET    /api/v1/items          -- list items (public, pass-through read)
  GET    /api/v1/items/{id}     -- item detail (public, pass-through read)
  POST   /api/v1/items          -- create item (requires auth; caller becomes owner)
  PATCH  /api/v1/items/{id}     -- update item (owner or ADMIN / ITEMUPDATE)
  DELETE /api/v1/items/{id}     -- delete item (owner or ADMIN / ITEMDELETE)

Every route accepts ?fields=a,b to trim the returned object(s).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import ItemCreate, ItemResponse, ItemUpdate, project
from auth.dependencies import get_caller_context
from core.context import CallerContext
from mutations.entities import EntityMutations
from shop.store import ShopStore

router = APIRouter()


def _entities(request: Request) -> EntityMutations:
    return request.app.state.entity_mutations


@router.get("/items")
def list_items(request: Request, fields: Optional[str] = None, user_id: Optional[int] = None) -> list[dict]:
    """List items newest first, optionally only those created by user_id."""
    shop: ShopStore = request.app.state.shop_store
    return [project(ItemResponse.from_item(i).model_dump(), fields) for i in shop.list_items(user_id=user_id)]


@router.get("/items/{item_id}")
def get_item(request: Request, item_id: int, fields: Optional[str] = None) -> dict:
    shop: ShopStore = request.app.state.shop_store
    item = shop.get_item(item_id)
    if item is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Item not found."},
        )
    return project(ItemResponse.from_item(item).model_dump(), fields)


@router.post("/items", status_code=201)
def create_item(
    request: Request,
    body: ItemCreate,
    fields: Optional[str] = None,
    ctx: CallerContext = Depends(get_caller_context),
) -> dict:
    item = _entities(request).create_item(ctx, **body.model_dump())
    return project(ItemResponse.from_item(item).model_dump(), fields)


@router.patch("/items/{item_id}")
def update_item(
    request: Request,
    item_id: int,
    body: ItemUpdate,
    fields: Optional[str] = None,
    ctx: CallerContext = Depends(get_caller_context),
) -> dict:
    """Write only the fields present in the request body."""
    item = _entities(request).update_item(ctx, item_id, **body.model_dump(exclude_unset=True))
    return project(ItemResponse.from_item(item).model_dump(), fields)


@router.delete("/items/{item_id}")
def delete_item(
    request: Request,
    item_id: int,
    fields: Optional[str] = None,
    ctx: CallerContext = Depends(get_caller_context),
) -> dict:
    """Delete an item and return it as it was."""
    item = _entities(request).delete_item(ctx, item_id)
    return project(ItemResponse.from_item(item).model_dump(), fields)

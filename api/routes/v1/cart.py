"""
api/routes/v1/cart.py -- Shopping cart REST endpoints.

Routes:
  GET    /api/v1/cart           -- the caller's cart rows (requires auth)
  POST   /api/v1/cart           -- add one of an item; merges with an existing row
  DELETE /api/v1/cart/{id}      -- remove a cart row the caller owns
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import CartAdd, CartItemResponse
from auth.dependencies import get_caller_context
from core.context import CallerContext
from mutations.entities import EntityMutations
from shop.store import ShopStore

router = APIRouter()


@router.get("/cart", response_model=list[CartItemResponse])
def get_cart(request: Request, ctx: CallerContext = Depends(get_caller_context)) -> list[CartItemResponse]:
    user = ctx.require_user()
    shop: ShopStore = request.app.state.shop_store
    return [CartItemResponse.from_cart_item(c) for c in shop.get_cart(user.id)]


@router.post("/cart", response_model=CartItemResponse)
def add_to_cart(
    request: Request,
    body: CartAdd,
    ctx: CallerContext = Depends(get_caller_context),
) -> CartItemResponse:
    entities: EntityMutations = request.app.state.entity_mutations
    return CartItemResponse.from_cart_item(entities.add_to_cart(ctx, body.item_id))


@router.delete("/cart/{cart_item_id}", response_model=CartItemResponse)
def remove_from_cart(
    request: Request,
    cart_item_id: int,
    ctx: CallerContext = Depends(get_caller_context),
) -> CartItemResponse:
    entities: EntityMutations = request.app.state.entity_mutations
    return CartItemResponse.from_cart_item(entities.remove_from_cart(ctx, cart_item_id))

"""Cart API routes (camelCase bodies) over the process-wide ``CartStore``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from merchforge.models.commerce import CartAddRequest, CartItem, CartQuantityRequest
from merchforge.storage.cart import CartStore, build_cart_item

router = APIRouter(prefix="/api/cart", tags=["cart"])


def get_cart_store(request: Request) -> CartStore:
    """The cart created in ``merchforge.api.main``."""
    return request.app.state.cart_store


def _cart_view(cart: list[CartItem]) -> dict:
    return {
        "items": [item.model_dump(by_alias=True) for item in cart],
        "count": sum(item.quantity for item in cart),
        "total": round(sum(item.total for item in cart), 2),
    }


def _require_item(store: CartStore, item_id: int) -> None:
    if not any(item.id == item_id for item in store.get_cart()):
        raise HTTPException(status_code=404, detail="Cart item not found")


@router.get("")
async def get_cart(store: CartStore = Depends(get_cart_store)) -> dict:
    return _cart_view(store.get_cart())


@router.post("")
async def add_to_cart(body: CartAddRequest, store: CartStore = Depends(get_cart_store)) -> dict:
    """Build a line item from the design state and append it."""
    try:
        item = build_cart_item(body.state, body.variant, body.text_color)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Design is not ready for the cart: {exc}")
    return _cart_view(store.add_to_cart(item))


@router.patch("/{item_id}")
async def update_quantity(
    item_id: int,
    body: CartQuantityRequest,
    store: CartStore = Depends(get_cart_store),
) -> dict:
    _require_item(store, item_id)
    return _cart_view(store.update_quantity(item_id, body.quantity))


@router.delete("/{item_id}")
async def remove_from_cart(item_id: int, store: CartStore = Depends(get_cart_store)) -> dict:
    _require_item(store, item_id)
    return _cart_view(store.remove_from_cart(item_id))


@router.delete("")
async def clear_cart(store: CartStore = Depends(get_cart_store)) -> dict:
    store.clear_cart()
    return _cart_view([])

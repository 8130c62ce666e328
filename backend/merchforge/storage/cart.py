"""
Cart persistence.

The cart is one JSON list stored under a single key and rewritten in full on
every change.  ``storage`` is any string-to-string mapping (a dict in tests
and in the API process).
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import MutableMapping

from pydantic import TypeAdapter

from merchforge.config import DEFAULT_CURRENCY, DELIVERY_ESTIMATE_DAYS, PRINT_FEE, TEXT_COLOR_OPTIONS
from merchforge.models.commerce import CartItem
from merchforge.models.conversation import ConversationState
from merchforge.models.design import DesignVariant
from merchforge.models.product import ProductColor
from merchforge.services.catalog import NO_ICON
from merchforge.services.conversation_engine import can_add_to_cart, has_icon, resolved_product_color
from merchforge.services.design_engine import render_text_only

logger = logging.getLogger(__name__)

CART_KEY = "merch-cart"
TEXT_ONLY_VARIANT = "text-only"

_CART_ADAPTER = TypeAdapter(list[CartItem])


class CartStore:
    def __init__(self, storage: MutableMapping[str, str] | None = None, key: str = CART_KEY):
        self._storage: MutableMapping[str, str] = storage if storage is not None else {}
        self._key = key

    def get_cart(self) -> list[CartItem]:
        saved = self._storage.get(self._key)
        if not saved:
            return []
        return _CART_ADAPTER.validate_json(saved)

    def _save(self, cart: list[CartItem]) -> list[CartItem]:
        self._storage[self._key] = json.dumps([item.model_dump(by_alias=True) for item in cart])
        return cart

    def add_to_cart(self, item: CartItem) -> list[CartItem]:
        """Append *item* with a fresh millisecond-timestamp id."""
        cart = self.get_cart()
        taken = {i.id for i in cart}
        new_id = int(time.time() * 1000)
        while new_id in taken:
            new_id += 1
        cart.append(item.model_copy(update={"id": new_id}))
        logger.info("[cart] added %s x%d", item.product_id, item.quantity)
        return self._save(cart)

    def remove_from_cart(self, item_id: int) -> list[CartItem]:
        return self._save([i for i in self.get_cart() if i.id != item_id])

    def update_quantity(self, item_id: int, quantity: int) -> list[CartItem]:
        cart = [
            i.model_copy(update={"quantity": quantity, "total": round(i.price * quantity, 2)}) if i.id == item_id else i
            for i in self.get_cart()
        ]
        return self._save(cart)

    def clear_cart(self) -> None:
        self._storage.pop(self._key, None)


def _text_color(name: str | None) -> ProductColor | None:
    option = TEXT_COLOR_OPTIONS.get((name or "").lower())
    return ProductColor(**option) if option else None


def build_cart_item(
    state: ConversationState,
    variant: DesignVariant | None = None,
    text_color: str | None = None,
) -> CartItem:
    """Line item for the current design. Its ``id`` is set by ``add_to_cart``.

    Raises ``ValueError`` when the state is not cart-ready.
    """
    if not can_add_to_cart(state):
        raise ValueError("product, text or icon, and a product color are required")

    product = state.product
    color = resolved_product_color(state)
    quantity = state.quantity or 1
    price = round(product.base_price + PRINT_FEE, 2)

    if variant is not None:
        variant_id, svg = variant.id, variant.svg
        icon = state.icon if has_icon(state) else NO_ICON
    else:
        variant_id, svg, icon = TEXT_ONLY_VARIANT, render_text_only(state.text or ""), NO_ICON

    return CartItem(
        id=0,
        product_id=product.id,
        product_name=product.name,
        color=color,
        text_color=_text_color(text_color or state.text_color),
        size=state.size,
        quantity=quantity,
        variant=variant_id,
        design_svg=svg,
        text=state.text,
        icon=icon,
        price=price,
        total=round(price * quantity, 2),
        currency=DEFAULT_CURRENCY,
        delivery_estimate_days=DELIVERY_ESTIMATE_DAYS,
    )

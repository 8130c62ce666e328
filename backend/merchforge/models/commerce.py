"""Pydantic v2 models for offers, orders, and the client cart."""

from typing import Literal

from pydantic import BaseModel, Field

from merchforge.config import MAX_QUANTITY, MIN_QUANTITY
from merchforge.models.common import CamelModel
from merchforge.models.conversation import ConversationState
from merchforge.models.design import DesignVariant
from merchforge.models.product import ProductColor


# ---------------------------------------------------------------------------
# Offer / order (snake_case on the wire)
# ---------------------------------------------------------------------------

class OfferItem(BaseModel):
    item_id: str
    title: str | None = None
    quantity: int
    unit_price: float
    total_price: float
    currency: str
    color: str | None = None
    size: str | None = None
    material: str | None = None
    image_url: str | None = None


class Offer(BaseModel):
    offer_id: str
    created_at: str
    items: list[OfferItem]
    total: float
    currency: str
    status: Literal["open", "expired"] = "open"


class Order(BaseModel):
    order_id: str
    offer_id: str | None = None
    created_at: str
    status: Literal["confirmed", "cancelled"] = "confirmed"
    items: list[OfferItem]
    total: float
    currency: str
    delivery_estimate_days: int


class OfferRequest(BaseModel):
    """Body of ``POST /api/offer``."""

    item_id: str | None = None
    quantity: float = Field(default=1, allow_inf_nan=False)
    color: str | None = None
    size: str | None = None
    material: str | None = None


class CommitRequest(BaseModel):
    """Body of ``POST /api/commit``."""

    offer_id: str | None = None


# ---------------------------------------------------------------------------
# Cart (camelCase, mirrors what the browser persists)
# ---------------------------------------------------------------------------

class CartItem(CamelModel):
    id: int
    product_id: str
    product_name: str
    color: ProductColor
    text_color: ProductColor | None = None
    size: str | None = None
    quantity: int
    variant: str
    design_svg: str = Field(alias="designSVG")
    text: str | None = None
    icon: str = "none"
    price: float
    total: float
    currency: str = "EUR"
    delivery_estimate_days: int | None = None
    preview_url: str | None = None


class CartAddRequest(CamelModel):
    """Body of ``POST /api/cart``: the current design and the chosen variant."""

    state: ConversationState
    variant: DesignVariant | None = None
    text_color: str | None = None


class CartQuantityRequest(CamelModel):
    quantity: int = Field(ge=MIN_QUANTITY, le=MAX_QUANTITY)

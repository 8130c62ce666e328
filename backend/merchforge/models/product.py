"""Pydantic v2 models for the customizable catalog and the ACP inventory feed."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr, field_validator

from merchforge.models.common import CamelModel


# ---------------------------------------------------------------------------
# Customizable products (design flow)
# ---------------------------------------------------------------------------

class ProductColor(BaseModel):
    """A named garment color with its display hex."""

    name: str
    hex: str


class PrintArea(BaseModel):
    """Printable rectangle in percentage coordinates of the product mockup."""

    x: float
    y: float
    w: float
    h: float


class Product(CamelModel):
    """A blank product that can be customized with text and an icon."""

    id: str
    name: str
    category: Literal["tee", "hoodie", "tote", "mug"]
    base_price: float
    colors: list[ProductColor]
    sizes: list[str] | None = None  # None means one-size
    print_area: PrintArea
    emoji: str = ""


class Icon(BaseModel):
    """An icon drawn on a 24x24 grid."""

    id: str
    path: str
    keywords: list[str]


# ---------------------------------------------------------------------------
# ACP inventory feed (discovery + commerce)
# ---------------------------------------------------------------------------

class ACPPrice(BaseModel):
    amount: float
    currency: str = "EUR"


class ACPVariants(BaseModel):
    sizes: list[str] = []
    colors: list[ProductColor] = []


class ACPAttributes(BaseModel):
    category: Literal["tee", "hoodie", "tote", "mug"]
    materials: list[str] = []
    lead_time_days: int
    min_qty: int = 1
    tags: list[str] = []
    variants: ACPVariants


class ACPItem(BaseModel):
    """One sellable inventory item as published in the ACP product feed."""

    item_id: str
    title: str
    description: str = ""
    url: str = ""
    image_url: str = ""
    image_url_by_variant: dict[str, str] | None = None
    availability_by_variant: dict[str, str] | None = None
    price: ACPPrice
    availability: Literal["in stock", "out of stock", "preorder"]
    availability_date: str | None = None
    is_eligible_search: bool = True
    is_eligible_checkout: bool = True
    attributes: ACPAttributes


# ---------------------------------------------------------------------------
# UCP capability document
# ---------------------------------------------------------------------------

class UcpCapabilities(BaseModel):
    """Merchant capability declaration served under ``/.well-known``."""

    model_config = ConfigDict(extra="allow")

    merchant_id: StrictStr
    capabilities: dict[str, StrictBool]
    supported_currencies: list[StrictStr]
    supported_countries: list[StrictStr]
    notes: StrictStr | None = None

    @field_validator("merchant_id", "notes")
    @classmethod
    def _non_empty(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("must be a non-empty string")
        return value

"""Pydantic v2 models for inventory discovery."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from merchforge.models.common import CamelModel

DiscoverStage = Literal["welcome", "constraints", "results"]


class DiscoverConstraints(CamelModel):
    """Accumulated shopper constraints. All optional, merged across turns."""

    category: str | None = None
    budget_max: float | None = None
    materials: list[str] | None = None
    sustainable: bool | None = None
    quantity: int | None = None
    event_date: str | None = None
    tags: list[str] | None = None
    occasion: str | None = None
    color: str | None = None
    lead_time_max: float | None = None
    size: str | None = None


class DiscoverState(CamelModel):
    stage: DiscoverStage = "welcome"
    constraints: DiscoverConstraints = Field(default_factory=DiscoverConstraints)


class InventoryResult(BaseModel):
    """A ranked recommendation as returned to the discovery UI."""

    model_config = ConfigDict(populate_by_name=True)

    item_id: str
    title: str
    description: str
    image_url: str
    image_url_selected: str | None = None
    image_url_fallback: str | None = None
    price: str
    tags: list[str]
    reason: str
    lead_time_days: int = Field(alias="leadTimeDays")
    availability: str
    matched_color: str | None = Field(default=None, alias="matchedColor")
    matched_color_hex: str | None = Field(default=None, alias="matchedColorHex")
    matched_material: str | None = Field(default=None, alias="matchedMaterial")
    variant_availability: str | None = Field(default=None, alias="variantAvailability")


class DiscoverTurnResult(CamelModel):
    assistant_message: str
    updates: dict[str, Any] = Field(default_factory=dict)
    results: list[InventoryResult] = Field(default_factory=list)
    relaxed: list[str] = Field(default_factory=list)
    fallback_used: bool = False
    error: str | None = None


class DiscoverRequest(CamelModel):
    """Body of ``POST /api/discover``."""

    state: DiscoverState | None = None
    user_message: str | None = None
    stream: bool = False

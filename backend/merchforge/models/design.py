"""Pydantic v2 models for semantic design tokens and rendered variants."""

from pydantic import BaseModel

from merchforge.models.common import CamelModel


class DesignTokens(CamelModel):
    """A layout described only with closed-vocabulary tokens.

    Every field has a renderable default so a sanitized token set can always
    be turned into markup.
    """

    name: str = "Design"
    style: str = ""
    reasoning: str = ""
    composition: str = "stacked"
    text_size: str = "large"
    text_style: str = "uppercase"
    font: str = "sans"
    font_weight: str = "bold"
    letter_spacing: str = "normal"
    icon_position: str = "above"
    icon_size: str = "medium"
    icon_style: str = "filled"
    border: str = "none"
    accent: str = "none"


class DesignVariant(BaseModel):
    """A rendered preview option. Ephemeral, never persisted."""

    id: str
    name: str
    style: str
    svg: str
    score: int
    reasoning: str


class DesignsRequest(CamelModel):
    """Body of ``POST /api/designs``."""

    text: str | None = None
    icon_id: str | None = None
    vibe: str | None = None
    occasion: str | None = None


class DesignsResponse(BaseModel):
    variants: list[DesignVariant]
    recommended: str

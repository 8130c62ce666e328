"""
Constraint validation for chat-extracted updates.

Both extraction paths (model output and keyword parsing) run through these
validators before anything touches conversation state.  Each field is decoded
on its own: a decoder either returns the sanitized value or raises
``FieldDecodeError``, and rejected fields are dropped from the result.  The
public ``validate_*`` functions never raise and are idempotent, so feeding
their output back in returns the same dict.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from merchforge.config import (
    ACTIONS,
    CATEGORIES,
    CATEGORY_KEYWORDS,
    DISCOVER_COLORS,
    DISCOVER_STAGES,
    GENERIC_SIZES,
    MAX_QUANTITY,
    MIN_QUANTITY,
    OCCASIONS,
    PLACEHOLDER_TOKENS,
    SIZE_ALIASES,
    STAGES,
    TEXT_COLOR_OPTIONS,
    TEXT_MAX_LENGTH,
    VIBES,
)
from merchforge.models.product import Product
from merchforge.services.catalog import CATALOG_COLORS, find_icon, find_product

logger = logging.getLogger(__name__)


class FieldDecodeError(ValueError):
    """A single field failed validation. Never escapes this module."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class CustomizationLimits(BaseModel):
    """Bounds applied to free-form customization values."""

    model_config = ConfigDict(frozen=True)

    text_max_length: int = TEXT_MAX_LENGTH
    min_quantity: int = MIN_QUANTITY
    max_quantity: int = MAX_QUANTITY


DEFAULT_LIMITS = CustomizationLimits()


class _Context:
    __slots__ = ("product", "limits")

    def __init__(self, product: Product | None, limits: CustomizationLimits):
        self.product = product
        self.limits = limits


Decoder = Callable[[str, Any, _Context], Any]


# ---------------------------------------------------------------------------
# Primitive decoders
# ---------------------------------------------------------------------------

def _as_mapping(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, BaseModel):
        return raw.model_dump(by_alias=True, exclude_none=True)
    if isinstance(raw, Mapping):
        return dict(raw)
    return None


def _string(field: str, value: Any) -> str:
    if not isinstance(value, str):
        raise FieldDecodeError(field, f"expected string, got {type(value).__name__}")
    return value.strip()


def _token(field: str, value: Any) -> str:
    """Lowercased string that is not a schema placeholder."""
    token = _string(field, value).lower()
    if token in PLACEHOLDER_TOKENS:
        raise FieldDecodeError(field, f"placeholder value {value!r}")
    return token


def _choice(field: str, value: Any, allowed: list[str]) -> str:
    token = _token(field, value)
    if token not in allowed:
        raise FieldDecodeError(field, f"{token!r} not in {allowed}")
    return token


def _number(field: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FieldDecodeError(field, f"expected number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise FieldDecodeError(field, "not a finite number")
    return value


def _positive(field: str, value: Any) -> float | int:
    number = _number(field, value)
    if number <= 0:
        raise FieldDecodeError(field, "must be positive")
    return number


def _string_list(field: str, value: Any) -> list[str]:
    if not isinstance(value, list):
        raise FieldDecodeError(field, f"expected list, got {type(value).__name__}")
    cleaned: list[str] = []
    for entry in value:
        if not isinstance(entry, str):
            continue
        token = entry.strip().lower()
        if token and token not in PLACEHOLDER_TOKENS and token not in cleaned:
            cleaned.append(token)
    if not cleaned:
        raise FieldDecodeError(field, "no usable string entries")
    return cleaned


def _size_token(field: str, value: Any) -> str:
    size = _string(field, value).upper()
    if size.lower() in PLACEHOLDER_TOKENS:
        raise FieldDecodeError(field, f"placeholder value {value!r}")
    return SIZE_ALIASES.get(size, size)


def normalize_text(text: str) -> str:
    """Trim and collapse internal whitespace runs to single spaces."""
    return " ".join(text.split())


# ---------------------------------------------------------------------------
# Customization field decoders
# ---------------------------------------------------------------------------

def _decode_stage(field: str, value: Any, ctx: _Context) -> str:
    return _choice(field, value, STAGES)


def _decode_product_id(field: str, value: Any, ctx: _Context) -> str:
    product = find_product(_token(field, value))
    if product is None:
        raise FieldDecodeError(field, f"unknown product {value!r}")
    return product.id


def _decode_occasion(field: str, value: Any, ctx: _Context) -> str:
    return _choice(field, value, OCCASIONS)


def _decode_vibe(field: str, value: Any, ctx: _Context) -> str:
    return _choice(field, value, VIBES)


def _decode_text(field: str, value: Any, ctx: _Context) -> str:
    text = normalize_text(_string(field, value))
    if not text:
        raise FieldDecodeError(field, "empty")
    if text.lower() == "string":
        raise FieldDecodeError(field, "placeholder value")
    if len(text) > ctx.limits.text_max_length:
        raise FieldDecodeError(field, f"longer than {ctx.limits.text_max_length} characters")
    return text


def _decode_icon_id(field: str, value: Any, ctx: _Context) -> str:
    icon = find_icon(_string(field, value))
    if icon is None:
        raise FieldDecodeError(field, f"unknown icon {value!r}")
    return icon.id


def _decode_product_color(field: str, value: Any, ctx: _Context) -> str:
    color = _token(field, value)
    if ctx.product is not None:
        allowed = [c.name.lower() for c in ctx.product.colors]
        if color not in allowed:
            raise FieldDecodeError(field, f"{color!r} not offered for {ctx.product.id}")
        return color
    if color not in CATALOG_COLORS:
        raise FieldDecodeError(field, f"{color!r} is not a catalog color")
    return color


def _decode_text_color(field: str, value: Any, ctx: _Context) -> str:
    return _choice(field, value, list(TEXT_COLOR_OPTIONS))


def _decode_size(field: str, value: Any, ctx: _Context) -> str:
    size = _size_token(field, value)
    if ctx.product is not None:
        if not ctx.product.sizes:
            raise FieldDecodeError(field, f"{ctx.product.id} is one-size")
        if size not in ctx.product.sizes:
            raise FieldDecodeError(field, f"{size!r} not offered for {ctx.product.id}")
        return size
    if size not in GENERIC_SIZES:
        raise FieldDecodeError(field, f"unknown size {size!r}")
    return size


def _decode_quantity(field: str, value: Any, ctx: _Context) -> int:
    quantity = math.floor(_number(field, value))
    return min(ctx.limits.max_quantity, max(ctx.limits.min_quantity, quantity))


def _decode_action(field: str, value: Any, ctx: _Context) -> str:
    return _choice(field, value, ACTIONS)


CUSTOMIZATION_DECODERS: dict[str, Decoder] = {
    "stage": _decode_stage,
    "productId": _decode_product_id,
    "occasion": _decode_occasion,
    "vibe": _decode_vibe,
    "text": _decode_text,
    "iconId": _decode_icon_id,
    "productColor": _decode_product_color,
    "textColor": _decode_text_color,
    "size": _decode_size,
    "quantity": _decode_quantity,
    "action": _decode_action,
}


def _run_decoders(
    source: dict[str, Any],
    decoders: dict[str, Decoder],
    ctx: _Context,
    tag: str,
) -> tuple[dict[str, Any], dict[str, str]]:
    updates: dict[str, Any] = {}
    errors: dict[str, str] = {}
    for field, decoder in decoders.items():
        value = source.get(field)
        if value is None:
            continue
        try:
            updates[field] = decoder(field, value, ctx)
        except FieldDecodeError as exc:
            errors[field] = exc.reason
            logger.debug("[%s] dropped %s: %s", tag, field, exc.reason)
    return updates, errors


def decode_customization_updates(
    raw: Any,
    product: Product | None = None,
    limits: CustomizationLimits | None = None,
) -> tuple[dict[str, Any], dict[str, str]]:
    """Decode a raw update object field by field.

    Parameters
    ----------
    raw:
        Anything. Only mappings (or pydantic models) produce updates.
    product:
        The product already resolved in the conversation.  A valid
        ``productId`` inside *raw* takes its place, so "navy hoodie" in one
        utterance checks navy against the hoodie.
    limits:
        Text length and quantity bounds; defaults come from configuration.

    Returns
    -------
    tuple
        ``(updates, errors)`` where *errors* maps each rejected field to the
        reason it was dropped.
    """
    source = _as_mapping(raw)
    if source is None:
        return {}, {}

    if source.get("productColor") is None and source.get("color") is not None:
        source["productColor"] = source["color"]

    candidate = find_product(source["productId"]) if isinstance(source.get("productId"), str) else None
    ctx = _Context(candidate or product, limits or DEFAULT_LIMITS)
    return _run_decoders(source, CUSTOMIZATION_DECODERS, ctx, "constraints")


def validate_customization_updates(
    raw: Any,
    product: Product | None = None,
    limits: CustomizationLimits | None = None,
) -> dict[str, Any]:
    """Sanitized subset of *raw*; invalid or placeholder fields are dropped."""
    updates, _ = decode_customization_updates(raw, product=product, limits=limits)
    return updates


# ---------------------------------------------------------------------------
# Discovery field decoders
# ---------------------------------------------------------------------------

def _decode_discover_stage(field: str, value: Any, ctx: _Context) -> str:
    return _choice(field, value, DISCOVER_STAGES)


def _decode_category(field: str, value: Any, ctx: _Context) -> str:
    token = _token(field, value)
    if token in CATEGORIES:
        return token
    for category, keywords in CATEGORY_KEYWORDS.items():
        if token in keywords:
            return category
    raise FieldDecodeError(field, f"unknown category {token!r}")


def _decode_discover_quantity(field: str, value: Any, ctx: _Context) -> int:
    return max(1, math.floor(_positive(field, value)))


def _decode_sustainable(field: str, value: Any, ctx: _Context) -> bool:
    if not isinstance(value, bool):
        raise FieldDecodeError(field, "expected boolean")
    return value


def _decode_event_date(field: str, value: Any, ctx: _Context) -> str:
    date = _string(field, value)
    if not date or date.lower() in PLACEHOLDER_TOKENS:
        raise FieldDecodeError(field, "empty or placeholder")
    return date


def _decode_discover_color(field: str, value: Any, ctx: _Context) -> str:
    return _choice(field, value, DISCOVER_COLORS)


def _decode_discover_size(field: str, value: Any, ctx: _Context) -> str:
    size = _size_token(field, value)
    if size not in GENERIC_SIZES:
        raise FieldDecodeError(field, f"unknown size {size!r}")
    return size


DISCOVER_DECODERS: dict[str, Decoder] = {
    "stage": _decode_discover_stage,
    "category": _decode_category,
    "budgetMax": lambda f, v, c: _positive(f, v),
    "materials": lambda f, v, c: _string_list(f, v),
    "sustainable": _decode_sustainable,
    "quantity": _decode_discover_quantity,
    "eventDate": _decode_event_date,
    "tags": lambda f, v, c: _string_list(f, v),
    "occasion": _decode_occasion,
    "color": _decode_discover_color,
    "leadTimeMax": lambda f, v, c: _positive(f, v),
    "size": _decode_discover_size,
}


def validate_discover_updates(raw: Any) -> dict[str, Any]:
    """Sanitized subset of a discovery constraint update."""
    source = _as_mapping(raw)
    if source is None:
        return {}
    updates, _ = _run_decoders(source, DISCOVER_DECODERS, _Context(None, DEFAULT_LIMITS), "discover-constraints")
    return updates

"""
Static ACP inventory accessors for MerchForge.

Loads and validates ``data/inventory.acp.json``, resolves per-variant image
and availability records keyed by ``"color|material"``, builds absolute image
URLs, and checks the feed for gaps.

Run ``python -m merchforge.storage.inventory`` to validate the feed.
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from functools import lru_cache
from pathlib import Path

from pydantic import TypeAdapter

from merchforge.config import INVENTORY_PATH, PUBLIC_BASE_URL
from merchforge.models.product import ACPItem

logger = logging.getLogger(__name__)

_ITEMS_ADAPTER = TypeAdapter(list[ACPItem])


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_inventory(path: Path = INVENTORY_PATH) -> list[ACPItem]:
    """Parse an ACP feed file into validated items."""
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    items = _ITEMS_ADAPTER.validate_python(raw)
    logger.info("[inventory] loaded %d items from %s", len(items), path.name)
    return items


@lru_cache(maxsize=1)
def get_inventory() -> list[ACPItem]:
    """The bundled inventory, loaded once per process."""
    return load_inventory()


def get_item(item_id: str, items: list[ACPItem] | None = None) -> ACPItem | None:
    for item in items if items is not None else get_inventory():
        if item.item_id == item_id:
            return item
    return None


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------

def public_base_url(value: str | None = None) -> str:
    """Normalised public origin without a trailing slash."""
    base = value or PUBLIC_BASE_URL
    base = base.rstrip("/")
    if base.startswith(("http://", "https://")):
        return base
    return f"https://{base}"


def get_image_url(path: str | None) -> str:
    """Absolute URL for an image path; absolute URLs pass through."""
    if not path:
        return ""
    if path.startswith(("http://", "https://")):
        return path
    return f"{public_base_url()}{'' if path.startswith('/') else '/'}{path}"


# ---------------------------------------------------------------------------
# Variant keys
# ---------------------------------------------------------------------------

def variant_key(color: str, material: str) -> str:
    """``"color|material"`` lowercased, whitespace runs replaced by ``-``."""
    return re.sub(r"\s+", "-", f"{color}|{material}".strip().lower())


def variant_availability(item: ACPItem, color: str | None, material: str | None) -> str | None:
    if not color or not material or not item.availability_by_variant:
        return None
    return item.availability_by_variant.get(variant_key(color, material))


def resolve_variant_image(
    item: ACPItem,
    color: str | None = None,
    material: str | None = None,
) -> str:
    """Best image for a color/material choice.

    Order: exact ``color|material``; the color with the item's only
    material; the color with any material; any variant image; the base image.
    """
    images = item.image_url_by_variant or {}
    if color and material:
        hit = images.get(variant_key(color, material))
        if hit:
            return hit
    if color:
        materials = item.attributes.materials
        if len(materials) == 1:
            hit = images.get(variant_key(color, materials[0]))
            if hit:
                return hit
        prefix = variant_key(color, "")
        for key, url in images.items():
            if key.startswith(prefix):
                return url
    if images:
        return next(iter(images.values()))
    return item.image_url


# ---------------------------------------------------------------------------
# Feed checks
# ---------------------------------------------------------------------------

def validate_inventory(items: list[ACPItem]) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)`` for the feed.

    Every color and material pair must have a variant image; the remaining
    checks are about data the discovery filters depend on.
    """
    errors: list[str] = []
    warnings: list[str] = []
    seen: set[str] = set()

    for item in items:
        label = item.item_id
        if item.item_id in seen:
            errors.append(f"{label}: duplicate item_id")
        seen.add(item.item_id)

        attrs = item.attributes
        if not attrs.materials:
            errors.append(f"{label}: no materials")
        if not attrs.variants.colors:
            errors.append(f"{label}: no colors")
        if item.price.amount <= 0:
            errors.append(f"{label}: non-positive price")
        if attrs.lead_time_days <= 0:
            warnings.append(f"{label}: lead_time_days should be positive")
        if not item.image_url:
            warnings.append(f"{label}: missing base image_url")

        images = item.image_url_by_variant or {}
        for color in attrs.variants.colors:
            for material in attrs.materials:
                key = variant_key(color.name, material)
                if key not in images:
                    errors.append(f"{label}: missing image_url_by_variant[{key!r}]")

        for key, status in (item.availability_by_variant or {}).items():
            if status not in ("in stock", "out of stock", "preorder"):
                errors.append(f"{label}: bad availability {status!r} for {key!r}")

    return errors, warnings


def validate_constraint_coverage(items: list[ACPItem]) -> list[str]:
    """Each searchable in-stock item must be found by its own first attributes."""
    from merchforge.models.discover import DiscoverConstraints
    from merchforge.services.discovery import filter_inventory

    problems: list[str] = []
    for item in items:
        if not item.is_eligible_search or item.availability != "in stock":
            continue
        attrs = item.attributes
        constraints = DiscoverConstraints(
            category=attrs.category,
            budget_max=item.price.amount,
            materials=attrs.materials[:1] or None,
            color=attrs.variants.colors[0].name.lower() if attrs.variants.colors else None,
            size=attrs.variants.sizes[0] if attrs.variants.sizes else None,
            lead_time_max=attrs.lead_time_days,
        )
        matched = [i.item_id for i in filter_inventory(items, constraints)]
        if item.item_id not in matched:
            problems.append(f"{item.item_id}: not reachable with its own attributes")
    return problems


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate the ACP inventory feed.")
    parser.add_argument("path", nargs="?", type=Path, default=INVENTORY_PATH, help="inventory JSON file")
    parser.add_argument("--strict", action="store_true", help="treat warnings as errors")
    args = parser.parse_args(argv)

    items = load_inventory(args.path)
    errors, warnings = validate_inventory(items)
    errors.extend(validate_constraint_coverage(items))

    for message in warnings:
        logger.warning("[inventory] %s", message)
    for message in errors:
        logger.error("[inventory] %s", message)

    failed = bool(errors) or (args.strict and bool(warnings))
    logger.info("[inventory] %d items, %d errors, %d warnings", len(items), len(errors), len(warnings))
    return 1 if failed else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(main())

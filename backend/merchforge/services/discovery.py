"""
Inventory discovery and ranking engine.

Takes accumulated shopper constraints (category, budget, materials, color,
size, lead time, sustainability, tags), hard-filters the static ACP inventory,
scores the survivors and returns the top matches with a short rationale.
When the strict filter comes back empty, constraints are relaxed one at a time
in a fixed order so the shopper still sees what we do have.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from merchforge.config import (
    CATALOG_SEARCH_DEFAULT_LIMIT,
    CATEGORIES,
    CATEGORY_KEYWORDS,
    DISCOVER_COLORS,
    DISCOVER_CONSTRAINTS_MESSAGE,
    DISCOVER_DEFAULT_MATERIALS_MESSAGE,
    DISCOVER_MATERIALS_MESSAGE,
    DISCOVER_RELAXED_MESSAGE,
    DISCOVER_RESULTS_MESSAGE,
    DISCOVER_SYSTEM_PROMPT,
    GENERIC_SIZES,
    JSON_CORRECTION_MESSAGE,
    MATERIAL_KEYWORDS,
    MONTHS,
    OCCASION_KEYWORDS,
    RELAXATION_ORDER,
    RESULTS_LIMIT,
    TAG_KEYWORDS,
)
from merchforge.models.discover import DiscoverConstraints, DiscoverState, DiscoverTurnResult, InventoryResult
from merchforge.models.product import ACPItem, ProductColor
from merchforge.services import llm_client
from merchforge.services.constraints import validate_discover_updates
from merchforge.storage.inventory import (
    get_image_url,
    get_inventory,
    resolve_variant_image,
    variant_availability,
)

logger = logging.getLogger(__name__)

Completion = Callable[..., Awaitable[str]]

# "poly" is how shoppers say it; the feed says polyester
MATERIAL_ALIASES: dict[str, str] = {"poly": "polyester"}

RELAXATION_LABELS: dict[str, str] = {
    "color": "color",
    "materials": "material",
    "leadTimeMax": "lead time",
}

SIZE_PATTERN = re.compile(r"(?<!['’])\b(2xl|xs|xl|s|m|l)\b")
BUDGET_PATTERN = re.compile(r"(?:under|less than|below|max)\s*[€$]?(\d+(?:\.\d+)?)(?!\d|\.\d|\s*days?\b)")
PRICE_PATTERN = re.compile(r"[€$]\s*(\d+(?:\.\d+)?)|(\d+(?:\.\d+)?)\s*(?:€|eur|euros?)\b")
QUANTITY_PATTERN = re.compile(r"\b(\d+)\s*(?:items|pcs|pieces|units|shirts|tees|hoodies|totes|bags|mugs|people)\b")
LEAD_TIME_PATTERN = re.compile(r"(?:under|less than|within|in)\s*(\d+)\s*days?\b")
MONTH_PATTERN = re.compile(r"\b(" + "|".join(MONTHS) + r")\b")
MATERIALS_QUESTION_PATTERN = re.compile(r"\b(?:fabrics?|materials?)\b")


# ---------------------------------------------------------------------------
# Keyword path
# ---------------------------------------------------------------------------

def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


def is_materials_question(message: str) -> bool:
    """True for "what fabrics do you have?" style questions."""
    return MATERIALS_QUESTION_PATTERN.search(message.lower()) is not None


def parse_constraints(message: str) -> dict[str, Any]:
    """Extract raw discovery constraints from *message* without a model.

    Keys use the wire names (``budgetMax``, ``leadTimeMax`` ...); the result
    still goes through ``validate_discover_updates``.
    """
    text = message.lower()
    updates: dict[str, Any] = {}

    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(re.search(rf"\b{re.escape(k)}s?\b", text) for k in keywords):
            updates["category"] = category
            break

    for occasion, keywords in OCCASION_KEYWORDS.items():
        if any(_has_word(text, k) for k in keywords):
            updates["occasion"] = occasion
            break

    if _has_word(text, "sustainable") or _has_word(text, "eco"):
        updates["sustainable"] = True

    materials: list[str] = []
    for keyword in MATERIAL_KEYWORDS:
        if _has_word(text, keyword):
            material = MATERIAL_ALIASES.get(keyword, keyword)
            if material not in materials:
                materials.append(material)
    if materials:
        updates["materials"] = materials

    tags = [t for t in TAG_KEYWORDS if _has_word(text, t)]
    if tags:
        updates["tags"] = tags

    color = next((c for c in DISCOVER_COLORS if _has_word(text, c)), None)
    if color:
        updates["color"] = color

    size = SIZE_PATTERN.search(text)
    if size:
        updates["size"] = size.group(1).upper()

    budget = BUDGET_PATTERN.search(text)
    if budget:
        updates["budgetMax"] = float(budget.group(1))
    else:
        price = PRICE_PATTERN.search(text)
        if price:
            updates["budgetMax"] = float(price.group(1) or price.group(2))

    quantity = QUANTITY_PATTERN.search(text)
    if quantity:
        updates["quantity"] = int(quantity.group(1))

    lead = LEAD_TIME_PATTERN.search(text)
    if lead:
        updates["leadTimeMax"] = int(lead.group(1))

    month = MONTH_PATTERN.search(text)
    if month:
        updates["eventDate"] = month.group(1)

    return updates


def merge_constraints(constraints: DiscoverConstraints, updates: dict[str, Any]) -> DiscoverConstraints:
    """Additive merge: set keys overwrite, missing keys keep their value."""
    fields = {k: v for k, v in updates.items() if k != "stage" and v is not None}
    return DiscoverConstraints.model_validate({**constraints.to_wire(), **fields})


# ---------------------------------------------------------------------------
# Filtering and scoring
# ---------------------------------------------------------------------------

def is_sustainable(item: ACPItem) -> bool:
    attrs = item.attributes
    return "eco" in attrs.tags or "organic" in attrs.materials or "recycled" in attrs.materials


def _matched_material(item: ACPItem, constraints: DiscoverConstraints) -> str | None:
    for material in constraints.materials or []:
        if material in item.attributes.materials:
            return material
    return None


def _matched_color(item: ACPItem, constraints: DiscoverConstraints) -> ProductColor | None:
    if not constraints.color:
        return None
    wanted = constraints.color.lower()
    return next((c for c in item.attributes.variants.colors if c.name.lower() == wanted), None)


def _passes(item: ACPItem, c: DiscoverConstraints) -> bool:
    attrs = item.attributes
    if not item.is_eligible_search or item.availability != "in stock":
        return False
    if c.category and attrs.category != c.category:
        return False
    if c.budget_max is not None and item.price.amount > c.budget_max:
        return False
    if c.sustainable and not is_sustainable(item):
        return False
    if c.materials and not any(m in attrs.materials for m in c.materials):
        return False
    if c.tags and not any(t in attrs.tags for t in c.tags):
        return False
    if c.lead_time_max is not None and attrs.lead_time_days > c.lead_time_max:
        return False
    if c.color and _matched_color(item, c) is None:
        return False
    if c.size and c.size not in attrs.variants.sizes:
        return False

    # Variant-level stock overrides the item-level flag
    if c.color and c.materials:
        material = _matched_material(item, c)
        if material and variant_availability(item, c.color, material) == "out of stock":
            return False
    return True


def filter_inventory(items: list[ACPItem], constraints: DiscoverConstraints) -> list[ACPItem]:
    """Hard filter: every set constraint must hold, in feed order."""
    return [item for item in items if _passes(item, constraints)]


def score_item(item: ACPItem, constraints: DiscoverConstraints) -> int:
    """Additive relevance score, only meaningful relative to other items.

    Scoring breakdown:
        - Category match                 +3
        - Within budget                  +2
        - Sustainable when asked         +2
        - Each matched material / tag    +1
        - Color / size available         +1 each
        - Occasion present as a tag      +1
    """
    attrs = item.attributes
    c = constraints
    score = 0
    if c.category and attrs.category == c.category:
        score += 3
    if c.budget_max is not None and item.price.amount <= c.budget_max:
        score += 2
    if c.sustainable and is_sustainable(item):
        score += 2
    score += sum(1 for m in c.materials or [] if m in attrs.materials)
    score += sum(1 for t in c.tags or [] if t in attrs.tags)
    if _matched_color(item, c) is not None:
        score += 1
    if c.size and c.size in attrs.variants.sizes:
        score += 1
    if c.occasion and c.occasion in attrs.tags:
        score += 1
    return score


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def _reason(item: ACPItem, c: DiscoverConstraints) -> str:
    reasons: list[str] = []
    if c.category:
        reasons.append(f"matches {c.category}")
    if c.budget_max is not None:
        reasons.append(f"under €{c.budget_max:g}")
    if c.sustainable and is_sustainable(item):
        reasons.append("sustainable-friendly")
    if c.quantity and item.attributes.min_qty > c.quantity:
        reasons.append(f"min qty {item.attributes.min_qty}")
    return ", ".join(reasons) if reasons else "popular pick"


def to_result(item: ACPItem, constraints: DiscoverConstraints) -> InventoryResult:
    color = _matched_color(item, constraints)
    material = _matched_material(item, constraints)

    selected = None
    if color is not None:
        selected = get_image_url(resolve_variant_image(item, color.name, material))
    images = item.image_url_by_variant or {}
    fallback = get_image_url(next(iter(images.values()))) if images else None

    return InventoryResult(
        item_id=item.item_id,
        title=item.title,
        description=item.description,
        image_url=get_image_url(item.image_url),
        image_url_selected=selected,
        image_url_fallback=fallback,
        price=f"€{item.price.amount:.2f}",
        tags=item.attributes.tags,
        reason=_reason(item, constraints),
        lead_time_days=item.attributes.lead_time_days,
        availability=item.availability,
        matched_color=color.name if color else None,
        matched_color_hex=color.hex if color else None,
        matched_material=material,
        variant_availability=variant_availability(item, color.name if color else None, material),
    )


def rank_inventory(
    constraints: DiscoverConstraints,
    items: list[ACPItem] | None = None,
    limit: int = RESULTS_LIMIT,
) -> list[InventoryResult]:
    """Filter, score, and return the top *limit* items.

    The sort is stable, so ties keep feed order and repeated calls return
    the same ids in the same order.
    """
    pool = filter_inventory(items if items is not None else get_inventory(), constraints)
    ranked = sorted(pool, key=lambda item: score_item(item, constraints), reverse=True)
    return [to_result(item, constraints) for item in ranked[:limit]]


def rank_with_relaxation(
    constraints: DiscoverConstraints,
    items: list[ACPItem] | None = None,
) -> tuple[list[InventoryResult], list[str]]:
    """Strict ranking, then drop constraints in relaxation order until something matches.

    Returns ``(results, relaxed)`` where *relaxed* lists the wire names of the
    constraints that had to be dropped (empty for a strict match).
    """
    results = rank_inventory(constraints, items)
    if results:
        return results, []

    current = constraints.to_wire()
    relaxed: list[str] = []
    for key in RELAXATION_ORDER:
        if current.get(key) in (None, []):
            continue
        current.pop(key)
        relaxed.append(key)
        loosened = DiscoverConstraints.model_validate(current)
        results = rank_inventory(loosened, items)
        if results:
            logger.info("[discovery] relaxed %s to find %d results", relaxed, len(results))
            return results, relaxed

    return [], []


def available_materials(constraints: DiscoverConstraints, items: list[ACPItem] | None = None) -> list[str]:
    pool = filter_inventory(items if items is not None else get_inventory(), constraints)
    return sorted({m for item in pool for m in item.attributes.materials})


# ---------------------------------------------------------------------------
# Model path
# ---------------------------------------------------------------------------

def build_discover_prompt(state: DiscoverState, candidates: list[ACPItem]) -> str:
    inventory = [
        {
            "item_id": item.item_id,
            "title": item.title,
            "description": item.description,
            "price": item.price.model_dump(),
            "availability": item.availability,
            "materials": item.attributes.materials,
            "tags": item.attributes.tags,
            "colors": [c.name for c in item.attributes.variants.colors],
            "lead_time_days": item.attributes.lead_time_days,
            "min_qty": item.attributes.min_qty,
        }
        for item in candidates
    ]
    return DISCOVER_SYSTEM_PROMPT.format(
        categories=", ".join(CATEGORIES),
        colors=", ".join(DISCOVER_COLORS),
        sizes=", ".join(GENERIC_SIZES),
        state=json.dumps(state.to_wire(), ensure_ascii=False),
        inventory=json.dumps(inventory, ensure_ascii=False),
    )


def _read_model_reply(parsed: Any) -> tuple[str, dict[str, Any], dict[str, Any]] | None:
    if not isinstance(parsed, dict):
        return None
    assistant = parsed.get("assistant")
    if not isinstance(assistant, str) or not assistant.strip():
        return None
    updates = parsed.get("updates")
    selection = parsed.get("selection")
    return (
        assistant.strip(),
        updates if isinstance(updates, dict) else {},
        selection if isinstance(selection, dict) else {},
    )


async def get_model_discover_reply(
    user_message: str,
    state: DiscoverState,
    candidates: list[ACPItem],
    complete: Completion | None = None,
) -> tuple[str, dict[str, Any], dict[str, Any]]:
    """``(assistant_message, raw_updates, selection)`` from the model.

    Same degradation as the customization path: one correction retry, then
    the raw reply with no updates.
    """
    complete = complete or llm_client.chat_completion
    messages = [
        {"role": "system", "content": build_discover_prompt(state, candidates)},
        {"role": "user", "content": user_message},
    ]

    raw = await complete(messages, json_mode=True)
    reply = _read_model_reply(llm_client.parse_json_payload(raw))
    if reply is None:
        logger.info("[discovery] invalid JSON from model, asking for a correction")
        messages.append({"role": "assistant", "content": raw})
        messages.append({"role": "system", "content": JSON_CORRECTION_MESSAGE})
        raw = await complete(messages, json_mode=True)
        reply = _read_model_reply(llm_client.parse_json_payload(raw))

    if reply is not None:
        return reply
    return (raw.strip() if raw and raw.strip() else DISCOVER_RESULTS_MESSAGE), {}, {}


def _id_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def apply_selection(results: list[InventoryResult], selection: dict[str, Any]) -> list[InventoryResult]:
    """Move model-picked ids to the front; the rationale replaces each reason.

    Ids that are not in *results* are ignored, so the model can only reorder.
    """
    primary = _id_list(selection.get("primaryIds"))
    if primary:
        order = primary + _id_list(selection.get("fallbackIds"))
        by_id = {r.item_id: r for r in results}
        picked = [by_id[i] for i in dict.fromkeys(order) if i in by_id]
        if picked:
            results = picked + [r for r in results if r.item_id not in order]

    rationale = selection.get("rationale")
    if isinstance(rationale, str) and rationale.strip():
        results = [r.model_copy(update={"reason": rationale.strip()}) for r in results]
    return results


def _relaxed_message(message: str, relaxed: list[str]) -> str:
    if not relaxed:
        return message
    dropped = " or ".join(RELAXATION_LABELS.get(k, k) for k in relaxed)
    return f"{DISCOVER_RELAXED_MESSAGE.format(dropped=dropped)} {message}"


def _next_stage(state: DiscoverState) -> str:
    return "constraints" if state.stage == "welcome" else state.stage


def _keyword_only_result(
    state: DiscoverState,
    keyword_updates: dict[str, Any],
    items: list[ACPItem],
    error: str,
) -> DiscoverTurnResult:
    stage = _next_stage(state)
    results, relaxed = rank_with_relaxation(merge_constraints(state.constraints, keyword_updates), items)
    message = DISCOVER_CONSTRAINTS_MESSAGE if stage == "constraints" else DISCOVER_RESULTS_MESSAGE
    return DiscoverTurnResult(
        assistant_message=_relaxed_message(message, relaxed),
        updates={**keyword_updates, "stage": stage},
        results=results,
        relaxed=relaxed,
        fallback_used=True,
        error=error,
    )


# ---------------------------------------------------------------------------
# Turn processing
# ---------------------------------------------------------------------------

async def process_discover_turn(
    user_message: str,
    state: DiscoverState,
    complete: Completion | None = None,
    items: list[ACPItem] | None = None,
) -> DiscoverTurnResult:
    """Run one discovery turn. Never raises.

    Materials questions are answered straight from the filtered inventory.
    Otherwise keyword and model constraints are validated separately and
    merged with keyword values winning, then ranked with relaxation.
    """
    items = items if items is not None else get_inventory()

    if is_materials_question(user_message):
        materials = available_materials(state.constraints, items)
        message = (
            DISCOVER_MATERIALS_MESSAGE.format(materials=", ".join(materials))
            if materials
            else DISCOVER_DEFAULT_MATERIALS_MESSAGE
        )
        return DiscoverTurnResult(assistant_message=message)

    keyword_updates = validate_discover_updates(parse_constraints(user_message))
    candidates = filter_inventory(items, merge_constraints(state.constraints, keyword_updates))

    try:
        assistant_message, model_raw, selection = await get_model_discover_reply(
            user_message, state, candidates, complete=complete
        )
        model_updates = validate_discover_updates(model_raw)
    except llm_client.LlmUnavailableError as exc:
        logger.warning("[discovery] model unavailable, keyword path only: %s", exc)
        return _keyword_only_result(state, keyword_updates, items, str(exc))
    except Exception as exc:
        logger.error("[discovery] model path failed: %s", exc, exc_info=True)
        return _keyword_only_result(state, keyword_updates, items, str(exc))

    updates = {**model_updates, **keyword_updates}
    stage = updates.pop("stage", None) or _next_stage(state)
    constraints = merge_constraints(state.constraints, updates)
    results, relaxed = rank_with_relaxation(constraints, items)
    results = apply_selection(results, selection)

    return DiscoverTurnResult(
        assistant_message=_relaxed_message(assistant_message, relaxed),
        updates={**updates, "stage": stage},
        results=results,
        relaxed=relaxed,
    )


def apply_discover_updates(state: DiscoverState, updates: dict[str, Any]) -> DiscoverState:
    """New state with *updates* merged into the constraints."""
    stage = updates.get("stage") or state.stage
    return DiscoverState(stage=stage, constraints=merge_constraints(state.constraints, updates))


# ---------------------------------------------------------------------------
# Catalog search
# ---------------------------------------------------------------------------

def search_catalog(
    q: str | None = None,
    category: str | None = None,
    color: str | None = None,
    material: str | None = None,
    max_price: float | None = None,
    limit: int = CATALOG_SEARCH_DEFAULT_LIMIT,
    items: list[ACPItem] | None = None,
) -> tuple[int, list[ACPItem]]:
    """Case-insensitive substring/equality search. Returns ``(count, page)``."""
    pool = [i for i in (items if items is not None else get_inventory()) if i.is_eligible_search]

    query = (q or "").strip().lower()
    if query:
        pool = [
            i
            for i in pool
            if query in i.title.lower()
            or query in i.description.lower()
            or any(query in t.lower() for t in i.attributes.tags)
        ]
    if category:
        pool = [i for i in pool if i.attributes.category.lower() == category.lower()]
    if color:
        pool = [i for i in pool if any(c.name.lower() == color.lower() for c in i.attributes.variants.colors)]
    if material:
        pool = [i for i in pool if any(m.lower() == material.lower() for m in i.attributes.materials)]
    if max_price is not None:
        pool = [i for i in pool if i.price.amount <= max_price]

    return len(pool), pool[: max(0, limit)]

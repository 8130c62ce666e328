"""
Customization conversation engine.

Each user turn is read twice: once by the model (structured JSON output) and
once by the deterministic keyword parser.  Both candidate update sets are
validated independently and merged with the keyword path winning on any field
both provide.  The merged updates are then applied to ``ConversationState`` by
a monotonic reducer; stage is advisory and cart readiness is a predicate.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from merchforge.config import (
    CHAT_EMPTY_MESSAGE,
    CHAT_FALLBACK_MESSAGE,
    CUSTOMIZATION_SYSTEM_PROMPT,
    JSON_CORRECTION_MESSAGE,
    LLM_HISTORY_WINDOW,
    OCCASIONS,
    SLOGANS,
    STAGES,
    TEXT_COLOR_OPTIONS,
    TEXT_MAX_LENGTH,
    VIBES,
)
from merchforge.models.conversation import ConversationState, Message, TurnResult
from merchforge.models.design import DesignVariant
from merchforge.models.product import Product, ProductColor
from merchforge.services import llm_client
from merchforge.services.catalog import ICON_LIBRARY, NO_ICON, PRODUCTS, find_product, product_color
from merchforge.services.constraints import CustomizationLimits, validate_customization_updates
from merchforge.services.design_engine import generate_designs
from merchforge.services.keyword_parser import parse_keyword_updates

logger = logging.getLogger(__name__)

Completion = Callable[..., Awaitable[str]]


# ---------------------------------------------------------------------------
# Readiness predicates
# ---------------------------------------------------------------------------

def has_icon(state: ConversationState) -> bool:
    return bool(state.icon) and state.icon != NO_ICON


def resolved_product_color(state: ConversationState) -> ProductColor | None:
    """The selected garment color, only if the chosen product comes in it."""
    return product_color(state.product, state.product_color)


def can_preview(state: ConversationState) -> bool:
    """A design preview needs a product plus text or a real icon."""
    return state.product is not None and (bool(state.text) or has_icon(state))


def can_add_to_cart(state: ConversationState) -> bool:
    """Product set, text or icon set, and a color the product actually offers."""
    return can_preview(state) and resolved_product_color(state) is not None


def get_missing_fields(state: ConversationState) -> list[str]:
    missing: list[str] = []
    if state.product is None:
        missing.append("product")
    if not state.text and not has_icon(state):
        missing.append("text or icon")
    if resolved_product_color(state) is None:
        missing.append("product color")
    return missing


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

def _stage_rank(stage: str) -> int:
    return STAGES.index(stage) if stage in STAGES else 0


def advance_stage(previous: ConversationState, state: ConversationState, updates: dict[str, Any]) -> str:
    """Pick the next advisory stage.

    Deterministic rules only move forward ("field X just became set while the
    stage is still early").  The model's proposed stage is used only when no
    rule fired.
    """
    target = previous.stage

    def bump(stage: str) -> None:
        nonlocal target
        if _stage_rank(stage) > _stage_rank(target):
            target = stage

    if "productId" in updates:
        bump("product")
    if "occasion" in updates or "vibe" in updates:
        bump("intent")
    if "text" in updates:
        bump("icon" if not has_icon(state) else "preview")
    if "iconId" in updates and can_preview(state):
        bump("preview")
    if updates.get("action") == "add_to_cart" and can_add_to_cart(state):
        bump("complete")

    if target == previous.stage and updates.get("stage") in STAGES:
        return updates["stage"]
    return target


def apply_updates(state: ConversationState, updates: dict[str, Any]) -> ConversationState:
    """Apply validated updates and return a new state.

    Fields are monotonic: a key missing from *updates* never clears the
    current value.  ``remove_icon`` is the one way to unset the icon, and it
    sets the ``none`` sentinel rather than clearing the field.
    """
    changes: dict[str, Any] = {}

    if "productId" in updates:
        product = find_product(updates["productId"])
        if product is not None:
            changes["product"] = product
    for key, attr in (
        ("occasion", "occasion"),
        ("vibe", "vibe"),
        ("text", "text"),
        ("iconId", "icon"),
        ("productColor", "product_color"),
        ("textColor", "text_color"),
        ("size", "size"),
        ("quantity", "quantity"),
    ):
        if updates.get(key) is not None:
            changes[attr] = updates[key]
    if updates.get("action") == "remove_icon":
        changes["icon"] = NO_ICON

    new_state = state.model_copy(update=changes)
    new_state.stage = advance_stage(state, new_state, updates)
    return new_state


def append_message(state: ConversationState, role: str, content: str) -> ConversationState:
    """Return a copy of *state* with one more message in its log."""
    message = Message(
        id=uuid.uuid4().hex[:12],
        role=role,
        content=content,
        timestamp=int(time.time() * 1000),
    )
    return state.model_copy(update={"messages": [*state.messages, message]})


# ---------------------------------------------------------------------------
# Prompting
# ---------------------------------------------------------------------------

def _state_snapshot(state: ConversationState) -> dict[str, Any]:
    return {
        "stage": state.stage,
        "product": state.product.id if state.product else None,
        "occasion": state.occasion,
        "vibe": state.vibe,
        "text": state.text,
        "icon": state.icon,
        "productColor": state.product_color,
        "textColor": state.text_color,
        "size": state.size,
        "quantity": state.quantity,
    }


def build_system_prompt(state: ConversationState, text_max_length: int = TEXT_MAX_LENGTH) -> str:
    """System prompt carrying the state snapshot, vocabularies and output contract."""
    products = [
        {
            "id": p.id,
            "name": p.name,
            "category": p.category,
            "colors": [c.name for c in p.colors],
            "sizes": p.sizes,
        }
        for p in PRODUCTS
    ]
    icons = [{"id": i.id, "keywords": i.keywords} for i in ICON_LIBRARY]
    missing = get_missing_fields(state)
    missing_line = (
        f"The user still needs to provide: {', '.join(missing)}. Guide them toward these."
        if missing
        else "All required fields are filled. The user can keep customizing or add to cart."
    )
    return CUSTOMIZATION_SYSTEM_PROMPT.format(
        products=json.dumps(products, ensure_ascii=False),
        icons=json.dumps(icons),
        text_colors=", ".join(TEXT_COLOR_OPTIONS),
        vibes=", ".join(VIBES),
        occasions=", ".join(OCCASIONS),
        text_max_length=text_max_length,
        missing_fields=missing_line,
        state=json.dumps(_state_snapshot(state), ensure_ascii=False),
    )


def _build_messages(
    user_message: str,
    state: ConversationState,
    history: list[dict[str, str]],
    text_max_length: int,
) -> list[dict[str, str]]:
    window = history[-LLM_HISTORY_WINDOW:] if LLM_HISTORY_WINDOW > 0 else []
    return [
        {"role": "system", "content": build_system_prompt(state, text_max_length)},
        *({"role": m["role"], "content": m["content"]} for m in window),
        {"role": "user", "content": user_message},
    ]


def _read_model_reply(parsed: Any) -> tuple[str, dict[str, Any]] | None:
    if not isinstance(parsed, dict):
        return None
    assistant = parsed.get("assistant")
    if not isinstance(assistant, str) or not assistant.strip():
        return None
    updates = parsed.get("updates")
    return assistant.strip(), updates if isinstance(updates, dict) else {}


async def get_model_updates(
    user_message: str,
    state: ConversationState,
    history: list[dict[str, str]] | None = None,
    complete: Completion | None = None,
    text_max_length: int = TEXT_MAX_LENGTH,
) -> tuple[str, dict[str, Any]]:
    """Ask the model for ``(assistant_message, raw_updates)``.

    An unparsable reply gets exactly one self-correction retry.  If that also
    fails the raw reply text becomes the assistant message with no updates.
    ``LlmUnavailableError`` from the transport propagates to the caller.
    """
    complete = complete or llm_client.chat_completion
    messages = _build_messages(user_message, state, history or [], text_max_length)

    raw = await complete(messages, json_mode=True)
    reply = _read_model_reply(llm_client.parse_json_payload(raw))

    if reply is None:
        logger.info("[conversation] invalid JSON from model, asking for a correction")
        messages.append({"role": "assistant", "content": raw})
        messages.append({"role": "system", "content": JSON_CORRECTION_MESSAGE})
        raw = await complete(messages, json_mode=True)
        reply = _read_model_reply(llm_client.parse_json_payload(raw))

    if reply is not None:
        return reply
    if raw and raw.strip():
        return raw.strip(), {}
    return CHAT_EMPTY_MESSAGE, {}


def merge_updates(model_updates: dict[str, Any], keyword_updates: dict[str, Any]) -> dict[str, Any]:
    """Right-biased merge: keyword values override model values.

    A model ``remove_icon`` loses to an icon the keyword path picked up in the
    same message.
    """
    merged = {**model_updates, **keyword_updates}
    if merged.get("action") == "remove_icon":
        keyword_icon = keyword_updates.get("iconId")
        if keyword_icon not in (None, NO_ICON) and keyword_updates.get("action") != "remove_icon":
            del merged["action"]
        else:
            merged["iconId"] = NO_ICON
    return merged


async def process_turn(
    user_message: str,
    state: ConversationState,
    history: list[dict[str, str]] | None = None,
    complete: Completion | None = None,
    limits: CustomizationLimits | None = None,
) -> TurnResult:
    """Run one customization turn through both extraction paths.

    Never raises: transport failures fall back to keyword-only updates with a
    generic assistant message and ``fallback_used=True``.
    """
    limits = limits or CustomizationLimits()

    keyword_raw = parse_keyword_updates(user_message)
    keyword_updates = validate_customization_updates(keyword_raw, product=state.product, limits=limits)
    context_product: Product | None = find_product(keyword_updates.get("productId")) or state.product

    fallback_used = False
    error: str | None = None
    try:
        assistant_message, model_raw = await get_model_updates(
            user_message, state, history, complete=complete, text_max_length=limits.text_max_length
        )
        model_updates = validate_customization_updates(model_raw, product=context_product, limits=limits)
    except llm_client.LlmUnavailableError as exc:
        logger.warning("[conversation] model unavailable, keyword path only: %s", exc)
        assistant_message, model_updates = CHAT_FALLBACK_MESSAGE, {}
        fallback_used, error = True, str(exc)
    except Exception as exc:
        logger.error("[conversation] model path failed: %s", exc, exc_info=True)
        assistant_message, model_updates = CHAT_FALLBACK_MESSAGE, {}
        fallback_used, error = True, str(exc)

    updates = merge_updates(model_updates, keyword_updates)
    return TurnResult(
        assistant_message=assistant_message,
        updates=updates,
        fallback_used=fallback_used,
        error=error,
    )


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

def suggest_slogans(occasion: str | None = None) -> list[str]:
    return SLOGANS.get(occasion or "default", SLOGANS["default"])


def suggested_actions(state: ConversationState) -> list[str]:
    """Quick replies for the current point in the flow."""
    if state.product is None:
        return ["Tee for a gift", "Hoodie for my team", "Tote bag for myself"]
    if not state.text and not has_icon(state):
        return [f'"{s}"' for s in suggest_slogans(state.occasion)[:4]]
    if resolved_product_color(state) is None:
        return [f"{c.name} {state.product.category}" for c in state.product.colors[:3]]
    if not get_missing_fields(state):
        return ["Add to cart", "Change the color", "Try a different text"]
    return []


# ---------------------------------------------------------------------------
# Design regeneration memo
# ---------------------------------------------------------------------------

def design_cache_key(state: ConversationState) -> str | None:
    """Composite key over ``(text, icon, vibe, occasion)``.

    ``None`` when a preview is not possible yet.
    """
    if not can_preview(state):
        return None
    return f"{state.text or ''}|{state.icon or 'default'}|{state.vibe or ''}|{state.occasion or ''}"


Generator = Callable[..., Awaitable[list[DesignVariant]]]


class DesignSession:
    """Keeps the last generated variants and regenerates only on a new key."""

    def __init__(self, generate: Generator | None = None, cache_key: str | None = None):
        self._generate = generate
        self.cache_key = cache_key
        self.variants: list[DesignVariant] = []

    async def refresh(self, state: ConversationState) -> list[DesignVariant]:
        key = design_cache_key(state)
        if key is None or key == self.cache_key:
            return self.variants

        generate = self._generate or generate_designs
        logger.info("[conversation] regenerating designs for key %s", key)
        self.variants = await generate(
            state.text or "",
            state.icon if has_icon(state) else None,
            state.vibe,
            state.occasion,
        )
        self.cache_key = key
        return self.variants


# ---------------------------------------------------------------------------
# Full turn
# ---------------------------------------------------------------------------

async def run_turn(
    user_message: str,
    state: ConversationState,
    history: list[dict[str, str]] | None = None,
    complete: Completion | None = None,
    session: DesignSession | None = None,
) -> tuple[TurnResult, ConversationState, list[DesignVariant]]:
    """Process one turn and fold it into *state*.

    Returns the turn result, the reduced state with both messages appended,
    and fresh design variants when the design key changed (``[]`` otherwise).
    Without a *session*, the key of the incoming state is the last one seen.
    """
    result = await process_turn(user_message, state, history=history, complete=complete)
    new_state = apply_updates(append_message(state, "user", user_message), result.updates)
    new_state = append_message(new_state, "assistant", result.assistant_message)

    if session is None:
        session = DesignSession(cache_key=design_cache_key(state))
    previous_key = session.cache_key
    variants = await session.refresh(new_state)
    return result, new_state, variants if session.cache_key != previous_key else []

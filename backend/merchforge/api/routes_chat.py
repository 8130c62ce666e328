"""Customization chat and design variant API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from merchforge.api.streaming import sse_response
from merchforge.models.conversation import ChatRequest
from merchforge.models.design import DesignsRequest, DesignsResponse
from merchforge.services.conversation_engine import can_add_to_cart, run_turn, suggested_actions
from merchforge.services.design_engine import generate_designs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["customize"])


# ---------------------------------------------------------------------------
# POST /api/chat
# ---------------------------------------------------------------------------

@router.post("/chat")
async def chat(body: ChatRequest):
    """One customization turn.

    Returns ``{assistantMessage, updates, fallbackUsed, state, canAddToCart,
    suggestedActions}`` plus ``designs`` when the design inputs changed.  With
    ``stream: true`` the same data arrives as ``updates`` and ``state`` events,
    then ``delta`` chunks and ``done``.
    """
    user_message = (body.user_message or "").strip()
    if body.state is None or not user_message:
        raise HTTPException(status_code=400, detail="Missing state or userMessage")

    history = [{"role": m.role, "content": m.content} for m in body.messages]
    result, state, variants = await run_turn(user_message, body.state, history=history)

    view = {
        "state": state.to_wire(),
        "canAddToCart": can_add_to_cart(state),
        "suggestedActions": suggested_actions(state),
    }
    if variants:
        view["designs"] = DesignsResponse(variants=variants, recommended=variants[0].id).model_dump()

    if body.stream:
        return sse_response(
            [("updates", result.updates), ("state", view)],
            result.assistant_message,
            fallback_used=result.fallback_used,
            error=result.error,
        )
    return {**result.to_wire(), **view}


# ---------------------------------------------------------------------------
# POST /api/designs
# ---------------------------------------------------------------------------

@router.post("/designs")
async def designs(body: DesignsRequest) -> dict:
    """Three rendered design variants for the current text and icon."""
    if not body.text and not body.icon_id:
        raise HTTPException(status_code=400, detail="Missing text or iconId")

    variants = await generate_designs(body.text or "", body.icon_id, body.vibe, body.occasion)
    logger.info("[designs] generated %d variants", len(variants))
    response = DesignsResponse(variants=variants, recommended=variants[0].id if variants else "A")
    return response.model_dump()

"""Inventory discovery and catalog search API routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from merchforge.api.streaming import sse_response
from merchforge.config import CATALOG_SEARCH_DEFAULT_LIMIT, CATALOG_SEARCH_MAX_LIMIT
from merchforge.models.discover import DiscoverRequest
from merchforge.services.discovery import process_discover_turn, search_catalog

router = APIRouter(prefix="/api", tags=["discover"])


# --------------------------------------------------------------------------- #
# POST /api/discover
# --------------------------------------------------------------------------- #

@router.post("/discover")
async def discover(body: DiscoverRequest):
    """One discovery turn: updated constraints plus up to three ranked items."""
    user_message = (body.user_message or "").strip()
    if body.state is None or not user_message:
        raise HTTPException(status_code=400, detail="Missing state or userMessage")

    result = await process_discover_turn(user_message, body.state)
    results = [r.model_dump(by_alias=True, exclude_none=True) for r in result.results]

    if body.stream:
        return sse_response(
            [("updates", result.updates), ("results", results)],
            result.assistant_message,
            fallback_used=result.fallback_used,
            error=result.error,
        )

    payload = {
        "assistantMessage": result.assistant_message,
        "updates": result.updates,
        "results": results,
    }
    if result.relaxed:
        payload["relaxed"] = result.relaxed
    if result.fallback_used:
        payload["fallbackUsed"] = True
    return payload


# --------------------------------------------------------------------------- #
# GET /api/catalog/search
# --------------------------------------------------------------------------- #

@router.get("/catalog/search")
async def catalog_search(
    q: str | None = Query(default=None, description="Substring of title, description or tag"),
    category: str | None = Query(default=None, description="tee, hoodie, tote or mug"),
    color: str | None = Query(default=None, description="Variant color name"),
    material: str | None = Query(default=None, description="Material name"),
    max_price: float | None = Query(default=None, description="Maximum price in EUR"),
    limit: int = Query(default=CATALOG_SEARCH_DEFAULT_LIMIT, description="Max results (capped at 50)"),
):
    """Filter the ACP feed. ``count`` is the number of matches before ``limit``."""
    limit = min(limit, CATALOG_SEARCH_MAX_LIMIT)
    count, items = search_catalog(q, category, color, material, max_price, limit)
    return {"count": count, "items": [item.model_dump(exclude_none=True) for item in items]}

"""Offer, commit and order API routes (snake_case bodies)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from merchforge.models.commerce import CommitRequest, OfferRequest
from merchforge.storage.commerce_store import CommerceStore

router = APIRouter(prefix="/api", tags=["commerce"])


def get_store(request: Request) -> CommerceStore:
    """The process-wide store created in ``merchforge.api.main``."""
    return request.app.state.commerce_store


# --------------------------------------------------------------------------- #
# POST /api/offer
# --------------------------------------------------------------------------- #

@router.post("/offer")
async def create_offer(body: OfferRequest, store: CommerceStore = Depends(get_store)) -> dict:
    if not body.item_id:
        raise HTTPException(status_code=400, detail="Missing item_id")

    offer = store.create_offer(body.item_id, body.quantity, body.color, body.size, body.material)
    if offer is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return offer.model_dump()


# --------------------------------------------------------------------------- #
# POST /api/commit
# --------------------------------------------------------------------------- #

@router.post("/commit")
async def commit_offer(body: CommitRequest, store: CommerceStore = Depends(get_store)) -> dict:
    if not body.offer_id:
        raise HTTPException(status_code=400, detail="Missing offer_id")

    order = store.commit_offer(body.offer_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Offer not found or expired")
    return order.model_dump()


# --------------------------------------------------------------------------- #
# GET /api/order/{order_id}
# --------------------------------------------------------------------------- #

@router.get("/order/{order_id}")
async def get_order(order_id: str, store: CommerceStore = Depends(get_store)) -> dict:
    order = store.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order.model_dump()

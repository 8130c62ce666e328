"""
In-memory offer and order store.

One ``CommerceStore`` is built at app start and handed to the commerce routes
as a dependency.  Offers and orders live for the lifetime of the process; a
lock serialises every mutation.
"""

from __future__ import annotations

import logging
import math
import secrets
import string
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone

from merchforge.config import DELIVERY_ESTIMATE_DAYS, OFFER_TTL_SECONDS
from merchforge.models.commerce import Offer, OfferItem, Order
from merchforge.models.product import ACPItem
from merchforge.storage.inventory import get_image_url, get_inventory, get_item, resolve_variant_image

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str, clock: Callable[[], float] = time.time) -> str:
    """``<prefix>_<6 random chars>_<epoch ms>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"{prefix}_{suffix}_{int(clock() * 1000)}"


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class CommerceStore:
    """Process-lifetime offer/order maps.

    ``ttl_seconds <= 0`` disables offer expiry.  Committing does not close
    the offer, so the same offer can be committed again.
    """

    def __init__(
        self,
        inventory: list[ACPItem] | None = None,
        ttl_seconds: int = OFFER_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        delivery_days: int = DELIVERY_ESTIMATE_DAYS,
    ):
        self._inventory = inventory
        self._ttl = ttl_seconds
        self._clock = clock
        self._delivery_days = delivery_days
        self._lock = threading.Lock()
        self._offers: dict[str, Offer] = {}
        self._offer_times: dict[str, float] = {}
        self._orders: dict[str, Order] = {}

    @property
    def inventory(self) -> list[ACPItem]:
        return self._inventory if self._inventory is not None else get_inventory()

    # -- offers ---------------------------------------------------------------

    def create_offer(
        self,
        item_id: str,
        quantity: float | None = 1,
        color: str | None = None,
        size: str | None = None,
        material: str | None = None,
    ) -> Offer | None:
        """Price a single-line offer. ``None`` when the item is unknown."""
        item = get_item(item_id, self.inventory)
        if item is None:
            logger.info("[commerce] offer for unknown item %s", item_id)
            return None

        if quantity is None or not math.isfinite(quantity):
            quantity = 1
        qty = max(1, math.floor(quantity))
        unit = item.price.amount
        total = round(unit * qty, 2)
        now = self._clock()

        line = OfferItem(
            item_id=item.item_id,
            title=item.title,
            quantity=qty,
            unit_price=unit,
            total_price=total,
            currency=item.price.currency,
            color=color,
            size=size,
            material=material,
            image_url=get_image_url(resolve_variant_image(item, color, material)),
        )
        offer = Offer(
            offer_id=generate_id("offer", self._clock),
            created_at=_iso(now),
            items=[line],
            total=total,
            currency=item.price.currency,
            status="open",
        )
        with self._lock:
            self._offers[offer.offer_id] = offer
            self._offer_times[offer.offer_id] = now
        logger.info("[commerce] created %s for %s x%d (%.2f %s)", offer.offer_id, item_id, qty, total, offer.currency)
        return offer

    def _expire_if_stale(self, offer_id: str) -> None:
        if self._ttl <= 0:
            return
        offer = self._offers.get(offer_id)
        if offer is None or offer.status != "open":
            return
        if self._clock() - self._offer_times[offer_id] > self._ttl:
            self._offers[offer_id] = offer.model_copy(update={"status": "expired"})
            logger.info("[commerce] %s expired", offer_id)

    def get_offer(self, offer_id: str) -> Offer | None:
        with self._lock:
            self._expire_if_stale(offer_id)
            return self._offers.get(offer_id)

    # -- orders ---------------------------------------------------------------

    def commit_offer(self, offer_id: str) -> Order | None:
        """Turn an open offer into a confirmed order.

        ``None`` when the offer is missing or no longer open; nothing is
        stored in that case.
        """
        with self._lock:
            self._expire_if_stale(offer_id)
            offer = self._offers.get(offer_id)
            if offer is None or offer.status != "open":
                return None
            order = Order(
                order_id=generate_id("order", self._clock),
                offer_id=offer.offer_id,
                created_at=_iso(self._clock()),
                status="confirmed",
                items=[line.model_copy() for line in offer.items],
                total=offer.total,
                currency=offer.currency,
                delivery_estimate_days=self._delivery_days,
            )
            self._orders[order.order_id] = order
        logger.info("[commerce] committed %s as %s", offer_id, order.order_id)
        return order

    def get_order(self, order_id: str) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

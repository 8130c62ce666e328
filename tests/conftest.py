import json

import pytest

from merchforge.models.product import ACPItem
from merchforge.services import llm_client


@pytest.fixture(autouse=True)
def no_model(monkeypatch):
    """Tests never reach Gemini; the model path reports itself unavailable."""

    async def unavailable(messages, json_mode=False):
        raise llm_client.LlmUnavailableError("model disabled in tests")

    monkeypatch.setattr(llm_client, "chat_completion", unavailable)


def scripted(*replies):
    """A fake ``complete`` coroutine returning *replies* in order, recording calls."""
    calls = []

    async def complete(messages, json_mode=False):
        calls.append([dict(m) for m in messages])
        reply = replies[min(len(calls) - 1, len(replies) - 1)]
        return reply if isinstance(reply, str) else json.dumps(reply)

    complete.calls = calls
    return complete


@pytest.fixture
def script():
    return scripted


def _item(item_id, category, price, materials, colors, sizes=None, lead=5, tags=None, **extra):
    images = {f"{c.lower()}|{m.replace(' ', '-')}": f"/images/{item_id}-{c.lower()}.png" for c in colors for m in materials}
    data = {
        "item_id": item_id,
        "title": f"{item_id} title",
        "description": f"{category} made of {', '.join(materials)}",
        "image_url": f"/images/{item_id}.png",
        "image_url_by_variant": images,
        "price": {"amount": price, "currency": "EUR"},
        "availability": "in stock",
        "attributes": {
            "category": category,
            "materials": materials,
            "lead_time_days": lead,
            "min_qty": 1,
            "tags": tags or [],
            "variants": {
                "sizes": sizes or [],
                "colors": [{"name": c, "hex": "#000000"} for c in colors],
            },
        },
    }
    data.update(extra)
    return ACPItem.model_validate(data)


@pytest.fixture
def inventory():
    """Four items: exactly one white tee under budget."""
    return [
        _item("tee-01", "tee", 10.0, ["cotton"], ["White", "Black"], sizes=["S", "M", "L"], lead=5, tags=["minimal", "gift"]),
        _item("tee-02", "tee", 18.0, ["organic", "cotton"], ["Black", "Forest"], sizes=["M", "L"], lead=9, tags=["eco"]),
        _item("tote-01", "tote", 9.5, ["canvas"], ["Natural"], lead=4, tags=["eco", "event"]),
        _item("mug-01", "mug", 11.0, ["ceramic"], ["White"], lead=6, tags=["gift"]),
    ]

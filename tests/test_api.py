import json
import logging

import pytest
from fastapi.testclient import TestClient

from merchforge.api.main import app
from merchforge.config import CHAT_FALLBACK_MESSAGE
from merchforge.storage.cart import CartStore


@pytest.fixture
def client():
    return TestClient(app)


def parse_sse(body):
    events = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


def test_root_and_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["name"] == "MerchForge API"


def test_chat(client):
    response = client.post("/api/chat", json={"state": {}, "userMessage": 'navy tee saying "Hi"'})
    assert response.status_code == 200
    body = response.json()
    assert body["assistantMessage"] == CHAT_FALLBACK_MESSAGE
    assert body["updates"] == {"productId": "classic-tee", "productColor": "navy", "text": "Hi"}
    assert body["fallbackUsed"] is True

    state = body["state"]
    assert state["product"]["id"] == "classic-tee"
    assert (state["productColor"], state["text"], state["stage"]) == ("navy", "Hi", "icon")
    assert [m["role"] for m in state["messages"]] == ["user", "assistant"]
    assert body["canAddToCart"] is True
    assert "Add to cart" in body["suggestedActions"]
    assert [v["id"] for v in body["designs"]["variants"]] == ["A", "B", "C"]


def test_chat_state_round_trip_regenerates_designs_only_on_change(client):
    first = client.post("/api/chat", json={"state": {}, "userMessage": 'navy tee saying "Hi"'}).json()

    second = client.post("/api/chat", json={"state": first["state"], "userMessage": "add a star icon"}).json()
    assert second["state"]["icon"] == "star"
    assert second["state"]["stage"] == "preview"
    assert len(second["state"]["messages"]) == 4
    assert "designs" in second

    third = client.post("/api/chat", json={"state": second["state"], "userMessage": "size L please"}).json()
    assert third["state"]["size"] == "L"
    assert third["state"]["icon"] == "star"
    assert "designs" not in third


@pytest.mark.parametrize("payload", [{"state": {}}, {"userMessage": "hi"}, {"state": {}, "userMessage": "   "}])
def test_chat_requires_state_and_message(client, payload):
    response = client.post("/api/chat", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing state or userMessage"


def test_chat_stream(client):
    response = client.post("/api/chat", json={"state": {}, "userMessage": "a black hoodie", "stream": True})
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache, no-transform"

    events = parse_sse(response.text)
    names = [name for name, _ in events]
    assert names[:2] == ["updates", "state"]
    assert names[-1] == "done"
    assert set(names[2:-1]) == {"delta"}

    assert events[0][1] == {"productId": "hoodie", "productColor": "black"}
    view = events[1][1]
    assert view["state"]["product"]["id"] == "hoodie"
    assert view["canAddToCart"] is False
    assert "designs" not in view
    deltas = [data for name, data in events if name == "delta"]
    assert all(len(d) <= 16 for d in deltas)
    assert "".join(deltas) == CHAT_FALLBACK_MESSAGE
    assert events[-1][1]["fallbackUsed"] is True


def test_designs(client):
    response = client.post("/api/designs", json={"text": "Stay Wild", "iconId": "mountain", "vibe": "retro"})
    body = response.json()
    assert [v["id"] for v in body["variants"]] == ["A", "B", "C"]
    assert body["recommended"] == "A"
    assert body["variants"][0]["name"] == "Retro Badge"


def test_designs_require_text_or_icon(client):
    response = client.post("/api/designs", json={"vibe": "bold"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing text or iconId"


def test_discover(client):
    response = client.post("/api/discover", json={"state": {"stage": "welcome"}, "userMessage": "a white tee"})
    body = response.json()
    assert body["updates"]["category"] == "tee"
    assert body["updates"]["stage"] == "constraints"
    assert body["fallbackUsed"] is True
    first = body["results"][0]
    assert first["item_id"] == "tee-01"
    assert first["matchedColor"] == "White"
    assert first["image_url_selected"].startswith("http")


def test_discover_stream_sends_results_before_text(client):
    response = client.post(
        "/api/discover",
        json={"state": {"stage": "constraints"}, "userMessage": "a canvas tote", "stream": True},
    )
    events = parse_sse(response.text)
    assert [name for name, _ in events[:2]] == ["updates", "results"]
    assert events[1][1][0]["item_id"] == "tote-01"
    assert events[-1][0] == "done"


def test_discover_requires_message(client):
    assert client.post("/api/discover", json={"state": {}}).status_code == 400


def test_catalog_search(client):
    body = client.get("/api/catalog/search", params={"category": "tee", "limit": 1}).json()
    assert body["count"] >= 3
    assert len(body["items"]) == 1
    assert body["items"][0]["attributes"]["category"] == "tee"

    capped = client.get("/api/catalog/search", params={"limit": 500}).json()
    assert len(capped["items"]) == capped["count"]


def test_offer_commit_order_flow(client):
    offer = client.post("/api/offer", json={"item_id": "tee-01", "quantity": 3, "color": "Black"}).json()
    assert offer["total"] == 30
    assert offer["items"][0]["total_price"] == 30

    order = client.post("/api/commit", json={"offer_id": offer["offer_id"]}).json()
    assert order["status"] == "confirmed"
    assert order["offer_id"] == offer["offer_id"]

    fetched = client.get(f"/api/order/{order['order_id']}")
    assert fetched.status_code == 200
    assert fetched.json() == order


def test_commerce_errors(client):
    assert client.post("/api/offer", json={}).json()["detail"] == "Missing item_id"
    assert client.post("/api/offer", json={"item_id": "nope"}).status_code == 404
    assert client.post("/api/commit", json={}).status_code == 400
    assert client.post("/api/commit", json={"offer_id": "offer_nope"}).status_code == 404
    assert client.get("/api/order/order_nope").status_code == 404


def test_well_known_etag_revalidation(client):
    first = client.get("/.well-known/ucp-capabilities.json")
    assert first.status_code == 200
    assert first.headers["cache-control"] == "public, max-age=3600"
    etag = first.headers["etag"]

    again = client.get("/.well-known/ucp-capabilities.json", headers={"If-None-Match": etag})
    assert again.status_code == 304
    assert again.content == b""

    body = first.text
    assert body == json.dumps(first.json(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def test_well_known_jsonld_and_products(client):
    jsonld = client.get("/.well-known/ucp-capabilities.jsonld")
    assert jsonld.headers["content-type"].startswith("application/ld+json")
    assert jsonld.json()["@type"] == "Organization"

    products = client.get("/.well-known/ucp-products.json")
    assert products.json()["merchant_id"] == "merchforge-demo"
    assert products.headers["etag"].startswith('"')


def test_unhandled_errors_become_json(monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr("merchforge.api.routes_wellknown.load_ucp_products", boom)
    response = TestClient(app, raise_server_exceptions=False).get("/.well-known/ucp-products.json")
    assert response.status_code == 500
    assert response.json() == {"error": "RuntimeError", "message": "An unexpected error occurred.", "detail": None}


def test_offer_rejects_non_finite_quantity(client):
    for raw in ('{"item_id": "tee-01", "quantity": 1e999}', '{"item_id": "tee-01", "quantity": NaN}'):
        response = client.post("/api/offer", content=raw, headers={"content-type": "application/json"})
        assert response.status_code == 422


@pytest.fixture
def fresh_cart(monkeypatch):
    monkeypatch.setattr(app.state, "cart_store", CartStore())


def test_cart_flow(client, fresh_cart):
    chat = client.post("/api/chat", json={"state": {}, "userMessage": 'navy tee saying "Hi"'}).json()
    variant = chat["designs"]["variants"][1]

    added = client.post("/api/cart", json={"state": chat["state"], "variant": variant, "textColor": "white"}).json()
    [item] = added["items"]
    assert (item["productId"], item["variant"], item["quantity"]) == ("classic-tee", variant["id"], 1)
    assert item["designSVG"] == variant["svg"]
    assert item["textColor"]["name"] == "White"
    assert added["count"] == 1
    assert added["total"] == item["total"]

    updated = client.patch(f"/api/cart/{item['id']}", json={"quantity": 3}).json()
    assert updated["count"] == 3
    assert updated["total"] == round(item["price"] * 3, 2)
    assert client.get("/api/cart").json() == updated

    assert client.patch(f"/api/cart/{item['id']}", json={"quantity": 0}).status_code == 422
    assert client.patch("/api/cart/1", json={"quantity": 2}).status_code == 404
    assert client.delete("/api/cart/1").status_code == 404

    assert client.delete(f"/api/cart/{item['id']}").json()["items"] == []


def test_cart_rejects_unfinished_design(client, fresh_cart):
    response = client.post("/api/cart", json={"state": {"text": "Hi"}})
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Design is not ready for the cart")
    assert client.get("/api/cart").json() == {"items": [], "count": 0, "total": 0}


def test_clear_cart(client, fresh_cart):
    chat = client.post("/api/chat", json={"state": {}, "userMessage": 'navy tee saying "Hi"'}).json()
    client.post("/api/cart", json={"state": chat["state"]})
    client.post("/api/cart", json={"state": chat["state"]})
    assert client.get("/api/cart").json()["count"] == 2
    assert client.delete("/api/cart").json() == {"items": [], "count": 0, "total": 0}


def test_app_logs_at_info():
    assert logging.getLogger("merchforge.services.conversation_engine").isEnabledFor(logging.INFO)

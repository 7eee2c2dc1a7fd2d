import asyncio
import json
import sys
import time
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastapi.testclient import TestClient

import settings
from main import app

AUTH = {"Authorization": "Bearer merchant-token"}

BUNDLES = [
    {"_id": "b1", "name": "Alpha", "status": "active", "updatedAt": "2024-01-01",
     "components": [{"variantId": "v1", "quantity": 1, "group": "v:v1"}]},
    {"_id": "b2", "name": "Beta", "status": "draft", "updatedAt": "2024-02-01",
     "components": [{"variantId": "v2", "quantity": 1, "group": "v:v2"}]},
]


def _reply(status=200, body=None, headers=None):
    text = json.dumps(body) if body is not None else ""
    return SimpleNamespace(status_code=status, text=text, headers=headers or {}, json=lambda: json.loads(text))


@pytest.fixture
def backend(monkeypatch):
    """Fake bundle backend keyed by (method, path)."""
    state = SimpleNamespace(routes={}, calls=[])

    def fake_request(method, url, **kwargs):
        path = url[len(settings.BUNDLE_API_BASE_URL):]
        state.calls.append((method, path, kwargs))
        handler = state.routes.get((method, path))
        if handler is None:
            return _reply(404, {"error": "not found"})
        return handler(kwargs) if callable(handler) else handler

    monkeypatch.setattr(requests, "request", fake_request)
    return state


@pytest.fixture
def client():
    return TestClient(app)


def _bundle_state(**overrides):
    state = {
        "name": "Pair",
        "offerType": "bundle",
        "baseVariantId": "v1",
        "addons": [{"variantId": "v2", "quantity": 2}],
        "discount": {"type": "percentage", "value": 15},
        "productId": "55",
    }
    state.update(overrides)
    return state


class TestHealth:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert response.headers["X-Request-Id"]

    def test_api_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"
        assert body["backend"] == settings.BUNDLE_API_BASE_URL


class TestDrafts:
    def test_preview_builds_draft(self, client):
        response = client.post("/api/drafts/preview", json=_bundle_state())
        assert response.status_code == 200
        body = response.json()
        assert body["canSubmit"] is True
        assert body["draft"]["rules"]["eligibility"]["minCartQty"] == 3
        assert body["draft"]["presentation"] == {"coverVariantId": "v1"}

    def test_preview_single_item_bundle_cannot_submit(self, client):
        body = client.post("/api/drafts/preview", json=_bundle_state(addons=[])).json()
        assert body["canSubmit"] is False

    def test_preview_validation_error(self, client):
        response = client.post("/api/drafts/preview", json={"offerType": "bogus"})
        assert response.status_code == 422
        assert response.json()["error"] == "Validation failed"

    def test_hydrate_round_trip(self, client):
        draft = client.post("/api/drafts/preview", json=_bundle_state()).json()["draft"]
        state = client.post("/api/drafts/hydrate", json={"bundle": draft, "productId": "55"}).json()["state"]
        assert state["offerType"] == "bundle"
        assert state["addons"] == [{"variantId": "v2", "quantity": 2}]
        again = client.post("/api/drafts/preview", json=state).json()["draft"]
        assert again == draft

    def test_hydrate_tolerates_non_finite_quantity(self, client):
        bundle = {"components": [{"variantId": "v1", "quantity": "1e999", "group": "v:v1"}], "rules": "x"}
        response = client.post("/api/drafts/hydrate", json={"bundle": bundle})
        assert response.status_code == 200
        assert response.json()["state"]["baseVariantId"] == "v1"

    def test_preview_floors_fractional_quantities(self, client):
        state = _bundle_state(baseQuantity=3.7, addons=[{"variantId": "v2", "quantity": 2.9}])
        response = client.post("/api/drafts/preview", json=state)
        assert response.status_code == 200
        assert [c["quantity"] for c in response.json()["draft"]["components"]] == [3, 2]

    def test_new_draft_from_product(self, client, backend):
        backend.routes[("GET", "/products/55")] = _reply(body={"product": {
            "id": "55", "name": "Mug", "skus": [{"id": "s1", "status": "sale", "price": 3}],
        }})
        response = client.get("/api/drafts/new", params={"productId": "55"}, headers=AUTH)
        assert response.status_code == 200
        body = response.json()
        assert body["state"]["baseVariantId"] == "s1"
        assert body["state"]["name"] == "Bundle - Mug"
        assert body["variants"][0]["variantId"] == "s1"
        assert backend.calls[0][2]["headers"]["Cache-Control"] == "no-cache"


class TestBundles:
    def test_requires_bearer_token(self, client):
        response = client.get("/api/bundles")
        assert response.status_code == 401
        assert response.json() == {"error": "Missing bearer token"}

    def test_list_forwards_token_and_sorts_locally(self, client, backend):
        backend.routes[("GET", "/bundles")] = _reply(body={"bundles": BUNDLES})
        response = client.get("/api/bundles", params={"sortKey": "name", "sortDir": "asc"}, headers=AUTH)
        assert response.status_code == 200
        assert [b["_id"] for b in response.json()["bundles"]] == ["b1", "b2"]
        assert backend.calls[0][2]["headers"]["Authorization"] == "Bearer merchant-token"

    def test_list_reports_last_validation(self, client, backend):
        backend.routes[("PATCH", "/bundles/b2")] = _reply(body={})
        backend.routes[("GET", "/bundles")] = _reply(body={"bundles": BUNDLES})
        headers = {"Authorization": "Bearer validator"}

        assert client.post("/api/bundles/b2/activate", headers=headers).status_code == 200
        rows = {b["_id"]: b for b in client.get("/api/bundles", headers=headers).json()["bundles"]}

        assert rows["b2"]["lastValidatedAt"]
        assert rows["b1"]["lastValidatedAt"] is None

    def test_list_search(self, client, backend):
        backend.routes[("GET", "/bundles")] = _reply(body={"bundles": BUNDLES})
        body = client.get("/api/bundles", params={"search": "BET"}, headers=AUTH).json()
        assert [b["_id"] for b in body["bundles"]] == ["b2"]

    def test_create(self, client, backend):
        backend.routes[("POST", "/bundles")] = lambda kwargs: _reply(201, {"_id": "b9", **kwargs["json"]})
        response = client.post("/api/bundles", json=_bundle_state(status="active"), headers=AUTH)
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Bundle activated."
        assert body["bundle"]["_id"] == "b9"
        sent = backend.calls[0][2]["json"]
        assert sent["status"] == "active"
        assert sent["version"] == 1

    def test_create_incomplete_is_422_without_backend_call(self, client, backend):
        response = client.post("/api/bundles", json=_bundle_state(name=""), headers=AUTH)
        assert response.status_code == 422
        assert backend.calls == []

    def test_backend_auth_failure_logs_out(self, client, backend):
        backend.routes[("POST", "/bundles")] = _reply(401, {"error": "expired"})
        response = client.post("/api/bundles", json=_bundle_state(), headers=AUTH)
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "logout": True}

    def test_update_sends_edit_patch(self, client, backend):
        backend.routes[("PATCH", "/bundles/b1")] = _reply(body={"ok": True})
        response = client.patch("/api/bundles/b1", json=_bundle_state(status="paused"), headers=AUTH)
        assert response.status_code == 200
        assert response.json()["message"] == "Bundle updated."
        assert set(backend.calls[0][2]["json"]) == {"name", "components", "rules", "presentation", "status"}

    def test_activate_invalid_variants(self, client, backend):
        backend.routes[("PATCH", "/bundles/b1")] = _reply(400, {
            "code": "BUNDLE_VARIANTS_INVALID",
            "details": {"invalid": ["v1"]},
        })
        response = client.post("/api/bundles/b1/activate", headers=AUTH)
        assert response.status_code == 422
        assert response.json() == {"error": "Cannot activate: invalid variants (1).", "invalid": ["v1"]}
        assert app.state.sessions.state_for("merchant-token").variant_cache.is_missing("v1")

    def test_pause_rate_limited(self, client, backend):
        backend.routes[("PATCH", "/bundles/b1")] = _reply(429, headers={"Retry-After": "30"})
        response = client.post("/api/bundles/b1/pause", headers=AUTH)
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"] == "Rate limited (429). Please retry shortly."

    def test_delete_backend_down(self, client, backend):
        backend.routes[("DELETE", "/bundles/b1")] = _reply(500, {"error": "boom"})
        response = client.delete("/api/bundles/b1", headers=AUTH)
        assert response.status_code == 502
        assert response.json() == {"error": "Failed to delete bundle."}

    def test_duplicate(self, client, backend):
        backend.routes[("GET", "/bundles")] = _reply(body={"bundles": BUNDLES})
        backend.routes[("POST", "/bundles")] = lambda kwargs: _reply(201, {"_id": "b3", **kwargs["json"]})
        response = client.post("/api/bundles/b2/duplicate", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["bundle"]["name"] == "Beta (Copy)"

    def test_editor_state_for_existing_bundle(self, client, backend):
        backend.routes[("GET", "/bundles")] = _reply(body={"bundles": BUNDLES})
        response = client.get("/api/bundles/b2/editor", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["state"]["offerType"] == "quantity"

    def test_export(self, client, backend):
        backend.routes[("GET", "/bundles")] = _reply(body={"bundles": BUNDLES})
        response = client.get("/api/bundles/b1/export", headers=AUTH)
        assert response.status_code == 200
        assert response.headers["Content-Disposition"] == 'attachment; filename="bundle-b1.json"'
        assert response.json()["name"] == "Alpha"

    def test_export_unknown_bundle(self, client, backend):
        backend.routes[("GET", "/bundles")] = _reply(body={"bundles": BUNDLES})
        assert client.get("/api/bundles/zzz/export", headers=AUTH).status_code == 404


class TestCartPreview:
    def test_evaluates_and_reconciles(self, client, backend):
        backend.routes[("POST", "/bundles/evaluate")] = _reply(body={
            "bundles": [{"bundle": {"_id": "b1", "name": "Alpha"}, "matched": True, "applied": False,
                         "uses": 0, "discountAmount": 0}],
            "applied": {"bundles": [], "totalDiscount": 0},
        })
        backend.routes[("POST", "/bundles/cart-banner")] = _reply(body={"hasDiscount": False})
        payload = {"items": [{"variantId": "zz1", "quantity": 2}, {"variantId": "zz1", "quantity": 3}]}

        response = client.post("/api/cart-preview", json=payload, headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["preview"]["lines"] == [{
            "variantId": "zz1", "quantity": 5, "unitPrice": None, "lineTotal": None,
            "loading": True, "missing": False, "insufficientStock": False,
        }]
        assert body["preview"]["bundles"][0]["matched"] is True
        assert body["banner"]["hasDiscount"] is False
        evaluate_call = backend.calls[0]
        assert evaluate_call[2]["params"] == {"createCoupon": "false"}
        assert evaluate_call[2]["json"] == {"items": [{"variantId": "zz1", "quantity": 5}]}

    def test_fractional_quantity_is_floored(self, client, backend):
        backend.routes[("POST", "/bundles/evaluate")] = _reply(body={"bundles": []})
        backend.routes[("POST", "/bundles/cart-banner")] = _reply(body={})
        payload = {"items": [{"variantId": "zz2", "quantity": 2.7}]}

        response = client.post("/api/cart-preview", json=payload, headers=AUTH)

        assert response.status_code == 200
        assert backend.calls[0][2]["json"] == {"items": [{"variantId": "zz2", "quantity": 2}]}

    def test_missing_refs_are_scoped_to_the_merchant(self, client, backend):
        backend.routes[("PATCH", "/bundles/b1")] = _reply(400, {
            "code": "BUNDLE_VARIANTS_INVALID",
            "details": {"invalid": ["iso1"]},
        })
        backend.routes[("POST", "/bundles/evaluate")] = _reply(body={"bundles": []})
        backend.routes[("POST", "/bundles/cart-banner")] = _reply(body={})
        payload = {"items": [{"variantId": "iso1", "quantity": 1}]}
        shop_a = {"Authorization": "Bearer shop-a"}
        shop_b = {"Authorization": "Bearer shop-b"}

        assert client.post("/api/bundles/b1/activate", headers=shop_a).status_code == 422

        line_a = client.post("/api/cart-preview", json=payload, headers=shop_a).json()["preview"]["lines"][0]
        line_b = client.post("/api/cart-preview", json=payload, headers=shop_b).json()["preview"]["lines"][0]
        assert line_a["missing"] is True
        assert line_b["missing"] is False


class TestConcurrentActions:
    def test_overlapping_creates_reach_the_backend_once(self, backend):
        def slow_create(kwargs):
            time.sleep(0.3)
            return _reply(201, {"_id": "b9", **kwargs["json"]})

        backend.routes[("POST", "/bundles")] = slow_create
        headers = {"Authorization": "Bearer racer"}

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://admin") as http:
                return await asyncio.gather(
                    http.post("/api/bundles", json=_bundle_state(), headers=headers),
                    http.post("/api/bundles", json=_bundle_state(), headers=headers),
                )

        responses = asyncio.run(scenario())

        assert sorted(r.status_code for r in responses) == [201, 409]
        assert [c[:2] for c in backend.calls] == [("POST", "/bundles")]
        assert app.state.sessions.state_for("racer").in_flight.active == {}

    def test_different_merchants_do_not_block_each_other(self, backend):
        def slow_create(kwargs):
            time.sleep(0.2)
            return _reply(201, {"_id": "b9", **kwargs["json"]})

        backend.routes[("POST", "/bundles")] = slow_create

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://admin") as http:
                return await asyncio.gather(
                    http.post("/api/bundles", json=_bundle_state(), headers={"Authorization": "Bearer m1"}),
                    http.post("/api/bundles", json=_bundle_state(), headers={"Authorization": "Bearer m2"}),
                )

        responses = asyncio.run(scenario())

        assert [r.status_code for r in responses] == [201, 201]
        assert len(backend.calls) == 2

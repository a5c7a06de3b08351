"""HTTP surface: operation dispatch, error mapping and rate limiting."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from supplier_catalog.core.cache import MemoryCache
from supplier_catalog.main import app, settings
from supplier_catalog.middleware.rate_limiter import RateLimitMiddleware
from supplier_catalog.runtime import set_runtime

HEADERS = {"x-api-key": "test-key"}


@pytest.fixture
def client(runtime):
    set_runtime(runtime)
    with TestClient(app) as test_client:
        yield test_client
    set_runtime(None)


def run(client, op, **params):
    return client.post("/catalog", json={"op": op, "params": params}, headers=HEADERS)


class TestOperations:

    def test_get_inventory(self, client):
        response = run(client, "getInventory", styleId="2000")

        assert response.status_code == 200
        body = response.json()
        assert body["styleId"] == "2000"
        assert body["qty"]["IL|M"] == 10
        assert "asOf" in body

    def test_search_products(self, client):
        response = run(client, "searchProducts", query="gildan", limit=2)

        assert response.status_code == 200
        products = response.json()
        assert [p["styleId"] for p in products] == ["2000", "5000"]
        assert products[0]["suppliers"][0]["inventoryByWarehouseSize"]["KS"]["M"] == 5

    def test_status_before_sync(self, client):
        body = run(client, "status").json()

        assert body["supplier"] == "ss"
        assert body["status"] == "pending"
        assert body["productCount"] == 0

    def test_page_sync_then_list_active(self, client):
        synced = run(client, "pageSync", page=1, pageSize=10).json()
        listed = run(client, "listActive", limit=2).json()

        assert synced["syncedCount"] == 3
        assert synced["hasMore"] is False
        assert listed["success"] is True
        assert len(listed["items"]) == 2
        assert {"styleId", "minPrice", "primaryImageUrl", "syncStatus"} <= set(listed["items"][0])

    def test_sync_single_accepts_product_id(self, client):
        body = run(client, "syncSingle", productId="18500").json()

        assert body["message"] == "Synced from upstream"
        assert body["product"]["name"] == "Heavy Blend Hooded Sweatshirt"

    def test_browse_products(self, client):
        body = run(client, "browseProducts", page=1, pageSize=2).json()

        assert body["source"] == "live"
        assert len(body["products"]) == 2


class TestErrors:

    def test_unknown_operation(self, client):
        response = run(client, "deleteEverything")

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Unknown operation"
        assert detail["received"] == "deleteEverything"
        assert "searchProducts" in detail["detail"]

    @pytest.mark.parametrize("style_id", ["", "20 00", "2000;DROP", "x" * 33])
    def test_invalid_style_id(self, client, style_id):
        response = run(client, "getInventory", styleId=style_id)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Invalid request"

    def test_non_integer_page(self, client):
        response = run(client, "pageSync", page="first")
        assert response.status_code == 400

    def test_unknown_supplier(self, client):
        response = run(client, "status", supplierId="nope")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "Unknown supplier"

    def test_supplier_without_sync(self, client):
        response = run(client, "pageSync", supplierId="sanmar")
        assert response.status_code == 400

    def test_upstream_failure_is_internal_error(self, client, ss_api):
        ss_api.failing = {"5000"}

        response = run(client, "syncSingle", styleId="5000")

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "Internal server error"

    def test_malformed_body(self, client):
        response = client.post("/catalog", json={"params": {}}, headers=HEADERS)
        assert response.status_code == 422


class TestAccess:

    def test_missing_api_key(self, client):
        response = client.post("/catalog", json={"op": "status"})

        assert response.status_code == 401
        assert response.json()["error"] == "Missing API Key"

    def test_health_is_open(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert [c["supplier"] for c in body["circuits"]] == ["ss", "sanmar"]

    def test_rate_limit_headers(self, client):
        response = run(client, "status")
        assert response.headers["X-RateLimit-Remaining"] == str(settings.api_requests_per_minute - 1)


class TestRateLimiter:

    @pytest.fixture
    def limited_client(self):
        cache = MemoryCache()
        limited = FastAPI()
        limited.add_middleware(RateLimitMiddleware, cache_provider=lambda: cache, requests_per_minute=2)

        @limited.get("/ping")
        async def ping():
            return {"ok": True}

        return TestClient(limited)

    def test_third_request_in_a_minute_is_rejected(self, limited_client):
        statuses = [limited_client.get("/ping", headers=HEADERS).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        rejected = limited_client.get("/ping", headers=HEADERS)
        assert rejected.headers["Retry-After"] == "60"
        assert rejected.json()["limit"] == 2

    def test_limits_are_per_key(self, limited_client):
        for _ in range(2):
            limited_client.get("/ping", headers=HEADERS)

        response = limited_client.get("/ping", headers={"x-api-key": "other-key"})
        assert response.status_code == 200

    def test_anonymous_clients_when_key_optional(self):
        cache = MemoryCache()
        open_app = FastAPI()
        open_app.add_middleware(
            RateLimitMiddleware, cache_provider=lambda: cache, requests_per_minute=1, require_key=False
        )

        @open_app.get("/ping")
        async def ping():
            return {"ok": True}

        client = TestClient(open_app)
        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 429

"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional, Set

import httpx
import pytest

from supplier_catalog.adapters.base import PlaceholderAdapter
from supplier_catalog.adapters.registry import AdapterRegistry
from supplier_catalog.adapters.ss_activewear import SSActivewearAdapter
from supplier_catalog.core.cache import MemoryCache
from supplier_catalog.core.config import Settings
from supplier_catalog.core.http_client import RetryingHttpClient
from supplier_catalog.runtime import CatalogRuntime
from supplier_catalog.storage.memory import MemoryCatalogStore

# Query parameters that carry paging or formatting, never an identifier.
NON_IDENTIFIER_PARAMS = {"page", "pagesize", "mediatype", "fields", "category", "fobid"}


def sku_record(style_id: int, sku: str, size: str, color: str, price: float, warehouses: Dict[str, int]) -> Dict[str, Any]:
    return {
        "sku": sku,
        "styleID": style_id,
        "brandName": "Gildan",
        "styleName": STYLES[style_id]["styleName"],
        "colorName": color,
        "color1": "000000" if color == "Black" else "FFFFFF",
        "sizeName": size,
        "price": price,
        "colorFrontImage": f"Images/Color/{sku}_f_fm.jpg",
        "warehouses": [{"warehouseAbbr": code, "qty": qty} for code, qty in warehouses.items()],
    }


STYLES: Dict[int, Dict[str, Any]] = {
    2000: {"styleID": 2000, "brandName": "Gildan", "styleName": "Ultra Cotton T-Shirt",
           "description": "6 oz. 100% cotton", "baseCategory": "T-Shirts", "styleImage": "Images/Style/39_fm.jpg"},
    5000: {"styleID": 5000, "brandName": "Gildan", "styleName": "Heavy Cotton T-Shirt",
           "description": "5.3 oz. 100% cotton", "baseCategory": "T-Shirts", "styleImage": "Images/Style/40_fm.jpg"},
    18500: {"styleID": 18500, "brandName": "Gildan", "styleName": "Heavy Blend Hooded Sweatshirt",
            "description": "8 oz. 50/50", "baseCategory": "Fleece", "styleImage": "Images/Style/41_fm.jpg"},
}

SKUS: Dict[int, List[Dict[str, Any]]] = {
    2000: [
        sku_record(2000, "B00760003", "M", "Black", 3.42, {"IL": 10, "KS": 5}),
        sku_record(2000, "B00760004", "L", "Black", 3.42, {"IL": 7}),
        sku_record(2000, "B00760005", "2X-Large", "White", 5.12, {"NV": 2}),
    ],
    5000: [
        sku_record(5000, "B01500003", "M", "Black", 2.95, {"IL": 30}),
    ],
    18500: [
        sku_record(18500, "B08500003", "M", "Black", 12.48, {"TX": 4}),
        sku_record(18500, "B08500004", "XL", "White", 12.48, {"GA": 9}),
    ],
}


class FakeSSApi:
    """
    In-memory stand-in for the S&S REST API, served through httpx.MockTransport.

    Records every call; styles listed in `failing` answer 500.
    """

    def __init__(self):
        self.failing: Set[str] = set()
        self.status_override: Optional[int] = None
        self.calls: List[tuple] = []

    def calls_to(self, endpoint: str) -> List[Dict[str, str]]:
        return [params for _, path, params in self.calls if path == endpoint.lower()]

    @staticmethod
    def _identifier(params: Dict[str, str]) -> Optional[str]:
        for key, value in params.items():
            if key.lower() not in NON_IDENTIFIER_PARAMS:
                return value
        return None

    def _styles_matching(self, query: Optional[str]) -> List[Dict[str, Any]]:
        if query is None:
            return list(STYLES.values())
        query = query.strip().lower()
        return [
            style for style in STYLES.values()
            if query in (str(style["styleID"]), style["brandName"].lower(), style["styleName"].lower())
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rstrip("/").rsplit("/", 1)[-1].lower()
        params = dict(request.url.params)
        self.calls.append((request.method, endpoint, params))

        if self.status_override is not None:
            return httpx.Response(self.status_override, json={"message": "unavailable"})

        query = self._identifier(params)
        if query in self.failing:
            return httpx.Response(500, json={"message": f"boom for {query}"})

        if endpoint == "styles":
            return httpx.Response(200, json=self._styles_matching(query))
        if endpoint in ("products", "inventory"):
            records = SKUS.get(int(query), []) if query and query.isdigit() else []
            return httpx.Response(200, json=records)
        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
    return _sleep


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ss_account_number="1234567",
        ss_api_key="test-api-key",
        seed_search_terms=["gildan"],
        sync_seed_search_delay_seconds=0,
        sync_page_budget_seconds=5,
    )


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def store() -> MemoryCatalogStore:
    return MemoryCatalogStore()


@pytest.fixture
def ss_api() -> FakeSSApi:
    return FakeSSApi()


@pytest.fixture
def make_adapter(settings, cache, ss_api, fake_sleep):
    """Build an S&S adapter wired to the fake API (or any other handler)."""

    def _make(handler=None, adapter_settings: Optional[Settings] = None) -> SSActivewearAdapter:
        http = RetryingHttpClient(
            "ss",
            transport=httpx.MockTransport(handler or ss_api.handler),
            sleep=fake_sleep,
            jitter=lambda a, b: 0.0,
        )
        return SSActivewearAdapter(adapter_settings or settings, cache, http=http, sleep=fake_sleep)

    return _make


@pytest.fixture
def ss_adapter(make_adapter) -> SSActivewearAdapter:
    return make_adapter()


@pytest.fixture
def registry(ss_adapter) -> AdapterRegistry:
    return AdapterRegistry([ss_adapter, PlaceholderAdapter("sanmar", "SanMar")])


@pytest.fixture
def runtime(settings, cache, store, registry) -> CatalogRuntime:
    return CatalogRuntime(settings, cache, store, registry)

"""
S&S Activewear adapter.

REST API v2 for catalog, inventory and pricing; the PromoStandards SOAP
inventory service as a secondary inventory source.

The upstream accepts identifiers under different query parameter names
depending on the endpoint and the kind of identifier. The candidate names
are class-level configuration and are tried in order, first non-empty
result wins.
"""

import asyncio
import logging
import math
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from supplier_catalog.adapters.base import (
    BATCH_INVENTORY,
    BROWSE,
    INVENTORY_BY_SKU,
    INVENTORY_MATRIX,
    PRODUCT_BY_STYLE,
    SEARCH,
    SupplierAdapter,
)
from supplier_catalog.adapters.soap import SoapInventoryClient, parts_to_matrix
from supplier_catalog.core.cache import CacheBackend
from supplier_catalog.core.config import Settings
from supplier_catalog.core.exceptions import SupplierConfigError, SupplierError, UpstreamStatusError
from supplier_catalog.core.http_client import RetryingHttpClient, credential_strategies, mask_secret
from supplier_catalog.core.normalizer import (
    STYLE_ID_KEYS,
    digits_only,
    first_of,
    is_discontinued,
    items_of,
    map_inventory_matrix,
    map_inventory_snapshot,
    map_pricing,
    map_products,
    map_style_detail,
    matrix_to_summary,
    to_int,
)
from supplier_catalog.fallback import FallbackCatalog
from supplier_catalog.models import (
    ConnectionTestResult,
    InventoryMatrix,
    InventorySummary,
    Product,
    ProductPage,
    utcnow,
)

logger = logging.getLogger(__name__)

PRICING_CONTAINERS = ("Inventory", "variants", "skus", "products", "items", "Results")


class SSActivewearAdapter(SupplierAdapter):
    """Adapter for api.ssactivewear.com."""

    id = "ss"
    name = "S&S Activewear"
    capabilities = frozenset({SEARCH, PRODUCT_BY_STYLE, INVENTORY_BY_SKU, BATCH_INVENTORY, INVENTORY_MATRIX, BROWSE})

    # Query parameter candidates for the Styles endpoint, in the order tried.
    style_id_params: Sequence[str] = ("styleId", "STYLEID", "style", "styleNumber")
    part_number_params: Sequence[str] = ("partNumber", "PARTNUMBER", "part")
    free_text_params: Sequence[str] = ("search", "q", "query")
    # (endpoint, parameter) pairs for fetching a style's sku records.
    product_lookups: Sequence[Tuple[str, str]] = (
        ("Products", "STYLEID"),
        ("products", "STYLEID"),
        ("Products", "PARTNUMBER"),
        ("products", "PARTNUMBER"),
    )

    style_id_like = re.compile(r"^[A-Za-z0-9\-]+$")
    numeric_style_id = re.compile(r"^\d{3,6}$")

    def __init__(
        self,
        settings: Settings,
        cache: CacheBackend,
        http: Optional[RetryingHttpClient] = None,
        fallback: Optional[FallbackCatalog] = None,
        soap: Optional[SoapInventoryClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self.cache = cache
        self.http = http or RetryingHttpClient.from_settings(self.id, settings)
        self.fallback = fallback or FallbackCatalog()
        self.soap = soap or SoapInventoryClient(
            self.http, settings.ss_soap_inventory_url, settings.ss_account_number, settings.ss_api_key
        )
        self.base_url = settings.ss_base_url.rstrip("/") + "/"
        self.cdn_base = settings.ss_cdn_base
        self._strategies = credential_strategies(settings.ss_account_number, settings.ss_api_key)
        self._sleep = sleep

    # --- plumbing ----------------------------------------------------------

    def validate_configuration(self) -> None:
        if not self.settings.has_ss_credentials:
            raise SupplierConfigError("Missing required S&S credentials: SS_ACCOUNT_NUMBER and/or SS_API_KEY")
        if not self.base_url.startswith("http"):
            raise SupplierConfigError(f"Invalid SS_BASE_URL: {self.settings.ss_base_url}")

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.validate_configuration()
        query = {k: str(v) for k, v in (params or {}).items()}
        query["mediaType"] = "json"
        body, _ = await self.http.request(self.base_url + path, params=query, strategies=self._strategies)
        return body

    async def aclose(self) -> None:
        await self.http.aclose()

    def stats(self, reset: bool = False) -> Dict[str, Any]:
        return self.http.stats(reset=reset)

    # --- identifier resolution ---------------------------------------------

    def _style_param_candidates(self, query: str) -> List[str]:
        candidates: List[str] = []
        if self.style_id_like.match(query or ""):
            candidates.extend(self.style_id_params)
        candidates.extend(self.part_number_params)
        candidates.extend(self.free_text_params)
        return candidates

    async def find_style_records(self, query: str, page: int = 1, page_size: int = 8) -> List[Dict[str, Any]]:
        """
        Raw style records matching `query`, from the first parameter name
        that returns anything. A parameter rejected with a 4xx moves on to
        the next. Server errors, rate limits and network failures end the
        lookup and propagate.
        """
        for param in self._style_param_candidates(query):
            try:
                payload = await self._get("Styles", {param: query, "page": page, "pageSize": page_size})
            except UpstreamStatusError as e:
                if e.is_server_error:
                    raise
                logger.debug(f"Styles?{param}= rejected ({e.status_code}), trying next parameter")
                continue

            records = [r for r in items_of(payload) if digits_only(first_of(r, STYLE_ID_KEYS, ""))]
            if records:
                logger.debug(f"'{query}' resolved via Styles?{param}= to {len(records)} styles")
                return records
        return []

    async def search_styles(self, query: str, page: int = 1, page_size: int = 8) -> List[str]:
        style_ids: List[str] = []
        for record in await self.find_style_records(query, page, page_size):
            style_id = digits_only(first_of(record, STYLE_ID_KEYS, ""))
            if style_id not in style_ids:
                style_ids.append(style_id)
        return style_ids

    async def resolve_style_id(self, input_id: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Best-effort mapping of a user-supplied code to (style id, style query).

        A well-formed numeric id is confirmed directly; anything else goes
        through search and takes the top match. Never raises: on any failure
        both values are None and callers use the raw input.
        """
        candidate = str(input_id or "").strip()
        if not candidate:
            return None, None

        try:
            if self.numeric_style_id.match(candidate):
                payload = await self._get("products", {"styleid": candidate})
                if items_of(payload):
                    return candidate, None

            matches = await self.search_products(candidate, limit=1)
            if matches:
                top = matches[0]
                style_query = f"{top.brand} {top.name}".strip() if top.brand and top.name else None
                return top.style_id or None, style_query
        except (SupplierError, httpx.HTTPError) as e:
            logger.warning(f"Could not resolve style id for '{candidate}': {str(e)}")
        return None, None

    # --- catalog -----------------------------------------------------------

    async def _fetch_style_records(self, style_id: str, page_size: int = 200) -> Any:
        last_error: Optional[Exception] = None
        payload: Any = {}
        for endpoint, param in self.product_lookups:
            try:
                payload = await self._get(endpoint, {param: style_id, "page": 1, "pageSize": page_size})
            except UpstreamStatusError as e:
                if e.is_server_error:
                    raise
                last_error = e
                continue
            if items_of(payload):
                return payload
        if last_error is not None and not items_of(payload):
            raise last_error
        return payload

    async def search_products(self, term: str, limit: int = 8) -> List[Product]:
        cache_key = self.cache.get_cache_key("search", term, 1, limit)
        cached = await self.cache.get(cache_key)
        if cached:
            return [Product.model_validate(p) for p in cached][:limit]

        style_ids = await self.search_styles(term, page=1, page_size=limit)
        products: List[Product] = []
        seen = set()
        for style_id in style_ids[:limit]:
            try:
                payload = await self._fetch_style_records(style_id)
            except UpstreamStatusError as e:
                logger.warning(f"Skipping style {style_id} for '{term}': {str(e)}")
                continue
            for product in map_products(payload, self.id, self.cdn_base):
                if product.style_id not in seen:
                    seen.add(product.style_id)
                    products.append(product)

        products = products[:limit]
        if products:
            await self.cache.set(
                cache_key, [p.model_dump(mode="json") for p in products], ttl=self.settings.catalog_ttl_seconds
            )
        logger.info(f"{self.name}: '{term}' -> {len(products)} products")
        return products

    async def get_product_by_style(self, style_id: str) -> Optional[Product]:
        cache_key = self.cache.get_cache_key("style", style_id)
        cached = await self.cache.get(cache_key)
        if cached:
            return Product.model_validate(cached)

        payload = await self._fetch_style_records(style_id)
        products = map_products(payload, self.id, self.cdn_base)
        wanted = digits_only(style_id)
        product = next((p for p in products if p.style_id == wanted), products[0] if products else None)
        if product is not None:
            await self.cache.set(cache_key, product.model_dump(mode="json"), ttl=self.settings.catalog_ttl_seconds)
        return product

    async def browse_products(self, page: int = 1, page_size: int = 20, category: Optional[str] = None) -> ProductPage:
        """
        One page of styles. Falls back to the curated catalog, tagged
        source="fallback", when the live call fails or returns nothing.
        """
        page = max(1, page)
        page_size = max(1, min(page_size, 200))
        params: Dict[str, Any] = {"page": page, "pageSize": page_size}
        if category:
            params["category"] = category

        try:
            payload = await self._get("Styles", params)
        except (SupplierError, httpx.HTTPError) as e:
            logger.warning(f"{self.name}: browse failed, serving fallback catalog: {str(e)}")
            return await self.fallback.page(page, page_size, category)

        products = map_products(payload, self.id, self.cdn_base)
        if not products:
            logger.warning(f"{self.name}: browse returned no styles, serving fallback catalog")
            return await self.fallback.page(page, page_size, category)

        total = to_int(first_of(payload, ("totalProducts", "total", "TotalCount", "count"), 0)) if isinstance(payload, dict) else 0
        if total < len(products):
            total = (page - 1) * page_size + len(products)
        total_pages = math.ceil(total / page_size)
        return ProductPage(
            products=products[:page_size],
            page=page,
            page_size=page_size,
            total_products=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
            source="live",
        )

    # --- inventory ---------------------------------------------------------

    async def get_inventory_matrix(self, style_id: str, force: bool = False) -> InventoryMatrix:
        """
        Warehouse x size quantities for a style, cached for the inventory TTL.
        `force` skips the cache read but still refreshes the entry. An empty
        matrix is never cached.
        """
        style_id = digits_only(style_id) or str(style_id)
        cache_key = self.cache.get_cache_key("inv", style_id)
        if not force:
            cached = await self.cache.get(cache_key)
            if cached:
                return InventoryMatrix.model_validate(cached)

        try:
            payload = await self._get(
                "Products",
                {"STYLEID": style_id, "page": 1, "pageSize": 200, "fields": "SKU,QTY,WAREHOUSES,SIZE,COLOR"},
            )
            matrix = map_inventory_matrix(payload, style_id)
        except (UpstreamStatusError, httpx.TransportError) as e:
            logger.warning(f"{self.name}: REST inventory failed for {style_id}, trying SOAP: {str(e)}")
            matrix = parts_to_matrix(await self.soap.get_inventory_levels(style_id), style_id)

        if matrix.qty:
            await self.cache.set(cache_key, matrix.model_dump(mode="json"), ttl=self.settings.inventory_ttl_seconds)
        else:
            logger.info(f"{self.name}: no inventory records for style {style_id}, not caching")
        return matrix

    async def get_inventory_by_sku(self, sku: str) -> Optional[InventorySummary]:
        style_id = digits_only(sku)
        if not style_id:
            style_id, _ = await self.resolve_style_id(sku)
        if not style_id:
            return None
        matrix = await self.get_inventory_matrix(style_id)
        return matrix_to_summary(matrix, sku=sku)

    async def get_inventory(self, style_ids: Sequence[str] = (), skus: Sequence[str] = ()) -> List[InventorySummary]:
        ids: List[str] = []
        for raw in list(style_ids) or list(skus):
            style_id = digits_only(raw)
            if style_id and style_id not in ids:
                ids.append(style_id)

        summaries = []
        for style_id in ids:
            matrix = await self.get_inventory_matrix(style_id)
            summaries.append(matrix_to_summary(matrix))
        return summaries

    # --- sync support ------------------------------------------------------

    async def list_sellable_style_ids(self) -> Tuple[List[str], str]:
        """
        Style ids to sync, from seed searches. The list is cached under the
        catalog TTL so successive pages slice the same list. Returns
        (ids, "live") or the curated list with "curated".
        """
        cache_key = self.cache.get_cache_key("sellable", "ids")
        cached = await self.cache.get(cache_key)
        if cached:
            return list(cached), "live"

        limit = self.settings.sync_max_sellable_ids
        found: List[str] = []
        for index, term in enumerate(self.settings.seed_search_terms):
            if len(found) >= limit:
                break
            if index:
                await self._sleep(self.settings.sync_seed_search_delay_seconds)
            try:
                for style_id in await self.search_styles(term):
                    if style_id not in found:
                        found.append(style_id)
            except (SupplierError, httpx.HTTPError) as e:
                logger.warning(f"Seed search '{term}' failed, skipping remaining terms: {str(e)}")
                break

        found = found[:limit]
        if found:
            await self.cache.set(cache_key, found, ttl=self.settings.catalog_ttl_seconds)
            logger.info(f"✅ Found {len(found)} sellable style ids")
            return found, "live"

        logger.warning("No sellable styles from live search, using curated style ids")
        return list(self.settings.known_style_ids), "curated"

    async def _records(self, endpoint: str, params: Dict[str, Any], containers: Sequence[str] = ()) -> List[Dict[str, Any]]:
        payload = await self._get(endpoint, params)
        return items_of(payload, containers) if containers else items_of(payload)

    async def get_style_detail(self, style_id: str, style_query: Optional[str] = None) -> Dict[str, Any]:
        """
        Descriptive fields for one style: styles endpoint first, products
        endpoint when that fails or is empty.

        Raises:
            SupplierError: No data, or every record is discontinued
        """
        product_params: Dict[str, Any] = {"style": style_query} if style_query else {"styleid": style_id}
        source = "styles_api"
        try:
            records = await self._records("styles", {"styleId": style_id})
        except UpstreamStatusError as e:
            logger.warning(f"Styles API failed for {style_id} ({e.status_code}), trying Products API")
            records = []
        if not records:
            source = "products_api"
            records = await self._records("products", product_params)

        if not records:
            raise SupplierError(f"No product data returned for style {style_id}")
        active = [r for r in records if not is_discontinued(r)]
        if not active:
            raise SupplierError(f"Style {style_id} appears discontinued or inactive")

        detail = map_style_detail(style_id, active, self.cdn_base)
        detail["source"] = source
        return detail

    async def get_inventory_snapshot(self, style_id: str) -> Dict[str, Any]:
        """Per-part stock for a style; SOAP inventory when REST fails."""
        try:
            records = await self._records(
                "products",
                {"styleid": style_id, "page": 1, "pageSize": 50,
                 "fields": "sku,qty,warehouses,size,color,isDiscontinued,isCloseout"},
            )
            return map_inventory_snapshot(records)
        except (UpstreamStatusError, httpx.TransportError) as e:
            logger.warning(f"REST inventory failed for {style_id}, trying SOAP: {str(e)}")

        parts = await self.soap.get_inventory_levels(style_id)
        return {
            "totalQuantity": sum(p["quantity"] for p in parts),
            "parts": [
                {"partId": p["partId"], "color": p["partColor"], "size": p["labelSize"], "quantity": p["quantity"]}
                for p in parts
            ],
            "source": "soap_api",
        }

    async def get_pricing(self, style_id: str, style_query: Optional[str] = None, fob_id: str = "IL") -> Dict[str, Any]:
        """Price range from the inventory endpoint, products endpoint as secondary source."""
        product_params: Dict[str, Any] = {"style": style_query} if style_query else {"styleid": style_id}
        product_params.update({"page": 1, "pageSize": 200})
        currency = self.settings.price_currency

        pricing: Dict[str, Any] = {"minPrice": None}
        try:
            records = await self._records("inventory", {"styleId": style_id, "fobId": fob_id}, PRICING_CONTAINERS)
            pricing = map_pricing(records, fob_id, currency)
            pricing["source"] = "inventory_api"
        except UpstreamStatusError as e:
            logger.warning(f"Inventory API failed for pricing of {style_id} ({e.status_code}), trying Products API")

        if pricing["minPrice"] is None:
            records = await self._records("products", product_params)
            pricing = map_pricing(records, fob_id, currency)
            pricing["source"] = "products_api"

        pricing["priceLastUpdated"] = utcnow().isoformat()
        return pricing

    async def test_connection(self) -> ConnectionTestResult:
        started = time.perf_counter()
        try:
            payload = await self._get("Products", {"page": 1, "pageSize": 1})
        except (SupplierError, httpx.HTTPError) as e:
            logger.error(f"❌ {self.name} connection test failed: {str(e)}")
            return ConnectionTestResult(success=False, supplier=self.id, message=str(e))

        latency_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.info(
            f"✅ {self.name} connection OK for account {mask_secret(self.settings.ss_account_number)} "
            f"({latency_ms}ms)"
        )
        return ConnectionTestResult(
            success=True,
            supplier=self.id,
            message="Connected",
            latency_ms=latency_ms,
            sample_count=len(items_of(payload)),
        )

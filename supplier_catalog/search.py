"""
Catalog search service - fans a query out to every registered supplier.

A supplier that fails, times out or has an open circuit contributes zero
results; it never fails the aggregate. Output order follows registration
order, not completion order.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from supplier_catalog.adapters.base import BATCH_INVENTORY, INVENTORY_BY_SKU, SupplierAdapter
from supplier_catalog.adapters.registry import AdapterRegistry
from supplier_catalog.core.circuit_breaker import CircuitBreaker
from supplier_catalog.core.normalizer import to_unified_product
from supplier_catalog.models import InventorySummary, Product, UnifiedProduct

logger = logging.getLogger(__name__)

Hit = Tuple[Product, Optional[InventorySummary]]


class LocalIdAllocator:
    """Sequential ids, stable per (supplier_id, sku) for the life of the process."""

    def __init__(self):
        self._ids: Dict[Tuple[str, str], int] = {}

    def id_for(self, supplier_id: str, sku: str) -> int:
        key = (supplier_id, sku)
        if key not in self._ids:
            self._ids[key] = len(self._ids) + 1
        return self._ids[key]


class CatalogSearchService:
    """
    Service layer for cross-supplier search.
    Handles fan-out, failure isolation and inventory attachment.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        inventory_concurrency: int = 3,
        adapter_timeout: float = 90.0,
        ids: Optional[LocalIdAllocator] = None,
    ):
        self.registry = registry
        self.adapter_timeout = adapter_timeout
        self.ids = ids or LocalIdAllocator()
        self._inventory_slots = asyncio.Semaphore(inventory_concurrency)
        self.breakers: Dict[str, CircuitBreaker] = {
            adapter.id: CircuitBreaker(adapter.id, failure_threshold=3, cooldown_seconds=30)
            for adapter in registry
        }

    def _breaker(self, adapter: SupplierAdapter) -> CircuitBreaker:
        if adapter.id not in self.breakers:
            self.breakers[adapter.id] = CircuitBreaker(adapter.id)
        return self.breakers[adapter.id]

    async def _attach_inventory(self, adapter: SupplierAdapter, product: Product) -> Optional[InventorySummary]:
        """
        Best-effort stock for one product: batch lookup by style id first,
        per-sku lookup second, None when both fail.
        """
        async with self._inventory_slots:
            if adapter.supports(BATCH_INVENTORY) and product.style_id:
                try:
                    summaries = await adapter.get_inventory(style_ids=[product.style_id])
                    if summaries:
                        return summaries[0]
                except Exception as e:
                    logger.debug(f"{adapter.id}: batch inventory failed for {product.style_id}: {str(e)}")

            if adapter.supports(INVENTORY_BY_SKU):
                try:
                    return await adapter.get_inventory_by_sku(product.sku or product.style_id)
                except Exception as e:
                    logger.debug(f"{adapter.id}: sku inventory failed for {product.sku}: {str(e)}")
        return None

    async def _search_adapter(self, adapter: SupplierAdapter, query: str, limit: int, page: int) -> List[Hit]:
        async def fetch() -> List[Product]:
            return await asyncio.wait_for(adapter.search_products(query, limit * page), timeout=self.adapter_timeout)

        try:
            products = await self._breaker(adapter).call(fetch)
        except Exception as e:
            logger.warning(f"{adapter.id}: search for '{query}' failed, omitting supplier: {e!r}")
            return []

        products = products[(page - 1) * limit: page * limit]
        inventories = await asyncio.gather(*(self._attach_inventory(adapter, p) for p in products))
        return list(zip(products, inventories))

    async def search(self, query: str, limit: int = 8, page: int = 1) -> List[UnifiedProduct]:
        """
        Search all suppliers in parallel.

        Args:
            query: Free-text query, style id or part number
            limit: Results per supplier per page
            page: 1-based page

        Returns:
            Unified products, grouped by supplier in registration order
        """
        query = (query or "").strip()
        if not query:
            return []
        page = max(1, page)

        adapters = self.registry.all()
        logger.info(f"Searching {len(adapters)} suppliers for '{query}' (page {page})")
        per_adapter = await asyncio.gather(*(self._search_adapter(a, query, limit, page) for a in adapters))

        unified: List[UnifiedProduct] = []
        for adapter, hits in zip(adapters, per_adapter):
            for product, inventory in hits:
                local_id = self.ids.id_for(adapter.id, product.sku or product.style_id)
                unified.append(to_unified_product(product, adapter.name, local_id, inventory))

        logger.info(f"Search '{query}' returned {len(unified)} products")
        return unified

    def circuit_states(self) -> List[dict]:
        return [breaker.get_state() for breaker in self.breakers.values()]

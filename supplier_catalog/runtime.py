"""
Process-wide wiring: settings, cache, store, adapters, search and sync.

The API and the Celery workers each build one runtime per process.
"""

import logging
from typing import Optional

from supplier_catalog.adapters.registry import AdapterRegistry, build_registry
from supplier_catalog.adapters.ss_activewear import SSActivewearAdapter
from supplier_catalog.core.cache import CacheBackend, build_cache
from supplier_catalog.core.config import Settings
from supplier_catalog.core.exceptions import CapabilityNotSupported
from supplier_catalog.search import CatalogSearchService
from supplier_catalog.storage.base import CatalogStore
from supplier_catalog.storage.sql import build_store
from supplier_catalog.sync.pipeline import CatalogSyncPipeline

logger = logging.getLogger(__name__)


class CatalogRuntime:

    def __init__(
        self,
        settings: Settings,
        cache: CacheBackend,
        store: CatalogStore,
        registry: AdapterRegistry,
    ):
        self.settings = settings
        self.cache = cache
        self.store = store
        self.registry = registry
        self.search = CatalogSearchService(registry, inventory_concurrency=settings.sync_concurrency)
        self.pipelines = {
            adapter.id: CatalogSyncPipeline(adapter, store, settings)
            for adapter in registry
            if isinstance(adapter, SSActivewearAdapter)
        }

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CatalogRuntime":
        settings = settings or Settings.from_env()
        cache = build_cache(settings)
        return cls(settings, cache, build_store(settings.database_url), build_registry(settings, cache))

    def pipeline(self, supplier_id: str = "ss") -> CatalogSyncPipeline:
        # Unknown ids raise UnknownSupplierError from the registry.
        adapter = self.registry.get(supplier_id)
        if adapter.id not in self.pipelines:
            raise CapabilityNotSupported(adapter.id, "catalog sync")
        return self.pipelines[adapter.id]

    async def connect(self) -> None:
        await self.cache.connect()
        await self.store.connect()
        logger.info(f"Runtime ready: {len(self.registry)} suppliers, cache={self.settings.cache_backend}")

    async def disconnect(self) -> None:
        for pipeline in self.pipelines.values():
            await pipeline.drain()
        await self.registry.aclose()
        await self.store.disconnect()
        await self.cache.disconnect()


_runtime: Optional[CatalogRuntime] = None


def get_runtime() -> CatalogRuntime:
    global _runtime
    if _runtime is None:
        _runtime = CatalogRuntime.from_settings()
    return _runtime


def set_runtime(runtime: Optional[CatalogRuntime]) -> None:
    global _runtime
    _runtime = runtime

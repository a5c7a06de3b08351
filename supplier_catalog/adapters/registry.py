"""Static collection of configured supplier adapters."""

from typing import Dict, Iterator, List, Optional

from supplier_catalog.adapters.base import PlaceholderAdapter, SupplierAdapter
from supplier_catalog.adapters.ss_activewear import SSActivewearAdapter
from supplier_catalog.core.cache import CacheBackend
from supplier_catalog.core.config import Settings
from supplier_catalog.core.exceptions import UnknownSupplierError


class AdapterRegistry:
    """Adapters in registration order; ids are unique."""

    def __init__(self, adapters: Optional[List[SupplierAdapter]] = None):
        self._adapters: Dict[str, SupplierAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: SupplierAdapter) -> None:
        if adapter.id in self._adapters:
            raise ValueError(f"Duplicate adapter id: {adapter.id}")
        self._adapters[adapter.id] = adapter

    def get(self, adapter_id: str) -> SupplierAdapter:
        try:
            return self._adapters[adapter_id]
        except KeyError:
            raise UnknownSupplierError(f"Unknown supplier: {adapter_id}") from None

    def all(self) -> List[SupplierAdapter]:
        return list(self._adapters.values())

    def __iter__(self) -> Iterator[SupplierAdapter]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._adapters)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()


def build_registry(settings: Settings, cache: CacheBackend) -> AdapterRegistry:
    return AdapterRegistry([
        SSActivewearAdapter(settings, cache),
        PlaceholderAdapter("sanmar", "SanMar"),
        PlaceholderAdapter("stormtech", "Stormtech"),
    ])

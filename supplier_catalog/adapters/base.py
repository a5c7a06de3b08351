"""
Supplier adapter contract.

Every supplier implements whichever subset of the capabilities it can back.
Callers check `supports()` before using an optional capability; calling an
unsupported one raises CapabilityNotSupported.
"""

from abc import ABC
from typing import Dict, FrozenSet, List, Optional, Sequence

from supplier_catalog.core.exceptions import CapabilityNotSupported
from supplier_catalog.models import InventoryMatrix, InventorySummary, Product, ProductPage

SEARCH = "search_products"
PRODUCT_BY_STYLE = "get_product_by_style"
INVENTORY_BY_SKU = "get_inventory_by_sku"
BATCH_INVENTORY = "get_inventory"
INVENTORY_MATRIX = "get_inventory_matrix"
BROWSE = "browse_products"


class SupplierAdapter(ABC):
    """Base class for one upstream catalog/inventory source."""

    id: str
    name: str
    capabilities: FrozenSet[str] = frozenset()

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    def validate_configuration(self) -> None:
        """Raise SupplierConfigError when the adapter cannot reach its supplier."""
        return None

    async def search_products(self, term: str, limit: int = 8) -> List[Product]:
        raise CapabilityNotSupported(self.id, SEARCH)

    async def get_product_by_style(self, style_id: str) -> Optional[Product]:
        raise CapabilityNotSupported(self.id, PRODUCT_BY_STYLE)

    async def get_inventory_by_sku(self, sku: str) -> Optional[InventorySummary]:
        raise CapabilityNotSupported(self.id, INVENTORY_BY_SKU)

    async def get_inventory(
        self, style_ids: Sequence[str] = (), skus: Sequence[str] = ()
    ) -> List[InventorySummary]:
        raise CapabilityNotSupported(self.id, BATCH_INVENTORY)

    async def get_inventory_matrix(self, style_id: str, force: bool = False) -> InventoryMatrix:
        raise CapabilityNotSupported(self.id, INVENTORY_MATRIX)

    async def browse_products(self, page: int = 1, page_size: int = 20, category: Optional[str] = None) -> ProductPage:
        raise CapabilityNotSupported(self.id, BROWSE)

    async def aclose(self) -> None:
        return None

    def stats(self, reset: bool = False) -> Dict[str, object]:
        return {"supplier": self.id, "calls": 0, "failures": 0, "rate_limited": 0, "avg_latency_ms": 0.0}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


class PlaceholderAdapter(SupplierAdapter):
    """
    A supplier that is registered but not wired to an endpoint yet.
    Answers every lookup with nothing.
    """

    capabilities = frozenset({SEARCH, PRODUCT_BY_STYLE, INVENTORY_BY_SKU})

    def __init__(self, adapter_id: str, name: str):
        self.id = adapter_id
        self.name = name

    async def search_products(self, term: str, limit: int = 8) -> List[Product]:
        return []

    async def get_product_by_style(self, style_id: str) -> Optional[Product]:
        return None

    async def get_inventory_by_sku(self, sku: str) -> Optional[InventorySummary]:
        return None

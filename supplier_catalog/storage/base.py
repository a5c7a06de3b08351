"""Storage interface consumed by the sync pipeline."""

from abc import ABC, abstractmethod
from typing import List, Optional

from supplier_catalog.models import ProductSyncRecord, SyncStatusRecord


class CatalogStore(ABC):
    """
    Durable product and supplier-status rows.

    upsert_product writes the whole row keyed by (supplier_id, style_id):
    the stored row is always exactly one writer's record.
    """

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    @abstractmethod
    async def upsert_product(self, record: ProductSyncRecord) -> ProductSyncRecord:
        ...

    @abstractmethod
    async def get_product(self, supplier_id: str, style_id: str) -> Optional[ProductSyncRecord]:
        ...

    @abstractmethod
    async def count_products(self, supplier_id: str) -> int:
        ...

    @abstractmethod
    async def list_active_products(self, supplier_id: str, limit: int) -> List[ProductSyncRecord]:
        """Active rows with a primary image, most recently synced first."""

    @abstractmethod
    async def get_supplier_status(self, supplier_id: str) -> Optional[SyncStatusRecord]:
        ...

    @abstractmethod
    async def save_supplier_status(self, record: SyncStatusRecord) -> SyncStatusRecord:
        ...

"""In-process store, used when no DATABASE_URL is configured."""

from typing import Dict, List, Optional, Tuple

from supplier_catalog.models import ProductSyncRecord, ProductSyncStatus, SyncStatusRecord
from supplier_catalog.storage.base import CatalogStore


class MemoryCatalogStore(CatalogStore):

    def __init__(self):
        self._products: Dict[Tuple[str, str], ProductSyncRecord] = {}
        self._statuses: Dict[str, SyncStatusRecord] = {}

    async def upsert_product(self, record: ProductSyncRecord) -> ProductSyncRecord:
        self._products[(record.supplier_id, record.style_id)] = record.model_copy(deep=True)
        return record

    async def get_product(self, supplier_id: str, style_id: str) -> Optional[ProductSyncRecord]:
        row = self._products.get((supplier_id, style_id))
        return row.model_copy(deep=True) if row else None

    async def count_products(self, supplier_id: str) -> int:
        return sum(1 for key in self._products if key[0] == supplier_id)

    async def list_active_products(self, supplier_id: str, limit: int) -> List[ProductSyncRecord]:
        rows = [
            row for (sid, _), row in self._products.items()
            if sid == supplier_id and row.sync_status == ProductSyncStatus.ACTIVE and row.primary_image_url
        ]
        rows.sort(key=lambda r: r.last_synced, reverse=True)
        return [row.model_copy(deep=True) for row in rows[:limit]]

    async def get_supplier_status(self, supplier_id: str) -> Optional[SyncStatusRecord]:
        status = self._statuses.get(supplier_id)
        return status.model_copy() if status else None

    async def save_supplier_status(self, record: SyncStatusRecord) -> SyncStatusRecord:
        self._statuses[record.supplier_id] = record.model_copy()
        return record

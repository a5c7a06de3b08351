"""
Data models for the supplier catalog layer.
All models use Pydantic for validation and static typing.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DataSource = Literal["live", "fallback"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- supplier-native product ----------------------------------------------


class Color(CatalogModel):
    name: str = ""
    code: Optional[str] = None
    hex: Optional[str] = None


class Image(CatalogModel):
    url: str
    kind: str = "front"


class Variant(CatalogModel):
    """A sellable size/color combination of a style."""
    sku: str
    size: str = ""
    color: Color = Field(default_factory=Color)
    price: float = 0.0
    msrp: float = 0.0
    images: List[Image] = Field(default_factory=list)


class Product(CatalogModel):
    """
    A style as returned by one supplier.
    Variants may be empty when the supplier only exposes style-level data.
    """
    supplier_id: str
    style_id: str
    sku: str = ""
    name: str = ""
    brand: str = ""
    part_number: str = ""
    category: str = ""
    description: str = ""
    price: float = 0.0
    images: List[Image] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    source: DataSource = "live"


# --- inventory -------------------------------------------------------------


class WarehouseInventory(CatalogModel):
    warehouse: str
    name: str = ""
    total: int = 0
    by_size: Dict[str, int] = Field(default_factory=dict)

    @field_validator("total")
    @classmethod
    def non_negative(cls, v: int) -> int:
        return max(0, v)


class InventorySummary(CatalogModel):
    """
    Point-in-time stock snapshot for a sku or style.

    total_available always equals the sum of warehouse totals when a
    breakdown is present. as_of is None only for cached-unknown data.
    """
    sku: str = ""
    style_id: Optional[str] = None
    total_available: int = 0
    warehouses: List[WarehouseInventory] = Field(default_factory=list)
    as_of: Optional[datetime] = None

    @model_validator(mode="after")
    def total_matches_warehouses(self) -> "InventorySummary":
        if self.warehouses:
            self.total_available = sum(w.total for w in self.warehouses)
        self.total_available = max(0, self.total_available)
        return self

    def by_warehouse_size(self) -> Dict[str, Dict[str, int]]:
        return {w.warehouse: dict(w.by_size) for w in self.warehouses}


class InventoryMatrix(CatalogModel):
    """Warehouse x size grid for one style. qty keys are "WH|SIZE"."""
    style_id: str
    warehouses: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    qty: Dict[str, int] = Field(default_factory=dict)
    as_of: datetime = Field(default_factory=utcnow)

    @staticmethod
    def cell_key(warehouse: str, size: str) -> str:
        return f"{warehouse}|{size}"

    def quantity(self, warehouse: str, size: str) -> int:
        return self.qty.get(self.cell_key(warehouse, size), 0)


# --- unified search model --------------------------------------------------


class SupplierOffer(CatalogModel):
    supplier_id: str
    supplier: str
    price: float = 0.0
    inventory: int = 0
    inventory_by_warehouse_size: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    as_of: Optional[datetime] = None
    source: DataSource = "live"

    @field_validator("inventory")
    @classmethod
    def non_negative(cls, v: int) -> int:
        return max(0, v)


class UnifiedProduct(CatalogModel):
    """Cross-supplier product shown to callers."""
    id: int
    sku: str
    style_id: str = ""
    name: str = ""
    brand: str = ""
    category: str = ""
    lowest_price: float = 0.0
    image: Optional[str] = None
    colors: List[str] = Field(default_factory=list)
    suppliers: List[SupplierOffer] = Field(default_factory=list)

    @model_validator(mode="after")
    def lowest_price_from_offers(self) -> "UnifiedProduct":
        if self.suppliers:
            self.lowest_price = max(0.0, min(o.price for o in self.suppliers))
        return self


class ProductPage(CatalogModel):
    products: List[Product] = Field(default_factory=list)
    page: int = 1
    page_size: int = 20
    total_products: int = 0
    total_pages: int = 0
    has_next_page: bool = False
    has_prev_page: bool = False
    source: DataSource = "live"


# --- sync state ------------------------------------------------------------


class SupplierSyncState(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETE = "complete"
    ERROR = "error"


# complete -> syncing starts a new catalog pass.
_ALLOWED_TRANSITIONS = {
    SupplierSyncState.PENDING: {SupplierSyncState.SYNCING},
    SupplierSyncState.SYNCING: {SupplierSyncState.COMPLETE, SupplierSyncState.ERROR},
    SupplierSyncState.COMPLETE: {SupplierSyncState.SYNCING},
    SupplierSyncState.ERROR: {SupplierSyncState.SYNCING},
}


class InvalidTransition(ValueError):
    pass


class SyncStatusRecord(CatalogModel):
    supplier_id: str
    status: SupplierSyncState = SupplierSyncState.PENDING
    last_sync: Optional[datetime] = None
    last_error: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)

    def can_transition(self, target: SupplierSyncState) -> bool:
        return target == self.status or target in _ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: SupplierSyncState, error: Optional[str] = None) -> "SyncStatusRecord":
        """Return the record moved to `target`. Re-entering the same state is a no-op."""
        if not self.can_transition(target):
            raise InvalidTransition(f"{self.supplier_id}: {self.status.value} -> {target.value}")
        now = utcnow()
        update: Dict[str, Any] = {"status": target, "updated_at": now}
        if target == SupplierSyncState.COMPLETE:
            update["last_sync"] = now
            update["last_error"] = None
        elif target == SupplierSyncState.ERROR:
            update["last_error"] = error
        return self.model_copy(update=update)


class ProductSyncStatus(str, Enum):
    ACTIVE = "active"
    ERROR = "error"


class ProductSyncRecord(CatalogModel):
    """Persisted row for one synced style, unique on (supplier_id, style_id)."""
    supplier_id: str
    style_id: str
    name: str = ""
    brand: str = ""
    description: str = ""
    category: str = ""
    primary_image_url: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    min_price: float = 0.0
    max_price: float = 0.0
    currency: str = "USD"
    price_last_updated: Optional[datetime] = None
    colors: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    is_closeout: bool = False
    is_caution: bool = False
    is_on_demand: bool = False
    is_hazmat: bool = False
    sync_status: ProductSyncStatus = ProductSyncStatus.ACTIVE
    effective_date: Optional[str] = None
    end_date: Optional[str] = None
    last_change_date: Optional[str] = None
    source_data: Dict[str, Any] = Field(default_factory=dict)
    last_synced: datetime = Field(default_factory=utcnow)

    def is_fresh(self, ttl_hours: float, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        last = self.last_synced
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return (now - last).total_seconds() < ttl_hours * 3600


# --- operation results -----------------------------------------------------


class SupplierStatusReport(CatalogModel):
    supplier: str
    status: SupplierSyncState = SupplierSyncState.PENDING
    product_count: int = 0
    last_sync: Optional[datetime] = None
    last_error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ItemError(CatalogModel):
    style_id: str
    error: str


class PageSyncResult(CatalogModel):
    success: bool = True
    page: int = 1
    page_size: int = 20
    synced_count: int = 0
    error_count: int = 0
    pending_count: int = 0
    has_more: bool = False
    total_pages: int = 0
    total_items: int = 0
    errors: List[ItemError] = Field(default_factory=list)
    message: str = ""


class CacheInfo(CatalogModel):
    is_fresh: bool
    ttl_hours: float
    last_synced: Optional[datetime] = None


class SingleSyncResult(CatalogModel):
    success: bool = True
    message: str = ""
    product: Optional[ProductSyncRecord] = None
    cache: Optional[CacheInfo] = None


class SearchSyncResult(CatalogModel):
    success: bool = True
    term: str
    found: int = 0
    active: int = 0
    synced: int = 0
    failed: int = 0
    errors: List[ItemError] = Field(default_factory=list)


class ConnectionTestResult(CatalogModel):
    success: bool
    supplier: str
    message: str = ""
    latency_ms: Optional[float] = None
    sample_count: int = 0


class CatalogRequest(BaseModel):
    """Operation-tagged request body: {"op": "...", "params": {...}}."""
    op: str
    params: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

"""
SQLAlchemy (asyncio) store.

Tables:
- supplier_products: one row per synced style, unique on (supplier_id, style_id)
- supplier_sync_status: one row per supplier

Upserts go through the dialect's INSERT ... ON CONFLICT DO UPDATE, so
concurrent writers of the same style converge on the last full row.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from supplier_catalog.models import (
    ProductSyncRecord,
    ProductSyncStatus,
    SupplierSyncState,
    SyncStatusRecord,
)
from supplier_catalog.storage.base import CatalogStore

logger = logging.getLogger(__name__)

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


class SupplierProduct(Base):
    """Latest synced snapshot of one supplier style."""

    __tablename__ = "supplier_products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    supplier_id = Column(String, nullable=False, index=True)
    style_id = Column(String, nullable=False)

    name = Column(String, nullable=False, default="")
    brand = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    category = Column(String, nullable=False, default="")
    primary_image_url = Column(String, nullable=True)
    images = Column(JSONType, nullable=False, default=list)

    min_price = Column(Float, nullable=False, default=0.0)
    max_price = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="USD")
    price_last_updated = Column(DateTime(timezone=True), nullable=True)

    colors = Column(JSONType, nullable=False, default=list)
    sizes = Column(JSONType, nullable=False, default=list)

    is_closeout = Column(Boolean, nullable=False, default=False)
    is_caution = Column(Boolean, nullable=False, default=False)
    is_on_demand = Column(Boolean, nullable=False, default=False)
    is_hazmat = Column(Boolean, nullable=False, default=False)

    sync_status = Column(String, nullable=False, default=ProductSyncStatus.ACTIVE.value, index=True)
    effective_date = Column(String, nullable=True)
    end_date = Column(String, nullable=True)
    last_change_date = Column(String, nullable=True)
    source_data = Column(JSONType, nullable=False, default=dict)
    last_synced = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("supplier_id", "style_id", name="uq_supplier_products_supplier_style"),
    )


class SupplierSyncStatusRow(Base):
    __tablename__ = "supplier_sync_status"

    supplier_id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default=SupplierSyncState.PENDING.value)
    last_sync = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


PRODUCT_COLUMNS = [
    "supplier_id", "style_id", "name", "brand", "description", "category",
    "primary_image_url", "images", "min_price", "max_price", "currency", "price_last_updated",
    "colors", "sizes", "is_closeout", "is_caution", "is_on_demand", "is_hazmat",
    "sync_status", "effective_date", "end_date", "last_change_date", "source_data", "last_synced",
]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _product_values(record: ProductSyncRecord) -> Dict[str, Any]:
    values = record.model_dump(include=set(PRODUCT_COLUMNS))
    values["sync_status"] = record.sync_status.value
    values["source_data"] = record.model_dump(mode="json", include={"source_data"})["source_data"]
    return values


def _to_record(row: SupplierProduct) -> ProductSyncRecord:
    data = {column: getattr(row, column) for column in PRODUCT_COLUMNS}
    data["last_synced"] = _aware(row.last_synced)
    data["price_last_updated"] = _aware(row.price_last_updated)
    return ProductSyncRecord.model_validate(data)


class SqlCatalogStore(CatalogStore):
    """CatalogStore over an async SQLAlchemy engine (postgresql or sqlite)."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[AsyncEngine] = None):
        if engine is None:
            if not database_url:
                raise ValueError("database_url or engine is required")
            kwargs: Dict[str, Any] = {"future": True, "echo": False}
            if database_url.startswith("sqlite") and ":memory:" in database_url:
                kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
            engine = create_async_engine(database_url, **kwargs)
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    @property
    def _insert(self):
        if self.engine.dialect.name == "postgresql":
            return postgresql.insert
        return sqlite.insert

    async def connect(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"✅ Catalog tables ready ({self.engine.dialect.name})")

    async def disconnect(self) -> None:
        await self.engine.dispose()

    async def upsert_product(self, record: ProductSyncRecord) -> ProductSyncRecord:
        values = _product_values(record)
        stmt = self._insert(SupplierProduct).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["supplier_id", "style_id"],
            set_={
                **{column: stmt.excluded[column] for column in PRODUCT_COLUMNS if column not in ("supplier_id", "style_id")},
                "updated_at": func.now(),
            },
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        return record

    async def get_product(self, supplier_id: str, style_id: str) -> Optional[ProductSyncRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SupplierProduct).where(
                    SupplierProduct.supplier_id == supplier_id,
                    SupplierProduct.style_id == style_id,
                )
            )
            row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def count_products(self, supplier_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(SupplierProduct).where(SupplierProduct.supplier_id == supplier_id)
            )
            return int(result.scalar_one())

    async def list_active_products(self, supplier_id: str, limit: int) -> List[ProductSyncRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SupplierProduct)
                .where(
                    SupplierProduct.supplier_id == supplier_id,
                    SupplierProduct.sync_status == ProductSyncStatus.ACTIVE.value,
                    SupplierProduct.primary_image_url.is_not(None),
                )
                .order_by(SupplierProduct.last_synced.desc())
                .limit(limit)
            )
            rows = result.scalars().all()
        return [_to_record(row) for row in rows]

    async def get_supplier_status(self, supplier_id: str) -> Optional[SyncStatusRecord]:
        async with self.session_factory() as session:
            row = await session.get(SupplierSyncStatusRow, supplier_id)
        if row is None:
            return None
        return SyncStatusRecord(
            supplier_id=row.supplier_id,
            status=SupplierSyncState(row.status),
            last_sync=_aware(row.last_sync),
            last_error=row.last_error,
            updated_at=_aware(row.updated_at),
        )

    async def save_supplier_status(self, record: SyncStatusRecord) -> SyncStatusRecord:
        values = {
            "supplier_id": record.supplier_id,
            "status": record.status.value,
            "last_sync": record.last_sync,
            "last_error": record.last_error,
            "updated_at": record.updated_at,
        }
        stmt = self._insert(SupplierSyncStatusRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["supplier_id"],
            set_={k: stmt.excluded[k] for k in values if k != "supplier_id"},
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        return record


def build_store(database_url: Optional[str]) -> CatalogStore:
    if database_url:
        return SqlCatalogStore(database_url)
    from supplier_catalog.storage.memory import MemoryCatalogStore
    return MemoryCatalogStore()

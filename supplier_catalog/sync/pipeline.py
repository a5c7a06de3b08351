"""
Catalog sync pipeline.

Persists one supplier's catalog into the CatalogStore, one page of style ids
at a time. Each style is fetched (detail, inventory, pricing) and upserted
as a single full row; a failing style gets an error row and never aborts
the page. Only setup failures (credentials, id resolution) put the supplier
itself into the error state.

Supplier status: pending -> syncing -> complete | error, error -> syncing.
"""

import asyncio
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import httpx

from supplier_catalog.adapters.ss_activewear import SSActivewearAdapter
from supplier_catalog.core.config import Settings
from supplier_catalog.core.exceptions import SupplierError
from supplier_catalog.core.http_client import mask_secret
from supplier_catalog.core.normalizer import STYLE_ID_KEYS, digits_only, first_of, is_discontinued
from supplier_catalog.models import (
    CacheInfo,
    InvalidTransition,
    ItemError,
    PageSyncResult,
    ProductSyncRecord,
    ProductSyncStatus,
    SearchSyncResult,
    SingleSyncResult,
    SupplierStatusReport,
    SupplierSyncState,
    SyncStatusRecord,
    utcnow,
)
from supplier_catalog.storage.base import CatalogStore

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SEARCH_SYNC_LIMIT = 25


class CatalogSyncPipeline:
    """
    Sync operations for one supplier adapter.

    All per-style work goes through one semaphore, so overlapping page
    syncs on the same pipeline never exceed `sync_concurrency` in-flight
    styles between them.
    """

    def __init__(self, adapter: SSActivewearAdapter, store: CatalogStore, settings: Settings):
        self.adapter = adapter
        self.store = store
        self.settings = settings
        self.supplier_id = adapter.id
        self._slots = asyncio.Semaphore(max(1, settings.sync_concurrency))
        # Styles still running after a page budget ran out.
        self._background: Set[asyncio.Task] = set()

    # --- supplier status ---------------------------------------------------

    async def _current_status(self) -> SyncStatusRecord:
        status = await self.store.get_supplier_status(self.supplier_id)
        return status or SyncStatusRecord(supplier_id=self.supplier_id)

    async def _move_status(self, target: SupplierSyncState, error: Optional[str] = None) -> SyncStatusRecord:
        current = await self._current_status()
        try:
            updated = current.transition(target, error)
        except InvalidTransition as e:
            # Another pass on this supplier already moved the status on.
            logger.warning(f"Skipping supplier status update: {str(e)}")
            return current
        return await self.store.save_supplier_status(updated)

    async def status(self) -> SupplierStatusReport:
        current = await self._current_status()
        return SupplierStatusReport(
            supplier=self.supplier_id,
            status=current.status,
            product_count=await self.store.count_products(self.supplier_id),
            last_sync=current.last_sync,
            last_error=current.last_error,
        )

    # --- one style ---------------------------------------------------------

    def _build_record(
        self,
        style_id: str,
        detail: Dict[str, Any],
        inventory: Dict[str, Any],
        pricing: Dict[str, Any],
        synced_at: datetime,
    ) -> ProductSyncRecord:
        min_price = pricing.get("minPrice") or detail.get("minPrice") or 0.0
        max_price = pricing.get("maxPrice") or detail.get("maxPrice") or min_price
        return ProductSyncRecord(
            supplier_id=self.supplier_id,
            style_id=style_id,
            name=detail.get("name") or f"{self.adapter.name} Product {style_id}",
            brand=detail.get("brand") or self.adapter.name,
            description=detail.get("description") or "",
            category=detail.get("category") or "Apparel",
            primary_image_url=detail.get("primaryImageUrl"),
            images=detail.get("images") or [],
            min_price=min_price,
            max_price=max(max_price, min_price),
            currency=pricing.get("currency") or self.settings.price_currency,
            price_last_updated=synced_at,
            colors=detail.get("colors") or [],
            sizes=detail.get("sizes") or [],
            is_closeout=bool(detail.get("isCloseout")),
            is_caution=bool(detail.get("isCaution")),
            is_on_demand=bool(detail.get("isOnDemand")),
            is_hazmat=bool(detail.get("isHazmat")),
            sync_status=ProductSyncStatus.ACTIVE,
            effective_date=detail.get("effectiveDate"),
            end_date=detail.get("endDate"),
            last_change_date=detail.get("lastChangeDate"),
            source_data={
                "productDetails": detail,
                "inventory": inventory,
                "pricing": pricing,
                "hasRealData": bool(detail.get("primaryImageUrl") or detail.get("minPrice")),
            },
            last_synced=synced_at,
        )

    def _error_record(self, style_id: str, error: Exception) -> ProductSyncRecord:
        return ProductSyncRecord(
            supplier_id=self.supplier_id,
            style_id=style_id,
            name=f"{self.adapter.name} Product {style_id} (Sync Error)",
            sync_status=ProductSyncStatus.ERROR,
            source_data={"error": str(error)},
            last_synced=utcnow(),
        )

    async def _fetch_record(self, style_id: str) -> ProductSyncRecord:
        resolved, style_query = await self.adapter.resolve_style_id(style_id)
        upstream_id = resolved or style_id

        # One upstream call at a time per slot.
        detail = await self.adapter.get_style_detail(upstream_id, style_query)
        inventory = await self.adapter.get_inventory_snapshot(upstream_id)
        pricing = await self.adapter.get_pricing(upstream_id, style_query)
        return self._build_record(style_id, detail, inventory, pricing, utcnow())

    async def sync_product(self, style_id: str) -> ProductSyncRecord:
        """
        Fetch and upsert one style.

        On any failure an error row is written for the style and the
        original exception is re-raised to the caller.
        """
        async with self._slots:
            logger.info(f"📦 Syncing product {style_id}")
            try:
                record = await self._fetch_record(style_id)
                await self.store.upsert_product(record)
            except Exception as e:
                logger.error(f"❌ Failed to sync product {style_id}: {str(e)}")
                await self._record_item_error(style_id, e)
                raise
        logger.info(f"✅ Synced product {style_id}")
        return record

    async def _record_item_error(self, style_id: str, error: Exception) -> None:
        try:
            await self.store.upsert_product(self._error_record(style_id, error))
        except Exception as store_error:
            logger.error(f"❌ Could not record sync error for {style_id}: {str(store_error)}")

    # --- batches -----------------------------------------------------------

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        # Failures are already logged and recorded as error rows.
        if not task.cancelled():
            task.exception()

    async def _run_batch(
        self, style_ids: Sequence[str], budget: Optional[float]
    ) -> Tuple[int, List[ItemError], int]:
        """
        Sync `style_ids` under the concurrency ceiling.

        Returns (synced, errors, pending). Styles still running when the
        budget runs out keep going in the background and persist their
        own result.
        """
        if not style_ids:
            return 0, [], 0

        tasks: Dict[asyncio.Task, str] = {}
        for style_id in style_ids:
            task = asyncio.ensure_future(self.sync_product(style_id))
            self._track(task)
            tasks[task] = style_id

        done, pending = await asyncio.wait(tasks, timeout=budget)

        errors: List[ItemError] = []
        for task in done:
            exc = task.exception()
            if exc is not None:
                errors.append(ItemError(style_id=tasks[task], error=str(exc) or exc.__class__.__name__))
        errors.sort(key=lambda e: style_ids.index(e.style_id))

        if pending:
            logger.warning(f"⏱️ Page budget of {budget}s reached with {len(pending)} styles still syncing")
        return len(done) - len(errors), errors, len(pending)

    async def drain(self) -> None:
        """Wait for styles left running by earlier page budgets."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _setup(self) -> List[str]:
        """Validate configuration and resolve the sellable style ids."""
        logger.info(
            f"🔐 Using {self.adapter.name} account {mask_secret(self.settings.ss_account_number)} "
            f"(api key set: {bool(self.settings.ss_api_key)})"
        )
        self.adapter.validate_configuration()
        style_ids, source = await self.adapter.list_sellable_style_ids()

        unique: List[str] = []
        for style_id in style_ids:
            style_id = str(style_id).strip()
            if style_id and style_id not in unique:
                unique.append(style_id)
        logger.info(f"Resolved {len(unique)} sellable styles ({source})")
        return unique

    async def _begin(self) -> Tuple[Optional[List[str]], Optional[str]]:
        await self._move_status(SupplierSyncState.SYNCING)
        try:
            return await self._setup(), None
        except (SupplierError, httpx.HTTPError) as e:
            logger.error(f"❌ {self.adapter.name} sync setup failed: {str(e)}")
            await self._move_status(SupplierSyncState.ERROR, str(e))
            return None, str(e)

    async def page_sync(self, page: int = 1, page_size: Optional[int] = None) -> PageSyncResult:
        """
        Sync one page of the sellable style list within the page budget.

        Args:
            page: 1-based page number
            page_size: Styles per page, 1..100

        Returns:
            Synced and errored counts and whether more pages remain
        """
        page = max(1, int(page))
        page_size = max(1, min(int(page_size or self.settings.sync_default_page_size), MAX_PAGE_SIZE))
        logger.info(f"📄 Starting {self.adapter.name} page sync - page {page} ({page_size} per page)")

        style_ids, setup_error = await self._begin()
        if style_ids is None:
            return PageSyncResult(
                success=False, page=page, page_size=page_size, message=f"Page {page} sync failed: {setup_error}"
            )

        total_items = len(style_ids)
        total_pages = math.ceil(total_items / page_size)
        page_ids = style_ids[(page - 1) * page_size: page * page_size]
        has_more = page < total_pages

        if not page_ids:
            await self._move_status(SupplierSyncState.COMPLETE)
            message = "No sellable products found" if page == 1 else f"No more products found on page {page}"
            return PageSyncResult(
                page=page, page_size=page_size, has_more=has_more,
                total_pages=total_pages, total_items=total_items, message=message,
            )

        synced, errors, pending = await self._run_batch(page_ids, self.settings.sync_page_budget_seconds)
        await self._move_status(SupplierSyncState.COMPLETE)

        if not errors and not pending:
            message = f"Page {page} sync: {synced}/{len(page_ids)} products saved"
        else:
            rate = round(synced / len(page_ids) * 100)
            message = f"Page {page} sync: {synced} successful, {len(errors)} failed, {pending} pending ({rate}% success rate)"
        logger.info(f"📊 {message}")

        return PageSyncResult(
            page=page,
            page_size=page_size,
            synced_count=synced,
            error_count=len(errors),
            pending_count=pending,
            has_more=has_more,
            total_pages=total_pages,
            total_items=total_items,
            errors=errors,
            message=message,
        )

    async def full_sync(self, limit: int = 1) -> PageSyncResult:
        """
        Sync the first `limit` sellable styles in one call, with no page
        budget. Only suitable for small limits; use page_sync for the
        whole catalog.
        """
        limit = max(1, int(limit))
        logger.info(f"🚀 Starting {self.adapter.name} catalog sync with limit {limit}")

        style_ids, setup_error = await self._begin()
        if style_ids is None:
            return PageSyncResult(success=False, page_size=limit, message=f"Catalog sync failed: {setup_error}")

        batch = style_ids[:limit]
        synced, errors, _ = await self._run_batch(batch, None)
        await self._move_status(SupplierSyncState.COMPLETE)

        message = f"Synced {synced}/{len(batch)} products (limit: {limit})"
        logger.info(f"✅ {message}")
        return PageSyncResult(
            page=1,
            page_size=limit,
            synced_count=synced,
            error_count=len(errors),
            has_more=limit < len(style_ids),
            total_pages=math.ceil(len(style_ids) / limit) if style_ids else 0,
            total_items=len(style_ids),
            errors=errors,
            message=message,
        )

    # --- on demand ---------------------------------------------------------

    async def sync_single(self, style_id: str, force: bool = False, ttl_hours: Optional[float] = None) -> SingleSyncResult:
        """
        Return the stored row for `style_id` while it is fresher than
        `ttl_hours`, otherwise sync it from the supplier first.

        Raises:
            ValueError: Empty style id
            Exception: Whatever the supplier or store raised for this style
        """
        style_id = str(style_id or "").strip()
        if not style_id:
            raise ValueError("Missing required parameter: styleId")
        ttl = max(1.0, float(ttl_hours if ttl_hours is not None else self.settings.sync_single_ttl_hours))

        existing = await self.store.get_product(self.supplier_id, style_id)
        if existing is not None and not force and existing.is_fresh(ttl):
            logger.debug(f"Sync cache hit for {style_id}")
            return SingleSyncResult(
                message="Cache hit",
                product=existing,
                cache=CacheInfo(is_fresh=True, ttl_hours=ttl, last_synced=existing.last_synced),
            )

        await self.sync_product(style_id)
        saved = await self.store.get_product(self.supplier_id, style_id)
        return SingleSyncResult(
            message="Synced from upstream",
            product=saved,
            cache=CacheInfo(is_fresh=False, ttl_hours=ttl, last_synced=saved.last_synced if saved else None),
        )

    async def list_active(self, limit: int = 24) -> List[ProductSyncRecord]:
        limit = max(1, min(int(limit), 100))
        return await self.store.list_active_products(self.supplier_id, limit)

    async def sync_active_from_search(self, term: str = "Gildan", page: int = 1) -> SearchSyncResult:
        """Search the supplier for `term` and sync its non-discontinued styles."""
        term = (term or "").strip() or "Gildan"
        records = await self.adapter.find_style_records(term, page=max(1, int(page)), page_size=50)

        style_ids: List[str] = []
        for record in records:
            if is_discontinued(record):
                continue
            style_id = digits_only(first_of(record, STYLE_ID_KEYS, ""))
            if style_id and style_id not in style_ids:
                style_ids.append(style_id)

        synced, errors, _ = await self._run_batch(style_ids[:SEARCH_SYNC_LIMIT], None)
        logger.info(f"Search sync '{term}': {len(records)} found, {len(style_ids)} active, {synced} synced")
        return SearchSyncResult(
            term=term,
            found=len(records),
            active=len(style_ids),
            synced=synced,
            failed=len(errors),
            errors=errors,
        )

    async def test_sync(self, style_id: Optional[str] = None) -> SingleSyncResult:
        """Force-sync one known style as an end-to-end check."""
        style_id = style_id or (self.settings.known_style_ids[0] if self.settings.known_style_ids else "2000")
        logger.info(f"🧪 Testing single product sync for {style_id}")
        result = await self.sync_single(style_id, force=True)
        result.message = f"Successfully tested sync for product {style_id}"
        return result

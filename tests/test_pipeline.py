"""Catalog sync pipeline."""

import asyncio
from collections import defaultdict

import pytest

from supplier_catalog.core.config import Settings
from supplier_catalog.core.exceptions import UpstreamStatusError
from supplier_catalog.models import ProductSyncRecord, ProductSyncStatus, SupplierSyncState
from supplier_catalog.storage.sql import SqlCatalogStore
from supplier_catalog.sync.pipeline import CatalogSyncPipeline


@pytest.fixture
def pipeline(runtime) -> CatalogSyncPipeline:
    return runtime.pipeline("ss")


def pipeline_with(ss_adapter, store, settings, **overrides) -> CatalogSyncPipeline:
    return CatalogSyncPipeline(ss_adapter, store, settings.model_copy(update=overrides))


class TestPageSync:

    async def test_page_syncs_every_sellable_style(self, pipeline, store):
        result = await pipeline.page_sync(page=1, page_size=20)

        assert result.success is True
        assert result.synced_count == 3
        assert result.error_count == 0
        assert result.has_more is False
        assert result.message == "Page 1 sync: 3/3 products saved"

        row = await store.get_product("ss", "2000")
        assert row.name == "Ultra Cotton T-Shirt"
        assert row.brand == "Gildan"
        assert row.min_price == 3.42
        assert row.max_price == 5.12
        assert row.primary_image_url == "https://cdn.ssactivewear.com/Images/Style/39_fm.jpg"
        assert row.source_data["inventory"]["totalQuantity"] == 24
        assert row.source_data["hasRealData"] is True

    async def test_failing_style_gets_error_row_and_page_continues(self, pipeline, store, ss_api):
        ss_api.failing = {"5000"}

        result = await pipeline.page_sync()

        assert result.success is True
        assert result.synced_count == 2
        assert result.error_count == 1
        assert [e.style_id for e in result.errors] == ["5000"]

        row = await store.get_product("ss", "5000")
        assert row.sync_status == ProductSyncStatus.ERROR
        assert row.name == "S&S Activewear Product 5000 (Sync Error)"
        assert row.source_data["error"]

        status = await pipeline.status()
        assert status.status == SupplierSyncState.COMPLETE

    async def test_running_twice_keeps_one_row_per_style(self, pipeline, store):
        await pipeline.page_sync()
        second = await pipeline.page_sync()

        assert second.synced_count == 3
        assert await store.count_products("ss") == 3

    async def test_overlapping_page_syncs(self, pipeline, store):
        results = await asyncio.gather(pipeline.page_sync(), pipeline.page_sync())

        assert all(r.success for r in results)
        assert await store.count_products("ss") == 3
        assert len(await store.list_active_products("ss", 10)) == 3

    async def test_overlapping_page_syncs_on_sql_keep_one_full_row(self, ss_adapter, settings, tmp_path, monkeypatch):
        store = SqlCatalogStore(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
        await store.connect()
        written = defaultdict(list)
        upsert = store.upsert_product

        async def recording_upsert(record):
            written[record.style_id].append(record)
            return await upsert(record)

        monkeypatch.setattr(store, "upsert_product", recording_upsert)
        pipeline = CatalogSyncPipeline(ss_adapter, store, settings)

        try:
            results = await asyncio.gather(pipeline.page_sync(), pipeline.page_sync())

            assert [r.synced_count for r in results] == [3, 3]
            assert await store.count_products("ss") == 3
            for style_id in ("2000", "5000", "18500"):
                saved = await store.get_product("ss", style_id)
                assert len(written[style_id]) == 2
                assert saved in written[style_id]
        finally:
            await store.disconnect()

    async def test_paging_over_sellable_ids(self, pipeline):
        first = await pipeline.page_sync(page=1, page_size=2)
        second = await pipeline.page_sync(page=2, page_size=2)
        beyond = await pipeline.page_sync(page=3, page_size=2)

        assert (first.synced_count, first.has_more, first.total_pages) == (2, True, 2)
        assert (second.synced_count, second.has_more) == (1, False)
        assert beyond.synced_count == 0
        assert beyond.message == "No more products found on page 3"

    async def test_page_size_is_clamped(self, pipeline):
        result = await pipeline.page_sync(page=1, page_size=500)
        assert result.page_size == 100

    async def test_concurrency_ceiling_across_overlapping_calls(self, ss_adapter, store, settings, monkeypatch):
        pipeline = pipeline_with(ss_adapter, store, settings, sync_concurrency=2)
        in_flight = 0
        peak = 0

        async def tracked(style_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return ProductSyncRecord(supplier_id="ss", style_id=style_id)

        monkeypatch.setattr(pipeline, "_fetch_record", tracked)

        await asyncio.gather(pipeline.page_sync(page_size=3), pipeline.page_sync(page_size=3))

        assert peak == 2

    async def test_budget_leaves_styles_running(self, ss_adapter, store, settings, monkeypatch):
        pipeline = pipeline_with(ss_adapter, store, settings, sync_page_budget_seconds=0.01)

        async def slow(style_id):
            await asyncio.sleep(0.1)
            return ProductSyncRecord(supplier_id="ss", style_id=style_id)

        monkeypatch.setattr(pipeline, "_fetch_record", slow)

        result = await pipeline.page_sync()

        assert result.pending_count == 3
        assert result.synced_count == 0
        assert await store.count_products("ss") == 0

        await pipeline.drain()
        assert await store.count_products("ss") == 3

    async def test_setup_failure_sets_error_status(self, make_adapter, store):
        bare = Settings()
        pipeline = CatalogSyncPipeline(make_adapter(adapter_settings=bare), store, bare)

        result = await pipeline.page_sync()

        assert result.success is False
        assert "Missing required S&S credentials" in result.message
        status = await pipeline.status()
        assert status.status == SupplierSyncState.ERROR
        assert status.last_error.startswith("Missing required S&S credentials")

    async def test_error_status_recovers_on_next_pass(self, make_adapter, store, settings):
        bare = Settings()
        await CatalogSyncPipeline(make_adapter(adapter_settings=bare), store, bare).page_sync()

        pipeline = CatalogSyncPipeline(make_adapter(), store, settings)
        await pipeline.page_sync()

        status = await pipeline.status()
        assert status.status == SupplierSyncState.COMPLETE
        assert status.last_error is None
        assert status.last_sync is not None
        assert status.product_count == 3


class TestFullSync:

    async def test_limit(self, pipeline):
        result = await pipeline.full_sync(limit=2)

        assert result.synced_count == 2
        assert result.has_more is True
        assert result.total_items == 3
        assert result.message == "Synced 2/2 products (limit: 2)"


class TestSingleSync:

    async def test_fresh_row_is_a_cache_hit(self, pipeline, ss_api):
        first = await pipeline.sync_single("2000")
        calls = len(ss_api.calls)
        second = await pipeline.sync_single("2000")

        assert first.message == "Synced from upstream"
        assert first.cache.is_fresh is False
        assert second.message == "Cache hit"
        assert second.cache.is_fresh is True
        assert second.product.style_id == "2000"
        assert len(ss_api.calls) == calls

    async def test_force_resyncs(self, pipeline, ss_api):
        await pipeline.sync_single("2000")
        calls = len(ss_api.calls)

        result = await pipeline.sync_single("2000", force=True)

        assert result.message == "Synced from upstream"
        assert len(ss_api.calls) > calls

    async def test_ttl_floor_is_one_hour(self, pipeline):
        result = await pipeline.sync_single("2000", ttl_hours=0)
        assert result.cache.ttl_hours == 1.0

    async def test_empty_style_id(self, pipeline):
        with pytest.raises(ValueError):
            await pipeline.sync_single("  ")

    async def test_failure_is_raised_and_recorded(self, pipeline, store, ss_api):
        ss_api.failing = {"5000"}

        with pytest.raises(UpstreamStatusError):
            await pipeline.sync_single("5000")

        row = await store.get_product("ss", "5000")
        assert row.sync_status == ProductSyncStatus.ERROR

    async def test_test_sync_uses_first_known_style(self, ss_adapter, store, settings):
        pipeline = pipeline_with(ss_adapter, store, settings, known_style_ids=["18500", "2000"])

        result = await pipeline.test_sync()

        assert result.message == "Successfully tested sync for product 18500"
        assert result.product.name == "Heavy Blend Hooded Sweatshirt"


class TestListingAndSearchSync:

    async def test_list_active_excludes_error_rows(self, pipeline, ss_api):
        ss_api.failing = {"5000"}
        await pipeline.page_sync()

        active = await pipeline.list_active(limit=24)

        assert sorted(p.style_id for p in active) == ["18500", "2000"]

    async def test_sync_active_from_search(self, pipeline, store):
        result = await pipeline.sync_active_from_search("Gildan")

        assert (result.term, result.found, result.active, result.synced, result.failed) == ("Gildan", 3, 3, 3, 0)
        assert await store.count_products("ss") == 3

    async def test_status_report_before_any_sync(self, pipeline):
        status = await pipeline.status()

        assert status.supplier == "ss"
        assert status.status == SupplierSyncState.PENDING
        assert status.product_count == 0

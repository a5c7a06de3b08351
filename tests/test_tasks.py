"""Background jobs and the Celery task chain."""

import pytest

from supplier_catalog.adapters.registry import AdapterRegistry
from supplier_catalog.runtime import CatalogRuntime
from supplier_catalog.tasks import scheduled
from supplier_catalog.tasks.celery_app import celery_app
from supplier_catalog.tasks.jobs import SyncJobManager


@pytest.fixture
def job_manager(settings, cache, store, make_adapter):
    def factory() -> CatalogRuntime:
        return CatalogRuntime(settings, cache, store, AdapterRegistry([make_adapter()]))

    return SyncJobManager(runtime_factory=factory)


class TestSyncJobManager:

    async def test_run_page_persists_every_style(self, job_manager, store):
        result = await job_manager.run_page(page=1, page_size=10)

        assert result["success"] is True
        assert result["syncedCount"] == 3
        assert result["hasMore"] is False
        assert await store.count_products("ss") == 3

    async def test_performance_report_accumulates_and_resets(self, job_manager):
        await job_manager.run_page(page=1, page_size=2)
        await job_manager.run_page(page=2, page_size=2)

        report = job_manager.log_supplier_performance()

        assert len(report) == 1
        assert report[0]["supplier"] == "S&S Activewear"
        assert report[0]["calls"] > 0
        assert report[0]["failures"] == 0
        assert job_manager.log_supplier_performance() == []

    async def test_failures_are_counted(self, settings, cache, store, make_adapter, ss_api):
        ss_api.failing = {"5000"}
        manager = SyncJobManager(
            runtime_factory=lambda: CatalogRuntime(settings, cache, store, AdapterRegistry([make_adapter()]))
        )

        result = await manager.run_page(page=1, page_size=10)

        assert result["errorCount"] == 1
        assert manager.log_supplier_performance()[0]["failures"] > 0


class FakeJobManager:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.pages = []

    async def run_page(self, page, page_size, supplier_id):
        self.pages.append((page, page_size, supplier_id))
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def enqueued(monkeypatch):
    calls = []
    monkeypatch.setattr(scheduled, "enqueue_next_page", lambda *args: calls.append(args))
    return calls


class TestPageChain:

    def test_next_page_is_queued_while_more_remain(self, monkeypatch, enqueued):
        fake = FakeJobManager(result={"success": True, "hasMore": True, "totalPages": 3})
        monkeypatch.setattr(scheduled, "job_manager", fake)

        outcome = scheduled.run_page_sync(2, 20, "ss")

        assert outcome["status"] == "success"
        assert fake.pages == [(2, 20, "ss")]
        assert enqueued == [(3, 20, "ss")]

    def test_last_page_ends_the_chain(self, monkeypatch, enqueued):
        monkeypatch.setattr(scheduled, "job_manager", FakeJobManager(result={"success": True, "hasMore": False}))

        outcome = scheduled.run_page_sync(3, 20, "ss")

        assert outcome["status"] == "success"
        assert enqueued == []

    def test_failed_setup_ends_the_chain(self, monkeypatch, enqueued):
        monkeypatch.setattr(scheduled, "job_manager", FakeJobManager(result={"success": False, "hasMore": False}))

        outcome = scheduled.run_page_sync(1)

        assert outcome["status"] == "error"
        assert enqueued == []

    def test_exception_is_reported_not_raised(self, monkeypatch, enqueued):
        monkeypatch.setattr(scheduled, "job_manager", FakeJobManager(error=RuntimeError("database down")))

        outcome = scheduled.run_page_sync(1)

        assert outcome == {"status": "error", "page": 1, "message": "database down"}
        assert enqueued == []

    def test_catalog_pass_starts_at_page_one(self, enqueued):
        assert scheduled.start_catalog_pass("ss") == {"status": "queued", "supplier": "ss"}
        assert enqueued == [(1, None, "ss")]


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    assert schedule["start-catalog-pass"]["task"] == "supplier_catalog.tasks.start_catalog_pass"
    assert schedule["log-supplier-performance-every-5-minutes"]["schedule"] == 300.0
    assert "supplier_catalog.tasks.run_page_sync" in celery_app.tasks

"""
Background jobs run by the Celery tasks.

- One page of the catalog sync per job
- Supplier performance (calls, failures, rate limits, latency) collected
  across jobs and logged once per period
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from supplier_catalog.runtime import CatalogRuntime

logger = logging.getLogger(__name__)


def _empty_stats() -> Dict[str, Any]:
    return {"total_calls": 0, "failures": 0, "rate_limited": 0, "total_latency_ms": 0.0}


class SyncJobManager:
    """
    Runs sync jobs, each on its own runtime: a Celery task gets a fresh
    event loop, and the HTTP and database clients are bound to the loop
    that created them.
    """

    def __init__(self, runtime_factory: Callable[[], CatalogRuntime] = CatalogRuntime.from_settings):
        self.runtime_factory = runtime_factory
        self.supplier_performance: Dict[str, Dict[str, Any]] = {}
        logger.info("Sync job manager initialized")

    @asynccontextmanager
    async def _runtime(self) -> AsyncIterator[CatalogRuntime]:
        runtime = self.runtime_factory()
        await runtime.connect()
        try:
            yield runtime
        finally:
            self._collect_stats(runtime)
            await runtime.disconnect()

    def _collect_stats(self, runtime: CatalogRuntime) -> None:
        for adapter in runtime.registry:
            snapshot = adapter.stats(reset=True)
            stats = self.supplier_performance.setdefault(adapter.name, _empty_stats())
            stats["total_calls"] += snapshot["calls"]
            stats["failures"] += snapshot["failures"]
            stats["rate_limited"] += snapshot["rate_limited"]
            stats["total_latency_ms"] += snapshot["avg_latency_ms"] * snapshot["calls"]

    async def run_page(self, page: int = 1, page_size: Optional[int] = None, supplier_id: str = "ss") -> Dict[str, Any]:
        """
        Sync one page and wait for every style on it to persist.

        Returns:
            The page result in wire form (camelCase)
        """
        async with self._runtime() as runtime:
            pipeline = runtime.pipeline(supplier_id)
            result = await pipeline.page_sync(page, page_size)
            await pipeline.drain()
        return result.to_wire()

    def log_supplier_performance(self) -> List[Dict[str, Any]]:
        """
        Log the performance report for the period and reset it.

        Returns:
            One summary per supplier that made calls
        """
        logger.info("=" * 80)
        logger.info("SUPPLIER PERFORMANCE REPORT")
        logger.info("=" * 80)

        report = []
        for supplier, stats in self.supplier_performance.items():
            total_calls = stats["total_calls"]
            if total_calls == 0:
                logger.info(f"{supplier}: No calls in this period")
                continue

            failures = stats["failures"]
            failure_rate = (failures / total_calls) * 100
            avg_latency = stats["total_latency_ms"] / total_calls

            logger.info(f"{supplier}:")
            logger.info(f"  Total Calls:   {total_calls}")
            logger.info(f"  Failed:        {failures} ({failure_rate:.1f}%)")
            logger.info(f"  Rate Limited:  {stats['rate_limited']}")
            logger.info(f"  Avg Latency:   {avg_latency:.1f}ms")
            report.append({
                "supplier": supplier,
                "calls": total_calls,
                "failures": failures,
                "rateLimited": stats["rate_limited"],
                "avgLatencyMs": round(avg_latency, 1),
            })

        logger.info("=" * 80)
        self.supplier_performance = {}
        return report


# Singleton instance
job_manager = SyncJobManager()

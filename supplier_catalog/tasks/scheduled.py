"""
Celery tasks for the catalog sync.

A catalog pass is a chain of run_page_sync tasks: each one syncs a page
and enqueues the next while the page reports hasMore.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional

from supplier_catalog.tasks.celery_app import celery_app
from supplier_catalog.tasks.jobs import job_manager

logger = logging.getLogger(__name__)


def _run(coro: Awaitable[Any]) -> Any:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def enqueue_next_page(page: int, page_size: Optional[int], supplier_id: str) -> None:
    run_page_sync.delay(page, page_size, supplier_id)


@celery_app.task(name='supplier_catalog.tasks.run_page_sync')
def run_page_sync(page: int = 1, page_size: Optional[int] = None, supplier_id: str = "ss"):
    """
    Sync one page of the supplier catalog, then chain the next page.

    Args:
        page: 1-based page
        page_size: Styles per page (default from settings)
        supplier_id: Registered adapter id

    Returns:
        Task result dictionary
    """
    logger.info(f"Celery task started: run_page_sync({supplier_id}, page {page})")

    try:
        result = _run(job_manager.run_page(page, page_size, supplier_id))
    except Exception as e:
        logger.error(f"Celery task failed: {str(e)}", exc_info=True)
        return {"status": "error", "page": page, "message": str(e)}

    if result.get("success") and result.get("hasMore"):
        enqueue_next_page(page + 1, page_size, supplier_id)
        logger.info(f"Queued page {page + 1} of {result.get('totalPages')}")
    else:
        logger.info(f"Catalog pass for {supplier_id} stopped at page {page}")

    return {"status": "success" if result.get("success") else "error", "page": page, "result": result}


@celery_app.task(name='supplier_catalog.tasks.start_catalog_pass')
def start_catalog_pass(supplier_id: str = "ss"):
    logger.info(f"Starting catalog pass for {supplier_id}")
    enqueue_next_page(1, None, supplier_id)
    return {"status": "queued", "supplier": supplier_id}


@celery_app.task(name='supplier_catalog.tasks.log_supplier_performance')
def log_supplier_performance():
    return {"status": "success", "report": job_manager.log_supplier_performance()}

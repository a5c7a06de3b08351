"""
Catalog Controller.
Validates operation parameters and routes each operation to search,
the adapters or the sync pipeline.
"""

import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import HTTPException

from supplier_catalog.core.exceptions import CapabilityNotSupported, UnknownSupplierError
from supplier_catalog.runtime import CatalogRuntime, get_runtime

logger = logging.getLogger(__name__)

Params = Dict[str, Any]


class CatalogController:
    """
    Controller for the operation-tagged catalog endpoint.
    """

    style_id_pattern = re.compile(r"^[A-Za-z0-9\-]{1,32}$")

    def __init__(self, runtime: Optional[CatalogRuntime] = None):
        self._runtime = runtime
        self.operations: Dict[str, Callable[[Params], Awaitable[Any]]] = {
            "searchProducts": self.search_products,
            "getInventory": self.get_inventory,
            "browseProducts": self.browse_products,
            "status": self.status,
            "pageSync": self.page_sync,
            "fullSync": self.full_sync,
            "syncSingle": self.sync_single,
            "listActive": self.list_active,
            "syncActiveFromSearch": self.sync_active_from_search,
            "testConnection": self.test_connection,
            "testProduct": self.test_product,
        }

    @property
    def runtime(self) -> CatalogRuntime:
        return self._runtime or get_runtime()

    def _style_id(self, params: Params) -> str:
        """
        Style id from styleId (or productId), alphanumeric plus dashes.

        Raises:
            ValueError: Missing or malformed
        """
        style_id = str(params.get("styleId") or params.get("productId") or "").strip()
        if not style_id:
            raise ValueError("Missing required parameter: styleId")
        if not self.style_id_pattern.match(style_id):
            raise ValueError(f"Invalid styleId: {style_id}")
        return style_id

    @staticmethod
    def _int(params: Params, name: str, default: int) -> int:
        value = params.get(name, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Parameter {name} must be an integer, got {value!r}") from None

    # --- operations --------------------------------------------------------

    async def search_products(self, params: Params):
        query = str(params.get("query") or "").strip()
        if not query:
            raise ValueError("Missing required parameter: query")
        return await self.runtime.search.search(
            query, limit=self._int(params, "limit", 8), page=self._int(params, "page", 1)
        )

    async def get_inventory(self, params: Params):
        adapter = self.runtime.registry.get(params.get("supplierId", "ss"))
        return await adapter.get_inventory_matrix(self._style_id(params), force=bool(params.get("force", False)))

    async def browse_products(self, params: Params):
        adapter = self.runtime.registry.get(params.get("supplierId", "ss"))
        return await adapter.browse_products(
            page=self._int(params, "page", 1),
            page_size=self._int(params, "pageSize", 20),
            category=params.get("category"),
        )

    async def status(self, params: Params):
        return await self.runtime.pipeline(params.get("supplierId", "ss")).status()

    async def page_sync(self, params: Params):
        return await self.runtime.pipeline(params.get("supplierId", "ss")).page_sync(
            page=self._int(params, "page", 1),
            page_size=self._int(params, "pageSize", self.runtime.settings.sync_default_page_size),
        )

    async def full_sync(self, params: Params):
        return await self.runtime.pipeline(params.get("supplierId", "ss")).full_sync(limit=self._int(params, "limit", 1))

    async def sync_single(self, params: Params):
        ttl_hours = params.get("ttlHours")
        return await self.runtime.pipeline(params.get("supplierId", "ss")).sync_single(
            self._style_id(params),
            force=bool(params.get("force", False)),
            ttl_hours=float(ttl_hours) if ttl_hours is not None else None,
        )

    async def list_active(self, params: Params):
        return await self.runtime.pipeline(params.get("supplierId", "ss")).list_active(self._int(params, "limit", 24))

    async def sync_active_from_search(self, params: Params):
        return await self.runtime.pipeline(params.get("supplierId", "ss")).sync_active_from_search(
            term=str(params.get("term") or "Gildan"), page=self._int(params, "page", 1)
        )

    async def test_connection(self, params: Params):
        adapter = self.runtime.registry.get(params.get("supplierId", "ss"))
        if not hasattr(adapter, "test_connection"):
            raise CapabilityNotSupported(adapter.id, "connection test")
        return await adapter.test_connection()

    async def test_product(self, params: Params):
        style_id = self._style_id(params) if (params.get("styleId") or params.get("productId")) else None
        return await self.runtime.pipeline(params.get("supplierId", "ss")).test_sync(style_id)

    # --- dispatch ----------------------------------------------------------

    async def handle(self, op: str, params: Optional[Params] = None) -> Any:
        """
        Run one operation.

        Raises:
            HTTPException: 400 for bad input or unknown op, 404 for an
                unknown supplier, 500 for anything else
        """
        params = params or {}
        handler = self.operations.get(op)
        if handler is None:
            logger.warning(f"Unknown operation: {op}")
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "Unknown operation",
                    "detail": f"Supported: {', '.join(self.operations)}",
                    "received": op,
                },
            )

        try:
            logger.info(f"Processing {op} request")
            return await handler(params)
        except UnknownSupplierError as e:
            raise HTTPException(status_code=404, detail={"error": "Unknown supplier", "detail": str(e)})
        except (ValueError, CapabilityNotSupported) as e:
            logger.warning(f"Rejected {op}: {str(e)}")
            raise HTTPException(status_code=400, detail={"error": "Invalid request", "detail": str(e)})
        except Exception as e:
            logger.error(f"Error processing {op}: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail={"error": "Internal server error", "detail": str(e)})

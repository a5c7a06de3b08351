"""
Catalog routes.
A single operation-tagged endpoint: POST /catalog {"op": ..., "params": {...}}.
"""

from typing import Any

from fastapi import APIRouter, Body

from supplier_catalog.controllers.catalog_controller import CatalogController
from supplier_catalog.models import CatalogRequest, ErrorResponse
from supplier_catalog.views.catalog_view import CatalogView

router = APIRouter(
    prefix="/catalog",
    tags=["catalog"]
)

# Initialize controller
controller = CatalogController()


async def run_operation(
    request: CatalogRequest = Body(
        ...,
        examples=[{"op": "searchProducts", "params": {"query": "gildan", "page": 1}}],
    )
) -> Any:
    """
    Run one catalog operation.

    Supported ops: searchProducts, getInventory, browseProducts, status,
    pageSync, fullSync, syncSingle, listActive, syncActiveFromSearch,
    testConnection, testProduct.
    """
    result = await controller.handle(request.op, request.params)
    return CatalogView.render(request.op, result)

router.add_api_route(
    "",
    run_operation,
    methods=["POST"],
    responses={
        400: {
            "description": "Unknown operation or invalid parameters",
            "model": ErrorResponse
        },
        404: {
            "description": "Unknown supplier",
            "model": ErrorResponse
        },
        500: {
            "description": "Internal server error",
            "model": ErrorResponse
        }
    },
    summary="Run a catalog operation"
)

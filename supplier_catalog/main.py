"""
FastAPI application entry point.
"""

from fastapi import FastAPI
import logging
from supplier_catalog.core.config import Settings
from supplier_catalog.middleware.rate_limiter import RateLimitMiddleware
from supplier_catalog.routers import catalog
from supplier_catalog.runtime import get_runtime
from supplier_catalog.views.catalog_view import CatalogView

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

settings = Settings.from_env()

# Initialize FastAPI app
app = FastAPI(
    title="Supplier Catalog & Inventory Service",
    version="1.0.0",
    docs_url="/docs"
)

app.add_middleware(
    RateLimitMiddleware,
    cache_provider=lambda: get_runtime().cache,
    requests_per_minute=settings.api_requests_per_minute,
    require_key=settings.api_require_key,
)


@app.on_event("startup")
async def startup_event():
    """Connect cache and storage on startup."""
    await get_runtime().connect()


@app.on_event("shutdown")
async def shutdown_event():
    """Close supplier clients, storage and cache on shutdown."""
    await get_runtime().disconnect()

# Include routers
app.include_router(catalog.router)


@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": "Supplier Catalog & Inventory Service",
        "version": "1.0.0",
        "endpoints": {
            "catalog": "/catalog",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health_check():
    """
    Health check endpoint, with the state of each supplier circuit.
    """
    return CatalogView.health(get_runtime().search.circuit_states())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "supplier_catalog.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

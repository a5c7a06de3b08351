"""
Runtime configuration.

All values come from environment variables so the same image can run the API,
the Celery worker and the beat scheduler.
"""

import os
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


DEFAULT_SEED_SEARCH_TERMS = [
    "gildan", "hanes", "t-shirt", "polo", "sweatshirt",
    "hoodie", "cotton", "polyester", "bella", "canvas",
]

# Styles confirmed to resolve upstream; used when live resolution finds nothing.
DEFAULT_KNOWN_STYLE_IDS = ["2000", "8000", "18500", "5000", "64000", "18000"]


class Settings(BaseModel):
    """Service settings. Build with Settings.from_env()."""

    # S&S Activewear REST + legacy SOAP inventory
    ss_base_url: str = "https://api.ssactivewear.com/V2/"
    ss_account_number: str = ""
    ss_api_key: str = ""
    ss_soap_inventory_url: str = "https://promostandards.ssactivewear.com/Inventory/v2/InventoryServicev2.svc"
    ss_cdn_base: str = "https://cdn.ssactivewear.com/"
    price_currency: Literal["USD", "CAD"] = "USD"

    # Outbound transport
    request_timeout_seconds: float = 30.0
    max_attempts: int = 3
    backoff_base_seconds: float = 0.3
    backoff_max_seconds: float = 10.0
    backoff_jitter_seconds: float = 0.15

    # Cache
    cache_backend: Literal["memory", "redis"] = "memory"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    catalog_cache_ttl_hours: float = 12
    inventory_cache_ttl_minutes: float = 10

    # Storage
    database_url: Optional[str] = None

    # Sync pipeline
    sync_concurrency: int = 3
    sync_page_budget_seconds: float = 45.0
    sync_default_page_size: int = 20
    sync_single_ttl_hours: float = 12
    sync_seed_search_delay_seconds: float = 0.5
    sync_max_sellable_ids: int = 20
    seed_search_terms: List[str] = Field(default_factory=lambda: list(DEFAULT_SEED_SEARCH_TERMS))
    known_style_ids: List[str] = Field(default_factory=lambda: list(DEFAULT_KNOWN_STYLE_IDS))

    # Inbound API
    api_requests_per_minute: int = 60
    api_require_key: bool = True

    @property
    def catalog_ttl_seconds(self) -> int:
        return int(self.catalog_cache_ttl_hours * 3600)

    @property
    def inventory_ttl_seconds(self) -> int:
        return int(self.inventory_cache_ttl_minutes * 60)

    @property
    def has_ss_credentials(self) -> bool:
        return bool(self.ss_account_number and self.ss_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            ss_base_url=os.getenv("SS_BASE_URL", "https://api.ssactivewear.com/V2/"),
            ss_account_number=os.getenv("SS_ACCOUNT_NUMBER", ""),
            ss_api_key=os.getenv("SS_API_KEY", ""),
            ss_soap_inventory_url=os.getenv(
                "SS_SOAP_INVENTORY_URL",
                "https://promostandards.ssactivewear.com/Inventory/v2/InventoryServicev2.svc",
            ),
            ss_cdn_base=os.getenv("SS_CDN_BASE", "https://cdn.ssactivewear.com/"),
            price_currency="CAD" if os.getenv("PRICE_CURRENCY", "USD") == "CAD" else "USD",
            request_timeout_seconds=float(os.getenv("SUPPLIER_TIMEOUT_SECONDS", "30")),
            max_attempts=int(os.getenv("SUPPLIER_MAX_ATTEMPTS", "3")),
            backoff_base_seconds=float(os.getenv("SUPPLIER_BACKOFF_BASE_SECONDS", "0.3")),
            backoff_max_seconds=float(os.getenv("SUPPLIER_BACKOFF_MAX_SECONDS", "10")),
            backoff_jitter_seconds=float(os.getenv("SUPPLIER_BACKOFF_JITTER_SECONDS", "0.15")),
            cache_backend="redis" if os.getenv("CACHE_BACKEND", "memory") == "redis" else "memory",
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_db=int(os.getenv("REDIS_DB", "0")),
            redis_password=os.getenv("REDIS_PASSWORD") or None,
            catalog_cache_ttl_hours=float(os.getenv("CATALOG_CACHE_TTL_HOURS", "12")),
            inventory_cache_ttl_minutes=float(os.getenv("INVENTORY_CACHE_TTL_MINUTES", "10")),
            database_url=os.getenv("DATABASE_URL") or None,
            sync_concurrency=int(os.getenv("SYNC_CONCURRENCY", "3")),
            sync_page_budget_seconds=float(os.getenv("SYNC_PAGE_BUDGET_SECONDS", "45")),
            sync_default_page_size=int(os.getenv("SYNC_DEFAULT_PAGE_SIZE", "20")),
            sync_single_ttl_hours=float(os.getenv("SYNC_SINGLE_TTL_HOURS", "12")),
            sync_seed_search_delay_seconds=float(os.getenv("SYNC_SEED_SEARCH_DELAY_SECONDS", "0.5")),
            seed_search_terms=_env_list("SYNC_SEED_SEARCH_TERMS", DEFAULT_SEED_SEARCH_TERMS),
            known_style_ids=_env_list("SYNC_KNOWN_STYLE_IDS", DEFAULT_KNOWN_STYLE_IDS),
            api_requests_per_minute=int(os.getenv("API_REQUESTS_PER_MINUTE", "60")),
            api_require_key=_env_bool("API_REQUIRE_KEY", True),
        )

"""
Curated sample catalog served when live browse calls fail.

Every product loaded from here is tagged source="fallback" so callers can
badge it as degraded data.
"""

import json
import logging
import math
import os
from typing import List, Optional

import aiofiles

from supplier_catalog.models import Product, ProductPage

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_FILE = os.path.join(os.path.dirname(__file__), "data", "fallback_catalog.json")


class FallbackCatalog:
    """Static product list read once from JSON."""

    def __init__(self, path: str = DEFAULT_CATALOG_FILE):
        self.path = path
        self._products: Optional[List[Product]] = None

    async def load(self) -> List[Product]:
        if self._products is not None:
            return self._products

        async with aiofiles.open(self.path, mode="r") as f:
            content = await f.read()
        raw = json.loads(content)
        supplier_id = raw.get("supplierId", "ss")
        self._products = [
            Product.model_validate({**item, "supplierId": supplier_id, "source": "fallback"})
            for item in raw.get("products", [])
        ]
        logger.info(f"Loaded {len(self._products)} fallback products from {self.path}")
        return self._products

    async def page(self, page: int = 1, page_size: int = 20, category: Optional[str] = None) -> ProductPage:
        products = await self.load()
        if category:
            products = [p for p in products if p.category.lower() == category.lower()]

        page = max(1, page)
        page_size = max(1, page_size)
        total = len(products)
        start = (page - 1) * page_size
        return ProductPage(
            products=products[start:start + page_size],
            page=page,
            page_size=page_size,
            total_products=total,
            total_pages=math.ceil(total / page_size) if total else 0,
            has_next_page=start + page_size < total,
            has_prev_page=page > 1,
            source="fallback",
        )

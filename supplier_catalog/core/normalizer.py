"""
Data normalization logic for supplier responses.

Supplier payloads place the same field under several names and casings
(price under `price`, `PRICE`, `wholesale`, `salePrice`, `cost`...). Every
canonical field is read through an ordered list of candidate accessors,
first non-empty value wins. Missing numbers become 0, missing collections
become empty lists; nothing here raises on an unexpected shape.

No I/O in this module.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from supplier_catalog.models import (
    Color,
    Image,
    InventoryMatrix,
    InventorySummary,
    Product,
    SupplierOffer,
    UnifiedProduct,
    Variant,
    WarehouseInventory,
    utcnow,
)

logger = logging.getLogger(__name__)

Accessor = Union[str, Callable[[Dict[str, Any]], Any]]

DEFAULT_CDN_BASE = "https://cdn.ssactivewear.com/"

PRICE_KEYS = (
    "price", "PRICE",
    "wholesale", "WHOLESALE",
    "wholesalePrice", "WHOLESALEPRICE",
    "salePrice", "SALEPRICE",
    "cost", "COST",
)
VARIANT_PRICE_KEYS = PRICE_KEYS + ("piecePrice", "customerPrice", "tier", "msrp", "MSRP")
MSRP_KEYS = ("msrp", "MSRP", "retailPrice", "RETAILPRICE", "listPrice", "LISTPRICE")

STYLE_ID_KEYS = ("styleId", "styleID", "STYLEID", "style", "styleNumber")
BRAND_KEYS = ("brandName", "brand", "BRANDNAME", "BRAND")
NAME_KEYS = ("name", "styleName", "STYLENAME", "productName", "description")
CATEGORY_KEYS = ("category", "CATEGORY", "categoryName", "baseCategory")
SIZE_KEYS = ("size", "sizeName", "SIZE", "labelSize")
QTY_KEYS = ("qty", "QTY", "quantity", "onHand")

# Known list containers, in the order they are checked.
ITEM_CONTAINERS = ("items", "products", "styles", "Results", "data", "value")

SIZE_SYNONYMS = {
    "xs": "XS", "xsmall": "XS", "x-small": "XS",
    "s": "S", "small": "S",
    "m": "M", "medium": "M",
    "l": "L", "large": "L",
    "xl": "XL", "x-large": "XL", "xlarge": "XL", "x‑large": "XL", "x‑l": "XL",
    "2xl": "2XL", "xxl": "2XL", "2x-large": "2XL", "xx-large": "2XL", "tg": "2XL",
    "3xl": "3XL", "xxxl": "3XL", "3x-large": "3XL",
    "4xl": "4XL", "xxxxl": "4XL", "4x-large": "4XL",
}
SIZE_ORDER = ["XS", "S", "M", "L", "XL", "2XL", "3XL", "4XL"]

# Matrix bucket for records that carry no size at all.
ONE_SIZE = "OS"

WAREHOUSE_NAMES = {
    "IL": "Illinois",
    "KS": "Kansas",
    "NV": "Nevada",
    "TX": "Texas",
    "GA": "Georgia",
    "NJ": "New Jersey",
    "MAIN": "Main Warehouse",
}


# --- primitive accessors ---------------------------------------------------


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def first_of(record: Any, candidates: Sequence[Accessor], default: Any = None) -> Any:
    """
    Return the first non-empty value among `candidates`.

    A candidate is either a key or a callable taking the record.
    """
    if not isinstance(record, dict):
        return default
    for candidate in candidates:
        value = candidate(record) if callable(candidate) else record.get(candidate)
        if not _is_empty(value):
            return value
    return default


def to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip().replace("$", "").replace(",", "")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_int(value: Any) -> int:
    return int(to_float(value))


def as_bool(value: Any) -> bool:
    if value is True or value == 1:
        return True
    return str(value if value is not None else "").strip().lower() in ("true", "1", "y", "yes")


def extract_price(record: Any, keys: Sequence[str] = PRICE_KEYS) -> float:
    """First positive price among the aliases, else 0.0."""
    if not isinstance(record, dict):
        return 0.0
    for key in keys:
        price = to_float(record.get(key))
        if price > 0:
            return price
    return 0.0


def digits_only(value: Any) -> str:
    return re.sub(r"[^0-9]", "", str(value if value is not None else ""))


def items_of(payload: Any, containers: Sequence[str] = ITEM_CONTAINERS) -> List[Dict[str, Any]]:
    """Pull the record list out of whichever envelope the supplier used."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in containers:
            value = payload.get(key)
            if isinstance(value, list):
                return [item for item in value if isinstance(item, dict)]
    return []


def normalize_size(raw: Any) -> str:
    """Map a size label onto XS..4XL; anything unknown is upper-cased."""
    text = str(raw if raw is not None else "").strip()
    if not text:
        return ""
    return SIZE_SYNONYMS.get(text.lower(), text.upper())


def sort_sizes(sizes: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for size in sizes:
        if size not in seen:
            seen.append(size)
    known = [s for s in SIZE_ORDER if s in seen]
    return known + [s for s in seen if s not in SIZE_ORDER]


def resolve_image_url(path: Any, cdn_base: str = DEFAULT_CDN_BASE) -> Optional[str]:
    """
    Turn a supplier image path into an absolute CDN URL.

    Absolute URLs pass through. Relative paths lose duplicate and leading
    slashes and gain the `Images/` namespace when it is missing.
    """
    if _is_empty(path) or not isinstance(path, str):
        return None
    path = path.strip()
    if path.lower().startswith("http"):
        return path
    clean = re.sub(r"/{2,}", "/", path).lstrip("/")
    if not clean.lower().startswith("images/"):
        clean = f"Images/{clean}"
    return f"{cdn_base.rstrip('/')}/{clean}"


def warehouse_name(code: str) -> str:
    return WAREHOUSE_NAMES.get(code.upper(), code) if code else code


def is_discontinued(record: Any) -> bool:
    return as_bool(first_of(record, ("isDiscontinued", "ISDISCONTINUED", "discontinued"), False))


# --- products --------------------------------------------------------------


def _variant_images(raw: Dict[str, Any], cdn_base: str) -> List[Image]:
    sides = {
        "front": ("imageFront", "frontImage", "front", "colorFrontImage"),
        "side": ("imageSide", "sideImage", "side", "colorSideImage"),
        "back": ("imageBack", "backImage", "back", "colorBackImage"),
        "swatch": ("swatchImage", "swatch", "swatchUrl", "colorSwatchImage"),
    }
    images = []
    for kind, keys in sides.items():
        url = resolve_image_url(first_of(raw, keys), cdn_base)
        if url:
            images.append(Image(url=url, kind=kind))
    return images


def map_variant(raw: Dict[str, Any], cdn_base: str = DEFAULT_CDN_BASE) -> Variant:
    hex_value = first_of(raw, ("colorHex", "hex", "color1", "HTML"))
    if hex_value and not str(hex_value).startswith("#"):
        hex_value = f"#{hex_value}"
    return Variant(
        sku=str(first_of(raw, ("sku", "SKU", "skuId", "variantSku", "gtin"), "")),
        size=normalize_size(first_of(raw, SIZE_KEYS, "")),
        color=Color(
            name=str(first_of(raw, ("colorName", "color", "COLOR"), "")),
            code=first_of(raw, ("colorCode", "COLORCODE")),
            hex=hex_value,
        ),
        price=extract_price(raw, VARIANT_PRICE_KEYS),
        msrp=extract_price(raw, MSRP_KEYS),
        images=_variant_images(raw, cdn_base),
    )


def _looks_like_variant(item: Dict[str, Any]) -> bool:
    return not _is_empty(first_of(item, ("sku", "SKU", "skuId"))) and (
        not _is_empty(first_of(item, SIZE_KEYS)) or not _is_empty(first_of(item, ("colorName", "color")))
    )


def map_products(payload: Any, supplier_id: str, cdn_base: str = DEFAULT_CDN_BASE) -> List[Product]:
    """
    Map a products payload onto one Product per style.

    Styles may arrive with nested `variants`/`skus`, or flat, one record per
    sku. Flat sku records are folded into their style in first-seen order.
    Records without a usable style id are dropped.
    """
    by_style: Dict[str, Product] = {}
    for item in items_of(payload):
        style_id = digits_only(first_of(item, STYLE_ID_KEYS, ""))
        if not style_id:
            logger.debug(f"{supplier_id}: dropping record without style id: {list(item)[:8]}")
            continue

        nested = first_of(item, ("variants", "skus"), [])
        variants = [map_variant(v, cdn_base) for v in nested if isinstance(v, dict)] if isinstance(nested, list) else []
        if not variants and _looks_like_variant(item):
            variants = [map_variant(item, cdn_base)]

        product = by_style.get(style_id)
        if product is None:
            brand = str(first_of(item, BRAND_KEYS, ""))
            style_name = str(first_of(item, NAME_KEYS, ""))
            hero = resolve_image_url(
                first_of(item, ("styleImage", "image", "STYLEIMAGE", "imageUrl", "primaryImageURL")), cdn_base
            )
            product = Product(
                supplier_id=supplier_id,
                style_id=style_id,
                sku=style_id,
                name=style_name,
                brand=brand,
                part_number=str(first_of(item, ("partNumber", "PARTNUMBER", "styleName"), "")),
                category=str(first_of(item, CATEGORY_KEYS, "")),
                description=str(first_of(item, ("description", "DESCRIPTION"), "")),
                price=extract_price(item),
                images=[Image(url=hero, kind="style")] if hero else [],
            )
            by_style[style_id] = product
        product.variants.extend(variants)

    for product in by_style.values():
        low, _ = price_range([v.price for v in product.variants], {"price": product.price})
        product.price = low
        if not product.images:
            product.images = [img for v in product.variants for img in v.images if img.kind == "front"][:1]
    return list(by_style.values())


def price_range(variant_prices: Iterable[float], style_record: Any = None) -> Tuple[float, float]:
    """
    (min, max) over positive variant prices; falls back to the style-level
    price fields, then to (0.0, 0.0).
    """
    positive = [p for p in variant_prices if p > 0]
    if positive:
        return min(positive), max(positive)
    style_price = extract_price(style_record)
    if style_price > 0:
        return style_price, max(style_price, extract_price(style_record, MSRP_KEYS))
    return 0.0, 0.0


# --- inventory -------------------------------------------------------------


def _warehouse_entries(record: Dict[str, Any]) -> List[Dict[str, Any]]:
    entries = first_of(record, ("warehouses", "warehouseQuantities", "WAREHOUSES"), [])
    return [e for e in entries if isinstance(e, dict)] if isinstance(entries, list) else []


def map_inventory_matrix(payload: Any, style_id: str, as_of: Optional[datetime] = None) -> InventoryMatrix:
    """Fold per-sku warehouse quantities into a warehouse x size grid."""
    warehouses: List[str] = []
    sizes: List[str] = []
    qty: Dict[str, int] = {}

    for record in items_of(payload):
        size = normalize_size(first_of(record, SIZE_KEYS, "")) or ONE_SIZE
        if size not in sizes:
            sizes.append(size)
        for entry in _warehouse_entries(record):
            code = str(first_of(entry, ("warehouseAbbr", "code", "warehouseCode", "warehouseId"), "")).strip()
            if not code:
                continue
            if code not in warehouses:
                warehouses.append(code)
            key = InventoryMatrix.cell_key(code, size)
            qty[key] = qty.get(key, 0) + max(0, to_int(first_of(entry, QTY_KEYS, 0)))

    return InventoryMatrix(
        style_id=str(style_id),
        warehouses=warehouses,
        sizes=sort_sizes(sizes),
        qty=qty,
        as_of=as_of or utcnow(),
    )


def matrix_to_summary(matrix: InventoryMatrix, sku: Optional[str] = None) -> InventorySummary:
    breakdown = []
    for code in matrix.warehouses:
        by_size = {size: matrix.quantity(code, size) for size in matrix.sizes}
        breakdown.append(
            WarehouseInventory(warehouse=code, name=warehouse_name(code), total=sum(by_size.values()), by_size=by_size)
        )
    return InventorySummary(
        sku=sku or matrix.style_id,
        style_id=matrix.style_id,
        warehouses=breakdown,
        as_of=matrix.as_of,
    )


def map_inventory_snapshot(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Per-part stock from a products/inventory payload, stored with synced rows."""
    parts = []
    for record in records:
        quantity = to_int(first_of(record, QTY_KEYS, 0))
        if not quantity:
            quantity = sum(to_int(first_of(w, QTY_KEYS, 0)) for w in _warehouse_entries(record))
        parts.append({
            "partId": str(first_of(record, ("sku", "SKU", "id", "partId"), "")),
            "color": str(first_of(record, ("colorName", "color", "COLOR"), "")),
            "size": normalize_size(first_of(record, SIZE_KEYS, "")),
            "quantity": max(0, quantity),
        })
    return {
        "totalQuantity": sum(p["quantity"] for p in parts),
        "parts": parts,
        "source": "rest_api",
    }


# --- sync detail / pricing -------------------------------------------------


def _color_names(raw: Any) -> List[str]:
    out: List[str] = []
    for entry in raw if isinstance(raw, list) else []:
        name = first_of(entry, ("colorName", "name", "color")) if isinstance(entry, dict) else entry
        if not _is_empty(name) and str(name) not in out:
            out.append(str(name))
    return out


def map_style_detail(product_id: str, records: List[Dict[str, Any]], cdn_base: str = DEFAULT_CDN_BASE) -> Dict[str, Any]:
    """
    Descriptive fields for one synced style from a styles/products payload.

    Images come from style-level fields, then per-variant front/side/back/
    swatch, then any images array.
    """
    product = records[0] if records else {}
    nested = first_of(product, ("variants", "skus"), [])
    variants = [v for v in nested if isinstance(v, dict)] if isinstance(nested, list) else []
    if not variants and len(records) > 1:
        variants = records

    primary = resolve_image_url(
        first_of(product, ("primaryImageURL", "PRIMARYIMAGEURL", "image", "IMAGE", "imageUrl", "styleImage", "frontImage")),
        cdn_base,
    )
    images: List[str] = []
    for variant in variants:
        for img in _variant_images(variant, cdn_base):
            if primary is None and img.kind == "front":
                primary = img.url
            if img.url not in images:
                images.append(img.url)

    if primary is None or not images:
        raw_images = first_of(product, ("images", "IMAGES", "styleImages"), [])
        for entry in raw_images if isinstance(raw_images, list) else []:
            path = first_of(entry, ("url", "imageURL", "src", "href")) if isinstance(entry, dict) else entry
            url = resolve_image_url(path, cdn_base)
            if url and url not in images:
                images.append(url)
        if primary is None and images:
            primary = images[0]

    min_price, max_price = price_range(
        [extract_price(v, VARIANT_PRICE_KEYS) for v in variants], product
    )

    colors = _color_names(first_of(product, ("colors", "COLORS"), [])) or _color_names(
        [first_of(v, ("colorName", "color")) for v in variants]
    )
    sizes = first_of(product, ("sizes", "SIZES"), [])
    sizes = [normalize_size(s) for s in sizes] if isinstance(sizes, list) else []
    if not sizes:
        sizes = [normalize_size(first_of(v, SIZE_KEYS, "")) for v in variants]
    sizes = sort_sizes(s for s in sizes if s)

    if not records:
        logger.debug(f"No detail records for {product_id}, using defaults")

    return {
        "productId": product_id,
        "name": str(first_of(product, ("styleName", "STYLENAME", "name", "productName"), f"Product {product_id}")),
        "description": str(first_of(product, ("description", "DESCRIPTION", "styleName"), "")),
        "brand": str(first_of(product, ("brand", "BRAND", "brandName"), "")),
        "category": str(first_of(product, CATEGORY_KEYS, "Apparel")),
        "primaryImageUrl": primary,
        "images": images,
        "colors": colors,
        "sizes": sizes,
        "minPrice": min_price,
        "maxPrice": max_price,
        "isCloseout": as_bool(first_of(product, ("isCloseout", "ISCLOSEOUT", "closeout"), False)),
        "isCaution": as_bool(first_of(product, ("isCaution", "ISCAUTION"), False)),
        "isOnDemand": as_bool(first_of(product, ("isOnDemand", "ISONDEMAND"), False)),
        "isHazmat": as_bool(first_of(product, ("isHazmat", "ISHAZMAT"), False)),
        "effectiveDate": first_of(product, ("effectiveDate", "EFFECTIVEDATE")),
        "endDate": first_of(product, ("endDate", "ENDDATE")),
        "lastChangeDate": first_of(product, ("lastChangeDate", "LASTCHANGEDATE")),
    }


def map_pricing(records: List[Dict[str, Any]], fob_id: str = "IL", currency: str = "USD") -> Dict[str, Any]:
    """Price range across the parts of a style; None bounds when nothing is priced."""
    prices = []
    for record in records:
        price = extract_price(record)
        if price > 0:
            prices.append({
                "partId": str(first_of(record, ("sku", "SKU", "id"), "")),
                "price": price,
                "cost": to_float(first_of(record, ("cost", "COST"), 0)),
                "msrp": extract_price(record, MSRP_KEYS),
                "minimumQuantity": to_int(first_of(record, ("minimumQuantity", "MINIMUMQUANTITY"), 1)) or 1,
            })
    return {
        "fobId": fob_id,
        "currency": currency,
        "minPrice": min(p["price"] for p in prices) if prices else None,
        "maxPrice": max(p["msrp"] or p["price"] for p in prices) if prices else None,
        "prices": prices,
    }


# --- unified ---------------------------------------------------------------


def to_unified_product(
    product: Product,
    supplier_name: str,
    local_id: int,
    inventory: Optional[InventorySummary] = None,
) -> UnifiedProduct:
    colors: List[str] = []
    for variant in product.variants:
        if variant.color.hex and variant.color.hex not in colors:
            colors.append(variant.color.hex)

    offer = SupplierOffer(
        supplier_id=product.supplier_id,
        supplier=supplier_name,
        price=max(0.0, product.price),
        inventory=inventory.total_available if inventory else 0,
        inventory_by_warehouse_size=inventory.by_warehouse_size() if inventory else {},
        as_of=inventory.as_of if inventory else None,
        source=product.source,
    )
    return UnifiedProduct(
        id=local_id,
        sku=product.sku or product.style_id,
        style_id=product.style_id,
        name=product.name,
        brand=product.brand,
        category=product.category or "Apparel",
        image=product.images[0].url if product.images else None,
        colors=colors,
        suppliers=[offer],
    )

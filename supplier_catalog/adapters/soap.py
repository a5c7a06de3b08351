"""
Minimal SOAP support for the legacy PromoStandards inventory endpoint.

Only what one endpoint class needs: a SOAP 1.2 envelope around a plain XML
body, fault detection, and a parser for GetInventoryLevels responses.
"""

import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from supplier_catalog.core.exceptions import SoapFaultError
from supplier_catalog.core.http_client import RetryingHttpClient, mask_secret
from supplier_catalog.core.normalizer import normalize_size, to_int
from supplier_catalog.models import InventoryMatrix, utcnow

logger = logging.getLogger(__name__)

SOAP12_NS = "http://www.w3.org/2003/05/soap-envelope"
INVENTORY_NS = "http://www.promostandards.org/WSDL/Inventory/2.0.0/"
SHARED_NS = "http://www.promostandards.org/WSDL/Inventory/2.0.0/SharedObjects/"
GET_INVENTORY_LEVELS_ACTION = "http://www.promostandards.org/WSDL/Inventory/2.0.0/GetInventoryLevels"


def build_envelope(body_inner_xml: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<soap12:Envelope xmlns:soap12="{SOAP12_NS}">\n'
        f"  <soap12:Body>{body_inner_xml}</soap12:Body>\n"
        "</soap12:Envelope>"
    )


def build_inventory_levels_request(account_number: str, api_key: str, product_id: str) -> str:
    body = (
        f'<ns:GetInventoryLevelsRequest xmlns:ns="{INVENTORY_NS}" xmlns:shar="{SHARED_NS}">'
        "<shar:wsVersion>2.0.0</shar:wsVersion>"
        f"<shar:id>{escape(account_number)}</shar:id>"
        f"<shar:password>{escape(api_key)}</shar:password>"
        f"<shar:productId>{escape(product_id)}</shar:productId>"
        "</ns:GetInventoryLevelsRequest>"
    )
    return build_envelope(body)


def _first_text(xml: str, pattern: str) -> Optional[str]:
    match = re.search(pattern, xml, re.IGNORECASE | re.DOTALL)
    return match.group(1).strip() if match else None


def raise_for_fault(xml: str) -> None:
    """Raise SoapFaultError when the response carries a Fault element."""
    if "Fault" not in xml:
        return
    code = (
        _first_text(xml, r"<(?:\w+:)?faultcode[^>]*>([^<]+)<")
        or _first_text(xml, r"<(?:\w+:)?Code[^>]*>\s*<(?:\w+:)?Value[^>]*>([^<]+)<")
        or "UNKNOWN_FAULT"
    )
    message = (
        _first_text(xml, r"<(?:\w+:)?faultstring[^>]*>([^<]+)<")
        or _first_text(xml, r"<(?:\w+:)?Reason[^>]*>\s*<(?:\w+:)?Text[^>]*>([^<]+)<")
        or "Unknown SOAP fault"
    )
    raise SoapFaultError(code, message, details=xml[:500])


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str:
    for child in element.iter():
        if _local(child.tag) == name and child.text:
            return child.text.strip()
    return ""


def _quantity(element: ET.Element, container: str) -> int:
    for child in element.iter():
        if _local(child.tag) == container:
            return to_int(_child_text(child, "value"))
    return 0


def parse_inventory_levels(xml: str) -> List[Dict[str, Any]]:
    """
    PartInventory records with their per-location quantities.

    Malformed XML yields an empty list.
    """
    try:
        root = ET.fromstring(xml.encode("utf-8") if isinstance(xml, str) else xml)
    except ET.ParseError as e:
        logger.warning(f"Could not parse inventory XML: {str(e)}")
        return []

    parts = []
    for part in root.iter():
        if _local(part.tag) != "PartInventory":
            continue
        part_id = _child_text(part, "partId")
        if not part_id:
            continue
        locations = []
        for location in part.iter():
            if _local(location.tag) != "InventoryLocation":
                continue
            location_id = _child_text(location, "inventoryLocationId")
            if not location_id:
                continue
            locations.append({
                "inventoryLocationId": location_id,
                "inventoryLocationName": _child_text(location, "inventoryLocationName"),
                "quantity": _quantity(location, "inventoryLocationQuantity"),
            })
        parts.append({
            "partId": part_id,
            "partColor": _child_text(part, "partColor"),
            "labelSize": _child_text(part, "labelSize"),
            "quantity": _quantity(part, "quantityAvailable"),
            "locations": locations,
        })
    return parts


def parts_to_matrix(parts: List[Dict[str, Any]], style_id: str, as_of: Optional[datetime] = None) -> InventoryMatrix:
    warehouses: List[str] = []
    sizes: List[str] = []
    qty: Dict[str, int] = {}
    for part in parts:
        size = normalize_size(part.get("labelSize")) or "OS"
        if size not in sizes:
            sizes.append(size)
        for location in part.get("locations", []):
            code = location["inventoryLocationId"]
            if code not in warehouses:
                warehouses.append(code)
            key = InventoryMatrix.cell_key(code, size)
            qty[key] = qty.get(key, 0) + max(0, location.get("quantity", 0))
    return InventoryMatrix(style_id=style_id, warehouses=warehouses, sizes=sizes, qty=qty, as_of=as_of or utcnow())


class SoapInventoryClient:
    """GetInventoryLevels over the shared retrying transport."""

    def __init__(self, http: RetryingHttpClient, url: str, account_number: str, api_key: str):
        self.http = http
        self.url = url
        self.account_number = account_number
        self.api_key = api_key

    async def get_inventory_levels(self, product_id: str) -> List[Dict[str, Any]]:
        envelope = build_inventory_levels_request(self.account_number, self.api_key, product_id)
        logger.info(f"SOAP GetInventoryLevels for {product_id} (account {mask_secret(self.account_number)})")
        body, latency_ms = await self.http.request(
            self.url,
            method="POST",
            content=envelope,
            headers={
                "Content-Type": f'application/soap+xml; charset=utf-8; action="{GET_INVENTORY_LEVELS_ACTION}"',
                "SOAPAction": GET_INVENTORY_LEVELS_ACTION,
                "Accept": "application/soap+xml, text/xml",
            },
            parse_json=False,
        )
        raise_for_fault(body)
        parts = parse_inventory_levels(body)
        logger.info(f"Parsed {len(parts)} part inventories for {product_id} in {latency_ms:.0f}ms")
        return parts

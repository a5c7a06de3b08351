"""Legacy SOAP inventory envelope, fault detection and parsing."""

import httpx
import pytest

from supplier_catalog.adapters.soap import (
    GET_INVENTORY_LEVELS_ACTION,
    SoapInventoryClient,
    build_inventory_levels_request,
    parse_inventory_levels,
    parts_to_matrix,
    raise_for_fault,
)
from supplier_catalog.core.exceptions import SoapFaultError
from supplier_catalog.core.http_client import RetryingHttpClient

INVENTORY_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope">
  <s:Body>
    <GetInventoryLevelsResponse xmlns="http://www.promostandards.org/WSDL/Inventory/2.0.0/"
        xmlns:b="http://www.promostandards.org/WSDL/Inventory/2.0.0/SharedObjects/">
      <Inventory>
        <b:productId>2000</b:productId>
        <PartInventoryArray>
          <PartInventory>
            <b:partId>B00760003</b:partId>
            <b:partColor>Black</b:partColor>
            <b:labelSize>Medium</b:labelSize>
            <b:quantityAvailable><b:Quantity><b:uom>EA</b:uom><b:value>15</b:value></b:Quantity></b:quantityAvailable>
            <InventoryLocationArray>
              <InventoryLocation>
                <b:inventoryLocationId>IL</b:inventoryLocationId>
                <b:inventoryLocationName>Lockport</b:inventoryLocationName>
                <b:inventoryLocationQuantity><b:Quantity><b:value>10</b:value></b:Quantity></b:inventoryLocationQuantity>
              </InventoryLocation>
              <InventoryLocation>
                <b:inventoryLocationId>KS</b:inventoryLocationId>
                <b:inventoryLocationName>Olathe</b:inventoryLocationName>
                <b:inventoryLocationQuantity><b:Quantity><b:value>5</b:value></b:Quantity></b:inventoryLocationQuantity>
              </InventoryLocation>
            </InventoryLocationArray>
          </PartInventory>
        </PartInventoryArray>
      </Inventory>
    </GetInventoryLevelsResponse>
  </s:Body>
</s:Envelope>"""

FAULT_RESPONSE = """<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope"><s:Body>
<s:Fault><s:Code><s:Value>s:Sender</s:Value></s:Code><s:Reason><s:Text xml:lang="en">Invalid credentials</s:Text></s:Reason></s:Fault>
</s:Body></s:Envelope>"""


def test_envelope_wraps_body_and_escapes_credentials():
    envelope = build_inventory_levels_request("123", "k<e>y&", "2000")

    assert "<soap12:Envelope" in envelope and "<soap12:Body>" in envelope
    assert "<shar:password>k&lt;e&gt;y&amp;</shar:password>" in envelope
    assert "<shar:productId>2000</shar:productId>" in envelope


def test_fault_is_raised_with_code_and_reason():
    with pytest.raises(SoapFaultError) as exc_info:
        raise_for_fault(FAULT_RESPONSE)

    assert exc_info.value.code == "s:Sender"
    assert exc_info.value.message == "Invalid credentials"


def test_no_fault_passes():
    raise_for_fault(INVENTORY_RESPONSE)


def test_parse_parts_and_locations():
    parts = parse_inventory_levels(INVENTORY_RESPONSE)

    assert len(parts) == 1
    part = parts[0]
    assert part["partId"] == "B00760003"
    assert part["quantity"] == 15
    assert [loc["inventoryLocationId"] for loc in part["locations"]] == ["IL", "KS"]
    assert part["locations"][1]["quantity"] == 5


def test_malformed_xml_yields_no_parts():
    assert parse_inventory_levels("<not xml") == []


def test_parts_to_matrix_normalizes_sizes():
    matrix = parts_to_matrix(parse_inventory_levels(INVENTORY_RESPONSE), "2000")

    assert matrix.sizes == ["M"]
    assert matrix.quantity("IL", "M") == 10
    assert matrix.quantity("KS", "M") == 5


async def test_client_posts_soap12_envelope(fake_sleep):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=INVENTORY_RESPONSE)

    http = RetryingHttpClient("ss", transport=httpx.MockTransport(handler), sleep=fake_sleep)
    client = SoapInventoryClient(http, "https://soap.example.test/inventory", "123", "key")

    parts = await client.get_inventory_levels("2000")

    assert parts[0]["partId"] == "B00760003"
    request = seen[0]
    assert request.method == "POST"
    assert request.headers["SOAPAction"] == GET_INVENTORY_LEVELS_ACTION
    assert request.headers["Content-Type"].startswith("application/soap+xml")
    assert b"GetInventoryLevelsRequest" in request.content

"""S&S Activewear adapter against the fake REST API."""

import httpx
import pytest

from supplier_catalog.core.config import Settings
from supplier_catalog.core.exceptions import SupplierConfigError, SupplierError, UpstreamStatusError


class TestInventoryMatrix:

    async def test_matrix_cells_from_products_endpoint(self, ss_adapter, ss_api):
        matrix = await ss_adapter.get_inventory_matrix("2000")

        assert matrix.style_id == "2000"
        assert matrix.quantity("IL", "M") == 10
        assert matrix.quantity("KS", "M") == 5
        assert matrix.quantity("NV", "2XL") == 2
        assert ss_api.calls_to("Products") == [{
            "STYLEID": "2000", "page": "1", "pageSize": "200",
            "fields": "SKU,QTY,WAREHOUSES,SIZE,COLOR", "mediaType": "json",
        }]

    async def test_second_read_is_served_from_cache(self, ss_adapter, ss_api):
        first = await ss_adapter.get_inventory_matrix("2000")
        second = await ss_adapter.get_inventory_matrix("2000")

        assert len(ss_api.calls) == 1
        assert second.as_of == first.as_of
        assert second.qty == first.qty

    async def test_force_refetches(self, ss_adapter, ss_api):
        await ss_adapter.get_inventory_matrix("2000")
        await ss_adapter.get_inventory_matrix("2000", force=True)

        assert len(ss_api.calls) == 2

    async def test_unknown_style_is_not_cached(self, ss_adapter, ss_api):
        first = await ss_adapter.get_inventory_matrix("99999")
        calls = len(ss_api.calls)
        await ss_adapter.get_inventory_matrix("99999")

        assert first.qty == {}
        assert first.warehouses == []
        assert len(ss_api.calls) == calls * 2

    async def test_inventory_by_sku_summary(self, ss_adapter):
        summary = await ss_adapter.get_inventory_by_sku("2000")

        assert summary.total_available == 24
        assert summary.total_available == sum(w.total for w in summary.warehouses)


class TestCatalog:

    async def test_search_returns_one_product_per_style(self, ss_adapter):
        products = await ss_adapter.search_products("gildan")

        assert [p.style_id for p in products] == ["2000", "5000", "18500"]
        assert products[0].price == 3.42
        assert products[0].name == "Ultra Cotton T-Shirt"

    async def test_search_result_is_cached(self, ss_adapter, ss_api):
        await ss_adapter.search_products("gildan")
        calls = len(ss_api.calls)

        await ss_adapter.search_products(" Gildan ")

        assert len(ss_api.calls) == calls

    async def test_browse_live(self, ss_adapter):
        page = await ss_adapter.browse_products(page=1, page_size=20)

        assert page.source == "live"
        assert len(page.products) == 3
        assert page.has_prev_page is False

    async def test_browse_falls_back_when_upstream_fails(self, ss_adapter, ss_api):
        ss_api.status_override = 500

        page = await ss_adapter.browse_products()

        assert page.source == "fallback"
        assert len(page.products) == 6
        assert page.total_products == 6


class TestIdentifierResolution:

    async def test_numeric_id_is_confirmed(self, ss_adapter):
        assert await ss_adapter.resolve_style_id("2000") == ("2000", None)

    async def test_name_resolves_through_search(self, ss_adapter):
        style_id, style_query = await ss_adapter.resolve_style_id("Ultra Cotton T-Shirt")

        assert style_id == "2000"
        assert style_query == "Gildan Ultra Cotton T-Shirt"

    async def test_rejected_parameter_moves_to_the_next(self, make_adapter, ss_api):
        def reject_style_id(request: httpx.Request) -> httpx.Response:
            if "styleId" in request.url.params:
                return httpx.Response(400, json={"message": "unknown parameter"})
            return ss_api.handler(request)

        adapter = make_adapter(handler=reject_style_id)

        assert await adapter.search_styles("gildan") == ["2000", "5000", "18500"]
        assert ss_api.calls_to("Styles")[0] == {"STYLEID": "gildan", "page": "1", "pageSize": "8", "mediaType": "json"}

    async def test_server_error_stops_parameter_fallback(self, ss_adapter, ss_api):
        ss_api.status_override = 503

        with pytest.raises(UpstreamStatusError):
            await ss_adapter.search_styles("gildan")

        # One parameter, three credential strategies, three attempts each.
        assert len(ss_api.calls) == 9
        assert {tuple(params)[0] for params in ss_api.calls_to("Styles")} == {"styleId"}

    async def test_failures_never_raise(self, ss_adapter, ss_api):
        ss_api.status_override = 500

        assert await ss_adapter.resolve_style_id("2000") == (None, None)
        assert await ss_adapter.resolve_style_id("") == (None, None)


class TestSyncSupport:

    async def test_missing_credentials(self, make_adapter):
        adapter = make_adapter(adapter_settings=Settings())

        with pytest.raises(SupplierConfigError):
            adapter.validate_configuration()

    async def test_sellable_ids_from_seed_search(self, ss_adapter):
        ids, source = await ss_adapter.list_sellable_style_ids()

        assert ids == ["2000", "5000", "18500"]
        assert source == "live"

    async def test_sellable_ids_fall_back_to_curated(self, ss_adapter, ss_api, settings):
        ss_api.status_override = 500

        ids, source = await ss_adapter.list_sellable_style_ids()

        assert source == "curated"
        assert ids == settings.known_style_ids

    async def test_outage_stops_seed_searches(self, make_adapter, ss_api, settings):
        ss_api.status_override = 500
        adapter = make_adapter(
            adapter_settings=settings.model_copy(update={"seed_search_terms": ["gildan", "hanes", "polo"]})
        )

        ids, source = await adapter.list_sellable_style_ids()

        assert source == "curated"
        assert len(ss_api.calls) == 9
        assert {params.get("styleId") for params in ss_api.calls_to("Styles")} == {"gildan"}

    async def test_style_detail_and_pricing(self, ss_adapter):
        detail = await ss_adapter.get_style_detail("2000")
        pricing = await ss_adapter.get_pricing("2000")

        assert detail["name"] == "Ultra Cotton T-Shirt"
        assert detail["category"] == "T-Shirts"
        assert detail["source"] == "styles_api"
        assert pricing["minPrice"] == 3.42
        assert pricing["maxPrice"] == 5.12
        assert pricing["source"] == "inventory_api"

    async def test_unknown_style_has_no_detail(self, ss_adapter):
        with pytest.raises(SupplierError):
            await ss_adapter.get_style_detail("99999")

    async def test_connection(self, ss_adapter, ss_api):
        result = await ss_adapter.test_connection()
        assert result.success is True

        ss_api.status_override = 500
        result = await ss_adapter.test_connection()
        assert result.success is False

"""Tests for the Shopify CSV export."""

import csv
import io
from datetime import datetime
from decimal import Decimal

import pytest

from src.core.config import PricingRules, StoreConfig
from src.core.models import (
    DemandTier,
    ExportFilter,
    Product,
    ProductStatus,
    ShopifyExportOptions,
)
from src.core.shopify_csv import (
    METAFIELD_COLUMNS,
    SHOPIFY_COLUMNS,
    ShopifyCsvExporter,
    format_money,
    get_metafield_definitions,
    get_shopify_column_mapping,
)


def _unquoted_commas(line: str) -> int:
    count = 0
    quoted = False
    for ch in line:
        if ch == '"':
            quoted = not quoted
        elif ch == "," and not quoted:
            count += 1
    return count


@pytest.fixture
def exporter(rules: PricingRules) -> ShopifyCsvExporter:
    return ShopifyCsvExporter(rules, StoreConfig())


class TestColumns:
    def test_counts(self, exporter: ShopifyCsvExporter) -> None:
        assert len(SHOPIFY_COLUMNS) == 55
        assert len(METAFIELD_COLUMNS) == 15
        assert len(exporter.columns()) == 70
        assert len(exporter.columns(include_metafields=False)) == 55

    def test_first_and_last(self) -> None:
        assert SHOPIFY_COLUMNS[0] == "Handle"
        assert SHOPIFY_COLUMNS[-1] == "Status"

    def test_reference_tables(self) -> None:
        assert len(get_metafield_definitions()) == 15
        assert get_shopify_column_mapping()[0]["column"] == "Handle"


class TestEscaping:
    def test_quotes_doubled(self, exporter: ShopifyCsvExporter, sample_product: Product) -> None:
        sample_product.title = 'Baking Mat, "Pro" Size'
        line = exporter.export_products([sample_product]).csv.split("\n")[1]
        assert '"Baking Mat, ""Pro"" Size"' in line

    def test_line_breaks_collapsed(self, exporter: ShopifyCsvExporter, sample_product: Product) -> None:
        sample_product.brand = "Kitchen\nPro"
        sample_product.category = "Kitchen\r\n& Dining"
        sample_product.image_url = "https://img.example.com/mat.jpg\n"
        row = exporter.transform_row(sample_product, ShopifyExportOptions())
        assert row[3] == "Kitchen Pro"
        assert "Brand:Kitchen Pro" in row[6]
        assert row[25] == "https://img.example.com/mat.jpg"
        assert not any("\n" in cell or "\r" in cell for cell in row)

    def test_format_money(self) -> None:
        assert format_money(Decimal("5")) == "5.00"
        assert format_money(None) == ""
        assert format_money(None, "0.00") == "0.00"


class TestCellHelpers:
    def test_handle(self, exporter: ShopifyCsvExporter) -> None:
        assert exporter.generate_handle("Ice Roller for Face!", "B0ABC12345") == "ice-roller-for-face-b0abc12345"

    def test_handle_unique_per_asin(self, exporter: ShopifyCsvExporter) -> None:
        first = exporter.generate_handle("Same Title", "B000000001")
        second = exporter.generate_handle("Same Title", "B000000002")
        assert first != second

    def test_handle_without_title(self, exporter: ShopifyCsvExporter) -> None:
        assert exporter.generate_handle("", "B0ABC12345") == "b0abc12345"

    def test_tags(self, exporter: ShopifyCsvExporter, sample_product: Product, now: datetime) -> None:
        tags = exporter.generate_tags(sample_product, now=now)
        assert tags == [
            "Kitchen & Dining",
            "Brand:KitchenPro",
            "Demand:high",
            "Price:$10-$25",
            "Prime",
            "bulk-import",
            "imported:2025-03-14",
        ]

    def test_body_html(self, exporter: ShopifyCsvExporter, sample_product: Product) -> None:
        body = exporter.generate_body_html(sample_product)
        assert body.startswith("<p>Non-stick reusable baking mats.</p>")
        assert "<li>Food-grade silicone</li>" in body
        assert "<li><strong>ASIN:</strong> B08N5WRWNW</li>" in body

    def test_seo_title_truncated(self, exporter: ShopifyCsvExporter) -> None:
        title = exporter.generate_seo_title("x" * 100, None)
        assert len(title) == 70
        assert title.endswith("...")

    def test_seo_title_prefixes_brand(self, exporter: ShopifyCsvExporter) -> None:
        assert exporter.generate_seo_title("Baking Mat", "KitchenPro") == "KitchenPro Baking Mat"
        assert exporter.generate_seo_title("KitchenPro Baking Mat", "KitchenPro") == "KitchenPro Baking Mat"

    def test_seo_description_truncated(self, exporter: ShopifyCsvExporter) -> None:
        desc = exporter.generate_seo_description("Title", "y" * 500, None)
        assert len(desc) == 320
        assert desc.endswith("...")

    def test_product_type(self, exporter: ShopifyCsvExporter) -> None:
        assert exporter.determine_product_type("Kitchen & Dining") == "Kitchen"
        assert exporter.determine_product_type("Widgets") == "Widgets"
        assert exporter.determine_product_type(None) == "General"

    def test_google_category(self, exporter: ShopifyCsvExporter) -> None:
        assert exporter.determine_google_category("Pet Supplies") == "Animals & Pet Supplies"
        assert exporter.determine_google_category("Widgets") == ""


class TestTransformRow:
    def test_row_width(self, exporter: ShopifyCsvExporter, sample_product: Product) -> None:
        row = exporter.transform_row(sample_product, ShopifyExportOptions())
        assert len(row) == 70
        short = exporter.transform_row(sample_product, ShopifyExportOptions(include_metafields=False))
        assert len(short) == 55

    def test_prices(self, exporter: ShopifyCsvExporter, sample_product: Product) -> None:
        row = dict(zip(exporter.columns(), exporter.transform_row(sample_product, ShopifyExportOptions())))
        assert row["Variant Price"] == "24.99"
        assert row["Variant Compare At Price"] == "46.23"
        assert row["Cost per item"] == "14.70"
        assert row["amazon_display_price"] == "46.23"
        assert row["demand_tier"] == "high"
        assert row["Variant SKU"] == "B08N5WRWNW"
        assert row["Status"] == "active"
        assert row["Published"] == "TRUE"

    def test_unpriced_product(self, exporter: ShopifyCsvExporter) -> None:
        product = Product(asin="B0ABC12345", title="Unpriced")
        row = dict(zip(exporter.columns(), exporter.transform_row(product, ShopifyExportOptions())))
        assert row["Variant Price"] == "0.00"
        assert row["Variant Compare At Price"] == ""
        assert row["amazon_display_price"] == ""


class TestExport:
    def test_empty_export(self, exporter: ShopifyCsvExporter) -> None:
        result = exporter.export_products([])
        assert result.success is True
        assert result.csv == ""
        assert result.product_count == 0

    def test_empty_export_to_dict(self, exporter: ShopifyCsvExporter) -> None:
        data = exporter.export(lambda query: []).to_dict()
        assert data["success"] is True
        assert data["csv"] == ""
        assert data["productCount"] == 0

    def test_row_shape(self, exporter: ShopifyCsvExporter, sample_products: list[Product]) -> None:
        result = exporter.export_products(sample_products)
        lines = result.csv.split("\n")
        assert result.success is True
        assert len(lines) == result.product_count + 1
        header_commas = _unquoted_commas(lines[0])
        assert header_commas == 69
        for line in lines[1:]:
            assert _unquoted_commas(line) == header_commas

    def test_row_shape_with_multiline_fields(
        self, exporter: ShopifyCsvExporter, sample_products: list[Product]
    ) -> None:
        sample_products[0].brand = "Kitchen\nPro"
        sample_products[1].category = "Office\r\nSupplies"
        sample_products[1].description = "Line one.\n\nLine two."
        result = exporter.export_products(sample_products)
        lines = result.csv.split("\n")
        assert len(lines) == result.product_count + 1
        for line in lines[1:]:
            assert _unquoted_commas(line) == _unquoted_commas(lines[0])

    def test_parses_as_csv(self, exporter: ShopifyCsvExporter, sample_products: list[Product]) -> None:
        result = exporter.export_products(sample_products)
        rows = list(csv.reader(io.StringIO(result.csv)))
        assert rows[0][0] == "Handle"
        assert {len(row) for row in rows} == {70}
        titles = [row[1] for row in rows[1:]]
        assert 'Cable Organizer, "Pro" Edition, 10 Pack' in titles

    def test_default_statuses(self, exporter: ShopifyCsvExporter, sample_products: list[Product]) -> None:
        # Only active and pending_sync products are exported by default
        result = exporter.export_products(sample_products)
        assert result.product_count == 2

    def test_rejected_never_exported(self, exporter: ShopifyCsvExporter, sample_products: list[Product]) -> None:
        options = ShopifyExportOptions(filter=ExportFilter(statuses=ProductStatus.values()))
        result = exporter.export_products(sample_products, options)
        assert result.product_count == 3
        assert "B00REJECT1" not in result.csv

    def test_min_margin_filter(self, exporter: ShopifyCsvExporter, sample_products: list[Product]) -> None:
        options = ShopifyExportOptions(filter=ExportFilter(min_margin=Decimal("45")))
        result = exporter.export_products(sample_products, options)
        assert result.product_count == 1
        assert "B07XJ8C8F5" in result.csv

    def test_loader_receives_query(self, exporter: ShopifyCsvExporter) -> None:
        seen = []

        def loader(query: ExportFilter) -> list[Product]:
            seen.append(query)
            return []

        exporter.export(loader)
        assert seen[0].exclude_rejected is True
        assert seen[0].statuses == ["active", "pending_sync"]

    def test_loader_failure(self, exporter: ShopifyCsvExporter) -> None:
        def loader(query: ExportFilter) -> list[Product]:
            raise RuntimeError("database is locked")

        result = exporter.export(loader)
        assert result.success is False
        assert "database is locked" in result.error
        assert result.to_dict()["error"] == result.error

    def test_draft_export(self, exporter: ShopifyCsvExporter, sample_products: list[Product]) -> None:
        result = exporter.export_draft(lambda query: sample_products)
        rows = list(csv.DictReader(io.StringIO(result.csv)))
        assert rows
        assert all(row["Status"] == "draft" for row in rows)
        assert all(row["Published"] == "FALSE" for row in rows)

    def test_by_demand_tier(self, exporter: ShopifyCsvExporter, sample_products: list[Product]) -> None:
        result = exporter.export_by_demand_tier(lambda query: sample_products, DemandTier.HIGH)
        assert result.product_count == 1
        assert "B08N5WRWNW" in result.csv

    def test_reject_tier_refused(self, exporter: ShopifyCsvExporter) -> None:
        result = exporter.export_by_demand_tier(lambda query: [], "reject")
        assert result.success is False
        assert result.error == "Rejected products are not exported"
        assert result.to_dict()["csv"] == ""

    def test_unknown_tier_refused(self, exporter: ShopifyCsvExporter) -> None:
        result = exporter.export_by_demand_tier(lambda query: [], "extreme")
        assert result.success is False
        assert "extreme" in result.error

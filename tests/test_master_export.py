"""Tests for the master catalog export."""

import csv
import io
import json
from pathlib import Path
from unittest.mock import MagicMock

import pandas as pd
import pytest

from src.core.models import ExportFilter, Product
from src.utils.export import MASTER_CSV_COLUMNS, MasterExporter, format_timestamp


@pytest.fixture
def exporter(rules, repository, sample_products: list[Product]) -> MasterExporter:
    for product in sample_products:
        product.id = None
        repository.create_product(product)
    return MasterExporter(rules, repository)


class TestRecords:
    def test_record_columns(self, exporter: MasterExporter, sample_product: Product) -> None:
        record = exporter.product_to_record(sample_product)
        assert tuple(record) == MASTER_CSV_COLUMNS
        assert len(MASTER_CSV_COLUMNS) == 38

    def test_derived_values(self, exporter: MasterExporter, sample_product: Product) -> None:
        record = exporter.product_to_record(sample_product)
        assert record["margin_percent"] == 41.18
        assert record["profit"] == 10.29
        assert record["demand_tier"] == "high"
        assert record["amazon_url"] == "https://www.amazon.com/dp/B08N5WRWNW"

    def test_tier_from_bsr_and_score(self, exporter: MasterExporter) -> None:
        # A strong score cannot lift a product past its BSR bracket
        product = Product(asin="B0ABC12345", current_bsr=120_000, demand_score=90)
        assert exporter.product_to_record(product)["demand_tier"] == "low"

    def test_unpriced(self, exporter: MasterExporter) -> None:
        record = exporter.product_to_record(Product(asin="B0ABC12345"))
        assert record["margin_percent"] is None
        assert record["profit"] is None
        assert record["demand_tier"] is None
        assert record["estimated_monthly_sales"] == 0


class TestExports:
    def test_json(self, exporter: MasterExporter) -> None:
        result = exporter.export_to_json()
        payload = json.loads(result.data)
        assert result.success is True
        assert result.product_count == 4
        assert payload["productCount"] == 4
        assert payload["pricingConfig"]["competitors"]["amazon"] == "1.85"
        assert len(payload["products"]) == 4

    def test_csv(self, exporter: MasterExporter) -> None:
        result = exporter.export_to_csv()
        rows = list(csv.reader(io.StringIO(result.data)))
        assert rows[0] == list(MASTER_CSV_COLUMNS)
        assert len(rows) == 5
        assert {len(row) for row in rows} == {38}

    def test_csv_cells(self, exporter: MasterExporter) -> None:
        rows = list(csv.DictReader(io.StringIO(exporter.export_to_csv().data)))
        by_asin = {row["asin"]: row for row in rows}
        assert by_asin["B07XJ8C8F5"]["title"] == 'Cable Organizer, "Pro" Edition, 10 Pack'
        assert by_asin["B08N5WRWNW"]["is_prime"] == "true"
        assert by_asin["B08N5WRWNW"]["shopify_product_id"] == ""
        assert not exporter.export_to_csv().data.endswith("\n")

    def test_tier_filter(self, exporter: MasterExporter) -> None:
        result = exporter.export_to_csv(ExportFilter(demand_tiers=["medium"]))
        assert result.product_count == 1
        assert "B07XJ8C8F5" in result.data
        assert result.filters == {"demand_tiers": ["medium"]}

    def test_by_demand_tier(self, exporter: MasterExporter) -> None:
        result = exporter.export_by_demand_tier("reject")
        assert result.product_count == 1
        assert "B00REJECT1" in result.data

    def test_high_demand(self, exporter: MasterExporter) -> None:
        result = exporter.export_high_demand()
        assert result.product_count == 1

    def test_failure_reported(self, rules) -> None:
        repository = MagicMock()
        repository.query_products.side_effect = RuntimeError("disk I/O error")
        result = MasterExporter(rules, repository).export_to_json()
        assert result.success is False
        assert result.error == "disk I/O error"

    def test_xlsx(self, exporter: MasterExporter, tmp_path: Path) -> None:
        path = tmp_path / "catalog.xlsx"
        result = exporter.export_to_xlsx(path)
        assert result.success is True
        df = pd.read_excel(path, engine="openpyxl")
        assert list(df.columns) == list(MASTER_CSV_COLUMNS)
        assert len(df) == 4


class TestBackupAndStats:
    def test_backup(self, exporter: MasterExporter, tmp_path: Path) -> None:
        result = exporter.create_backup(tmp_path / "backups")
        assert result["success"] is True
        assert result["productCount"] == 4
        assert (tmp_path / "backups" / result["jsonFilename"]).exists()
        assert (tmp_path / "backups" / result["csvFilename"]).exists()

    def test_stats(self, exporter: MasterExporter) -> None:
        stats = exporter.get_export_stats()
        assert stats.total_products == 4
        assert stats.by_demand_tier == {"high": 1, "medium": 1, "low": 1, "reject": 1}
        assert stats.by_status["active"] == 1
        assert stats.avg_bsr == round((3200 + 25000 + 90000 + 400000) / 4)
        assert stats.total_value == 66.88

    def test_stats_to_dict(self, exporter: MasterExporter) -> None:
        data = exporter.get_export_stats().to_dict()
        assert data["totalProducts"] == 4

    def test_timestamp_format(self) -> None:
        from datetime import datetime

        assert format_timestamp(datetime(2024, 1, 15, 10, 30, 0)) == "2024-01-15T10-30-00"

    def test_generate_filename(self) -> None:
        name = MasterExporter.generate_filename("Products", "csv")
        assert name.startswith("products_")
        assert name.endswith(".csv")

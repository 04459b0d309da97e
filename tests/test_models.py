"""Tests for core models."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.core.models import (
    BulkOperationResult,
    CompetitorPrices,
    DemandTier,
    ExportFilter,
    Product,
    ProductQuery,
    ProductStatus,
    ShopifyExportResult,
    TokenStatus,
)


class TestValueEnum:
    def test_from_string(self) -> None:
        assert ProductStatus.from_string("active") == ProductStatus.ACTIVE
        assert ProductStatus.from_string("pending_sync") == ProductStatus.PENDING_SYNC

    def test_from_string_case_insensitive(self) -> None:
        assert DemandTier.from_string(" HIGH ") == DemandTier.HIGH

    def test_from_string_invalid(self) -> None:
        with pytest.raises(ValueError):
            DemandTier.from_string("extreme")

    def test_values(self) -> None:
        assert DemandTier.values() == ["high", "medium", "low", "reject"]


class TestProduct:
    def test_effective_cost_prefers_override(self) -> None:
        product = Product(amazon_price=Decimal("14.70"), cost=Decimal("12.00"))
        assert product.effective_cost == Decimal("12.00")

    def test_effective_cost_falls_back(self) -> None:
        assert Product(amazon_price=Decimal("14.70")).effective_cost == Decimal("14.70")
        assert Product().effective_cost is None

    def test_amazon_url(self) -> None:
        assert Product(asin="B08N5WRWNW").amazon_url == "https://www.amazon.com/dp/B08N5WRWNW"
        assert Product().amazon_url == ""

    def test_is_synced(self) -> None:
        assert Product().is_synced is False
        assert Product(shopify_product_id="7001").is_synced is True

    def test_competitor_prices_incomplete(self) -> None:
        assert Product(amazon_display_price=Decimal("46.23")).competitor_prices() is None

    def test_apply_competitor_prices(self) -> None:
        prices = CompetitorPrices(
            amazon=Decimal("46.23"),
            costco=Decimal("44.98"),
            ebay=Decimal("48.73"),
            sams=Decimal("45.48"),
            walmart=Decimal("47.23"),
            target=Decimal("47.73"),
        )
        product = Product()
        product.apply_competitor_prices(prices)
        assert product.ebay_display_price == Decimal("48.73")
        assert product.competitor_prices() == prices
        assert prices.lowest() == Decimal("44.98")

    def test_is_stale(self) -> None:
        now = datetime(2025, 3, 14, 9, 30)
        product = Product()
        assert product.is_stale(7, now) is True

        product.last_price_check = now - timedelta(days=3)
        assert product.is_stale(7, now) is False
        assert product.is_stale(2, now) is True


class TestBulkOperationResult:
    def test_to_dict(self) -> None:
        result = BulkOperationResult(operation="pause")
        result.record_success(1)
        result.record_failure(2, "Product not found")

        assert result.to_dict() == {
            "operation": "pause",
            "total": 2,
            "successful": 1,
            "failed": 1,
            "results": {"success": [1], "failed": [{"id": 2, "error": "Product not found"}]},
        }


class TestQueriesAndResults:
    def test_query_offset(self) -> None:
        assert ProductQuery().offset == 0
        assert ProductQuery(page=3, page_size=25).offset == 50

    def test_export_filter_to_dict_skips_defaults(self) -> None:
        export_filter = ExportFilter(
            demand_tiers=["high"],
            min_margin=Decimal("30"),
            created_after=datetime(2025, 1, 1),
        )
        assert export_filter.to_dict() == {
            "demand_tiers": ["high"],
            "min_margin": 30.0,
            "created_after": "2025-01-01T00:00:00",
        }
        assert ExportFilter().to_dict() == {}

    def test_shopify_export_result(self) -> None:
        data = ShopifyExportResult().to_dict()
        assert data["success"] is True
        assert data["csv"] == ""
        assert data["productCount"] == 0
        assert "error" not in data

        failed = ShopifyExportResult(success=False, error="boom").to_dict()
        assert failed["error"] == "boom"

    def test_tokens_per_minute(self) -> None:
        assert TokenStatus(refill_rate=20, refill_in_seconds=60).tokens_per_minute == 20
        assert TokenStatus(refill_rate=5, refill_in_seconds=0).tokens_per_minute == 5

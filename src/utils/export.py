"""Master catalog export (JSON, CSV and Excel) and backups."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

import pandas as pd

from src.core.config import PricingRules
from src.core.models import (
    DemandTier,
    ExportFilter,
    ExportResult,
    ExportStats,
    Product,
    ProductStatus,
    StockStatus,
)
from src.core.pricing import PricingEngine
from src.db.repository import Repository

logger = logging.getLogger(__name__)

MASTER_CSV_COLUMNS: tuple[str, ...] = (
    # Core
    "id",
    "asin",
    "title",
    "brand",
    "category",
    # Pricing
    "amazon_price",
    "retail_price",
    "cost",
    "margin_percent",
    "profit",
    # Competitor prices
    "amazon_display_price",
    "costco_display_price",
    "ebay_display_price",
    "sams_display_price",
    "walmart_display_price",
    "target_display_price",
    # Demand
    "current_bsr",
    "avg_bsr_30d",
    "avg_bsr_90d",
    "bsr_volatility",
    "bsr_trend",
    "demand_score",
    "demand_tier",
    "estimated_monthly_sales",
    # Details
    "rating",
    "review_count",
    "is_prime",
    "stock_status",
    "image_url",
    "amazon_url",
    # Lifecycle
    "status",
    "last_price_check",
    "last_demand_check",
    "created_at",
    "updated_at",
    # Sync
    "shopify_product_id",
    "shopify_variant_id",
    "shopify_synced_at",
)

COLUMN_DEFINITIONS: dict[str, tuple[str, str]] = {
    "id": ("Unique product ID", "integer"),
    "asin": ("Amazon Standard Identification Number", "string"),
    "title": ("Product title", "string"),
    "brand": ("Product brand", "string"),
    "category": ("Product category", "string"),
    "amazon_price": ("Current Amazon price", "number"),
    "retail_price": ("Your retail price", "number"),
    "cost": ("Product cost (usually amazon_price)", "number"),
    "margin_percent": ("Profit margin percentage", "number"),
    "profit": ("Profit per unit in dollars", "number"),
    "amazon_display_price": ("Competitor price: Amazon", "number"),
    "costco_display_price": ("Competitor price: Costco", "number"),
    "ebay_display_price": ("Competitor price: eBay", "number"),
    "sams_display_price": ("Competitor price: Sam's Club", "number"),
    "walmart_display_price": ("Competitor price: Walmart", "number"),
    "target_display_price": ("Competitor price: Target", "number"),
    "current_bsr": ("Current best seller rank", "integer"),
    "avg_bsr_30d": ("Average BSR over 30 days", "integer"),
    "avg_bsr_90d": ("Average BSR over 90 days", "integer"),
    "bsr_volatility": ("BSR volatility (percent)", "number"),
    "bsr_trend": ("improving, stable or declining", "string"),
    "demand_score": ("Demand score (0-100)", "integer"),
    "demand_tier": ("high, medium, low or reject", "string"),
    "estimated_monthly_sales": ("Estimated units sold per month", "integer"),
    "rating": ("Amazon star rating", "number"),
    "review_count": ("Amazon review count", "integer"),
    "is_prime": ("Prime eligible", "boolean"),
    "stock_status": ("in_stock, out_of_stock, limited or unknown", "string"),
    "image_url": ("Main product image", "string"),
    "amazon_url": ("Amazon product page", "string"),
    "status": ("Lifecycle status", "string"),
    "last_price_check": ("Last price refresh", "datetime"),
    "last_demand_check": ("Last demand refresh", "datetime"),
    "created_at": ("Created", "datetime"),
    "updated_at": ("Last updated", "datetime"),
    "shopify_product_id": ("Shopify product ID", "string"),
    "shopify_variant_id": ("Shopify variant ID", "string"),
    "shopify_synced_at": ("Last Shopify sync", "datetime"),
}


def _number(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _date(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _csv_cell(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def format_timestamp(now: datetime | None = None) -> str:
    """Filesystem-safe timestamp, e.g. 2024-01-15T10-30-00."""
    text = (now or datetime.now()).isoformat(timespec="milliseconds")
    return text.replace(":", "-").replace(".", "-")[:19]


class MasterExporter:
    """Exports the full product catalog with derived pricing and demand fields."""

    def __init__(self, rules: PricingRules, repository: Repository) -> None:
        self.rules = rules
        self.repository = repository
        self.engine = PricingEngine(rules)

    def demand_tier(self, product: Product) -> DemandTier | None:
        if product.current_bsr is None or product.demand_score is None:
            return None
        return self.engine.meets_demand_criteria(product.current_bsr, product.demand_score).tier

    def product_to_record(self, product: Product) -> dict[str, Any]:
        """Flatten a product to JSON-native values keyed by MASTER_CSV_COLUMNS."""
        cost = product.effective_cost
        retail = product.retail_price
        has_prices = bool(retail) and bool(cost) and cost > 0
        tier = self.demand_tier(product)
        monthly_sales = product.estimated_monthly_sales
        if not monthly_sales:
            monthly_sales = self.engine.estimate_monthly_sales(product.current_bsr)

        return {
            "id": product.id,
            "asin": product.asin,
            "title": product.title,
            "brand": product.brand or None,
            "category": product.category,
            "amazon_price": _number(product.amazon_price),
            "retail_price": _number(retail),
            "cost": _number(cost),
            "margin_percent": _number(self.engine.calculate_margin(retail, cost)) if has_prices else None,
            "profit": _number(self.engine.calculate_profit(retail, cost)) if has_prices else None,
            "amazon_display_price": _number(product.amazon_display_price),
            "costco_display_price": _number(product.costco_display_price),
            "ebay_display_price": _number(product.ebay_display_price),
            "sams_display_price": _number(product.sams_display_price),
            "walmart_display_price": _number(product.walmart_display_price),
            "target_display_price": _number(product.target_display_price),
            "current_bsr": product.current_bsr,
            "avg_bsr_30d": product.avg_bsr_30d,
            "avg_bsr_90d": product.avg_bsr_90d,
            "bsr_volatility": _number(product.bsr_volatility),
            "bsr_trend": product.bsr_trend or None,
            "demand_score": product.demand_score,
            "demand_tier": tier.value if tier else None,
            "estimated_monthly_sales": monthly_sales,
            "rating": _number(product.rating),
            "review_count": product.review_count,
            "is_prime": product.is_prime,
            "stock_status": product.stock_status.value,
            "image_url": product.image_url or None,
            "amazon_url": product.amazon_url or None,
            "status": product.status.value,
            "last_price_check": _date(product.last_price_check),
            "last_demand_check": _date(product.last_demand_check),
            "created_at": _date(product.created_at),
            "updated_at": _date(product.updated_at),
            "shopify_product_id": product.shopify_product_id,
            "shopify_variant_id": product.shopify_variant_id,
            "shopify_synced_at": _date(product.shopify_synced_at),
        }

    def load_records(self, criteria: ExportFilter) -> list[dict[str, Any]]:
        """Query products and filter on the computed demand tier."""
        products = self.repository.query_products(replace(criteria, demand_tiers=[]))
        records = [self.product_to_record(p) for p in products]
        if criteria.demand_tiers:
            tiers = set(criteria.demand_tiers)
            records = [r for r in records if r["demand_tier"] in tiers]
        logger.info(f"Found {len(records)} products for master export")
        return records

    def _pricing_config(self) -> dict[str, Any]:
        return {
            "markup": self.rules.markup.model_dump(mode="json"),
            "competitors": self.rules.competitors.model_dump(mode="json"),
            "demandTiers": self.rules.demand.tiers.model_dump(mode="json"),
        }

    def export_to_json(self, criteria: ExportFilter | None = None) -> ExportResult:
        criteria = criteria or ExportFilter()
        exported_at = datetime.now().isoformat()
        try:
            records = self.load_records(criteria)
            payload = {
                "exportedAt": exported_at,
                "productCount": len(records),
                "filters": criteria.to_dict(),
                "pricingConfig": self._pricing_config(),
                "products": records,
            }
            return ExportResult(
                success=True,
                format="json",
                data=json.dumps(payload, indent=2),
                product_count=len(records),
                exported_at=exported_at,
                filters=criteria.to_dict(),
            )
        except Exception as e:
            logger.exception("JSON export failed")
            return ExportResult(
                success=False,
                format="json",
                exported_at=exported_at,
                filters=criteria.to_dict(),
                error=str(e),
            )

    def export_to_csv(self, criteria: ExportFilter | None = None) -> ExportResult:
        criteria = criteria or ExportFilter()
        exported_at = datetime.now().isoformat()
        try:
            records = self.load_records(criteria)
            buffer = io.StringIO()
            writer = csv.DictWriter(buffer, fieldnames=MASTER_CSV_COLUMNS, lineterminator="\n")
            writer.writeheader()
            for record in records:
                writer.writerow({col: _csv_cell(record[col]) for col in MASTER_CSV_COLUMNS})
            return ExportResult(
                success=True,
                format="csv",
                data=buffer.getvalue().removesuffix("\n"),
                product_count=len(records),
                exported_at=exported_at,
                filters=criteria.to_dict(),
            )
        except Exception as e:
            logger.exception("CSV export failed")
            return ExportResult(
                success=False,
                format="csv",
                exported_at=exported_at,
                filters=criteria.to_dict(),
                error=str(e),
            )

    def export_to_xlsx(self, file_path: str | Path, criteria: ExportFilter | None = None) -> ExportResult:
        """Write the catalog to an Excel workbook at file_path."""
        criteria = criteria or ExportFilter()
        exported_at = datetime.now().isoformat()
        try:
            records = self.load_records(criteria)
            df = pd.DataFrame(records, columns=list(MASTER_CSV_COLUMNS))

            path = Path(file_path)
            with pd.ExcelWriter(path, engine="openpyxl") as writer:
                df.to_excel(writer, index=False, sheet_name="Products")

                # Auto-adjust column widths
                worksheet = writer.sheets["Products"]
                for i, col in enumerate(df.columns):
                    values = df[col].astype(str)
                    max_length = max(values.str.len().max() if len(values) else 0, len(col))
                    letter = worksheet.cell(row=1, column=i + 1).column_letter
                    worksheet.column_dimensions[letter].width = min(max_length + 2, 50)

            return ExportResult(
                success=True,
                format="xlsx",
                data=str(path),
                product_count=len(records),
                exported_at=exported_at,
                filters=criteria.to_dict(),
            )
        except Exception as e:
            logger.exception("Excel export failed")
            return ExportResult(
                success=False,
                format="xlsx",
                exported_at=exported_at,
                filters=criteria.to_dict(),
                error=str(e),
            )

    def create_backup(
        self, directory: str | Path, criteria: ExportFilter | None = None
    ) -> dict[str, Any]:
        """Write timestamped JSON and CSV backups into directory."""
        timestamp = format_timestamp()
        json_filename = f"products_backup_{timestamp}.json"
        csv_filename = f"products_backup_{timestamp}.csv"
        result: dict[str, Any] = {
            "success": False,
            "timestamp": timestamp,
            "jsonFilename": json_filename,
            "csvFilename": csv_filename,
            "productCount": 0,
        }

        json_result = self.export_to_json(criteria)
        csv_result = self.export_to_csv(criteria)
        if not json_result.success or not csv_result.success:
            result["error"] = json_result.error or csv_result.error or "Export failed"
            return result

        try:
            target = Path(directory)
            target.mkdir(parents=True, exist_ok=True)
            (target / json_filename).write_text(json_result.data, encoding="utf-8")
            (target / csv_filename).write_text(csv_result.data, encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write backup to {directory}: {e}")
            result["error"] = str(e)
            return result

        logger.info(f"Backup created: {json_filename}, {csv_filename} ({json_result.product_count} products)")
        result["success"] = True
        result["productCount"] = json_result.product_count
        return result

    def get_export_stats(self) -> ExportStats:
        """Catalog summary: counts, tiers and averages."""
        try:
            products = self.repository.all_products()
        except Exception:
            logger.exception("Failed to load products for export stats")
            return ExportStats()

        by_status: dict[str, int] = {}
        by_tier = {tier.value: 0 for tier in DemandTier}
        bsr_values: list[int] = []
        scores: list[int] = []
        margins: list[Decimal] = []
        total_value = Decimal("0")

        for product in products:
            by_status[product.status.value] = by_status.get(product.status.value, 0) + 1
            tier = self.demand_tier(product)
            if tier:
                by_tier[tier.value] += 1
            if product.current_bsr:
                bsr_values.append(product.current_bsr)
            if product.demand_score:
                scores.append(product.demand_score)

            cost = product.effective_cost
            retail = product.retail_price
            if retail and cost and cost > 0:
                margins.append((retail - cost) / retail * 100)
            if retail:
                total_value += retail

        return ExportStats(
            total_products=len(products),
            by_status=by_status,
            by_demand_tier=by_tier,
            avg_margin=round(float(sum(margins) / len(margins)), 2) if margins else 0.0,
            avg_bsr=round(sum(bsr_values) / len(bsr_values)) if bsr_values else 0,
            avg_demand_score=round(sum(scores) / len(scores), 2) if scores else 0.0,
            total_value=round(float(total_value), 2),
        )

    def export_high_demand(self) -> ExportResult:
        return self.export_to_csv(
            ExportFilter(
                demand_tiers=[DemandTier.HIGH.value],
                statuses=[ProductStatus.ACTIVE.value],
                stock_statuses=[StockStatus.IN_STOCK.value],
                sort_by="demand_score",
                sort_order="desc",
            )
        )

    def export_stale_products(self, days: int = 7) -> ExportResult:
        """Active products not updated in the last `days` days, oldest first."""
        return self.export_to_csv(
            ExportFilter(
                updated_before=datetime.now() - timedelta(days=days),
                statuses=[ProductStatus.ACTIVE.value],
                sort_by="updated_at",
                sort_order="asc",
            )
        )

    def export_by_demand_tier(self, tier: DemandTier | str) -> ExportResult:
        tier = DemandTier.from_string(tier) if isinstance(tier, str) else tier
        return self.export_to_csv(
            ExportFilter(demand_tiers=[tier.value], sort_by="demand_score", sort_order="desc")
        )

    @staticmethod
    def get_column_definitions() -> list[dict[str, str]]:
        return [
            {"column": column, "description": description, "type": type_}
            for column, (description, type_) in COLUMN_DEFINITIONS.items()
        ]

    @staticmethod
    def generate_filename(prefix: str, extension: str) -> str:
        """Generate a timestamped filename for export."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"{prefix.lower()}_{timestamp}.{extension}"

"""Boundary schema mapping stored rows to domain products.

Every field has an explicit default so partially-filled rows (imports,
older databases) still map to a complete Product.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.models import DemandTier, Product, ProductStatus, StockStatus

from .models import ProductDB


def _parse_json_list(value: Any) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return list(value) if isinstance(value, (list, tuple)) else []


class ProductRecord(BaseModel):
    """Validated view of one products row joined with its demand row."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    asin: str
    title: str = ""
    description: str = ""
    brand: str = ""
    category: str = "Uncategorized"
    image_url: str = ""
    features: list[str] = Field(default_factory=list)

    amazon_price: Decimal | None = None
    cost: Decimal | None = None
    retail_price: Decimal | None = None
    compare_at_price: Decimal | None = None
    amazon_display_price: Decimal | None = None
    costco_display_price: Decimal | None = None
    ebay_display_price: Decimal | None = None
    sams_display_price: Decimal | None = None
    walmart_display_price: Decimal | None = None
    target_display_price: Decimal | None = None
    profit_margin: Decimal | None = None
    profit_percent: Decimal | None = None

    rating: Decimal | None = None
    review_count: int | None = None
    is_prime: bool = False
    stock_status: StockStatus = StockStatus.UNKNOWN

    current_bsr: int | None = None
    avg_bsr_30d: int | None = None
    avg_bsr_90d: int | None = None
    bsr_volatility: Decimal | None = None
    bsr_trend: str = ""
    bsr_history: list[int] = Field(default_factory=list)
    price_history: list[Decimal] = Field(default_factory=list)
    demand_score: int | None = None
    demand_tier: DemandTier | None = None
    estimated_monthly_sales: int | None = None
    last_demand_check: datetime | None = None

    status: ProductStatus = ProductStatus.PENDING
    last_price_check: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    shopify_product_id: str | None = None
    shopify_variant_id: str | None = None
    shopify_synced_at: datetime | None = None

    @field_validator("asin", mode="before")
    @classmethod
    def _upper_asin(cls, value: Any) -> str:
        return str(value or "").strip().upper()

    @field_validator("title", "description", "brand", "image_url", "bsr_trend", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> Any:
        return value or "Uncategorized"

    @field_validator("is_prime", mode="before")
    @classmethod
    def _none_to_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        if not value:
            return ProductStatus.PENDING
        return ProductStatus.from_string(str(value))

    @field_validator("stock_status", mode="before")
    @classmethod
    def _stock_status(cls, value: Any) -> Any:
        if not value or str(value).lower() not in StockStatus.values():
            return StockStatus.UNKNOWN
        return StockStatus.from_string(str(value))

    @field_validator("demand_tier", mode="before")
    @classmethod
    def _demand_tier(cls, value: Any) -> Any:
        if not value or str(value).lower() not in DemandTier.values():
            return None
        return DemandTier.from_string(str(value))

    @field_validator("features", "bsr_history", "price_history", mode="before")
    @classmethod
    def _json_list(cls, value: Any) -> list:
        return _parse_json_list(value)

    @classmethod
    def from_db(cls, row: ProductDB) -> ProductRecord:
        """Build a record from a products row and its optional demand row."""
        data: dict[str, Any] = {
            column.name: getattr(row, column.name) for column in ProductDB.__table__.columns
        }
        data["features"] = data.pop("features_json", None)

        demand = row.demand
        if demand is not None:
            data.update(
                current_bsr=demand.current_bsr,
                avg_bsr_30d=demand.avg_bsr_30d,
                avg_bsr_90d=demand.avg_bsr_90d,
                bsr_volatility=demand.bsr_volatility,
                bsr_trend=demand.bsr_trend,
                bsr_history=demand.bsr_history_json,
                price_history=demand.price_history_json,
                demand_score=demand.demand_score,
                demand_tier=demand.demand_tier,
                estimated_monthly_sales=demand.estimated_monthly_sales,
                last_demand_check=demand.last_checked,
            )
        return cls.model_validate(data)

    def to_product(self) -> Product:
        data = self.model_dump()
        now = datetime.now()
        data["created_at"] = data["created_at"] or now
        data["updated_at"] = data["updated_at"] or now
        return Product(**data)

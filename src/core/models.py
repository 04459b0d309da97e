"""Core data models for the dropship dashboard."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any


class _ValueEnum(str, Enum):
    """String enum with lookup helpers."""

    @classmethod
    def from_string(cls, value: str):
        """Convert a string (case-insensitive) to the enum member."""
        value_lower = value.strip().lower()
        for member in cls:
            if member.value == value_lower:
                return member
        raise ValueError(f"Unknown {cls.__name__}: {value}")

    @classmethod
    def values(cls) -> list[str]:
        """Get list of enum values."""
        return [m.value for m in cls]


class ProductStatus(_ValueEnum):
    """Lifecycle status of a catalog product."""

    ACTIVE = "active"
    DRAFT = "draft"
    PAUSED = "paused"
    ARCHIVED = "archived"
    PENDING = "pending"
    PENDING_SYNC = "pending_sync"
    REJECTED = "rejected"


class DemandTier(_ValueEnum):
    """Demand classification from BSR and demand score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    REJECT = "reject"


class StockStatus(_ValueEnum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    LIMITED = "limited"
    UNKNOWN = "unknown"


class BulkOperation(_ValueEnum):
    """Operations accepted by the bulk products endpoint."""

    PAUSE = "pause"
    UNPAUSE = "unpause"
    DELETE = "delete"
    REFRESH = "refresh"
    SYNC = "sync"


class QueueStatus(_ValueEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


COMPETITORS = ("amazon", "costco", "ebay", "sams", "walmart", "target")


@dataclass(frozen=True)
class CompetitorPrices:
    """Display prices shown next to our retail price."""

    amazon: Decimal
    costco: Decimal
    ebay: Decimal
    sams: Decimal
    walmart: Decimal
    target: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in COMPETITORS}

    def lowest(self) -> Decimal:
        return min(self.as_dict().values())


@dataclass
class Product:
    """A sourced catalog item."""

    id: int | None = None
    asin: str = ""
    title: str = ""
    description: str = ""
    brand: str = ""
    category: str = "Uncategorized"
    image_url: str = ""
    features: list[str] = field(default_factory=list)

    # Pricing
    amazon_price: Decimal | None = None  # Our cost on Amazon
    cost: Decimal | None = None  # Explicit cost override
    retail_price: Decimal | None = None
    compare_at_price: Decimal | None = None
    amazon_display_price: Decimal | None = None
    costco_display_price: Decimal | None = None
    ebay_display_price: Decimal | None = None
    sams_display_price: Decimal | None = None
    walmart_display_price: Decimal | None = None
    target_display_price: Decimal | None = None
    profit_margin: Decimal | None = None  # Percent of retail
    profit_percent: Decimal | None = None  # Percent of cost

    # Demand signals
    rating: Decimal | None = None
    review_count: int | None = None
    is_prime: bool = False
    stock_status: StockStatus = StockStatus.UNKNOWN
    current_bsr: int | None = None
    avg_bsr_30d: int | None = None
    avg_bsr_90d: int | None = None
    bsr_volatility: Decimal | None = None
    bsr_trend: str = ""  # "improving", "stable", "declining"
    bsr_history: list[int] = field(default_factory=list)
    price_history: list[Decimal] = field(default_factory=list)
    demand_score: int | None = None
    demand_tier: DemandTier | None = None
    estimated_monthly_sales: int | None = None
    last_demand_check: datetime | None = None

    # Lifecycle
    status: ProductStatus = ProductStatus.PENDING
    last_price_check: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    # Shopify linkage
    shopify_product_id: str | None = None
    shopify_variant_id: str | None = None
    shopify_synced_at: datetime | None = None

    @property
    def effective_cost(self) -> Decimal | None:
        """Cost used for margin math: explicit cost, else the Amazon price."""
        return self.cost if self.cost else self.amazon_price

    @property
    def amazon_url(self) -> str:
        return f"https://www.amazon.com/dp/{self.asin}" if self.asin else ""

    @property
    def is_synced(self) -> bool:
        return self.shopify_product_id is not None

    def competitor_prices(self) -> CompetitorPrices | None:
        """Stored competitor display prices, if all are set."""
        values = {name: getattr(self, f"{name}_display_price") for name in COMPETITORS}
        if any(v is None for v in values.values()):
            return None
        return CompetitorPrices(**values)

    def apply_competitor_prices(self, prices: CompetitorPrices) -> None:
        for name, value in prices.as_dict().items():
            setattr(self, f"{name}_display_price", value)

    def is_stale(self, threshold_days: int, now: datetime | None = None) -> bool:
        """True when the price has never been checked or is older than the threshold."""
        if self.last_price_check is None:
            return True
        now = now or datetime.now()
        return now - self.last_price_check > timedelta(days=threshold_days)


@dataclass
class DiscoveryCandidate:
    """Minimal view of an Amazon listing for the discovery filter."""

    title: str = ""
    price: Decimal | None = None
    rating: Decimal | None = None
    reviews: int | None = None
    is_prime: bool = False
    category: str = ""


@dataclass
class DiscoveryResult:
    meets: bool = False
    reasons: list[str] = field(default_factory=list)


@dataclass
class DemandInput:
    """Raw demand signals for scoring."""

    current_bsr: int | None = None
    bsr_history: list[int] = field(default_factory=list)
    price_history: list[Decimal] = field(default_factory=list)
    recent_reviews: int | None = None
    total_reviews: int | None = None


@dataclass
class DemandResult:
    tier: DemandTier = DemandTier.REJECT
    meets: bool = False
    reason: str | None = None


@dataclass
class ConfigValidationResult:
    valid: bool = True
    errors: list[str] = field(default_factory=list)


@dataclass
class BulkItemOutcome:
    """Outcome of one item inside a bulk operation."""

    id: Any = None
    success: bool = False
    error: str = ""


@dataclass
class BulkOperationResult:
    """Accumulates per-item outcomes of a bulk operation."""

    operation: str = ""
    outcomes: list[BulkItemOutcome] = field(default_factory=list)

    def record_success(self, item_id: Any) -> None:
        self.outcomes.append(BulkItemOutcome(id=item_id, success=True))

    def record_failure(self, item_id: Any, error: str) -> None:
        self.outcomes.append(BulkItemOutcome(id=item_id, success=False, error=error))

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def successful(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "results": {
                "success": [o.id for o in self.outcomes if o.success],
                "failed": [{"id": o.id, "error": o.error} for o in self.outcomes if not o.success],
            },
        }


@dataclass
class QueueItem:
    """Pending push of a product to Shopify."""

    id: int | None = None
    product_id: int = 0
    asin: str = ""
    operation: str = "create"
    status: QueueStatus = QueueStatus.PENDING
    priority: int = 5
    retry_count: int = 0
    max_retries: int = 3
    last_error: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    processed_at: datetime | None = None


@dataclass
class TokenStatus:
    """Keepa token status."""

    tokens_left: int = 0
    refill_rate: int = 20
    refill_in_seconds: int = 60
    tokens_consumed_last: int = 0
    last_updated: datetime | None = None

    @property
    def tokens_per_minute(self) -> int:
        """Estimated tokens per minute based on refill rate."""
        if self.refill_in_seconds > 0:
            return int(self.refill_rate * 60 / self.refill_in_seconds)
        return self.refill_rate


@dataclass
class ImportResult:
    """Result of a catalog import."""

    success: bool = False
    batch_id: str = ""
    items_imported: int = 0
    items_skipped: int = 0
    error_code: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "batchId": self.batch_id,
            "imported": self.items_imported,
            "skipped": self.items_skipped,
            "errorCode": self.error_code or None,
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class ShopifyExportResult:
    """Result of a Shopify CSV export."""

    success: bool = True
    csv: str = ""
    product_count: int = 0
    variant_count: int = 0
    exported_at: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "success": self.success,
            "csv": self.csv,
            "productCount": self.product_count,
            "variantCount": self.variant_count,
            "exportedAt": self.exported_at,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ExportResult:
    """Result of a master JSON/CSV export."""

    success: bool = True
    format: str = "json"
    data: str = ""
    product_count: int = 0
    exported_at: str = ""
    filters: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "success": self.success,
            "format": self.format,
            "data": self.data,
            "productCount": self.product_count,
            "exportedAt": self.exported_at,
            "filters": self.filters,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ExportStats:
    """Catalog summary without the full data."""

    total_products: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_demand_tier: dict[str, int] = field(default_factory=dict)
    avg_margin: float = 0.0
    avg_bsr: int = 0
    avg_demand_score: float = 0.0
    total_value: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalProducts": self.total_products,
            "byStatus": self.by_status,
            "byDemandTier": self.by_demand_tier,
            "avgMargin": self.avg_margin,
            "avgBSR": self.avg_bsr,
            "avgDemandScore": self.avg_demand_score,
            "totalValue": self.total_value,
        }


@dataclass
class ProductQuery:
    """List-endpoint filters, sorting and pagination."""

    page: int = 1
    page_size: int = 25
    search: str = ""
    status: str = "all"
    category: str = ""
    ids: list[int] = field(default_factory=list)
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_margin: Decimal | None = None
    max_margin: Decimal | None = None
    profit_status: str = ""  # "profitable", "below_threshold", "unknown"
    stale_only: bool = False
    synced: bool | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class ExportFilter:
    """Product selection for exports. All criteria are optional and AND-combined."""

    statuses: list[str] = field(default_factory=list)
    demand_tiers: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    stock_statuses: list[str] = field(default_factory=list)
    min_demand_score: int | None = None
    max_demand_score: int | None = None
    min_bsr: int | None = None
    max_bsr: int | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_margin: Decimal | None = None
    is_prime: bool | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    updated_after: datetime | None = None
    updated_before: datetime | None = None
    stale_before: datetime | None = None
    exclude_rejected: bool = False
    limit: int | None = None
    offset: int = 0
    sort_by: str = "created_at"
    sort_order: str = "desc"

    def to_dict(self) -> dict[str, Any]:
        """Non-empty criteria, for echoing back in export results."""
        defaults = ExportFilter()
        data: dict[str, Any] = {}
        for name, value in self.__dict__.items():
            if value is None or value == getattr(defaults, name):
                continue
            if isinstance(value, Decimal):
                value = float(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            data[name] = value
        return data


@dataclass
class ShopifyExportOptions:
    """Selection and formatting options for the Shopify CSV export."""

    filter: ExportFilter = field(default_factory=ExportFilter)
    include_metafields: bool = True
    include_seo: bool = True
    publish_immediately: bool = True
    default_status: str = "active"

"""Configuration management for the dropship dashboard."""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ConfigValidationResult

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_dir = Path.home() / ".dropship-dashboard"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_dir = get_config_dir() / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    """Get the SQLite database file path."""
    return get_data_dir() / "dashboard.db"


# ==================== Pricing rules ====================


class _FrozenModel(BaseModel):
    """Base for immutable rule blocks."""

    model_config = ConfigDict(frozen=True)


class MarkupRule(_FrozenModel):
    """Markup applied to the Amazon cost."""

    percent: Decimal = Decimal("70")

    @property
    def multiplier(self) -> Decimal:
        return 1 + self.percent / 100


class PriceRange(_FrozenModel):
    """Global band every retail price is clamped into."""

    min: Decimal = Decimal("5.00")
    max: Decimal = Decimal("100.00")


class ProfitThresholds(_FrozenModel):
    """Margin thresholds, in percent."""

    minimum: Decimal = Decimal("30")
    target: Decimal = Decimal("70")
    grace_period_days: int = 7  # Days below minimum before auto-pause


class CompetitorMultipliers(_FrozenModel):
    """Fixed display-price multipliers applied to our retail price."""

    minimum_markup: Decimal = Decimal("1.80")
    amazon: Decimal = Decimal("1.85")
    costco: Decimal = Decimal("1.82")
    ebay: Decimal = Decimal("1.90")
    sams: Decimal = Decimal("1.81")
    walmart: Decimal = Decimal("1.83")
    target: Decimal = Decimal("1.84")

    def as_dict(self) -> dict[str, Decimal]:
        """Competitor name to multiplier, in display order."""
        return {
            "amazon": self.amazon,
            "costco": self.costco,
            "ebay": self.ebay,
            "sams": self.sams,
            "walmart": self.walmart,
            "target": self.target,
        }


class DemandWeights(_FrozenModel):
    """Weights of the demand sub-scores (must sum to 1.0)."""

    bsr: Decimal = Decimal("0.40")
    bsr_trend: Decimal = Decimal("0.25")
    price_stability: Decimal = Decimal("0.20")
    review_velocity: Decimal = Decimal("0.15")

    def total(self) -> Decimal:
        """Calculate total weight (should sum to 1.0)."""
        return self.bsr + self.bsr_trend + self.price_stability + self.review_velocity


class DemandTierRule(_FrozenModel):
    """Eligibility bar for one demand tier."""

    max_bsr: int
    min_demand_score: int


class DemandTiers(_FrozenModel):
    """Demand tiers, checked high to low."""

    high: DemandTierRule = DemandTierRule(max_bsr=10_000, min_demand_score=70)
    medium: DemandTierRule = DemandTierRule(max_bsr=50_000, min_demand_score=40)
    low: DemandTierRule = DemandTierRule(max_bsr=150_000, min_demand_score=20)

    def ordered(self) -> list[tuple[str, DemandTierRule]]:
        return [("high", self.high), ("medium", self.medium), ("low", self.low)]


class DemandRules(_FrozenModel):
    """Demand scoring configuration."""

    weights: DemandWeights = Field(default_factory=DemandWeights)
    tiers: DemandTiers = Field(default_factory=DemandTiers)


class SalesBucket(_FrozenModel):
    """Estimated monthly sales for BSR up to max_bsr."""

    max_bsr: int
    monthly_sales: int


DEFAULT_SALES_BUCKETS: tuple[SalesBucket, ...] = tuple(
    SalesBucket(max_bsr=bsr, monthly_sales=sales)
    for bsr, sales in [
        (100, 3000),
        (500, 1500),
        (1_000, 1000),
        (5_000, 500),
        (10_000, 300),
        (25_000, 150),
        (50_000, 75),
        (100_000, 30),
        (250_000, 10),
        (1_000_000, 1),
    ]
)


DEFAULT_EXCLUDE_TITLE_WORDS: tuple[str, ...] = (
    # Major brands
    "nike", "adidas", "apple", "samsung", "sony", "lg", "philips",
    "bose", "beats", "jbl", "anker", "logitech", "microsoft",
    # Brand indicators
    "branded", "official", "licensed", "authentic", "genuine",
    # Entertainment brands
    "disney", "marvel", "star wars", "pokemon", "nintendo",
    # Condition indicators
    "refurbished", "renewed", "used", "open box",
)

DEFAULT_EXCLUDE_CATEGORIES: tuple[str, ...] = (
    "books",
    "kindle store",
    "digital music",
    "movies & tv",
    "video games",
    "software",
    "gift cards",
)


class DiscoveryRules(_FrozenModel):
    """Criteria a sourced Amazon product must meet."""

    min_price: Decimal = Decimal("3")
    max_price: Decimal = Decimal("25")
    min_reviews: int = 500
    min_rating: Decimal = Decimal("3.5")
    require_prime: bool = True
    exclude_title_words: tuple[str, ...] = DEFAULT_EXCLUDE_TITLE_WORDS
    exclude_categories: tuple[str, ...] = DEFAULT_EXCLUDE_CATEGORIES


class RefreshPriceTier(_FrozenModel):
    """Refresh interval for products priced at or above min_price."""

    min_price: Decimal
    interval_days: int


class RefreshPriceTiers(_FrozenModel):
    high: RefreshPriceTier = RefreshPriceTier(min_price=Decimal("20"), interval_days=1)
    medium: RefreshPriceTier = RefreshPriceTier(min_price=Decimal("10"), interval_days=3)
    low: RefreshPriceTier = RefreshPriceTier(min_price=Decimal("0"), interval_days=7)


class RefreshDemandIntervals(_FrozenModel):
    high: int = 1
    medium: int = 3
    low: int = 7
    reject: int = 14


class RefreshRules(_FrozenModel):
    """Price refresh scheduling."""

    stale_threshold_days: int = 14
    price_tiers: RefreshPriceTiers = Field(default_factory=RefreshPriceTiers)
    demand_intervals: RefreshDemandIntervals = Field(default_factory=RefreshDemandIntervals)


class ShopifyQueueRules(_FrozenModel):
    batch_size: int = 250
    max_retries: int = 3
    delay_between_batches_seconds: int = 180
    retry_delay_seconds: int = 30


class BulkRules(_FrozenModel):
    max_items: int = 100


class ImportLimits(_FrozenModel):
    max_products: int = 100_000
    max_paste_items: int = 10_000
    max_file_size_mb: int = 50
    supported_file_types: tuple[str, ...] = ("csv", "json", "xlsx", "txt")


class RainforestCosts(_FrozenModel):
    search: Decimal = Decimal("0.01")
    product: Decimal = Decimal("0.005")


class KeepaCosts(_FrozenModel):
    tokens_per_product: int = 20
    token_cost_usd: Decimal = Decimal("0.001")
    tokens_per_minute: int = 20


class ApiCosts(_FrozenModel):
    """Vendor API costs, used for estimates only."""

    rainforest: RainforestCosts = Field(default_factory=RainforestCosts)
    keepa: KeepaCosts = Field(default_factory=KeepaCosts)


class PricingRules(_FrozenModel):
    """Immutable business rules, built once at startup and passed to every consumer."""

    markup: MarkupRule = Field(default_factory=MarkupRule)
    price_range: PriceRange = Field(default_factory=PriceRange)
    minimum_profit: Decimal = Decimal("3.00")
    profit_thresholds: ProfitThresholds = Field(default_factory=ProfitThresholds)
    competitors: CompetitorMultipliers = Field(default_factory=CompetitorMultipliers)
    demand: DemandRules = Field(default_factory=DemandRules)
    monthly_sales: tuple[SalesBucket, ...] = DEFAULT_SALES_BUCKETS
    discovery: DiscoveryRules = Field(default_factory=DiscoveryRules)
    refresh: RefreshRules = Field(default_factory=RefreshRules)
    shopify_queue: ShopifyQueueRules = Field(default_factory=ShopifyQueueRules)
    bulk: BulkRules = Field(default_factory=BulkRules)
    import_limits: ImportLimits = Field(default_factory=ImportLimits)
    api_costs: ApiCosts = Field(default_factory=ApiCosts)


def validate_pricing_config(rules: PricingRules) -> ConfigValidationResult:
    """Check the startup invariants of a rules object.

    A failing result must abort startup; see src.main.
    """
    errors: list[str] = []

    if rules.markup.percent <= 0:
        errors.append("markup.percent must be greater than 0")

    if rules.price_range.min >= rules.price_range.max:
        errors.append("price_range.min must be < price_range.max")

    if rules.minimum_profit < 0:
        errors.append("minimum_profit must be >= 0")

    competitors = rules.competitors
    if competitors.minimum_markup < 1:
        errors.append("competitors.minimum_markup must be at least 1.0")
    for name, multiplier in competitors.as_dict().items():
        if multiplier < competitors.minimum_markup:
            errors.append(
                f"competitors.{name} ({multiplier}) must be >= minimum_markup "
                f"({competitors.minimum_markup})"
            )

    weight_total = rules.demand.weights.total()
    if abs(weight_total - 1) > Decimal("0.001"):
        errors.append(f"demand.weights must sum to 1.0 (got {weight_total})")

    tiers = rules.demand.tiers
    if not (tiers.high.max_bsr < tiers.medium.max_bsr < tiers.low.max_bsr):
        errors.append("demand.tiers max_bsr must be strictly increasing: high < medium < low")

    if rules.discovery.min_price >= rules.discovery.max_price:
        errors.append("discovery.min_price must be < discovery.max_price")

    thresholds = rules.profit_thresholds
    for name, value in (("minimum", thresholds.minimum), ("target", thresholds.target)):
        if value < 0 or value > 100:
            errors.append(f"profit_thresholds.{name} must be between 0 and 100")

    price_tiers = rules.refresh.price_tiers
    if price_tiers.high.min_price <= price_tiers.medium.min_price:
        errors.append("refresh.price_tiers.high.min_price must be > medium.min_price")
    if price_tiers.medium.min_price <= price_tiers.low.min_price:
        errors.append("refresh.price_tiers.medium.min_price must be > low.min_price")

    bounds = [bucket.max_bsr for bucket in rules.monthly_sales]
    if any(a >= b for a, b in zip(bounds, bounds[1:])):
        errors.append("monthly_sales buckets must have strictly increasing max_bsr")

    return ConfigValidationResult(valid=not errors, errors=errors)


# ==================== Application settings ====================


class StoreConfig(BaseModel):
    """Storefront defaults used when building Shopify rows and payloads."""

    vendor: str = "Your Store"
    default_type: str = "General"
    default_weight: Decimal = Decimal("0")
    weight_unit: str = "lb"
    inventory_policy: str = "continue"  # Allow overselling for dropship
    fulfillment_service: str = "manual"
    inventory_qty: int = 999
    requires_shipping: bool = True
    taxable: bool = True
    seo_description_length: int = 320


class ApiConfig(BaseModel):
    """API configuration."""

    keepa_api_key: str = ""
    shopify_store_domain: str = ""
    shopify_access_token: str = ""
    shopify_api_version: str = "2024-01"
    mock_mode: bool = False

    @property
    def shopify_configured(self) -> bool:
        return bool(self.shopify_store_domain and self.shopify_access_token)


class WebConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 5050


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=str(get_config_dir() / ".env"),
        env_file_encoding="utf-8",
        env_prefix="DSD_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    pricing: PricingRules = Field(default_factory=PricingRules)
    store: StoreConfig = Field(default_factory=StoreConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    log_level: str = "INFO"
    debug_mode: bool = False

    def save(self) -> None:
        """Save settings to the config file."""
        config_path = get_config_dir() / "settings.json"
        data = self.model_dump(mode="json")
        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from the config file or create defaults."""
        config_path = get_config_dir() / "settings.json"
        env_path = get_config_dir() / ".env"

        settings = cls()

        if config_path.exists():
            try:
                with open(config_path) as f:
                    data = json.load(f)
                settings = cls.model_validate(data)
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable settings file {config_path}: {e}")

        # Credentials from .env win over the JSON file
        if env_path.exists():
            from dotenv import dotenv_values

            env_vars = dotenv_values(env_path)
            if env_vars.get("DSD_KEEPA_API_KEY"):
                settings.api.keepa_api_key = env_vars["DSD_KEEPA_API_KEY"]
            if env_vars.get("DSD_SHOPIFY_STORE_DOMAIN"):
                settings.api.shopify_store_domain = env_vars["DSD_SHOPIFY_STORE_DOMAIN"]
            if env_vars.get("DSD_SHOPIFY_ACCESS_TOKEN"):
                settings.api.shopify_access_token = env_vars["DSD_SHOPIFY_ACCESS_TOKEN"]
            if env_vars.get("DSD_MOCK_MODE"):
                settings.api.mock_mode = env_vars["DSD_MOCK_MODE"].lower() in (
                    "true",
                    "1",
                    "yes",
                )

        return settings


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from disk."""
    global _settings
    _settings = Settings.load()
    return _settings

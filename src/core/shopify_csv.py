"""Shopify bulk-import CSV export."""

from __future__ import annotations

import csv
import io
import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from .config import PricingRules, StoreConfig
from .models import (
    DemandTier,
    ExportFilter,
    Product,
    ProductStatus,
    ShopifyExportOptions,
    ShopifyExportResult,
)
from .pricing import PricingEngine

logger = logging.getLogger(__name__)

GRAMS_PER_POUND = Decimal("453.592")
SEO_TITLE_LENGTH = 70

SHOPIFY_COLUMNS: tuple[str, ...] = (
    "Handle",
    "Title",
    "Body (HTML)",
    "Vendor",
    "Product Category",
    "Type",
    "Tags",
    "Published",
    "Option1 Name",
    "Option1 Value",
    "Option2 Name",
    "Option2 Value",
    "Option3 Name",
    "Option3 Value",
    "Variant SKU",
    "Variant Grams",
    "Variant Inventory Tracker",
    "Variant Inventory Qty",
    "Variant Inventory Policy",
    "Variant Fulfillment Service",
    "Variant Price",
    "Variant Compare At Price",
    "Variant Requires Shipping",
    "Variant Taxable",
    "Variant Barcode",
    "Image Src",
    "Image Position",
    "Image Alt Text",
    "Gift Card",
    "SEO Title",
    "SEO Description",
    "Google Shopping / Google Product Category",
    "Google Shopping / Gender",
    "Google Shopping / Age Group",
    "Google Shopping / MPN",
    "Google Shopping / AdWords Grouping",
    "Google Shopping / AdWords Labels",
    "Google Shopping / Condition",
    "Google Shopping / Custom Product",
    "Google Shopping / Custom Label 0",
    "Google Shopping / Custom Label 1",
    "Google Shopping / Custom Label 2",
    "Google Shopping / Custom Label 3",
    "Google Shopping / Custom Label 4",
    "Variant Image",
    "Variant Weight Unit",
    "Variant Tax Code",
    "Cost per item",
    "Included / United States",
    "Price / United States",
    "Compare At Price / United States",
    "Included / International",
    "Price / International",
    "Compare At Price / International",
    "Status",
)

METAFIELD_COLUMNS: tuple[str, ...] = (
    "amazon_display_price",
    "costco_display_price",
    "ebay_display_price",
    "sams_display_price",
    "walmart_display_price",
    "target_display_price",
    "demand_score",
    "demand_tier",
    "current_bsr",
    "estimated_monthly_sales",
    "original_asin",
    "amazon_url",
    "rating",
    "review_count",
    "is_prime",
)

# Keyword substring lookups; the first match wins
PRODUCT_TYPE_MAP: tuple[tuple[str, str], ...] = (
    ("beauty", "Beauty"),
    ("skincare", "Skin Care"),
    ("kitchen", "Kitchen"),
    ("home", "Home & Garden"),
    ("pet", "Pet Supplies"),
    ("garden", "Garden"),
    ("health", "Health"),
    ("fitness", "Sports & Fitness"),
    ("baby", "Baby"),
    ("toys", "Toys"),
    ("office", "Office"),
    ("electronics", "Electronics"),
    ("automotive", "Automotive"),
    ("sports", "Sports"),
)

GOOGLE_CATEGORY_MAP: tuple[tuple[str, str], ...] = (
    ("beauty", "Health & Beauty > Personal Care"),
    ("skincare", "Health & Beauty > Personal Care > Skin Care"),
    ("kitchen", "Home & Garden > Kitchen & Dining"),
    ("home", "Home & Garden"),
    ("pet", "Animals & Pet Supplies"),
    ("garden", "Home & Garden > Lawn & Garden"),
    ("health", "Health & Beauty"),
    ("fitness", "Sporting Goods > Exercise & Fitness"),
    ("baby", "Baby & Toddler"),
    ("toys", "Toys & Games"),
    ("office", "Office Supplies"),
    ("electronics", "Electronics"),
    ("automotive", "Vehicles & Parts"),
    ("sports", "Sporting Goods"),
)

COLUMN_MAPPING: tuple[dict[str, str], ...] = (
    {"column": "Handle", "shopifyField": "handle", "description": "URL-friendly product identifier", "example": "ice-roller-face-b0abc12345"},
    {"column": "Title", "shopifyField": "title", "description": "Product title", "example": "Ice Roller for Face Massage"},
    {"column": "Body (HTML)", "shopifyField": "body_html", "description": "Product description in HTML", "example": "<p>Description here</p>"},
    {"column": "Vendor", "shopifyField": "vendor", "description": "Product vendor/brand", "example": "Your Store"},
    {"column": "Type", "shopifyField": "product_type", "description": "Product type for organization", "example": "Beauty"},
    {"column": "Tags", "shopifyField": "tags", "description": "Comma-separated tags", "example": "Beauty, Demand:high, Prime"},
    {"column": "Variant SKU", "shopifyField": "variant.sku", "description": "ASIN as SKU", "example": "B0ABC12345"},
    {"column": "Variant Price", "shopifyField": "variant.price", "description": "Your retail price", "example": "24.99"},
    {"column": "Variant Compare At Price", "shopifyField": "variant.compare_at_price", "description": "Competitor Amazon price", "example": "46.23"},
    {"column": "Cost per item", "shopifyField": "variant.cost", "description": "Amazon cost/your cost", "example": "14.70"},
    {"column": "Image Src", "shopifyField": "images.src", "description": "Product image URL", "example": "https://..."},
    {"column": "SEO Title", "shopifyField": "metafields.seo.title", "description": "Page title for SEO", "example": "Ice Roller | Your Store"},
    {"column": "Status", "shopifyField": "status", "description": "active, draft, or archived", "example": "active"},
)

METAFIELD_DEFINITIONS: tuple[dict[str, str], ...] = (
    {"namespace": "competitor", "key": "amazon_price", "type": "number_decimal", "description": "Amazon display price"},
    {"namespace": "competitor", "key": "costco_price", "type": "number_decimal", "description": "Costco display price"},
    {"namespace": "competitor", "key": "ebay_price", "type": "number_decimal", "description": "eBay display price"},
    {"namespace": "competitor", "key": "sams_price", "type": "number_decimal", "description": "Sam's Club display price"},
    {"namespace": "competitor", "key": "walmart_price", "type": "number_decimal", "description": "Walmart display price"},
    {"namespace": "competitor", "key": "target_price", "type": "number_decimal", "description": "Target display price"},
    {"namespace": "demand", "key": "score", "type": "number_integer", "description": "Demand score (0-100)"},
    {"namespace": "demand", "key": "tier", "type": "single_line_text_field", "description": "Demand tier"},
    {"namespace": "demand", "key": "bsr", "type": "number_integer", "description": "Amazon best seller rank"},
    {"namespace": "demand", "key": "monthly_sales", "type": "number_integer", "description": "Estimated monthly sales"},
    {"namespace": "product", "key": "asin", "type": "single_line_text_field", "description": "Amazon ASIN"},
    {"namespace": "product", "key": "amazon_url", "type": "url", "description": "Amazon product page"},
    {"namespace": "product", "key": "rating", "type": "number_decimal", "description": "Amazon rating"},
    {"namespace": "product", "key": "review_count", "type": "number_integer", "description": "Amazon review count"},
    {"namespace": "product", "key": "is_prime", "type": "boolean", "description": "Prime eligible"},
)

DEFAULT_EXPORT_STATUSES = [ProductStatus.ACTIVE.value, ProductStatus.PENDING_SYNC.value]


def _single_line(text: Any) -> str:
    """Collapse line breaks so every product stays on one CSV line."""
    return re.sub(r"\s*[\r\n]+\s*", " ", "" if text is None else str(text)).strip()


def format_money(value: Decimal | None, default: str = "") -> str:
    if value is None:
        return default
    return f"{Decimal(value):.2f}"


def _truncate(text: str, max_length: int) -> str:
    if len(text) > max_length:
        return text[: max_length - 3] + "..."
    return text


def _lookup(category: str, mapping: tuple[tuple[str, str], ...]) -> str | None:
    lower = category.lower()
    for keyword, value in mapping:
        if keyword in lower:
            return value
    return None


class ShopifyCsvExporter:
    """Turns products into Shopify's product-import CSV.

    Prices, competitor display prices and demand tiers all come from the
    shared PricingEngine so the CSV agrees with the dashboard and the
    Shopify push.
    """

    def __init__(self, rules: PricingRules, store: StoreConfig) -> None:
        self.rules = rules
        self.store = store
        self.engine = PricingEngine(rules)

    # ==================== Cell helpers ====================

    def generate_handle(self, title: str, asin: str) -> str:
        """Slug of the title plus the lowercase ASIN, unique per ASIN."""
        handle = re.sub(r"[^a-z0-9\s-]", "", (title or "").lower())
        handle = re.sub(r"\s+", "-", handle.strip())
        handle = re.sub(r"-+", "-", handle)[:200]
        suffix = asin.lower()
        return f"{handle}-{suffix}" if handle else suffix

    def generate_tags(self, product: Product, now: datetime | None = None) -> list[str]:
        tags: list[str] = []
        if product.category:
            tags.append(product.category.replace(",", ""))
        if product.brand:
            tags.append(f"Brand:{product.brand.replace(',', '')}")

        tier = self.engine.get_demand_tier_from_score(product.demand_score)
        if tier:
            tags.append(f"Demand:{tier.value}")

        retail = product.retail_price
        if retail:
            if retail < 10:
                tags.append("Price:Under $10")
            elif retail < 25:
                tags.append("Price:$10-$25")
            elif retail < 50:
                tags.append("Price:$25-$50")
            else:
                tags.append("Price:Over $50")

        if product.is_prime:
            tags.append("Prime")

        tags.append("bulk-import")
        tags.append(f"imported:{(now or datetime.now()).date().isoformat()}")
        return tags

    def generate_body_html(self, product: Product) -> str:
        """Description paragraph, feature list and product details."""
        description = _single_line(product.description or product.title)
        sections = [f"<p>{description}</p>"]

        if product.features:
            sections.append("<h3>Features</h3>")
            sections.append("<ul>")
            sections.extend(f"<li>{_single_line(feature)}</li>" for feature in product.features)
            sections.append("</ul>")

        specs: list[str] = []
        if product.brand:
            specs.append(f"<li><strong>Brand:</strong> {product.brand}</li>")
        if product.rating:
            specs.append(
                f"<li><strong>Rating:</strong> {product.rating} stars "
                f"({product.review_count or 0} reviews)</li>"
            )
        if product.asin:
            specs.append(f"<li><strong>ASIN:</strong> {product.asin}</li>")
        if specs:
            sections.append("<h3>Product Details</h3>")
            sections.append("<ul>")
            sections.extend(specs)
            sections.append("</ul>")

        return "".join(sections)

    def generate_seo_title(self, title: str, brand: str | None) -> str:
        seo_title = _single_line(title)
        if brand and brand.lower() not in seo_title.lower():
            seo_title = f"{brand} {seo_title}"
        return _truncate(seo_title, SEO_TITLE_LENGTH)

    def generate_seo_description(
        self, title: str, description: str | None, category: str | None
    ) -> str:
        max_length = self.store.seo_description_length
        seo_desc = _single_line(description or title)
        if category and len(seo_desc) < max_length - 50:
            seo_desc = f"{seo_desc} Shop {category} at great prices."
        return _truncate(seo_desc, max_length)

    def determine_product_type(self, category: str | None) -> str:
        if not category:
            return self.store.default_type
        return _lookup(category, PRODUCT_TYPE_MAP) or category

    def determine_google_category(self, category: str | None) -> str:
        if not category:
            return ""
        return _lookup(category, GOOGLE_CATEGORY_MAP) or ""

    # ==================== Rows ====================

    def filter_products(self, products: Sequence[Product], criteria: ExportFilter) -> list[Product]:
        """Apply status, demand score, BSR and margin criteria in memory."""
        statuses = criteria.statuses or DEFAULT_EXPORT_STATUSES
        selected = []
        for product in products:
            if product.status == ProductStatus.REJECTED or product.status.value not in statuses:
                continue
            if criteria.min_demand_score is not None:
                if (product.demand_score or 0) < criteria.min_demand_score:
                    continue
            if criteria.max_bsr is not None:
                if product.current_bsr is None or product.current_bsr > criteria.max_bsr:
                    continue
            if criteria.min_margin is not None:
                cost = product.effective_cost
                retail = product.retail_price
                if not retail or not cost or cost <= 0:
                    continue
                if self.engine.calculate_margin(retail, cost) < criteria.min_margin:
                    continue
            selected.append(product)
        return selected

    def transform_row(
        self,
        product: Product,
        options: ShopifyExportOptions,
        now: datetime | None = None,
    ) -> list[str]:
        """Cell values for one product, in column order."""
        store = self.store
        retail = product.retail_price if product.retail_price and product.retail_price > 0 else None
        competitors = self.engine.calculate_competitor_prices(retail) if retail else None
        compare_at = format_money(competitors.amazon) if competitors else ""

        title = _single_line(product.title)
        google_category = self.determine_google_category(product.category)
        tier = self.engine.get_demand_tier_from_score(product.demand_score)
        tier_label = tier.value if tier else ""
        score = str(product.demand_score) if product.demand_score is not None else ""
        bsr = str(product.current_bsr) if product.current_bsr is not None else ""
        rating = f"{Decimal(product.rating):.1f}" if product.rating is not None else ""
        grams = int((store.default_weight * GRAMS_PER_POUND).to_integral_value())

        row = [
            self.generate_handle(title, product.asin),
            title,
            self.generate_body_html(product),
            product.brand or store.vendor,
            google_category,
            self.determine_product_type(product.category),
            ", ".join(self.generate_tags(product, now=now)),
            "TRUE" if options.publish_immediately else "FALSE",
            "Title",
            "Default Title",
            "",
            "",
            "",
            "",
            product.asin,
            str(grams),
            "shopify",
            str(store.inventory_qty),
            store.inventory_policy,
            store.fulfillment_service,
            format_money(retail, "0.00"),
            compare_at,
            "TRUE" if store.requires_shipping else "FALSE",
            "TRUE" if store.taxable else "FALSE",
            "",
            product.image_url or "",
            "1",
            title[:100],
            "FALSE",
            self.generate_seo_title(title, product.brand) if options.include_seo else "",
            (
                self.generate_seo_description(title, product.description, product.category)
                if options.include_seo
                else ""
            ),
            google_category,
            "",
            "",
            product.asin,
            "",
            "",
            "new",
            "FALSE",
            tier_label,
            score,
            bsr,
            rating,
            "Prime" if product.is_prime else "",
            "",
            store.weight_unit,
            "",
            format_money(product.effective_cost),
            "TRUE",
            format_money(retail),
            compare_at,
            "FALSE",
            "",
            "",
            options.default_status,
        ]

        if options.include_metafields:
            if competitors:
                row.extend(format_money(price) for price in competitors.as_dict().values())
            else:
                row.extend([""] * 6)
            monthly_sales = product.estimated_monthly_sales
            if monthly_sales is None:
                monthly_sales = self.engine.estimate_monthly_sales(product.current_bsr)
            row.extend(
                [
                    score,
                    tier_label,
                    bsr,
                    str(monthly_sales),
                    product.asin,
                    f"https://www.amazon.com/dp/{product.asin}",
                    rating,
                    str(product.review_count) if product.review_count is not None else "",
                    "TRUE" if product.is_prime else "FALSE",
                ]
            )

        return [_single_line(cell) for cell in row]

    def columns(self, include_metafields: bool = True) -> tuple[str, ...]:
        if include_metafields:
            return SHOPIFY_COLUMNS + METAFIELD_COLUMNS
        return SHOPIFY_COLUMNS

    def build_csv(
        self,
        products: Sequence[Product],
        options: ShopifyExportOptions,
        now: datetime | None = None,
    ) -> str:
        """Header plus one line per product, with no trailing newline."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(self.columns(options.include_metafields))
        for product in products:
            writer.writerow(self.transform_row(product, options, now=now))
        return buffer.getvalue().removesuffix("\n")

    # ==================== Exports ====================

    def export_products(
        self,
        products: Sequence[Product],
        options: ShopifyExportOptions | None = None,
        now: datetime | None = None,
    ) -> ShopifyExportResult:
        """Filter and export an in-memory product list. Never raises."""
        options = options or ShopifyExportOptions()
        now = now or datetime.now()
        exported_at = now.isoformat()

        try:
            selected = self.filter_products(products, options.filter)
            if not selected:
                return ShopifyExportResult(success=True, csv="", exported_at=exported_at)

            csv_text = self.build_csv(selected, options, now=now)
            logger.info(f"Exported {len(selected)} products to Shopify CSV")
            return ShopifyExportResult(
                success=True,
                csv=csv_text,
                product_count=len(selected),
                variant_count=len(selected),
                exported_at=exported_at,
            )
        except Exception as e:
            logger.exception("Shopify CSV export failed")
            return ShopifyExportResult(success=False, exported_at=exported_at, error=str(e))

    def export(
        self,
        load_products: Callable[[ExportFilter], Sequence[Product]],
        options: ShopifyExportOptions | None = None,
        now: datetime | None = None,
    ) -> ShopifyExportResult:
        """Load products through the given loader, then export them. Never raises."""
        options = options or ShopifyExportOptions()
        criteria = options.filter
        query = ExportFilter(
            statuses=criteria.statuses or list(DEFAULT_EXPORT_STATUSES),
            exclude_rejected=True,
            sort_by="retail_price",
            sort_order="desc",
            limit=criteria.limit,
            offset=criteria.offset,
        )
        try:
            products = load_products(query)
        except Exception as e:
            logger.exception("Failed to load products for Shopify export")
            return ShopifyExportResult(
                success=False,
                exported_at=(now or datetime.now()).isoformat(),
                error=f"Failed to query products: {e}",
            )
        return self.export_products(products, options, now=now)

    def export_high_demand(
        self, load_products: Callable[[ExportFilter], Sequence[Product]]
    ) -> ShopifyExportResult:
        return self.export_by_demand_tier(load_products, DemandTier.HIGH)

    def export_draft(
        self,
        load_products: Callable[[ExportFilter], Sequence[Product]],
        options: ShopifyExportOptions | None = None,
    ) -> ShopifyExportResult:
        """Export for review: unpublished, draft status."""
        options = options or ShopifyExportOptions()
        draft = ShopifyExportOptions(
            filter=options.filter,
            include_metafields=options.include_metafields,
            include_seo=options.include_seo,
            publish_immediately=False,
            default_status="draft",
        )
        return self.export(load_products, draft)

    def export_by_demand_tier(
        self,
        load_products: Callable[[ExportFilter], Sequence[Product]],
        tier: DemandTier | str,
    ) -> ShopifyExportResult:
        """Export one tier; only the high tier is published immediately."""
        try:
            tier = DemandTier.from_string(tier) if isinstance(tier, str) else tier
        except ValueError as e:
            return ShopifyExportResult(success=False, exported_at=datetime.now().isoformat(), error=str(e))
        if tier == DemandTier.REJECT:
            return ShopifyExportResult(
                success=False,
                exported_at=datetime.now().isoformat(),
                error="Rejected products are not exported",
            )
        tier_rule = getattr(self.rules.demand.tiers, tier.value)
        is_high = tier == DemandTier.HIGH
        options = ShopifyExportOptions(
            filter=ExportFilter(
                min_demand_score=tier_rule.min_demand_score,
                max_bsr=tier_rule.max_bsr,
            ),
            include_metafields=True,
            include_seo=True,
            publish_immediately=is_high,
            default_status="active" if is_high else "draft",
        )
        return self.export(load_products, options)


def get_shopify_column_mapping() -> list[dict[str, str]]:
    return [dict(entry) for entry in COLUMN_MAPPING]


def get_metafield_definitions() -> list[dict[str, str]]:
    return [dict(entry) for entry in METAFIELD_DEFINITIONS]

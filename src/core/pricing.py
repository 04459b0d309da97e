"""Pricing and discovery rules engine."""

from __future__ import annotations

import math
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, ROUND_UP, Decimal

from .config import PricingRules
from .models import (
    CompetitorPrices,
    DemandInput,
    DemandResult,
    DemandTier,
    DiscoveryCandidate,
    DiscoveryResult,
    Product,
)

CENTS = Decimal("0.01")

ASIN_PATTERN = re.compile(r"^B[A-Z0-9]{9}$")


def to_money(value: Decimal) -> Decimal:
    """Round a dollar amount half-up to cents."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_asin(value: str) -> str:
    return (value or "").strip().upper()


def is_valid_asin(value: str | None) -> bool:
    """Check ASIN format, case-insensitively."""
    if not value:
        return False
    return ASIN_PATTERN.match(value.upper()) is not None


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _format_number(value) -> str:
    """Render a number without trailing zeros, e.g. 25 or 2.5."""
    return format(Decimal(str(value)).normalize(), "f")


class PricingEngine:
    """Computes prices and eligibility from a fixed set of pricing rules."""

    def __init__(self, rules: PricingRules) -> None:
        self.rules = rules

    # ==================== Prices ====================

    def calculate_retail_price(self, amazon_cost: Decimal) -> Decimal:
        """Retail price for a given Amazon cost.

        Applies the markup, then raises the price until both the minimum
        absolute profit and the minimum margin hold, then clamps to the
        global price band.
        """
        rules = self.rules
        cost = Decimal(amazon_cost)
        price = cost * rules.markup.multiplier

        if price - cost < rules.minimum_profit:
            price = cost + rules.minimum_profit

        min_margin = rules.profit_thresholds.minimum / 100
        if min_margin < 1 and price > 0 and (price - cost) / price < min_margin:
            price = cost / (1 - min_margin)

        price = max(rules.price_range.min, min(rules.price_range.max, price))
        return to_money(price)

    def calculate_competitor_prices(self, retail_price: Decimal) -> CompetitorPrices:
        """Competitor display prices at fixed multipliers of our retail price."""
        retail = Decimal(retail_price)
        competitors = self.rules.competitors
        floor = (retail * competitors.minimum_markup).quantize(CENTS, rounding=ROUND_UP)
        prices = {
            name: max(to_money(retail * multiplier), floor)
            for name, multiplier in competitors.as_dict().items()
        }
        return CompetitorPrices(**prices)

    def calculate_profit(self, retail_price: Decimal, cost: Decimal) -> Decimal:
        return to_money(Decimal(retail_price) - Decimal(cost))

    def calculate_margin(self, retail_price: Decimal, cost: Decimal) -> Decimal:
        """Profit as a percent of the retail price."""
        retail = Decimal(retail_price)
        if retail <= 0:
            return Decimal("0")
        return to_money((retail - Decimal(cost)) / retail * 100)

    def calculate_profit_percent(self, retail_price: Decimal, cost: Decimal) -> Decimal:
        """Profit as a percent of cost."""
        cost = Decimal(cost)
        if cost <= 0:
            return Decimal("0")
        return to_money((Decimal(retail_price) - cost) / cost * 100)

    def profit_status(self, margin: Decimal | None) -> str:
        """Classify a margin as profitable, below_threshold or unknown."""
        if margin is None:
            return "unknown"
        minimum = self.rules.profit_thresholds.minimum
        if margin >= minimum * 2:
            return "profitable"
        if margin >= minimum:
            return "below_threshold"
        return "unknown"

    def price_product(self, product: Product, now: datetime | None = None) -> Product:
        """Fill in derived pricing fields from the product's cost."""
        cost = product.effective_cost
        if cost is None or cost <= 0:
            return product

        if product.retail_price is None or product.retail_price <= 0:
            product.retail_price = self.calculate_retail_price(cost)
        self.reprice_from_retail(product, cost)
        product.last_price_check = now or datetime.now()
        return product

    def reprice_from_retail(self, product: Product, cost: Decimal | None = None) -> Product:
        """Recompute margin and competitor prices after the retail price changed."""
        cost = cost if cost is not None else product.effective_cost
        retail = product.retail_price
        if retail is None or retail <= 0:
            return product

        prices = self.calculate_competitor_prices(retail)
        product.apply_competitor_prices(prices)
        product.compare_at_price = prices.amazon
        if cost is not None and cost > 0:
            product.profit_margin = self.calculate_margin(retail, cost)
            product.profit_percent = self.calculate_profit_percent(retail, cost)
        return product

    # ==================== Discovery ====================

    def contains_excluded_brand(self, title: str | None) -> bool:
        lower_title = (title or "").lower()
        return any(word.lower() in lower_title for word in self.rules.discovery.exclude_title_words)

    def is_excluded_category(self, category: str | None) -> bool:
        if not category:
            return False
        lower = category.strip().lower()
        return any(lower == excluded.lower() for excluded in self.rules.discovery.exclude_categories)

    def meets_discovery_criteria(self, candidate: DiscoveryCandidate) -> DiscoveryResult:
        """Check every discovery rule and collect a reason for each failure."""
        discovery = self.rules.discovery
        reasons: list[str] = []

        if candidate.price is None:
            reasons.append("No price available")
        else:
            price = _format_number(candidate.price)
            if candidate.price < discovery.min_price:
                reasons.append(f"Price ${price} below minimum ${_format_number(discovery.min_price)}")
            if candidate.price > discovery.max_price:
                reasons.append(f"Price ${price} above maximum ${_format_number(discovery.max_price)}")

        if candidate.reviews is None or candidate.reviews < discovery.min_reviews:
            reasons.append(f"Reviews {candidate.reviews or 0} below minimum {discovery.min_reviews}")

        if candidate.rating is None or candidate.rating < discovery.min_rating:
            rating = _format_number(candidate.rating or 0)
            reasons.append(f"Rating {rating} below minimum {_format_number(discovery.min_rating)}")

        if discovery.require_prime and not candidate.is_prime:
            reasons.append("Not Prime eligible")

        if self.is_excluded_category(candidate.category):
            reasons.append(f"Category {candidate.category} is excluded")

        if self.contains_excluded_brand(candidate.title):
            reasons.append("Contains excluded brand word")

        return DiscoveryResult(meets=not reasons, reasons=reasons)

    # ==================== Demand ====================

    def meets_demand_criteria(self, bsr: int | None, demand_score: int | None) -> DemandResult:
        """Assign the first demand tier, high to low, whose thresholds hold."""
        if bsr is None or bsr <= 0:
            return DemandResult(tier=DemandTier.REJECT, meets=False, reason="No BSR available")

        score = demand_score or 0
        for name, tier in self.rules.demand.tiers.ordered():
            if bsr <= tier.max_bsr and score >= tier.min_demand_score:
                return DemandResult(tier=DemandTier(name), meets=True)

        return DemandResult(
            tier=DemandTier.REJECT,
            meets=False,
            reason=f"BSR {bsr} / score {score} below all demand tiers",
        )

    def bsr_score(self, bsr: int | None) -> float:
        if bsr is None or bsr <= 0:
            return 0.0
        return max(0.0, 100 - math.log10(bsr) * 15)

    def bsr_trend_score(self, history: list[int]) -> float:
        """50 is flat; a falling BSR (better rank) scores above 50."""
        values = [v for v in history if v is not None and v > 0]
        if len(values) < 2:
            return 50.0
        half = len(values) // 2
        earlier = values[:half]
        later = values[half:]
        earlier_avg = sum(earlier) / len(earlier)
        later_avg = sum(later) / len(later)
        if earlier_avg <= 0:
            return 50.0
        improvement = (earlier_avg - later_avg) / earlier_avg
        return _clamp(50 + improvement * 100)

    def price_stability_score(self, prices: list[Decimal]) -> float:
        values = [float(p) for p in prices if p is not None and p > 0]
        if len(values) < 2:
            return 50.0
        mean = sum(values) / len(values)
        variance = sum((v - mean) ** 2 for v in values) / len(values)
        cv = math.sqrt(variance) / mean
        return _clamp(100 - cv * 200)

    def review_velocity_score(self, recent_reviews: int | None, total_reviews: int | None) -> float:
        if recent_reviews is None or not total_reviews or total_reviews <= 0:
            return 50.0
        return min(100.0, recent_reviews / total_reviews * 1000)

    def calculate_demand_score(self, data: DemandInput) -> int:
        """Weighted demand score in [0, 100]."""
        weights = self.rules.demand.weights
        score = (
            self.bsr_score(data.current_bsr) * float(weights.bsr)
            + self.bsr_trend_score(data.bsr_history) * float(weights.bsr_trend)
            + self.price_stability_score(data.price_history) * float(weights.price_stability)
            + self.review_velocity_score(data.recent_reviews, data.total_reviews)
            * float(weights.review_velocity)
        )
        return int(_clamp(float(Decimal(str(score)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))))

    def get_demand_tier_from_score(self, demand_score: int | None) -> DemandTier | None:
        """Tier from the score thresholds alone, ignoring BSR."""
        if demand_score is None:
            return None
        for name, tier in self.rules.demand.tiers.ordered():
            if demand_score >= tier.min_demand_score:
                return DemandTier(name)
        return DemandTier.REJECT

    def estimate_monthly_sales(self, bsr: int | None) -> int:
        if bsr is None or bsr <= 0:
            return 0
        for bucket in self.rules.monthly_sales:
            if bsr <= bucket.max_bsr:
                return bucket.monthly_sales
        return 0

    # ==================== Refresh ====================

    def get_refresh_interval(self, price: Decimal | None) -> int:
        """Days between price checks, by price tier."""
        tiers = self.rules.refresh.price_tiers
        price = price or Decimal("0")
        if price >= tiers.high.min_price:
            return tiers.high.interval_days
        if price >= tiers.medium.min_price:
            return tiers.medium.interval_days
        return tiers.low.interval_days

    def get_refresh_interval_by_demand(self, tier: DemandTier | str | None) -> int:
        """Days between price checks, by demand tier."""
        intervals = self.rules.refresh.demand_intervals
        if tier is None:
            return intervals.reject
        value = tier.value if isinstance(tier, DemandTier) else str(tier).lower()
        return getattr(intervals, value, intervals.reject)

    def is_stale(self, product: Product, now: datetime | None = None) -> bool:
        return product.is_stale(self.rules.refresh.stale_threshold_days, now=now)

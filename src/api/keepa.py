"""Keepa API client for Amazon US price and sales-rank history."""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import requests

from src.core.config import Settings
from src.core.models import DemandInput, Product, StockStatus, TokenStatus
from src.core.pricing import PricingEngine, is_valid_asin, normalize_asin

logger = logging.getLogger(__name__)

# Keepa domain codes
KEEPA_DOMAIN_US = 1  # amazon.com

# Keepa csv indices
KEEPA_PRICE_AMAZON = 0
KEEPA_PRICE_NEW = 1
KEEPA_SALES_RANK = 3

# stats.current indices
KEEPA_STAT_RATING = 18
KEEPA_STAT_REVIEWS = 19

KEEPA_EPOCH = datetime(2011, 1, 1, tzinfo=UTC)
KEEPA_MAX_ASINS = 100
AMAZON_IMAGE_BASE = "https://images-na.ssl-images-amazon.com/images/I/"


def keepa_time_to_datetime(keepa_minutes: int) -> datetime:
    """Keepa timestamps are minutes since 2011-01-01 UTC."""
    if keepa_minutes < 0:
        return datetime.fromtimestamp(0, UTC)
    return KEEPA_EPOCH + timedelta(minutes=keepa_minutes)


def keepa_price_to_usd(keepa_price: int) -> Decimal | None:
    """Keepa prices are integer cents; -1 means no offer."""
    if keepa_price is None or keepa_price < 0:
        return None
    return Decimal(keepa_price) / 100


def parse_time_series(
    csv: list[int] | None,
    transform: Callable[[int], Any] = lambda v: v,
) -> list[tuple[datetime, Any]]:
    """Split Keepa's interleaved [time, value, ...] list into (datetime, value) pairs."""
    if not csv or len(csv) < 2:
        return []
    series = []
    for i in range(0, len(csv) - 1, 2):
        timestamp, value = csv[i], csv[i + 1]
        if timestamp is None or value is None or timestamp < 0 or value < 0:
            continue
        converted = transform(value)
        if converted is not None:
            series.append((keepa_time_to_datetime(timestamp), converted))
    return series


def bsr_volatility(values: list[int]) -> Decimal:
    """Largest deviation from the mean, as a whole percent of the mean."""
    values = [v for v in values if v > 0]
    if len(values) < 2:
        return Decimal("0")
    avg = sum(values) / len(values)
    max_deviation = max(abs(v - avg) for v in values)
    return Decimal(round(max_deviation / avg * 100))


@dataclass
class KeepaResponse:
    """Response from Keepa API."""

    success: bool = False
    products: list[dict] = field(default_factory=list)
    token_status: TokenStatus = field(default_factory=TokenStatus)
    error_message: str = ""
    raw_json: str = ""


class KeepaClient:
    """Keepa API client with token tracking."""

    BASE_URL = "https://api.keepa.com"

    def __init__(self, settings: Settings, engine: PricingEngine | None = None) -> None:
        self.settings = settings
        self.api_key = settings.api.keepa_api_key
        self.mock_mode = settings.api.mock_mode
        self.engine = engine or PricingEngine(settings.pricing)

        # Session with keep-alive
        self.session = requests.Session()
        self.session.headers.update({
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
        })

        self._token_status = TokenStatus()

    @property
    def token_status(self) -> TokenStatus:
        return self._token_status

    @property
    def is_configured(self) -> bool:
        return self.mock_mode or bool(self.api_key)

    def _update_token_status(self, response_data: dict) -> None:
        self._token_status = TokenStatus(
            tokens_left=response_data.get("tokensLeft", 0),
            refill_rate=response_data.get("refillRate", 20),
            refill_in_seconds=response_data.get("refillIn", 60),
            tokens_consumed_last=response_data.get("tokensConsumed", 0),
            last_updated=datetime.now(),
        )

    def _make_request(
        self,
        endpoint: str,
        params: dict[str, Any],
        timeout: int = 30,
    ) -> dict:
        """GET a Keepa endpoint and return the decoded body."""
        if self.mock_mode:
            from src.utils.mock_data import get_mock_keepa_response

            data = get_mock_keepa_response(params.get("asin", "").split(","))
            self._update_token_status(data)
            return data

        params["key"] = self.api_key
        url = f"{self.BASE_URL}/{endpoint}"

        start_time = time.time()
        response = self.session.get(url, params=params, timeout=timeout)
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Keepa {endpoint} -> {response.status_code} in {duration_ms}ms")

        if response.status_code == 200:
            data = response.json()
            self._update_token_status(data)
            return data

        if response.status_code == 429:
            try:
                self._update_token_status(response.json())
            except ValueError:
                logger.debug("Keepa 429 response had no JSON body")
            raise KeepaRateLimitError(
                f"Rate limited. Retry in {self._token_status.refill_in_seconds}s"
            )

        response.raise_for_status()
        return {}

    def can_make_request(self, tokens_needed: int = 1) -> bool:
        """True until the first response tells us the balance, then compare against it."""
        if self._token_status.last_updated is None:
            return True
        return self._token_status.tokens_left >= tokens_needed

    def wait_for_tokens(self, tokens_needed: int = 1) -> float:
        """Seconds until enough tokens should be available (0 if available now)."""
        if self.can_make_request(tokens_needed):
            return 0.0

        tokens_deficit = tokens_needed - self._token_status.tokens_left
        if self._token_status.refill_rate > 0:
            refill_cycles = tokens_deficit / self._token_status.refill_rate
            return max(refill_cycles * self._token_status.refill_in_seconds, 0.0)
        return float(self._token_status.refill_in_seconds)

    def estimate_cost(self, product_count: int) -> dict[str, Any]:
        """Token, dollar and time estimate for looking up product_count ASINs."""
        costs = self.settings.pricing.api_costs.keepa
        tokens = product_count * costs.tokens_per_product
        minutes = math.ceil(tokens / costs.tokens_per_minute) if costs.tokens_per_minute else 0
        return {
            "tokens": tokens,
            "cost_usd": float(Decimal(tokens) * costs.token_cost_usd),
            "minutes": minutes,
        }

    def get_products(self, asins: list[str], days: int = 90) -> KeepaResponse:
        """Fetch up to 100 ASINs with history and stats; malformed ASINs are dropped."""
        asins = [normalize_asin(a) for a in asins if is_valid_asin(a)]
        if not asins:
            return KeepaResponse(success=True, products=[])

        asins = asins[:KEEPA_MAX_ASINS]
        params = {
            "domain": KEEPA_DOMAIN_US,
            "asin": ",".join(asins),
            "stats": days,
            "history": 1,
            "rating": 1,
        }

        try:
            data = self._make_request("product", params)
        except KeepaRateLimitError as e:
            logger.warning(str(e))
            return KeepaResponse(
                success=False,
                error_message="Rate limited",
                token_status=self._token_status,
            )
        except requests.RequestException as e:
            logger.error(f"Keepa request failed: {e}")
            return KeepaResponse(
                success=False,
                error_message=str(e),
                token_status=self._token_status,
            )

        return KeepaResponse(
            success=True,
            products=data.get("products", []),
            token_status=self._token_status,
            raw_json=json.dumps(data),
        )

    def parse_product(self, raw: dict, now: datetime | None = None) -> Product:
        """Turn a Keepa product into a priced Product with demand signals."""
        now = now or datetime.now(UTC)
        csv = raw.get("csv") or []

        price_series = parse_time_series(
            csv[KEEPA_PRICE_AMAZON] if len(csv) > KEEPA_PRICE_AMAZON else None,
            keepa_price_to_usd,
        )
        if not price_series and len(csv) > KEEPA_PRICE_NEW:
            price_series = parse_time_series(csv[KEEPA_PRICE_NEW], keepa_price_to_usd)

        sales_ranks = raw.get("salesRanks") or {}
        rank_csv = next(iter(sales_ranks.values()), None) if sales_ranks else None
        if rank_csv is None and len(csv) > KEEPA_SALES_RANK:
            rank_csv = csv[KEEPA_SALES_RANK]
        bsr_series = parse_time_series(rank_csv, lambda v: v if v > 0 else None)

        price_history = [value for _, value in price_series]
        bsr_history = [value for _, value in bsr_series]
        current_price = price_history[-1] if price_history else None
        current_bsr = bsr_history[-1] if bsr_history else None

        def window_average(days: int) -> int | None:
            cutoff = now - timedelta(days=days)
            values = [v for ts, v in bsr_series if ts >= cutoff]
            return round(sum(values) / len(values)) if values else None

        current_stats = (raw.get("stats") or {}).get("current") or []
        rating = None
        review_count = None
        if len(current_stats) > KEEPA_STAT_RATING and current_stats[KEEPA_STAT_RATING] > 0:
            rating = Decimal(current_stats[KEEPA_STAT_RATING]) / 10
        if len(current_stats) > KEEPA_STAT_REVIEWS and current_stats[KEEPA_STAT_REVIEWS] > 0:
            review_count = current_stats[KEEPA_STAT_REVIEWS]

        if current_price is not None and current_price > 0:
            stock_status = StockStatus.IN_STOCK
        elif current_price is None:
            stock_status = StockStatus.OUT_OF_STOCK
        else:
            stock_status = StockStatus.UNKNOWN

        category_tree = raw.get("categoryTree") or []
        images = raw.get("imagesCSV") or ""

        engine = self.engine
        trend_score = engine.bsr_trend_score(bsr_history)
        if trend_score > 55:
            trend = "improving"
        elif trend_score < 45:
            trend = "declining"
        else:
            trend = "stable"

        demand_score = engine.calculate_demand_score(
            DemandInput(
                current_bsr=current_bsr,
                bsr_history=bsr_history,
                price_history=price_history,
            )
        )
        demand = engine.meets_demand_criteria(current_bsr, demand_score)

        product = Product(
            asin=(raw.get("asin") or "").upper(),
            title=raw.get("title") or "",
            brand=raw.get("brand") or "",
            category=category_tree[0].get("name", "Uncategorized") if category_tree else "Uncategorized",
            image_url=f"{AMAZON_IMAGE_BASE}{images.split(',')[0]}" if images else "",
            amazon_price=current_price,
            rating=rating,
            review_count=review_count,
            stock_status=stock_status,
            current_bsr=current_bsr,
            avg_bsr_30d=window_average(30),
            avg_bsr_90d=window_average(90),
            bsr_volatility=bsr_volatility(bsr_history),
            bsr_trend=trend,
            bsr_history=bsr_history,
            price_history=price_history,
            demand_score=demand_score,
            demand_tier=demand.tier,
            estimated_monthly_sales=engine.estimate_monthly_sales(current_bsr),
            last_demand_check=now.replace(tzinfo=None),
        )
        return engine.price_product(product, now=now.replace(tzinfo=None))

    def fetch_and_parse(self, asins: list[str], days: int = 90) -> tuple[list[Product], KeepaResponse]:
        """Fetch ASINs and parse each into a Product; unparseable products are skipped."""
        response = self.get_products(asins, days=days)
        if not response.success:
            return [], response

        products = []
        for raw in response.products:
            try:
                products.append(self.parse_product(raw))
            except (KeyError, TypeError, ValueError, ArithmeticError) as e:
                logger.warning(f"Skipping Keepa product {raw.get('asin', '?')}: {e}")
        return products, response


class KeepaRateLimitError(Exception):
    """Raised when Keepa rate limit is hit."""

    pass

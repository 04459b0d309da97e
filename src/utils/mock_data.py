"""Mock API responses for running without credentials."""

from __future__ import annotations

import random
import zlib
from datetime import UTC, datetime

KEEPA_EPOCH = datetime(2011, 1, 1, tzinfo=UTC)

MOCK_CATEGORIES = [
    "Beauty & Personal Care",
    "Kitchen & Dining",
    "Pet Supplies",
    "Health & Household",
    "Sports & Outdoors",
    "Office Products",
]


def _rng(key: str) -> random.Random:
    """Deterministic generator per key, stable across processes."""
    return random.Random(zlib.crc32(key.encode("utf-8")))


def _keepa_now() -> int:
    return int((datetime.now(UTC) - KEEPA_EPOCH).total_seconds() // 60)


def get_mock_keepa_response(asins: list[str]) -> dict:
    """Mock Keepa /product response for the given ASINs."""
    asins = [a for a in asins if a]
    return {
        "tokensLeft": 300 - len(asins),
        "refillRate": 20,
        "refillIn": 60,
        "tokensConsumed": len(asins),
        "processingTimeInMs": 120,
        "products": [_generate_mock_keepa_product(asin) for asin in asins],
    }


def _generate_mock_keepa_product(asin: str) -> dict:
    """One mock Keepa product with 90 days of daily price and rank history."""
    rng = _rng(asin)

    base_price = rng.randint(500, 2500)  # Cents
    price_variation = max(base_price // 20, 1)
    base_rank = rng.randint(2_000, 120_000)

    now = _keepa_now()
    prices: list[int] = []
    ranks: list[int] = []
    for day in range(90):
        timestamp = now - (90 - day) * 1440
        prices.extend([timestamp, base_price + rng.randint(-price_variation, price_variation)])
        ranks.extend([timestamp, max(1, base_rank + rng.randint(-base_rank // 5, base_rank // 5))])

    csv: list[list[int] | None] = [None] * 19
    csv[0] = prices  # Amazon
    csv[1] = prices  # New
    csv[3] = ranks  # Sales rank

    category = rng.choice(MOCK_CATEGORIES)
    current = [-1] * 20
    current[0] = prices[-1]
    current[3] = ranks[-1]
    current[18] = rng.randint(38, 49)  # Rating x10
    current[19] = rng.randint(300, 25_000)  # Review count

    return {
        "asin": asin,
        "domainId": 1,
        "title": f"Mock Product {asin}",
        "brand": "",
        "categoryTree": [{"catId": 1, "name": category}],
        "imagesCSV": f"{asin}.jpg",
        "csv": csv,
        "salesRanks": {"1": ranks},
        "stats": {"current": current},
    }


def get_mock_shopify_response(method: str, endpoint: str, payload: dict | None = None) -> dict:
    """Mock Shopify Admin API response."""
    rng = _rng(f"{method}:{endpoint}")
    if endpoint.startswith("products") and "/metafields.json" in endpoint:
        if method == "GET":
            return {"metafields": []}
        metafield = dict((payload or {}).get("metafield", {}))
        metafield["id"] = rng.randint(10**9, 10**10)
        return {"metafield": metafield}

    if endpoint.startswith("metafields/"):
        return {"metafield": dict((payload or {}).get("metafield", {}))}

    if endpoint.startswith("products"):
        if method == "DELETE":
            return {}
        product = dict((payload or {}).get("product", {}))
        product.setdefault("id", rng.randint(10**9, 10**10))
        variants = product.get("variants") or [{}]
        product["variants"] = [
            {**variant, "id": variant.get("id") or rng.randint(10**9, 10**10)} for variant in variants
        ]
        return {"product": product}

    return {}

"""Keepa and Shopify API clients."""

from .keepa import KeepaClient, KeepaRateLimitError, KeepaResponse
from .shopify import ShopifyApiError, ShopifyClient, ShopifyPushResult, ShopifyRateLimitError

__all__ = [
    "KeepaClient",
    "KeepaRateLimitError",
    "KeepaResponse",
    "ShopifyApiError",
    "ShopifyClient",
    "ShopifyPushResult",
    "ShopifyRateLimitError",
]

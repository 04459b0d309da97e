"""Export and mock-data helpers."""

from .export import MasterExporter
from .mock_data import get_mock_keepa_response, get_mock_shopify_response

__all__ = [
    "MasterExporter",
    "get_mock_keepa_response",
    "get_mock_shopify_response",
]

"""Core business logic for the dropship dashboard."""

from .config import PricingRules, Settings, get_settings, validate_pricing_config
from .csv_importer import CatalogImporter, CsvValidationError
from .errors import AppError, ERROR_CODES, create_error_response
from .models import (
    BulkOperationResult,
    DemandTier,
    ExportFilter,
    Product,
    ProductStatus,
    ShopifyExportOptions,
    StockStatus,
)
from .pricing import PricingEngine
from .shopify_csv import ShopifyCsvExporter

__all__ = [
    "Settings",
    "PricingRules",
    "get_settings",
    "validate_pricing_config",
    "CatalogImporter",
    "CsvValidationError",
    "AppError",
    "ERROR_CODES",
    "create_error_response",
    "BulkOperationResult",
    "DemandTier",
    "ExportFilter",
    "Product",
    "ProductStatus",
    "ShopifyExportOptions",
    "StockStatus",
    "PricingEngine",
    "ShopifyCsvExporter",
]

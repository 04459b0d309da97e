"""Dropship dashboard: pricing rules, catalog export and Shopify sync."""

__version__ = "1.0.0"

"""Shopify Admin REST client for pushing catalog products."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import requests

from src.core.config import Settings
from src.core.models import Product, ProductStatus
from src.core.shopify_csv import ShopifyCsvExporter, format_money

logger = logging.getLogger(__name__)

# Warn when the leaky bucket is this close to full
CALL_LIMIT_HEADROOM = 5


@dataclass
class ShopifyPushResult:
    """Identifiers Shopify assigned to a pushed product."""

    product_id: str = ""
    variant_id: str = ""


class ShopifyClient:
    """Creates, updates and deletes products through the Shopify Admin API."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.store_domain = settings.api.shopify_store_domain
        self.access_token = settings.api.shopify_access_token
        self.api_version = settings.api.shopify_api_version
        self.mock_mode = settings.api.mock_mode
        self.exporter = ShopifyCsvExporter(settings.pricing, settings.store)

        self.session = requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token,
        })

    @property
    def is_configured(self) -> bool:
        return self.mock_mode or self.settings.api.shopify_configured

    def _url(self, endpoint: str) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}/{endpoint}"

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: dict | None = None,
        timeout: int = 30,
    ) -> dict:
        """Send one Admin API call and return the decoded body."""
        if self.mock_mode:
            from src.utils.mock_data import get_mock_shopify_response

            logger.debug(f"Shopify mock {method} {endpoint}")
            return get_mock_shopify_response(method, endpoint, payload)

        if not self.settings.api.shopify_configured:
            raise ShopifyApiError(0, "Shopify store not connected")

        start_time = time.time()
        try:
            response = self.session.request(method, self._url(endpoint), json=payload, timeout=timeout)
        except requests.RequestException as e:
            logger.error(f"Shopify {method} {endpoint} failed: {e}")
            raise ShopifyApiError(0, str(e)) from e
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Shopify {method} {endpoint} -> {response.status_code} in {duration_ms}ms")

        call_limit = response.headers.get("X-Shopify-Shop-Api-Call-Limit")
        if call_limit:
            used, _, limit = call_limit.partition("/")
            if used.isdigit() and limit.isdigit() and int(used) >= int(limit) - CALL_LIMIT_HEADROOM:
                logger.warning(f"Shopify call limit nearly reached: {call_limit}")

        if response.status_code == 429:
            raise ShopifyRateLimitError(response.status_code, response.text)
        if not response.ok:
            raise ShopifyApiError(response.status_code, response.text)
        if not response.content:
            return {}
        return response.json()

    # ==================== Payloads ====================

    def build_metafields(self, product: Product) -> list[dict[str, str]]:
        """Competitor prices and demand signals as product metafields."""
        engine = self.exporter.engine
        metafields: list[dict[str, str]] = []
        if product.retail_price and product.retail_price > 0:
            prices = engine.calculate_competitor_prices(product.retail_price)
            for name, price in prices.as_dict().items():
                metafields.append({
                    "namespace": "competitor",
                    "key": f"{name}_price",
                    "value": format_money(price),
                    "type": "number_decimal",
                })

        if product.demand_score is not None:
            tier = engine.get_demand_tier_from_score(product.demand_score)
            metafields.append({
                "namespace": "demand",
                "key": "score",
                "value": str(product.demand_score),
                "type": "number_integer",
            })
            metafields.append({
                "namespace": "demand",
                "key": "tier",
                "value": tier.value if tier else "",
                "type": "single_line_text_field",
            })
        if product.current_bsr is not None:
            metafields.append({
                "namespace": "demand",
                "key": "bsr",
                "value": str(product.current_bsr),
                "type": "number_integer",
            })

        metafields.append({
            "namespace": "product",
            "key": "asin",
            "value": product.asin,
            "type": "single_line_text_field",
        })
        return metafields

    def build_product_payload(self, product: Product) -> dict[str, Any]:
        """Admin API product body for create and update calls."""
        store = self.settings.store
        exporter = self.exporter
        retail = product.retail_price if product.retail_price and product.retail_price > 0 else None
        compare_at = None
        if retail:
            compare_at = format_money(exporter.engine.calculate_competitor_prices(retail).amazon)

        status = "draft" if product.status == ProductStatus.PAUSED else "active"
        payload: dict[str, Any] = {
            "title": product.title,
            "body_html": exporter.generate_body_html(product),
            "vendor": product.brand or store.vendor,
            "product_type": exporter.determine_product_type(product.category),
            "handle": exporter.generate_handle(product.title, product.asin),
            "status": status,
            "tags": ", ".join(exporter.generate_tags(product)),
            "variants": [
                {
                    "sku": product.asin,
                    "price": format_money(retail, "0.00"),
                    "compare_at_price": compare_at,
                    "inventory_policy": store.inventory_policy,
                    "fulfillment_service": store.fulfillment_service,
                    "requires_shipping": store.requires_shipping,
                    "taxable": store.taxable,
                    "weight": float(store.default_weight),
                    "weight_unit": store.weight_unit,
                }
            ],
        }
        if product.image_url:
            payload["images"] = [{"src": product.image_url, "alt": product.title}]
        return payload

    # ==================== Operations ====================

    def create_product(self, product: Product) -> ShopifyPushResult:
        payload = self.build_product_payload(product)
        payload["metafields"] = self.build_metafields(product)
        data = self._request("POST", "products.json", {"product": payload})

        created = data.get("product") or {}
        if not created.get("id"):
            raise ShopifyApiError(200, "Shopify returned no product id")
        variants = created.get("variants") or [{}]
        result = ShopifyPushResult(
            product_id=str(created["id"]),
            variant_id=str(variants[0].get("id") or ""),
        )
        logger.info(f"Created Shopify product {result.product_id} for {product.asin}")
        return result

    def update_product(self, shopify_product_id: str, product: Product) -> ShopifyPushResult:
        """Update the product, then upsert each metafield individually."""
        payload = self.build_product_payload(product)
        payload["id"] = shopify_product_id
        data = self._request("PUT", f"products/{shopify_product_id}.json", {"product": payload})

        for metafield in self.build_metafields(product):
            self.set_metafield(shopify_product_id, metafield)

        updated = data.get("product") or {}
        variants = updated.get("variants") or [{}]
        return ShopifyPushResult(
            product_id=shopify_product_id,
            variant_id=str(variants[0].get("id") or product.shopify_variant_id or ""),
        )

    def set_metafield(self, shopify_product_id: str, metafield: dict[str, str]) -> dict:
        """Update the metafield with this namespace/key, or create it."""
        lookup = (
            f"products/{shopify_product_id}/metafields.json"
            f"?namespace={metafield['namespace']}&key={metafield['key']}"
        )
        existing = self._request("GET", lookup).get("metafields") or []
        if existing:
            metafield_id = existing[0]["id"]
            body = {"metafield": {"id": metafield_id, "value": metafield["value"], "type": metafield["type"]}}
            return self._request("PUT", f"metafields/{metafield_id}.json", body)
        return self._request(
            "POST", f"products/{shopify_product_id}/metafields.json", {"metafield": metafield}
        )

    def delete_product(self, shopify_product_id: str) -> bool:
        self._request("DELETE", f"products/{shopify_product_id}.json")
        logger.info(f"Deleted Shopify product {shopify_product_id}")
        return True

    def push_product(self, product: Product) -> ShopifyPushResult:
        """Create the product in Shopify, or update it if it is already linked."""
        if product.shopify_product_id:
            return self.update_product(product.shopify_product_id, product)
        return self.create_product(product)


class ShopifyApiError(Exception):
    """Non-success response from the Shopify Admin API."""

    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text
        super().__init__(f"Shopify API Error: {status_code} - {text}")

    @property
    def error_code(self) -> str:
        if self.status_code == 0:
            return "SHOP_001"
        if self.status_code in (401, 403):
            return "SHOP_003"
        if self.status_code == 404:
            return "SHOP_005"
        return "SHOP_004"


class ShopifyRateLimitError(ShopifyApiError):
    """Raised on HTTP 429 from Shopify."""

    @property
    def error_code(self) -> str:
        return "SHOP_002"

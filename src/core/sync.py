"""Shopify push queue."""

from __future__ import annotations

import logging
from datetime import datetime

import requests

from src.api.shopify import ShopifyApiError, ShopifyClient, ShopifyRateLimitError
from src.db.repository import Repository

from .config import PricingRules
from .models import BulkOperationResult, ProductStatus, QueueItem, QueueStatus

logger = logging.getLogger(__name__)

QUEUE_OPERATIONS = ("create", "update", "delete")


class SyncService:
    """Queues products for Shopify and pushes them in capped batches."""

    def __init__(self, repository: Repository, client: ShopifyClient, rules: PricingRules) -> None:
        self.repository = repository
        self.client = client
        self.rules = rules

    def enqueue(self, product_ids: list[int], operation: str = "create", priority: int = 5) -> list[QueueItem]:
        if operation not in QUEUE_OPERATIONS:
            raise ValueError(f"Unknown queue operation: {operation}")
        items = self.repository.enqueue_sync(
            product_ids,
            operation=operation,
            priority=priority,
            max_retries=self.rules.shopify_queue.max_retries,
        )
        logger.info(f"Queued {len(items)} product(s) for Shopify {operation}")
        return items

    def process_queue(self, limit: int | None = None) -> BulkOperationResult:
        """Push up to one batch of pending items; a rate limit stops the batch early."""
        batch_size = self.rules.shopify_queue.batch_size
        limit = batch_size if limit is None else max(0, min(limit, batch_size))
        result = BulkOperationResult(operation="sync")

        items = self.repository.get_pending_queue_items(limit)
        if not items:
            return result

        logger.info(f"Processing {len(items)} Shopify queue item(s)")
        for item in items:
            try:
                self._process_item(item)
            except ShopifyRateLimitError as e:
                # Leave the item pending for the next run
                logger.warning(f"Shopify rate limit hit at product {item.product_id}: {e}")
                result.record_failure(item.product_id, "QUEUE_013")
                break
            except (ShopifyApiError, LookupError, requests.RequestException) as e:
                self._record_attempt_failure(item, str(e))
                result.record_failure(item.product_id, str(e))
                continue

            item.status = QueueStatus.COMPLETED
            item.processed_at = datetime.now()
            item.last_error = ""
            self.repository.update_queue_item(item)
            result.record_success(item.product_id)

        logger.info(
            f"Shopify queue run finished: {result.successful} succeeded, {result.failed} failed"
        )
        return result

    def _process_item(self, item: QueueItem) -> None:
        product = self.repository.get_product(item.product_id)
        if product is None:
            raise LookupError(f"Product not found: {item.product_id}")

        if item.operation == "delete":
            if not product.shopify_product_id:
                raise LookupError(f"Product {item.product_id} is not in Shopify")
            self.client.delete_product(product.shopify_product_id)
            product.shopify_product_id = None
            product.shopify_variant_id = None
            product.shopify_synced_at = None
            self.repository.save_product(product)
            return

        pushed = self.client.push_product(product)
        product.shopify_product_id = pushed.product_id
        product.shopify_variant_id = pushed.variant_id or product.shopify_variant_id
        product.shopify_synced_at = datetime.now()
        if product.status == ProductStatus.PENDING_SYNC:
            product.status = ProductStatus.ACTIVE
        self.repository.save_product(product)

    def _record_attempt_failure(self, item: QueueItem, error: str) -> None:
        item.retry_count += 1
        item.last_error = error
        item.processed_at = datetime.now()
        if item.retry_count >= item.max_retries:
            item.status = QueueStatus.FAILED
            logger.warning(f"Giving up on product {item.product_id} after {item.retry_count} attempts: {error}")
        else:
            item.status = QueueStatus.PENDING
            logger.warning(f"Push of product {item.product_id} failed (attempt {item.retry_count}): {error}")
        self.repository.update_queue_item(item)

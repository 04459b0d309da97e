"""Tests for the Shopify push queue."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from src.api.shopify import ShopifyApiError, ShopifyClient, ShopifyPushResult, ShopifyRateLimitError
from src.core.config import PricingRules, ShopifyQueueRules
from src.core.models import Product, ProductStatus, QueueStatus
from src.core.sync import SyncService
from src.db.repository import Repository


@pytest.fixture
def stored_ids(repository: Repository, sample_products: list[Product]) -> list[int]:
    ids = []
    for product in sample_products:
        product.id = None
        ids.append(repository.create_product(product).id)
    return ids


@pytest.fixture
def service(repository: Repository, settings, rules: PricingRules) -> SyncService:
    return SyncService(repository, ShopifyClient(settings), rules)


class TestEnqueue:
    def test_enqueue(self, service: SyncService, repository: Repository, stored_ids: list[int]) -> None:
        items = service.enqueue(stored_ids[:2])
        assert len(items) == 2
        assert all(item.max_retries == 3 for item in items)
        assert repository.count_queue_by_status() == {"pending": 2}

    def test_unknown_operation(self, service: SyncService, stored_ids: list[int]) -> None:
        with pytest.raises(ValueError):
            service.enqueue(stored_ids, operation="publish")


class TestProcessQueue:
    def test_empty_queue(self, service: SyncService) -> None:
        result = service.process_queue()
        assert result.total == 0
        assert result.operation == "sync"

    def test_push_links_products(
        self, service: SyncService, repository: Repository, stored_ids: list[int]
    ) -> None:
        service.enqueue(stored_ids[:2])
        result = service.process_queue()

        assert result.successful == 2
        assert repository.count_queue_by_status() == {"completed": 2}
        product = repository.get_product(stored_ids[0])
        assert product.shopify_product_id
        assert product.shopify_synced_at is not None
        # pending_sync products go live once pushed
        assert product.status == ProductStatus.ACTIVE

    def test_limit_capped_by_batch_size(
        self, repository: Repository, settings, stored_ids: list[int]
    ) -> None:
        rules = PricingRules(shopify_queue=ShopifyQueueRules(batch_size=1))
        service = SyncService(repository, ShopifyClient(settings), rules)
        service.enqueue(stored_ids)

        result = service.process_queue(limit=50)
        assert result.total == 1
        assert repository.count_queue_by_status() == {"completed": 1, "pending": 3}

    def test_rate_limit_stops_batch(
        self, repository: Repository, rules: PricingRules, stored_ids: list[int]
    ) -> None:
        client = MagicMock()
        client.push_product.side_effect = ShopifyRateLimitError(429, "Too Many Requests")
        service = SyncService(repository, client, rules)
        service.enqueue(stored_ids[:3])

        result = service.process_queue()
        assert result.total == 1
        assert result.to_dict()["results"]["failed"][0]["error"] == "QUEUE_013"
        # Nothing consumed a retry
        pending = repository.get_pending_queue_items(limit=10)
        assert len(pending) == 3
        assert all(item.retry_count == 0 for item in pending)

    def test_failure_retried_then_failed(
        self, repository: Repository, rules: PricingRules, stored_ids: list[int]
    ) -> None:
        client = MagicMock()
        client.push_product.side_effect = ShopifyApiError(422, "Title can't be blank")
        service = SyncService(repository, client, rules)
        service.enqueue(stored_ids[:1])

        for attempt in range(1, 3):
            service.process_queue()
            item = repository.get_pending_queue_items(limit=1)[0]
            assert item.retry_count == attempt
            assert "422" in item.last_error

        result = service.process_queue()
        assert result.failed == 1
        assert repository.count_queue_by_status() == {"failed": 1}

    def test_partial_success(
        self, repository: Repository, rules: PricingRules, stored_ids: list[int]
    ) -> None:
        client = MagicMock()
        client.push_product.side_effect = [
            ShopifyPushResult(product_id="1", variant_id="11"),
            ShopifyApiError(500, "Internal Server Error"),
        ]
        service = SyncService(repository, client, rules)
        service.enqueue(stored_ids[:2])

        result = service.process_queue()
        assert result.successful == 1
        assert result.failed == 1

    def test_connection_error_recorded_per_item(
        self, repository: Repository, rules: PricingRules, stored_ids: list[int]
    ) -> None:
        client = MagicMock()
        client.push_product.side_effect = [
            ShopifyPushResult(product_id="1", variant_id="11"),
            requests.ConnectionError("connection reset"),
        ]
        service = SyncService(repository, client, rules)
        service.enqueue(stored_ids[:2])

        result = service.process_queue()
        assert result.total == 2
        assert result.successful == 1
        assert result.failed == 1
        item = repository.get_pending_queue_items(limit=1)[0]
        assert item.retry_count == 1
        assert "connection reset" in item.last_error

    def test_live_client_network_failure(
        self, repository: Repository, settings, rules: PricingRules, stored_ids: list[int]
    ) -> None:
        settings.api.mock_mode = False
        settings.api.shopify_store_domain = "demo.myshopify.com"
        settings.api.shopify_access_token = "shpat_test"
        client = ShopifyClient(settings)
        client.session.request = MagicMock(side_effect=requests.Timeout("read timed out"))
        service = SyncService(repository, client, rules)
        service.enqueue(stored_ids[:2])

        result = service.process_queue()
        assert result.total == 2
        assert result.failed == 2
        assert "Shopify API Error: 0" in result.to_dict()["results"]["failed"][0]["error"]

    def test_delete_operation(
        self, repository: Repository, rules: PricingRules, stored_ids: list[int]
    ) -> None:
        product = repository.get_product(stored_ids[0])
        product.shopify_product_id = "7001"
        repository.save_product(product)

        client = MagicMock()
        service = SyncService(repository, client, rules)
        service.enqueue([stored_ids[0]], operation="delete")
        result = service.process_queue()

        client.delete_product.assert_called_once_with("7001")
        assert result.successful == 1
        assert repository.get_product(stored_ids[0]).shopify_product_id is None

    def test_delete_unlinked_fails(
        self, repository: Repository, rules: PricingRules, stored_ids: list[int]
    ) -> None:
        client = MagicMock()
        service = SyncService(repository, client, rules)
        service.enqueue([stored_ids[0]], operation="delete")

        result = service.process_queue()
        assert result.failed == 1
        client.delete_product.assert_not_called()

"""Tests for the HTTP API."""

from __future__ import annotations

import csv
import io
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.core.models import Product
from src.web.server import create_app


@pytest.fixture
def app(settings, repository):
    app = create_app(settings, repository=repository)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Create a test client."""
    with app.test_client() as client:
        yield client


@pytest.fixture
def stored_ids(repository, sample_products: list[Product]) -> list[int]:
    ids = []
    for product in sample_products:
        product.id = None
        ids.append(repository.create_product(product).id)
    return ids


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/api/health")
        data = response.get_json()
        assert response.status_code == 200
        assert data["success"] is True
        assert data["data"]["config"]["valid"] is True
        assert data["data"]["database"] is True
        assert data["data"]["mockMode"] is True

    def test_database_down(self, settings):
        repository = MagicMock()
        repository.count_by_status.side_effect = OperationalError("SELECT 1", {}, Exception("locked"))
        app = create_app(settings, repository=repository)
        response = app.test_client().get("/api/health")
        assert response.status_code == 503
        assert response.get_json()["data"]["database"] is False


class TestListProducts:
    def test_pagination_meta(self, client, stored_ids):
        response = client.get("/api/products?page=1&pageSize=3")
        body = response.get_json()
        assert response.status_code == 200
        assert body["success"] is True
        assert len(body["data"]) == 3
        pagination = body["meta"]["pagination"]
        assert pagination["totalItems"] == 4
        assert pagination["totalPages"] == 2
        assert pagination["hasNext"] is True
        assert pagination["hasPrev"] is False

    def test_serialized_fields(self, client, stored_ids):
        body = client.get("/api/products?search=baking").get_json()
        product = body["data"][0]
        assert product["asin"] == "B08N5WRWNW"
        assert product["retail_price"] == 24.99
        assert product["status"] == "active"
        assert product["amazon_url"] == "https://www.amazon.com/dp/B08N5WRWNW"
        assert product["is_synced"] is False

    def test_page_size_capped(self, client, stored_ids):
        body = client.get("/api/products?pageSize=1000").get_json()
        assert body["meta"]["pagination"]["pageSize"] == 100

    def test_bad_ids(self, client):
        response = client.get("/api/products?ids=1,abc")
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_002"


class TestCreateProduct:
    def test_create_priced(self, client):
        response = client.post("/api/products", json={"asin": "b08n5wrwnw", "amazon_price": 14.70})
        body = response.get_json()
        assert response.status_code == 201
        assert body["meta"]["created"] is True
        assert body["data"]["asin"] == "B08N5WRWNW"
        assert body["data"]["title"] == "Product B08N5WRWNW"
        assert body["data"]["retail_price"] == 24.99
        assert body["data"]["amazon_display_price"] == 46.23

    def test_invalid_asin(self, client):
        response = client.post("/api/products", json={"asin": "XYZ"})
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_006"

    def test_missing_asin(self, client):
        response = client.post("/api/products", json={"title": "No ASIN"})
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_001"

    def test_negative_price(self, client):
        response = client.post("/api/products", json={"asin": "B08N5WRWNW", "amazon_price": -1})
        assert response.get_json()["error"]["code"] == "VALID_003"

    def test_duplicate(self, client):
        client.post("/api/products", json={"asin": "B08N5WRWNW"})
        response = client.post("/api/products", json={"asin": "B08N5WRWNW"})
        assert response.status_code == 409
        assert response.get_json()["error"]["code"] == "VALID_005"

    def test_not_json(self, client):
        response = client.post("/api/products", data="asin=B08N5WRWNW")
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_002"


class TestBulkOperations:
    def test_pause(self, client, stored_ids, repository):
        response = client.post(
            "/api/products", json={"operation": "pause", "productIds": [stored_ids[0], 999]}
        )
        data = response.get_json()["data"]
        assert data["operation"] == "pause"
        assert data["successful"] == 1
        assert data["failed"] == 1
        assert data["results"]["failed"] == [{"id": 999, "error": "Product not found"}]
        assert repository.get_product(stored_ids[0]).status.value == "paused"

    def test_delete(self, client, stored_ids, repository):
        client.post("/api/products", json={"operation": "delete", "productIds": stored_ids[:2]})
        assert len(repository.all_products()) == 2

    def test_sync_queues(self, client, stored_ids, repository):
        response = client.post("/api/products", json={"operation": "sync", "productIds": stored_ids[:2]})
        assert response.get_json()["data"]["successful"] == 2
        assert repository.count_queue_by_status() == {"pending": 2}

    def test_unknown_operation(self, client, stored_ids):
        response = client.post("/api/products", json={"operation": "explode", "productIds": stored_ids})
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_008"

    def test_empty_ids(self, client):
        response = client.post("/api/products", json={"operation": "pause", "productIds": []})
        assert response.get_json()["error"]["code"] == "VALID_003"

    def test_too_many(self, client):
        response = client.post(
            "/api/products", json={"operation": "pause", "productIds": list(range(1, 102))}
        )
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_007"


class TestUpdateProduct:
    def test_update_cost_reprices(self, client, stored_ids):
        response = client.put(f"/api/products?id={stored_ids[1]}", json={"amazon_price": 14.70})
        body = response.get_json()
        assert response.status_code == 200
        assert body["meta"]["updated"] is True
        assert body["data"]["retail_price"] == 24.99
        assert body["data"]["amazon_display_price"] == 46.23

    def test_manual_retail_price(self, client, stored_ids):
        response = client.put("/api/products", json={"id": stored_ids[0], "retail_price": 29.99})
        data = response.get_json()["data"]
        assert data["retail_price"] == 29.99
        assert data["amazon_display_price"] == 55.48

    def test_status_change(self, client, stored_ids):
        response = client.put("/api/products", json={"id": stored_ids[0], "status": "archived"})
        assert response.get_json()["data"]["status"] == "archived"

    def test_missing_id(self, client):
        response = client.put("/api/products", json={"title": "x"})
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_001"

    def test_not_found(self, client):
        response = client.put("/api/products?id=999", json={"title": "x"})
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "PROD_004"


class TestDeleteProducts:
    def test_delete_ids(self, client, stored_ids):
        ids = ",".join(str(i) for i in stored_ids[:2])
        data = client.delete(f"/api/products?ids={ids}").get_json()["data"]
        assert data["deleted"] == 2

    def test_delete_single(self, client, stored_ids):
        data = client.delete(f"/api/products?id={stored_ids[0]}").get_json()["data"]
        assert data["ids"] == [stored_ids[0]]

    def test_no_ids(self, client):
        response = client.delete("/api/products")
        assert response.get_json()["error"]["code"] == "VALID_001"


class TestPricingAndDiscovery:
    def test_quote(self, client):
        data = client.get("/api/pricing/quote?cost=14.70").get_json()["data"]
        assert data["retailPrice"] == 24.99
        assert data["competitorPrices"]["amazon"] == 46.23
        assert data["profitMargin"] == 41.18
        assert data["refreshIntervalDays"] == 1

    @pytest.mark.parametrize(
        "query,code",
        [("", "VALID_001"), ("?cost=abc", "VALID_002"), ("?cost=0", "PRICE_CALC_001")],
    )
    def test_quote_errors(self, client, query, code):
        response = client.get(f"/api/pricing/quote{query}")
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == code

    def test_discovery_excluded_brand(self, client):
        body = {
            "title": "Nike Running Shoes",
            "price": 19.99,
            "rating": 4.5,
            "reviews": 2000,
            "isPrime": True,
            "bsr": 25000,
        }
        data = client.post("/api/discovery/evaluate", json=body).get_json()["data"]
        assert data["discovery"]["meets"] is False
        assert "Contains excluded brand word" in data["discovery"]["reasons"]
        assert data["demand"]["estimatedMonthlySales"] == 150

    def test_discovery_no_bsr(self, client):
        data = client.post("/api/discovery/evaluate", json={"title": "Mat"}).get_json()["data"]
        assert data["demand"]["tier"] == "reject"
        assert data["demand"]["score"] is None
        assert data["demand"]["refreshIntervalDays"] == 14


class TestExports:
    def test_shopify_csv(self, client, stored_ids):
        response = client.get("/api/export/shopify")
        assert response.status_code == 200
        assert response.mimetype == "text/csv"
        assert response.headers["X-Product-Count"] == "2"
        assert "attachment" in response.headers["Content-Disposition"]
        rows = list(csv.reader(io.StringIO(response.get_data(as_text=True))))
        assert len(rows) == 3

    def test_shopify_empty_json(self, client):
        data = client.get("/api/export/shopify?format=json").get_json()
        assert data["success"] is True
        assert data["csv"] == ""
        assert data["productCount"] == 0

    def test_shopify_without_metafields(self, client, stored_ids):
        text = client.get("/api/export/shopify?metafields=false").get_data(as_text=True)
        header = next(csv.reader(io.StringIO(text)))
        assert len(header) == 55

    def test_shopify_reject_tier(self, client):
        response = client.get("/api/export/shopify?tier=reject")
        assert response.status_code == 400
        body = response.get_json()
        assert body["success"] is False
        assert body["error"] == "Rejected products are not exported"

    def test_shopify_unknown_tier(self, client):
        response = client.get("/api/export/shopify?tier=extreme")
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_002"

    def test_master_json(self, client, stored_ids):
        response = client.get("/api/export/master?format=json")
        assert response.status_code == 200
        assert response.get_json()["productCount"] == 4

    def test_master_bad_format(self, client):
        response = client.get("/api/export/master?format=pdf")
        assert response.get_json()["error"]["code"] == "VALID_002"

    def test_stats(self, client, stored_ids):
        data = client.get("/api/export/stats").get_json()["data"]
        assert data["totalProducts"] == 4
        assert data["byDemandTier"]["medium"] == 1


class TestQueue:
    def test_process(self, client, stored_ids, repository):
        client.post("/api/products", json={"operation": "sync", "productIds": stored_ids[:2]})
        data = client.post("/api/queue/process", json={"limit": 1}).get_json()["data"]
        assert data["successful"] == 1
        status = client.get("/api/queue").get_json()["data"]
        assert status == {"pending": 1, "completed": 1}

    def test_bad_limit(self, client):
        response = client.post("/api/queue/process", json={"limit": "all"})
        assert response.get_json()["error"]["code"] == "VALID_002"


class TestImport:
    def test_csv_upload(self, client, repository, sample_csv_path):
        with open(sample_csv_path, "rb") as f:
            response = client.post(
                "/api/import",
                data={"file": (f, "catalog.csv")},
                content_type="multipart/form-data",
            )
        body = response.get_json()
        assert response.status_code == 201
        assert body["data"]["operation"] == "import"
        assert body["data"]["results"]["success"] == ["B08N5WRWNW", "B07XJ8C8F5"]
        assert body["data"]["import"]["skipped"] == 1
        assert body["data"]["import"]["errorCode"] == "IMPORT_006"
        stored = repository.get_product_by_asin("B08N5WRWNW")
        assert str(stored.retail_price) == "24.99"

    def test_existing_asin_recorded_per_item(self, client, stored_ids):
        response = client.post(
            "/api/import",
            json={"items": [{"ASIN": "B08N5WRWNW", "Cost": 14.70}, {"ASIN": "B0NEWITEM1", "Cost": 9.5}]},
        )
        data = response.get_json()["data"]
        assert response.status_code == 201
        assert data["successful"] == 1
        assert data["results"]["success"] == ["B0NEWITEM1"]
        assert data["results"]["failed"] == [
            {"id": "B08N5WRWNW", "error": "ASIN B08N5WRWNW already exists"}
        ]

    def test_pasted_text(self, client, repository):
        response = client.post(
            "/api/import",
            json={"text": "B08N5WRWNW\nhttps://www.amazon.com/dp/B07XJ8C8F5\nnot an asin\n"},
        )
        data = response.get_json()["data"]
        assert data["results"]["success"] == ["B08N5WRWNW", "B07XJ8C8F5"]
        assert data["import"]["skipped"] == 1
        assert repository.get_product_by_asin("B07XJ8C8F5").retail_price is None

    def test_unsupported_upload(self, client):
        response = client.post(
            "/api/import",
            data={"file": (io.BytesIO(b"binary"), "catalog.xls")},
            content_type="multipart/form-data",
        )
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "IMPORT_002"

    def test_nothing_pasted(self, client):
        response = client.post("/api/import", json={"text": "hello"})
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "IMPORT_010"

    def test_no_payload(self, client):
        response = client.post("/api/import", json={"rows": []})
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALID_001"


class TestDemandRefresh:
    def test_refresh_ids(self, client, repository, stored_ids):
        response = client.post("/api/demand/refresh", json={"productIds": [stored_ids[0], 9999]})
        data = response.get_json()["data"]
        assert response.status_code == 200
        assert data["operation"] == "refresh_demand"
        assert data["results"]["success"] == [stored_ids[0]]
        assert data["results"]["failed"] == [{"id": 9999, "error": "Product not found"}]
        assert len(repository.get_product(stored_ids[0]).bsr_history) == 90

    def test_stale_products_by_default(self, client, repository, stored_ids):
        fresh = repository.get_product(stored_ids[0])
        fresh.last_price_check = datetime.now()
        repository.save_product(fresh)

        data = client.post("/api/demand/refresh").get_json()["data"]
        assert data["total"] == 3
        assert stored_ids[0] not in data["results"]["success"]

    def test_keepa_unconfigured(self, settings, repository):
        keepa = MagicMock()
        keepa.is_configured = False
        app = create_app(settings, repository=repository, keepa_client=keepa)
        response = app.test_client().post("/api/demand/refresh", json={"productIds": [1]})
        assert response.status_code == 502
        assert response.get_json()["error"]["code"] == "KEEPA_001"

    def test_bad_ids(self, client):
        response = client.post("/api/demand/refresh", json={"productIds": "1,2"})
        assert response.get_json()["error"]["code"] == "VALID_002"

    def test_too_many(self, client):
        response = client.post("/api/demand/refresh", json={"productIds": list(range(1, 102))})
        assert response.get_json()["error"]["code"] == "VALID_007"

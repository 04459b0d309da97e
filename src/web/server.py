"""Flask HTTP API for the dropship dashboard."""

from __future__ import annotations

import logging
import math
import tempfile
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from src.api.keepa import KeepaClient
from src.api.shopify import ShopifyClient
from src.core.config import Settings, get_settings, validate_pricing_config
from src.core.csv_importer import CatalogImporter
from src.core.errors import AppError, ConflictError, DependencyError, NotFoundError, ValidationError
from src.core.models import (
    BulkOperation,
    BulkOperationResult,
    DemandTier,
    Product,
    ProductQuery,
    ProductStatus,
    ShopifyExportOptions,
)
from src.core.pricing import PricingEngine
from src.core.refresh import DemandRefreshService
from src.core.shopify_csv import ShopifyCsvExporter
from src.core.sync import SyncService
from src.db.repository import Repository
from src.utils.export import MasterExporter

from .schemas import (
    BulkOperationRequest,
    DiscoveryRequest,
    ProductCreateRequest,
    ProductUpdateRequest,
    parse_body,
    serialize_product,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

BULK_STATUS_CHANGES = {
    BulkOperation.PAUSE: ProductStatus.PAUSED,
    BulkOperation.UNPAUSE: ProductStatus.ACTIVE,
    BulkOperation.REFRESH: ProductStatus.PENDING,
}


def success_response(data: Any, meta: dict[str, Any] | None = None, status: int = 200):
    body: dict[str, Any] = {"success": True, "data": data}
    if meta:
        body["meta"] = meta
    return jsonify(body), status


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _decimal_arg(name: str) -> Decimal | None:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    try:
        parsed = Decimal(value)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def _id_list(raw: str | None) -> list[int]:
    if not raw:
        return []
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise ValidationError("VALID_002", details=f"Product ids must be integers: {raw}") from e


def create_app(
    settings: Settings | None = None,
    repository: Repository | None = None,
    shopify_client: ShopifyClient | None = None,
    keepa_client: KeepaClient | None = None,
) -> Flask:
    """Create and configure the Flask application."""
    settings = settings or get_settings()
    rules = settings.pricing

    app = Flask(__name__)
    app.json.sort_keys = False

    repo = repository or Repository()
    engine = PricingEngine(rules)
    shopify = shopify_client or ShopifyClient(settings)
    sync_service = SyncService(repo, shopify, rules)
    keepa = keepa_client or KeepaClient(settings, engine)
    refresh_service = DemandRefreshService(repo, keepa, rules, engine)
    importer = CatalogImporter(rules, engine)
    shopify_exporter = ShopifyCsvExporter(rules, settings.store)
    master_exporter = MasterExporter(rules, repo)

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            logger.error(f"{error.code}: {error}")
        return jsonify({"success": False, "error": error.to_dict()}), error.http_status

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        logger.exception("Database error while handling request")
        return handle_app_error(DependencyError("DB_003", details=str(error)))

    # ==================== Health ====================

    @app.route("/api/health")
    def api_health():
        config_result = validate_pricing_config(rules)
        database_ok = True
        try:
            repo.count_by_status()
        except SQLAlchemyError as e:
            logger.error(f"Health check could not reach the database: {e}")
            database_ok = False

        healthy = config_result.valid and database_ok
        body = {
            "success": healthy,
            "data": {
                "config": {"valid": config_result.valid, "errors": config_result.errors},
                "database": database_ok,
                "shopifyConfigured": settings.api.shopify_configured,
                "mockMode": settings.api.mock_mode,
                "checkedAt": datetime.now().isoformat(),
            },
        }
        return jsonify(body), 200 if healthy else 503

    # ==================== Products ====================

    @app.route("/api/products", methods=["GET"])
    def api_list_products():
        page = max(1, _int_arg("page", 1))
        page_size = min(max(1, _int_arg("pageSize", DEFAULT_PAGE_SIZE)), MAX_PAGE_SIZE)
        profit_status = request.args.get("profitStatus", "all")
        query = ProductQuery(
            page=page,
            page_size=page_size,
            search=request.args.get("search", ""),
            status=request.args.get("status", "all"),
            category=request.args.get("category", ""),
            ids=_id_list(request.args.get("ids")),
            min_price=_decimal_arg("minPrice"),
            max_price=_decimal_arg("maxPrice"),
            min_margin=_decimal_arg("minMargin"),
            max_margin=_decimal_arg("maxMargin"),
            profit_status="" if profit_status == "all" else profit_status,
            stale_only=request.args.get("showStaleOnly") == "true",
            synced=True if request.args.get("showSyncedOnly") == "true" else None,
            sort_by=request.args.get("sortBy", "created_at"),
            sort_order="asc" if request.args.get("sortOrder") == "asc" else "desc",
        )

        products, total = repo.list_products(
            query,
            profit_threshold=rules.profit_thresholds.minimum,
            stale_days=rules.refresh.stale_threshold_days,
        )
        total_pages = math.ceil(total / page_size) if total else 0
        meta = {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "totalItems": total,
                "totalPages": total_pages,
                "hasNext": page < total_pages,
                "hasPrev": page > 1,
            },
            "filters": {
                "search": query.search,
                "status": query.status,
                "profitStatus": profit_status,
                "category": query.category,
                "sortBy": query.sort_by,
                "sortOrder": query.sort_order,
            },
        }
        return success_response([serialize_product(p) for p in products], meta)

    @app.route("/api/products", methods=["POST"])
    def api_create_product():
        body = request.get_json(silent=True)
        if isinstance(body, dict) and "operation" in body:
            return _bulk_operation(parse_body(BulkOperationRequest, body))

        data = parse_body(ProductCreateRequest, body)
        now = datetime.now()
        product = Product(
            asin=data.asin,
            title=data.title or f"Product {data.asin}",
            description=data.description or "",
            brand=data.brand or "",
            category=data.category or "Uncategorized",
            image_url=data.image_url or "",
            amazon_price=data.amazon_price or None,
            status=ProductStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        if product.amazon_price and product.amazon_price > 0:
            engine.price_product(product, now=now)

        product = repo.create_product(product)
        logger.info(f"Created product {product.id} ({product.asin})")
        return success_response(serialize_product(product), {"created": True}, status=201)

    def _bulk_operation(data: BulkOperationRequest):
        ids = data.product_ids
        if len(ids) > rules.bulk.max_items:
            raise ValidationError(
                "VALID_007",
                details=f"Maximum {rules.bulk.max_items} products per bulk operation",
            )

        result = BulkOperationResult(operation=data.operation.value)
        if data.operation == BulkOperation.DELETE:
            affected = set(repo.delete_products(ids))
        elif data.operation == BulkOperation.SYNC:
            affected = {item.product_id for item in sync_service.enqueue(ids)}
        else:
            affected = set(repo.update_status(ids, BULK_STATUS_CHANGES[data.operation]))

        for product_id in ids:
            if product_id in affected:
                result.record_success(product_id)
            else:
                result.record_failure(product_id, "Product not found")

        logger.info(
            f"Bulk {data.operation.value}: {result.successful} succeeded, {result.failed} failed"
        )
        return success_response(result.to_dict())

    @app.route("/api/products", methods=["PUT"])
    def api_update_product():
        data = parse_body(ProductUpdateRequest, request.get_json(silent=True))
        query_ids = _id_list(request.args.get("id"))
        product_id = query_ids[0] if query_ids else data.id
        if product_id is None:
            raise ValidationError("VALID_001", details="Product id is required")

        product = repo.get_product(product_id)
        if product is None:
            raise NotFoundError("PROD_004", details=f"No product with id {product_id}")

        fields = data.model_fields_set
        for name in ("title", "description", "category", "image_url"):
            if name in fields:
                setattr(product, name, getattr(data, name) or "")
        if "status" in fields and data.status is not None:
            product.status = data.status

        if "amazon_price" in fields:
            product.amazon_price = data.amazon_price
            product.last_price_check = datetime.now()
            if "retail_price" not in fields and data.amazon_price and data.amazon_price > 0:
                product.retail_price = engine.calculate_retail_price(data.amazon_price)
                engine.reprice_from_retail(product)

        if "retail_price" in fields:
            product.retail_price = data.retail_price
            if data.retail_price and data.retail_price > 0:
                engine.reprice_from_retail(product)

        product = repo.save_product(product)
        return success_response(serialize_product(product), {"updated": True})

    @app.route("/api/products", methods=["DELETE"])
    def api_delete_products():
        ids = _id_list(request.args.get("ids")) or _id_list(request.args.get("id"))
        if not ids:
            raise ValidationError("VALID_001", details="Provide product id(s) to delete")
        if len(ids) > rules.bulk.max_items:
            raise ValidationError(
                "VALID_007",
                details=f"Maximum {rules.bulk.max_items} products per delete operation",
            )
        deleted = repo.delete_products(ids)
        return success_response({"deleted": len(deleted), "ids": deleted})

    # ==================== Pricing and discovery ====================

    @app.route("/api/pricing/quote")
    def api_pricing_quote():
        raw_cost = request.args.get("cost")
        if not raw_cost:
            raise ValidationError("VALID_001", details="cost is required")
        cost = _decimal_arg("cost")
        if cost is None:
            raise ValidationError("VALID_002", details=f"cost must be a number, got {raw_cost}")
        if cost <= 0:
            raise ValidationError("PRICE_CALC_001", details="cost must be greater than zero")

        retail = engine.calculate_retail_price(cost)
        competitors = engine.calculate_competitor_prices(retail)
        margin = engine.calculate_margin(retail, cost)
        return success_response({
            "cost": float(cost),
            "retailPrice": float(retail),
            "profit": float(engine.calculate_profit(retail, cost)),
            "profitMargin": float(margin),
            "profitPercent": float(engine.calculate_profit_percent(retail, cost)),
            "profitStatus": engine.profit_status(margin),
            "competitorPrices": {name: float(p) for name, p in competitors.as_dict().items()},
            "refreshIntervalDays": engine.get_refresh_interval(retail),
        })

    @app.route("/api/discovery/evaluate", methods=["POST"])
    def api_discovery_evaluate():
        data = parse_body(DiscoveryRequest, request.get_json(silent=True))
        discovery = engine.meets_discovery_criteria(data.to_candidate())

        score = engine.calculate_demand_score(data.to_demand_input()) if data.bsr else None
        demand = engine.meets_demand_criteria(data.bsr, score)
        return success_response({
            "discovery": {"meets": discovery.meets, "reasons": discovery.reasons},
            "demand": {
                "meets": demand.meets,
                "tier": demand.tier.value,
                "reason": demand.reason,
                "score": score,
                "estimatedMonthlySales": engine.estimate_monthly_sales(data.bsr),
                "refreshIntervalDays": engine.get_refresh_interval_by_demand(demand.tier),
            },
        })

    # ==================== Import and demand refresh ====================

    def _import_upload(upload):
        suffix = Path(upload.filename or "").suffix.lower()
        if not suffix:
            raise ValidationError("IMPORT_001", details="Uploaded file needs a name with an extension")
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / f"upload{suffix}"
            upload.save(path)
            return importer.import_file(path)

    @app.route("/api/import", methods=["POST"])
    def api_import():
        upload = request.files.get("file")
        if upload is not None:
            products, import_result = _import_upload(upload)
        else:
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                raise ValidationError("VALID_001", details="Send a file upload or a JSON body")
            if isinstance(body.get("text"), str):
                asins, pasted = importer.parse_pasted_text(body["text"])
                if not pasted.success:
                    raise ValidationError(pasted.error_code, details="; ".join(pasted.errors))
                products, import_result = importer.import_items([{"ASIN": asin} for asin in asins])
                import_result.items_skipped += pasted.items_skipped
                import_result.warnings = pasted.warnings + import_result.warnings
            elif isinstance(body.get("items"), list):
                products, import_result = importer.import_items(body["items"])
            else:
                raise ValidationError("VALID_001", details="Provide file, text or items")

        if not import_result.success:
            raise ValidationError(
                import_result.error_code or "IMPORT_005",
                details="; ".join(import_result.errors[:5]) or None,
            )

        result = BulkOperationResult(operation="import")
        for product in products:
            try:
                stored = repo.create_product(product)
            except ConflictError as e:
                result.record_failure(product.asin, str(e))
                continue
            result.record_success(stored.asin)

        logger.info(
            f"Import {import_result.batch_id}: {result.successful} stored, {result.failed} rejected"
        )
        data = result.to_dict()
        data["import"] = import_result.to_dict()
        return success_response(data, status=201 if result.successful else 200)

    @app.route("/api/demand/refresh", methods=["POST"])
    def api_demand_refresh():
        if not keepa.is_configured:
            raise DependencyError("KEEPA_001")

        body = request.get_json(silent=True) or {}
        ids = body.get("productIds") if isinstance(body, dict) else None
        if ids is None:
            stale, _ = repo.list_products(
                ProductQuery(
                    page_size=rules.bulk.max_items,
                    stale_only=True,
                    sort_by="updated_at",
                    sort_order="asc",
                ),
                stale_days=rules.refresh.stale_threshold_days,
            )
            ids = [p.id for p in stale]
        elif not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
            raise ValidationError("VALID_002", details="productIds must be a list of integers")

        if len(ids) > rules.bulk.max_items:
            raise ValidationError(
                "VALID_007",
                details=f"Maximum {rules.bulk.max_items} products per refresh",
            )

        result = refresh_service.refresh(ids)
        data = result.to_dict()
        data["tokensLeft"] = keepa.token_status.tokens_left
        return success_response(data)

    # ==================== Exports ====================

    @app.route("/api/export/shopify")
    def api_export_shopify():
        tier = request.args.get("tier")
        if tier:
            try:
                demand_tier = DemandTier.from_string(tier)
            except ValueError as e:
                raise ValidationError("VALID_002", details=str(e)) from e
            result = shopify_exporter.export_by_demand_tier(repo.query_products, demand_tier)
            if demand_tier == DemandTier.REJECT:
                return jsonify(result.to_dict()), 400
        elif request.args.get("draft") == "true":
            result = shopify_exporter.export_draft(repo.query_products)
        else:
            options = ShopifyExportOptions(
                include_metafields=request.args.get("metafields", "true") != "false",
            )
            result = shopify_exporter.export(repo.query_products, options)

        if not result.success:
            return jsonify(result.to_dict()), 500
        if request.args.get("format") == "json":
            return jsonify(result.to_dict())

        filename = MasterExporter.generate_filename("shopify_products", "csv")
        return Response(
            result.csv,
            mimetype="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "X-Product-Count": str(result.product_count),
            },
        )

    @app.route("/api/export/master")
    def api_export_master():
        export_format = request.args.get("format", "json")
        if export_format == "json":
            result = master_exporter.export_to_json()
            mimetype = "application/json"
        elif export_format == "csv":
            result = master_exporter.export_to_csv()
            mimetype = "text/csv"
        else:
            raise ValidationError("VALID_002", details=f"Unsupported export format: {export_format}")

        if not result.success:
            return jsonify(result.to_dict()), 500

        filename = MasterExporter.generate_filename("products_master", export_format)
        return Response(
            result.data,
            mimetype=mimetype,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.route("/api/export/stats")
    def api_export_stats():
        return success_response(master_exporter.get_export_stats().to_dict())

    # ==================== Shopify queue ====================

    @app.route("/api/queue", methods=["GET"])
    def api_queue_status():
        return success_response(repo.count_queue_by_status())

    @app.route("/api/queue/process", methods=["POST"])
    def api_queue_process():
        body = request.get_json(silent=True) or {}
        limit = body.get("limit") if isinstance(body, dict) else None
        if limit is not None and not isinstance(limit, int):
            raise ValidationError("VALID_002", details="limit must be an integer")
        result = sync_service.process_queue(limit=limit)
        return success_response(result.to_dict())

    return app

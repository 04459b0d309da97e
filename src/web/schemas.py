"""Request bodies and response serialization for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.core.errors import ValidationError
from src.core.models import BulkOperation, DiscoveryCandidate, DemandInput, Product, ProductStatus
from src.core.pricing import is_valid_asin, normalize_asin

RequestModel = TypeVar("RequestModel", bound=BaseModel)


class ProductCreateRequest(BaseModel):
    asin: str
    title: str | None = None
    description: str | None = None
    brand: str | None = None
    amazon_price: Decimal | None = Field(default=None, ge=0)
    category: str | None = None
    image_url: str | None = None

    @field_validator("asin")
    @classmethod
    def check_asin(cls, v: str) -> str:
        if not is_valid_asin(v.strip()):
            raise ValueError(f'"{v}" is not a valid ASIN')
        return normalize_asin(v)


class ProductUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""

    id: int | None = None
    title: str | None = None
    description: str | None = None
    amazon_price: Decimal | None = Field(default=None, ge=0)
    retail_price: Decimal | None = Field(default=None, ge=0)
    category: str | None = None
    status: ProductStatus | None = None
    image_url: str | None = None


class BulkOperationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    operation: BulkOperation
    product_ids: list[int] = Field(alias="productIds", min_length=1)


class DiscoveryRequest(BaseModel):
    """Candidate listing plus optional demand signals."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    price: Decimal | None = None
    rating: Decimal | None = None
    reviews: int | None = None
    is_prime: bool = Field(default=False, alias="isPrime")
    category: str = ""
    bsr: int | None = None
    bsr_history: list[int] = Field(default_factory=list, alias="bsrHistory")
    price_history: list[Decimal] = Field(default_factory=list, alias="priceHistory")
    recent_reviews: int | None = Field(default=None, alias="recentReviews")

    def to_candidate(self) -> DiscoveryCandidate:
        return DiscoveryCandidate(
            title=self.title,
            price=self.price,
            rating=self.rating,
            reviews=self.reviews,
            is_prime=self.is_prime,
            category=self.category,
        )

    def to_demand_input(self) -> DemandInput:
        return DemandInput(
            current_bsr=self.bsr,
            bsr_history=self.bsr_history,
            price_history=self.price_history,
            recent_reviews=self.recent_reviews,
            total_reviews=self.reviews,
        )


def parse_body(model: type[RequestModel], data: Any) -> RequestModel:
    """Validate a JSON body, mapping failures to VALID_ error codes."""
    if not isinstance(data, dict):
        raise ValidationError("VALID_002", details="Request body must be a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "")
        if first.get("type") == "missing":
            code = "VALID_001"
        elif location == "asin":
            code = "VALID_006"
        elif location == "operation":
            code = "VALID_008"
        elif first.get("type", "").endswith(("greater_than_equal", "too_short", "less_than_equal")):
            code = "VALID_003"
        else:
            code = "VALID_002"
        raise ValidationError(code, details=message) from e


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    return value


def serialize_product(product: Product) -> dict[str, Any]:
    data = {name: _json_value(value) for name, value in product.__dict__.items()}
    data["amazon_url"] = product.amazon_url
    data["is_synced"] = product.is_synced
    return data

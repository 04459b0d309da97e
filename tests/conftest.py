"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest

from src.core.config import PricingRules, Settings
from src.core.models import DemandTier, Product, ProductStatus, StockStatus
from src.core.pricing import PricingEngine


@pytest.fixture
def settings() -> Settings:
    """Create default settings for testing."""
    s = Settings()
    s.api.mock_mode = True
    return s


@pytest.fixture
def rules() -> PricingRules:
    return PricingRules()


@pytest.fixture
def engine(rules) -> PricingEngine:
    return PricingEngine(rules)


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 3, 14, 9, 30, 0)


@pytest.fixture
def sample_product(now) -> Product:
    """A priced, high-demand product."""
    return Product(
        id=1,
        asin="B08N5WRWNW",
        title="Silicone Baking Mat Set, 3 Pack",
        description="Non-stick reusable baking mats.",
        brand="KitchenPro",
        category="Kitchen & Dining",
        image_url="https://images-na.ssl-images-amazon.com/images/I/mat.jpg",
        features=["Food-grade silicone", "Oven safe to 480F"],
        amazon_price=Decimal("14.70"),
        retail_price=Decimal("24.99"),
        compare_at_price=Decimal("46.23"),
        profit_margin=Decimal("41.18"),
        rating=Decimal("4.6"),
        review_count=12840,
        is_prime=True,
        stock_status=StockStatus.IN_STOCK,
        current_bsr=3200,
        demand_score=75,
        demand_tier=DemandTier.HIGH,
        estimated_monthly_sales=1500,
        status=ProductStatus.ACTIVE,
        last_price_check=now,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def sample_products(sample_product, now) -> list[Product]:
    """Products spread across statuses and demand tiers."""
    medium = Product(
        id=2,
        asin="B07XJ8C8F5",
        title='Cable Organizer, "Pro" Edition, 10 Pack',
        category="Electronics",
        amazon_price=Decimal("6.49"),
        retail_price=Decimal("12.99"),
        rating=Decimal("4.2"),
        review_count=870,
        current_bsr=25000,
        demand_score=44,
        demand_tier=DemandTier.MEDIUM,
        status=ProductStatus.PENDING_SYNC,
        created_at=now,
        updated_at=now,
    )
    draft = Product(
        id=3,
        asin="B09ABCDE12",
        title="Dog Chew Toy",
        category="Pet Supplies",
        amazon_price=Decimal("8.00"),
        retail_price=Decimal("13.60"),
        current_bsr=90000,
        demand_score=25,
        demand_tier=DemandTier.LOW,
        status=ProductStatus.DRAFT,
        created_at=now,
        updated_at=now,
    )
    rejected = Product(
        id=4,
        asin="B00REJECT1",
        title="Obscure Widget",
        amazon_price=Decimal("9.00"),
        retail_price=Decimal("15.30"),
        current_bsr=400000,
        demand_score=10,
        demand_tier=DemandTier.REJECT,
        status=ProductStatus.REJECTED,
        created_at=now,
        updated_at=now,
    )
    return [sample_product, medium, draft, rejected]


@pytest.fixture
def temp_db(tmp_path: Path):
    """Isolated SQLite database with all tables created."""
    import src.db.session as session_module
    from src.db.session import close_database, init_database

    db_path = tmp_path / "test.db"
    with patch("src.db.session.get_db_path", return_value=db_path):
        session_module._engine = None
        session_module._session_factory = None
        init_database(use_migrations=False)
        yield db_path
        close_database()


@pytest.fixture
def repository(temp_db):
    from src.db.repository import Repository

    return Repository()


@pytest.fixture
def sample_csv_path(tmp_path: Path) -> Path:
    """Create a sample catalog CSV for testing."""
    csv_content = (
        "ASIN,Title,Brand,Category,Cost,Rating,Reviews,Prime\n"
        "B08N5WRWNW,Silicone Baking Mat Set,KitchenPro,Kitchen & Dining,14.70,4.6,12840,Yes\n"
        "b07xj8c8f5,Cable Organizer,,Electronics,$6.49,4.2,870,no\n"
        "NOTANASIN,Broken Row,,,5.00,,,\n"
    )
    csv_file = tmp_path / "catalog.csv"
    csv_file.write_text(csv_content, encoding="utf-8")
    return csv_file


@pytest.fixture
def invalid_csv_path(tmp_path: Path) -> Path:
    """Create a CSV file with no ASIN column."""
    csv_content = "Name,Price,SKU\nTest,10.00,ABC123\n"
    csv_file = tmp_path / "invalid.csv"
    csv_file.write_text(csv_content, encoding="utf-8")
    return csv_file

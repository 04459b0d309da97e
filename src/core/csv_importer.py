"""Catalog import from spreadsheet files and pasted ASIN lists."""

from __future__ import annotations

import csv
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import pandas as pd

from .config import PricingRules
from .models import ImportResult, Product, ProductStatus
from .pricing import PricingEngine, is_valid_asin, normalize_asin

logger = logging.getLogger(__name__)

# Bare ASIN, or the ASIN segment of an Amazon product URL
DP_URL_PATTERN = re.compile(r"/(?:dp|gp/product)/([A-Za-z0-9]{10})(?:[/?#]|$)")
BARE_ASIN_PATTERN = re.compile(r"^\s*([A-Za-z0-9]{10})\s*$")

TRUE_VALUES = {"true", "yes", "y", "1", "prime"}


class CsvValidationError(Exception):
    """Raised when a catalog file fails validation."""

    def __init__(
        self,
        message: str,
        missing_headers: list[str] | None = None,
        error_code: str = "IMPORT_003",
    ) -> None:
        super().__init__(message)
        self.missing_headers = missing_headers or []
        self.error_code = error_code


@dataclass
class CsvRow:
    """Parsed catalog row."""

    row_number: int
    asin: str
    title: str = ""
    description: str = ""
    brand: str = ""
    category: str = ""
    image_url: str = ""
    cost: Decimal | None = None
    rating: Decimal | None = None
    review_count: int | None = None
    is_prime: bool = False
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class CatalogImporter:
    """Imports ASIN catalog files and prices each row with the pricing engine."""

    REQUIRED_HEADERS = ["ASIN"]
    OPTIONAL_HEADERS = [
        "Title",
        "Description",
        "Brand",
        "Category",
        "Cost",
        "Rating",
        "Reviews",
        "Prime",
        "ImageURL",
    ]

    def __init__(self, rules: PricingRules, engine: PricingEngine | None = None) -> None:
        self.rules = rules
        self.limits = rules.import_limits
        self.engine = engine or PricingEngine(rules)
        self.batch_id = ""

    # ==================== Validation ====================

    def validate_file(self, file_path: str | Path) -> Path:
        """Check the file exists, has a supported extension and fits the size limit."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        extension = path.suffix.lower().lstrip(".")
        if extension not in self.limits.supported_file_types:
            raise CsvValidationError(
                f"Unsupported file type '.{extension}'. "
                f"Supported: {', '.join(self.limits.supported_file_types)}",
                error_code="IMPORT_002",
            )

        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb > self.limits.max_file_size_mb:
            raise CsvValidationError(
                f"File is {size_mb:.1f}MB, limit is {self.limits.max_file_size_mb}MB",
                error_code="IMPORT_004",
            )
        return path

    def validate_headers(self, headers: list[str]) -> None:
        cleaned_headers = {h.strip().lower() for h in headers}
        missing = [h for h in self.REQUIRED_HEADERS if h.lower() not in cleaned_headers]
        if missing:
            raise CsvValidationError(
                f"Missing required columns: {', '.join(missing)}. "
                f"Optional columns are: {', '.join(self.OPTIONAL_HEADERS)}",
                missing_headers=missing,
            )

    # ==================== Parsing ====================

    def parse_decimal(self, value: str, row_num: int, field_name: str) -> tuple[Decimal | None, str | None]:
        """Parse an optional decimal; blanks are None, garbage is None with a warning."""
        if value is None or str(value).strip() == "":
            return None, None
        try:
            cleaned = str(value).strip().replace("$", "").replace(",", "").replace(" ", "")
            parsed = Decimal(cleaned)
        except InvalidOperation:
            parsed = None
        if parsed is None or not parsed.is_finite():
            return None, f"Row {row_num}: Invalid {field_name} value '{value}', ignored"
        return parsed, None

    def parse_int(self, value: str, row_num: int, field_name: str) -> tuple[int | None, str | None]:
        if value is None or str(value).strip() == "":
            return None, None
        try:
            parsed = Decimal(str(value).strip().replace(",", ""))
        except InvalidOperation:
            parsed = None
        if parsed is None or not parsed.is_finite():
            return None, f"Row {row_num}: Invalid {field_name} value '{value}', ignored"
        return int(parsed), None

    def parse_row(self, row: dict[str, str], row_number: int) -> CsvRow:
        # Header matching is case-insensitive
        values = {str(k).strip().lower(): ("" if v is None else str(v).strip()) for k, v in row.items()}
        warnings: list[str] = []
        errors: list[str] = []

        asin = normalize_asin(values.get("asin", ""))
        if not asin:
            errors.append(f"Row {row_number}: ASIN is required")
        elif not is_valid_asin(asin):
            errors.append(f"Row {row_number}: Invalid ASIN '{asin}'")

        cost, err = self.parse_decimal(values.get("cost", ""), row_number, "Cost")
        if err:
            warnings.append(err)
        if cost is not None and cost <= 0:
            warnings.append(f"Row {row_number}: Cost must be positive, ignored")
            cost = None

        rating, err = self.parse_decimal(values.get("rating", ""), row_number, "Rating")
        if err:
            warnings.append(err)
        if rating is not None and not Decimal("0") <= rating <= Decimal("5"):
            warnings.append(f"Row {row_number}: Rating {rating} outside 0-5, ignored")
            rating = None

        reviews, err = self.parse_int(values.get("reviews", ""), row_number, "Reviews")
        if err:
            warnings.append(err)

        return CsvRow(
            row_number=row_number,
            asin=asin,
            title=values.get("title", ""),
            description=values.get("description", ""),
            brand=values.get("brand", ""),
            category=values.get("category", ""),
            image_url=values.get("imageurl", ""),
            cost=cost,
            rating=rating,
            review_count=reviews,
            is_prime=values.get("prime", "").lower() in TRUE_VALUES,
            errors=errors,
            warnings=warnings,
        )

    def _read_rows(self, path: Path) -> list[dict[str, str]]:
        """Rows of the file as header -> cell dicts."""
        extension = path.suffix.lower().lstrip(".")
        try:
            if extension == "txt":
                asins, _ = self.parse_pasted_text(path.read_text(encoding="utf-8-sig"))
                return [{"ASIN": asin} for asin in asins]

            if extension == "json":
                data = json.loads(path.read_text(encoding="utf-8-sig"))
                if isinstance(data, dict):
                    data = data.get("products", [])
                if not isinstance(data, list):
                    raise CsvValidationError("JSON file must contain a list of products")
                rows = [{str(k): v for k, v in item.items()} for item in data if isinstance(item, dict)]
                if rows:
                    self.validate_headers(list(rows[0].keys()))
                return rows

            if extension == "xlsx":
                frame = pd.read_excel(path, dtype=str, engine="openpyxl").fillna("")
                self.validate_headers([str(c) for c in frame.columns])
                return frame.to_dict(orient="records")

            with open(path, newline="", encoding="utf-8-sig") as f:
                reader = csv.DictReader(f)
                if reader.fieldnames is None:
                    raise CsvValidationError("CSV file is empty or has no headers")
                self.validate_headers(list(reader.fieldnames))
                return list(reader)
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            raise CsvValidationError(f"Could not parse {path.name}: {e}") from e

    def preview(self, file_path: str | Path, max_rows: int = 10) -> tuple[list[CsvRow], list[str]]:
        """Parse the first rows of a file.

        Returns tuple of (rows, validation_errors).
        """
        path = self.validate_file(file_path)
        try:
            raw_rows = self._read_rows(path)
        except CsvValidationError as e:
            return [], [str(e)]

        rows: list[CsvRow] = []
        validation_errors: list[str] = []
        for i, row in enumerate(raw_rows[:max_rows], start=2):  # Row 1 is the header
            parsed = self.parse_row(row, i)
            rows.append(parsed)
            validation_errors.extend(parsed.errors)
        return rows, validation_errors

    def import_file(self, file_path: str | Path) -> tuple[list[Product], ImportResult]:
        """Import a catalog file as priced, pending products.

        Returns tuple of (products, import_result).
        """
        self.batch_id = str(uuid.uuid4())[:8]
        result = ImportResult(batch_id=self.batch_id)

        try:
            path = self.validate_file(file_path)
            raw_rows = self._read_rows(path)
        except CsvValidationError as e:
            result.error_code = e.error_code
            result.errors.append(str(e))
            return [], result

        return self._build_products(raw_rows, result)

    def import_items(self, items: list[Any]) -> tuple[list[Product], ImportResult]:
        """Import rows posted as objects keyed like the file columns."""
        self.batch_id = str(uuid.uuid4())[:8]
        result = ImportResult(batch_id=self.batch_id)

        raw_rows = [
            {str(k): v for k, v in item.items()}
            for item in items
            if isinstance(item, dict)
        ]
        try:
            if not raw_rows:
                raise CsvValidationError("No product rows to import", error_code="IMPORT_005")
            self.validate_headers(list(raw_rows[0].keys()))
        except CsvValidationError as e:
            result.error_code = e.error_code
            result.errors.append(str(e))
            return [], result

        return self._build_products(raw_rows, result)

    def _build_products(
        self, raw_rows: list[dict[str, Any]], result: ImportResult
    ) -> tuple[list[Product], ImportResult]:
        products: list[Product] = []
        if len(raw_rows) > self.limits.max_products:
            result.warnings.append(
                f"File has {len(raw_rows)} rows; only the first {self.limits.max_products} were imported"
            )
            raw_rows = raw_rows[: self.limits.max_products]

        now = datetime.now()
        seen: set[str] = set()
        for row_num, row in enumerate(raw_rows, start=2):
            parsed = self.parse_row(row, row_num)
            if parsed.errors:
                result.errors.extend(parsed.errors)
                result.items_skipped += 1
                continue
            if parsed.asin in seen:
                result.warnings.append(f"Row {row_num}: Duplicate ASIN {parsed.asin} skipped")
                result.items_skipped += 1
                continue
            seen.add(parsed.asin)
            result.warnings.extend(parsed.warnings)

            product = Product(
                asin=parsed.asin,
                title=parsed.title,
                description=parsed.description,
                brand=parsed.brand,
                category=parsed.category or "Uncategorized",
                image_url=parsed.image_url,
                amazon_price=parsed.cost,
                rating=parsed.rating,
                review_count=parsed.review_count,
                is_prime=parsed.is_prime,
                status=ProductStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            products.append(self.engine.price_product(product, now=now))
            result.items_imported += 1

        if not products:
            result.error_code = "IMPORT_005"
        elif result.items_skipped:
            result.error_code = "IMPORT_006"
        result.success = bool(products)

        logger.info(
            f"Import {self.batch_id}: {result.items_imported} imported, "
            f"{result.items_skipped} skipped"
        )
        return products, result

    def parse_pasted_text(self, text: str) -> tuple[list[str], ImportResult]:
        """Extract ASINs from pasted text, one ASIN or Amazon URL per line."""
        result = ImportResult(batch_id=str(uuid.uuid4())[:8])
        asins: list[str] = []
        seen: set[str] = set()

        lines = [line for line in (text or "").splitlines() if line.strip()]
        for line_num, line in enumerate(lines, start=1):
            match = DP_URL_PATTERN.search(line) or BARE_ASIN_PATTERN.match(line)
            candidate = normalize_asin(match.group(1)) if match else ""
            if not is_valid_asin(candidate):
                result.warnings.append(f"Line {line_num}: no ASIN found in '{line.strip()[:60]}'")
                result.items_skipped += 1
                continue
            if candidate in seen:
                continue
            seen.add(candidate)
            asins.append(candidate)

        if len(asins) > self.limits.max_paste_items:
            result.error_code = "IMPORT_011"
            result.errors.append(
                f"{len(asins)} items pasted; the limit is {self.limits.max_paste_items}"
            )
            return [], result

        if not asins:
            result.error_code = "IMPORT_010"
            result.errors.append("No ASINs or Amazon URLs found")
            return [], result

        result.success = True
        result.items_imported = len(asins)
        return asins, result

    def get_required_headers(self) -> list[str]:
        return self.REQUIRED_HEADERS.copy()

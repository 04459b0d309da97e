"""Error code registry and application exceptions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ErrorDefinition:
    """User-facing description of an error code."""

    code: str
    message: str
    details: str
    suggestion: str
    severity: ErrorSeverity
    blocking: bool

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


_C = ErrorSeverity.CRITICAL
_E = ErrorSeverity.ERROR
_W = ErrorSeverity.WARNING
_I = ErrorSeverity.INFO

# (code, message, details, suggestion, severity, blocking)
_DEFINITIONS = [
    # Database
    ("DB_001", "Database connection failed",
     "Could not open the database. The file may be missing or locked.",
     "Check the data directory permissions and that no other process holds the database.", _C, True),
    ("DB_002", "Database query timeout",
     "The database query took too long and was cancelled.",
     "Try filtering for fewer results or contact support if this persists.", _E, True),
    ("DB_003", "Database write failed",
     "Could not save data to the database.",
     "Check for duplicate entries or invalid data formats.", _E, True),
    ("DB_004", "Database constraint violation",
     "Data violates database rules (e.g. a duplicate ASIN).",
     "Check pricing rules compliance or update the existing record.", _E, True),
    ("DB_005", "Database schema mismatch",
     "Code expects columns that do not exist in the database.",
     "Run database migrations to update schema.", _C, True),
    ("DB_006", "Database access denied",
     "The database refused the operation.",
     "Check file permissions on the data directory.", _E, True),
    # Configuration
    ("CONFIG_001", "Pricing rules not loaded",
     "The pricing rules could not be loaded or failed validation at startup.",
     "Check settings.json and the DSD_ environment variables.", _C, True),
    ("CONFIG_002", "Invalid multiplier values",
     "Markup or competitor multipliers are outside their allowed range.",
     "Check markup.percent and the competitor multipliers in the pricing rules.", _C, True),
    ("CONFIG_003", "Invalid profit thresholds",
     "Profit thresholds must be percentages.",
     "Ensure profit_thresholds values are between 0-100.", _C, True),
    # Shopify
    ("SHOP_001", "Shopify store not connected",
     "No Shopify store domain or access token is configured.",
     "Set DSD_SHOPIFY_STORE_DOMAIN and DSD_SHOPIFY_ACCESS_TOKEN.", _W, False),
    ("SHOP_002", "Shopify API rate limited",
     "Shopify returned HTTP 429.",
     "Wait 60 seconds and retry. Use queue for bulk operations.", _W, False),
    ("SHOP_003", "Shopify authentication failed",
     "Shopify rejected the access token.",
     "Generate new access token in Shopify Admin > Apps > Develop apps.", _E, True),
    ("SHOP_004", "Shopify sync partial failure",
     "Some products failed to sync to Shopify.",
     "Review failed products and fix data issues.", _W, False),
    ("SHOP_005", "Shopify store not found",
     "The configured store domain did not resolve to a Shopify store.",
     "Verify store domain format: mystore.myshopify.com", _E, True),
    # Discovery
    ("DISC_001", "Discovery API not configured",
     "No product search API key is configured.",
     "Add an API key or run with mock mode for testing.", _W, False),
    ("DISC_002", "Discovery API key invalid",
     "The product search API rejected the key.",
     "Verify the key and update it in settings.", _E, True),
    ("DISC_003", "Discovery API quota exceeded",
     "The product search API quota is used up.",
     "Purchase more credits or wait for quota reset.", _E, True),
    ("DISC_004", "Discovery API temporarily unavailable",
     "The product search API did not respond.",
     "Wait and retry.", _W, False),
    # Keepa
    ("KEEPA_001", "Keepa API not configured",
     "No Keepa API key is configured.",
     "Add API key in settings. Historical data features will be unavailable.", _W, False),
    ("KEEPA_002", "Keepa API key invalid",
     "Keepa rejected the API key.",
     "Verify key at keepa.com and update it in settings.", _E, True),
    ("KEEPA_003", "Keepa token balance low",
     "Not enough Keepa tokens remain for this request.",
     "Purchase more tokens at keepa.com or reduce product count.", _W, False),
    ("KEEPA_004", "Keepa API rate limited",
     "Keepa returned HTTP 429.",
     "Operation will continue at reduced speed.", _W, False),
    # Import
    ("IMPORT_001", "File upload failed",
     "The uploaded file could not be read.",
     "Check file size (max 50MB) and try again.", _E, True),
    ("IMPORT_002", "File type not supported",
     "Only csv, json, xlsx and txt files are accepted.",
     "Convert your file to a supported format.", _E, True),
    ("IMPORT_003", "Failed to parse file",
     "The file contents could not be parsed.",
     "Check file formatting. Download template for correct format.", _E, True),
    ("IMPORT_004", "File too large",
     "The file exceeds the maximum upload size.",
     "Split file into smaller batches.", _E, True),
    ("IMPORT_005", "No valid products found",
     "No row contained a valid ASIN.",
     "Ensure file contains ASINs or Amazon URLs. Download template for format.", _E, True),
    ("IMPORT_006", "Partial parse success",
     "Some rows were skipped because they were invalid.",
     "Continue with valid items or fix the invalid entries.", _W, False),
    ("IMPORT_010", "Failed to parse pasted text",
     "No ASIN or Amazon URL was found in the pasted text.",
     "Paste one ASIN or Amazon URL per line.", _E, True),
    ("IMPORT_011", "Too many items pasted",
     "The pasted list exceeds the maximum item count.",
     "Use the file upload option for lists larger than 10,000 items.", _E, True),
    ("IMPORT_012", "Invalid format detected",
     "A line did not look like an ASIN or an Amazon URL.",
     'ASINs should be 10 characters starting with "B". URLs should be amazon.com/dp/ASIN format.',
     _E, True),
    ("IMPORT_020", "Failed to parse prompt",
     "The search prompt could not be understood.",
     'Try a clearer prompt like: "beauty products priced $5-20 with 500+ reviews"', _E, True),
    ("IMPORT_030", "No data points selected",
     "At least one data point must be selected for an import.",
     'Check at least "Current Price" to proceed.', _E, True),
    ("IMPORT_040", "Cost estimation failed",
     "The API cost of this import could not be estimated.",
     "Actual costs may vary. Proceed with caution.", _W, False),
    ("IMPORT_041", "Estimated cost exceeds limit",
     "The estimated API cost is above the configured limit.",
     "Reduce product count or increase the cost limit in settings.", _W, False),
    ("IMPORT_050", "Import job failed to start",
     "The import could not be started.",
     "Check database connection and try again.", _E, True),
    ("IMPORT_051", "Import job failed mid-process",
     "The import stopped before all rows were processed.",
     "Partial results saved. You can retry failed items or start over.", _E, True),
    ("IMPORT_052", "Import completed with errors",
     "Some rows failed to import.",
     "Review the error list to see why items failed.", _W, False),
    ("IMPORT_053", "Background job lost",
     "The import job is no longer tracked.",
     "Check the product list before starting a duplicate import.", _W, False),
    # Shopify queue
    ("QUEUE_001", "Failed to load queue status",
     "The sync queue could not be read.",
     "Check database connection. Queue may still be processing.", _W, False),
    ("QUEUE_002", "Queue processor not running",
     "No queue run has happened recently.",
     "Trigger queue processing manually.", _W, False),
    ("QUEUE_003", "Queue stuck",
     "Items have been processing for too long.",
     "Reset stuck items to retry.", _W, False),
    ("QUEUE_010", "Failed to add to queue",
     "Products could not be added to the sync queue.",
     "Check if products already exist in queue. Duplicates are not allowed.", _E, True),
    ("QUEUE_011", "Queue processing failed",
     "One or more queued items failed to sync.",
     "View error details for each item. Common cause: Shopify API issues.", _E, False),
    ("QUEUE_012", "Queue paused unexpectedly",
     "Queue processing stopped before the batch finished.",
     "Review recent errors, fix issues, and resume queue.", _W, False),
    ("QUEUE_013", "Shopify rate limit hit",
     "Queue processing hit the Shopify rate limit.",
     "Queue will resume on the next run. No action needed unless urgent.", _W, False),
    # Pricing
    ("PRICE_CALC_001", "List price calculation failed",
     "The retail price could not be computed from the cost.",
     "Ensure cost price is a positive number.", _E, True),
    ("PRICE_CALC_002", "Competitor price calculation failed",
     "Competitor display prices need a retail price.",
     "Ensure list price is set before calculating competitors.", _E, True),
    ("PRICE_CALC_003", "Competitor minimum not met",
     "A competitor price is below the minimum markup.",
     "Check if this is expected behavior.", _W, False),
    ("PRICE_CALC_004", "Profit calculation failed",
     "Profit could not be computed from the stored prices.",
     "Check for zero or negative values in pricing data.", _E, True),
    ("PRICE_CALC_005", "Manual price override applied",
     "A retail price was set by hand instead of by the markup rules.",
     "No action needed - this is informational.", _I, False),
    # Products
    ("PROD_001", "Failed to load products",
     "The product list could not be read.",
     "Check the database and try again.", _E, True),
    ("PROD_002", "Failed to save product",
     "The product could not be saved.",
     "Check for validation errors and try again.", _E, True),
    ("PROD_003", "Failed to delete product",
     "The product could not be deleted.",
     "Product may be in use elsewhere. Check Shopify queue.", _E, True),
    ("PROD_004", "Product not found",
     "No product exists with the given id.",
     "Product may have been deleted. Refresh the page.", _E, True),
    # Validation
    ("VALID_001", "Required field missing",
     "A required field was not provided.",
     "Fill in all required fields.", _E, True),
    ("VALID_002", "Invalid data type",
     "A field has the wrong type.",
     "Check input format.", _E, True),
    ("VALID_003", "Value out of range",
     "A value is outside its allowed range.",
     "Adjust to be within range.", _E, True),
    ("VALID_004", "Pricing rules violated",
     "The requested prices break the pricing rules.",
     "Adjust prices or clear the manual override.", _E, True),
    ("VALID_005", "Duplicate detected",
     "A product with this ASIN already exists.",
     "Update existing product or remove duplicate.", _W, False),
    ("VALID_006", "Invalid ASIN",
     "ASINs are 10 characters: B followed by 9 letters or digits.",
     "Check the ASIN on the Amazon product page.", _E, True),
    ("VALID_007", "Too many items",
     "The request exceeds the maximum number of items per operation.",
     "Split the request into smaller batches.", _E, True),
    ("VALID_008", "Unsupported bulk operation",
     "The bulk operation is not one of pause, unpause, delete, refresh or sync.",
     "Use a supported operation.", _E, True),
    # Fallback
    ("UNKNOWN", "An unknown error occurred",
     "An unexpected error occurred.",
     "Try again. If the issue persists, contact support.", _E, True),
]

ERROR_CODES: dict[str, ErrorDefinition] = {
    row[0]: ErrorDefinition(*row) for row in _DEFINITIONS
}


def get_error_definition(code: str) -> ErrorDefinition:
    """Get the definition for a code, falling back to UNKNOWN."""
    return ERROR_CODES.get(code, ERROR_CODES["UNKNOWN"])


def create_error_response(code: str, additional_details: str | None = None) -> dict[str, Any]:
    """Build the error body returned by the API."""
    definition = get_error_definition(code)
    if additional_details:
        definition = replace(definition, details=f"{definition.details} {additional_details}")
    return definition.to_dict()


def is_valid_error_code(code: str) -> bool:
    return code in ERROR_CODES


def get_error_codes_for_category(prefix: str) -> list[ErrorDefinition]:
    """All definitions whose code starts with the prefix, e.g. 'DB'."""
    return [d for d in ERROR_CODES.values() if d.code.startswith(prefix)]


def get_blocking_errors() -> list[ErrorDefinition]:
    return [d for d in ERROR_CODES.values() if d.blocking]


def get_errors_by_severity(severity: ErrorSeverity | str) -> list[ErrorDefinition]:
    severity = ErrorSeverity(severity)
    return [d for d in ERROR_CODES.values() if d.severity == severity]


# ==================== Exceptions ====================


class AppError(Exception):
    """Error carrying a registry code, mapped to an HTTP response by the web layer."""

    http_status = 500

    def __init__(
        self,
        code: str,
        details: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.code = code
        self.definition = get_error_definition(code)
        self.details = details
        self.suggestion = suggestion
        super().__init__(details or self.definition.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.definition.code,
            "message": self.definition.message,
            "details": self.details or self.definition.details,
            "suggestion": self.suggestion or self.definition.suggestion,
        }


class ValidationError(AppError):
    """Missing or malformed input."""

    http_status = 400


class ConflictError(AppError):
    http_status = 409


class NotFoundError(AppError):
    http_status = 404


class DependencyError(AppError):
    """Datastore or vendor API failure; details carry the dependency's message."""

    http_status = 502


class ConfigurationError(AppError):
    """Startup-time configuration invariant violated."""

    http_status = 500

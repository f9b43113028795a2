"""
Row validation for staged catalog rows.

Every check runs; errors are collected rather than short-circuited so an
operator sees everything wrong with a row at once. Category references
are resolved in both directions (id -> name, name -> id).
"""

from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID
import structlog

from models.product import Unit, CategoryResponse
from parsers.excel_parser import RawRow
from services.category_service import CategoryService
from services.product_service import ProductService

logger = structlog.get_logger(__name__)


MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_PRICE = 1_000_000
MAX_STOCK = 1_000_000
MAX_IMAGES = 10

_MISSING = object()


@dataclass
class RowValidationResult:
    """
    Validation outcome for one row.

    normalized holds the cleaned values (trimmed text, numbers coerced,
    unit lowercased, category resolved). Values that could not be
    coerced are None.
    """
    normalized: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def is_valid_uuid(value: Any) -> bool:
    """True if value is a syntactically valid UUID string."""
    try:
        UUID(str(value))
        return True
    except (ValueError, TypeError, AttributeError):
        return False


def to_number(value: Any) -> Any:
    """
    Coerce a cell to float.

    Returns None for empty cells and _MISSING for values that are not
    numbers. Thousands separators in text ("1,200") are accepted.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return None
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return _MISSING
    if number != number or number in (float("inf"), float("-inf")):
        return _MISSING
    return number


class RowValidationService:
    """
    Validates raw spreadsheet rows and staged rows on re-validation.
    """

    def __init__(self):
        self.categories = CategoryService()
        self.products = ProductService()

    def validate(
        self,
        raw: RawRow,
        supplier_id: str,
        category_cache: Optional[dict] = None
    ) -> RowValidationResult:
        """
        Validate one row.

        Args:
            raw: Row values as read (or as edited)
            supplier_id: Supplier the row is staged for
            category_cache: Optional per-batch cache of category lookups

        Returns:
            RowValidationResult with normalized values and all errors
        """
        result = RowValidationResult()
        cache = category_cache if category_cache is not None else {}

        self._check_name(raw, result)
        self._check_description(raw, result)
        self._check_price(raw, result)
        self._check_gst(raw, result)
        self._check_stock(raw, result)
        self._check_unit(raw, result)
        self._check_category(raw, result, cache)
        self._check_images(raw, result)
        self._check_identifier(raw, supplier_id, result)

        if result.errors:
            logger.debug(
                "row_validation_failed",
                row_index=raw.row_index,
                errors=result.errors
            )

        return result

    # ===================
    # FIELD CHECKS
    # ===================

    def _check_name(self, raw: RawRow, result: RowValidationResult) -> None:
        name = (raw.name or "").strip()
        result.normalized["name"] = name
        if not name:
            result.errors.append("Product name is required")
        elif len(name) > MAX_NAME_LENGTH:
            result.errors.append("Product name must be less than 100 characters")

    def _check_description(self, raw: RawRow, result: RowValidationResult) -> None:
        description = (raw.description or "").strip()
        result.normalized["description"] = description
        if len(description) > MAX_DESCRIPTION_LENGTH:
            result.errors.append("Description must be less than 1000 characters")

    def _check_price(self, raw: RawRow, result: RowValidationResult) -> None:
        price = to_number(raw.price)
        result.normalized["price"] = None

        if price is None:
            result.errors.append("Price is required")
        elif price is _MISSING:
            result.errors.append("Price must be a number")
        else:
            result.normalized["price"] = price
            if price <= 0:
                result.errors.append("Price must be greater than 0")
            elif price > MAX_PRICE:
                result.errors.append("Price cannot exceed 1,000,000")

        discounted = to_number(raw.discounted_price)
        result.normalized["discounted_price"] = None
        if discounted is _MISSING:
            result.errors.append("Discounted price must be a number")
        elif discounted is not None:
            result.normalized["discounted_price"] = discounted
            if price not in (None, _MISSING) and discounted > price:
                result.errors.append("Discounted price cannot be greater than regular price")

    def _check_gst(self, raw: RawRow, result: RowValidationResult) -> None:
        gst = to_number(raw.gst)
        if gst is None:
            result.normalized["gst"] = 0.0
        elif gst is _MISSING:
            result.normalized["gst"] = None
            result.errors.append("GST must be a number")
        else:
            result.normalized["gst"] = gst
            if gst < 0 or gst > 100:
                result.errors.append("GST must be between 0 and 100")

    def _check_stock(self, raw: RawRow, result: RowValidationResult) -> None:
        stock = to_number(raw.stock_quantity)
        result.normalized["stock_quantity"] = None

        if stock is None:
            result.errors.append("Stock quantity is required")
            return
        if stock is _MISSING:
            result.errors.append("Stock quantity must be a number")
            return

        result.normalized["stock_quantity"] = stock
        if not stock.is_integer():
            result.errors.append("Stock quantity must be a whole number")
        if stock < 0:
            result.errors.append("Stock quantity cannot be negative")
        elif stock > MAX_STOCK:
            result.errors.append("Stock quantity cannot exceed 1,000,000")

    def _check_unit(self, raw: RawRow, result: RowValidationResult) -> None:
        unit = (raw.unit or "").strip().lower()
        result.normalized["unit"] = unit or None
        if not unit:
            result.errors.append("Unit is required")
        elif unit not in Unit.values():
            result.errors.append("Unit must be one of: " + ", ".join(Unit.values()))

    def _check_category(
        self,
        raw: RawRow,
        result: RowValidationResult,
        cache: dict
    ) -> None:
        category_id = (raw.category_id or "").strip() or None
        category_name = (raw.category_name or "").strip() or None
        result.normalized["category_id"] = category_id
        result.normalized["category_name"] = category_name

        if not category_id and not category_name:
            result.errors.append("Either categoryId or categoryName is required")
            return

        if category_id:
            if not is_valid_uuid(category_id):
                result.errors.append("Invalid category ID format")
                return

            category = self._lookup(cache, "id", category_id)
            if category is None:
                result.errors.append(f"Category ID '{category_id}' not found")
                return

            if category_name and category_name.casefold() != category.name.casefold():
                result.errors.append(
                    f"Category name '{category_name}' does not match category ID '{category_id}'"
                )
                return

        else:
            category = self._lookup(cache, "name", category_name)
            if category is None:
                result.errors.append(f"Category '{category_name}' not found")
                return

        result.normalized["category_id"] = category.id
        result.normalized["category_name"] = category.name

    def _check_images(self, raw: RawRow, result: RowValidationResult) -> None:
        if len(raw.images) > MAX_IMAGES:
            result.errors.append("Maximum 10 images allowed per product")

    def _check_identifier(
        self,
        raw: RawRow,
        supplier_id: str,
        result: RowValidationResult
    ) -> None:
        identifier = (raw.identifier or "").strip() or None
        # Kept even when unresolved so re-validation reports it again
        result.normalized["original_product_id"] = identifier
        result.normalized["is_update"] = False

        if not identifier:
            return

        if not is_valid_uuid(identifier):
            result.errors.append("Invalid product ID format")
            return

        product = self.products.find_owned(identifier, supplier_id)
        if product is None:
            result.errors.append(
                f"Product with ID {identifier} not found or doesn't belong to this supplier"
            )
            return

        result.normalized["is_update"] = True

    # ===================
    # HELPERS
    # ===================

    def _lookup(self, cache: dict, kind: str, value: str) -> Optional[CategoryResponse]:
        key = (kind, value.casefold())
        if key not in cache:
            if kind == "id":
                cache[key] = self.categories.find_by_id(value)
            else:
                cache[key] = self.categories.find_by_name(value)
        return cache[key]


# Singleton instance for convenience
_validation_service: Optional[RowValidationService] = None


def get_validation_service() -> RowValidationService:
    """Get or create RowValidationService instance."""
    global _validation_service
    if _validation_service is None:
        _validation_service = RowValidationService()
    return _validation_service

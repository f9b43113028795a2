"""
Catalog template generation.

Builds the spreadsheet suppliers fill in for bulk upload. The header row
uses the same canonical names the parser maps, so a downloaded template
always uploads cleanly.
"""

from io import BytesIO
from typing import Optional
import structlog

from openpyxl import Workbook
from openpyxl.comments import Comment
from openpyxl.styles import Font, Alignment, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from config import settings
from models.product import Unit
from models.preview import TemplateMode
from parsers.excel_parser import CANONICAL_HEADERS
from services.category_service import CategoryService
from services.product_service import ProductService
from exceptions import InvalidTemplateModeError

logger = structlog.get_logger(__name__)


# Field order of the template columns
TEMPLATE_FIELDS = [
    "identifier",
    "name",
    "description",
    "price",
    "gst",
    "stock_quantity",
    "unit",
    "category_id",
    "category_name",
    "images",
]

COLUMN_WIDTHS = {
    "identifier": 38,
    "name": 30,
    "description": 40,
    "price": 12,
    "gst": 8,
    "stock_quantity": 15,
    "unit": 10,
    "category_id": 38,
    "category_name": 22,
    "images": 50,
}

COLUMN_COMMENTS = {
    "identifier": "Leave empty for new products. Keep the ID to update an existing product.",
    "name": "Required. Up to 100 characters.",
    "price": "Required. Greater than 0.",
    "gst": "GST rate in percent, between 0 and 100.",
    "stock_quantity": "Required. Whole number, 0 or more.",
    "unit": "One of: " + ", ".join(Unit.values()),
    "category_name": "Pick an existing category. Either categoryId or categoryName is required.",
    "images": "Image URLs separated by commas. The first one is the main image.",
}

INSTRUCTIONS = [
    "Instructions:",
    "1. Fill one product per row below the header. Do not rename the header row.",
    "2. name, price, stockQuantity, unit and a category are required.",
    "3. Leave _id empty to create a product; keep it to update that product.",
    "4. unit must be one of: " + ", ".join(Unit.values()) + ".",
    "5. images takes image URLs separated by commas.",
    "6. Rows like these instruction lines are ignored on upload.",
]

CATEGORY_SHEET = "Categories"


def template_filename(mode: str, supplier_id: str) -> str:
    """Download filename for a template."""
    return f"{mode}-products-template-{supplier_id}.xlsx"


class TemplateService:
    """Service for generating catalog upload templates."""

    def __init__(self):
        self.categories = CategoryService()
        self.products = ProductService()

    def generate(self, mode: str, supplier_id: str) -> BytesIO:
        """
        Generate a catalog template.

        Args:
            mode: "new" for an empty template, "old" to pre-fill the
                supplier's current products
            supplier_id: Supplier UUID

        Returns:
            BytesIO containing the Excel file

        Raises:
            InvalidTemplateModeError: If mode is not "new" or "old"
        """
        try:
            template_mode = TemplateMode(mode)
        except ValueError:
            raise InvalidTemplateModeError(mode)

        logger.info("generating_template", mode=template_mode.value, supplier_id=supplier_id)

        categories = self.categories.list_active()
        category_names = {c.id: c.name for c in categories}

        wb = Workbook()
        ws = wb.active
        ws.title = "Products"

        # Styles
        header_font = Font(bold=True)
        header_fill = PatternFill(start_color="D9D9D9", end_color="D9D9D9", fill_type="solid")
        instruction_font = Font(italic=True, color="666666")

        # Header row
        for col, field_name in enumerate(TEMPLATE_FIELDS, start=1):
            cell = ws.cell(row=1, column=col, value=CANONICAL_HEADERS[field_name])
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

            if field_name in COLUMN_COMMENTS:
                cell.comment = Comment(COLUMN_COMMENTS[field_name], "Catalog")

            ws.column_dimensions[get_column_letter(col)].width = COLUMN_WIDTHS[field_name]

        ws.freeze_panes = "A2"

        self._add_constraints(wb, ws, [c.name for c in categories])

        # Product rows (old mode)
        row = 2
        product_count = 0
        if template_mode == TemplateMode.OLD:
            for product in self.products.list_by_supplier(supplier_id):
                values = {
                    "identifier": product.id,
                    "name": product.name,
                    "description": product.description or "",
                    "price": product.price,
                    "gst": product.gst,
                    "stock_quantity": product.stock_quantity,
                    "unit": product.unit.value,
                    "category_id": product.category_id or "",
                    "category_name": category_names.get(product.category_id, ""),
                    "images": ", ".join(img.url for img in product.images),
                }
                for col, field_name in enumerate(TEMPLATE_FIELDS, start=1):
                    ws.cell(row=row, column=col, value=values[field_name])
                row += 1
                product_count += 1

        # Empty row, then instructions in the identifier column
        row += 1
        for line in INSTRUCTIONS:
            cell = ws.cell(row=row, column=1, value=line)
            cell.font = instruction_font
            row += 1

        logger.info(
            "template_generated",
            mode=template_mode.value,
            supplier_id=supplier_id,
            product_count=product_count,
            category_count=len(categories)
        )

        # Save to BytesIO
        output = BytesIO()
        wb.save(output)
        output.seek(0)

        return output

    def _add_constraints(self, wb: Workbook, ws, category_names: list[str]) -> None:
        """Attach unit, gst and category constraints to the data rows."""
        last_row = settings.template_validation_rows

        def column_range(field_name: str) -> str:
            letter = get_column_letter(TEMPLATE_FIELDS.index(field_name) + 1)
            return f"{letter}2:{letter}{last_row}"

        unit_validation = DataValidation(
            type="list",
            formula1='"' + ",".join(Unit.values()) + '"',
            allow_blank=True,
            showErrorMessage=True,
            errorTitle="Invalid unit",
            error="Unit must be one of: " + ", ".join(Unit.values()),
        )
        unit_validation.add(column_range("unit"))
        ws.add_data_validation(unit_validation)

        gst_validation = DataValidation(
            type="decimal",
            operator="between",
            formula1="0",
            formula2="100",
            allow_blank=True,
            showErrorMessage=True,
            errorTitle="Invalid GST",
            error="GST must be between 0 and 100",
        )
        gst_validation.add(column_range("gst"))
        ws.add_data_validation(gst_validation)

        if not category_names:
            return

        # Names live on a hidden sheet; inline list formulas cap at 255 chars
        lists = wb.create_sheet(CATEGORY_SHEET)
        for idx, name in enumerate(category_names, start=1):
            lists.cell(row=idx, column=1, value=name)
        lists.sheet_state = "hidden"

        category_validation = DataValidation(
            type="list",
            formula1=f"{CATEGORY_SHEET}!$A$1:$A${len(category_names)}",
            allow_blank=True,
            showErrorMessage=True,
            errorTitle="Invalid category",
            error="Pick a category from the list",
        )
        category_validation.add(column_range("category_name"))
        ws.add_data_validation(category_validation)


# Singleton instance
_template_service: Optional[TemplateService] = None


def get_template_service() -> TemplateService:
    """Get or create TemplateService instance."""
    global _template_service
    if _template_service is None:
        _template_service = TemplateService()
    return _template_service

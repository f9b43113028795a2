"""
Unit tests for TemplateService.

Run: pytest tests/unit/test_template_service.py -v
"""

import pytest
from uuid import uuid4
from openpyxl import load_workbook

from services.template_service import TemplateService, TEMPLATE_FIELDS, template_filename
from parsers.excel_parser import parse_catalog_excel, CANONICAL_HEADERS
from exceptions import InvalidTemplateModeError

from tests.factories import ProductFactory, image_entry


def load(output):
    return load_workbook(output)


class TestGenerateNew:
    """Tests for TemplateService.generate('new', ...)"""

    def test_header_row_and_constraints(self, categories, supplier_id):
        # Act
        wb = load(TemplateService().generate("new", supplier_id))
        ws = wb["Products"]

        # Assert
        header = [c.value for c in ws[1]]
        assert header == [CANONICAL_HEADERS[f] for f in TEMPLATE_FIELDS]
        assert wb.sheetnames[0] == "Products"
        assert ws["A1"].font.bold is True

        formulas = {dv.formula1 for dv in ws.data_validations.dataValidation}
        assert '"kg,g,liters,ml,pcs,box,dozen"' in formulas
        assert "0" in formulas
        assert "Categories!$A$1:$A$3" in formulas

        ranges = {str(dv.sqref) for dv in ws.data_validations.dataValidation}
        assert "G2:G1000" in ranges
        assert "E2:E1000" in ranges
        assert "I2:I1000" in ranges

    def test_category_names_on_hidden_sheet(self, categories, supplier_id):
        wb = load(TemplateService().generate("new", supplier_id))
        lists = wb["Categories"]

        assert lists.sheet_state == "hidden"
        assert [row[0].value for row in lists.iter_rows()] == ["Dairy_Products", "Fruits", "Vegetables"]

    def test_no_categories_skips_category_constraint(self, mock_db, supplier_id):
        wb = load(TemplateService().generate("new", supplier_id))

        assert "Categories" not in wb.sheetnames
        assert len(wb["Products"].data_validations.dataValidation) == 2

    def test_new_template_parses_to_no_rows(self, categories, supplier_id):
        """Instruction lines are classified as non-data rows."""
        result = parse_catalog_excel(TemplateService().generate("new", supplier_id).getvalue())

        assert result.rows == []
        assert result.skipped_rows >= 1

    def test_invalid_mode(self, categories, supplier_id):
        with pytest.raises(InvalidTemplateModeError) as exc_info:
            TemplateService().generate("bogus", supplier_id)

        assert exc_info.value.status_code == 422


class TestGenerateOld:
    """Tests for TemplateService.generate('old', ...)"""

    def test_round_trip_identifiers(self, categories, supplier_id, mock_db):
        """k existing products parse back as k rows carrying their ids."""
        # Arrange
        vegetables = categories["Vegetables"]
        products = [
            ProductFactory.create(
                supplier_id=supplier_id,
                category_id=vegetables["id"],
                images=[image_entry(url=f"https://cdn.test/{i}.jpg", is_main=True)],
            )
            for i in range(3)
        ]
        mock_db.seed("products", products)
        mock_db.seed("products", [
            ProductFactory.create(supplier_id=str(uuid4()), category_id=vegetables["id"])
        ])

        # Act
        output = TemplateService().generate("old", supplier_id)
        result = parse_catalog_excel(output.getvalue())

        # Assert
        assert len(result.rows) == 3
        assert {r.identifier for r in result.rows} == {p["id"] for p in products}
        assert all(r.category_name == "Vegetables" for r in result.rows)
        assert all(len(r.images) == 1 for r in result.rows)

    def test_zero_products_gives_header_only(self, categories, supplier_id):
        result = parse_catalog_excel(TemplateService().generate("old", supplier_id).getvalue())

        assert result.rows == []


def test_template_filename():
    assert template_filename("old", "abc") == "old-products-template-abc.xlsx"

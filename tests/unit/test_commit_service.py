"""
Unit tests for CommitService.

Run: pytest tests/unit/test_commit_service.py -v
"""

import pytest
from unittest.mock import patch
from uuid import uuid4

from services.commit_service import CommitService, clamp_batch_size
from models.preview import CommitResponse

from tests.factories import ProductFactory, StagedRowFactory, image_entry


@pytest.fixture
def vegetables(categories) -> dict:
    return categories["Vegetables"]


def seed_rows(mock_db, supplier_id, category, statuses):
    rows = [
        StagedRowFactory.create(
            supplier_id,
            excel_row_index=i,
            status=status,
            category_id=category["id"],
            category_name=category["name"],
        )
        for i, status in enumerate(statuses, start=1)
    ]
    mock_db.seed("preview_products", rows)
    return rows


class TestCommit:
    """Tests for CommitService.commit()"""

    def test_creates_products_and_deletes_staged_rows(self, mock_db, supplier_id, vegetables):
        # Arrange
        seed_rows(mock_db, supplier_id, vegetables, ["valid", "valid"])

        # Act
        result = CommitService().commit(supplier_id)

        # Assert
        assert (result.created, result.updated, result.skipped, result.failed) == (2, 0, 0, 0)
        assert result.errors == []
        assert mock_db.rows("preview_products") == []
        products = mock_db.rows("products")
        assert len(products) == 2
        assert all(p["supplier_id"] == supplier_id for p in products)
        assert all(p["is_active"] is True for p in products)

    def test_invalid_rows_are_skipped_and_kept(self, mock_db, supplier_id, vegetables):
        seed_rows(mock_db, supplier_id, vegetables, ["valid", "invalid", "valid"])

        result = CommitService().commit(supplier_id, include_invalid=False)

        assert (result.created, result.skipped) == (2, 1)
        remaining = mock_db.rows("preview_products")
        assert [r["excel_row_index"] for r in remaining] == [2]
        assert remaining[0]["status"] == "invalid"

    def test_include_invalid_attempts_every_row(self, mock_db, supplier_id, vegetables):
        seed_rows(mock_db, supplier_id, vegetables, ["valid", "invalid"])

        result = CommitService().commit(supplier_id, include_invalid=True)

        assert result.created == 2
        assert result.skipped == 0

    def test_updates_linked_product(self, mock_db, supplier_id, vegetables):
        product = ProductFactory.create(supplier_id=supplier_id, category_id=vegetables["id"], name="Old", price=5)
        mock_db.seed("products", [product])
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id,
                excel_row_index=1,
                name="Renamed",
                price=8.0,
                discounted_price=6.0,
                category_id=vegetables["id"],
                is_update=True,
                original_product_id=product["id"],
            )
        ])

        result = CommitService().commit(supplier_id)

        assert (result.created, result.updated) == (0, 1)
        stored = mock_db.rows("products")
        assert len(stored) == 1
        assert stored[0]["name"] == "Renamed"
        assert stored[0]["price"] == 8.0
        assert stored[0]["offer_percentage"] == 25.0
        assert stored[0]["has_active_offer"] is True

    def test_update_without_images_keeps_product_images(self, mock_db, supplier_id, vegetables):
        product = ProductFactory.create(
            supplier_id=supplier_id, category_id=vegetables["id"], images=[image_entry(is_main=True)]
        )
        mock_db.seed("products", [product])
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id, excel_row_index=1, category_id=vegetables["id"],
                is_update=True, original_product_id=product["id"],
            )
        ])

        CommitService().commit(supplier_id)

        assert len(mock_db.rows("products")[0]["images"]) == 1

    def test_failed_row_is_kept_with_error(self, mock_db, supplier_id, vegetables):
        """A row whose create fails stays staged as failed."""
        rows = seed_rows(mock_db, supplier_id, vegetables, ["valid", "valid", "valid"])
        mock_db.fail_on(
            "products",
            "insert",
            error=Exception("duplicate key"),
            when=lambda q: q.payload["name"] == rows[1]["name"]
        )

        result = CommitService().commit(supplier_id)

        assert (result.created, result.failed) == (2, 1)
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"Row 2: {rows[1]['name']} - ")
        assert "duplicate key" in result.errors[0]

        remaining = mock_db.rows("preview_products")
        assert len(remaining) == 1
        assert remaining[0]["status"] == "failed"
        assert remaining[0]["validation_errors"]

    def test_update_of_missing_product_fails_row(self, mock_db, supplier_id, vegetables):
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id, excel_row_index=4, name="Ghost", category_id=vegetables["id"],
                is_update=True, original_product_id=str(uuid4()),
            )
        ])

        result = CommitService().commit(supplier_id)

        assert result.failed == 1
        assert result.errors == ["Row 4: Ghost - Product not found"]

    def test_unowned_identifier_never_updates_other_supplier(self, mock_db, supplier_id, vegetables):
        """A forced invalid row keeps another supplier's id but is committed as a new product."""
        # Arrange
        other_supplier = str(uuid4())
        victim = ProductFactory.create(
            supplier_id=other_supplier, category_id=vegetables["id"], name="Victim", price=20
        )
        mock_db.seed("products", [victim])
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id, excel_row_index=1, name="Hijacked", price=1.0,
                status="invalid", category_id=vegetables["id"],
                validation_errors=["Product not found or doesn't belong to this supplier"],
                is_update=False, original_product_id=victim["id"],
            )
        ])

        # Act
        result = CommitService().commit(supplier_id, include_invalid=True)

        # Assert
        assert (result.created, result.updated) == (1, 0)
        stored = {p["id"]: p for p in mock_db.rows("products")}
        assert stored[victim["id"]]["name"] == "Victim"
        assert stored[victim["id"]]["price"] == 20
        assert stored[victim["id"]]["supplier_id"] == other_supplier

    def test_update_is_scoped_to_supplier(self, mock_db, supplier_id, vegetables):
        """Even a row flagged as update cannot write a product it does not own."""
        victim = ProductFactory.create(
            supplier_id=str(uuid4()), category_id=vegetables["id"], name="Victim"
        )
        mock_db.seed("products", [victim])
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id, excel_row_index=3, name="Hijacked", category_id=vegetables["id"],
                is_update=True, original_product_id=victim["id"],
            )
        ])

        result = CommitService().commit(supplier_id)

        assert (result.updated, result.failed) == (0, 1)
        assert result.errors == ["Row 3: Hijacked - Product not found"]
        assert mock_db.rows("products")[0]["name"] == "Victim"

    def test_invalid_included_row_with_bad_data_fails(self, mock_db, supplier_id, vegetables):
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id, excel_row_index=1, name="Carrot", price=None,
                status="invalid", category_id=vegetables["id"],
            )
        ])

        result = CommitService().commit(supplier_id, include_invalid=True)

        assert result.failed == 1
        assert result.errors[0].startswith("Row 1: Carrot - price")
        assert mock_db.rows("preview_products")[0]["status"] == "failed"

    def test_failed_rows_are_retried(self, mock_db, supplier_id, vegetables):
        seed_rows(mock_db, supplier_id, vegetables, ["failed"])

        result = CommitService().commit(supplier_id)

        assert result.created == 1
        assert mock_db.rows("preview_products") == []

    def test_failed_row_that_is_still_invalid_is_skipped(self, mock_db, supplier_id, vegetables):
        """A row forced through while invalid is not retried by a valid-only run."""
        # Arrange
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id, excel_row_index=1, name="Bad offer", price=10.0,
                discounted_price=50.0, status="invalid", category_id=vegetables["id"],
            )
        ])
        mock_db.fail_on("products", "insert", error=Exception("connection reset"))
        first = CommitService().commit(supplier_id, include_invalid=True)
        mock_db.clear_failures()

        # Act
        second = CommitService().commit(supplier_id, include_invalid=False)

        # Assert
        assert first.failed == 1
        assert (second.created, second.skipped, second.failed) == (0, 1, 0)
        assert mock_db.rows("products") == []
        remaining = mock_db.rows("preview_products")
        assert len(remaining) == 1
        assert remaining[0]["status"] == "failed"

    def test_failed_row_is_retried_when_forced(self, mock_db, supplier_id, vegetables):
        mock_db.seed("preview_products", [
            StagedRowFactory.create(
                supplier_id, excel_row_index=1, name="Bad offer", price=10.0,
                discounted_price=50.0, status="failed", category_id=vegetables["id"],
            )
        ])

        result = CommitService().commit(supplier_id, include_invalid=True)

        assert result.skipped == 0
        assert result.created + result.failed == 1

    @pytest.mark.parametrize("statuses, include_invalid", [
        (["valid"] * 25 + ["invalid"] * 7 + ["pending"] * 3, False),
        (["valid"] * 25 + ["invalid"] * 7 + ["pending"] * 3, True),
        (["invalid"] * 12, False),
    ])
    def test_conservation_across_pages(self, mock_db, supplier_id, vegetables, statuses, include_invalid):
        """created + updated + skipped + failed equals rows considered."""
        seed_rows(mock_db, supplier_id, vegetables, statuses)

        result = CommitService().commit(supplier_id, include_invalid=include_invalid, batch_size=10)

        assert result.considered == len(statuses)
        assert not result.aborted

    def test_page_error_aborts_without_rollback(self, mock_db, supplier_id, vegetables):
        """A datastore failure while paging stops the run; earlier pages stay committed."""
        seed_rows(mock_db, supplier_id, vegetables, ["valid"] * 15)
        service = CommitService()
        original_fetch = service.preview.fetch_page
        calls = []

        def flaky_fetch(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                mock_db.fail_on("preview_products", "select")
            return original_fetch(*args, **kwargs)

        with patch.object(service.preview, "fetch_page", side_effect=flaky_fetch):
            result = service.commit(supplier_id, batch_size=10)

        assert result.aborted is True
        assert result.created == 10
        assert result.failed == 0
        assert result.errors[0].startswith("Batch processing error: ")
        assert len(mock_db.rows("products")) == 10
        assert len(mock_db.rows("preview_products")) == 5

    def test_unexpected_page_error_still_returns_result(self, mock_db, supplier_id, vegetables):
        seed_rows(mock_db, supplier_id, vegetables, ["valid"] * 15)
        service = CommitService()
        original_fetch = service.preview.fetch_page
        calls = []

        def broken_fetch(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise RuntimeError("socket closed")
            return original_fetch(*args, **kwargs)

        with patch.object(service.preview, "fetch_page", side_effect=broken_fetch):
            result = service.commit(supplier_id, batch_size=10)

        assert result.aborted is True
        assert result.created == 10
        assert result.errors == ["Batch processing error: socket closed"]

    def test_pauses_between_pages(self, mock_db, supplier_id, vegetables):
        seed_rows(mock_db, supplier_id, vegetables, ["valid"] * 25)

        with patch("services.commit_service.time.sleep") as sleep:
            CommitService().commit(supplier_id, batch_size=10)

        assert sleep.call_count == 3

    def test_require_image_setting_fails_imageless_rows(self, mock_db, supplier_id, vegetables):
        seed_rows(mock_db, supplier_id, vegetables, ["valid"])

        with patch("services.commit_service.settings.require_product_image", True):
            result = CommitService().commit(supplier_id)

        assert result.failed == 1
        assert result.errors[0].endswith("At least one product image is required")


class TestClampBatchSize:

    @pytest.mark.parametrize("requested, expected", [
        (None, 50),
        (1, 10),
        (10, 10),
        (75, 75),
        (500, 200),
    ])
    def test_clamp(self, requested, expected):
        assert clamp_batch_size(requested) == expected


class TestCommitResponse:

    def test_message_reflects_failures(self, mock_db, supplier_id, vegetables):
        mock_db.seed("preview_products", [
            StagedRowFactory.create(supplier_id, excel_row_index=1, price=None,
                                    status="invalid", category_id=vegetables["id"])
        ])

        result = CommitService().commit(supplier_id, include_invalid=True)
        response = CommitResponse.from_result(result)

        assert response.message == "Products processed with some errors"
        assert response.failed_products == result.errors

    def test_message_on_success(self):
        from models.preview import CommitResult

        response = CommitResponse.from_result(CommitResult(created=2))

        assert response.message == "Products processed successfully"

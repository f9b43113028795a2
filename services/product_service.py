"""
Production catalog store.

The products table is the commit target of the catalog upload pipeline.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    build_offer_fields,
)
from exceptions import (
    ProductNotFoundError,
    DatabaseError
)

logger = structlog.get_logger(__name__)

# PostgREST caps a single select at 1000 rows
PAGE_SIZE = 1000


class ProductService:
    """
    Production product persistence.

    Handles create/read/update/soft-delete for supplier products.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "products"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, product_id: str) -> ProductResponse:
        """
        Get a single product by ID.

        Args:
            product_id: Product UUID

        Returns:
            ProductResponse

        Raises:
            ProductNotFoundError: If product doesn't exist
        """
        logger.debug("getting_product", product_id=product_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", product_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "get_product_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ProductNotFoundError(product_id)

        return ProductResponse(**result.data[0])

    def find_owned(self, product_id: str, supplier_id: str) -> Optional[ProductResponse]:
        """
        Get a product only if it belongs to the supplier.

        Args:
            product_id: Product UUID
            supplier_id: Supplier UUID

        Returns:
            ProductResponse or None
        """
        logger.debug("finding_owned_product", product_id=product_id, supplier_id=supplier_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", product_id)
                .eq("supplier_id", supplier_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "find_owned_product_failed",
                product_id=product_id,
                supplier_id=supplier_id,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return ProductResponse(**result.data[0])

    def list_by_supplier(
        self,
        supplier_id: str,
        active_only: bool = True
    ) -> list[ProductResponse]:
        """
        Get every product of a supplier, ordered by name.

        Reads in pages so catalogs above the PostgREST row cap are complete.
        """
        logger.info("listing_supplier_products", supplier_id=supplier_id)

        products: list[ProductResponse] = []
        offset = 0

        try:
            while True:
                query = (
                    self.db.table(self.table)
                    .select("*")
                    .eq("supplier_id", supplier_id)
                )
                if active_only:
                    query = query.eq("is_active", True)

                result = (
                    query.order("name")
                    .range(offset, offset + PAGE_SIZE - 1)
                    .execute()
                )
                products.extend(ProductResponse(**row) for row in result.data)

                if len(result.data) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE

        except Exception as e:
            logger.error(
                "list_supplier_products_failed",
                supplier_id=supplier_id,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        logger.info("supplier_products_listed", supplier_id=supplier_id, count=len(products))
        return products

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: ProductCreate) -> ProductResponse:
        """
        Create a new product.

        Args:
            data: Product creation data

        Returns:
            Created ProductResponse
        """
        logger.info("creating_product", supplier_id=data.supplier_id, name=data.name)

        try:
            insert_data = data.model_dump(mode="json")
            insert_data.update(build_offer_fields(data.price, data.discounted_price))
            insert_data["is_active"] = True

            result = (
                self.db.table(self.table)
                .insert(insert_data)
                .execute()
            )

            product = ProductResponse(**result.data[0])

            logger.info(
                "product_created",
                product_id=product.id,
                name=product.name
            )

            return product

        except Exception as e:
            logger.error(
                "create_product_failed",
                name=data.name,
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

    def update_by_id(
        self,
        product_id: str,
        data: ProductUpdate,
        supplier_id: Optional[str] = None
    ) -> ProductResponse:
        """
        Update an existing product.

        Only provided fields are written. Offer fields are recomputed
        whenever price is written.

        Args:
            product_id: Product UUID
            data: Fields to update
            supplier_id: If given, only a product owned by this supplier is updated

        Returns:
            Updated ProductResponse

        Raises:
            ProductNotFoundError: If no product has this ID (for this supplier)
        """
        logger.info("updating_product", product_id=product_id)

        update_data = data.model_dump(mode="json", exclude_unset=True)
        if not update_data:
            # Nothing to update, return existing
            return self.get_by_id(product_id)

        if "price" in update_data:
            update_data.update(
                build_offer_fields(update_data["price"], update_data.get("discounted_price"))
            )

        try:
            query = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", product_id)
            )
            if supplier_id:
                query = query.eq("supplier_id", supplier_id)
            result = query.execute()
        except Exception as e:
            logger.error(
                "update_product_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            raise ProductNotFoundError(product_id)

        logger.info(
            "product_updated",
            product_id=product_id,
            fields=sorted(update_data.keys())
        )

        return ProductResponse(**result.data[0])

    def delete(self, product_id: str) -> bool:
        """
        Soft delete a product (set is_active=False).

        Raises:
            ProductNotFoundError: If product doesn't exist
        """
        logger.info("deleting_product", product_id=product_id)

        try:
            result = (
                self.db.table(self.table)
                .update({"is_active": False})
                .eq("id", product_id)
                .execute()
            )
        except Exception as e:
            logger.error(
                "delete_product_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            raise ProductNotFoundError(product_id)

        logger.info("product_deleted", product_id=product_id)
        return True


# Singleton instance for convenience
_product_service: Optional[ProductService] = None


def get_product_service() -> ProductService:
    """Get or create ProductService instance."""
    global _product_service
    if _product_service is None:
        _product_service = ProductService()
    return _product_service

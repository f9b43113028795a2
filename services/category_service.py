"""
Category lookup service.

Categories are owned by the catalog admin; this service only reads them.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.product import CategoryResponse
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike behaves as case-insensitive equality."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CategoryService:
    """Read access to the categories table."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "categories"

    def find_by_name(self, name: str) -> Optional[CategoryResponse]:
        """
        Find an active category by exact, case-insensitive name.

        Args:
            name: Category name as typed by the operator

        Returns:
            CategoryResponse or None if no category has that name
        """
        name = (name or "").strip()
        if not name:
            return None

        logger.debug("finding_category_by_name", name=name)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .ilike("name", _escape_like(name))
                .eq("is_active", True)
                .execute()
            )
        except Exception as e:
            logger.error("find_category_by_name_failed", name=name, error=str(e))
            raise DatabaseError("select", str(e))

        wanted = name.casefold()
        for row in result.data:
            if str(row.get("name", "")).strip().casefold() == wanted:
                return CategoryResponse(**row)
        return None

    def find_by_id(self, category_id: str) -> Optional[CategoryResponse]:
        """
        Find an active category by ID.

        Returns:
            CategoryResponse or None if not found
        """
        logger.debug("finding_category_by_id", category_id=category_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", category_id)
                .eq("is_active", True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("find_category_by_id_failed", category_id=category_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return CategoryResponse(**result.data[0])

    def list_active(self) -> list[CategoryResponse]:
        """All active categories ordered by name."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("is_active", True)
                .order("name")
                .execute()
            )
        except Exception as e:
            logger.error("list_categories_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [CategoryResponse(**row) for row in result.data]

    def list_names(self) -> list[str]:
        """Names of all active categories, for template constraints."""
        return [c.name for c in self.list_active()]


# Singleton instance for convenience
_category_service: Optional[CategoryService] = None


def get_category_service() -> CategoryService:
    """Get or create CategoryService instance."""
    global _category_service
    if _category_service is None:
        _category_service = CategoryService()
    return _category_service

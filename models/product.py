"""
Catalog schemas: units, categories, product images and production products.
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from uuid import uuid4

from models.base import BaseSchema, TimestampMixin


class Unit(str, Enum):
    """Units a product can be sold in."""
    KG = "kg"
    G = "g"
    LITERS = "liters"
    ML = "ml"
    PCS = "pcs"
    BOX = "box"
    DOZEN = "dozen"

    @classmethod
    def values(cls) -> list[str]:
        return [u.value for u in cls]


class ProductImage(BaseModel):
    """
    One product image.

    external_ref is the image store key (or a synthetic external_<uuid>
    for URLs taken from a spreadsheet).
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    url: str = Field(..., min_length=1)
    external_ref: Optional[str] = None
    is_main: bool = False


class CategoryResponse(BaseSchema):
    """Category as read from the categories table."""

    id: str
    name: str
    description: Optional[str] = None
    is_active: bool = True


# ===================
# PRODUCTION PRODUCT
# ===================

class ProductCreate(BaseSchema):
    """
    Create a production product.

    Built from a committed staged row. Derived offer fields are computed
    by build_offer_fields() before insert, never by the store.
    """

    supplier_id: str
    category_id: str
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)
    price: float = Field(..., gt=0, le=1_000_000)
    discounted_price: Optional[float] = Field(None, ge=0)
    gst: float = Field(default=0, ge=0, le=100)
    stock_quantity: int = Field(..., ge=0, le=1_000_000)
    unit: Unit = Unit.KG
    images: list[ProductImage] = Field(default_factory=list, max_length=10)


class ProductUpdate(BaseSchema):
    """
    Update an existing production product.

    All fields optional - only provided fields are updated.
    """

    category_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[float] = Field(None, gt=0, le=1_000_000)
    discounted_price: Optional[float] = Field(None, ge=0)
    gst: Optional[float] = Field(None, ge=0, le=100)
    stock_quantity: Optional[int] = Field(None, ge=0, le=1_000_000)
    unit: Optional[Unit] = None
    images: Optional[list[ProductImage]] = Field(None, max_length=10)


class ProductResponse(BaseSchema, TimestampMixin):
    """Production product with all stored fields."""

    id: str
    supplier_id: str
    category_id: Optional[str] = None
    name: str
    description: Optional[str] = ""
    price: float
    discounted_price: Optional[float] = None
    offer_percentage: float = 0
    has_active_offer: bool = False
    gst: float = 0
    stock_quantity: int = 0
    unit: Unit = Unit.KG
    images: list[ProductImage] = Field(default_factory=list)
    is_active: bool = True


def build_offer_fields(
    price: Optional[float],
    discounted_price: Optional[float],
    offer_start: Optional[datetime] = None,
    offer_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Compute a product's derived offer fields.

    offer_percentage is the discount as a percentage of price, rounded
    to two decimals. An offer window, when given, decides whether the
    offer is active; otherwise any positive discount is active.

    Returns:
        {"offer_percentage": float, "has_active_offer": bool}
    """
    offer_percentage = 0.0
    if price and price > 0 and discounted_price is not None and discounted_price < price:
        pct = (Decimal(str(price)) - Decimal(str(discounted_price))) / Decimal(str(price)) * 100
        offer_percentage = float(pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

    if offer_start and offer_end:
        now = now or datetime.utcnow()
        active = offer_start <= now <= offer_end
    else:
        active = offer_percentage > 0

    return {
        "offer_percentage": offer_percentage,
        "has_active_offer": active,
    }

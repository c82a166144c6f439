"""Database models for StockDesk."""

import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# SQLite INTEGER is a signed 64-bit value
INTEGER_MIN = -(2**63)
INTEGER_MAX = 2**63 - 1

MAX_PAGE_SIZE = 1000
# keeps the OFFSET of the last page inside INTEGER_MAX
MAX_PAGE = INTEGER_MAX // MAX_PAGE_SIZE


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the products table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value: Optional[datetime]) -> str:
    """Render a timestamp the way SQLite's CURRENT_TIMESTAMP does."""
    if value is None:
        return ""
    return value.strftime(TIMESTAMP_FORMAT)


# ============================================================================
# Pydantic Models (for data transfer)
# ============================================================================


class CamelModel(BaseModel):
    """Base model exposing camelCase JSON names to the front end."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ProductCreate(CamelModel):
    """Data required to create a new product."""

    name: str
    price: float = Field(ge=0)
    category: Optional[str] = None
    stock: int = Field(default=0, ge=0, le=INTEGER_MAX)
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value

    @field_validator("price")
    @classmethod
    def _price_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("price must be a finite number")
        return value

    @field_validator("category", "description", "image_url")
    @classmethod
    def _optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class ProductUpdate(ProductCreate):
    """Changes applied to an existing product.

    Name and price are always replaced; optional fields left as None keep
    their stored value.
    """

    stock: Optional[int] = Field(default=None, ge=0, le=INTEGER_MAX)


class ProductData(CamelModel):
    """Product as returned to callers."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: int
    name: str
    price: float
    category: Optional[str] = None
    stock: int = 0
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_serializer("created_at", "updated_at")
    def _serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        return format_timestamp(value)


class PaginationParams(CamelModel):
    """Paging, search and ordering for product listings."""

    page: int = Field(default=1, ge=1, le=MAX_PAGE)
    page_size: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)
    search: str = ""
    sort_by: str = "id"
    order: str = "asc"


class PaginatedProducts(CamelModel):
    """One page of products plus totals."""

    products: list[ProductData]
    total_count: int
    total_pages: int
    page: int
    page_size: int


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class Product(Base):
    """Inventory product."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    category = Column(String)
    stock = Column(Integer, default=0, nullable=False)
    description = Column(Text)
    image_url = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', price={self.price})>"

"""Data storage and persistence layer"""

from .models import (
    PaginatedProducts,
    PaginationParams,
    Product,
    ProductCreate,
    ProductData,
    ProductUpdate,
)
from .database import Database, ProductNotFoundError

__all__ = [
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "ProductData",
    "PaginationParams",
    "PaginatedProducts",
    "Database",
    "ProductNotFoundError",
]

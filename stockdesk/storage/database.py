"""Database operations and management"""

import math
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable

from loguru import logger
from sqlalchemy import asc, create_engine, desc, func, or_, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import (
    Base,
    PaginatedProducts,
    PaginationParams,
    Product,
    ProductCreate,
    ProductData,
    ProductUpdate,
    utcnow,
)

SORTABLE_COLUMNS = {
    "id": Product.id,
    "name": Product.name,
    "price": Product.price,
    "category": Product.category,
    "stock": Product.stock,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
}

# camelCase names sent by the web-view front end
SORT_ALIASES = {"createdAt": "created_at", "updatedAt": "updated_at"}


class ProductNotFoundError(LookupError):
    """Raised when no product has the requested ID."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"product with ID {product_id} not found")


class Database:
    """Database management class"""

    def __init__(self, db_url: str = "sqlite:///data/db/inventory.db", echo: bool = False):
        self.db_url = db_url
        self.engine = create_engine(db_url, echo=echo, **self._engine_options(db_url))
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        logger.info(f"Database initialized: {db_url}")

    @staticmethod
    def _engine_options(db_url: str) -> dict:
        url = make_url(db_url)
        if url.get_backend_name() != "sqlite":
            return {}

        options = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every thread sees an empty database
            options["poolclass"] = StaticPool
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return options

    @contextmanager
    def session(self):
        """Context manager for database sessions"""
        session = self.Session()
        try:
            yield session
            session.commit()
        except ProductNotFoundError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def health_check(self):
        """Raise if the database cannot answer a trivial query"""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def close(self):
        """Release all pooled connections"""
        self.engine.dispose()
        logger.info("Database connection closed")

    def create_product(self, data: ProductCreate) -> ProductData:
        """Insert a new product and return it with its generated ID"""
        with self.session() as session:
            product = Product(
                name=data.name,
                price=data.price,
                category=data.category,
                stock=data.stock,
                description=data.description,
                image_url=data.image_url,
            )
            session.add(product)
            session.flush()

            created = ProductData.model_validate(product)
            logger.debug(f"Created product: {created.name} (ID: {created.id})")
            return created

    def get_product(self, product_id: int) -> ProductData:
        """Get a single product by ID"""
        with self.session() as session:
            product = self._get_or_raise(session, product_id)
            return ProductData.model_validate(product)

    def list_products(self, params: PaginationParams) -> PaginatedProducts:
        """Return one page of products matching the search term"""
        with self.session() as session:
            query = session.query(Product)

            search = params.search.strip()
            if search:
                pattern = f"%{search.lower()}%"
                query = query.filter(
                    or_(
                        func.lower(Product.name).like(pattern),
                        func.lower(Product.category).like(pattern),
                        func.lower(Product.description).like(pattern),
                    )
                )

            total_count = query.count()

            sort_key = SORT_ALIASES.get(params.sort_by, params.sort_by)
            column = SORTABLE_COLUMNS.get(sort_key, Product.id)
            direction = desc if params.order.strip().lower() == "desc" else asc
            ordering = [direction(column)]
            if column is not Product.id:
                ordering.append(asc(Product.id))

            offset = (params.page - 1) * params.page_size
            products = query.order_by(*ordering).limit(params.page_size).offset(offset).all()

            return PaginatedProducts(
                products=[ProductData.model_validate(p) for p in products],
                total_count=total_count,
                total_pages=math.ceil(total_count / params.page_size),
                page=params.page,
                page_size=params.page_size,
            )

    def get_all_products(self) -> list[ProductData]:
        """Get every product ordered by ID"""
        with self.session() as session:
            products = session.query(Product).order_by(Product.id).all()
            return [ProductData.model_validate(p) for p in products]

    def get_products_by_ids(self, product_ids: Iterable[int]) -> list[ProductData]:
        """Get products in the requested order, skipping unknown IDs"""
        product_ids = list(product_ids)
        with self.session() as session:
            found = {
                p.id: p
                for p in session.query(Product).filter(Product.id.in_(product_ids)).all()
            }

            products = []
            for product_id in product_ids:
                product = found.get(product_id)
                if product is None:
                    logger.warning(f"Failed to get product with ID {product_id}: not found")
                    continue
                products.append(ProductData.model_validate(product))
            return products

    def update_product(self, product_id: int, data: ProductUpdate) -> ProductData:
        """Update a product and refresh its updated_at timestamp"""
        with self.session() as session:
            product = self._get_or_raise(session, product_id)

            product.name = data.name
            product.price = data.price
            for field in ("category", "stock", "description", "image_url"):
                value = getattr(data, field)
                if value is not None:
                    setattr(product, field, value)
            product.updated_at = utcnow()

            session.flush()
            updated = ProductData.model_validate(product)
            logger.debug(f"Updated product: {updated.name} (ID: {updated.id})")
            return updated

    def delete_product(self, product_id: int):
        """Delete a product by ID"""
        with self.session() as session:
            deleted = session.query(Product).filter(Product.id == product_id).delete()
            if not deleted:
                raise ProductNotFoundError(product_id)
            logger.debug(f"Deleted product ID {product_id}")

    def count_products(self) -> int:
        """Count total products"""
        with self.session() as session:
            return session.query(Product).count()

    def _get_or_raise(self, session: Session, product_id: int) -> Product:
        product = session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

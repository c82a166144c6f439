"""Desktop application facade for StockDesk.

Every method here is what the web-view front end can call. Product and
file operations are refused while the database is unavailable.
"""

import base64
import binascii
import time
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from .services.currency import (
    CurrencyConversionRequest,
    CurrencyConversionResponse,
    CurrencyRatesResponse,
    CurrencyService,
    SupportedCurrenciesResponse,
)
from .services.import_export import (
    ExportFormat,
    ExportRequest,
    ImportExportService,
    ImportFileError,
    ImportResult,
)
from .storage.database import Database
from .storage.models import (
    PaginatedProducts,
    PaginationParams,
    ProductCreate,
    ProductData,
    ProductUpdate,
)
from .utils.config import Config, get_config

TEMPLATE_FILENAME = "products_template.csv"


class DatabaseUnavailableError(RuntimeError):
    """Raised when a product operation runs without a working database."""


def default_export_filename(fmt: ExportFormat, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"products_{today.isoformat()}.{fmt.value}"


class DesktopApp:
    """Coordinates the database, import/export and currency services."""

    def __init__(
        self,
        config: Optional[Config] = None,
        currency_service: Optional[CurrencyService] = None,
    ):
        """Initialize the application.

        Args:
            config: Application configuration, defaults to the global one
            currency_service: Pre-built currency service, mainly for tests
        """
        self.config = config or get_config()

        self.db: Optional[Database] = None
        self.import_export: Optional[ImportExportService] = None
        self.db_healthy = False
        self.db_error = "database not initialized"

        currency_config = self.config.currency
        self.currency = currency_service or CurrencyService(
            primary_url=currency_config.primary_url,
            fallback_url=currency_config.fallback_url,
            cache_ttl=currency_config.cache_ttl_minutes * 60,
            http_timeout=currency_config.http_timeout,
        )
        logger.info("Currency service initialized successfully")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self) -> bool:
        """Initialize the database, retrying a fixed number of times.

        Returns:
            True if the database is ready
        """
        max_retries = max(1, self.config.database.init_retries)
        retry_delay = self.config.database.init_retry_delay

        for attempt in range(1, max_retries + 1):
            try:
                self._init_database()
            except (OSError, SQLAlchemyError) as e:
                logger.error(
                    f"Database initialization attempt {attempt}/{max_retries} failed: {e}"
                )
                self.db_healthy = False
                self.db_error = f"Database initialization failed: {e}"

                if attempt < max_retries:
                    logger.info(f"Waiting {retry_delay}s before next attempt...")
                    time.sleep(retry_delay)
                continue

            logger.info(f"Database initialized successfully on attempt {attempt}")
            return True

        logger.critical(
            f"Could not initialize database after {max_retries} attempts"
        )
        logger.warning("Application will continue, but database operations will be unavailable")
        return False

    def shutdown(self):
        if self.db is not None:
            self.db.close()
        self.currency.close()

    def _init_database(self):
        if self.db is not None:
            self.db.close()
            self.db = None

        db = Database(self.config.database.url, echo=self.config.database.echo)
        try:
            db.health_check()
        except SQLAlchemyError:
            db.close()
            raise

        self.db = db
        self.import_export = ImportExportService(db)
        self.db_healthy = True
        self.db_error = ""

    def get_database_status(self) -> dict:
        return {"healthy": self.db_healthy, "error": self.db_error}

    def retry_database_connection(self) -> dict:
        logger.info("Trying to reconnect to database...")

        try:
            self._init_database()
        except (OSError, SQLAlchemyError) as e:
            self.db_healthy = False
            self.db_error = f"Reconnection failed: {e}"
            logger.error(self.db_error)
            return {"success": False, "error": self.db_error}

        logger.info("Database reconnection successful!")
        return {"success": True, "message": "Database connection restored successfully"}

    def _require_database(self, operation: str) -> Database:
        if not self.db_healthy or self.db is None:
            message = f"database is not available: {self.db_error}"
            logger.error(f"{operation} failed: {message}")
            raise DatabaseUnavailableError(message)
        return self.db

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_product(self, data: ProductCreate) -> ProductData:
        product = self._require_database("create_product").create_product(data)
        logger.info(f"Product created: {product.name} (ID: {product.id})")
        return product

    def get_product(self, product_id: int) -> ProductData:
        return self._require_database("get_product").get_product(product_id)

    def get_all_products(self, params: Optional[PaginationParams] = None) -> PaginatedProducts:
        params = params or PaginationParams()
        response = self._require_database("get_all_products").list_products(params)
        logger.info(
            f"Products found: {len(response.products)} of {response.total_count} total"
        )
        return response

    def update_product(self, product_id: int, data: ProductUpdate) -> ProductData:
        product = self._require_database("update_product").update_product(product_id, data)
        logger.info(f"Product updated: {product.name} (ID: {product.id})")
        return product

    def delete_product(self, product_id: int):
        self._require_database("delete_product").delete_product(product_id)
        logger.info(f"Product deleted: ID {product_id}")

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_products_to_csv(
        self, include_all: bool = True, product_ids: Iterable[int] = ()
    ) -> str:
        """Export products as CSV text."""
        return self.export_products(ExportFormat.CSV, include_all, product_ids).decode("utf-8")

    def export_products_to_xlsx(
        self, include_all: bool = True, product_ids: Iterable[int] = ()
    ) -> str:
        """Export products as a base64-encoded XLSX workbook."""
        data = self.export_products(ExportFormat.XLSX, include_all, product_ids)
        return base64.b64encode(data).decode("ascii")

    def export_products(
        self, fmt: ExportFormat, include_all: bool = True, product_ids: Iterable[int] = ()
    ) -> bytes:
        """Export products as raw CSV or XLSX bytes."""
        self._require_database(f"export_products ({fmt.value})")
        request = ExportRequest(format=fmt, include_all=include_all, product_ids=list(product_ids))

        return self.import_export.export(request)

    def import_products_from_csv(self, csv_data: Union[str, bytes]) -> ImportResult:
        self._require_database("import_products_from_csv")
        result = self.import_export.import_csv(csv_data)
        logger.info(
            f"CSV import completed: {result.success_count} success, {result.error_count} errors"
        )
        return result

    def import_products_from_xlsx(self, xlsx_data: str) -> ImportResult:
        """Import products from a base64-encoded XLSX workbook."""
        self._require_database("import_products_from_xlsx")

        try:
            data = base64.b64decode(xlsx_data, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error(f"Failed to decode XLSX base64 data: {e}")
            raise ImportFileError(f"invalid XLSX data format: {e}") from e

        return self.import_products_from_xlsx_bytes(data)

    def import_products_from_xlsx_bytes(self, data: bytes) -> ImportResult:
        self._require_database("import_products_from_xlsx")
        result = self.import_export.import_xlsx(data)
        logger.info(
            f"XLSX import completed: {result.success_count} success, {result.error_count} errors"
        )
        return result

    def get_import_template(self) -> str:
        return ImportExportService.import_template()

    def save_exported_csv(
        self,
        path: Union[str, Path],
        include_all: bool = True,
        product_ids: Iterable[int] = (),
    ) -> Path:
        data = self.export_products(ExportFormat.CSV, include_all, product_ids)
        return self._write_file(path, default_export_filename(ExportFormat.CSV), data, "CSV export")

    def save_exported_xlsx(
        self,
        path: Union[str, Path],
        include_all: bool = True,
        product_ids: Iterable[int] = (),
    ) -> Path:
        data = self.export_products(ExportFormat.XLSX, include_all, product_ids)
        return self._write_file(path, default_export_filename(ExportFormat.XLSX), data, "XLSX export")

    def save_import_template(self, path: Union[str, Path]) -> Path:
        data = self.get_import_template().encode("utf-8")
        return self._write_file(path, TEMPLATE_FILENAME, data, "Template")

    @staticmethod
    def _write_file(path: Union[str, Path], default_name: str, data: bytes, label: str) -> Path:
        target = Path(path)
        if target.is_dir():
            target = target / default_name

        try:
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"{label} write error: {e}")
            raise

        logger.info(f"{label} saved successfully to: {target}")
        return target

    # ------------------------------------------------------------------
    # Currency
    # ------------------------------------------------------------------

    def convert_currency(self, request: CurrencyConversionRequest) -> CurrencyConversionResponse:
        return self.currency.convert(request)

    def get_supported_currencies(self) -> SupportedCurrenciesResponse:
        return self.currency.get_supported_currencies()

    def get_exchange_rates_for_currency(self, base_currency: str) -> CurrencyRatesResponse:
        return self.currency.get_exchange_rates(base_currency)

    def clear_currency_cache(self):
        self.currency.clear_cache()

"""FastAPI application serving the StockDesk web-view front end."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Path, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from ..app import DatabaseUnavailableError, DesktopApp, TEMPLATE_FILENAME, default_export_filename
from ..services.currency import (
    CurrencyConversionRequest,
    CurrencyConversionResponse,
    CurrencyRatesResponse,
    ExchangeRateFetchError,
    ExchangeRateNotFoundError,
    InvalidAmountError,
    SupportedCurrenciesResponse,
)
from ..services.import_export import ExportFormat, ImportFileError, ImportResult
from ..storage.database import ProductNotFoundError
from ..storage.models import (
    INTEGER_MAX,
    MAX_PAGE,
    MAX_PAGE_SIZE,
    PaginatedProducts,
    PaginationParams,
    ProductCreate,
    ProductData,
    ProductUpdate,
)
from ..utils.config import get_config

VERSION = "1.0.0"

MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv; charset=utf-8",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class FilePayload(BaseModel):
    """Uploaded file content: CSV text, or base64 for XLSX."""

    data: str


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, (ProductNotFoundError, ExchangeRateNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DatabaseUnavailableError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, (InvalidAmountError, ImportFileError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ExchangeRateFetchError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def create_app(desktop_app: Optional[DesktopApp] = None) -> FastAPI:
    """Build the API around a desktop application instance.

    Args:
        desktop_app: Application to expose; a new one is created and
            started if omitted

    Returns:
        Configured FastAPI application
    """
    config = desktop_app.config if desktop_app else get_config()
    owns_app = desktop_app is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("StockDesk API starting up")
        yield
        if owns_app:
            inventory.shutdown()
        logger.info("StockDesk API shutting down")

    if desktop_app is None:
        desktop_app = DesktopApp(config)
        desktop_app.startup()
    inventory = desktop_app

    app = FastAPI(
        title="StockDesk API",
        description="Inventory management for the StockDesk desktop front end",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        """Root endpoint."""
        return {"name": "StockDesk API", "version": VERSION, "status": "running"}

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy" if inventory.db_healthy else "degraded",
            "database": inventory.get_database_status(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/database/status")
    def database_status():
        return inventory.get_database_status()

    @app.post("/database/retry")
    def retry_database():
        return inventory.retry_database_connection()

    # --------------------------------------------------------------
    # Products
    # --------------------------------------------------------------

    @app.post("/products", response_model=ProductData, status_code=201)
    def create_product(payload: ProductCreate):
        try:
            return inventory.create_product(payload)
        except DatabaseUnavailableError as e:
            raise _to_http_error(e)

    @app.get("/products", response_model=PaginatedProducts)
    def list_products(
        page: int = Query(1, ge=1, le=MAX_PAGE),
        page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
        search: str = Query("", description="Matches name, category or description"),
        sort_by: str = Query("id", alias="sortBy"),
        order: str = Query("asc", description="asc or desc"),
    ):
        """List products one page at a time."""
        params = PaginationParams(
            page=page, page_size=page_size, search=search, sort_by=sort_by, order=order
        )
        try:
            return inventory.get_all_products(params)
        except DatabaseUnavailableError as e:
            raise _to_http_error(e)

    @app.get("/products/{product_id}", response_model=ProductData)
    def get_product(product_id: int = Path(le=INTEGER_MAX)):
        try:
            return inventory.get_product(product_id)
        except (ProductNotFoundError, DatabaseUnavailableError) as e:
            raise _to_http_error(e)

    @app.put("/products/{product_id}", response_model=ProductData)
    def update_product(payload: ProductUpdate, product_id: int = Path(le=INTEGER_MAX)):
        try:
            return inventory.update_product(product_id, payload)
        except (ProductNotFoundError, DatabaseUnavailableError) as e:
            raise _to_http_error(e)

    @app.delete("/products/{product_id}", status_code=204)
    def delete_product(product_id: int = Path(le=INTEGER_MAX)):
        try:
            inventory.delete_product(product_id)
        except (ProductNotFoundError, DatabaseUnavailableError) as e:
            raise _to_http_error(e)
        return Response(status_code=204)

    # --------------------------------------------------------------
    # Import / export
    # --------------------------------------------------------------

    @app.get("/export/{fmt}")
    def export_products(
        fmt: ExportFormat,
        include_all: bool = Query(True, alias="includeAll"),
        ids: Optional[List[int]] = Query(None, description="Product IDs when includeAll is false"),
    ):
        """Download products as a CSV or XLSX file."""
        try:
            data = inventory.export_products(fmt, include_all, ids or [])
        except DatabaseUnavailableError as e:
            raise _to_http_error(e)

        filename = default_export_filename(fmt)
        return Response(
            content=data,
            media_type=MEDIA_TYPES[fmt],
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.post("/import/csv", response_model=ImportResult)
    def import_csv(payload: FilePayload):
        try:
            return inventory.import_products_from_csv(payload.data)
        except (DatabaseUnavailableError, ImportFileError) as e:
            raise _to_http_error(e)

    @app.post("/import/xlsx", response_model=ImportResult)
    def import_xlsx(payload: FilePayload):
        try:
            return inventory.import_products_from_xlsx(payload.data)
        except (DatabaseUnavailableError, ImportFileError) as e:
            raise _to_http_error(e)

    @app.get("/import/template")
    def import_template():
        return Response(
            content=inventory.get_import_template(),
            media_type=MEDIA_TYPES[ExportFormat.CSV],
            headers={"Content-Disposition": f"attachment; filename={TEMPLATE_FILENAME}"},
        )

    # --------------------------------------------------------------
    # Currency
    # --------------------------------------------------------------

    @app.post("/currency/convert", response_model=CurrencyConversionResponse)
    def convert_currency(payload: CurrencyConversionRequest):
        try:
            return inventory.convert_currency(payload)
        except (InvalidAmountError, ExchangeRateFetchError, ExchangeRateNotFoundError) as e:
            raise _to_http_error(e)

    @app.get("/currency/supported", response_model=SupportedCurrenciesResponse)
    def supported_currencies():
        return inventory.get_supported_currencies()

    @app.get("/currency/rates/{base}", response_model=CurrencyRatesResponse)
    def exchange_rates(base: str):
        try:
            return inventory.get_exchange_rates_for_currency(base)
        except ExchangeRateFetchError as e:
            raise _to_http_error(e)

    @app.delete("/currency/cache", status_code=204)
    def clear_currency_cache():
        inventory.clear_currency_cache()
        return Response(status_code=204)

    app.state.desktop_app = inventory
    return app


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(create_app(), host=config.api.host, port=config.api.port, reload=False)

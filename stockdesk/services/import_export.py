"""CSV and XLSX import/export of products."""

import csv
import io
import math
from enum import Enum
from typing import Any, Optional, Union
from zipfile import BadZipFile

from loguru import logger
from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from ..storage.database import Database
from ..storage.models import (
    INTEGER_MAX,
    INTEGER_MIN,
    CamelModel,
    ProductCreate,
    ProductData,
    format_timestamp,
)

EXPORT_HEADERS = [
    "ID",
    "Name",
    "Price",
    "Category",
    "Stock",
    "Description",
    "Image URL",
    "Created At",
    "Updated At",
]

IMPORT_COLUMNS = 6

SHEET_NAME = "Products"

IMPORT_TEMPLATE = (
    "Name,Price,Category,Stock,Description,Image URL\n"
    "Example Product,29.99,Electronics,10,Example product description,https://example.com/image.jpg\n"
    "Another Product,49.90,Home & Garden,5,Another example product,\n"
)


class ImportFileError(ValueError):
    """Raised when an uploaded file cannot be read at all."""


class ExportFormat(str, Enum):
    CSV = "csv"
    XLSX = "xlsx"


class ExportRequest(CamelModel):
    """Which products to export and how."""

    format: ExportFormat = ExportFormat.CSV
    include_all: bool = True
    product_ids: list[int] = Field(default_factory=list)


class ImportRowError(CamelModel):
    """A problem found in one imported row. Row 0 refers to the whole file."""

    row: int
    field: str = ""
    message: str
    value: str = ""


class ImportResult(CamelModel):
    """Outcome of a bulk import."""

    success_count: int = 0
    error_count: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)
    imported_items: list[ProductData] = Field(default_factory=list)

    @classmethod
    def failed(cls, message: str) -> "ImportResult":
        """Result for a file rejected before any row was read."""
        return cls(error_count=1, errors=[ImportRowError(row=0, message=message)])


class ImportExportService:
    """Moves products between the database and CSV/XLSX files.

    Imports validate each row on its own: a bad row is reported in the
    result and skipped, the remaining rows are still inserted.
    """

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, request: ExportRequest) -> bytes:
        """Export in the format named by the request."""
        if request.format is ExportFormat.XLSX:
            return self.export_xlsx(request)
        return self.export_csv(request)

    def export_csv(self, request: ExportRequest) -> bytes:
        products = self._products_for_export(request)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)
        for product in products:
            row = self._export_row(product)
            row[2] = f"{product.price:.2f}"
            writer.writerow(row)

        logger.info(f"Exported {len(products)} products to CSV")
        return buffer.getvalue().encode("utf-8")

    def export_xlsx(self, request: ExportRequest) -> bytes:
        products = self._products_for_export(request)

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = SHEET_NAME
        sheet.append(EXPORT_HEADERS)
        for product in products:
            sheet.append(self._export_row(product))

        for col_idx, column_cells in enumerate(sheet.iter_cols(1, sheet.max_column), 1):
            max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column_cells)
            sheet.column_dimensions[get_column_letter(col_idx)].width = max_length + 4

        output = io.BytesIO()
        workbook.save(output)

        logger.info(f"Exported {len(products)} products to XLSX")
        return output.getvalue()

    def _products_for_export(self, request: ExportRequest) -> list[ProductData]:
        if request.include_all:
            return self.db.get_all_products()
        return self.db.get_products_by_ids(request.product_ids)

    @staticmethod
    def _export_row(product: ProductData) -> list[Any]:
        return [
            product.id,
            product.name,
            product.price,
            product.category or "",
            product.stock,
            product.description or "",
            product.image_url or "",
            format_timestamp(product.created_at),
            format_timestamp(product.updated_at),
        ]

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_csv(self, data: Union[bytes, str]) -> ImportResult:
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise ImportFileError(f"failed to read CSV: {e}") from e
        else:
            data = data.lstrip("\ufeff")

        try:
            records = [row for row in csv.reader(io.StringIO(data), strict=True) if row]
        except csv.Error as e:
            raise ImportFileError(f"failed to read CSV: {e}") from e

        if len(records) < 2:
            return ImportResult.failed("CSV file is empty or contains only headers")

        return self._import_records(records[1:])

    def import_xlsx(self, data: bytes) -> ImportResult:
        if not data:
            return ImportResult.failed("Empty file data provided")

        logger.info(f"Opening XLSX file, size: {len(data)} bytes")
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as e:
            logger.error(f"Failed to open XLSX: {e}")
            return ImportResult.failed(f"Invalid XLSX file format: {e}")

        try:
            if not workbook.worksheets:
                return ImportResult.failed("XLSX file contains no sheets")

            rows = []
            for values in workbook.worksheets[0].iter_rows(values_only=True):
                row = [_cell_text(value) for value in values]
                if any(cell.strip() for cell in row):
                    rows.append(row)
        finally:
            workbook.close()

        if len(rows) < 2:
            return ImportResult.failed("XLSX file is empty or contains only headers")

        padded = [(row + [""] * IMPORT_COLUMNS)[:IMPORT_COLUMNS] for row in rows[1:]]
        return self._import_records(padded)

    def _import_records(self, records: list[list[str]]) -> ImportResult:
        result = ImportResult()

        for i, record in enumerate(records):
            row_num = i + 2  # 1-based, after the header row

            product, errors = parse_record(record, row_num)
            if errors:
                result.errors.extend(errors)
                result.error_count += 1
                continue

            try:
                created = self.db.create_product(product)
            except (SQLAlchemyError, OverflowError) as e:
                result.errors.append(
                    ImportRowError(row=row_num, message=f"Error creating product: {e}")
                )
                result.error_count += 1
                continue

            result.imported_items.append(created)
            result.success_count += 1

        logger.info(
            f"Import completed: {result.success_count} success, {result.error_count} errors"
        )
        return result

    @staticmethod
    def import_template() -> str:
        return IMPORT_TEMPLATE


def parse_record(
    record: list[str], row_num: int
) -> tuple[Optional[ProductCreate], list[ImportRowError]]:
    """Validate one import row.

    Returns the product to create, or every field error found in the row.
    """
    if len(record) < IMPORT_COLUMNS:
        return None, [
            ImportRowError(
                row=row_num,
                message=f"Incomplete record, expected at least {IMPORT_COLUMNS} fields",
            )
        ]

    errors = []

    name = record[0].strip()
    if not name:
        errors.append(
            ImportRowError(row=row_num, field="name", message="Name is required", value=record[0])
        )

    price = _parse_float(record[1])
    if price is None:
        errors.append(
            ImportRowError(
                row=row_num, field="price", message="Price must be a valid number", value=record[1]
            )
        )
    elif price < 0:
        errors.append(
            ImportRowError(
                row=row_num, field="price", message="Price must be positive", value=record[1]
            )
        )

    stock = _parse_int(record[3])
    if stock is None:
        errors.append(
            ImportRowError(
                row=row_num, field="stock", message="Stock must be a valid integer", value=record[3]
            )
        )
    elif stock < 0:
        errors.append(
            ImportRowError(
                row=row_num, field="stock", message="Stock must be non-negative", value=record[3]
            )
        )

    if errors:
        return None, errors

    return (
        ProductCreate(
            name=name,
            price=price,
            category=record[2],
            stock=stock,
            description=record[4],
            image_url=record[5],
        ),
        [],
    )


def _parse_float(value: str) -> Optional[float]:
    try:
        number = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def _parse_int(value: str) -> Optional[int]:
    try:
        number = int(value.strip())
    except ValueError:
        return None
    if not INTEGER_MIN <= number <= INTEGER_MAX:
        return None
    return number


def _cell_text(value: Any) -> str:
    """Render a worksheet cell the way it reads in a spreadsheet."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

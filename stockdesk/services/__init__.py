"""Import/export and currency services"""

from .currency import CurrencyService
from .import_export import ImportExportService

__all__ = ["CurrencyService", "ImportExportService"]

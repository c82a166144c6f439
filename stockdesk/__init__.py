"""StockDesk - desktop inventory management"""

__version__ = "1.0.0"

"""Main entry point for StockDesk."""

import argparse
import sys
from pathlib import Path

from loguru import logger

from .app import DesktopApp
from .services.currency import CurrencyConversionRequest
from .utils.config import get_config
from .utils.logger import setup_logging


def _start_app() -> DesktopApp:
    desktop_app = DesktopApp(get_config())
    desktop_app.startup()
    return desktop_app


def run_api():
    """Run the FastAPI server."""
    import uvicorn

    from .api.main import create_app

    config = get_config()

    logger.info("=" * 80)
    logger.info("StockDesk API - Starting")
    logger.info("=" * 80)

    uvicorn.run(
        create_app(),
        host=config.api.host,
        port=config.api.port,
        log_level="info",
    )


def show_status():
    """Print database status."""
    desktop_app = _start_app()
    try:
        status = desktop_app.get_database_status()
        if status["healthy"]:
            print(f"Database OK ({desktop_app.db.count_products()} products)")
        else:
            print(f"Database unavailable: {status['error']}")
            sys.exit(1)
    finally:
        desktop_app.shutdown()


def export_products(fmt: str, ids: list[int], output: str):
    """Export products to a file.

    Args:
        fmt: csv or xlsx
        ids: Product IDs to export, all products when empty
        output: Target file or directory
    """
    desktop_app = _start_app()
    try:
        save = desktop_app.save_exported_xlsx if fmt == "xlsx" else desktop_app.save_exported_csv
        path = save(output, include_all=not ids, product_ids=ids)
        print(f"Exported to {path}")
    finally:
        desktop_app.shutdown()


def import_products(path: Path):
    """Import products from a CSV or XLSX file."""
    desktop_app = _start_app()
    try:
        if path.suffix.lower() == ".xlsx":
            result = desktop_app.import_products_from_xlsx_bytes(path.read_bytes())
        else:
            result = desktop_app.import_products_from_csv(path.read_bytes())

        print(f"Imported {result.success_count} products, {result.error_count} rows rejected")
        for error in result.errors:
            field = f" [{error.field}]" if error.field else ""
            value = f" (value: {error.value!r})" if error.value else ""
            print(f"  row {error.row}{field}: {error.message}{value}")
    finally:
        desktop_app.shutdown()


def save_template(output: str):
    """Write the CSV import template."""
    desktop_app = DesktopApp(get_config())
    try:
        print(f"Template saved to {desktop_app.save_import_template(output)}")
    finally:
        desktop_app.shutdown()


def convert(amount: float, from_currency: str, to_currency: str):
    """Convert an amount between currencies."""
    desktop_app = DesktopApp(get_config())
    try:
        result = desktop_app.convert_currency(
            CurrencyConversionRequest(
                amount=amount, from_currency=from_currency, to_currency=to_currency
            )
        )
        print(
            f"{result.amount:.2f} {result.from_currency} = "
            f"{result.converted_amount:.2f} {result.to_currency} (rate {result.exchange_rate:.6f})"
        )
    finally:
        desktop_app.shutdown()


def show_rates(base: str):
    """Print all exchange rates for a base currency."""
    desktop_app = DesktopApp(get_config())
    try:
        supported = {c.code for c in desktop_app.get_supported_currencies().currencies}
        response = desktop_app.get_exchange_rates_for_currency(base)
        print(f"Rates for {response.base} on {response.date}:")
        for code in sorted(supported & response.rates.keys()):
            print(f"  {code}: {response.rates[code]:.6f}")
    finally:
        desktop_app.shutdown()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="StockDesk inventory management")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("api", help="Run the API server for the front end")

    subparsers.add_parser("status", help="Show database status")

    export_parser = subparsers.add_parser("export", help="Export products to a file")
    export_parser.add_argument("--format", choices=["csv", "xlsx"], default="csv")
    export_parser.add_argument("--ids", type=int, nargs="*", default=[], help="Product IDs")
    export_parser.add_argument("--output", default=".", help="Target file or directory")

    import_parser = subparsers.add_parser("import", help="Import products from CSV or XLSX")
    import_parser.add_argument("path", type=Path)

    template_parser = subparsers.add_parser("template", help="Save the CSV import template")
    template_parser.add_argument("--output", default=".", help="Target file or directory")

    convert_parser = subparsers.add_parser("convert", help="Convert an amount between currencies")
    convert_parser.add_argument("amount", type=float)
    convert_parser.add_argument("from_currency")
    convert_parser.add_argument("to_currency")

    rates_parser = subparsers.add_parser("rates", help="Show exchange rates for a base currency")
    rates_parser.add_argument("base")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging()

    try:
        if args.command == "api":
            run_api()
        elif args.command == "status":
            show_status()
        elif args.command == "export":
            export_products(args.format, args.ids, args.output)
        elif args.command == "import":
            import_products(args.path)
        elif args.command == "template":
            save_template(args.output)
        elif args.command == "convert":
            convert(args.amount, args.from_currency, args.to_currency)
        elif args.command == "rates":
            show_rates(args.base)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.opt(exception=e).error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

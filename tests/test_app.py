import base64
import io
from datetime import date

import pytest
from openpyxl import load_workbook

from stockdesk.app import DatabaseUnavailableError, DesktopApp, default_export_filename
from stockdesk.services.import_export import ExportFormat, ImportFileError
from stockdesk.storage import PaginationParams, ProductCreate
from stockdesk.utils.config import Config, DatabaseConfig


@pytest.fixture
def broken_app(tmp_path, currency_service):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    config = Config(
        database=DatabaseConfig(
            url=f"sqlite:///{blocker}/inventory.db", init_retries=2, init_retry_delay=0
        )
    )
    application = DesktopApp(config, currency_service=currency_service)
    yield application
    application.shutdown()


def test_startup_reports_healthy_database(desktop_app):
    assert desktop_app.get_database_status() == {"healthy": True, "error": ""}


def test_startup_failure_leaves_app_running_without_database(broken_app):
    assert broken_app.startup() is False

    status = broken_app.get_database_status()
    assert status["healthy"] is False
    assert status["error"].startswith("Database initialization failed")

    with pytest.raises(DatabaseUnavailableError, match="database is not available"):
        broken_app.get_all_products()
    with pytest.raises(DatabaseUnavailableError):
        broken_app.export_products_to_csv()


def test_currency_works_without_database(broken_app):
    broken_app.startup()

    assert len(broken_app.get_supported_currencies().currencies) == 10


def test_retry_database_connection(broken_app, tmp_path):
    broken_app.startup()

    failed = broken_app.retry_database_connection()
    assert failed["success"] is False
    assert failed["error"].startswith("Reconnection failed")

    broken_app.config.database.url = f"sqlite:///{tmp_path}/data/inventory.db"
    restored = broken_app.retry_database_connection()

    assert restored == {"success": True, "message": "Database connection restored successfully"}
    assert broken_app.get_database_status()["healthy"] is True
    assert broken_app.create_product(ProductCreate(name="Pen", price=1)).id == 1


def test_product_lifecycle_through_app(desktop_app):
    created = desktop_app.create_product(ProductCreate(name="Lamp", price=20, stock=2))

    page = desktop_app.get_all_products(PaginationParams(page_size=5))
    assert page.total_count == 1
    assert desktop_app.get_product(created.id).name == "Lamp"

    desktop_app.delete_product(created.id)
    assert desktop_app.get_all_products().total_count == 0


def test_xlsx_export_and_import_use_base64(desktop_app):
    desktop_app.create_product(ProductCreate(name="Lamp", price=20, category="Home", stock=2))

    encoded = desktop_app.export_products_to_xlsx()
    workbook = load_workbook(io.BytesIO(base64.b64decode(encoded)))
    assert workbook.active["B2"].value == "Lamp"

    result = desktop_app.import_products_from_xlsx(encoded)

    # the exported ID column shifts every field one to the right
    assert result.success_count == 0
    assert result.error_count == 1
    assert result.errors[0].field == "price"


def test_import_xlsx_rejects_invalid_base64(desktop_app):
    with pytest.raises(ImportFileError, match="invalid XLSX data format"):
        desktop_app.import_products_from_xlsx("not base64!!")


def test_import_template_round_trips_through_csv_import(desktop_app):
    result = desktop_app.import_products_from_csv(desktop_app.get_import_template())

    assert result.success_count == 2
    assert desktop_app.get_all_products().total_count == 2


def test_save_methods_use_default_names_for_directories(desktop_app, tmp_path):
    desktop_app.create_product(ProductCreate(name="Lamp", price=20))

    csv_path = desktop_app.save_exported_csv(tmp_path)
    xlsx_path = desktop_app.save_exported_xlsx(tmp_path / "custom.xlsx")
    template_path = desktop_app.save_import_template(tmp_path)

    assert csv_path.name == default_export_filename(ExportFormat.CSV)
    assert "Lamp" in csv_path.read_text(encoding="utf-8")
    assert xlsx_path.name == "custom.xlsx"
    assert load_workbook(xlsx_path).sheetnames == ["Products"]
    assert template_path.name == "products_template.csv"
    assert template_path.read_text(encoding="utf-8").startswith("Name,Price,Category")


def test_default_export_filename():
    assert default_export_filename(ExportFormat.XLSX, date(2025, 3, 9)) == "products_2025-03-09.xlsx"


def test_startup_retries_with_delay_between_attempts(tmp_path, currency_service, monkeypatch, log_records):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    config = Config(
        database=DatabaseConfig(
            url=f"sqlite:///{blocker}/inventory.db", init_retries=3, init_retry_delay=1.5
        )
    )
    sleeps = []
    monkeypatch.setattr("stockdesk.app.time.sleep", sleeps.append)
    application = DesktopApp(config, currency_service=currency_service)

    assert application.startup() is False

    assert sleeps == [1.5, 1.5]
    attempts = [r["message"] for r in log_records if "initialization attempt" in r["message"]]
    assert [m.split(" failed")[0] for m in attempts] == [
        "Database initialization attempt 1/3",
        "Database initialization attempt 2/3",
        "Database initialization attempt 3/3",
    ]
    critical = [r["message"] for r in log_records if r["level"].name == "CRITICAL"]
    assert critical == ["Could not initialize database after 3 attempts"]


def test_startup_succeeds_after_transient_failure(app_config, currency_service, monkeypatch):
    calls = []
    init_database = DesktopApp._init_database

    def flaky_init(self):
        calls.append(1)
        if len(calls) == 1:
            raise OSError("disk not ready")
        init_database(self)

    monkeypatch.setattr(DesktopApp, "_init_database", flaky_init)
    monkeypatch.setattr("stockdesk.app.time.sleep", lambda seconds: None)
    application = DesktopApp(app_config, currency_service=currency_service)

    assert application.startup() is True
    assert len(calls) == 2
    assert application.get_database_status() == {"healthy": True, "error": ""}
    application.shutdown()

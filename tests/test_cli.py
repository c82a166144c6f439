import sys

import pytest

from stockdesk import __main__ as cli
from stockdesk.utils.config import Config, DatabaseConfig


@pytest.fixture
def run_cli(monkeypatch, tmp_path):
    config = Config(database=DatabaseConfig(url=f"sqlite:///{tmp_path}/db/inventory.db"))
    monkeypatch.setattr(cli, "get_config", lambda: config)
    monkeypatch.setattr(cli, "setup_logging", lambda: None)

    def run(*args):
        monkeypatch.setattr(sys, "argv", ["stockdesk", *args])
        cli.main()

    return run


def test_template_import_and_export(run_cli, tmp_path, capsys):
    run_cli("template", "--output", str(tmp_path))
    template = tmp_path / "products_template.csv"
    assert template.exists()

    run_cli("import", str(template))
    assert "Imported 2 products, 0 rows rejected" in capsys.readouterr().out

    output = tmp_path / "out.csv"
    run_cli("export", "--ids", "2", "--output", str(output))

    lines = output.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("2,Another Product,49.90")


def test_status_reports_product_count(run_cli, capsys):
    run_cli("status")

    assert capsys.readouterr().out.strip() == "Database OK (0 products)"


def test_missing_import_file_exits_with_error(run_cli, tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        run_cli("import", str(tmp_path / "missing.csv"))

    assert exc_info.value.code == 1


def test_no_command_prints_help(run_cli):
    with pytest.raises(SystemExit):
        run_cli()

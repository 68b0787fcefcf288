import json
from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

from click.testing import CliRunner

from package_pricer.cli import cli
from package_pricer.db import migrate
from package_pricer.models import NormalizedFlightPrice, RunResult


def write_config(tmp_path):
    path = tmp_path / "package.json"
    path.write_text(
        json.dumps(
            {
                "package_id": 12,
                "arrival_airport": "ATH",
                "uk_airports": ["LGW", "MAN"],
                "search_start_date": "01/06/2025",
                "search_end_date": "02/06/2025",
                "cities": [{"city_name": "Athens", "nights": 7}],
            }
        ),
        encoding="utf-8",
    )
    return str(path)


@patch("package_pricer.cli.run_package")
def test_run_command(mock_run, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    mock_run.return_value = RunResult(
        success=False, prices_calculated=4, errors=["2025-06-02: boom"]
    )
    result = CliRunner().invoke(cli, ["run", "--config", write_config(tmp_path)])

    assert result.exit_code == 1
    assert "Package 12: 4 prices, 1 errors" in result.output
    assert "2025-06-02: boom" in result.output
    assert mock_run.call_args.args[0].package_id == 12


@patch("package_pricer.cli.get_flight_source")
def test_fetch_command(mock_source, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    source = Mock()
    source.fetch_prices.return_value = {
        "MAN": NormalizedFlightPrice(date(2025, 6, 1), "MAN", Decimal("220")),
        "LGW": NormalizedFlightPrice(date(2025, 6, 1), "LGW", Decimal("180")),
    }
    mock_source.return_value = source

    result = CliRunner().invoke(
        cli, ["fetch", "--config", write_config(tmp_path), "--date", "2025-06-01"]
    )

    assert result.exit_code == 0
    assert "LGW: £180" in result.output
    assert result.output.index("LGW") < result.output.index("MAN: £220")
    assert source.fetch_prices.call_args.args[0] == date(2025, 6, 1)


def test_fetch_rejects_bad_date(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(
        cli, ["fetch", "--config", write_config(tmp_path), "--date", "June 1st"]
    )
    assert result.exit_code != 0
    assert "invalid date" in result.output


def test_matrix_command_without_prices(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    db_file = str(tmp_path / "cli.db")
    migrate(db_file)
    result = CliRunner().invoke(cli, ["matrix", "--package-id", "5", "--db", db_file])
    assert result.exit_code == 0
    assert "No prices stored for package 5" in result.output


@patch("package_pricer.tasks.refresh_all")
def test_schedule_once(mock_refresh, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    mock_refresh.return_value = {1: RunResult(success=True, prices_calculated=6)}
    result = CliRunner().invoke(
        cli, ["schedule", "--once", "--config-dir", str(tmp_path)]
    )
    assert result.exit_code == 0
    assert "Package 1: 6 prices, 0 errors" in result.output

"""Tests for the command-line runner and logging setup."""
import json
import logging

import pytest

import credit_model.__main__ as cli
from credit_model.logging_config import JSONFormatter, setup_logging


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep pytest's log capture in place while main() runs."""
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)


@pytest.fixture
def params_file(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps({
        "startYear": 2025,
        "baseRevenue": 100e6,
        "requestedLoanAmount": 100e6,
        "proposedPricing": 12,
    }), encoding="utf-8")
    return path


class TestMain:
    def test_run_with_exports(self, params_file, tmp_path, capsys):
        csv_path = tmp_path / "covenants.csv"
        xlsx_path = tmp_path / "model.xlsx"
        code = cli.main([str(params_file), "--csv", str(csv_path), "--xlsx", str(xlsx_path),
                         "--show-projection", "--sensitivity"])
        assert code == 0
        out = capsys.readouterr().out
        assert "Base Case" in out
        assert "Severe Recession" in out
        assert "WACC" in out
        assert csv_path.read_text(encoding="utf-8").startswith("Year,DSCR")
        assert xlsx_path.read_bytes()[:2] == b"PK"

    def test_custom_shock(self, params_file, tmp_path, capsys):
        shock = tmp_path / "shock.json"
        shock.write_text(json.dumps({"growthDelta": -0.05}), encoding="utf-8")
        assert cli.main([str(params_file), "--shock", str(shock), "--workers", "2"]) == 0
        assert "Custom" in capsys.readouterr().out

    def test_invalid_parameters(self, tmp_path, caplog):
        path = tmp_path / "params.json"
        path.write_text(json.dumps({"wacc": 0.03, "terminalGrowth": 0.05}), encoding="utf-8")
        assert cli.main([str(path)]) == 1
        assert "Invalid parameters" in caplog.text

    def test_capacity(self, params_file, capsys):
        assert cli.main([str(params_file), "--capacity"]) == 0
        out = capsys.readouterr().out
        assert "Debt capacity:" in out
        assert "Extend Loan Tenor" in out

    def test_missing_file(self, tmp_path):
        assert cli.main([str(tmp_path / "nope.json")]) == 2

    def test_bad_input(self, tmp_path):
        path = tmp_path / "params.json"
        path.write_text(json.dumps({"years": "five"}), encoding="utf-8")
        assert cli.main([str(path)]) == 2

    def test_ticker_history(self, params_file, monkeypatch, history):
        calls = []

        def fake_fetch(ticker):
            calls.append(ticker)
            return history

        monkeypatch.setattr(cli, "fetch_historical_records", fake_fetch)
        assert cli.main([str(params_file), "--ticker", "DG", "--edited", "base_revenue"]) == 0
        assert calls == ["DG"]


class TestLogging:
    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("credit_model", logging.WARNING, __file__, 1,
                                   "Scenario %s rejected", ("Custom",), None)
        record.scenario = "Custom"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Scenario Custom rejected"
        assert entry["level"] == "WARNING"
        assert entry["scenario"] == "Custom"
        assert "year" not in entry

    def test_setup_logging_replaces_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(json_format=True, level="DEBUG")
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("yfinance").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

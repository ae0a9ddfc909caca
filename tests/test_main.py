from __future__ import annotations

import pytest

from strategy_engine import main as cli
from strategy_engine.storage import Storage

STRATEGIES = """
strategies:
  - id: aapl-oversold
    user_id: u1
    name: AAPL oversold
    status: running
    timeframe: 1h
    symbols: [AAPL]
    conditions:
      - {indicator: RSI, operator: "<", value: "30"}
"""

SIM = '{"AAPL": {"datetime": "2024-01-02 15:30:00", "price": 150.0, "RSI": 25.4}}'


def run_cli(monkeypatch, argv):
    monkeypatch.setattr("sys.argv", ["strategy-engine"] + argv)
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    cli.main()


def test_import_then_run_once_with_sim(tmp_path, monkeypatch, capsys):
    db = str(tmp_path / "engine.db")
    strategies = tmp_path / "strategies.yaml"
    strategies.write_text(STRATEGIES, encoding="utf-8")
    sim = tmp_path / "sim.json"
    sim.write_text(SIM, encoding="utf-8")
    config = str(tmp_path / "config.yaml")

    run_cli(monkeypatch, ["--config", config, "--db-path", db, "--import-strategies", str(strategies)])
    assert "Imported=1" in capsys.readouterr().out

    run_cli(monkeypatch, ["--config", config, "--db-path", db, "--once", "--sim-json", str(sim)])
    assert "Alerts=1" in capsys.readouterr().out

    store = Storage(db)
    assert [a.symbol for a in store.list_alerts("u1")] == ["AAPL"]
    store.close()


def test_missing_api_key_exits(tmp_path, monkeypatch):
    monkeypatch.delenv("TWELVE_DATA_API_KEY", raising=False)
    with pytest.raises(SystemExit):
        run_cli(
            monkeypatch,
            ["--config", str(tmp_path / "config.yaml"), "--db-path", str(tmp_path / "e.db"), "--once"],
        )

"""CLI smoke tests through typer's CliRunner."""

import json

from typer.testing import CliRunner

from wagerflow.cli.app import app

runner = CliRunner()


def _config_dir(tmp_path):
    config = tmp_path / "config"
    config.mkdir()
    data = tmp_path / "data"
    (config / "default.toml").write_text(
        f"""
[engine]
retry_pace_sec = 0
admission_poll_sec = 0

[settlement]
first_wait_sec = 0
poll_interval_sec = 0

[ledger]
balance_path = "{(data / 'balance.txt').as_posix()}"
stats_path = "{(data / 'balance_stats.txt').as_posix()}"
default_balance = 100.0

[audit]
path = "{(data / 'placed_bets.json').as_posix()}"

[storage]
db_path = "{(data / 'wagerflow.duckdb').as_posix()}"

[provider]
kind = "paper"
paper_seed = 5

[logging]
level = "WARNING"
"""
    )
    return config


def test_run_then_inspect(tmp_path):
    config = _config_dir(tmp_path)
    intents = tmp_path / "intents.json"
    intents.write_text(
        json.dumps(
            [
                {"event_id": "e1", "side": "home", "price": "2.0", "stake": "5"},
                {"event_id": "e2", "side": "away", "price": "3.0", "stake": "0.01"},
            ]
        )
    )
    base = ["--config-dir", str(config)]

    result = runner.invoke(app, [*base, "run", "--intents", str(intents), "--cycle-id", "c1"])
    assert result.exit_code == 0, result.output
    assert "Cycle c1: completed" in result.output
    assert "Accepted: 1  Dropped: 1" in result.output

    result = runner.invoke(app, [*base, "balance", "show"])
    assert result.exit_code == 0
    assert "BALANCE DASHBOARD" in result.output

    result = runner.invoke(app, [*base, "audit", "list"])
    assert result.exit_code == 0
    assert "Total: 2 records" in result.output

    result = runner.invoke(app, [*base, "cycles", "list"])
    assert result.exit_code == 0
    assert "c1" in result.output

    result = runner.invoke(app, [*base, "balance", "history"])
    assert result.exit_code == 0
    assert "profit" in result.output or "loss" in result.output


def test_balance_set_and_reset(tmp_path):
    base = ["--config-dir", str(_config_dir(tmp_path))]
    assert runner.invoke(app, [*base, "balance", "set", "250"]).exit_code == 0
    result = runner.invoke(app, [*base, "balance", "reset-stats"])
    assert result.exit_code == 0
    assert "250.00" in result.output
    assert runner.invoke(app, [*base, "balance", "set", "abc"]).exit_code == 1


def test_balance_history_shows_totals_per_kind(tmp_path):
    base = ["--config-dir", str(_config_dir(tmp_path))]
    assert runner.invoke(app, [*base, "balance", "set", "250"]).exit_code == 0
    assert runner.invoke(app, [*base, "balance", "set", "200"]).exit_code == 0
    result = runner.invoke(app, [*base, "balance", "history"])
    assert result.exit_code == 0
    assert "Totals:" in result.output
    totals = result.output.split("Totals:")[1]
    assert "set" in totals
    assert "2 entries" in totals


def test_run_with_bad_intent_file(tmp_path):
    base = ["--config-dir", str(_config_dir(tmp_path))]
    bad = tmp_path / "bad.json"
    bad.write_text("{}")
    result = runner.invoke(app, [*base, "run", "--intents", str(bad)])
    assert result.exit_code == 1

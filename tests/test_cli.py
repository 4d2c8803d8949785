from __future__ import annotations

from datetime import datetime

from typer.testing import CliRunner

from radmon.cli import app
from radmon.instrument.eventlog import CSV_HEADER, LogEntry, LogStore

runner = CliRunner()


def test_table_interpolate():
    result = runner.invoke(app, ["table", "interpolate", "35"])
    assert result.exit_code == 0
    assert "3.5000 mR/h" in result.output


def test_table_show_lists_default_points():
    result = runner.invoke(app, ["table", "show"])
    assert result.exit_code == 0
    assert "22500" in result.output


def test_table_interpolate_rejects_negative():
    result = runner.invoke(app, ["table", "interpolate", "--", "-5"])
    assert result.exit_code != 0


def test_log_summary(tmp_path):
    store = LogStore()
    store.append(LogEntry(datetime(2025, 1, 1, 0, 0, 0), 100, 10.0, 0.02, "NORMAL"))
    path = tmp_path / "radiation_log_1.csv"
    path.write_text(store.to_csv(), encoding="utf-8")
    result = runner.invoke(app, ["log", "summary", str(path)])
    assert result.exit_code == 0
    assert "Entries: 1" in result.output
    assert "Max dose rate: 10.00 mR/h" in result.output


def test_run_replays_stdin(tmp_path):
    result = runner.invoke(
        app,
        ["run", "--port", "-", "--config", str(tmp_path / "missing.json"), "--export-dir", str(tmp_path)],
        input="Cnts:100!\n@PRG\n",
    )
    assert result.exit_code == 0


def test_log_plot_rejects_malformed_timestamps(tmp_path):
    path = tmp_path / "radiation_log_2.csv"
    path.write_text(CSV_HEADER + "\nnotadate,xx,1,1.00,1.00,NORMAL\n", encoding="utf-8")
    result = runner.invoke(app, ["log", "plot", str(path), "--out", str(tmp_path)])
    assert result.exit_code == 2
    assert not (tmp_path / "dose_log.png").exists()

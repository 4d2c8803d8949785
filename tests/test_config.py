from __future__ import annotations

import json
from pathlib import Path

import pytest

from radmon.instrument.calibration import default_table
from radmon.instrument.config import CumDoseMode, load_config

CONFIG_PATH = Path(__file__).resolve().parents[1] / "host" / "config.json"


def test_defaults_without_file():
    cfg = load_config(None)
    assert cfg.unit == "mR/h"
    assert cfg.alarm_set_point == 1000.0
    assert cfg.calibration_factor == 1.0
    assert cfg.cum_dose_mode_enum is CumDoseMode.AUTO
    assert cfg.calibration_table == default_table()
    assert cfg.host.validation_timeout_sec == 5.0


def test_shipped_config_loads():
    cfg = load_config(CONFIG_PATH)
    assert cfg.unit_options == ["mR/h", "uSv/h", "cGy/h", "CPS", "CPM"]
    assert cfg.alarm_set_point_options == [5.0, 50.0, 100.0, 200.0]
    assert len(cfg.calibration_table) == 12


def test_overrides_apply_nested_values():
    cfg = load_config(
        CONFIG_PATH,
        ["alarm_set_point=50", "host.queue_maxsize=128", "cum_dose_mode=Manual", "timing.blink_period_sec=0.25"],
    )
    assert cfg.alarm_set_point == 50.0
    assert cfg.host.queue_maxsize == 128
    assert cfg.timing.blink_period_sec == 0.25
    live = cfg.live_config()
    assert live.cum_dose_mode is CumDoseMode.MANUAL


def test_inline_calibration_table(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps({"calibration_table": [{"cps": 0, "dose": 0}, {"cps": 1000, "dose": 50}]}),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.calibration_table.interpolate(500) == pytest.approx(25.0)


@pytest.mark.parametrize(
    "override",
    [
        "calibration_factor=2.0",
        "unit=rem",
        "cum_dose_mode=Sometimes",
        "alarm_set_point=-1",
    ],
)
def test_invalid_values_raise(override):
    with pytest.raises(ValueError):
        load_config(None, [override])


def test_malformed_override_raises():
    with pytest.raises(ValueError, match="key=value"):
        load_config(None, ["alarm_set_point"])


def test_descending_table_rejected(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps({"calibration_table": [{"cps": 100, "dose": 10}, {"cps": 50, "dose": 5}]}),
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="ascending"):
        load_config(path)

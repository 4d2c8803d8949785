from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .calibration import CalibrationTable, default_table

UNIT_OPTIONS: List[str] = ["mR/h", "uSv/h", "cGy/h", "CPS", "CPM"]
ALARM_SET_POINT_OPTIONS: List[float] = [5.0, 50.0, 100.0, 200.0]
CALIBRATION_FACTOR_MIN = 0.75
CALIBRATION_FACTOR_MAX = 1.25


class CumDoseMode(str, enum.Enum):
    AUTO = "Auto"
    MANUAL = "Manual"


@dataclass
class HostRuntime:
    queue_maxsize: int = 512
    reconnect_initial_sec: float = 0.5
    reconnect_max_sec: float = 5.0
    stats_log_interval: float = 60.0
    validation_timeout_sec: float = 5.0
    idle_poll_sec: float = 0.05


@dataclass
class TimingConfig:
    display_tick_sec: float = 1.0
    display_throttle_low_sec: float = 4.0
    display_throttle_high_sec: float = 2.0
    display_throttle_threshold: float = 1000.0
    blink_period_sec: float = 0.5


@dataclass
class StagedConfig:
    """Editable subset of the live configuration held while the PRG menu is open."""

    unit: str
    alarm_set_point: float
    calibration_factor: float
    cum_dose_mode: CumDoseMode


@dataclass
class LiveConfig:
    unit: str = "mR/h"
    alarm_set_point: float = 1000.0
    calibration_factor: float = 1.0
    cum_dose_mode: CumDoseMode = CumDoseMode.AUTO
    calibration_table: CalibrationTable = field(default_factory=default_table)

    def staged(self) -> StagedConfig:
        return StagedConfig(
            unit=self.unit,
            alarm_set_point=self.alarm_set_point,
            calibration_factor=self.calibration_factor,
            cum_dose_mode=self.cum_dose_mode,
        )

    def apply(self, staged: StagedConfig) -> None:
        self.unit = staged.unit
        self.alarm_set_point = staged.alarm_set_point
        self.calibration_factor = staged.calibration_factor
        self.cum_dose_mode = staged.cum_dose_mode


@dataclass
class InstrumentConfig:
    unit: str = "mR/h"
    alarm_set_point: float = 1000.0
    calibration_factor: float = 1.0
    cum_dose_mode: str = "Auto"
    calibration_table: CalibrationTable = field(default_factory=default_table)
    unit_options: List[str] = field(default_factory=lambda: list(UNIT_OPTIONS))
    alarm_set_point_options: List[float] = field(default_factory=lambda: list(ALARM_SET_POINT_OPTIONS))
    export_dir: Path = Path("exports")
    timing: TimingConfig = field(default_factory=TimingConfig)
    host: HostRuntime = field(default_factory=HostRuntime)

    @property
    def cum_dose_mode_enum(self) -> CumDoseMode:
        try:
            return CumDoseMode(self.cum_dose_mode)
        except ValueError:
            raise ValueError(f"Unsupported cum_dose_mode '{self.cum_dose_mode}'") from None

    def live_config(self) -> LiveConfig:
        return LiveConfig(
            unit=self.unit,
            alarm_set_point=self.alarm_set_point,
            calibration_factor=self.calibration_factor,
            cum_dose_mode=self.cum_dose_mode_enum,
            calibration_table=self.calibration_table,
        )

    def validate(self) -> None:
        if self.unit not in self.unit_options:
            raise ValueError(f"unit '{self.unit}' not in unit_options {self.unit_options}")
        if not self.alarm_set_point_options:
            raise ValueError("alarm_set_point_options must not be empty")
        if not CALIBRATION_FACTOR_MIN <= self.calibration_factor <= CALIBRATION_FACTOR_MAX:
            raise ValueError(
                f"calibration_factor must be between {CALIBRATION_FACTOR_MIN} and {CALIBRATION_FACTOR_MAX}"
            )
        if self.alarm_set_point < 0:
            raise ValueError("alarm_set_point must be non-negative")
        if self.cum_dose_mode not in {mode.value for mode in CumDoseMode}:
            raise ValueError(f"Unsupported cum_dose_mode '{self.cum_dose_mode}'")


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None, overrides: Sequence[str] | None = None) -> InstrumentConfig:
    """
    Load an instrument configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["alarm_set_point=50", "host.queue_maxsize=128"]
    A *path* of None starts from the built-in defaults.
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    host_data = merged.get("host") or {}
    timing_data = merged.get("timing") or {}
    table_data = merged.get("calibration_table")
    config = InstrumentConfig(
        unit=str(merged.get("unit", "mR/h")),
        alarm_set_point=float(merged.get("alarm_set_point", 1000.0)),
        calibration_factor=float(merged.get("calibration_factor", 1.0)),
        cum_dose_mode=str(merged.get("cum_dose_mode", "Auto")),
        calibration_table=CalibrationTable.from_mapping(table_data) if table_data else default_table(),
        unit_options=[str(value) for value in merged.get("unit_options", UNIT_OPTIONS)],
        alarm_set_point_options=[
            float(value) for value in merged.get("alarm_set_point_options", ALARM_SET_POINT_OPTIONS)
        ],
        export_dir=Path(merged.get("export_dir", "exports")),
        timing=TimingConfig(
            display_tick_sec=float(timing_data.get("display_tick_sec", 1.0)),
            display_throttle_low_sec=float(timing_data.get("display_throttle_low_sec", 4.0)),
            display_throttle_high_sec=float(timing_data.get("display_throttle_high_sec", 2.0)),
            display_throttle_threshold=float(timing_data.get("display_throttle_threshold", 1000.0)),
            blink_period_sec=float(timing_data.get("blink_period_sec", 0.5)),
        ),
        host=HostRuntime(
            queue_maxsize=int(host_data.get("queue_maxsize", 512)),
            reconnect_initial_sec=float(host_data.get("reconnect_initial_sec", 0.5)),
            reconnect_max_sec=float(host_data.get("reconnect_max_sec", 5.0)),
            stats_log_interval=float(host_data.get("stats_log_interval", 60.0)),
            validation_timeout_sec=float(host_data.get("validation_timeout_sec", 5.0)),
            idle_poll_sec=float(host_data.get("idle_poll_sec", 0.05)),
        ),
    )
    config.validate()
    return config


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value

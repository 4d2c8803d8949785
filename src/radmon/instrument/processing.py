from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import numpy as np

from .config import CumDoseMode, LiveConfig
from .eventlog import LogEntry, LogStore
from .frames import FrameParser, Sample

logger = logging.getLogger(__name__)

LOW_DOSE_LIMIT = 100.0
MID_DOSE_LIMIT = 1000.0


def select_time_constant(dose: float) -> int:
    """Window length (in samples, and integrator seconds) for an instantaneous dose."""
    if dose <= LOW_DOSE_LIMIT:
        return 8
    if dose <= MID_DOSE_LIMIT:
        return 4
    return 2


class ManualRunState(str, enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    ARMED_RESTART = "armed_restart"

    @property
    def label(self) -> str:
        """Caption shown on the front panel's manual control."""
        return {
            ManualRunState.STOPPED: "start",
            ManualRunState.RUNNING: "stop",
            ManualRunState.ARMED_RESTART: "restart",
        }[self]


@dataclass
class ConditioningState:
    window: List[int] = field(default_factory=list)
    time_constant: int = select_time_constant(0.0)
    smoothed_dose_rate: float = 0.0
    last_cps: int = 0


@dataclass
class CumulativeDoseState:
    cumulative_dose: float = 0.0
    manual_run_state: ManualRunState = ManualRunState.STOPPED

    def reset(self) -> None:
        self.cumulative_dose = 0.0


@dataclass
class DoseReading:
    """Conditioned value emitted after every accepted sample."""

    seq: int
    cps: int
    instantaneous_dose: float
    time_constant: int
    mean_cps: float
    dose_rate: float


class SignalConditioner:
    """
    Adaptive moving average over raw count rates.

    Each sample selects the window length from its own interpolated dose, the
    window is trimmed to that length and its mean is converted back to a dose
    rate and scaled by the live calibration factor.
    """

    def __init__(self, config: LiveConfig, state: Optional[ConditioningState] = None):
        self.config = config
        self.state = state or ConditioningState()

    def process(self, sample: Sample) -> DoseReading:
        table = self.config.calibration_table
        instantaneous = table.interpolate(sample.cps)
        tc = select_time_constant(instantaneous)
        window = (self.state.window + [sample.cps])[-tc:]
        mean_cps = float(np.mean(window))
        dose_rate = table.interpolate(mean_cps) * self.config.calibration_factor
        self.state.window = window
        self.state.time_constant = tc
        self.state.smoothed_dose_rate = dose_rate
        self.state.last_cps = sample.cps
        return DoseReading(
            seq=sample.seq,
            cps=sample.cps,
            instantaneous_dose=instantaneous,
            time_constant=tc,
            mean_cps=mean_cps,
            dose_rate=dose_rate,
        )

    def recompute(self) -> float:
        """Re-derive the dose rate from the current window after a config change."""
        if not self.state.window:
            return self.state.smoothed_dose_rate
        mean_cps = float(np.mean(self.state.window))
        table = self.config.calibration_table
        self.state.smoothed_dose_rate = table.interpolate(mean_cps) * self.config.calibration_factor
        return self.state.smoothed_dose_rate

    @property
    def time_constant(self) -> int:
        return self.state.time_constant

    @property
    def dose_rate(self) -> float:
        return self.state.smoothed_dose_rate


class DoseIntegrator:
    """
    Rectangular integration of the smoothed dose rate.

    `fire()` is driven by a scheduler task whose interval is the conditioner's
    current time constant in seconds; every firing also appends a log entry.
    """

    def __init__(
        self,
        conditioner: SignalConditioner,
        dose: CumulativeDoseState,
        log_store: LogStore,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        self.conditioner = conditioner
        self.dose = dose
        self.log_store = log_store
        self._wall_clock = wall_clock

    @property
    def interval(self) -> float:
        return float(self.conditioner.time_constant)

    def accumulating(self) -> bool:
        config = self.conditioner.config
        if config.cum_dose_mode is CumDoseMode.AUTO:
            return True
        return self.dose.manual_run_state is ManualRunState.RUNNING

    def increment(self) -> float:
        if not self.accumulating():
            return 0.0
        return (self.conditioner.dose_rate / 3600.0) * self.conditioner.time_constant

    def fire(self, _now: float = 0.0) -> LogEntry:
        self.dose.cumulative_dose += self.increment()
        dose_rate = self.conditioner.dose_rate
        alert = "ALARM" if dose_rate >= self.conditioner.config.alarm_set_point else "NORMAL"
        entry = LogEntry(
            timestamp=self._wall_clock(),
            cps=self.conditioner.state.last_cps,
            dose_rate=dose_rate,
            cumulative_dose=self.dose.cumulative_dose,
            alert=alert,
        )
        self.log_store.append(entry)
        logger.debug(
            "Integrated dose_rate=%.4f tc=%ds cumulative=%.4f %s",
            dose_rate,
            self.conditioner.time_constant,
            entry.cumulative_dose,
            alert,
        )
        return entry


class SamplePipeline:
    """
    Glue that converts text frames into conditioned readings and fans them out.
    """

    def __init__(self, parser: FrameParser, conditioner: SignalConditioner):
        self.parser = parser
        self.conditioner = conditioner
        self._callbacks: List[Callable[[DoseReading], None]] = []

    def process(self, frame: str) -> Optional[DoseReading]:
        sample = self.parser.decode(frame)
        if sample is None:
            return None
        reading = self.conditioner.process(sample)
        for callback in self._callbacks:
            callback(reading)
        return reading

    def register_callback(self, callback: Callable[[DoseReading], None]) -> None:
        self._callbacks.append(callback)

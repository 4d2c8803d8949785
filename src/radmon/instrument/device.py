from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .alarm import AlarmMonitor
from .config import InstrumentConfig
from .display import DisplayThrottle, format_dose
from .eventlog import ExportSink, FileExporter, LogStore
from .feedback import AudioSink, HapticSink, LoggingAudio, LoggingHaptics
from .frames import FrameParser
from .menu import Button, MenuController, MenuState
from .processing import (
    CumulativeDoseState,
    DoseIntegrator,
    DoseReading,
    SamplePipeline,
    SignalConditioner,
)
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class Instrument:
    """
    One survey meter: decoder, conditioner, integrator, alarm, display and
    front-panel menu sharing a single live configuration.

    All handlers run on the caller's thread. The host feeds frames and button
    presses in arrival order and calls `run_pending()` between them so timer
    work never interleaves with an event.
    """

    def __init__(
        self,
        config: InstrumentConfig,
        *,
        scheduler: Optional[Scheduler] = None,
        audio: Optional[AudioSink] = None,
        haptics: Optional[HapticSink] = None,
        export_sink: Optional[ExportSink] = None,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.live = config.live_config()
        self.scheduler = scheduler or Scheduler()
        self.audio = audio or LoggingAudio()
        self.haptics = haptics or LoggingHaptics()
        self.export_sink = export_sink or FileExporter(config.export_dir)

        self.parser = FrameParser()
        self.conditioner = SignalConditioner(self.live)
        self.pipeline = SamplePipeline(self.parser, self.conditioner)
        self.pipeline.register_callback(self._on_reading)
        self.dose = CumulativeDoseState()
        self.log_store = LogStore()
        self.integrator = DoseIntegrator(self.conditioner, self.dose, self.log_store, wall_clock=wall_clock)
        self.alarm = AlarmMonitor(
            self.scheduler,
            self.audio,
            self.haptics,
            blink_period=config.timing.blink_period_sec,
        )
        self.display = DisplayThrottle(config.timing, self.scheduler.now())
        self.menu = MenuController(
            self.live,
            self.dose,
            unit_options=config.unit_options,
            alarm_set_point_options=config.alarm_set_point_options,
            exporter=self.export,
            haptics=self.haptics,
            on_commit=self._on_commit,
        )
        self._integrator_task = self.scheduler.call_every(
            lambda: self.integrator.interval, self._integrate, name="integrator"
        )
        self._display_task = self.scheduler.call_every(
            config.timing.display_tick_sec, self._tick_display, name="display"
        )
        self.last_reading: Optional[DoseReading] = None

    # -- event handlers --------------------------------------------------

    def on_frame(self, text: str) -> Optional[DoseReading]:
        return self.pipeline.process(text)

    def on_bytes(self, raw: bytes) -> Optional[DoseReading]:
        return self.on_frame(raw.decode("utf-8", errors="ignore"))

    def press(self, button: Button) -> MenuState:
        return self.menu.press(button)

    def run_pending(self, now: Optional[float] = None) -> int:
        return self.scheduler.run_pending(now)

    def export(self) -> Path:
        return self.log_store.export(self.export_sink)

    # -- internals -------------------------------------------------------

    def _on_reading(self, reading: DoseReading) -> None:
        self.last_reading = reading
        self.alarm.evaluate(reading.dose_rate, self.live.alarm_set_point)

    def _on_commit(self) -> None:
        dose_rate = self.conditioner.recompute()
        self.alarm.evaluate(dose_rate, self.live.alarm_set_point)

    def _integrate(self, now: float) -> None:
        self.integrator.fire(now)

    def _tick_display(self, now: float) -> None:
        self.display.tick(now, self.conditioner.dose_rate)

    # -- presentation ----------------------------------------------------

    @property
    def status_word(self) -> str:
        return "ALARM!" if self.alarm.active else "NORMAL"

    @property
    def display_text(self) -> str:
        return format_dose(self.display.displayed, self.live.unit, self.conditioner.state.last_cps)

    @property
    def cumulative_text(self) -> str:
        return f"{self.dose.cumulative_dose:.2f} mR"

    def close(self) -> None:
        self.alarm.close()
        self.scheduler.cancel_all()
        stats = self.parser.stats()
        logger.info(
            "Instrument closed: frames=%d samples=%d decode_misses=%d log_entries=%d cumulative=%.4f",
            stats["frames"],
            stats["samples"],
            stats["decode_misses"],
            len(self.log_store),
            self.dose.cumulative_dose,
        )

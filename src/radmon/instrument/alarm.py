from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .feedback import AudioSink, Haptic, HapticSink
from .scheduler import Scheduler, TaskHandle

logger = logging.getLogger(__name__)


@dataclass
class AlarmState:
    active: bool = False
    blink_phase: bool = False


class AlarmMonitor:
    """
    Edge-triggered threshold alarm over the smoothed dose rate.

    Activation starts the audible alert, fires one error haptic and schedules
    the blink oscillator; deactivation stops the alert and cancels the blink
    task. There is no hysteresis band.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        audio: AudioSink,
        haptics: HapticSink,
        blink_period: float = 0.5,
    ):
        self.scheduler = scheduler
        self.audio = audio
        self.haptics = haptics
        self.blink_period = blink_period
        self.state = AlarmState()
        self._blink: Optional[TaskHandle] = None

    @property
    def active(self) -> bool:
        return self.state.active

    def evaluate(self, dose_rate: float, set_point: float) -> bool:
        if not self.state.active and dose_rate >= set_point:
            self._activate(dose_rate, set_point)
        elif self.state.active and dose_rate < set_point:
            self._deactivate(dose_rate, set_point)
        return self.state.active

    def _activate(self, dose_rate: float, set_point: float) -> None:
        self.state.active = True
        logger.warning("Alarm raised: dose rate %.2f >= set point %.2f", dose_rate, set_point)
        self.audio.start_alert()
        self.haptics.trigger(Haptic.NOTIFICATION_ERROR)
        self._blink = self.scheduler.call_every(self.blink_period, self._toggle_blink, name="alarm-blink")

    def _deactivate(self, dose_rate: float, set_point: float) -> None:
        self.state.active = False
        logger.info("Alarm cleared: dose rate %.2f < set point %.2f", dose_rate, set_point)
        self.audio.stop_alert()
        self._stop_blink()

    def _toggle_blink(self, _now: float) -> None:
        self.state.blink_phase = not self.state.blink_phase

    def _stop_blink(self) -> None:
        if self._blink is not None:
            self._blink.cancel()
            self._blink = None
        self.state.blink_phase = False

    def close(self) -> None:
        if self.state.active:
            self.audio.stop_alert()
        self.state.active = False
        self._stop_blink()

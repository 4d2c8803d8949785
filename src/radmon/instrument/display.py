from __future__ import annotations

from .config import TimingConfig


def format_dose(dose: float, unit: str, raw_cps: int) -> str:
    """Render a native mR/h dose rate in the selected display unit."""
    if unit == "mR/h":
        if dose >= 100000:
            return f"{dose / 1000:.0f} R/h"
        if dose >= 10000:
            return f"{dose / 1000:.1f} R/h"
        if dose >= 1000:
            return f"{dose / 1000:.2f} R/h"
        return f"{dose:.2f} mR/h"

    if unit == "uSv/h":
        microsievert = dose * 10
        if microsievert >= 1000000:
            return f"{microsievert / 1000000:.2f} Sv/h"
        if microsievert >= 100000:
            return f"{microsievert / 1000:.0f} mSv/h"
        if microsievert >= 10000:
            return f"{microsievert / 1000:.1f} mSv/h"
        if microsievert >= 1000:
            return f"{microsievert / 1000:.2f} mSv/h"
        return f"{microsievert:.2f} µSv/h"

    if unit == "cGy/h":
        return f"{dose * 0.001:.4f} cGy/h"
    if unit == "CPS":
        return f"{raw_cps} cps"
    if unit == "CPM":
        return f"{raw_cps * 60} cpm"
    return f"{dose:.2f} mR/h"


class DisplayThrottle:
    """
    Decouples the displayed value from the internal recompute rate.

    Driven by the 1 Hz display tick; a new value is published only once the
    throttle interval for the current dose band has elapsed.
    """

    def __init__(self, timing: TimingConfig, started: float):
        self.timing = timing
        self.displayed = 0.0
        self.last_publish = started

    def required_interval(self, dose_rate: float) -> float:
        if dose_rate <= self.timing.display_throttle_threshold:
            return self.timing.display_throttle_low_sec
        return self.timing.display_throttle_high_sec

    def tick(self, now: float, dose_rate: float) -> bool:
        if now - self.last_publish < self.required_interval(dose_rate):
            return False
        self.displayed = dose_rate
        self.last_publish = now
        return True

from __future__ import annotations

import enum
import logging
from typing import List, Protocol

logger = logging.getLogger(__name__)


class Haptic(str, enum.Enum):
    IMPACT_LIGHT = "impactLight"
    IMPACT_MEDIUM = "impactMedium"
    IMPACT_HEAVY = "impactHeavy"
    NOTIFICATION_ERROR = "notificationError"


class AudioSink(Protocol):
    def start_alert(self) -> None: ...

    def stop_alert(self) -> None: ...


class HapticSink(Protocol):
    def trigger(self, pattern: Haptic) -> None: ...


class LoggingAudio:
    """Audio collaborator that only records the requested alert state."""

    def __init__(self) -> None:
        self.playing = False

    def start_alert(self) -> None:
        self.playing = True
        logger.info("Audible alert started")

    def stop_alert(self) -> None:
        self.playing = False
        logger.info("Audible alert stopped")


class LoggingHaptics:
    def __init__(self) -> None:
        self.history: List[Haptic] = []

    def trigger(self, pattern: Haptic) -> None:
        self.history.append(pattern)
        logger.debug("Haptic %s", pattern.value)

from __future__ import annotations

from radmon.instrument.alarm import AlarmMonitor
from radmon.instrument.feedback import Haptic
from radmon.instrument.scheduler import Scheduler


class FakeClock:
    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


class RecordingAudio:
    def __init__(self) -> None:
        self.events: list[str] = []

    def start_alert(self) -> None:
        self.events.append("start")

    def stop_alert(self) -> None:
        self.events.append("stop")


class RecordingHaptics:
    def __init__(self) -> None:
        self.patterns: list[Haptic] = []

    def trigger(self, pattern: Haptic) -> None:
        self.patterns.append(pattern)


def _monitor():
    scheduler = Scheduler(clock=FakeClock())
    audio = RecordingAudio()
    haptics = RecordingHaptics()
    return AlarmMonitor(scheduler, audio, haptics, blink_period=0.5), scheduler, audio, haptics


def test_alarm_is_edge_triggered():
    monitor, _scheduler, audio, haptics = _monitor()
    assert monitor.evaluate(999.9, 1000.0) is False
    assert monitor.evaluate(1000.0, 1000.0) is True
    assert monitor.evaluate(1500.0, 1000.0) is True
    assert audio.events == ["start"]
    assert haptics.patterns == [Haptic.NOTIFICATION_ERROR]

    assert monitor.evaluate(999.0, 1000.0) is False
    assert monitor.evaluate(10.0, 1000.0) is False
    assert audio.events == ["start", "stop"]
    assert haptics.patterns == [Haptic.NOTIFICATION_ERROR]


def test_blink_oscillates_only_while_active():
    monitor, scheduler, _audio, _haptics = _monitor()
    monitor.evaluate(50.0, 5.0)
    assert scheduler.active == 1

    scheduler.run_pending(0.5)
    assert monitor.state.blink_phase is True
    scheduler.run_pending(1.0)
    assert monitor.state.blink_phase is False
    scheduler.run_pending(1.5)
    assert monitor.state.blink_phase is True

    monitor.evaluate(1.0, 5.0)
    assert monitor.state.blink_phase is False
    assert scheduler.active == 0
    scheduler.run_pending(2.0)
    assert monitor.state.blink_phase is False


def test_reactivation_starts_a_fresh_blink_task():
    monitor, scheduler, audio, _haptics = _monitor()
    monitor.evaluate(50.0, 5.0)
    monitor.evaluate(1.0, 5.0)
    monitor.evaluate(50.0, 5.0)
    assert scheduler.active == 1
    assert audio.events == ["start", "stop", "start"]


def test_close_silences_active_alarm():
    monitor, scheduler, audio, _haptics = _monitor()
    monitor.evaluate(50.0, 5.0)
    monitor.close()
    assert monitor.active is False
    assert audio.events == ["start", "stop"]
    assert scheduler.active == 0


def test_alarm_sequence_around_set_point():
    monitor, _scheduler, _audio, _haptics = _monitor()
    states = [monitor.evaluate(value, 1000.0) for value in (900.0, 1000.0, 1100.0, 999.0)]
    assert states == [False, True, True, False]

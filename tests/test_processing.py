from __future__ import annotations

from datetime import datetime

import pytest

from radmon.instrument.config import CumDoseMode, LiveConfig
from radmon.instrument.eventlog import LogStore
from radmon.instrument.frames import FrameParser, Sample
from radmon.instrument.processing import (
    CumulativeDoseState,
    DoseIntegrator,
    ManualRunState,
    SamplePipeline,
    SignalConditioner,
    select_time_constant,
)


@pytest.mark.parametrize(
    "dose, expected",
    [
        (0.0, 8),
        (100.0, 8),
        (100.01, 4),
        (1000.0, 4),
        (1000.01, 2),
        (10000.0, 2),
    ],
)
def test_select_time_constant_bands(dose, expected):
    assert select_time_constant(dose) == expected


def _integrator(live: LiveConfig):
    conditioner = SignalConditioner(live)
    dose = CumulativeDoseState()
    store = LogStore(capacity=10)
    integrator = DoseIntegrator(
        conditioner, dose, store, wall_clock=lambda: datetime(2025, 1, 2, 3, 4, 5)
    )
    return conditioner, dose, store, integrator


def test_conditioner_first_sample():
    conditioner = SignalConditioner(LiveConfig())
    reading = conditioner.process(Sample(cps=360, seq=1))
    assert reading.instantaneous_dose == pytest.approx(36.0)
    assert reading.time_constant == 8
    assert reading.mean_cps == pytest.approx(360.0)
    assert reading.dose_rate == pytest.approx(36.0)
    assert conditioner.state.window == [360]


def test_conditioner_trims_window_to_new_time_constant():
    live = LiveConfig()
    conditioner = SignalConditioner(live)
    for seq in range(6):
        conditioner.process(Sample(cps=10, seq=seq))
    assert len(conditioner.state.window) == 6
    reading = conditioner.process(Sample(cps=10000, seq=7))
    assert reading.time_constant == 2
    assert conditioner.state.window == [10, 10000]
    assert reading.dose_rate == pytest.approx(live.calibration_table.interpolate(5005.0))


def test_conditioner_window_never_exceeds_eight():
    conditioner = SignalConditioner(LiveConfig())
    for seq in range(20):
        conditioner.process(Sample(cps=50, seq=seq))
    assert len(conditioner.state.window) == 8


def test_conditioner_applies_calibration_factor_and_recompute():
    live = LiveConfig(calibration_factor=1.2)
    conditioner = SignalConditioner(live)
    reading = conditioner.process(Sample(cps=100, seq=1))
    assert reading.dose_rate == pytest.approx(12.0)
    live.calibration_factor = 0.8
    assert conditioner.recompute() == pytest.approx(8.0)
    assert conditioner.dose_rate == pytest.approx(8.0)


def test_integrator_accumulates_in_auto_mode():
    conditioner, dose, store, integrator = _integrator(LiveConfig())
    conditioner.process(Sample(cps=360, seq=1))
    assert integrator.interval == 8.0
    entry = integrator.fire()
    assert dose.cumulative_dose == pytest.approx(36.0 / 3600.0 * 8)
    assert entry.alert == "NORMAL"
    assert entry.cps == 360
    assert entry.rtc == "20250102,030405"
    assert len(store) == 1


def test_integrator_manual_mode_only_accumulates_while_running():
    live = LiveConfig(cum_dose_mode=CumDoseMode.MANUAL)
    conditioner, dose, store, integrator = _integrator(live)
    conditioner.process(Sample(cps=360, seq=1))

    integrator.fire()
    assert dose.cumulative_dose == 0.0
    assert len(store) == 1

    dose.manual_run_state = ManualRunState.RUNNING
    integrator.fire()
    assert dose.cumulative_dose == pytest.approx(0.08)

    dose.manual_run_state = ManualRunState.ARMED_RESTART
    integrator.fire()
    assert dose.cumulative_dose == pytest.approx(0.08)
    assert len(store) == 3


def test_integrator_flags_alarm_at_set_point():
    live = LiveConfig(alarm_set_point=36.0)
    conditioner, _dose, _store, integrator = _integrator(live)
    conditioner.process(Sample(cps=360, seq=1))
    assert integrator.fire().alert == "ALARM"


def test_manual_run_state_labels():
    assert ManualRunState.STOPPED.label == "start"
    assert ManualRunState.RUNNING.label == "stop"
    assert ManualRunState.ARMED_RESTART.label == "restart"


def test_sample_pipeline_invokes_callbacks_for_decoded_frames():
    pipeline = SamplePipeline(FrameParser(), SignalConditioner(LiveConfig()))
    seen = []
    pipeline.register_callback(seen.append)
    assert pipeline.process("garbage") is None
    reading = pipeline.process("Cnts:100!")
    assert reading is not None
    assert reading.dose_rate == pytest.approx(10.0)
    assert seen == [reading]


def test_integrator_increment_for_four_second_interval():
    conditioner, dose, _store, integrator = _integrator(LiveConfig())
    conditioner.state.smoothed_dose_rate = 120.0
    conditioner.state.time_constant = 4
    assert integrator.increment() == pytest.approx(0.1333, abs=1e-4)
    integrator.fire()
    assert dose.cumulative_dose == pytest.approx(120.0 / 3600.0 * 4)

"""
Survey meter core: count-frame decoding, adaptive smoothing, dose
integration, threshold alarm and the five-button front-panel menu.

`Instrument` wires the pieces around one live configuration; `InstrumentHost`
feeds it from a serial port or a text stream.
"""

from .alarm import AlarmMonitor
from .calibration import CalibrationPoint, CalibrationTable, commit_rows, default_table
from .config import CumDoseMode, HostRuntime, InstrumentConfig, LiveConfig, TimingConfig, load_config
from .device import Instrument
from .display import DisplayThrottle, format_dose
from .eventlog import ExportError, FileExporter, LogEntry, LogStore
from .frames import FrameParser, Sample
from .menu import Button, MenuController, MenuState
from .processing import DoseIntegrator, SamplePipeline, SignalConditioner, select_time_constant
from .runner import InstrumentHost
from .scheduler import Scheduler, TaskHandle

__all__ = [
    "AlarmMonitor",
    "CalibrationPoint",
    "CalibrationTable",
    "commit_rows",
    "default_table",
    "CumDoseMode",
    "HostRuntime",
    "InstrumentConfig",
    "LiveConfig",
    "TimingConfig",
    "load_config",
    "Instrument",
    "DisplayThrottle",
    "format_dose",
    "ExportError",
    "FileExporter",
    "LogEntry",
    "LogStore",
    "FrameParser",
    "Sample",
    "Button",
    "MenuController",
    "MenuState",
    "DoseIntegrator",
    "SamplePipeline",
    "SignalConditioner",
    "select_time_constant",
    "InstrumentHost",
    "Scheduler",
    "TaskHandle",
]

from __future__ import annotations

import logging
import queue
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

import typer

try:
    import serial  # type: ignore[import]
except ImportError:  # pragma: no cover - handled in CLI validation
    serial = None  # type: ignore[assignment]

from .calibration import CalibrationTable
from .config import HostRuntime, InstrumentConfig, load_config
from .device import Instrument
from .frames import CNTS_PATTERN, iterate_text_stream
from .menu import Button

logger = logging.getLogger(__name__)

BUTTON_PREFIX = "@"


class InvalidDeviceError(RuntimeError):
    """Raised when a connected port never produces a decodable frame."""


@dataclass
class SerialSettings:
    port: str
    baudrate: int = 115200
    timeout: float = 1.0


@dataclass(frozen=True)
class FrameEvent:
    text: str


@dataclass(frozen=True)
class ButtonEvent:
    button: Button


HostEvent = Union[FrameEvent, ButtonEvent]


def parse_button(line: str) -> Optional[Button]:
    """Return the button named by an `@<BUTTON>` control line, else None."""
    if not line.startswith(BUTTON_PREFIX):
        return None
    name = line[len(BUTTON_PREFIX):].strip().upper()
    try:
        return Button(name)
    except ValueError:
        logger.warning("Unknown button %r", name)
        return None


class SerialReaderThread(threading.Thread):
    def __init__(
        self,
        settings: SerialSettings,
        runtime: HostRuntime,
        event_queue: "queue.Queue[HostEvent]",
    ) -> None:
        super().__init__(daemon=True)
        self.settings = settings
        self.runtime = runtime
        self.queue = event_queue
        self._stop_event = threading.Event()
        self._serial_handle = None
        self._lines = 0
        self._dropped = 0
        self._reconnects = 0
        self._invalid = 0
        self._connected_once = False
        self.last_exception: Optional[Exception] = None
        self._log = logging.getLogger(__name__)

    def run(self) -> None:  # pragma: no cover - exercised via integration-style tests
        initial_delay = max(self.runtime.reconnect_initial_sec, 0.01)
        max_delay = max(self.runtime.reconnect_max_sec, initial_delay)
        backoff = initial_delay
        while not self._stop_event.is_set():
            self._serial_handle = None
            try:
                self._serial_handle = self._open_serial()
                if self._connected_once:
                    self._reconnects += 1
                    self._log.info("Reconnected to %s", self.settings.port)
                else:
                    self._log.info("Connected to %s", self.settings.port)
                    self._connected_once = True
                self.last_exception = None
                backoff = initial_delay
                for line in self._iter_validated_lines():
                    if self._stop_event.is_set():
                        break
                    self._emit(FrameEvent(line))
            except InvalidDeviceError as exc:
                self._invalid += 1
                self.last_exception = exc
                self._log.warning("Invalid device on %s: %s", self.settings.port, exc)
            except serial.SerialException as exc:  # type: ignore[union-attr]
                self.last_exception = exc
                self._log.warning("Serial error (%s): %s", self.settings.port, exc)
            except Exception as exc:  # pragma: no cover - defensive
                self.last_exception = exc
                self._log.exception("Unexpected error in serial reader")
            finally:
                self._close_handle()
            if self._stop_event.is_set():
                break
            wait_time = min(backoff, max_delay)
            self._log.info("Reconnecting in %.1fs", wait_time)
            self._stop_event.wait(wait_time)
            backoff = min(backoff * 2, max_delay)

    def stop(self) -> None:
        self._stop_event.set()
        self._close_handle()

    def stats(self) -> dict[str, int]:
        return {
            "lines": self._lines,
            "dropped": self._dropped,
            "reconnects": self._reconnects,
            "invalid_devices": self._invalid,
        }

    def _emit(self, event: HostEvent) -> None:
        try:
            self.queue.put(event, timeout=1.0)
        except queue.Full:
            self._dropped += 1
            self._log.warning("Event queue full (%d), dropping frame", self.queue.qsize())

    def _iter_validated_lines(self):
        deadline = time.monotonic() + self.runtime.validation_timeout_sec
        validated = False
        while not self._stop_event.is_set():
            line = self._readline()
            if line is None:
                if not validated and time.monotonic() > deadline:
                    raise InvalidDeviceError(
                        f"no count frame within {self.runtime.validation_timeout_sec:.1f}s"
                    )
                continue
            self._lines += 1
            if not validated:
                if CNTS_PATTERN.search(line) is None:
                    if time.monotonic() > deadline:
                        raise InvalidDeviceError(
                            f"no count frame within {self.runtime.validation_timeout_sec:.1f}s"
                        )
                    continue
                validated = True
                self._log.info("Device on %s validated", self.settings.port)
            yield line

    def _readline(self) -> Optional[str]:
        if self._serial_handle is None:
            return None
        raw = self._serial_handle.readline()
        if not raw:
            return None
        line = raw.decode("utf-8", errors="ignore").strip()
        return line or None

    def _close_handle(self) -> None:
        handle = self._serial_handle
        self._serial_handle = None
        if handle is not None:
            try:
                handle.close()
            except Exception as exc:  # pragma: no cover - best effort on shutdown
                self._log.debug("Error closing %s: %s", self.settings.port, exc)

    def _open_serial(self):
        if serial is None:
            raise ImportError("pyserial is required but not installed. Install extra 'serial'.")
        return serial.Serial(
            port=self.settings.port,
            baudrate=self.settings.baudrate,
            timeout=self.settings.timeout,
        )


class InstrumentHost:
    """
    Host-side event loop.

    The serial reader thread and `press()` only enqueue; this loop is the sole
    consumer and runs due scheduler tasks between events.
    """

    def __init__(
        self,
        settings: SerialSettings,
        config: InstrumentConfig,
        instrument: Optional[Instrument] = None,
    ):
        self.settings = settings
        self.config = config
        self.instrument = instrument or Instrument(config)
        self.queue: "queue.Queue[HostEvent]" = queue.Queue(maxsize=config.host.queue_maxsize)
        self.processed = 0
        self._stop_event = threading.Event()

    def press(self, button: Button) -> None:
        self.queue.put(ButtonEvent(button))

    def stop(self) -> None:
        self._stop_event.set()

    def dispatch(self, event: HostEvent) -> None:
        if isinstance(event, ButtonEvent):
            self.instrument.press(event.button)
        else:
            self.instrument.on_frame(event.text)
        self.processed += 1
        for notice in self.instrument.menu.pop_notices():
            logger.warning("%s: %s", notice.title, notice.message)

    def run(self) -> None:
        if self.settings.port == "-":
            self.process_stream(sys.stdin)
            return

        reader = SerialReaderThread(self.settings, self.config.host, self.queue)
        reader.start()
        interval_sec = max(float(self.config.host.stats_log_interval), 5.0)
        poll_sec = max(float(self.config.host.idle_poll_sec), 0.01)
        next_log = time.monotonic() + interval_sec

        def emit_stats() -> None:
            stats = reader.stats()
            parser_stats = self.instrument.parser.stats()
            logger.info(
                "processed=%d frames=%d decode_misses=%d dropped=%d reconnects=%d invalid_devices=%d cumulative=%s",
                self.processed,
                parser_stats.get("frames", 0),
                parser_stats.get("decode_misses", 0),
                stats.get("dropped", 0),
                stats.get("reconnects", 0),
                stats.get("invalid_devices", 0),
                self.instrument.cumulative_text,
            )

        try:
            while not self._stop_event.is_set():
                try:
                    event = self.queue.get(timeout=poll_sec)
                except queue.Empty:
                    pass
                else:
                    self.dispatch(event)
                self.instrument.run_pending()
                if time.monotonic() >= next_log:
                    emit_stats()
                    next_log = time.monotonic() + interval_sec
        except KeyboardInterrupt:
            logger.info("Stopping host (Ctrl+C)")
        finally:
            reader.stop()
            reader.join(timeout=5)
            emit_stats()
            self.instrument.close()

    def process_stream(self, lines: Iterable[str]) -> int:
        """Replay frames and `@<BUTTON>` lines from a text stream in order."""
        try:
            for line in iterate_text_stream(lines):
                button = parse_button(line)
                if button is not None:
                    self.dispatch(ButtonEvent(button))
                elif not line.startswith(BUTTON_PREFIX):
                    self.dispatch(FrameEvent(line))
                self.instrument.run_pending()
            stats = self.instrument.parser.stats()
            logger.info(
                "Processed %d events from stream (samples=%d decode_misses=%d cumulative=%s)",
                self.processed,
                stats.get("samples", 0),
                stats.get("decode_misses", 0),
                self.instrument.cumulative_text,
            )
        finally:
            self.instrument.close()
        return self.processed


table_app = typer.Typer(help="Calibration table utilities.")


def _load_table(config_path: Optional[Path], overrides: Optional[List[str]]) -> CalibrationTable:
    try:
        cfg = load_config(config_path, overrides)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return cfg.calibration_table


@table_app.command("show")
def table_show(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Instrument config JSON."),
    override: Optional[List[str]] = typer.Option(None, "--set", help="Override config keys."),
):
    """Print the configured CPS to dose table."""

    table = _load_table(config_path, override)
    typer.echo(f"{'CPS':>8}  {'Dose (mR/h)':>12}")
    for point in table:
        typer.echo(f"{point.cps:>8}  {point.dose:>12g}")


@table_app.command("interpolate")
def table_interpolate(
    cps: float = typer.Argument(..., help="Count rate to convert."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Instrument config JSON."),
    override: Optional[List[str]] = typer.Option(None, "--set", help="Override config keys."),
):
    """Convert a count rate to a dose rate with the configured table."""

    if cps < 0:
        raise typer.BadParameter("CPS must be non-negative")
    table = _load_table(config_path, override)
    typer.echo(f"{table.interpolate(cps):.4f} mR/h")


def run(
    port: str = typer.Option(
        "/dev/ttyUSB0", "--port", "-p", help="Serial device. Use '-' to read from stdin."
    ),
    baudrate: int = typer.Option(115200, "--baud", help="Serial baudrate."),
    timeout: float = typer.Option(1.0, "--timeout", help="Serial read timeout (seconds)."),
    config_path: Optional[Path] = typer.Option(
        Path("host/config.json"), "--config", "-c", help="Path to instrument config."
    ),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set alarm_set_point=50 --set host.queue_maxsize=128",
    ),
    export_dir: Optional[Path] = typer.Option(None, "--export-dir", help="Directory for exported CSV logs."),
):
    """Run the instrument: read count frames, drive the alarm and log the dose."""

    if config_path is not None and not config_path.exists():
        logger.warning("Config %s not found, using defaults", config_path)
        config_path = None
    try:
        cfg = load_config(config_path, override)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if export_dir is not None:
        cfg.export_dir = export_dir
    if port != "-" and serial is None:
        raise typer.BadParameter("pyserial is required for serial ports (pip install .[serial])")
    settings = SerialSettings(port=port, baudrate=baudrate, timeout=timeout)
    host = InstrumentHost(settings=settings, config=cfg)
    logger.info(
        "Starting host on %s (unit=%s set_point=%.1f mode=%s)",
        port,
        cfg.unit,
        cfg.alarm_set_point,
        cfg.cum_dose_mode,
    )
    host.run()

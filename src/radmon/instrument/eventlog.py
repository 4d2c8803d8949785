from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Deque, Iterator, List, Optional, Protocol

logger = logging.getLogger(__name__)

LOG_CAPACITY = 1000
CSV_HEADER = "RTC (YYYYMMDD,HHMMSS),CPS,Dose Rate (in mR/hr),Dose (in mR/hr),Radiation Alert"


class ExportError(RuntimeError):
    """Raised when the exported log could not be written or shared."""


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    cps: int
    dose_rate: float
    cumulative_dose: float
    alert: str

    @property
    def rtc(self) -> str:
        return self.timestamp.strftime("%Y%m%d,%H%M%S")

    def csv_line(self) -> str:
        return f"{self.rtc},{self.cps},{self.dose_rate:.2f},{self.cumulative_dose:.2f},{self.alert}"


class ExportSink(Protocol):
    def share(self, payload: bytes, filename: str) -> Path: ...


class LogStore:
    """Bounded FIFO of log entries; the oldest entry is evicted first."""

    def __init__(self, capacity: int = LOG_CAPACITY):
        if capacity <= 0:
            raise ValueError("log capacity must be positive")
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self.capacity = capacity

    def append(self, entry: LogEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))

    def to_csv(self) -> str:
        lines = [CSV_HEADER]
        lines.extend(entry.csv_line() for entry in self._entries)
        return "\n".join(lines)

    def export(self, sink: ExportSink, filename: Optional[str] = None) -> Path:
        """Serialize every entry and hand the bytes to *sink*; failures become ExportError."""
        name = filename or f"radiation_log_{int(time.time() * 1000)}.csv"
        payload = self.to_csv().encode("utf-8")
        try:
            path = sink.share(payload, name)
        except ExportError:
            raise
        except OSError as exc:
            raise ExportError(f"Could not save or share {name}: {exc}") from exc
        logger.info("Exported %d log entries to %s", len(self._entries), path)
        return path


class FileExporter:
    """
    Default share target: writes the CSV into a directory. The directory is
    created lazily so a session that never exports never touches the disk.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def share(self, payload: bytes, filename: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        path.write_bytes(payload)
        return path

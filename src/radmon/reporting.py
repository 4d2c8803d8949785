"""Readers and summaries for exported dose logs."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

# The RTC header cell itself contains a comma, so every row splits into six fields.
LOG_COLUMNS = ["date", "time", "cps", "dose_rate", "cumulative_dose", "alert"]


@dataclass(frozen=True)
class LogSummary:
    entries: int
    alarm_entries: int
    max_dose_rate: float
    mean_dose_rate: float
    final_cumulative_dose: float
    start: Optional[pd.Timestamp] = None
    end: Optional[pd.Timestamp] = None

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


def read_log_csv(path: str | Path) -> pd.DataFrame:
    """Load an exported log and add a parsed `timestamp` column.

    Parameters
    ----------
    path:
        CSV written by the instrument's Data Download action.

    Returns
    -------
    pandas.DataFrame
        One row per log entry with columns `timestamp`, `cps`, `dose_rate`,
        `cumulative_dose` and `alert`.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)

    df = pd.read_csv(path, header=0, names=LOG_COLUMNS, dtype={"date": str, "time": str})
    if df.empty:
        return pd.DataFrame(columns=["timestamp", "cps", "dose_rate", "cumulative_dose", "alert"])
    df["timestamp"] = pd.to_datetime(df["date"] + df["time"], format="%Y%m%d%H%M%S")
    df = df.drop(columns=["date", "time"])
    df["alert"] = df["alert"].astype(str).str.strip()
    return df[["timestamp", "cps", "dose_rate", "cumulative_dose", "alert"]].reset_index(drop=True)


def summarize_log(df: pd.DataFrame) -> LogSummary:
    if df.empty:
        return LogSummary(
            entries=0,
            alarm_entries=0,
            max_dose_rate=0.0,
            mean_dose_rate=0.0,
            final_cumulative_dose=0.0,
        )
    dose_rate = df["dose_rate"].astype(float)
    return LogSummary(
        entries=int(len(df)),
        alarm_entries=int((df["alert"] == "ALARM").sum()),
        max_dose_rate=float(dose_rate.max()),
        mean_dose_rate=float(dose_rate.mean()),
        final_cumulative_dose=float(df["cumulative_dose"].iloc[-1]),
        start=df["timestamp"].iloc[0],
        end=df["timestamp"].iloc[-1],
    )

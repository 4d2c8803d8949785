"""Plotting helpers for exported dose logs."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd


def plot_log(df: pd.DataFrame, output_dir: Path) -> Path:
    plt = _require_matplotlib()
    if df.empty:
        raise ValueError("log contains no entries to plot")
    output_dir.mkdir(parents=True, exist_ok=True)
    fig, (rate_ax, dose_ax) = plt.subplots(2, 1, figsize=(10, 7), sharex=True)

    _plot_dose_rate(df, rate_ax)
    dose_ax.plot(df["timestamp"], df["cumulative_dose"], color="black")
    dose_ax.set_ylabel("Cumulative dose (mR)")
    dose_ax.set_xlabel("Time")
    dose_ax.grid(True, alpha=0.3)

    fig.autofmt_xdate()
    fig.tight_layout()
    out_path = output_dir / "dose_log.png"
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def _plot_dose_rate(df: pd.DataFrame, ax) -> None:
    ax.plot(df["timestamp"], df["dose_rate"], color="tab:blue", label="Dose rate")
    alarms = df[df["alert"] == "ALARM"]
    if not alarms.empty:
        ax.scatter(alarms["timestamp"], alarms["dose_rate"], color="red", marker="x", label="ALARM")
    ax.set_title("Dose rate and cumulative dose")
    ax.set_ylabel("Dose rate (mR/h)")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")


def _require_matplotlib() -> Any:
    home_cache = Path.home() / ".cache" / "fontconfig"
    try:
        home_cache.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError("matplotlib cannot write font cache in this environment") from exc

    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install radmon[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_CALIBRATION: Tuple[Tuple[int, float], ...] = (
    (0, 0.0),
    (20, 2.0),
    (50, 5.0),
    (100, 10.0),
    (500, 50.0),
    (1000, 100.0),
    (4000, 500.0),
    (6800, 1000.0),
    (11000, 2000.0),
    (17500, 5000.0),
    (20500, 8000.0),
    (22500, 10000.0),
)


@dataclass(frozen=True)
class CalibrationPoint:
    cps: int
    dose: float


class CalibrationTable:
    """
    Ordered count-rate to dose-rate control points.

    The table is immutable once built; editors produce a new table and the
    owner swaps it in as a whole.
    """

    def __init__(self, points: Iterable[CalibrationPoint]):
        self._points: Tuple[CalibrationPoint, ...] = tuple(points)
        if len(self._points) < 2:
            raise ValueError("calibration table requires at least 2 entries")
        previous = None
        for point in self._points:
            if point.cps < 0 or point.dose < 0:
                raise ValueError(f"calibration entries must be non-negative, got {point}")
            if previous is not None and point.cps == previous.cps:
                raise ValueError(f"duplicate calibration cps {point.cps}")
            if previous is not None and point.cps < previous.cps:
                raise ValueError(
                    f"calibration cps must be strictly ascending ({previous.cps} then {point.cps})"
                )
            previous = point
        self._cps = np.array([point.cps for point in self._points], dtype=float)
        self._dose = np.array([point.dose for point in self._points], dtype=float)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[float]]) -> "CalibrationTable":
        return cls(CalibrationPoint(cps=int(cps), dose=float(dose)) for cps, dose in pairs)

    @classmethod
    def from_mapping(cls, rows: Sequence[Mapping[str, Any]]) -> "CalibrationTable":
        if not isinstance(rows, list) or not rows:
            raise ValueError("calibration_table must be a non-empty list of {cps, dose} rows")
        points: List[CalibrationPoint] = []
        for row in rows:
            if not isinstance(row, dict) or "cps" not in row or "dose" not in row:
                raise ValueError("calibration_table rows require fields 'cps' and 'dose'")
            points.append(CalibrationPoint(cps=int(row["cps"]), dose=float(row["dose"])))
        return cls(points)

    @property
    def points(self) -> Tuple[CalibrationPoint, ...]:
        return self._points

    def interpolate(self, cps: float) -> float:
        """
        Linearly interpolate the dose rate for *cps*.

        The first interval whose inclusive bounds contain *cps* is used. Values
        outside every interval fall back to the last entry's dose; there is no
        low-side clamp.
        """
        lower = self._cps[:-1]
        upper = self._cps[1:]
        hits = np.flatnonzero((cps >= lower) & (cps <= upper))
        if hits.size == 0:
            return float(self._dose[-1])
        idx = int(hits[0])
        slope = (self._dose[idx + 1] - self._dose[idx]) / (self._cps[idx + 1] - self._cps[idx])
        return float(self._dose[idx] + (cps - self._cps[idx]) * slope)

    def as_pairs(self) -> List[Tuple[int, float]]:
        return [(point.cps, point.dose) for point in self._points]

    def to_mapping(self) -> List[Dict[str, float]]:
        return [{"cps": point.cps, "dose": point.dose} for point in self._points]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[CalibrationPoint]:
        return iter(self._points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CalibrationTable):
            return NotImplemented
        return self._points == other._points

    def __repr__(self) -> str:
        return f"CalibrationTable({self.as_pairs()!r})"


def default_table() -> CalibrationTable:
    return CalibrationTable.from_pairs(DEFAULT_CALIBRATION)


def commit_rows(rows: Sequence[Sequence[float]]) -> CalibrationTable:
    """
    Build a table from editor rows, dropping cleared rows.

    Row 0 is always kept first; any later row whose cps and dose are both zero
    is treated as unused and discarded. The remaining rows are ordered by cps
    so new points may be authored in any blank row. Duplicate cps values are
    rejected by the table itself.
    """
    if not rows:
        raise ValueError("calibration table requires at least 2 entries")
    first, rest = rows[0], rows[1:]
    kept = sorted(((cps, dose) for cps, dose in rest if cps != 0 or dose != 0), key=lambda row: row[0])
    table = CalibrationTable.from_pairs([tuple(first)] + kept)
    logger.info("Calibration table committed with %d entries", len(table))
    return table

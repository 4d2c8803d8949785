from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional

CNTS_PATTERN = re.compile(r"Cnts:(\d+)!")
# Longer digit runs are line noise, not a count rate.
MAX_COUNT_DIGITS = 9


@dataclass(frozen=True)
class Sample:
    cps: int
    seq: int


class FrameParser:
    """
    Best-effort decoder for detector telemetry frames.

    A frame is free-form UTF-8 text; the first `Cnts:<digits>!` token carries
    the count rate. Frames without that token, or whose digit run is longer
    than `MAX_COUNT_DIGITS`, are counted and dropped.
    """

    def __init__(self) -> None:
        self._seq = 0
        self._stats: Dict[str, int] = {"frames": 0, "samples": 0, "decode_misses": 0}
        self._log = logging.getLogger(__name__)

    def decode(self, text: str) -> Optional[Sample]:
        self._stats["frames"] += 1
        match = CNTS_PATTERN.search(text)
        if match is None:
            self._stats["decode_misses"] += 1
            self._log.debug("Dropping frame without count token: %r", text[:64])
            return None
        digits = match.group(1)
        if len(digits) > MAX_COUNT_DIGITS:
            self._stats["decode_misses"] += 1
            self._log.debug("Dropping frame with out-of-range count (%d digits)", len(digits))
            return None
        self._seq += 1
        self._stats["samples"] += 1
        return Sample(cps=int(digits), seq=self._seq)

    def decode_bytes(self, raw: bytes) -> Optional[Sample]:
        return self.decode(raw.decode("utf-8", errors="ignore"))

    def parse_lines(self, lines: Iterable[str]) -> Iterator[Sample]:
        for line in lines:
            sample = self.decode(line)
            if sample is not None:
                yield sample

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def reset(self) -> None:
        self._seq = 0
        self._stats = {"frames": 0, "samples": 0, "decode_misses": 0}


def iterate_text_stream(handle: Iterable[str]) -> Iterator[str]:
    for line in handle:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        yield line

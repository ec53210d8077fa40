"""
Parsing of ffmpeg's machine readable progress stream.

With ``-progress pipe:1`` ffmpeg prints blocks of ``key=value`` lines to
stdout, each block terminated by ``progress=continue`` (or ``progress=end`` for
the last one)::

    frame=240
    fps=48.00
    total_size=1048576
    out_time_us=10000000
    out_time=00:00:10.000000
    speed=2.01x
    progress=continue

iter_progress_reports() turns such a stream into ProgressReport values as the
encoder produces them. Parsing is best effort: unknown keys, unparsable values
("N/A" is common early on) and blocks that would move backwards in time are
dropped.
"""

import re
import time
from typing import Callable, Dict, Iterable, Iterator, Optional

from transcoder.models import ProgressReport

_TIME_RE = re.compile(r"^(-?\d+):(\d+):(\d+)(?:[.,](\d+))?$")


def parse_speed(value: str) -> Optional[float]:
    """'2.5x' -> 2.5, None when ffmpeg has no estimate yet."""
    v = value.strip().rstrip("x").strip()
    try:
        speed = float(v)
    except ValueError:
        return None
    return speed if speed >= 0 else None


def parse_out_time(value: str) -> Optional[int]:
    """'00:01:23.450000' -> 83450 (milliseconds)."""
    m = _TIME_RE.match(value.strip())
    if not m:
        return None
    h, mi, s = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if h < 0:
        return None
    frac = m.group(4) or "0"
    ms = int((frac + "000")[:3])
    return (h * 3600 + mi * 60 + s) * 1000 + ms


def _int_value(value: str) -> Optional[int]:
    try:
        n = int(value.strip())
    except ValueError:
        return None
    return n if n >= 0 else None


def build_report(fields: Dict[str, str], elapsed: float = 0.0) -> Optional[ProgressReport]:
    """Build a report from one block of fields, None if nothing usable."""
    total_size = _int_value(fields.get("total_size", ""))

    out_time_ms: Optional[int] = None
    if "out_time_us" in fields:
        us = _int_value(fields["out_time_us"])
        if us is not None:
            out_time_ms = us // 1000
    if out_time_ms is None and "out_time_ms" in fields:
        # Despite its name ffmpeg reports out_time_ms in microseconds
        us = _int_value(fields["out_time_ms"])
        if us is not None:
            out_time_ms = us // 1000
    if out_time_ms is None and "out_time" in fields:
        out_time_ms = parse_out_time(fields["out_time"])

    if total_size is None and out_time_ms is None:
        return None

    return ProgressReport(
        total_size=total_size or 0,
        out_time_ms=out_time_ms or 0,
        speed=parse_speed(fields["speed"]) if "speed" in fields else None,
        frame=_int_value(fields.get("frame", "")) or 0,
        elapsed=elapsed,
    )


def iter_progress_reports(
    lines: Iterable[str],
    clock: Callable[[], float] = time.monotonic,
) -> Iterator[ProgressReport]:
    """
    Lazily yield progress reports from an ffmpeg ``-progress`` stream.

    The generator ends when the stream closes. Calling it again on a new
    stream starts over with fresh state.

    Args:
        lines: Text lines from the encoder's progress pipe.
        clock: Time source for the ``elapsed`` field.
    """
    start = clock()
    fields: Dict[str, str] = {}
    last: Optional[ProgressReport] = None

    for raw in lines:
        line = raw.strip()
        if not line or "=" not in line:
            continue
        key, _sep, value = line.partition("=")
        key = key.strip()
        if key != "progress":
            fields[key] = value
            continue

        report = build_report(fields, elapsed=clock() - start)
        fields = {}
        if report is None:
            continue
        if last is not None and report.out_time_ms < last.out_time_ms:
            continue
        last = report
        yield report

"""
Terminal output helpers for transcoder.

Human readable sizes and durations for log lines, and a rich progress bar for
the file currently being encoded.

The bar respects:
- NO_COLOR environment variable
- TRANSCODER_SCRIPT_MODE environment variable
- sys.stderr.isatty() for automatic detection
"""

import os
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from transcoder.models import ProgressReport


def bytes_human_readable(size: int) -> str:
    """Format a byte count with binary units: 1536 -> '1.5 KiB'."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if abs(value) < 1024.0 or unit == "TiB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} TiB"


def fmt_hms(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    if seconds < 0:
        seconds = 0
    s = int(round(seconds))
    h = s // 3600
    m = (s % 3600) // 60
    r = s % 60
    return f"{h:02d}:{m:02d}:{r:02d}"


def format_report(report: Optional[ProgressReport], duration: float = 0.0) -> str:
    """One line summary of a progress report for the log."""
    if report is None:
        return "no progress yet"
    parts = []
    if duration > 0:
        parts.append(f"{report.percent_of(duration):.1f}%")
    parts.append(f"{fmt_hms(report.out_time_ms / 1000)}")
    parts.append(bytes_human_readable(report.total_size))
    if report.speed is not None:
        parts.append(f"{report.speed:.2f}x")
    return " ".join(parts)


def _should_use_live_display() -> bool:
    """Check if an animated progress bar can be drawn."""
    if os.getenv("NO_COLOR") or os.getenv("TRANSCODER_SCRIPT_MODE"):
        return False
    try:
        return sys.stderr.isatty()
    except (AttributeError, ValueError):
        return False


class ProgressDisplay:
    """Progress bar for the single file being encoded.

    Drawn on stderr so it does not interleave with the log on stdout. Does
    nothing when disabled or when stderr is not a terminal.
    """

    def __init__(self, enabled: bool = True, console: Optional[Console] = None):
        self.enabled = enabled and (console is not None or _should_use_live_display())
        self.console = console or Console(stderr=True)
        self.progress: Optional[Progress] = None
        self.task: Optional[TaskID] = None
        self.duration = 0.0

    def start(self, path: Path, duration: float) -> None:
        if not self.enabled:
            return
        self.duration = duration
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[cyan]{task.description}"),
            BarColumn(bar_width=30),
            TextColumn("[progress.percentage]{task.percentage:>5.1f}%"),
            TextColumn("{task.fields[size]}"),
            TextColumn("{task.fields[speed]}"),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        self.progress.start()
        self.task = self.progress.add_task(path.name, total=100.0, size="", speed="")

    def update(self, report: ProgressReport) -> None:
        if self.progress is None or self.task is None:
            return
        speed = f"{report.speed:.2f}x" if report.speed is not None else ""
        self.progress.update(
            self.task,
            completed=report.percent_of(self.duration),
            size=bytes_human_readable(report.total_size),
            speed=speed,
        )

    def stop(self) -> None:
        if self.progress is not None:
            self.progress.stop()
        self.progress = None
        self.task = None

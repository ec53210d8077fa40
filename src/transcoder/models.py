"""
Data types shared across the transcode engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

# Container every replaced file ends up in
CANONICAL_EXTENSION = ".mp4"
TEMP_SUFFIX = ".transcode-temp"
PROCESSED_SUFFIX = ".processed"


@dataclass(frozen=True)
class FileCandidate:
    """A file found by enumeration, pending filter checks."""

    path: Path

    @property
    def extension(self) -> str:
        return self.path.suffix

    @property
    def canonical_output(self) -> Path:
        """dir/name.ext -> dir/name.mp4"""
        return self.path.with_suffix(CANONICAL_EXTENSION)

    @property
    def temp_output(self) -> Path:
        """dir/name.ext -> dir/name.ext.transcode-temp"""
        return self.path.with_name(self.path.name + TEMP_SUFFIX)

    @property
    def processed_marker(self) -> Path:
        """dir/name.ext -> dir/.name.mp4.processed"""
        out = self.canonical_output
        return out.with_name(f".{out.name}{PROCESSED_SUFFIX}")


@dataclass(frozen=True)
class Metadata:
    """Container metadata as reported by ffprobe."""

    size_bytes: int
    duration: float = 0.0  # seconds, 0.0 when unknown
    format_name: str = ""
    bit_rate: int = 0
    streams: List[Dict[str, Any]] = field(default_factory=list, compare=False)


@dataclass(frozen=True)
class ProgressReport:
    """Snapshot of the encoder's cumulative progress."""

    total_size: int = 0  # bytes written to the output so far
    out_time_ms: int = 0  # position reached in the encoded media
    speed: Optional[float] = None  # realtime multiplier, e.g. 2.5 for "2.5x"
    frame: int = 0
    elapsed: float = 0.0  # wall clock seconds since the session started

    def percent_of(self, duration: float) -> float:
        """Progress as a percentage of the source duration (0 if unknown)."""
        if duration <= 0:
            return 0.0
        return min(100.0, self.out_time_ms / (duration * 10.0))


class OutcomeKind(Enum):
    COMPLETED = "completed"
    KILLED = "killed"
    FAILED = "failed"


# Reasons a session can be stopped before the encoder finished on its own
KILL_TERMINATED = "terminated"
KILL_EARLY_EXIT = "early-exit"


@dataclass(frozen=True)
class SessionOutcome:
    """Terminal state of one transcode session."""

    kind: OutcomeKind
    last_report: Optional[ProgressReport] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    @property
    def killed(self) -> bool:
        return self.kind is OutcomeKind.KILLED

    @classmethod
    def completed(cls, last_report: Optional[ProgressReport] = None) -> "SessionOutcome":
        return cls(OutcomeKind.COMPLETED, last_report=last_report)

    @classmethod
    def killed_by(cls, reason: str, last_report: Optional[ProgressReport] = None) -> "SessionOutcome":
        return cls(OutcomeKind.KILLED, last_report=last_report, reason=reason)

    @classmethod
    def failed(cls, error: str, last_report: Optional[ProgressReport] = None) -> "SessionOutcome":
        return cls(OutcomeKind.FAILED, last_report=last_report, error=error)


class ResultKind(Enum):
    """Terminal classification handed to the notification sinks."""

    REPLACED = "replaced"
    KEPT_ORIGINAL = "kept_original"
    ERROR = "error"


@dataclass(frozen=True)
class DecisionResult:
    """What the decision engine did with one file.

    ``kind`` is None when a killed session leaves nothing to report.
    """

    kind: Optional[ResultKind]
    result_metadata: Optional[Metadata] = None
    report: Optional[ProgressReport] = None


@dataclass
class BatchSummary:
    """Counters for one batch run."""

    replaced: int = 0
    kept: int = 0
    errors: int = 0
    skipped: int = 0
    silent: int = 0  # killed sessions that produced no result
    interrupted: bool = False

    def record(self, kind: Optional[ResultKind]) -> None:
        if kind is ResultKind.REPLACED:
            self.replaced += 1
        elif kind is ResultKind.KEPT_ORIGINAL:
            self.kept += 1
        elif kind is ResultKind.ERROR:
            self.errors += 1
        else:
            self.silent += 1

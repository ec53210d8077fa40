"""
transcoder - An opinionated batch wrapper around ffmpeg.

Transcodes video files one at a time, replaces an original only when the
result is worth keeping, and leaves hidden marker files behind so that running
the same command again skips everything already handled.

License: GPL-3.0 (https://www.gnu.org/licenses/gpl-3.0.html)

Example usage:
    # As a command-line tool
    $ transcoder '/videos/*.mkv'
    $ transcoder --keep-old --interval 10 movie.flv

    # As a Python module
    from transcoder import Config, run

    summary = run(Config(keep_old=True), ["/videos/*.mkv"])
"""

__version__ = "1.0.0"
__license__ = "GPL-3.0"
__url__ = "https://github.com/transcoder/transcoder"
__description__ = "An opinionated batch wrapper around ffmpeg"

# Public API exports
from transcoder.cancel import CancellationToken, SignalListener
from transcoder.cli import run
from transcoder.config import Config
from transcoder.decision import DecisionEngine
from transcoder.driver import BatchDriver, collect_candidates
from transcoder.errors import (
    ConfigurationError,
    FilesystemMutationError,
    MetadataReadError,
    SentinelIOError,
    SubprocessSpawnError,
    TranscoderError,
)
from transcoder.models import (
    BatchSummary,
    DecisionResult,
    FileCandidate,
    Metadata,
    ProgressReport,
    ResultKind,
    SessionOutcome,
)
from transcoder.probe import read_metadata
from transcoder.sentinel import SentinelTracker
from transcoder.session import TranscodeSession

__all__ = [
    # Version info
    "__version__",
    "__license__",
    "__url__",
    # Config
    "Config",
    # Engine
    "BatchDriver",
    "collect_candidates",
    "DecisionEngine",
    "SentinelTracker",
    "TranscodeSession",
    "read_metadata",
    "run",
    # Cancellation
    "CancellationToken",
    "SignalListener",
    # Models
    "BatchSummary",
    "DecisionResult",
    "FileCandidate",
    "Metadata",
    "ProgressReport",
    "ResultKind",
    "SessionOutcome",
    # Errors
    "TranscoderError",
    "ConfigurationError",
    "FilesystemMutationError",
    "MetadataReadError",
    "SentinelIOError",
    "SubprocessSpawnError",
]

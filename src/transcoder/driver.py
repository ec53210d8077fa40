"""
Batch processing loop.

Enumerate -> for each candidate: filter -> sentinels -> metadata -> session ->
decision -> notify. Files are handled one at a time in enumeration order and
one file's failure never stops the batch. Termination is checked before every
file; once requested no further file is started.
"""

import glob
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from loguru import logger

from transcoder.cancel import CancellationToken
from transcoder.config import Config
from transcoder.decision import DecisionEngine
from transcoder.errors import SentinelIOError, TranscoderError
from transcoder.models import BatchSummary, DecisionResult, FileCandidate, Metadata, OutcomeKind
from transcoder.notifications import Notifier
from transcoder.sentinel import SentinelTracker
from transcoder.session import TranscodeSession
from transcoder.ui import ProgressDisplay


def collect_candidates(patterns: Iterable[str]) -> List[FileCandidate]:
    """Expand glob patterns in argument order. Patterns matching nothing are fine."""
    candidates: List[FileCandidate] = []
    for pattern in patterns:
        files = sorted(glob.glob(pattern, recursive=True))
        logger.trace(f"Found {pattern}: {len(files)}")
        candidates.extend(FileCandidate(Path(f)) for f in files)
    return candidates


class BatchDriver:
    """Drives one transcode + decision pass per candidate file."""

    def __init__(
        self,
        cfg: Config,
        token: CancellationToken,
        session: TranscodeSession,
        engine: DecisionEngine,
        metadata_reader: Callable[[Path], Metadata],
        notifier: Optional[Notifier] = None,
        sentinels: Optional[SentinelTracker] = None,
        display: Optional[ProgressDisplay] = None,
    ):
        self.cfg = cfg
        self.token = token
        self.session = session
        self.engine = engine
        self.metadata_reader = metadata_reader
        self.notifier = notifier or Notifier()
        self.sentinels = sentinels or SentinelTracker()
        self.display = display or ProgressDisplay(enabled=False)

    def is_allowed(self, candidate: FileCandidate) -> bool:
        """Exact extension match against the allow-list, leading dot included."""
        return candidate.extension in self.cfg.extensions

    def process(self, candidate: FileCandidate) -> Optional[DecisionResult]:
        """
        Run one file through the engine.

        Returns:
            None when the file was skipped, otherwise the decision result.

        Raises:
            TranscoderError: Any per-file failure; the caller logs and moves on.
        """
        path = candidate.path

        if self.sentinels.is_processed(candidate):
            logger.debug(f"Already processed: {path}")
            return None

        if self.sentinels.is_in_progress(candidate):
            logger.warning(f"File is already being transcoded: {path}")
            return None

        if not path.is_file():
            logger.debug(f"Not a regular file: {path}")
            return None

        logger.info(f"Transcoding: {path}")
        original = self.metadata_reader(path)

        self.sentinels.claim(candidate)

        abort_above = original.size_bytes if self.cfg.abort_above_original else None
        try:
            self.display.start(path, original.duration)
            outcome = self.session.run(
                path,
                candidate.temp_output,
                original,
                self.cfg.flags,
                self.cfg.interval,
                abort_above=abort_above,
            )
        except Exception:
            # Never leave the claim behind
            self.sentinels.release(candidate)
            raise
        finally:
            self.display.stop()

        # Marker and decision must agree on whether the run was interrupted
        interrupted = self.token.cancelled

        # A failed encode may succeed next time; an interrupted one is retried too
        if not interrupted and outcome.kind is not OutcomeKind.FAILED:
            try:
                self.sentinels.mark_processed(candidate)
            except SentinelIOError:
                self.sentinels.release(candidate)
                raise

        result = self.engine.decide(candidate, original, outcome, interrupted=interrupted)

        if result.kind is not None:
            self.notifier.notify_end(result.result_metadata, result.report, result.kind, candidate, original)
        return result

    def run(self, patterns: Iterable[str]) -> BatchSummary:
        """Process every candidate matched by ``patterns``."""
        summary = BatchSummary()

        for candidate in collect_candidates(patterns):
            if self.token.cancelled:
                logger.warning("Termination requested, not starting further files")
                break

            if not self.is_allowed(candidate):
                continue

            try:
                result = self.process(candidate)
            except TranscoderError as e:
                logger.error(str(e))
                summary.errors += 1
                continue
            except Exception as e:
                logger.exception(f"Unexpected error processing {candidate.path}: {e}")
                summary.errors += 1
                continue

            if result is None:
                summary.skipped += 1
            else:
                summary.record(result.kind)

        summary.interrupted = self.token.cancelled
        return summary

"""
Keep/replace decision for a finished transcode session.

The engine classifies a SessionOutcome into a ResultKind and performs the
matching filesystem change: delete the temp output, or delete the original and
move the temp output into its place under the canonical extension.

A requested termination never leads to a destructive change: the original is
only ever deleted after a session that completed on its own while no
termination was pending.
"""

from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from transcoder.cancel import CancellationToken
from transcoder.errors import FilesystemMutationError, MetadataReadError
from transcoder.models import (
    DecisionResult,
    FileCandidate,
    Metadata,
    OutcomeKind,
    ProgressReport,
    ResultKind,
    SessionOutcome,
)
from transcoder.probe import read_metadata
from transcoder.ui import bytes_human_readable

MetadataReader = Callable[[Path], Metadata]


def _kept_if_larger(name: str, report: Optional[ProgressReport], original: Metadata) -> Optional[DecisionResult]:
    """KEPT_ORIGINAL when the partial output already outgrew the original."""
    if report is None or report.total_size <= original.size_bytes:
        return None
    logger.info(
        f"Kept original {name}: {bytes_human_readable(original.size_bytes)} < "
        f"{bytes_human_readable(report.total_size)}"
    )
    return DecisionResult(ResultKind.KEPT_ORIGINAL, report=report)


class DecisionEngine:
    """Decides what happens to a file after its transcode session.

    Args:
        keep_old: Keep the original when the transcode is not smaller.
        token: Shared cancellation token.
        metadata_reader: Reads metadata of the finished temp output.
    """

    def __init__(
        self,
        keep_old: bool,
        token: CancellationToken,
        metadata_reader: MetadataReader = read_metadata,
    ):
        self.keep_old = keep_old
        self.token = token
        self.metadata_reader = metadata_reader

    # -------------------- FILESYSTEM --------------------

    def _delete(self, path: Path, missing_ok: bool = False) -> None:
        try:
            path.unlink()
        except FileNotFoundError as e:
            if not missing_ok:
                raise FilesystemMutationError(f"Error deleting file {path}: {e}", path) from e
        except OSError as e:
            raise FilesystemMutationError(f"Error deleting file {path}: {e}", path) from e

    def _rename(self, src: Path, dst: Path) -> None:
        try:
            src.rename(dst)
        except OSError as e:
            raise FilesystemMutationError(f"Error renaming file {src} to {dst}: {e}", src) from e

    # -------------------- DECISION --------------------

    def decide(
        self,
        candidate: FileCandidate,
        original: Metadata,
        outcome: SessionOutcome,
        interrupted: Optional[bool] = None,
    ) -> DecisionResult:
        """
        Classify a session outcome and apply it to the filesystem.

        Args:
            interrupted: Termination state observed by the caller. Read from
                the token when not given.

        Returns:
            DecisionResult whose ``kind`` is None when a killed session leaves
            nothing to report.

        Raises:
            FilesystemMutationError: A delete or rename failed.
            MetadataReadError: The completed output could not be probed.
        """
        name = candidate.path.name
        temp = candidate.temp_output
        report = outcome.last_report

        if interrupted is None:
            interrupted = self.token.cancelled

        if interrupted:
            # Drop the partial output, never touch the original
            self._delete(temp, missing_ok=True)
            kept = _kept_if_larger(name, report, original)
            if kept is not None:
                return kept
            logger.warning(f"Interrupted while transcoding {name}, original kept")
            return DecisionResult(ResultKind.ERROR, report=report)

        if outcome.kind is OutcomeKind.KILLED:
            # Assume corrupted output file
            self._delete(temp, missing_ok=True)
            kept = _kept_if_larger(name, report, original)
            if kept is not None:
                return kept
            # TODO: add a KILLED result kind so these files get a notification too
            logger.debug(f"Session for {name} stopped ({outcome.reason}) without a usable result")
            return DecisionResult(None, report=report)

        if outcome.kind is OutcomeKind.FAILED:
            self._delete(temp, missing_ok=True)
            logger.error(f"Failed to transcode {name}: {outcome.error}")
            return DecisionResult(ResultKind.ERROR, report=report)

        try:
            result = self.metadata_reader(temp)
        except MetadataReadError:
            self._delete(temp, missing_ok=True)
            raise

        if self.keep_old and result.size_bytes >= original.size_bytes:
            # Transcoded file is not smaller than original
            self._delete(temp)
            logger.info(
                f"Kept original {name}: {bytes_human_readable(original.size_bytes)} <= "
                f"{bytes_human_readable(result.size_bytes)}"
            )
            return DecisionResult(ResultKind.KEPT_ORIGINAL, result_metadata=result)

        target = candidate.canonical_output
        self._delete(candidate.path)
        self._rename(temp, target)
        logger.info(
            f"Replaced {name} with transcoded: {bytes_human_readable(result.size_bytes)} vs "
            f"{bytes_human_readable(original.size_bytes)}"
        )
        return DecisionResult(ResultKind.REPLACED, result_metadata=result)

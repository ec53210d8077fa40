"""
Filesystem markers that make batch runs idempotent.

Two empty files carry the whole processing state of a source file:

- ``dir/.name.mp4.processed`` is written once a file has been handled and is
  never transcoded again while it exists.
- ``dir/name.ext.transcode-temp`` is the encoder's output while a transcode is
  running. Finding one means another run is busy with the file, or a previous
  run died mid-transcode. Either way the file is skipped: a partial output is
  never resumed.

Only existence is meaningful; markers are never read.

The temp file doubles as a lock between concurrent runs. claim() creates it
with O_CREAT | O_EXCL, so two runs on a local POSIX filesystem cannot both win.
Network filesystems may not honour exclusive creation, in which case the lock
is advisory only.
"""

import os
from pathlib import Path

from loguru import logger

from transcoder.errors import SentinelIOError
from transcoder.models import FileCandidate


def _exists(path: Path) -> bool:
    """stat() that separates "missing" from real I/O errors."""
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise SentinelIOError(f"Error reading file {path}: {e}", path) from e
    return True


class SentinelTracker:
    """Answers and updates the processed / in-progress state of candidates."""

    def is_processed(self, candidate: FileCandidate) -> bool:
        return _exists(candidate.processed_marker)

    def is_in_progress(self, candidate: FileCandidate) -> bool:
        return _exists(candidate.temp_output)

    def claim(self, candidate: FileCandidate) -> None:
        """Create the temp output exclusively before the encoder starts."""
        path = candidate.temp_output
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            raise SentinelIOError(f"File is already being transcoded: {candidate.path}", path) from e
        except OSError as e:
            raise SentinelIOError(f"Error creating file {path}: {e}", path) from e
        os.close(fd)

    def release(self, candidate: FileCandidate) -> None:
        """Remove the temp output, tolerating it being gone already."""
        try:
            candidate.temp_output.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise SentinelIOError(f"Error deleting file {candidate.temp_output}: {e}", candidate.temp_output) from e

    def mark_processed(self, candidate: FileCandidate) -> None:
        marker = candidate.processed_marker
        try:
            marker.touch(exist_ok=True)
        except OSError as e:
            raise SentinelIOError(f"Error writing file {marker}: {e}", marker) from e
        logger.debug(f"Marked processed: {marker}")

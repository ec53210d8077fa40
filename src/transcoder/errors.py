"""
Exception types for transcoder.

Every per-file failure is raised as a subclass of TranscoderError so the batch
driver can catch it at the file boundary, log it and move on to the next
candidate. Only ConfigurationError is fatal for the whole run.

Termination requested by the user is not an error: it travels through
transcoder.cancel.CancellationToken instead.
"""

from pathlib import Path
from typing import Optional


class TranscoderError(Exception):
    """Base class for all transcoder errors."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class ConfigurationError(TranscoderError):
    """Invalid configuration detected before any file is processed."""


class SentinelIOError(TranscoderError):
    """A processed/in-progress marker could not be inspected or claimed."""


class MetadataReadError(TranscoderError):
    """ffprobe could not read a file's container metadata."""


class SubprocessSpawnError(TranscoderError):
    """The encoder process could not be started."""


class FilesystemMutationError(TranscoderError):
    """Deleting or renaming a file failed during the keep/replace decision."""

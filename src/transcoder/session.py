"""
One ffmpeg run against one input/output pair.

The session starts ffmpeg with its structured progress stream on stdout, lets a
reader thread keep the latest ProgressReport, and polls from the calling thread
so that termination requests and progress logging happen at a bounded cadence
whatever the encoder prints.
"""

import shlex
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, IO, List, Optional

from loguru import logger

from transcoder.cancel import CancellationToken
from transcoder.errors import SubprocessSpawnError
from transcoder.models import (
    CANONICAL_EXTENSION,
    KILL_EARLY_EXIT,
    KILL_TERMINATED,
    Metadata,
    ProgressReport,
    SessionOutcome,
)
from transcoder.progress import iter_progress_reports
from transcoder.ui import bytes_human_readable, format_report

# Type alias for progress callback
ProgressCallback = Callable[[ProgressReport], None]

# Longest stretch the poll loop sleeps before re-checking the process and token
POLL_SLICE = 0.25

PROGRESS_ARGS = ["-progress", "pipe:1", "-nostats"]


class _ProgressReader(threading.Thread):
    """Drains the encoder's progress pipe and remembers the last report."""

    def __init__(self, stream: IO[str], on_progress: Optional[ProgressCallback] = None):
        super().__init__(name="progress-reader", daemon=True)
        self.stream = stream
        self.on_progress = on_progress
        self.error: Optional[Exception] = None
        self._latest: Optional[ProgressReport] = None
        self._lock = threading.Lock()

    @property
    def latest(self) -> Optional[ProgressReport]:
        with self._lock:
            return self._latest

    def run(self) -> None:
        try:
            for report in iter_progress_reports(self.stream):
                with self._lock:
                    self._latest = report
                if self.on_progress is not None:
                    try:
                        self.on_progress(report)
                    except Exception as e:
                        # Don't let display errors affect the encode
                        logger.debug(f"Progress callback failed: {e}")
        except (OSError, ValueError) as e:
            self.error = e


class TranscodeSession:
    """Runs ffmpeg for a single file with cooperative cancellation.

    Args:
        token: Shared cancellation token, checked at every poll tick.
        ffmpeg: Encoder binary.
        show_stderr: Pass ffmpeg's stderr through to ours instead of discarding it.
        on_progress: Called from the reader thread with every progress report.
        stop_timeout: Seconds to wait after SIGTERM before sending SIGKILL.
    """

    def __init__(
        self,
        token: CancellationToken,
        ffmpeg: str = "ffmpeg",
        show_stderr: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        stop_timeout: float = 10.0,
    ):
        self.token = token
        self.ffmpeg = ffmpeg
        self.show_stderr = show_stderr
        self.on_progress = on_progress
        self.stop_timeout = stop_timeout

    def build_command(self, input_path: Path, temp_output: Path, flags: str) -> List[str]:
        """
        Build the ffmpeg command line.

        ``flags`` is split like a shell would. If it contains ``{input}`` or
        ``{output}`` placeholders they are substituted and the template decides
        where the paths go; otherwise the input is placed before the flags and
        the output last.
        """
        template = shlex.split(flags)
        cmd = [self.ffmpeg, "-hide_banner", "-nostdin", "-y", *PROGRESS_ARGS]

        if any("{input}" in a or "{output}" in a for a in template):
            cmd.extend(a.replace("{input}", str(input_path)).replace("{output}", str(temp_output)) for a in template)
            return cmd

        # The temp file's extension tells ffmpeg nothing about the container
        container = CANONICAL_EXTENSION.lstrip(".")
        cmd.extend(["-i", str(input_path), *template, "-f", container, str(temp_output)])
        return cmd

    def _stop(self, process: subprocess.Popen) -> None:
        """SIGTERM the encoder, SIGKILL it if it does not exit in time."""
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"{self.ffmpeg} did not exit after SIGTERM, killing it")
            process.kill()
            process.wait()

    def run(
        self,
        input_path: Path,
        temp_output: Path,
        metadata: Metadata,
        flags: str,
        progress_interval: float,
        abort_above: Optional[int] = None,
    ) -> SessionOutcome:
        """
        Encode ``input_path`` into ``temp_output``.

        Args:
            input_path: Source file, never modified.
            temp_output: Encoder output.
            metadata: Source metadata, used for progress percentages.
            flags: Encoder flag template.
            progress_interval: Seconds between progress log lines and early-exit checks.
            abort_above: Stop the encode once the output grows beyond this many bytes.

        Returns:
            COMPLETED when ffmpeg exited cleanly, KILLED when the session stopped it,
            FAILED on a non-zero exit or a broken progress stream.

        Raises:
            SubprocessSpawnError: ffmpeg could not be started.
        """
        cmd = self.build_command(input_path, temp_output, flags)
        logger.debug(f"CMD: {shlex.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=None if self.show_stderr else subprocess.DEVNULL,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise SubprocessSpawnError(f"Failed to start {self.ffmpeg}: {e}", input_path) from e

        assert process.stdout is not None
        reader = _ProgressReader(process.stdout, self.on_progress)
        reader.start()

        kill_reason: Optional[str] = None
        next_tick = time.monotonic() + progress_interval
        try:
            while True:
                if self.token.cancelled:
                    kill_reason = KILL_TERMINATED
                    self._stop(process)
                    break
                if process.poll() is not None:
                    break

                self.token.wait(min(POLL_SLICE, progress_interval))
                now = time.monotonic()
                if now < next_tick:
                    continue
                next_tick = now + progress_interval

                report = reader.latest
                logger.info(f"Transcoding {input_path.name}: {format_report(report, metadata.duration)}")

                if abort_above is not None and report is not None and report.total_size > abort_above:
                    logger.info(
                        f"Early exit {input_path.name}: output already "
                        f"{bytes_human_readable(report.total_size)} > {bytes_human_readable(abort_above)}"
                    )
                    kill_reason = KILL_EARLY_EXIT
                    self._stop(process)
                    break
        finally:
            self._stop(process)
            reader.join(timeout=self.stop_timeout)
            process.stdout.close()

        returncode = process.returncode
        last = reader.latest

        if kill_reason is not None:
            return SessionOutcome.killed_by(kill_reason, last)
        if self.token.cancelled and returncode != 0:
            # ffmpeg shares our process group and died of the same Ctrl-C
            return SessionOutcome.killed_by(KILL_TERMINATED, last)
        if reader.error is not None:
            return SessionOutcome.failed(f"Error reading progress stream: {reader.error}", last)
        if returncode != 0:
            return SessionOutcome.failed(f"{self.ffmpeg} exited with code {returncode}", last)
        return SessionOutcome.completed(last)

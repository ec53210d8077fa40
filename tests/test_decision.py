"""
Tests for the keep/replace decision.
"""

from pathlib import Path

import pytest


@pytest.fixture
def setup(make_file):
    """Original file plus a finished temp output of the requested sizes."""
    from transcoder.models import FileCandidate, Metadata

    def make(name: str, original_size: int, temp_size: int = None):
        path = make_file(name, original_size)
        candidate = FileCandidate(path)
        if temp_size is not None:
            candidate.temp_output.write_bytes(b"\0" * temp_size)
        return candidate, Metadata(size_bytes=original_size, duration=4.0)

    return make


@pytest.fixture
def engine_factory(stat_reader):
    from transcoder.cancel import CancellationToken
    from transcoder.decision import DecisionEngine

    def make(keep_old: bool = False, token: CancellationToken = None, reader=stat_reader):
        return DecisionEngine(keep_old, token or CancellationToken(), metadata_reader=reader)

    return make


class TestCompletedSessions:
    """Decisions after the encoder finished on its own."""

    def test_smaller_replaces(self, setup, engine_factory):
        """Test a smaller transcode replaces an FLV with an MP4."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.flv", 500, 300)

        result = engine_factory().decide(candidate, original, SessionOutcome.completed())

        assert result.kind is ResultKind.REPLACED
        assert result.result_metadata.size_bytes == 300
        assert not candidate.path.exists()
        assert not candidate.temp_output.exists()
        assert candidate.canonical_output.read_bytes() == b"\0" * 300

    def test_same_extension_replaces_in_place(self, setup, engine_factory):
        """Test an .mp4 original is replaced under its own name."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.mp4", 500, 300)

        result = engine_factory().decide(candidate, original, SessionOutcome.completed())

        assert result.kind is ResultKind.REPLACED
        assert candidate.path.stat().st_size == 300
        assert not candidate.temp_output.exists()

    def test_larger_replaces_without_keep_old(self, setup, engine_factory):
        """Test size is ignored when keep_old is off."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.mkv", 200, 250)

        result = engine_factory(keep_old=False).decide(candidate, original, SessionOutcome.completed())

        assert result.kind is ResultKind.REPLACED
        assert candidate.canonical_output.stat().st_size == 250

    def test_larger_kept_with_keep_old(self, setup, engine_factory):
        """Test a larger transcode is discarded with keep_old."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.mkv", 200, 250)

        result = engine_factory(keep_old=True).decide(candidate, original, SessionOutcome.completed())

        assert result.kind is ResultKind.KEPT_ORIGINAL
        assert result.result_metadata.size_bytes == 250
        assert candidate.path.stat().st_size == 200
        assert not candidate.temp_output.exists()
        assert not candidate.canonical_output.exists()

    def test_equal_size_kept_with_keep_old(self, setup, engine_factory):
        """Test a tie keeps the original."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.mkv", 200, 200)

        result = engine_factory(keep_old=True).decide(candidate, original, SessionOutcome.completed())

        assert result.kind is ResultKind.KEPT_ORIGINAL
        assert candidate.path.exists()

    def test_smaller_replaces_with_keep_old(self, setup, engine_factory):
        """Test keep_old still replaces when the transcode is smaller."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.mkv", 200, 150)

        result = engine_factory(keep_old=True).decide(candidate, original, SessionOutcome.completed())

        assert result.kind is ResultKind.REPLACED
        assert not candidate.path.exists()
        assert candidate.canonical_output.stat().st_size == 150

    def test_unreadable_result(self, setup, engine_factory):
        """Test a result that cannot be probed is removed and reported."""
        from transcoder.errors import MetadataReadError
        from transcoder.models import SessionOutcome

        def broken_reader(path: Path):
            raise MetadataReadError(f"ffprobe failed on {path}", path)

        candidate, original = setup("video.mkv", 200, 150)

        with pytest.raises(MetadataReadError):
            engine_factory(reader=broken_reader).decide(candidate, original, SessionOutcome.completed())

        assert candidate.path.exists()
        assert not candidate.temp_output.exists()

    def test_delete_failure(self, setup, engine_factory):
        """Test a failed delete of the original is a FilesystemMutationError."""
        from transcoder.errors import FilesystemMutationError
        from transcoder.models import SessionOutcome

        candidate, original = setup("video.flv", 500, 300)
        candidate.path.unlink()

        with pytest.raises(FilesystemMutationError, match="Error deleting file"):
            engine_factory().decide(candidate, original, SessionOutcome.completed())

        assert candidate.temp_output.exists()


class TestStoppedSessions:
    """Decisions after the session was killed or failed."""

    def test_early_exit_keeps_original(self, setup, engine_factory):
        """Test an early exit with a larger partial output keeps the original."""
        from transcoder.models import KILL_EARLY_EXIT, ProgressReport, ResultKind, SessionOutcome

        candidate, original = setup("video.mkv", 200, 120)
        report = ProgressReport(total_size=210)

        result = engine_factory(keep_old=True).decide(
            candidate, original, SessionOutcome.killed_by(KILL_EARLY_EXIT, report)
        )

        assert result.kind is ResultKind.KEPT_ORIGINAL
        assert result.report == report
        assert candidate.path.stat().st_size == 200
        assert not candidate.temp_output.exists()

    def test_killed_without_result_is_silent(self, setup, engine_factory):
        """Test a kill whose output never outgrew the original reports nothing."""
        from transcoder.models import KILL_EARLY_EXIT, ProgressReport, SessionOutcome

        candidate, original = setup("video.mkv", 200, 120)

        result = engine_factory(keep_old=True).decide(
            candidate, original, SessionOutcome.killed_by(KILL_EARLY_EXIT, ProgressReport(total_size=120))
        )

        assert result.kind is None
        assert candidate.path.exists()
        assert not candidate.temp_output.exists()

    def test_killed_without_report_is_silent(self, setup, engine_factory):
        """Test a kill before any progress reports nothing."""
        from transcoder.models import KILL_EARLY_EXIT, SessionOutcome

        candidate, original = setup("video.mkv", 200, 0)

        result = engine_factory().decide(candidate, original, SessionOutcome.killed_by(KILL_EARLY_EXIT))

        assert result.kind is None
        assert candidate.path.exists()

    def test_failed_is_error(self, setup, engine_factory):
        """Test an encoder failure removes the temp output and keeps the original."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.mkv", 200, 80)

        result = engine_factory().decide(candidate, original, SessionOutcome.failed("ffmpeg exited with code 1"))

        assert result.kind is ResultKind.ERROR
        assert candidate.path.stat().st_size == 200
        assert not candidate.temp_output.exists()

    def test_failed_without_temp(self, setup, engine_factory):
        """Test a failure tolerates a missing temp output."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.mkv", 200)

        result = engine_factory().decide(candidate, original, SessionOutcome.failed("boom"))

        assert result.kind is ResultKind.ERROR


class TestTermination:
    """Decisions once termination was requested."""

    def test_terminated_larger_keeps_original(self, setup, engine_factory):
        """Test a mid-encode termination with a larger partial output."""
        from transcoder.cancel import CancellationToken
        from transcoder.models import KILL_TERMINATED, ProgressReport, ResultKind, SessionOutcome

        token = CancellationToken()
        token.cancel("SIGINT")
        candidate, original = setup("video.mkv", 500, 600)

        result = engine_factory(token=token).decide(
            candidate, original, SessionOutcome.killed_by(KILL_TERMINATED, ProgressReport(total_size=600))
        )

        assert result.kind is ResultKind.KEPT_ORIGINAL
        assert candidate.path.stat().st_size == 500
        assert not candidate.temp_output.exists()

    def test_terminated_smaller_is_error(self, setup, engine_factory):
        """Test a termination before the output outgrew the original."""
        from transcoder.cancel import CancellationToken
        from transcoder.models import KILL_TERMINATED, ProgressReport, ResultKind, SessionOutcome

        token = CancellationToken()
        token.cancel("SIGTERM")
        candidate, original = setup("video.mkv", 500, 100)

        result = engine_factory(token=token).decide(
            candidate, original, SessionOutcome.killed_by(KILL_TERMINATED, ProgressReport(total_size=100))
        )

        assert result.kind is ResultKind.ERROR
        assert candidate.path.stat().st_size == 500
        assert not candidate.temp_output.exists()

    def test_interrupted_flag_overrides_token(self, setup, engine_factory):
        """Test the caller's termination state wins over a later token change."""
        from transcoder.cancel import CancellationToken
        from transcoder.models import ResultKind, SessionOutcome

        token = CancellationToken()
        token.cancel("SIGINT")
        candidate, original = setup("video.flv", 500, 300)

        result = engine_factory(token=token).decide(
            candidate, original, SessionOutcome.completed(), interrupted=False
        )

        assert result.kind is ResultKind.REPLACED
        assert candidate.canonical_output.stat().st_size == 300

    def test_interrupted_flag_without_token(self, setup, engine_factory):
        """Test interrupted=True takes the termination path on its own."""
        from transcoder.models import ResultKind, SessionOutcome

        candidate, original = setup("video.flv", 500, 300)

        result = engine_factory().decide(candidate, original, SessionOutcome.completed(), interrupted=True)

        assert result.kind is ResultKind.ERROR
        assert candidate.path.stat().st_size == 500
        assert not candidate.temp_output.exists()

    def test_terminated_after_completion_never_replaces(self, setup, engine_factory):
        """Test a completed encode is not swapped in once termination is pending."""
        from transcoder.cancel import CancellationToken
        from transcoder.models import ResultKind, SessionOutcome

        token = CancellationToken()
        token.cancel("SIGINT")
        candidate, original = setup("video.flv", 500, 300)

        result = engine_factory(token=token).decide(candidate, original, SessionOutcome.completed())

        assert result.kind is ResultKind.ERROR
        assert candidate.path.stat().st_size == 500
        assert not candidate.canonical_output.exists()
        assert not candidate.temp_output.exists()

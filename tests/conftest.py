"""
Pytest configuration and shared fixtures for transcoder tests.
"""

import stat
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from loguru import logger

# Add src to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


FAKE_FFMPEG = """#!{python}
# Stands in for ffmpeg: writes FAKE_FFMPEG_SIZE bytes to the last argument in
# FAKE_FFMPEG_STEPS chunks and prints a -progress block after each chunk.
import json
import os
import sys
import time

args = sys.argv[1:]
log = os.environ.get("FAKE_FFMPEG_ARGS_LOG")
if log:
    with open(log, "a") as f:
        f.write(json.dumps(args) + "\\n")

output = args[-1]
size = int(os.environ.get("FAKE_FFMPEG_SIZE", "1000"))
steps = int(os.environ.get("FAKE_FFMPEG_STEPS", "4"))
delay = float(os.environ.get("FAKE_FFMPEG_DELAY", "0.01"))
exit_code = int(os.environ.get("FAKE_FFMPEG_EXIT", "0"))

written = 0
with open(output, "wb") as out:
    for i in range(1, steps + 1):
        target = size * i // steps
        out.write(b"\\0" * (target - written))
        out.flush()
        written = target
        sys.stdout.write("frame=%d\\n" % (i * 24))
        sys.stdout.write("total_size=%d\\n" % written)
        sys.stdout.write("out_time_us=%d\\n" % (i * 1000000))
        sys.stdout.write("speed=2.0x\\n")
        sys.stdout.write("progress=%s\\n" % ("end" if i == steps else "continue"))
        sys.stdout.flush()
        time.sleep(delay)

sys.exit(exit_code)
"""

FAKE_FFPROBE = """#!{python}
# Stands in for ffprobe: reports the file's real size and a 4 second duration.
import json
import os
import sys

path = sys.argv[-1]
if not os.path.exists(path):
    sys.stderr.write("%s: No such file or directory\\n" % path)
    sys.exit(1)
json.dump(
    {{
        "streams": [{{"index": 0, "codec_type": "video", "codec_name": "h264"}}],
        "format": {{
            "filename": path,
            "format_name": "matroska,webm",
            "duration": "4.000000",
            "size": str(os.path.getsize(path)),
            "bit_rate": "1000",
        }},
    }},
    sys.stdout,
)
"""


def _write_script(path: Path, template: str) -> Path:
    path.write_text(template.format(python=sys.executable))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_dir(temp_dir: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = temp_dir / "config" / "transcoder"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def mock_xdg_dirs(temp_dir: Path, monkeypatch):
    """Mock XDG directories to use temporary paths."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir / "config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(temp_dir / "state"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(temp_dir / "cache"))
    monkeypatch.setattr("transcoder.config.SYSTEM_CONFIG_DIR", temp_dir / "etc")


@pytest.fixture
def default_config():
    """Return a default Config instance for testing."""
    from transcoder.config import Config

    return Config()


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> str:
    """Path to an executable that behaves like ffmpeg -progress pipe:1."""
    return str(_write_script(tmp_path / "fake-ffmpeg", FAKE_FFMPEG))


@pytest.fixture
def fake_ffprobe(tmp_path: Path) -> str:
    """Path to an executable that prints ffprobe style JSON."""
    return str(_write_script(tmp_path / "fake-ffprobe", FAKE_FFPROBE))


@pytest.fixture
def stat_reader():
    """Metadata reader that trusts the filesystem size instead of ffprobe."""
    from transcoder.models import Metadata

    def read(path: Path) -> Metadata:
        return Metadata(size_bytes=Path(path).stat().st_size, duration=4.0)

    return read


@pytest.fixture
def make_file(tmp_path: Path):
    """Create a file of a given size inside tmp_path/videos."""
    videos = tmp_path / "videos"
    videos.mkdir(exist_ok=True)

    def make(name: str, size: int) -> Path:
        path = videos / name
        path.write_bytes(b"\1" * size)
        return path

    return make


@pytest.fixture
def caplog(caplog):
    """Route loguru records into pytest's caplog."""
    handler_id = logger.add(
        caplog.handler,
        format="{message}",
        level=0,
        filter=lambda record: record["level"].no >= caplog.handler.level,
    )
    yield caplog
    logger.remove(handler_id)

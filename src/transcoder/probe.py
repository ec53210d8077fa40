"""
Container metadata via ffprobe.
"""

import json
import subprocess
from pathlib import Path
from typing import Any, Dict

from transcoder.errors import MetadataReadError
from transcoder.models import Metadata


def ffprobe_json(path: Path, ffprobe: str = "ffprobe", timeout: float = 60.0) -> Dict[str, Any]:
    """Run ffprobe and return its JSON output."""
    cmd = [ffprobe, "-v", "error", "-print_format", "json", "-show_streams", "-show_format", str(path)]
    try:
        out = subprocess.check_output(cmd, stderr=subprocess.PIPE, timeout=timeout)
    except FileNotFoundError as e:
        raise MetadataReadError(f"ffprobe not found: {ffprobe}", path) from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or b"").decode("utf-8", errors="replace").strip()
        raise MetadataReadError(f"ffprobe failed on {path} (rc={e.returncode}): {detail}", path) from e
    except subprocess.TimeoutExpired as e:
        raise MetadataReadError(f"ffprobe timed out on {path}", path) from e
    except OSError as e:
        raise MetadataReadError(f"Error running ffprobe on {path}: {e}", path) from e

    try:
        result: Dict[str, Any] = json.loads(out)
    except ValueError as e:
        raise MetadataReadError(f"Invalid ffprobe output for {path}: {e}", path) from e
    return result


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_metadata(path: Path, probe: Dict[str, Any]) -> Metadata:
    """Build Metadata from ffprobe JSON. Falls back to stat() for the size."""
    fmt = probe.get("format")
    if not isinstance(fmt, dict):
        raise MetadataReadError(f"No format information for {path}", path)

    size = _to_int(fmt.get("size"))
    if size <= 0:
        try:
            size = path.stat().st_size
        except OSError as e:
            raise MetadataReadError(f"Cannot determine size of {path}: {e}", path) from e

    duration = _to_float(fmt.get("duration"))
    streams = probe.get("streams") or []
    if duration <= 0:
        for s in streams:
            if s.get("codec_type") == "video" and _to_float(s.get("duration")) > 0:
                duration = _to_float(s["duration"])
                break

    return Metadata(
        size_bytes=size,
        duration=duration,
        format_name=fmt.get("format_name", ""),
        bit_rate=_to_int(fmt.get("bit_rate")),
        streams=list(streams),
    )


def read_metadata(path: Path, ffprobe: str = "ffprobe") -> Metadata:
    """
    Read container metadata for a file.

    Raises:
        MetadataReadError: ffprobe is missing, failed, or returned unusable output.
    """
    return parse_metadata(path, ffprobe_json(path, ffprobe))

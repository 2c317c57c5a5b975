"""
ffprobe/ffmpeg wrappers used by the upload pipeline:
- probe_video: stream geometry of a staged upload
- rewrite_for_fast_start: remux (no re-encode) with the moov atom moved to the front
- has_fast_start_layout: cheap check that the rewrite actually moved it

FFmpegToolkit bundles the three behind one object so the pipeline can be handed
another implementation (tests, an in-process codec library).
"""
import json
import logging
import subprocess
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from app.config import get_settings
from app.errors import (
    MalformedOutput,
    NoVideoStream,
    RemuxFailed,
    ToolInvocationFailed,
    ToolTimeout,
)

logger = logging.getLogger(__name__)

FAST_START_SUFFIX = ".processing"
MOOV_MARKER = b"moov"
MOOV_SCAN_BYTES = 200


@dataclass(frozen=True)
class ProbeResult:
    width: int
    height: int


def _run(cmd: list[str], timeout: float | None) -> subprocess.CompletedProcess:
    """Run cmd with stdout and stderr merged. Raises FileNotFoundError / TimeoutExpired."""
    return subprocess.run(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        timeout=timeout,
    )


def _pick_video_stream(streams: list[dict]) -> dict:
    for stream in streams:
        if stream.get("codec_type") == "video":
            return stream
    for stream in streams:
        if "width" in stream and "height" in stream:
            return stream
    return streams[0]


def probe_video(path: Path, ffprobe: str = "ffprobe", timeout: float | None = None) -> ProbeResult:
    """Width and height of the first video stream in path."""
    cmd = [ffprobe, "-v", "error", "-print_format", "json", "-show_streams", str(path)]
    try:
        result = _run(cmd, timeout)
    except FileNotFoundError as e:
        raise ToolInvocationFailed(f"failed to run ffprobe: {e}", detail="Error getting video aspect ratio") from e
    except subprocess.TimeoutExpired as e:
        raise ToolTimeout(f"ffprobe timed out after {timeout}s on {path}", detail="Video processing timed out") from e

    output = result.stdout.decode(errors="replace")
    if result.returncode != 0:
        raise ToolInvocationFailed(
            f"ffprobe exited with status {result.returncode}:\n{output}",
            detail="Error getting video aspect ratio",
        )

    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise MalformedOutput(f"failed to parse ffprobe output: {e}\n{output}", detail="Error getting video aspect ratio") from e

    if not isinstance(data, dict) or not isinstance(data.get("streams", []), list):
        raise MalformedOutput(f"unexpected ffprobe output shape:\n{output}", detail="Error getting video aspect ratio")
    streams = [s for s in data.get("streams", []) if isinstance(s, dict)]
    if not streams:
        raise NoVideoStream(f"no video streams found in file: {path}", detail="No video stream found in upload")

    stream = _pick_video_stream(streams)
    try:
        probe = ProbeResult(width=int(stream["width"]), height=int(stream["height"]))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedOutput(f"ffprobe stream has no usable width/height: {stream!r}", detail="Error getting video aspect ratio") from e

    logger.info("Probed %s: %dx%d", path, probe.width, probe.height)
    return probe


def fast_start_output_path(path: Path) -> Path:
    return Path(f"{path}{FAST_START_SUFFIX}")


def rewrite_for_fast_start(path: Path, ffmpeg: str = "ffmpeg", timeout: float | None = None) -> Path:
    """Copy all streams into <path>.processing with -movflags faststart. The input is left as is."""
    output_path = fast_start_output_path(path)
    cmd = [ffmpeg, "-i", str(path), "-c", "copy", "-movflags", "faststart", "-f", "mp4", str(output_path)]
    try:
        result = _run(cmd, timeout)
    except FileNotFoundError as e:
        raise RemuxFailed(f"failed to run ffmpeg: {e}", detail="Error processing video for fast start") from e
    except subprocess.TimeoutExpired as e:
        raise ToolTimeout(f"ffmpeg timed out after {timeout}s on {path}", detail="Video processing timed out") from e

    if result.returncode != 0:
        raise RemuxFailed(
            f"ffmpeg exited with status {result.returncode}:\n{result.stdout.decode(errors='replace')}",
            detail="Error processing video for fast start",
        )
    logger.info("Rewrote %s for fast start -> %s", path, output_path)
    return output_path


def has_fast_start_layout(path: Path) -> bool:
    """True if the moov atom marker shows up in the first 200 bytes. Never raises."""
    try:
        with open(path, "rb") as f:
            head = f.read(MOOV_SCAN_BYTES)
    except OSError as e:
        logger.warning("Error reading %s to check moov: %s", path, e)
        return False
    if len(head) < MOOV_SCAN_BYTES:
        return False
    return MOOV_MARKER in head


class FFmpegToolkit:
    def __init__(self, ffprobe: str = "ffprobe", ffmpeg: str = "ffmpeg", timeout: float | None = None):
        self.ffprobe = ffprobe
        self.ffmpeg = ffmpeg
        self.timeout = timeout

    def probe(self, path: Path) -> ProbeResult:
        return probe_video(path, self.ffprobe, self.timeout)

    def remux(self, path: Path) -> Path:
        return rewrite_for_fast_start(path, self.ffmpeg, self.timeout)

    def output_path(self, path: Path) -> Path:
        return fast_start_output_path(path)

    def verify(self, path: Path) -> bool:
        return has_fast_start_layout(path)


@lru_cache
def get_media_toolkit() -> FFmpegToolkit:
    settings = get_settings()
    return FFmpegToolkit(
        ffprobe=settings.ffprobe_path,
        ffmpeg=settings.ffmpeg_path,
        timeout=settings.media_tool_timeout_seconds or None,
    )

import logging
from pathlib import Path
from typing import Optional, Tuple

from .ffmpeg import ToolError, run_ffmpeg

logger = logging.getLogger(__name__)

MIN_CLIP_SEC = 0.1

MODE_COPY = "copy"
MODE_REENCODE = "reencode"


def clip_window(start_ms: float, end_ms: float, duration_ms: Optional[float] = None) -> Tuple[float, float]:
    """
    Turn a bookmark range into ffmpeg's (seek, duration) in seconds.

    Negative starts seek from 0, ends past the media are pulled back to its
    duration, and the result always spans at least MIN_CLIP_SEC.
    """
    start_sec = max(0.0, start_ms / 1000)
    end_sec = end_ms / 1000
    if duration_ms is not None and duration_ms > 0:
        end_sec = min(end_sec, duration_ms / 1000)
    end_sec = max(start_sec + MIN_CLIP_SEC, end_sec)
    return round(start_sec, 3), round(max(MIN_CLIP_SEC, end_sec - start_sec), 3)


def _copy_args(source: Path, dest: Path, start_sec: float, length_sec: float) -> list[str]:
    return [
        "-ss", str(start_sec),
        "-i", str(source),
        "-t", str(length_sec),
        "-c", "copy",
        "-movflags", "+faststart",
        "-y", str(dest),
    ]


def _reencode_args(source: Path, dest: Path, start_sec: float, length_sec: float) -> list[str]:
    return [
        "-ss", str(start_sec),
        "-i", str(source),
        "-t", str(length_sec),
        "-c:v", "libx264", "-preset", "ultrafast", "-crf", "18",
        "-c:a", "aac", "-b:a", "128k",
        "-movflags", "+faststart",
        "-y", str(dest),
    ]


def cut_clip(source, dest, start_ms: float, end_ms: float, duration_ms: Optional[float] = None) -> str:
    """
    Cut [start_ms, end_ms] out of source into dest.

    Stream copy is tried first (fast, keyframe-aligned); a libx264/AAC
    re-encode is the fallback. Returns the mode that produced the file.
    """
    source, dest = Path(source), Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    start_sec, length_sec = clip_window(start_ms, end_ms, duration_ms)

    try:
        run_ffmpeg(_copy_args(source, dest, start_sec, length_sec))
        return MODE_COPY
    except ToolError as e:
        logger.warning("Stream copy of %s failed (%s), re-encoding", source, e)

    run_ffmpeg(_reencode_args(source, dest, start_sec, length_sec))
    return MODE_REENCODE

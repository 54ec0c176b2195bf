import logging
from pathlib import Path
from typing import Optional

from moviepy import VideoFileClip

logger = logging.getLogger(__name__)


def probe_duration_ms(video_path) -> Optional[int]:
    """Return the media duration in milliseconds, or None if it can't be read."""
    p = Path(video_path)
    if not p.exists():
        return None
    try:
        with VideoFileClip(str(p), audio=False) as clip:
            duration = clip.duration
    except Exception as e:
        logger.warning("Could not read duration of %s: %s", p, e)
        return None
    if not duration or duration <= 0:
        return None
    return int(round(duration * 1000))

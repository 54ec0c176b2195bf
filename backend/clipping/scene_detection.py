"""
Shot-cut detection over a processed video.

Three strategies are tried in order:
  1. ffprobe running the lavfi scene filter, CSV output
  2. ffmpeg running the scene filter with metadata=print
  3. frames sampled every FRAME_INTERVAL_SEC seconds, compared pairwise

The first two report ffmpeg's own scene score, the third a histogram
similarity between neighbouring samples.
"""
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from .ffmpeg import ToolError, run_ffmpeg, run_ffprobe

logger = logging.getLogger(__name__)

SCENE_THRESHOLD = 0.4
MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95
FRAME_INTERVAL_SEC = 2
SIMILARITY_CUT_THRESHOLD = 0.7
DEFAULT_SIMILARITY = 0.5

METHOD_FFPROBE = "ffprobe_scene"
METHOD_FFMPEG = "ffmpeg_scene"
METHOD_HISTOGRAM = "histogram_difference"

PTS_TIME_RE = re.compile(r"pts_time[:=]\s*(-?[0-9]+(?:\.[0-9]+)?)")
SCENE_SCORE_RE = re.compile(r"lavfi\.scene_score=\s*([0-9]+(?:\.[0-9]+)?)")


class DetectionError(RuntimeError):
    """Every detection strategy failed."""


@dataclass(frozen=True)
class ShotCutCandidate:
    timestamp_ms: int
    confidence: float
    detection_method: str


def clamp_confidence(score: float) -> float:
    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, score))


def _score_to_cut(pts_time: float, score: float, duration_ms: Optional[int], method: str) -> Optional[ShotCutCandidate]:
    timestamp_ms = int(round(pts_time * 1000))
    if timestamp_ms < 0:
        return None
    if duration_ms is not None and timestamp_ms >= duration_ms:
        return None
    return ShotCutCandidate(timestamp_ms, clamp_confidence(score), method)


def lavfi_quote(value: str) -> str:
    """Quote a value for use inside a lavfi filter-graph option."""
    return "'" + value.replace("\\", "\\\\").replace("'", r"'\''") + "'"


def parse_ffprobe_csv(output: str, duration_ms: Optional[int]) -> List[ShotCutCandidate]:
    cuts: List[ShotCutCandidate] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = [p.strip() for p in line.split(",")]
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        try:
            pts_time = float(parts[0])
            score = float(parts[1])
        except ValueError:
            continue
        cut = _score_to_cut(pts_time, score, duration_ms, METHOD_FFPROBE)
        if cut is not None:
            cuts.append(cut)
    return cuts


def parse_metadata_print(output: str, duration_ms: Optional[int]) -> List[ShotCutCandidate]:
    """
    Parse ffmpeg's metadata=print output. Each selected frame prints a
    "frame:N pts:N pts_time:T" line followed by its tag lines, so the
    pts_time seen last is paired with the next scene score.
    """
    cuts: List[ShotCutCandidate] = []
    pts_time: Optional[float] = None
    for line in output.splitlines():
        m = PTS_TIME_RE.search(line)
        if m:
            pts_time = float(m.group(1))
        s = SCENE_SCORE_RE.search(line)
        if s and pts_time is not None:
            cut = _score_to_cut(pts_time, float(s.group(1)), duration_ms, METHOD_FFMPEG)
            if cut is not None:
                cuts.append(cut)
            pts_time = None
    return cuts


def detect_cuts_with_ffprobe(video_path: Path, duration_ms: Optional[int],
                             threshold: float = SCENE_THRESHOLD) -> List[ShotCutCandidate]:
    graph = f"movie={lavfi_quote(str(video_path))},select=gt(scene\\,{threshold})"
    proc = run_ffprobe([
        "-hide_banner",
        "-of", "csv=p=0",
        "-show_entries", "frame=pts_time:frame_tags=lavfi.scene_score",
        "-f", "lavfi",
        graph,
    ])
    return parse_ffprobe_csv(proc.stdout or "", duration_ms)


def detect_cuts_with_ffmpeg(video_path: Path, duration_ms: Optional[int],
                            threshold: float = SCENE_THRESHOLD) -> List[ShotCutCandidate]:
    proc = run_ffmpeg([
        "-hide_banner", "-nostdin",
        "-i", str(video_path),
        "-vf", f"select='gt(scene,{threshold})',metadata=print:file=-",
        "-f", "null",
        "-",
    ])
    return parse_metadata_print(proc.stdout or "", duration_ms)


def _histogram(path: Path):
    img = cv2.imread(str(path))
    if img is None:
        return None
    hsv = cv2.cvtColor(img, cv2.COLOR_BGR2HSV)
    hist = cv2.calcHist([hsv], [0, 1], None, [50, 60], [0, 180, 0, 256])
    cv2.normalize(hist, hist, 0, 1, cv2.NORM_MINMAX)
    return hist


def size_similarity(size_a: int, size_b: int) -> float:
    avg = (size_a + size_b) / 2
    if avg <= 0:
        return DEFAULT_SIMILARITY
    return max(0.0, 1 - abs(size_a - size_b) / avg)


def compare_frames(frame_a: Path, frame_b: Path) -> float:
    """Similarity in [0, 1] between two still frames, 1 meaning identical."""
    hist_a = _histogram(frame_a)
    hist_b = _histogram(frame_b)
    if hist_a is not None and hist_b is not None:
        correlation = cv2.compareHist(hist_a, hist_b, cv2.HISTCMP_CORREL)
        return float(np.clip(correlation, 0.0, 1.0))

    # undecodable frame: JPEG size is a crude proxy for content
    try:
        return size_similarity(frame_a.stat().st_size, frame_b.stat().st_size)
    except OSError:
        return DEFAULT_SIMILARITY


def detect_cuts_with_frame_difference(video_path: Path, duration_ms: Optional[int], scratch_root: Path,
                                      interval_sec: int = FRAME_INTERVAL_SEC) -> List[ShotCutCandidate]:
    scratch_root.mkdir(parents=True, exist_ok=True)
    frames_dir = Path(tempfile.mkdtemp(prefix="shot-detection-", dir=scratch_root))
    try:
        run_ffmpeg([
            "-hide_banner", "-nostdin",
            "-i", str(video_path),
            "-vf", f"fps=1/{interval_sec}",
            "-q:v", "2",
            str(frames_dir / "frame_%04d.jpg"),
        ])

        frames = sorted(frames_dir.glob("*.jpg"))
        if len(frames) < 2:
            return []

        cuts: List[ShotCutCandidate] = []
        for i in range(1, len(frames)):
            similarity = compare_frames(frames[i - 1], frames[i])
            if similarity >= SIMILARITY_CUT_THRESHOLD:
                continue
            timestamp_ms = (i - 1) * interval_sec * 1000
            if duration_ms is not None and timestamp_ms >= duration_ms:
                continue
            cuts.append(ShotCutCandidate(timestamp_ms, round(1 - similarity, 4), METHOD_HISTOGRAM))
        return cuts
    finally:
        shutil.rmtree(frames_dir, ignore_errors=True)


def detect_shot_cuts(video_path, duration_ms: Optional[int], scratch_root,
                     threshold: float = SCENE_THRESHOLD) -> List[ShotCutCandidate]:
    """
    Run the strategies in order and return the first non-empty result.

    The frame-difference result is returned even when empty. Raises
    DetectionError when the last strategy fails too.
    """
    video_path = Path(video_path)
    failures: List[str] = []

    for name, strategy in (
        ("ffprobe", detect_cuts_with_ffprobe),
        ("ffmpeg", detect_cuts_with_ffmpeg),
    ):
        try:
            cuts = strategy(video_path, duration_ms, threshold=threshold)
        except ToolError as e:
            logger.warning("%s scene detection failed for %s: %s", name, video_path, e)
            failures.append(f"{name}: {e}")
            continue
        if cuts:
            logger.info("%s detected %d shot cuts in %s", name, len(cuts), video_path)
            return cuts
        logger.info("%s detected no shot cuts in %s, falling back", name, video_path)
        failures.append(f"{name}: no cuts detected")

    try:
        cuts = detect_cuts_with_frame_difference(video_path, duration_ms, Path(scratch_root))
    except ToolError as e:
        failures.append(f"frame difference: {e}")
        raise DetectionError("All shot cut detection strategies failed (" + "; ".join(failures) + ")") from e
    logger.info("Frame difference detected %d shot cuts in %s", len(cuts), video_path)
    return cuts

from .ffmpeg import ToolError, run_ffmpeg, run_ffprobe, ffmpeg_binary, ffprobe_binary, tool_available
from .scene_detection import DetectionError, ShotCutCandidate, detect_shot_cuts
from .clip_cutter import clip_window, cut_clip
from . import obs_package
from .media import probe_duration_ms
from . import paths

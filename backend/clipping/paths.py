"""Deterministic on-disk layout for processed media under the data directory."""
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]

PROCESSED_FILES_DIRNAME = "processed-files"
TEMP_DIRNAME = "temp"
PROCESSED_VIDEO_NAME = "processed.mp4"
CLIPS_DIRNAME = "clips"


def processed_files_dir(data_dir: PathLike) -> Path:
    return Path(data_dir).resolve() / PROCESSED_FILES_DIRNAME


def temp_dir(data_dir: PathLike) -> Path:
    return Path(data_dir).resolve() / TEMP_DIRNAME


def workspace_dir(data_dir: PathLike, workspace_id) -> Path:
    return processed_files_dir(data_dir) / str(workspace_id)


def processed_video_path(data_dir: PathLike, workspace_id) -> Path:
    return workspace_dir(data_dir, workspace_id) / PROCESSED_VIDEO_NAME


def clips_dir(data_dir: PathLike, workspace_id) -> Path:
    return workspace_dir(data_dir, workspace_id) / CLIPS_DIRNAME


def clip_path(data_dir: PathLike, workspace_id, bookmark_id) -> Path:
    return clips_dir(data_dir, workspace_id) / f"{bookmark_id}.mp4"


def partial_clip_path(data_dir: PathLike, workspace_id, bookmark_id, job_id) -> Path:
    # one scratch file per job so overlapping exports never write the same file
    return clips_dir(data_dir, workspace_id) / f"{bookmark_id}.{job_id}.part.mp4"


def obs_package_path(data_dir: PathLike, workspace_id, stamp) -> Path:
    return workspace_dir(data_dir, workspace_id) / f"obs-package-{stamp}.zip"


def obs_scratch_dir(data_dir: PathLike, workspace_id, job_id) -> Path:
    return temp_dir(data_dir) / f"obs-package-{workspace_id}-{job_id}"

"""
Building blocks of the OBS/VTR package: clip naming, hotkey assignment,
thumbnails, the JSON descriptors OBS tooling reads, and the final zip.

Nothing here knows about Django; bookmarks come in as plain dicts with
id, label, start_ms, end_ms and created_at.
"""
import json
import logging
import re
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from .ffmpeg import run_ffmpeg

logger = logging.getLogger(__name__)

HOTKEY_PATTERNS = ("sequential", "creator-based", "time-based")
NAMING_CONVENTIONS = ("workspace-content-label", "content-label", "label-only", "workspace-label")

FUNCTION_KEYS = 12
THUMBNAIL_SIZE = "320:180"

PACKAGE_DIRS = ("clips", "thumbnails", "metadata", "obs")

_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")


def safe_name(value) -> str:
    return _UNSAFE.sub("_", value or "")


def clip_filename(workspace_title, content_title, label, convention) -> str:
    workspace_name = safe_name(workspace_title)
    content_name = safe_name(content_title)
    label_name = safe_name(label or "untitled")

    if convention == "workspace-content-label":
        return f"{workspace_name}-{content_name}-{label_name}"
    if convention == "content-label":
        return f"{content_name}-{label_name}"
    if convention == "label-only":
        return label_name
    return f"{workspace_name}-{label_name}"


def assign_hotkey(index: int, pattern: str) -> dict:
    """
    F1-F12 first, then the same keys again under Ctrl, Alt and Shift.

    Only the sequential pattern uses all four banks; the other patterns stop
    after Ctrl and keep counting past F12 beyond that.
    """
    bank, key = divmod(index, FUNCTION_KEYS)
    if pattern == "sequential":
        modifiers = [[], ["Ctrl"], ["Alt"], ["Shift"]][min(bank, 3)]
        if bank > 3:
            key = index - 3 * FUNCTION_KEYS
    elif pattern in HOTKEY_PATTERNS:
        modifiers = [] if bank == 0 else ["Ctrl"]
        if bank > 1:
            key = index - FUNCTION_KEYS
    else:
        modifiers, key = [], index
    return {"key": f"F{key + 1}", "modifiers": modifiers}


def build_hotkeys(bookmarks, pattern) -> list:
    return [
        {
            "bookmark_id": bm["id"],
            "label": bm.get("label") or f"Clip {i + 1}",
            **assign_hotkey(i, pattern),
        }
        for i, bm in enumerate(bookmarks)
    ]


def create_package_structure(package_dir: Path):
    for name in PACKAGE_DIRS:
        (package_dir / name).mkdir(parents=True, exist_ok=True)


def extract_thumbnail(source, dest, time_ms):
    run_ffmpeg([
        "-ss", str(max(0.0, time_ms / 1000)),
        "-i", str(source),
        "-frames:v", "1",
        "-q:v", "2",
        "-vf", f"scale={THUMBNAIL_SIZE}",
        "-y", str(dest),
    ])


def _write_json(path: Path, data):
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")


def write_descriptors(package_dir: Path, workspace: dict, bookmarks, hotkeys, clip_files: dict):
    """Write metadata/clips.json, metadata/workspace-info.json, obs/config.json and obs/hotkeys.json."""
    by_bookmark = {h["bookmark_id"]: h for h in hotkeys}

    clips = []
    for i, bm in enumerate(bookmarks):
        clips.append({
            "id": bm["id"],
            "label": bm.get("label") or f"Clip {i + 1}",
            "filename": clip_files.get(bm["id"]),
            "start_ms": bm["start_ms"],
            "end_ms": bm["end_ms"],
            "duration_ms": bm["end_ms"] - bm["start_ms"],
            "created_at": bm.get("created_at"),
            "hotkey": by_bookmark.get(bm["id"]),
        })

    _write_json(package_dir / "metadata" / "clips.json", clips)
    _write_json(package_dir / "metadata" / "workspace-info.json", {
        **workspace,
        "total_clips": len(bookmarks),
    })
    _write_json(package_dir / "obs" / "config.json", {
        "workspace": workspace,
        # clips that failed to cut are left out of the scene setup
        "clips": [c for c in clips if c["filename"]],
        "hotkeys": hotkeys,
    })
    _write_json(package_dir / "obs" / "hotkeys.json", hotkeys)


def write_zip(source_dir: Path, zip_path: Path) -> int:
    """Zip the package directory (paths relative to it) and return the archive size."""
    zip_path.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(zip_path, mode="w", compression=ZIP_DEFLATED) as zf:
        for path in sorted(source_dir.rglob("*")):
            if path.is_file():
                zf.write(path, arcname=str(path.relative_to(source_dir)))
    logger.info("OBS package written to %s", zip_path)
    return zip_path.stat().st_size

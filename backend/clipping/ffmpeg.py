import logging
import os
import shutil
import subprocess
from typing import Optional

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


class ToolError(RuntimeError):
    """An ffmpeg/ffprobe invocation failed to start, timed out or exited non-zero."""

    def __init__(self, cmd: list[str], message: str, returncode: Optional[int] = None, stderr: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


def ffmpeg_binary() -> str:
    return os.environ.get("FFMPEG_BINARY") or "ffmpeg"


def ffprobe_binary() -> str:
    return os.environ.get("FFPROBE_BINARY") or "ffprobe"


def tool_available(binary: str) -> bool:
    return shutil.which(binary) is not None


def default_timeout() -> Optional[float]:
    # Unset means ffmpeg may run for as long as it needs.
    raw = os.environ.get("FFMPEG_TIMEOUT_SECONDS", "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid FFMPEG_TIMEOUT_SECONDS=%r", raw)
        return None
    return value if value > 0 else None


def run_tool(cmd: list[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    """
    Run an external tool with an argument list (never a shell string).

    Returns the completed process with text stdout/stderr.
    Raises ToolError on spawn failure, timeout or non-zero exit.
    """
    if timeout is None:
        timeout = default_timeout()
    logger.debug("Running %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolError(cmd, f"{cmd[0]} timed out after {timeout}s") from e
    except OSError as e:
        raise ToolError(cmd, f"{cmd[0]} could not be started: {e}") from e

    if proc.returncode != 0:
        tail = (proc.stderr or "")[-STDERR_TAIL_CHARS:]
        raise ToolError(
            cmd,
            f"{cmd[0]} exited {proc.returncode}",
            returncode=proc.returncode,
            stderr=tail,
        )
    return proc


def run_ffmpeg(args: list[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    return run_tool([ffmpeg_binary(), *args], timeout=timeout)


def run_ffprobe(args: list[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    return run_tool([ffprobe_binary(), *args], timeout=timeout)

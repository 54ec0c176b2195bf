"""
Recovery of work left in the "processing" state by an unclean shutdown.

Nothing here retries anything: stuck rows are marked failed so the UI stops
waiting on them, and a fresh user action has to start the work again.
"""
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from .models import ProcessingJob, Video, Workspace

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Processing interrupted by application restart"


class RecoveryError(RuntimeError):
    pass


@dataclass
class RecoveryStats:
    stuck_workspaces: int = 0
    stuck_jobs: int = 0
    stuck_videos: int = 0
    recovered_workspaces: int = 0
    recovered_jobs: int = 0
    recovered_videos: int = 0

    def as_dict(self):
        return asdict(self)


def recover_stuck_processing_jobs(before: Optional[datetime] = None) -> RecoveryStats:
    """
    Mark every workspace, job and video stuck in "processing" as failed.

    With `before`, rows touched at or after that moment are left alone: they
    may belong to a worker process that is still running them.
    """
    logger.info("Processing recovery start (before=%s)", before)
    stats = RecoveryStats()
    older = {"updated_at__lt": before} if before is not None else {}
    try:
        with transaction.atomic():
            stuck_workspaces = list(Workspace.objects.filter(processing_status="processing", **older))
            for ws in stuck_workspaces:
                logger.info("Stuck workspace %s %r (last updated %s)", ws.id, ws.title, ws.updated_at)
            stats.stuck_workspaces = len(stuck_workspaces)
            if stuck_workspaces:
                stats.recovered_workspaces = Workspace.objects.filter(
                    id__in=[ws.id for ws in stuck_workspaces], processing_status="processing"
                ).update(processing_status="failed", processing_progress=0)

            stuck_jobs = list(ProcessingJob.objects.filter(status="processing", **older))
            for job in stuck_jobs:
                logger.info("Stuck job %s %s for workspace %s (last updated %s)",
                            job.id, job.type, job.workspace_id, job.updated_at)
            stats.stuck_jobs = len(stuck_jobs)
            if stuck_jobs:
                stats.recovered_jobs = ProcessingJob.objects.filter(
                    id__in=[job.id for job in stuck_jobs], status="processing"
                ).update(status="failed", progress_percent=0, error_text=INTERRUPTED_MESSAGE)

            stuck_videos = list(Video.objects.filter(processing_status="processing", **older))
            for video in stuck_videos:
                logger.info("Stuck video %s in workspace %s", video.id, video.workspace_id)
            stats.stuck_videos = len(stuck_videos)
            if stuck_videos:
                stats.recovered_videos = Video.objects.filter(
                    id__in=[v.id for v in stuck_videos], processing_status="processing"
                ).update(processing_status="failed", processing_progress=0, processing_error=INTERRUPTED_MESSAGE)
    except Exception as e:
        logger.exception("Processing recovery failed")
        raise RecoveryError(f"Processing recovery failed: {e}") from e

    logger.info("Processing recovery completed: %s", stats.as_dict())
    return stats


def processing_status_summary() -> dict:
    """Counts of workspaces and jobs per status."""
    workspace_counts = {
        row["processing_status"]: row["n"]
        for row in Workspace.objects.values("processing_status").annotate(n=Count("id"))
    }
    job_counts = {
        row["status"]: row["n"]
        for row in ProcessingJob.objects.values("status").annotate(n=Count("id"))
    }
    summary = {
        "total_workspaces": sum(workspace_counts.values()),
        "total_jobs": sum(job_counts.values()),
    }
    for status, _ in Workspace._meta.get_field("processing_status").choices:
        summary[f"{status}_workspaces"] = workspace_counts.get(status, 0)
    for status, _ in ProcessingJob.STATUS:
        summary[f"{status}_jobs"] = job_counts.get(status, 0)
    return summary


class _StartupRecovery:
    """
    Runs the sweep on first use only, for the life of the process.

    Only rows last touched before this process started are swept. Celery
    workers run outside the web process, so anything updated since then may
    still be live. A full sweep belongs in `manage.py recover_processing`,
    run once at deployment start before the workers come up.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at = timezone.now()
        self._done = False
        self.stats: Optional[RecoveryStats] = None

    def __call__(self) -> Optional[RecoveryStats]:
        with self._lock:
            if self._done:
                return self.stats
            self._done = True
            try:
                self.stats = recover_stuck_processing_jobs(before=self.started_at)
            except RecoveryError:
                logger.exception("Startup processing recovery failed")
            return self.stats

    def reset(self):
        with self._lock:
            self._done = False
            self.stats = None


run_startup_recovery = _StartupRecovery()

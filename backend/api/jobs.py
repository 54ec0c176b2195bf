import logging
from pathlib import Path

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from clipping import paths

from .models import Bookmark, ProcessingJob

logger = logging.getLogger(__name__)

SUPERSEDED_MESSAGE = "Superseded by newer edit"
BOOKMARK_DELETED_MESSAGE = "Bookmark was deleted"


def data_dir() -> Path:
    return Path(settings.MEDIA_ROOT)


def send_status(job_id, status, progress, error=""):
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(
            f"job_{job_id}",
            {
                "type": "job_update",
                "data": {"job_id": job_id, "status": status, "progress": progress, "error": error},
            },
        )
    except Exception:
        # push is best-effort, the job row is the source of truth
        logger.warning("Could not push status for job %s", job_id, exc_info=True)


def update_job_status(job, status, progress=None, error_text=None, payload=None):
    """Persist a job transition and push it to websocket listeners."""
    job.status = status
    fields = ["status", "updated_at"]
    if progress is not None:
        job.progress_percent = progress
        fields.append("progress_percent")
    if error_text is not None:
        job.error_text = error_text
        fields.append("error_text")
    if payload is not None:
        job.payload = {**(job.payload or {}), **payload}
        fields.append("payload")
    job.save(update_fields=fields)
    send_status(job.id, job.status, job.progress_percent, job.error_text)
    return job


def transition_job(job, expected, status, progress=None, error_text=None, payload=None) -> bool:
    """
    Move the job to `status` only if its row is still `expected`.

    The check and the write are one UPDATE, so a cancellation that lands in
    between cannot be overwritten. Returns False, with `job` refreshed from
    the database, when the row had already moved on.
    """
    changes = {"status": status, "updated_at": timezone.now()}
    if progress is not None:
        changes["progress_percent"] = progress
    if error_text is not None:
        changes["error_text"] = error_text
    if payload is not None:
        changes["payload"] = {**(job.payload or {}), **payload}

    if not ProcessingJob.objects.filter(id=job.id, status=expected).update(**changes):
        job.refresh_from_db(fields=["status", "progress_percent", "error_text"])
        return False

    for field, value in changes.items():
        setattr(job, field, value)
    send_status(job.id, job.status, job.progress_percent, job.error_text)
    return True


def cancel_export_jobs(bookmark_id, message) -> list:
    """Cancel every pending/processing clip export of a bookmark; returns their ids."""
    cancelled = list(
        ProcessingJob.objects.filter(
            type="export_clip",
            bookmark_id=bookmark_id,
            status__in=ProcessingJob.ACTIVE_STATUSES,
        ).values_list("id", flat=True)
    )
    if cancelled:
        ProcessingJob.objects.filter(id__in=cancelled, status__in=ProcessingJob.ACTIVE_STATUSES).update(
            status="cancelled", error_text=message, updated_at=timezone.now()
        )
    return cancelled


def schedule_clip_generation(bookmark: Bookmark, debounce_ms=None) -> ProcessingJob:
    """
    Queue a clip export for the bookmark's current range.

    Earlier pending/processing exports of the same bookmark are cancelled and
    the new job runs only after `debounce_ms` of quiet. The job row doubles as
    the cancellation token: a task whose job is no longer pending when it
    fires does nothing.
    """
    from .tasks import export_clip_task

    if debounce_ms is None:
        debounce_ms = settings.CLIP_EXPORT_DEBOUNCE_MS

    with transaction.atomic():
        # serialise concurrent edits of the same bookmark
        Bookmark.objects.select_for_update().filter(pk=bookmark.pk).first()

        superseded = cancel_export_jobs(bookmark.id, SUPERSEDED_MESSAGE)

        job = ProcessingJob.objects.create(
            workspace_id=bookmark.workspace_id,
            bookmark=bookmark,
            type="export_clip",
            status="pending",
            progress_percent=0,
            payload={
                "bookmark_id": bookmark.id,
                "start_ms": bookmark.start_ms,
                "end_ms": bookmark.end_ms,
            },
        )

        countdown = max(0, debounce_ms) / 1000
        transaction.on_commit(lambda: export_clip_task.apply_async(args=[job.id], countdown=countdown))

    for job_id in superseded:
        send_status(job_id, "cancelled", None, SUPERSEDED_MESSAGE)
    logger.info(
        "Scheduled clip export job %s for bookmark %s (superseded %s)",
        job.id, bookmark.id, superseded or "none",
    )
    return job


def latest_export_job(bookmark_id):
    return (
        ProcessingJob.objects.filter(type="export_clip", bookmark_id=bookmark_id)
        .order_by("-updated_at", "-id")
        .first()
    )


def delete_clip_for_bookmark(workspace_id, bookmark_id):
    clip = paths.clip_path(data_dir(), workspace_id, bookmark_id)
    clip.unlink(missing_ok=True)


def delete_bookmark(bookmark: Bookmark):
    """Delete the bookmark, stop its queued exports and remove its clip."""
    workspace_id, bookmark_id = bookmark.workspace_id, bookmark.id
    with transaction.atomic():
        cancelled = cancel_export_jobs(bookmark_id, BOOKMARK_DELETED_MESSAGE)
        bookmark.delete()

    for job_id in cancelled:
        send_status(job_id, "cancelled", None, BOOKMARK_DELETED_MESSAGE)
    delete_clip_for_bookmark(workspace_id, bookmark_id)
    logger.info("Deleted bookmark %s (cancelled exports %s)", bookmark_id, cancelled or "none")

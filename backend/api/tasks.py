import logging
import os
import shutil
import time

from celery import shared_task
from django.conf import settings
from django.db import transaction

from clipping import DetectionError, ToolError, cut_clip, detect_shot_cuts, obs_package, paths, probe_duration_ms

from .jobs import data_dir, transition_job, update_job_status
from .models import ProcessingJob, ShotCut, WorkspaceLease

logger = logging.getLogger(__name__)

DETECTION_LEASE = "shot_cut_detection"
DETECTION_BUSY_MESSAGE = "Shot cut detection already running for this workspace"
OBS_EXPORT_LEASE = "obs_export"
OBS_EXPORT_BUSY_MESSAGE = "OBS export already running for this workspace"


def _content_duration_ms(workspace, video_path):
    if workspace.content_duration_ms:
        return workspace.content_duration_ms
    return probe_duration_ms(video_path)


@shared_task
def detect_shot_cuts_task(job_id: int):
    try:
        job = ProcessingJob.objects.select_related("workspace").get(id=job_id)
    except ProcessingJob.DoesNotExist:
        return f"Job {job_id} not found"

    workspace = job.workspace
    owner = f"job-{job.id}"
    if not WorkspaceLease.acquire(workspace.id, DETECTION_LEASE, owner, settings.SHOT_CUT_LEASE_SECONDS):
        logger.info("Workspace %s is already being processed for shot cuts", workspace.id)
        update_job_status(job, "cancelled", error_text=DETECTION_BUSY_MESSAGE)
        return job.status

    logger.info("Shot cut detection start: job=%s workspace=%s", job.id, workspace.id)
    try:
        update_job_status(job, "processing", 0)

        video_path = paths.processed_video_path(data_dir(), workspace.id)
        if not video_path.exists():
            raise DetectionError(f"Processed video file not found at {video_path}")

        duration_ms = _content_duration_ms(workspace, video_path)
        update_job_status(job, "processing", 10)

        cuts = detect_shot_cuts(
            video_path,
            duration_ms,
            scratch_root=paths.temp_dir(data_dir()),
            threshold=settings.SHOT_CUT_SCENE_THRESHOLD,
        )
        update_job_status(job, "processing", 90)

        # replace the previous run's cuts only once this run has succeeded
        with transaction.atomic():
            ShotCut.objects.filter(workspace=workspace).delete()
            ShotCut.objects.bulk_create([
                ShotCut(
                    workspace=workspace,
                    timestamp_ms=cut.timestamp_ms,
                    confidence=cut.confidence,
                    detection_method=cut.detection_method,
                )
                for cut in cuts
            ])
            update_job_status(
                job, "completed", 100, error_text="",
                payload={
                    "cut_count": len(cuts),
                    "detection_method": cuts[0].detection_method if cuts else None,
                },
            )

        logger.info("Shot cut detection completed for workspace %s: %d cuts", workspace.id, len(cuts))

    except Exception as e:
        logger.exception("Shot cut detection failed for workspace %s", workspace.id)
        update_job_status(job, "failed", 0, error_text=str(e) or e.__class__.__name__)

    finally:
        WorkspaceLease.release(workspace.id, DETECTION_LEASE, owner)

    return job.status


@shared_task
def export_clip_task(job_id: int):
    try:
        job = ProcessingJob.objects.select_related("workspace").get(id=job_id)
    except ProcessingJob.DoesNotExist:
        return f"Job {job_id} not found"

    # claim the token; a job superseded while waiting out the debounce stays put
    if not transition_job(job, "pending", "processing", 10):
        logger.info("Skipping clip export job %s (%s)", job.id, job.status)
        return job.status

    payload = job.payload or {}
    bookmark_id = payload.get("bookmark_id", job.bookmark_id)
    workspace = job.workspace
    base = data_dir()
    partial = paths.partial_clip_path(base, workspace.id, bookmark_id, job.id)

    logger.info("Clip export start: job=%s bookmark=%s workspace=%s", job.id, bookmark_id, workspace.id)
    try:
        source = paths.processed_video_path(base, workspace.id)
        if not source.exists():
            raise FileNotFoundError(f"Processed video file not found at {source}")

        mode = cut_clip(
            source,
            partial,
            int(payload.get("start_ms", 0)),
            int(payload.get("end_ms", 0)),
            duration_ms=workspace.content_duration_ms,
        )

        if not transition_job(job, "processing", "completed", 100, error_text="", payload={"mode": mode}):
            logger.info("Discarding clip for job %s, it was %s while cutting", job.id, job.status)
            partial.unlink(missing_ok=True)
            return job.status

        os.replace(partial, paths.clip_path(base, workspace.id, bookmark_id))
        logger.info("Clip export completed: job=%s bookmark=%s mode=%s", job.id, bookmark_id, mode)

    except Exception as e:
        logger.exception("Clip export failed: job=%s bookmark=%s", job.id, bookmark_id)
        partial.unlink(missing_ok=True)
        # only overwrite the state this task wrote last, never a cancellation
        transition_job(job, job.status, "failed", error_text=str(e) or e.__class__.__name__)

    return job.status


def _unique_filename(name, bookmark_id, used):
    if name in used:
        name = f"{name}-{bookmark_id}"
    used.add(name)
    return f"{name}.mp4"


@shared_task
def export_obs_package_task(job_id: int):
    try:
        job = ProcessingJob.objects.select_related("workspace").get(id=job_id)
    except ProcessingJob.DoesNotExist:
        return f"Job {job_id} not found"

    workspace = job.workspace
    owner = f"job-{job.id}"
    if not WorkspaceLease.acquire(workspace.id, OBS_EXPORT_LEASE, owner, settings.OBS_EXPORT_LEASE_SECONDS):
        logger.info("Workspace %s OBS export is already being processed", workspace.id)
        transition_job(job, "pending", "cancelled", error_text=OBS_EXPORT_BUSY_MESSAGE)
        return job.status

    options = job.payload or {}
    base = data_dir()
    package_dir = paths.obs_scratch_dir(base, workspace.id, job.id)

    logger.info("OBS export start: job=%s workspace=%s", job.id, workspace.id)
    try:
        if not transition_job(job, "pending", "processing", 10):
            logger.info("Skipping OBS export job %s (%s)", job.id, job.status)
            return job.status

        source = paths.processed_video_path(base, workspace.id)
        if not source.exists():
            raise FileNotFoundError(f"Processed video file not found at {source}")

        bookmarks = list(
            workspace.bookmarks.order_by("created_at", "id").values("id", "label", "start_ms", "end_ms", "created_at")
        )
        transition_job(job, "processing", "processing", 20)

        obs_package.create_package_structure(package_dir)
        transition_job(job, "processing", "processing", 30)

        convention = options.get("naming_convention", "workspace-content-label")
        clip_files, used, skipped = {}, set(), []
        for bm in bookmarks:
            name = obs_package.clip_filename(workspace.title, workspace.content_title, bm["label"], convention)
            filename = _unique_filename(name, bm["id"], used)
            try:
                cut_clip(
                    source,
                    package_dir / "clips" / filename,
                    bm["start_ms"],
                    bm["end_ms"],
                    duration_ms=workspace.content_duration_ms,
                )
            except ToolError:
                logger.warning("Leaving bookmark %s out of the OBS package", bm["id"], exc_info=True)
                skipped.append(bm["id"])
                continue
            clip_files[bm["id"]] = filename
        transition_job(job, "processing", "processing", 60)

        for bm in bookmarks:
            try:
                obs_package.extract_thumbnail(source, package_dir / "thumbnails" / f"{bm['id']}.jpg", bm["start_ms"])
            except ToolError:
                logger.warning("No thumbnail for bookmark %s", bm["id"], exc_info=True)
        transition_job(job, "processing", "processing", 70)

        hotkeys = obs_package.build_hotkeys(bookmarks, options.get("hotkey_pattern", "sequential"))
        transition_job(job, "processing", "processing", 80)

        obs_package.write_descriptors(
            package_dir,
            {
                "id": workspace.id,
                "title": workspace.title,
                "content_title": workspace.content_title,
                "created_at": workspace.created_at,
            },
            bookmarks,
            hotkeys,
            clip_files,
        )
        transition_job(job, "processing", "processing", 90)

        zip_path = paths.obs_package_path(base, workspace.id, int(time.time() * 1000))
        size = obs_package.write_zip(package_dir, zip_path)

        completed = transition_job(
            job, "processing", "completed", 100, error_text="",
            payload={
                "zip_name": zip_path.name,
                "package_size": size,
                "clip_count": len(clip_files),
                "skipped_bookmarks": skipped,
            },
        )
        if not completed:
            logger.info("Discarding OBS package for job %s, it was %s while exporting", job.id, job.status)
            zip_path.unlink(missing_ok=True)
            return job.status

        logger.info("OBS export completed for workspace %s: %d clips, %d bytes", workspace.id, len(clip_files), size)

    except Exception as e:
        logger.exception("OBS export failed for workspace %s", workspace.id)
        transition_job(job, job.status, "failed", error_text=str(e) or e.__class__.__name__)

    finally:
        shutil.rmtree(package_dir, ignore_errors=True)
        WorkspaceLease.release(workspace.id, OBS_EXPORT_LEASE, owner)

    return job.status

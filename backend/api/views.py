import logging
import time

from django.db import transaction
from django.http import FileResponse, Http404
from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from clipping import ffmpeg_binary, ffprobe_binary, paths, tool_available
from clipping.obs_package import safe_name

from .jobs import data_dir, delete_bookmark, latest_export_job, schedule_clip_generation
from .models import Bookmark, ProcessingJob, Workspace
from .recovery import RecoveryError, processing_status_summary, recover_stuck_processing_jobs, run_startup_recovery
from .serializers import (
    BookmarkSerializer,
    ObsExportOptionsSerializer,
    ProcessingJobSerializer,
    ShotCutSerializer,
    WorkspaceSerializer,
)
from .tasks import detect_shot_cuts_task, export_obs_package_task

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()
RANGE_FIELDS = ("start_ms", "end_ms")


class WorkspaceViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Workspace.objects.order_by("-id")
    serializer_class = WorkspaceSerializer

    @action(detail=True, methods=["get"], url_path="shot-cuts")
    def shot_cuts(self, request, pk=None):
        workspace = self.get_object()
        cuts = workspace.shot_cuts.order_by("timestamp_ms")
        return Response({"shot_cuts": ShotCutSerializer(cuts, many=True).data})

    @action(detail=True, methods=["post"], url_path="detect-shot-cuts")
    def detect_shot_cuts(self, request, pk=None):
        workspace = self.get_object()
        if workspace.processing_status != "completed":
            return Response(
                {"detail": "Workspace must be fully processed before detecting shot cuts"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        with transaction.atomic():
            job = ProcessingJob.objects.create(
                workspace=workspace,
                type="shot_cut_detection",
                status="pending",
                progress_percent=0,
                payload={"workspace_id": workspace.id, "content_title": workspace.content_title},
            )
            # fire-and-forget; clients poll the job
            transaction.on_commit(lambda: detect_shot_cuts_task.delay(job.id))

        logger.info("Shot cut detection queued: job=%s workspace=%s", job.id, workspace.id)
        return Response(
            {"detail": "Shot cut detection started", "job_id": job.id},
            status=status.HTTP_202_ACCEPTED,
        )

    @action(detail=True, methods=["post"], url_path="obs-package")
    def obs_package(self, request, pk=None):
        workspace = self.get_object()
        if workspace.processing_status != "completed":
            return Response(
                {"detail": "Workspace processing must be completed before exporting OBS package"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        options = ObsExportOptionsSerializer(data=request.data)
        options.is_valid(raise_exception=True)

        with transaction.atomic():
            job = ProcessingJob.objects.create(
                workspace=workspace,
                type="obs_export",
                status="pending",
                progress_percent=0,
                payload=dict(options.validated_data),
            )
            transaction.on_commit(lambda: export_obs_package_task.delay(job.id))

        logger.info("OBS export queued: job=%s workspace=%s", job.id, workspace.id)
        return Response(
            {"detail": "OBS package generation started", "job_id": job.id},
            status=status.HTTP_202_ACCEPTED,
        )

    @action(detail=True, methods=["get"], url_path=r"obs-package/(?P<job_id>\d+)/download")
    def download_obs_package(self, request, pk=None, job_id=None):
        workspace = self.get_object()
        job = ProcessingJob.objects.filter(
            id=job_id, workspace=workspace, type="obs_export", status="completed"
        ).first()
        if job is None:
            raise Http404("Export job not found or not completed")

        zip_name = (job.payload or {}).get("zip_name")
        zip_path = paths.workspace_dir(data_dir(), workspace.id) / zip_name if zip_name else None
        if zip_path is None or not zip_path.exists():
            raise Http404("Package file not found")

        return FileResponse(
            open(zip_path, "rb"),
            as_attachment=True,
            filename=f"{safe_name(workspace.title)}_obs-package.zip",
            content_type="application/zip",
        )


class ProcessingJobViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = ProcessingJobSerializer

    def get_queryset(self):
        qs = ProcessingJob.objects.order_by("-id")
        params = self.request.query_params
        workspace = params.get("workspace")
        if workspace:
            if not workspace.isdigit():
                raise ValidationError({"workspace": "Must be a numeric workspace id"})
            qs = qs.filter(workspace_id=int(workspace))
        if params.get("type"):
            qs = qs.filter(type=params["type"])
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        return qs


class BookmarkViewSet(mixins.CreateModelMixin,
                      mixins.RetrieveModelMixin,
                      mixins.UpdateModelMixin,
                      mixins.DestroyModelMixin,
                      mixins.ListModelMixin,
                      viewsets.GenericViewSet):
    queryset = Bookmark.objects.order_by("start_ms", "id")
    serializer_class = BookmarkSerializer

    def perform_create(self, serializer):
        bookmark = serializer.save()
        schedule_clip_generation(bookmark)

    def update(self, request, *args, **kwargs):
        bookmark = self.get_object()
        if bookmark.locked and any(f in request.data for f in RANGE_FIELDS):
            return Response({"detail": "Bookmark is locked"}, status=status.HTTP_400_BAD_REQUEST)
        return super().update(request, *args, **kwargs)

    def perform_update(self, serializer):
        before = (serializer.instance.start_ms, serializer.instance.end_ms)
        bookmark = serializer.save()
        if (bookmark.start_ms, bookmark.end_ms) != before:
            schedule_clip_generation(bookmark)

    def perform_destroy(self, instance):
        delete_bookmark(instance)

    @action(detail=True, methods=["get"])
    def clip(self, request, pk=None):
        bookmark = self.get_object()
        clip = paths.clip_path(data_dir(), bookmark.workspace_id, bookmark.id)
        if clip.exists():
            return Response({"ready": True, "status": "completed", "progress_percent": 100})

        job = latest_export_job(bookmark.id)
        return Response(
            {
                "ready": False,
                "status": job.status if job else "pending",
                "progress_percent": job.progress_percent if job else 0,
            },
            status=status.HTTP_404_NOT_FOUND,
        )


@api_view(["GET"])
@permission_classes([AllowAny])
def health(request):
    stats = run_startup_recovery()
    return Response({
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "tools": {
            "ffmpeg": tool_available(ffmpeg_binary()),
            "ffprobe": tool_available(ffprobe_binary()),
        },
        "recovery": stats.as_dict() if stats else None,
    })


class RecoveryView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response({"summary": processing_status_summary()})

    def post(self, request):
        logger.info("Processing recovery triggered by user %s", request.user.pk)
        try:
            stats = recover_stuck_processing_jobs()
        except RecoveryError as e:
            return Response({"detail": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({"detail": "Processing recovery completed", "stats": stats.as_dict()})

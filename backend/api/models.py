from datetime import timedelta

from django.db import IntegrityError, models, transaction
from django.utils import timezone

PROCESSING_STATUS = [
    ("pending", "pending"),
    ("processing", "processing"),
    ("completed", "completed"),
    ("failed", "failed"),
]


class Workspace(models.Model):
    title = models.CharField(max_length=255)
    content_title = models.CharField(max_length=255, blank=True, default="")
    content_duration_ms = models.PositiveBigIntegerField(null=True, blank=True)
    processing_status = models.CharField(max_length=16, choices=PROCESSING_STATUS, default="pending")
    processing_progress = models.PositiveSmallIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Workspace #{self.id} {self.title} ({self.processing_status})"


class Video(models.Model):
    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name="videos")
    title = models.CharField(max_length=255, blank=True, default="")
    processing_status = models.CharField(max_length=16, choices=PROCESSING_STATUS, default="pending")
    processing_progress = models.PositiveSmallIntegerField(default=0)
    processing_error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Video #{self.id} ({self.processing_status})"


class Bookmark(models.Model):
    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name="bookmarks")
    label = models.CharField(max_length=255, blank=True, default="")
    start_ms = models.BigIntegerField()
    end_ms = models.BigIntegerField()
    public_notes = models.TextField(blank=True, default="")
    locked = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Bookmark #{self.id} [{self.start_ms}-{self.end_ms}]"


class ProcessingJob(models.Model):
    TYPES = [
        ("workspace_processing", "workspace_processing"),
        ("shot_cut_detection", "shot_cut_detection"),
        ("export_clip", "export_clip"),
        ("obs_export", "obs_export"),
        ("download_clip", "download_clip"),
    ]
    STATUS = [
        ("pending", "pending"),
        ("processing", "processing"),
        ("completed", "completed"),
        ("failed", "failed"),
        ("cancelled", "cancelled"),
    ]
    ACTIVE_STATUSES = ("pending", "processing")

    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name="jobs")
    type = models.CharField(max_length=32, choices=TYPES)
    status = models.CharField(max_length=16, choices=STATUS, default="pending")
    progress_percent = models.PositiveSmallIntegerField(default=0)
    payload = models.JSONField(default=dict, blank=True)
    # set for export_clip jobs; jobs outlive their bookmark
    bookmark = models.ForeignKey(
        Bookmark, on_delete=models.SET_NULL, null=True, blank=True, related_name="jobs"
    )
    error_text = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["type", "status"], name="api_job_type_status_idx"),
        ]

    @property
    def is_terminal(self):
        return self.status not in self.ACTIVE_STATUSES

    def __str__(self):
        return f"ProcessingJob #{self.id} {self.type} ({self.status})"


class ShotCut(models.Model):
    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name="shot_cuts")
    timestamp_ms = models.BigIntegerField()
    confidence = models.FloatField()
    detection_method = models.CharField(max_length=32)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["timestamp_ms"]

    def __str__(self):
        return f"ShotCut @{self.timestamp_ms}ms ({self.detection_method})"


class WorkspaceLease(models.Model):
    """Exclusive, expiring claim on a workspace-scoped activity."""

    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name="leases")
    purpose = models.CharField(max_length=32)
    owner = models.CharField(max_length=64)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["workspace", "purpose"], name="unique_workspace_lease"),
        ]

    @classmethod
    def acquire(cls, workspace_id, purpose, owner, ttl_seconds):
        """Return True if `owner` now holds the lease."""
        now = timezone.now()
        try:
            with transaction.atomic():
                cls.objects.filter(workspace_id=workspace_id, purpose=purpose, expires_at__lte=now).delete()
                cls.objects.create(
                    workspace_id=workspace_id,
                    purpose=purpose,
                    owner=str(owner),
                    expires_at=now + timedelta(seconds=ttl_seconds),
                )
        except IntegrityError:
            return False
        return True

    @classmethod
    def release(cls, workspace_id, purpose, owner):
        deleted, _ = cls.objects.filter(workspace_id=workspace_id, purpose=purpose, owner=str(owner)).delete()
        return deleted > 0

    def __str__(self):
        return f"Lease {self.purpose} on workspace {self.workspace_id} by {self.owner}"

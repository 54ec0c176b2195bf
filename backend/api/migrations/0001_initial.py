import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Workspace",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("content_title", models.CharField(blank=True, default="", max_length=255)),
                ("content_duration_ms", models.PositiveBigIntegerField(blank=True, null=True)),
                ("processing_status", models.CharField(choices=[("pending", "pending"), ("processing", "processing"), ("completed", "completed"), ("failed", "failed")], default="pending", max_length=16)),
                ("processing_progress", models.PositiveSmallIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Bookmark",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("label", models.CharField(blank=True, default="", max_length=255)),
                ("start_ms", models.BigIntegerField()),
                ("end_ms", models.BigIntegerField()),
                ("public_notes", models.TextField(blank=True, default="")),
                ("locked", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("workspace", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bookmarks", to="api.workspace")),
            ],
        ),
        migrations.CreateModel(
            name="Video",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(blank=True, default="", max_length=255)),
                ("processing_status", models.CharField(choices=[("pending", "pending"), ("processing", "processing"), ("completed", "completed"), ("failed", "failed")], default="pending", max_length=16)),
                ("processing_progress", models.PositiveSmallIntegerField(default=0)),
                ("processing_error", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("workspace", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="videos", to="api.workspace")),
            ],
        ),
        migrations.CreateModel(
            name="ProcessingJob",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(choices=[("workspace_processing", "workspace_processing"), ("shot_cut_detection", "shot_cut_detection"), ("export_clip", "export_clip"), ("obs_export", "obs_export"), ("download_clip", "download_clip")], max_length=32)),
                ("status", models.CharField(choices=[("pending", "pending"), ("processing", "processing"), ("completed", "completed"), ("failed", "failed"), ("cancelled", "cancelled")], default="pending", max_length=16)),
                ("progress_percent", models.PositiveSmallIntegerField(default=0)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("error_text", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("bookmark", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="jobs", to="api.bookmark")),
                ("workspace", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="jobs", to="api.workspace")),
            ],
            options={
                "indexes": [models.Index(fields=["type", "status"], name="api_job_type_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="ShotCut",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("timestamp_ms", models.BigIntegerField()),
                ("confidence", models.FloatField()),
                ("detection_method", models.CharField(max_length=32)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("workspace", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="shot_cuts", to="api.workspace")),
            ],
            options={
                "ordering": ["timestamp_ms"],
            },
        ),
        migrations.CreateModel(
            name="WorkspaceLease",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("purpose", models.CharField(max_length=32)),
                ("owner", models.CharField(max_length=64)),
                ("expires_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("workspace", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="leases", to="api.workspace")),
            ],
            options={
                "constraints": [models.UniqueConstraint(fields=("workspace", "purpose"), name="unique_workspace_lease")],
            },
        ),
    ]

from rest_framework import serializers
from clipping.obs_package import HOTKEY_PATTERNS, NAMING_CONVENTIONS

from .models import Bookmark, ProcessingJob, ShotCut, Workspace


class WorkspaceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Workspace
        fields = ["id", "title", "content_title", "content_duration_ms",
                  "processing_status", "processing_progress", "created_at", "updated_at"]
        read_only_fields = fields


class ProcessingJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProcessingJob
        fields = ["id", "workspace", "type", "status", "progress_percent", "payload",
                  "bookmark", "error_text", "created_at", "updated_at"]
        read_only_fields = fields


class ShotCutSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShotCut
        fields = ["id", "timestamp_ms", "confidence", "detection_method", "created_at"]
        read_only_fields = fields


class BookmarkSerializer(serializers.ModelSerializer):
    class Meta:
        model = Bookmark
        fields = ["id", "workspace", "label", "start_ms", "end_ms", "public_notes",
                  "locked", "created_at", "updated_at"]
        read_only_fields = ["locked", "created_at", "updated_at"]

    def validate(self, attrs):
        start = attrs.get("start_ms", getattr(self.instance, "start_ms", None))
        end = attrs.get("end_ms", getattr(self.instance, "end_ms", None))
        if start is not None and end is not None and end < start:
            raise serializers.ValidationError({"end_ms": "end_ms must not be before start_ms"})
        if self.instance is not None and "workspace" in attrs and attrs["workspace"] != self.instance.workspace:
            raise serializers.ValidationError({"workspace": "bookmarks cannot move between workspaces"})
        return attrs


class ObsExportOptionsSerializer(serializers.Serializer):
    hotkey_pattern = serializers.ChoiceField(choices=HOTKEY_PATTERNS, default="sequential")
    naming_convention = serializers.ChoiceField(choices=NAMING_CONVENTIONS, default="workspace-content-label")

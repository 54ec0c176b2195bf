from django.contrib import admin
from .models import Bookmark, ProcessingJob, ShotCut, Video, Workspace, WorkspaceLease


@admin.register(Workspace)
class WorkspaceAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'content_title', 'processing_status', 'processing_progress', 'updated_at')
    list_filter = ('processing_status',)
    search_fields = ('title', 'content_title')


@admin.register(ProcessingJob)
class ProcessingJobAdmin(admin.ModelAdmin):
    # Status and error at a glance when chasing a stuck or failed job
    list_display = ('id', 'type', 'workspace', 'status', 'progress_percent', 'updated_at', 'short_error')
    list_filter = ('type', 'status')
    search_fields = ('id',)

    @admin.display(description="Error")
    def short_error(self, obj):
        return (obj.error_text or '')[:80]


@admin.register(ShotCut)
class ShotCutAdmin(admin.ModelAdmin):
    list_display = ('id', 'workspace', 'timestamp_ms', 'confidence', 'detection_method')
    list_filter = ('detection_method',)


admin.site.register(Video)
admin.site.register(Bookmark)
admin.site.register(WorkspaceLease)

from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from rest_framework.routers import DefaultRouter
from api.views import BookmarkViewSet, ProcessingJobViewSet, RecoveryView, WorkspaceViewSet, health

router = DefaultRouter()
router.register(r"workspaces", WorkspaceViewSet, basename="workspaces")
router.register(r"jobs", ProcessingJobViewSet, basename="jobs")
router.register(r"bookmarks", BookmarkViewSet, basename="bookmarks")


urlpatterns = [
    path('admin/', admin.site.urls),
    path("api/health/", health, name="health"),
    path("api/admin/recovery/", RecoveryView.as_view(), name="admin-recovery"),
    path("api/", include(router.urls)),
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

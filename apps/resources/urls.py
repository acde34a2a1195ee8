"""URL routing for resources and issue reports; mounted under ``api/v1/``."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter  # type: ignore

from .views import ResourceIssueViewSet, ResourceViewSet

router = DefaultRouter()
router.register(r"resource-issues", ResourceIssueViewSet, basename="resource-issue")
router.register(r"resources", ResourceViewSet, basename="resource")

urlpatterns = router.urls

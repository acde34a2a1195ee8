"""API views for bookable resources and their reported issues."""

from __future__ import annotations

import structlog  # type: ignore
from rest_framework import mixins, permissions, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.application.engine import SchedulingEngine
from apps.bookings.serializers import AvailabilityQuerySerializer

from .models import Resource, ResourceIssue
from .serializers import ResourceIssueSerializer, ResourceSerializer

logger = structlog.get_logger(__name__)


class ResourceViewSet(viewsets.ReadOnlyModelViewSet):
    """Browse resources and ask whether a slot is free."""

    queryset = Resource.objects.select_related("key").all()
    serializer_class = ResourceSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["category", "status"]

    @action(detail=True, methods=["get"])
    def availability(self, request, pk=None):  # type: ignore
        """Conflicts and suggestions for ``?start=...&end=...`` on this resource."""
        resource = self.get_object()
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = SchedulingEngine().check_availability(
            resource.pk,
            query.validated_data["start"],
            query.validated_data["end"],
            requester=request.user,
            exclude_booking_id=query.validated_data.get("exclude_booking"),
        )
        return Response(result.to_dict())


class ResourceIssueViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Anyone signed in may report a problem; administrators resolve it."""

    queryset = ResourceIssue.objects.select_related("resource").all()
    serializer_class = ResourceIssueSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["resource", "status", "issue_type"]

    def perform_create(self, serializer):  # type: ignore
        issue = serializer.save(reported_by=self.request.user)
        logger.info("resource.issue_reported", issue=issue.pk, resource=issue.resource_id, type=issue.issue_type)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def resolve(self, request, pk=None):  # type: ignore
        issue = self.get_object()
        issue.resolve()
        logger.info("resource.issue_resolved", issue=issue.pk)
        return Response(self.get_serializer(issue).data)

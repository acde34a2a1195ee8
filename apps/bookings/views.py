"""API views for the booking domain."""

from __future__ import annotations

import structlog  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from .application.engine import SchedulingEngine
from .domain.entities import BookingStatus
from .filters import BookingFilterSet
from .models import Booking
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    BookingUpdateSerializer,
    CancelBookingSerializer,
    RejectBookingSerializer,
)
from .services import is_administrator

logger = structlog.get_logger(__name__)


class IsBookingOwnerOrAdmin(permissions.BasePermission):
    """Owners act on their own bookings; administrators on any."""

    def has_object_permission(self, request, view, obj: Booking):  # type: ignore
        user = request.user
        if not user.is_authenticated:
            return False
        return is_administrator(user) or obj.user_id == user.id


class BookingViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Create bookings and drive them through their lifecycle."""

    queryset = Booking.objects.select_related("resource", "user").all()
    permission_classes = [permissions.IsAuthenticated, IsBookingOwnerOrAdmin]
    filterset_class = BookingFilterSet

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        if self.action == "partial_update":
            return BookingUpdateSerializer
        if self.action == "reject":
            return RejectBookingSerializer
        if self.action == "cancel":
            return CancelBookingSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        user = self.request.user
        if is_administrator(user):
            return qs
        return qs.filter(user=user)

    @property
    def engine(self) -> SchedulingEngine:
        return SchedulingEngine()

    def _respond(self, booking: Booking, code=status.HTTP_200_OK) -> Response:
        booking.refresh_from_db()
        return Response(BookingSerializer(booking, context=self.get_serializer_context()).data, status=code)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        priority = data.get("priority") if is_administrator(request.user) else None
        booking = self.engine.create_booking(
            data["resource"].pk,
            data["start_time"],
            data["end_time"],
            request.user,
            priority=priority,
            booking_type=data["booking_type"],
            purpose=data["purpose"],
            supporting_document=data["supporting_document"],
            on_behalf_of=data.get("user"),
        )
        logger.info("booking.created", booking=booking.reference, user=request.user.pk, owner=booking.user_id)
        return self._respond(booking, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):  # type: ignore
        booking = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        priority = data.get("priority") if is_administrator(request.user) else None
        booking = self.engine.update_booking(
            booking.pk,
            request.user,
            start=data.get("start_time"),
            end=data.get("end_time"),
            booking_type=data.get("booking_type"),
            priority=priority,
            purpose=data.get("purpose"),
            supporting_document=data.get("supporting_document"),
        )
        logger.info("booking.updated", booking=booking.reference, user=request.user.pk)
        return self._respond(booking)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def approve(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        booking = self.engine.approve_booking(booking.pk, request.user)
        return self._respond(booking)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def reject(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = self.engine.reject_booking(booking.pk, request.user, serializer.validated_data["reason"])
        return self._respond(booking)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = self.engine.cancel_booking(booking.pk, request.user, serializer.validated_data["reason"])
        return self._respond(booking)

    @action(detail=True, methods=["post"])
    def start(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        booking = self.engine.transition_occupancy(booking.pk, request.user, BookingStatus.IN_USE)
        return self._respond(booking)

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        booking = self.engine.transition_occupancy(booking.pk, request.user, BookingStatus.COMPLETED)
        return self._respond(booking)

"""API views for key custody."""

from __future__ import annotations

import structlog  # type: ignore
from django.utils import timezone  # type: ignore
from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.application.engine import SchedulingEngine

from .models import Key, KeyTransaction
from .serializers import CheckOutKeySerializer, KeySerializer, KeyTransactionSerializer

logger = structlog.get_logger(__name__)


class KeyViewSet(viewsets.ReadOnlyModelViewSet):
    """Keys and their checkout; custodians are administrators."""

    queryset = Key.objects.select_related("resource").all()
    serializer_class = KeySerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status"]

    @action(
        detail=True,
        methods=["post"],
        permission_classes=[permissions.IsAdminUser],
        serializer_class=CheckOutKeySerializer,
    )
    def checkout(self, request, pk=None):  # type: ignore
        key = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = data["booking"]
        key_transaction = SchedulingEngine().check_out_key(
            key.pk,
            booking.pk,
            data.get("borrower") or booking.user,
            custodian=request.user,
            expected_return_at=data.get("expected_return_at"),
            notes=data["notes"],
        )
        logger.info("key.checked_out", key=key.key_code, transaction=key_transaction.pk)
        return Response(KeyTransactionSerializer(key_transaction).data, status=status.HTTP_201_CREATED)


class KeyTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = KeyTransaction.objects.select_related("key", "booking").all()
    serializer_class = KeyTransactionSerializer
    permission_classes = [permissions.IsAdminUser]
    filterset_fields = ["status", "key", "booking"]

    @action(detail=True, methods=["post"])
    def checkin(self, request, pk=None):  # type: ignore
        key_transaction = self.get_object()
        key_transaction = SchedulingEngine().check_in_key(key_transaction.pk, request.user)
        logger.info("key.checked_in", transaction=key_transaction.pk)
        return Response(KeyTransactionSerializer(key_transaction).data)

    @action(detail=False, methods=["get"])
    def overdue(self, request):  # type: ignore
        """Open transactions past their expected return, whether or not the sweep has run."""
        qs = self.get_queryset().overdue_at(timezone.now())
        return Response(KeyTransactionSerializer(qs, many=True).data)

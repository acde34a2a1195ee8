"""DRF exception handler translating scheduling errors into responses."""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

from shared.domain.exceptions import (
    BookingConflictError,
    BookingValidationError,
    IneligibleTransitionError,
    KeyAlreadyCheckedOutError,
    NotFoundError,
    SchedulingError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (BookingValidationError, status.HTTP_400_BAD_REQUEST),
    (BookingConflictError, status.HTTP_409_CONFLICT),
    (IneligibleTransitionError, status.HTTP_409_CONFLICT),
    (KeyAlreadyCheckedOutError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
)


def status_for(exc: SchedulingError) -> int:
    for error_class, code in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_400_BAD_REQUEST


def scheduling_exception_handler(exc, context):
    """Map engine errors to 400/404/409; everything else goes to DRF's handler."""
    if isinstance(exc, SchedulingError):
        code = status_for(exc)
        logger.info("Request refused with %s: %s", exc.code, exc.message)
        return Response(exc.to_dict(), status=code)
    return exception_handler(exc, context)

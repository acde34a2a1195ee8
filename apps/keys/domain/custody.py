"""
Key Custody Rules

Parallel state machine for a physical key:

    checked_out -> returned      (check-in)
    checked_out -> overdue       (sweep, once expected return has passed)
    overdue     -> returned      (check-in, regardless of lateness)

Overdue is derivable at read time from the stored timestamps; the persisted
``overdue`` status is only a cache written by the sweep.
"""

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional

from shared.domain.exceptions import IneligibleTransitionError


class CustodyStatus(StrEnum):
    CHECKED_OUT = 'checked_out'
    RETURNED = 'returned'
    OVERDUE = 'overdue'

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ').capitalize()

    @property
    def is_open(self) -> bool:
        return self in OPEN_STATUSES


OPEN_STATUSES = frozenset({CustodyStatus.CHECKED_OUT, CustodyStatus.OVERDUE})

TRANSITIONS = {
    CustodyStatus.CHECKED_OUT: frozenset({CustodyStatus.RETURNED, CustodyStatus.OVERDUE}),
    CustodyStatus.OVERDUE: frozenset({CustodyStatus.RETURNED}),
    CustodyStatus.RETURNED: frozenset(),
}

# Booking statuses a key may be handed out for
CHECKOUT_BOOKING_STATUSES = frozenset({'approved', 'in_use'})


def ensure_custody_transition(current: str, target: str) -> None:
    current, target = CustodyStatus(current), CustodyStatus(target)
    if target not in TRANSITIONS[current]:
        raise IneligibleTransitionError(
            f"Key transaction cannot move from {current} to {target}",
            current=current, target=target,
        )


def is_overdue(
    status: str,
    expected_return_at: Optional[datetime],
    now: datetime,
    grace: timedelta = timedelta(0),
) -> bool:
    """True when the key is still out and the expected return (plus grace) has passed"""
    status = CustodyStatus(status)
    if status == CustodyStatus.RETURNED or expected_return_at is None:
        return False
    return now > expected_return_at + grace


def effective_status(status: str, expected_return_at: Optional[datetime], now: datetime) -> CustodyStatus:
    """Status as of ``now``, whether or not the sweep has persisted it"""
    if is_overdue(status, expected_return_at, now):
        return CustodyStatus.OVERDUE
    return CustodyStatus(status)


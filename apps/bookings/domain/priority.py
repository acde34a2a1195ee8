"""
Priority Resolver

Decides whether a candidate request may displace lower priority bookings it
collides with. Preemption is all-or-nothing: the outcome either names every
booking that has to give way, or admits nothing and leaves the conflict set
untouched.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .conflicts import Conflict, ConflictReport
from .entities import BookingType, RequesterRole, ROLE_PRIORITY_BONUS


def derive_priority(booking_type: Optional[str], role: RequesterRole = RequesterRole.MEMBER) -> int:
    """Base priority of the booking type plus the requester's role bonus"""
    try:
        base = BookingType(booking_type).base_priority
    except ValueError:
        base = BookingType.OTHER.base_priority
    return base + ROLE_PRIORITY_BONUS[role]


@dataclass
class PreemptionOutcome:
    admitted: bool
    victims: List[Conflict] = field(default_factory=list)
    blocking: List[Conflict] = field(default_factory=list)
    reason: str = ''

    @property
    def victim_ids(self) -> list:
        return [conflict.booking_id for conflict in self.victims]


def try_preempt(candidate_priority: int, report: ConflictReport) -> PreemptionOutcome:
    """
    Work out which conflicting bookings the candidate may displace

    A booking can be displaced only when it is still pending or approved
    (an in-use occupancy is protected) and its priority is strictly lower
    than the candidate's. Hard conflicts (unavailable resource, timetable,
    issues) are never displaced. The candidate is admitted when the
    protected bookings leave room for it under capacity, and then every
    displaceable conflict gives way, not only as many as capacity needs.
    """
    if report.available:
        return PreemptionOutcome(admitted=True)

    hard = report.hard_conflicts
    if hard:
        return PreemptionOutcome(
            admitted=False,
            blocking=hard,
            reason='Conflicts with fixed schedule, maintenance or unavailability cannot be preempted',
        )

    preemptable, protected = [], []
    for conflict in report.booking_conflicts:
        booking = conflict.booking
        if booking.is_preemptable and booking.priority < candidate_priority:
            preemptable.append(conflict)
        else:
            protected.append(conflict)

    if len(protected) + 1 > report.capacity:
        return PreemptionOutcome(
            admitted=False,
            blocking=protected,
            reason='The resource is held by bookings of higher or equal priority',
        )

    return PreemptionOutcome(admitted=True, victims=preemptable)

"""
Suggestion Engine

Ranking logic for alternatives offered when a request cannot be admitted.
Two independent lists are produced and concatenated:

- same-resource slots of the requested duration, probed around the
  requested interval and ordered by distance from it;
- other resources free for the requested interval, ordered by how often the
  requester used them lately and by how close their capacity is to the
  requested resource.

Nothing here touches storage; suggestions never reserve anything.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

from shared.domain.value_objects import TimeInterval

from .conflicts import detect_conflicts
from .entities import ResourceSchedule


class SuggestionKind(StrEnum):
    TIME_SLOT = 'time_slot'
    ALTERNATIVE_RESOURCE = 'alternative_resource'


@dataclass(frozen=True)
class Suggestion:
    kind: SuggestionKind
    resource_id: Any
    resource_name: str
    interval: TimeInterval
    score: float = 0.0
    reason: str = ''

    def to_dict(self) -> dict:
        return {
            'type': str(self.kind),
            'resource_id': self.resource_id,
            'resource_name': self.resource_name,
            'start_time': self.interval.start.isoformat(),
            'end_time': self.interval.end.isoformat(),
            'score': self.score,
            'reason': self.reason,
        }


def candidate_slots(
    interval: TimeInterval,
    *,
    window: timedelta,
    step: timedelta,
    now: Optional[datetime] = None,
) -> Iterator[TimeInterval]:
    """
    Shifted copies of ``interval`` within ``+/- window``, nearest first

    For equal distance the earlier slot comes first. The requested interval
    itself is never yielded, and neither is anything starting before ``now``.
    """
    if step <= timedelta(0):
        raise ValueError("Suggestion step must be positive")

    steps = int(window / step)
    for n in range(1, steps + 1):
        for offset in (-n * step, n * step):
            slot = interval.shift(offset)
            if now is not None and slot.start < now:
                continue
            yield slot


def suggest_slots(
    schedule: ResourceSchedule,
    interval: TimeInterval,
    *,
    window: timedelta,
    step: timedelta,
    limit: int,
    now: Optional[datetime] = None,
    avoid: Sequence[TimeInterval] = (),
    exclude_booking_id=None,
) -> List[Suggestion]:
    """Free slots on the same resource; ``avoid`` holds the requester's own bookings"""
    found: List[Suggestion] = []
    if limit <= 0:
        return found

    for slot in candidate_slots(interval, window=window, step=step, now=now):
        if any(slot.overlaps_with(own) for own in avoid):
            continue
        report = detect_conflicts(schedule, slot, exclude_booking_id=exclude_booking_id)
        if not report.available:
            continue
        distance = abs((slot.start - interval.start).total_seconds()) / 60
        found.append(Suggestion(
            kind=SuggestionKind.TIME_SLOT,
            resource_id=schedule.resource.id,
            resource_name=schedule.resource.name,
            interval=slot,
            score=-distance,
            reason=f"Free {slot.start:%H:%M}-{slot.end:%H:%M} on {slot.start:%Y-%m-%d}",
        ))
        if len(found) >= limit:
            break
    return found


def rank_alternatives(
    candidates: Iterable[Tuple[ResourceSchedule, int]],
    interval: TimeInterval,
    *,
    reference_capacity: int,
    limit: int,
    min_capacity: int = 1,
    exclude_resource_id=None,
) -> List[Suggestion]:
    """
    Rank other resources that are free for ``interval``

    ``candidates`` pairs each resource schedule with the requester's recent
    usage count of it. Unavailable resources, resources with an open
    maintenance window and those below ``min_capacity`` are dropped before
    ranking.
    """
    ranked = []
    for schedule, usage in candidates:
        resource = schedule.resource
        if resource.id == exclude_resource_id:
            continue
        if not resource.is_available or resource.capacity < min_capacity:
            continue
        if any(issue.is_maintenance for issue in schedule.issues):
            continue
        if not detect_conflicts(schedule, interval).available:
            continue
        capacity_gap = abs(resource.capacity - reference_capacity)
        ranked.append((-usage, capacity_gap, resource.name, schedule, usage))

    ranked.sort(key=lambda item: item[:3])

    suggestions = []
    for _, capacity_gap, _, schedule, usage in ranked[:max(limit, 0)]:
        resource = schedule.resource
        reason = f"Same category, capacity {resource.capacity}"
        if usage:
            reason += f", used {usage} time(s) recently"
        suggestions.append(Suggestion(
            kind=SuggestionKind.ALTERNATIVE_RESOURCE,
            resource_id=resource.id,
            resource_name=resource.name,
            interval=interval,
            score=float(usage * 10 - capacity_gap),
            reason=reason,
        ))
    return suggestions

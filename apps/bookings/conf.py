"""Engine tunables read from the ``SCHEDULING`` settings dict."""

from __future__ import annotations

from typing import Any

from django.conf import settings  # type: ignore

DEFAULTS: dict[str, Any] = {
    # request validation
    "MIN_DURATION_MINUTES": 30,
    "MAX_ACTIVE_BOOKINGS": 5,
    "PAST_START_GRACE_MINUTES": 1,
    # suggestion engine
    "SUGGESTION_WINDOW_HOURS": 4,
    "SUGGESTION_STEP_MINUTES": 30,
    "MAX_SLOT_SUGGESTIONS": 3,
    "MAX_RESOURCE_SUGGESTIONS": 5,
    "USAGE_LOOKBACK_DAYS": 30,
    # reminders
    "ENDING_SOON_MINUTES": 10,
    # key custody
    "OVERDUE_GRACE_HOURS": 0,
}


def scheduling_setting(name: str) -> Any:
    """Return a tunable, falling back to the built-in default."""
    overrides = getattr(settings, "SCHEDULING", None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]

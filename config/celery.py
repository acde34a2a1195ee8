import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("campus_booking")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Expire unused and complete finished bookings - every 5 minutes
    "sweep-expire-and-complete": {
        "task": "bookings.sweep_expire_and_complete",
        "schedule": crontab(minute="*/5"),
        "options": {"expires": 240},
    },
    # Remind owners shortly before their booking ends - every 5 minutes
    "notify-ending-soon": {
        "task": "bookings.notify_ending_soon",
        "schedule": crontab(minute="*/5"),
        "options": {"expires": 240},
    },
    # Mark late keys overdue and notify - every 15 minutes
    "sweep-overdue-keys": {
        "task": "keys.sweep_overdue_keys",
        "schedule": crontab(minute="*/15"),
        "options": {"expires": 600},
    },
}

"""
Celery app for the marketplace backend.

Celery runs everything the HTTP layer must not wait for:
- Webhook reconciliation (acknowledged first, applied in a worker)
- Provider calls triggered by user actions (payment capture, release)
- Scheduled transitions (auto-cancel, auto-approve, earnings cooling-off)
- Background reconciliation (orphaned events, stale payment sync)

Redis is broker and result backend. The beat schedule is declared in
settings.CELERY_BEAT_SCHEDULE.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("marketplace")

# CELERY_* keys in settings
app.config_from_object("django.conf:settings", namespace="CELERY")

# orders.tasks, payments.tasks
app.autodiscover_tasks()

"""
Celery application for the settlement service.

Workers run the fund release scheduler, gateway refunds, wallet
reconciliation and notification delivery. Redis is the broker and result
backend; periodic tasks are stored in the database by django-celery-beat
(see settlement/migrations/0002_add_settlement_beat_schedules.py).

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up settlement/tasks.py, which re-exports the worker tasks
app.autodiscover_tasks()

"""
Celery application for refund recovery jobs.

Workers run the tasks in ``refunds.tasks``; beat schedules them from
``CELERY_BEAT_SCHEDULE`` through django_celery_beat's database scheduler:

    resume_partially_failed_refunds   every 10 minutes
    reconcile_refunds                 hourly

Run:
    celery -A config worker -l info
    celery -A config beat -l info

See https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("pos_refunds")

# Every CELERY_* setting in config.settings applies here
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()

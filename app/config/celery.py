"""
Celery application.

Settings are read from Django settings with the CELERY_ prefix and tasks
are discovered from each installed app's tasks.py. Notification
delivery, announcement fan-out and the daily notification purge run
here.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()

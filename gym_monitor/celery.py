"""Celery application for background ledger audits."""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'gym_monitor.settings')

app = Celery('gym_monitor')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

"""
Celery application configuration.

This is the main Celery app for the LedgerHub backend.
It runs post-commit notification delivery and other background jobs.

Usage:
    # Start worker
    celery -A ledgerhub_backend worker -l INFO
"""
import os

from celery import Celery

# Set default Django settings
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "ledgerhub_backend.settings")

app = Celery("ledgerhub_backend")

# Load config from Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all installed apps
app.autodiscover_tasks()

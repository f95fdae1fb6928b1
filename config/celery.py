"""
Celery configuration for the Perfume Catalog Scraper service.

Celery runs the long-lived discovery jobs (brand pages, full sitemap) so the
HTTP layer can answer immediately with a job handle.
"""

import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("perfume_scraper")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

app.conf.task_queues = {
    "discovery": {
        "exchange": "discovery",
        "routing_key": "discovery",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

app.conf.task_routes = {
    "scraper.tasks.run_discovery_job": {"queue": "discovery"},
}

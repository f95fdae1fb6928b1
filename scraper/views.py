"""
Scraper service views.

Includes health check endpoint for monitoring and load balancer checks.
"""

import logging

from django.db import connection
from django.db.utils import DatabaseError
from django.http import JsonResponse

from scraper.queue import ScrapeQueue
from scraper.services.queue_worker import get_queue_worker_controller

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for the scraper service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - queue: counts by status (null when the database is down)
        - worker: "running" or "idle"

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except DatabaseError as e:
        logger.error(f"Health check database error: {e}")
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    queue_counts = None
    if database_status == "connected":
        queue_counts = ScrapeQueue().stats()

    controller = get_queue_worker_controller()

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "queue": queue_counts,
            "worker": "running" if controller.is_running else "idle",
        },
        status=http_status,
    )

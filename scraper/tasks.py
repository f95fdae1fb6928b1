"""
Celery tasks for the scraper.

- run_discovery_job: brand-page or full-sitemap discovery behind a
  DiscoveryJob handle

The task never starts the queue worker. Jobs that should start it run in the
web process through QueueWorkerController.run_discovery().
"""

import asyncio
import logging
import traceback
from typing import Any, Dict

from celery import shared_task

from scraper.models import DiscoveryJob, DiscoveryJobKind
from scraper.monitoring import capture_scrape_error
from scraper.services.discovery import DEFAULT_BRAND_LIMIT, DiscoveryService

logger = logging.getLogger(__name__)


@shared_task(name="scraper.tasks.run_discovery_job")
def run_discovery_job(job_id: str) -> Dict[str, Any]:
    """
    Run a discovery job and record its counts.

    Args:
        job_id: UUID of the DiscoveryJob to run

    Returns:
        Dict with job id, status and counts
    """
    try:
        job = DiscoveryJob.objects.get(id=job_id)
    except DiscoveryJob.DoesNotExist as e:
        logger.error(f"Discovery job not found: {job_id}")
        return {"job_id": job_id, "status": "failed", "error": str(e)}

    logger.info(f"Starting discovery job {job.id} ({job.kind})")
    job.start()

    try:
        service = DiscoveryService()
        if job.kind == DiscoveryJobKind.BRAND:
            report = asyncio.run(
                service.discover_brands(
                    job.params.get("brands", []),
                    limit=job.params.get("limit", DEFAULT_BRAND_LIMIT),
                )
            )
        else:
            report = asyncio.run(service.discover_sitemap())

        job.urls_found = report.urls_found
        job.urls_queued = report.urls_queued
        job.urls_skipped = report.urls_skipped
        job.results_summary = report.summary
        job.complete(success=True)
        logger.info(
            f"Discovery job {job.id} done: {job.urls_found} found, "
            f"{job.urls_queued} queued, {job.urls_skipped} skipped"
        )

    except Exception as e:
        logger.error(f"Discovery job {job.id} failed: {e}")
        logger.error(traceback.format_exc())
        capture_scrape_error(e, extra_context={"job_id": str(job.id), "kind": job.kind})
        job.complete(success=False, error_message=str(e))

    return {
        "job_id": str(job.id),
        "status": job.status,
        "urls_found": job.urls_found,
        "urls_queued": job.urls_queued,
        "urls_skipped": job.urls_skipped,
    }

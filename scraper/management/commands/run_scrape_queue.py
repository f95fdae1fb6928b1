"""
Management command to drain the scrape queue in the foreground.

Runs the same worker loop the API starts, without the background thread,
for use under a process supervisor.

Usage:
    python manage.py run_scrape_queue
    python manage.py run_scrape_queue --retry-failed
    python manage.py run_scrape_queue --delay=30
"""

import asyncio
import logging

from django.core.management.base import BaseCommand

from scraper.queue import ScrapeQueue
from scraper.services.queue_worker import QueueWorker, WorkerSession

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Process pending scrape queue entries until the queue is empty."""

    help = 'Process the scrape queue in the foreground until it is drained'

    def add_arguments(self, parser):
        parser.add_argument(
            '--retry-failed',
            action='store_true',
            help='Move failed entries back to pending before starting',
        )
        parser.add_argument(
            '--delay',
            type=float,
            default=None,
            help='Seconds between URLs (default: SCRAPER_INTER_REQUEST_DELAY)',
        )

    def handle(self, *args, **options):
        queue = ScrapeQueue()

        reset = queue.reset_stuck()
        if reset:
            self.stdout.write(f'Reset {reset} stuck entries to pending')

        if options['retry_failed']:
            retried = queue.retry_failed()
            self.stdout.write(f'Requeued {retried} failed entries')

        pending = queue.pending_count()
        if pending == 0:
            self.stdout.write(self.style.SUCCESS('No pending URLs in queue'))
            return

        self.stdout.write(f'Processing {pending} pending URLs')

        session = WorkerSession()
        session.begin()
        worker = QueueWorker(session, queue=queue, inter_request_delay=options['delay'])

        try:
            asyncio.run(worker.run())
        except KeyboardInterrupt:
            session.request_stop()
            self.stdout.write(self.style.WARNING('Interrupted'))

        self.stdout.write(
            self.style.SUCCESS(
                f'Done: {session.processed} processed, {session.failed} failed'
            )
        )

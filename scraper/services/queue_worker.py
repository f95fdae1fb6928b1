"""
Queue Worker - drains the scrape queue one URL at a time.

The loop claims the oldest pending URL, scrapes it, stores the result and
then waits the inter-request delay before the next claim. Rate-limited URLs
go back to pending and the loop backs off: a short cooldown per hit, a long
one after several hits in a row. Per-URL failures are recorded on the queue
entry and in the session's recent-error buffer; they never stop the loop.

Only one loop runs per process. QueueWorkerController owns it and its
WorkerSession, which status endpoints read.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.db import connections
from django.utils import timezone

from scraper.models import DiscoveryJob, DiscoveryJobStatus
from scraper.monitoring import add_scrape_breadcrumb, capture_scrape_error
from scraper.queue import ScrapeQueue
from scraper.services.catalog_store import CatalogStore
from scraper.services.scrape_orchestrator import ScrapeOrchestrator
from scraper.types import ScrapeErrorKind, ScrapeOutcome

logger = logging.getLogger(__name__)


@dataclass
class ErrorSample:
    """One recent failure, as shown by the queue status endpoint."""

    url: str
    error: str
    kind: Optional[str]
    time: str


class WorkerSession:
    """
    State of the current (or last) worker run.

    running is the control flag: the loop checks it between iterations, so
    clearing it pauses the queue once the in-flight URL is finished.
    """

    def __init__(self, error_buffer_size: Optional[int] = None):
        size = error_buffer_size or getattr(settings, "SCRAPER_ERROR_BUFFER_SIZE", 20)
        self._lock = threading.Lock()
        self.running = False
        self.current_url: Optional[str] = None
        self.processed = 0
        self.failed = 0
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.errors = deque(maxlen=size)

    def begin(self) -> None:
        with self._lock:
            self.running = True
            self.current_url = None
            self.processed = 0
            self.failed = 0
            self.started_at = timezone.now()
            self.finished_at = None
            self.errors.clear()

    def request_stop(self) -> None:
        self.running = False

    def finish(self) -> None:
        with self._lock:
            self.running = False
            self.current_url = None
            self.finished_at = timezone.now()

    def record_success(self) -> None:
        with self._lock:
            self.processed += 1

    def record_failure(self, url: str, error: str, kind: Optional[ScrapeErrorKind]) -> None:
        with self._lock:
            self.failed += 1
            self._push_error(url, error, kind)

    def record_error(self, url: str, error: str, kind: Optional[ScrapeErrorKind] = None) -> None:
        """Log an error sample without counting a failed URL."""
        with self._lock:
            self._push_error(url, error, kind)

    def _push_error(self, url, error, kind):
        self.errors.append(
            ErrorSample(
                url=url,
                error=error,
                kind=kind.value if kind else None,
                time=timezone.now().isoformat(),
            )
        )

    def recent_errors(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            samples = list(self.errors)[-limit:] if limit else []
        return [asdict(sample) for sample in samples]

    def to_dict(self, error_limit: int = 10) -> Dict[str, Any]:
        return {
            "processing": self.running,
            "current": self.current_url,
            "processed_this_session": self.processed,
            "failed_this_session": self.failed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "errors": self.recent_errors(error_limit),
        }


class QueueWorker:
    """
    The scrape loop.

    Collaborators are injectable so the loop can be driven with stubs and a
    fake clock:

        worker = QueueWorker(session, scraper=stub, sleep=fake_sleep)
        await worker.run()
    """

    def __init__(
        self,
        session: WorkerSession,
        queue: Optional[ScrapeQueue] = None,
        catalog: Optional[CatalogStore] = None,
        scraper=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        inter_request_delay: Optional[float] = None,
        short_cooldown: Optional[float] = None,
        long_cooldown: Optional[float] = None,
        max_consecutive_rate_limits: Optional[int] = None,
    ):
        """
        Args:
            session: Session to report into and take the run flag from
            queue: Scrape queue (default ScrapeQueue())
            catalog: Catalog store (default CatalogStore())
            scraper: Object with async scrape_one(url, use_cache=...)
                     (default ScrapeOrchestrator())
            sleep: Awaitable sleep used for every delay
            inter_request_delay: Seconds between URLs
            short_cooldown: Seconds to back off after a rate limit
            long_cooldown: Seconds to back off after repeated rate limits
            max_consecutive_rate_limits: Rate limits in a row before the long cooldown
        """
        self.session = session
        self.catalog = catalog or CatalogStore()
        self.queue = queue or ScrapeQueue(catalog=self.catalog)
        self.scraper = scraper or ScrapeOrchestrator()
        self.sleep = sleep

        self.inter_request_delay = self._setting(inter_request_delay, "SCRAPER_INTER_REQUEST_DELAY", 15)
        self.short_cooldown = self._setting(short_cooldown, "SCRAPER_RATE_LIMIT_SHORT_COOLDOWN", 120)
        self.long_cooldown = self._setting(long_cooldown, "SCRAPER_RATE_LIMIT_LONG_COOLDOWN", 300)
        self.max_consecutive_rate_limits = self._setting(
            max_consecutive_rate_limits, "SCRAPER_RATE_LIMIT_MAX_CONSECUTIVE", 3
        )

    @staticmethod
    def _setting(value, name, default):
        return value if value is not None else getattr(settings, name, default)

    async def run(self) -> WorkerSession:
        """
        Process the queue until it is drained or the session is stopped.

        Returns:
            The session, with final counters
        """
        consecutive_rate_limits = 0
        logger.info("Queue worker started")

        try:
            while self.session.running:
                claim = await sync_to_async(self.queue.claim_next)()
                if claim is None:
                    logger.info("Queue drained")
                    break

                url = claim.url
                self.session.current_url = url

                if not claim.force_rescrape and await sync_to_async(self.catalog.exists_by_source_url)(url):
                    logger.info(f"Already in catalog, skipping: {url}")
                    await sync_to_async(self.queue.mark_done)(url)
                    self.session.record_success()
                    consecutive_rate_limits = 0
                    continue

                logger.info(f"Scraping: {url}")
                outcome = await self._scrape(url, use_cache=not claim.force_rescrape)

                if outcome.ok:
                    await self._store(url, outcome)
                    consecutive_rate_limits = 0

                elif outcome.kind is ScrapeErrorKind.RATE_LIMITED:
                    await sync_to_async(self.queue.mark_pending)(url)
                    consecutive_rate_limits += 1
                    add_scrape_breadcrumb(url, "Rate limited", level="warning")

                    if consecutive_rate_limits >= self.max_consecutive_rate_limits:
                        logger.warning(
                            f"Rate limited {consecutive_rate_limits} times in a row, "
                            f"pausing {self.long_cooldown}s"
                        )
                        self.session.record_error(
                            url,
                            f"Rate limit x{consecutive_rate_limits}: paused {self.long_cooldown}s",
                            ScrapeErrorKind.RATE_LIMITED,
                        )
                        consecutive_rate_limits = 0
                        await self.sleep(self.long_cooldown)
                    else:
                        logger.warning(
                            f"Rate limited ({consecutive_rate_limits}/{self.max_consecutive_rate_limits}), "
                            f"pausing {self.short_cooldown}s"
                        )
                        await self.sleep(self.short_cooldown)
                    continue

                elif outcome.kind is ScrapeErrorKind.INVALID_DATA:
                    await self._fail(url, outcome)
                    consecutive_rate_limits = 0
                    continue

                else:
                    await self._fail(url, outcome)

                await self.sleep(self.inter_request_delay)

        finally:
            self.session.finish()
            logger.info(
                f"Queue worker stopped. Processed: {self.session.processed}, "
                f"Failed: {self.session.failed}"
            )

        return self.session

    async def _scrape(self, url: str, use_cache: bool) -> ScrapeOutcome:
        try:
            return await self.scraper.scrape_one(url, use_cache=use_cache)
        except Exception as e:
            logger.exception(f"Scraper raised for {url}")
            return ScrapeOutcome.failure(url, ScrapeErrorKind.FAILED, str(e))

    async def _store(self, url: str, outcome: ScrapeOutcome) -> None:
        try:
            stored = await sync_to_async(self.catalog.upsert)(outcome.record)
        except Exception as e:
            logger.exception(f"Could not save {url}")
            await self._fail(url, ScrapeOutcome.failure(url, ScrapeErrorKind.FAILED, f"Save failed: {e}"))
            return

        await sync_to_async(self.queue.mark_done)(url)
        self.session.record_success()
        logger.info(f"Saved: {stored.name}")

    async def _fail(self, url: str, outcome: ScrapeOutcome) -> None:
        kind = outcome.kind or ScrapeErrorKind.FAILED
        logger.warning(f"Failed ({kind.value}): {url} - {outcome.error}")
        await sync_to_async(self.queue.mark_failed)(url, outcome.error or kind.value)
        self.session.record_failure(url, outcome.error or kind.value, kind)
        capture_scrape_error(outcome.error or kind.value, url=url, kind=kind)


class QueueWorkerController:
    """
    Owns the process-wide worker session and the thread running its loop.

    The loop runs under asyncio.run() in a daemon thread so request handling
    continues while the queue drains.
    """

    THREAD_NAME = "scrape-queue-worker"

    def __init__(self, worker_factory: Optional[Callable[..., QueueWorker]] = None):
        """
        Args:
            worker_factory: Builds the QueueWorker for a run; called with
                            (session, sleep)
        """
        self.session = WorkerSession()
        self._worker_factory = worker_factory or self._default_worker
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @staticmethod
    def _default_worker(session: WorkerSession, sleep) -> QueueWorker:
        return QueueWorker(session, sleep=sleep)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    async def _sleep(self, seconds: float) -> None:
        """Sleep that ends early once the session is stopped."""
        deadline = time.monotonic() + seconds
        while self.session.running:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, 1.0))

    def start(self) -> Dict[str, Any]:
        """
        Start the worker if it is idle and there is pending work.

        Entries left in processing by a previous run are reset first.

        Returns:
            Dict with started flag, message, pending count and reset count
        """
        with self._lock:
            if self.is_running:
                message = "Queue already processing" if self.session.running else "Queue is stopping"
                return {"started": False, "message": message}

            queue = ScrapeQueue()
            reset = queue.reset_stuck()
            pending = queue.pending_count()
            if pending == 0:
                return {"started": False, "message": "No pending URLs in queue", "pending": 0, "reset": reset}

            self.session.begin()
            worker = self._worker_factory(self.session, self._sleep)
            self._thread = threading.Thread(
                target=self._run, args=(worker,), name=self.THREAD_NAME, daemon=True
            )
            self._thread.start()

        logger.info(f"Queue processing started: {pending} pending URLs")
        return {"started": True, "message": "Queue processing started", "pending": pending, "reset": reset}

    def _run(self, worker: QueueWorker) -> None:
        try:
            asyncio.run(worker.run())
        except Exception as e:
            logger.exception("Queue worker crashed")
            capture_scrape_error(e)
        finally:
            connections.close_all()

    def stop(self) -> Dict[str, Any]:
        """Ask the loop to pause after the URL in flight."""
        was_running = self.session.running
        self.session.request_stop()
        if was_running:
            logger.info("Queue pause requested")
        return {
            "stopped": was_running,
            "message": "Queue paused; resume any time to continue where it left off",
            "processed_this_session": self.session.processed,
        }

    def run_discovery(self, job_id: str) -> threading.Thread:
        """
        Run a discovery job in this process, then start the queue if it queued URLs.

        The worker it starts belongs to this controller, so status, stop and
        clear requests served by this process see it.

        Returns:
            The discovery thread
        """
        thread = threading.Thread(
            target=self._discover, args=(job_id,), name=f"scrape-discovery-{job_id[:8]}", daemon=True
        )
        thread.start()
        logger.info(f"Discovery job {job_id} running in-process with auto start")
        return thread

    def _discover(self, job_id: str) -> None:
        from scraper.tasks import run_discovery_job

        try:
            result = run_discovery_job(job_id)
            if result["status"] == DiscoveryJobStatus.COMPLETED and result["urls_queued"] > 0:
                job = DiscoveryJob.objects.get(id=job_id)
                job.results_summary["worker"] = self.start()
                job.save(update_fields=["results_summary"])
        except Exception as e:
            logger.exception(f"Discovery job {job_id} could not start the queue")
            capture_scrape_error(e, extra_context={"job_id": job_id})
        finally:
            connections.close_all()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def status(self) -> Dict[str, Any]:
        return {"queue": ScrapeQueue().stats(), **self.session.to_dict()}


_controller: Optional[QueueWorkerController] = None
_controller_lock = threading.Lock()


def get_queue_worker_controller() -> QueueWorkerController:
    """
    Get the process-wide QueueWorkerController.

    Returns:
        QueueWorkerController instance
    """
    global _controller

    with _controller_lock:
        if _controller is None:
            _controller = QueueWorkerController()
    return _controller

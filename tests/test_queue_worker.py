"""
Tests for the queue worker loop, its session and the controller.

The worker runs against the real queue and catalog with a stub scraper and a
recording sleep, so delay policy is asserted without waiting.
"""

import asyncio
import threading
from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from asgiref.sync import sync_to_async

from scraper.models import DiscoveryJob, DiscoveryJobStatus, QueueStatus, ScrapeQueueEntry
from scraper.queue import ScrapeQueue
from scraper.services.catalog_store import CatalogStore
from scraper.services.discovery import DiscoveryReport
from scraper.services.queue_worker import (
    QueueWorker,
    QueueWorkerController,
    WorkerSession,
)
from scraper.types import ScrapeErrorKind, ScrapeOutcome

BASE = "https://www.fragrantica.com/perfume"
URL_1 = f"{BASE}/Dior/Sauvage-31861.html"
URL_2 = f"{BASE}/Creed/Aventus-9828.html"
URL_3 = f"{BASE}/Chanel/Bleu-de-Chanel-9099.html"


class StubScraper:
    """
    Scripted scraper.

    script maps a URL to the outcome kinds to return on successive calls;
    None means success. Calls past the end of the script succeed.
    """

    def __init__(self, make_record, script=None):
        self.make_record = make_record
        self.script = script or {}
        self.calls = []
        self._seen = defaultdict(int)

    async def scrape_one(self, url, use_cache=True):
        self.calls.append((url, use_cache))
        attempt = self._seen[url]
        self._seen[url] += 1

        steps = self.script.get(url, [])
        kind = steps[attempt] if attempt < len(steps) else None
        if kind is None:
            return ScrapeOutcome.success(url, self.make_record(source_url=url, name=url.rsplit("/", 1)[-1]))
        if isinstance(kind, Exception):
            raise kind
        return ScrapeOutcome.failure(url, kind, f"{kind.value} error")


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_worker(scraper, sleep, **overrides):
    session = WorkerSession()
    session.begin()
    options = {
        "inter_request_delay": 15,
        "short_cooldown": 120,
        "long_cooldown": 300,
        "max_consecutive_rate_limits": 3,
    }
    options.update(overrides)
    return QueueWorker(session, scraper=scraper, sleep=sleep, **options)


async def enqueue(*urls):
    return await sync_to_async(ScrapeQueue().enqueue)(list(urls))


async def statuses():
    return await sync_to_async(
        lambda: dict(ScrapeQueueEntry.objects.values_list("url", "status"))
    )()


@pytest.mark.django_db(transaction=True)
@pytest.mark.asyncio
class TestQueueWorkerLoop:
    """End-to-end runs of the worker loop."""

    async def test_rate_limit_requeues_and_backs_off(self, make_record):
        await enqueue(URL_1, URL_2, URL_3)
        scraper = StubScraper(
            make_record,
            {URL_2: [ScrapeErrorKind.RATE_LIMITED, ScrapeErrorKind.RATE_LIMITED]},
        )
        sleep = RecordingSleep()
        worker = make_worker(scraper, sleep)

        session = await worker.run()

        assert sleep.delays == [15, 120, 120, 15, 15]
        assert [url for url, _ in scraper.calls] == [URL_1, URL_2, URL_2, URL_2, URL_3]
        assert set((await statuses()).values()) == {QueueStatus.DONE}
        assert session.processed == 3
        assert session.failed == 0
        assert session.running is False
        assert await sync_to_async(CatalogStore().count)() == 3

    async def test_long_cooldown_after_consecutive_rate_limits(self, make_record):
        await enqueue(URL_1)
        scraper = StubScraper(make_record, {URL_1: [ScrapeErrorKind.RATE_LIMITED] * 3})
        sleep = RecordingSleep()
        worker = make_worker(scraper, sleep)

        session = await worker.run()

        assert sleep.delays == [120, 120, 300, 15]
        assert session.processed == 1
        errors = session.recent_errors()
        assert len(errors) == 1
        assert errors[0]["kind"] == "rate_limited"

    async def test_invalid_data_fails_without_delay(self, make_record):
        await enqueue(URL_1, URL_2)
        scraper = StubScraper(make_record, {URL_1: [ScrapeErrorKind.INVALID_DATA]})
        sleep = RecordingSleep()
        worker = make_worker(scraper, sleep)

        session = await worker.run()

        assert sleep.delays == [15]
        assert (await statuses()) == {URL_1: QueueStatus.FAILED, URL_2: QueueStatus.DONE}
        assert session.failed == 1
        assert session.recent_errors()[0]["url"] == URL_1

    async def test_other_failures_wait_inter_request_delay(self, make_record):
        await enqueue(URL_1, URL_2)
        scraper = StubScraper(
            make_record,
            {URL_1: [ScrapeErrorKind.TIMEOUT], URL_2: [RuntimeError("browser died")]},
        )
        sleep = RecordingSleep()
        worker = make_worker(scraper, sleep)

        session = await worker.run()

        assert sleep.delays == [15, 15]
        assert set((await statuses()).values()) == {QueueStatus.FAILED}
        entry = await sync_to_async(ScrapeQueueEntry.objects.get)(url=URL_2)
        assert entry.error_message == "browser died"
        assert [e["kind"] for e in session.recent_errors()] == ["timeout", "failed"]

    async def test_catalog_urls_are_skipped(self, make_record):
        await sync_to_async(CatalogStore().upsert)(make_record(source_url=URL_1))
        await sync_to_async(ScrapeQueue().enqueue)([URL_1], skip_known=False)
        scraper = StubScraper(make_record)
        sleep = RecordingSleep()
        worker = make_worker(scraper, sleep)

        session = await worker.run()

        assert scraper.calls == []
        assert sleep.delays == []
        assert (await statuses()) == {URL_1: QueueStatus.DONE}
        assert session.processed == 1

    async def test_forced_rescrape_bypasses_catalog_and_cache(self, make_record):
        await sync_to_async(CatalogStore().upsert)(make_record(source_url=URL_1))
        await sync_to_async(ScrapeQueue().requeue)([URL_1])
        scraper = StubScraper(make_record)
        worker = make_worker(scraper, RecordingSleep())

        await worker.run()

        assert scraper.calls == [(URL_1, False)]
        assert (await statuses()) == {URL_1: QueueStatus.DONE}

    async def test_stop_finishes_url_in_flight(self, make_record):
        await enqueue(URL_1, URL_2)
        scraper = StubScraper(make_record)
        worker = make_worker(scraper, RecordingSleep())

        original = scraper.scrape_one

        async def scrape_then_stop(url, use_cache=True):
            worker.session.request_stop()
            return await original(url, use_cache=use_cache)

        scraper.scrape_one = scrape_then_stop

        session = await worker.run()

        assert session.processed == 1
        assert (await statuses()) == {URL_1: QueueStatus.DONE, URL_2: QueueStatus.PENDING}

    async def test_empty_queue(self, make_record):
        worker = make_worker(StubScraper(make_record), RecordingSleep())

        session = await worker.run()

        assert session.processed == 0
        assert session.finished_at is not None


class TestWorkerSession:
    def test_begin_resets_counters(self):
        session = WorkerSession()
        session.record_success()
        session.record_failure(URL_1, "boom", ScrapeErrorKind.FAILED)

        session.begin()

        assert session.running is True
        assert session.processed == 0
        assert session.failed == 0
        assert session.recent_errors() == []

    def test_error_buffer_is_bounded(self):
        session = WorkerSession(error_buffer_size=3)
        for n in range(5):
            session.record_failure(f"{BASE}/x/{n}.html", f"error {n}", None)

        errors = session.recent_errors()

        assert session.failed == 5
        assert [e["error"] for e in errors] == ["error 2", "error 3", "error 4"]
        assert session.recent_errors(limit=1)[0]["error"] == "error 4"

    def test_to_dict(self):
        session = WorkerSession()
        session.begin()
        session.current_url = URL_1

        data = session.to_dict()

        assert data["processing"] is True
        assert data["current"] == URL_1
        assert data["processed_this_session"] == 0
        assert data["started_at"] is not None
        assert data["finished_at"] is None


class BlockingWorker:
    """Worker stand-in that runs until its session is stopped."""

    def __init__(self, session, sleep):
        self.session = session
        self.started = threading.Event()

    async def run(self):
        self.started.set()
        while self.session.running:
            await asyncio.sleep(0.01)
        self.session.finish()
        return self.session


@pytest.mark.django_db
class TestQueueWorkerController:
    """Start/stop of the background worker thread."""

    @pytest.fixture
    def workers(self):
        return []

    @pytest.fixture
    def controller(self, workers):
        def factory(session, sleep):
            worker = BlockingWorker(session, sleep)
            workers.append(worker)
            return worker

        controller = QueueWorkerController(worker_factory=factory)
        yield controller
        controller.stop()
        controller.join(timeout=5)

    def test_start_without_pending_work(self, controller):
        result = controller.start()

        assert result["started"] is False
        assert result["pending"] == 0
        assert controller.is_running is False

    def test_start_stop_cycle(self, controller, workers):
        ScrapeQueue().enqueue([URL_1])

        result = controller.start()
        assert result == {"started": True, "message": "Queue processing started", "pending": 1, "reset": 0}
        assert workers[0].started.wait(timeout=5)
        assert controller.is_running is True

        second = controller.start()
        assert second["started"] is False
        assert second["message"] == "Queue already processing"

        stopped = controller.stop()
        assert stopped["stopped"] is True
        controller.join(timeout=5)
        assert controller.is_running is False
        assert controller.session.finished_at is not None

    def test_start_resets_stuck_entries(self, controller):
        queue = ScrapeQueue()
        queue.enqueue([URL_1])
        queue.dequeue_next()

        result = controller.start()

        assert result["reset"] == 1
        assert result["started"] is True

    def test_stop_when_idle(self, controller):
        assert controller.stop()["stopped"] is False

    def test_status_includes_queue_counts(self, controller):
        ScrapeQueue().enqueue([URL_1, URL_2])

        status = controller.status()

        assert status["queue"]["pending"] == 2
        assert status["processing"] is False
        assert status["errors"] == []


@pytest.mark.django_db(transaction=True)
class TestControllerDiscovery:
    """Auto-start discovery runs in-process and starts this controller's loop."""

    @pytest.fixture
    def workers(self):
        return []

    @pytest.fixture
    def controller(self, workers):
        def factory(session, sleep):
            worker = BlockingWorker(session, sleep)
            workers.append(worker)
            return worker

        controller = QueueWorkerController(worker_factory=factory)
        yield controller
        controller.stop()
        controller.join(timeout=5)

    @pytest.fixture
    def discovery_service(self):
        service = MagicMock()
        service.discover_brands = AsyncMock(
            return_value=DiscoveryReport(urls_found=1, urls_queued=1, urls_skipped=0, summary={"brands": []})
        )
        service.discover_sitemap = AsyncMock(
            return_value=DiscoveryReport(urls_found=4, urls_queued=0, urls_skipped=4, summary={"sitemaps": {}})
        )
        with patch("scraper.tasks.DiscoveryService", return_value=service):
            yield service

    def test_starts_worker_after_urls_queued(self, controller, workers, discovery_service):
        ScrapeQueue().enqueue([URL_1])
        job = DiscoveryJob.objects.create(kind="brand", params={"brands": ["Dior"], "auto_start": True})

        controller.run_discovery(str(job.id)).join(timeout=5)

        assert workers[0].started.wait(timeout=5)
        assert controller.is_running is True
        assert controller.status()["processing"] is True
        job.refresh_from_db()
        assert job.status == DiscoveryJobStatus.COMPLETED
        assert job.results_summary["worker"]["started"] is True

        controller.stop()
        controller.join(timeout=5)
        assert controller.is_running is False

    def test_nothing_queued_leaves_worker_idle(self, controller, workers, discovery_service):
        job = DiscoveryJob.objects.create(kind="sitemap", params={"auto_start": True})

        controller.run_discovery(str(job.id)).join(timeout=5)

        assert workers == []
        assert controller.is_running is False
        job.refresh_from_db()
        assert "worker" not in job.results_summary

    def test_failed_job_leaves_worker_idle(self, controller, workers, discovery_service):
        ScrapeQueue().enqueue([URL_1])
        discovery_service.discover_sitemap.side_effect = RuntimeError("site unreachable")
        job = DiscoveryJob.objects.create(kind="sitemap", params={"auto_start": True})

        controller.run_discovery(str(job.id)).join(timeout=5)

        assert workers == []
        job.refresh_from_db()
        assert job.status == DiscoveryJobStatus.FAILED


@pytest.mark.asyncio
async def test_controller_sleep_ends_when_stopped():
    controller = QueueWorkerController(worker_factory=lambda session, sleep: None)

    # Session never started: the sleep returns at once
    await asyncio.wait_for(controller._sleep(100), timeout=1)

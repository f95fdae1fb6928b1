"""
Scrape Queue - database-backed FIFO of perfume URLs.

Implements the persistent work queue for the worker loop with:
- Idempotent enqueue (one row per URL, whatever its status)
- Exclusive claims: an entry moves to PROCESSING through a conditional
  UPDATE, so two callers can never hold the same row
- Crash recovery: entries left in PROCESSING by a dead worker are reset
- Catalog-aware admission: URLs the catalog already holds are not queued

Rows survive restarts; the ScrapeQueueEntry table is the only state.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from django.db import transaction
from django.db.models import Count, F
from django.utils import timezone

from scraper.models import QueueStatus, ScrapeQueueEntry
from scraper.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


def is_valid_url(url) -> bool:
    if not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def clean_urls(urls: Iterable) -> List[str]:
    """Valid URLs, stripped, without repeats, in input order."""
    return list(dict.fromkeys(url.strip() for url in urls if is_valid_url(url)))


@dataclass
class ClaimedEntry:
    """A queue entry held by the caller until marked done/failed/pending."""

    url: str
    retry_count: int = 0
    force_rescrape: bool = False


class ScrapeQueue:
    """
    Persistent scrape queue over the ScrapeQueueEntry model.

    Usage:
        queue = ScrapeQueue()
        queue.enqueue(urls)
        url = queue.dequeue_next()
        queue.mark_done(url)
    """

    # Conditional-update claims lost to a concurrent caller before giving up
    CLAIM_ATTEMPTS = 5
    BATCH_SIZE = 500

    def __init__(self, catalog: Optional[CatalogStore] = None):
        """
        Initialize the queue.

        Args:
            catalog: Catalog consulted to skip already-scraped URLs
        """
        self.catalog = catalog or CatalogStore()

    def _existing_urls(self, urls: List[str]) -> set:
        existing = set()
        for start in range(0, len(urls), self.BATCH_SIZE):
            chunk = urls[start:start + self.BATCH_SIZE]
            existing.update(
                ScrapeQueueEntry.objects.filter(url__in=chunk).values_list("url", flat=True)
            )
        return existing

    def enqueue(self, urls: Iterable[str], skip_known: bool = True) -> int:
        """
        Add URLs as pending entries.

        URLs already queued (any status) are left untouched.

        Args:
            urls: Candidate URLs; invalid ones are dropped
            skip_known: Also drop URLs the catalog already holds

        Returns:
            Number of entries created
        """
        candidates = clean_urls(urls)
        if skip_known and candidates:
            known = self.catalog.known_source_urls(candidates)
            candidates = [url for url in candidates if url not in known]
        if not candidates:
            return 0

        before = self._existing_urls(candidates)
        now = timezone.now()
        ScrapeQueueEntry.objects.bulk_create(
            [
                ScrapeQueueEntry(url=url, created_at=now, updated_at=now)
                for url in candidates
                if url not in before
            ],
            batch_size=self.BATCH_SIZE,
            ignore_conflicts=True,
        )
        # Count what actually landed; a concurrent enqueue may have won some rows.
        added = len(self._existing_urls(candidates)) - len(before)

        logger.info(f"Enqueued {added} URLs ({len(candidates) - added} already queued)")
        return added

    def claim_next(self) -> Optional[ClaimedEntry]:
        """
        Claim the oldest pending entry.

        The row is located under SELECT ... FOR UPDATE SKIP LOCKED where the
        database supports it, and claimed with UPDATE ... WHERE
        status='pending'. The update's row count decides the claim, so a
        caller that loses the race sees 0 and tries the next entry.

        Returns:
            ClaimedEntry, or None when nothing is pending
        """
        for _ in range(self.CLAIM_ATTEMPTS):
            with transaction.atomic():
                entry = (
                    ScrapeQueueEntry.objects.select_for_update(skip_locked=True)
                    .filter(status=QueueStatus.PENDING)
                    .order_by("created_at", "id")
                    .first()
                )
                if entry is None:
                    return None

                claimed = ScrapeQueueEntry.objects.filter(
                    pk=entry.pk, status=QueueStatus.PENDING
                ).update(status=QueueStatus.PROCESSING, updated_at=timezone.now())

            if claimed:
                logger.debug(f"Claimed {entry.url}")
                return ClaimedEntry(
                    url=entry.url,
                    retry_count=entry.retry_count,
                    force_rescrape=entry.force_rescrape,
                )

            logger.debug(f"Lost claim race for {entry.url}, retrying")

        return None

    def dequeue_next(self) -> Optional[str]:
        """Claim the oldest pending entry and return its URL."""
        claim = self.claim_next()
        return claim.url if claim else None

    def _transition(self, url: str, status: str, **fields) -> int:
        return ScrapeQueueEntry.objects.filter(url=url).update(
            status=status, updated_at=timezone.now(), **fields
        )

    def mark_done(self, url: str) -> None:
        self._transition(url, QueueStatus.DONE, error_message="", force_rescrape=False)

    def mark_failed(self, url: str, error_message: str) -> None:
        self._transition(url, QueueStatus.FAILED, error_message=(error_message or "")[:2000])

    def mark_pending(self, url: str) -> None:
        """Return a claimed entry to the queue (rate-limit requeue)."""
        self._transition(url, QueueStatus.PENDING)

    def reset_stuck(self) -> int:
        """
        Return every PROCESSING entry to PENDING.

        Only safe when no worker is running; called on worker start.

        Returns:
            Number of entries reset
        """
        count = ScrapeQueueEntry.objects.filter(status=QueueStatus.PROCESSING).update(
            status=QueueStatus.PENDING, updated_at=timezone.now()
        )
        if count:
            logger.info(f"Reset {count} stuck queue entries to pending")
        return count

    def retry_failed(self) -> int:
        """Move every FAILED entry back to PENDING, counting the retry."""
        count = ScrapeQueueEntry.objects.filter(status=QueueStatus.FAILED).update(
            status=QueueStatus.PENDING,
            retry_count=F("retry_count") + 1,
            error_message="",
            updated_at=timezone.now(),
        )
        logger.info(f"Requeued {count} failed entries")
        return count

    def requeue(self, urls: Iterable[str]) -> int:
        """
        Schedule URLs for a forced re-scrape.

        Existing entries (other than ones being processed right now) go back
        to PENDING; missing ones are created. All are flagged so the worker
        scrapes them even though the catalog already has them.

        Returns:
            Number of URLs now pending for re-scrape
        """
        candidates = clean_urls(urls)
        if not candidates:
            return 0

        now = timezone.now()
        with transaction.atomic():
            existing = self._existing_urls(candidates)
            reset = 0
            for start in range(0, len(candidates), self.BATCH_SIZE):
                chunk = candidates[start:start + self.BATCH_SIZE]
                reset += (
                    ScrapeQueueEntry.objects.filter(url__in=chunk)
                    .exclude(status=QueueStatus.PROCESSING)
                    .update(
                        status=QueueStatus.PENDING,
                        force_rescrape=True,
                        error_message="",
                        updated_at=now,
                    )
                )
            ScrapeQueueEntry.objects.bulk_create(
                [
                    ScrapeQueueEntry(url=url, force_rescrape=True, created_at=now, updated_at=now)
                    for url in candidates
                    if url not in existing
                ],
                batch_size=self.BATCH_SIZE,
                ignore_conflicts=True,
            )
            created = len(self._existing_urls(candidates)) - len(existing)

        logger.info(f"Requeued {reset + created} URLs for re-scrape ({created} new)")
        return reset + created

    def stats(self) -> Dict[str, int]:
        """Counts by status, plus total."""
        counts = {status: 0 for status in QueueStatus.values}
        rows = ScrapeQueueEntry.objects.order_by().values("status").annotate(n=Count("id"))
        for row in rows:
            counts[row["status"]] = row["n"]
        counts["total"] = sum(counts[status] for status in QueueStatus.values)
        return counts

    def pending_count(self) -> int:
        return ScrapeQueueEntry.objects.filter(status=QueueStatus.PENDING).count()

    def clear(self, status: Optional[str] = None) -> int:
        """
        Delete entries, all of them or only those with the given status.

        Raises:
            ValueError: status is not a queue status
        """
        queryset = ScrapeQueueEntry.objects.all()
        if status:
            if status not in QueueStatus.values:
                raise ValueError(f"Unknown queue status: {status}")
            queryset = queryset.filter(status=status)

        deleted, _ = queryset.delete()
        logger.info(f"Cleared {deleted} queue entries ({status or 'all'})")
        return deleted

    def check_urls(self, urls: Iterable) -> Dict[str, List[str]]:
        """
        Split valid URLs into those the catalog already has and new ones.

        Returns:
            {"existing": [...], "new": [...]}, both in input order
        """
        candidates = clean_urls(urls)
        known = self.catalog.known_source_urls(candidates)
        return {
            "existing": [url for url in candidates if url in known],
            "new": [url for url in candidates if url not in known],
        }

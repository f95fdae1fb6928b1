"""
Django models for the perfume catalog scraper.

Models: Brand, Perfume, ScrapeQueueEntry, DiscoveryJob

Perfume is the catalog store (identity: source_url). ScrapeQueueEntry is the
durable work queue the worker claims URLs from. DiscoveryJob is the handle
for background discovery runs started from the API.
"""

import uuid

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from scraper.types import NotesPyramid, PerformanceMetric, PerfumeRecord


class GenderChoices(models.TextChoices):
    """Target audience of a perfume."""

    MASCULINE = "masculine", "Masculine"
    FEMININE = "feminine", "Feminine"
    UNISEX = "unisex", "Unisex"


class QueueStatus(models.TextChoices):
    """Lifecycle of a scrape queue entry."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    DONE = "done", "Done"
    FAILED = "failed", "Failed"


class DiscoveryJobKind(models.TextChoices):
    """How a discovery job finds perfume URLs."""

    BRAND = "brand", "Brand Pages"
    SITEMAP = "sitemap", "Full Sitemap"


class DiscoveryJobStatus(models.TextChoices):
    """Status of a discovery job."""

    PENDING = "pending", "Pending"
    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


def empty_notes():
    return {"top": [], "heart": [], "base": []}


class Brand(models.Model):
    """A fragrance house, recorded when its catalog page is discovered."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    logo_url = models.URLField(max_length=2000, blank=True, null=True)
    page_url = models.URLField(max_length=2000, blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "brands"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Perfume(models.Model):
    """
    A catalog perfume harvested from a product page.

    source_url is the natural key used by upserts; id is the surrogate key
    assigned at scrape time. Vote-derived fields stay null when the page
    carried no vote signal.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Identity
    name = models.CharField(max_length=255, db_index=True)
    brand = models.CharField(max_length=255, db_index=True)
    source_url = models.URLField(max_length=2000, unique=True, null=True, blank=True)

    # Attributes
    year = models.IntegerField(null=True, blank=True)
    perfumer = models.TextField(null=True, blank=True)
    perfumer_image_url = models.URLField(max_length=2000, null=True, blank=True)
    gender = models.CharField(
        max_length=20,
        choices=GenderChoices.choices,
        default=GenderChoices.UNISEX,
        db_index=True,
    )
    concentration = models.CharField(max_length=100, null=True, blank=True)
    description = models.TextField(null=True, blank=True)
    image_url = models.URLField(max_length=2000, null=True, blank=True)

    # Harvested structure (always replaced wholesale on upsert)
    notes = models.JSONField(default=empty_notes, blank=True)
    accords = models.JSONField(default=list, blank=True)

    # Vote-derived scores
    rating = models.DecimalField(
        max_digits=3,
        decimal_places=1,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(5)],
        help_text="Average rating on a 0-5 scale",
    )
    longevity = models.JSONField(null=True, blank=True)
    sillage = models.JSONField(null=True, blank=True)
    season_usage = models.JSONField(
        null=True,
        blank=True,
        help_text="winter/spring/summer/autumn/day/night scores, 0-100",
    )

    # Timing
    scraped_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "perfumes"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["brand", "name"], name="perfumes_brand_5d4a1e_idx"),
            models.Index(fields=["created_at"], name="perfumes_created_8f2c3b_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.brand})"

    @property
    def is_incomplete(self) -> bool:
        """Missing notes, accords or performance data."""
        return (
            self.sillage is None
            or self.longevity is None
            or not self.accords
            or NotesPyramid.from_dict(self.notes).is_empty()
        )

    def to_record(self) -> PerfumeRecord:
        return PerfumeRecord(
            id=str(self.id),
            name=self.name,
            brand=self.brand,
            year=self.year,
            perfumer=self.perfumer,
            perfumer_image_url=self.perfumer_image_url,
            gender=self.gender,
            concentration=self.concentration,
            notes=NotesPyramid.from_dict(self.notes),
            accords=list(self.accords or []),
            description=self.description,
            image_url=self.image_url,
            rating=float(self.rating) if self.rating is not None else None,
            longevity=PerformanceMetric.from_dict(self.longevity),
            sillage=PerformanceMetric.from_dict(self.sillage),
            season_usage=self.season_usage,
            source_url=self.source_url,
            scraped_at=self.scraped_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ScrapeQueueEntry(models.Model):
    """
    One URL in the persistent scrape queue.

    Status only moves to PROCESSING through ScrapeQueue.dequeue_next(),
    which claims with a conditional update so a row is held by at most one
    worker. updated_at is set explicitly because queue transitions use
    QuerySet.update(), which bypasses auto_now.
    """

    url = models.URLField(max_length=2000, unique=True)
    status = models.CharField(
        max_length=20,
        choices=QueueStatus.choices,
        default=QueueStatus.PENDING,
    )
    retry_count = models.IntegerField(default=0)
    error_message = models.TextField(blank=True, default="")
    force_rescrape = models.BooleanField(
        default=False,
        help_text="Scrape even if the catalog already holds this URL",
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "scrape_queue"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="scrape_queu_status_a7e2d4_idx"),
        ]
        verbose_name_plural = "scrape queue entries"

    def __str__(self):
        return f"{self.url[:100]} ({self.status})"


class DiscoveryJob(models.Model):
    """
    Tracks a background discovery run started from the API.

    Created before the Celery task is dispatched so callers always have a
    handle to poll, including when the task itself fails.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    kind = models.CharField(max_length=20, choices=DiscoveryJobKind.choices)
    params = models.JSONField(default=dict, blank=True)

    status = models.CharField(
        max_length=20,
        choices=DiscoveryJobStatus.choices,
        default=DiscoveryJobStatus.PENDING,
    )

    # Results
    urls_found = models.IntegerField(default=0)
    urls_queued = models.IntegerField(default=0)
    urls_skipped = models.IntegerField(default=0)
    results_summary = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True, default="")

    # Timing
    created_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "discovery_jobs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="discovery_j_status_5b1c8e_idx"),
        ]

    def __str__(self):
        return f"Discovery {self.kind} {self.id} ({self.status})"

    @property
    def duration_seconds(self):
        """Calculate job duration."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def start(self):
        """Mark job as started."""
        self.status = DiscoveryJobStatus.RUNNING
        self.started_at = timezone.now()
        self.save(update_fields=["status", "started_at"])

    def complete(self, success: bool = True, error_message: str = None):
        """Mark job as completed or failed."""
        self.status = DiscoveryJobStatus.COMPLETED if success else DiscoveryJobStatus.FAILED
        self.completed_at = timezone.now()
        if error_message:
            self.error_message = error_message
        self.save(
            update_fields=[
                "status",
                "completed_at",
                "error_message",
                "urls_found",
                "urls_queued",
                "urls_skipped",
                "results_summary",
            ]
        )

    def to_dict(self):
        return {
            "id": str(self.id),
            "kind": self.kind,
            "status": self.status,
            "params": self.params,
            "urls_found": self.urls_found,
            "urls_queued": self.urls_queued,
            "urls_skipped": self.urls_skipped,
            "results_summary": self.results_summary,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }

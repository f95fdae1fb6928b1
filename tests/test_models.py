"""
Tests for database models.

These tests verify model behaviour for the perfume catalog scraper.
"""

import pytest
from datetime import timedelta
from django.db import IntegrityError
from django.utils import timezone


@pytest.mark.django_db
class TestPerfume:
    """Tests for Perfume model functionality."""

    def test_defaults(self):
        """A bare perfume is unisex with an empty pyramid and no votes."""
        from scraper.models import Perfume

        perfume = Perfume.objects.create(name="Sauvage", brand="Dior")

        assert perfume.gender == "unisex"
        assert perfume.notes == {"top": [], "heart": [], "base": []}
        assert perfume.accords == []
        assert perfume.longevity is None
        assert str(perfume) == "Sauvage (Dior)"

    def test_source_url_is_unique(self):
        from scraper.models import Perfume

        url = "https://www.fragrantica.com/perfume/Dior/Sauvage-31861.html"
        Perfume.objects.create(name="Sauvage", brand="Dior", source_url=url)

        with pytest.raises(IntegrityError):
            Perfume.objects.create(name="Sauvage", brand="Dior", source_url=url)

    @pytest.mark.parametrize(
        "overrides,expected",
        [
            ({}, False),
            ({"sillage": None}, True),
            ({"longevity": None}, True),
            ({"accords": []}, True),
            ({"notes": {"top": [], "heart": [], "base": []}}, True),
        ],
    )
    def test_is_incomplete(self, overrides, expected):
        from scraper.models import Perfume

        values = {
            "name": "Sauvage",
            "brand": "Dior",
            "notes": {"top": ["Bergamot"], "heart": [], "base": []},
            "accords": ["citrus"],
            "longevity": {"dominant": "moderate", "percentage": 50, "votes": {"moderate": 1}},
            "sillage": {"dominant": "strong", "percentage": 60, "votes": {"strong": 3}},
        }
        values.update(overrides)

        assert Perfume(**values).is_incomplete is expected

    def test_to_record(self):
        """Stored JSON comes back as typed values."""
        from scraper.models import Perfume

        perfume = Perfume.objects.create(
            name="Sauvage",
            brand="Dior",
            rating="4.1",
            notes={"top": ["Bergamot"], "heart": ["Lavender"], "base": []},
            longevity={"dominant": "longlasting", "percentage": 60, "votes": {"longlasting": 3}},
        )
        perfume.refresh_from_db()

        record = perfume.to_record()

        assert record.id == str(perfume.id)
        assert record.rating == 4.1
        assert record.notes.heart == ["Lavender"]
        assert record.longevity.percentage == 60
        assert record.sillage is None


@pytest.mark.django_db
class TestScrapeQueueEntry:
    def test_defaults(self):
        from scraper.models import QueueStatus, ScrapeQueueEntry

        entry = ScrapeQueueEntry.objects.create(url="https://www.fragrantica.com/perfume/a/b.html")

        assert entry.status == QueueStatus.PENDING
        assert entry.retry_count == 0
        assert entry.force_rescrape is False
        assert entry.error_message == ""

    def test_url_is_unique(self):
        from scraper.models import ScrapeQueueEntry

        ScrapeQueueEntry.objects.create(url="https://www.fragrantica.com/perfume/a/b.html")
        with pytest.raises(IntegrityError):
            ScrapeQueueEntry.objects.create(url="https://www.fragrantica.com/perfume/a/b.html")


@pytest.mark.django_db
class TestDiscoveryJob:
    """Tests for DiscoveryJob status transitions."""

    def test_status_transition_from_pending_to_running(self):
        from scraper.models import DiscoveryJob, DiscoveryJobStatus

        job = DiscoveryJob.objects.create(kind="brand", params={"brands": ["Dior"]})
        assert job.status == DiscoveryJobStatus.PENDING

        job.start()
        job.refresh_from_db()

        assert job.status == DiscoveryJobStatus.RUNNING
        assert job.started_at is not None

    def test_status_transition_from_running_to_completed(self):
        from scraper.models import DiscoveryJob, DiscoveryJobStatus

        job = DiscoveryJob.objects.create(kind="sitemap")
        job.start()
        job.urls_found = 12
        job.complete(success=True)
        job.refresh_from_db()

        assert job.status == DiscoveryJobStatus.COMPLETED
        assert job.urls_found == 12
        assert job.completed_at is not None

    def test_status_transition_from_running_to_failed(self):
        from scraper.models import DiscoveryJob, DiscoveryJobStatus

        job = DiscoveryJob.objects.create(kind="sitemap")
        job.start()
        job.complete(success=False, error_message="Sitemap unreachable")
        job.refresh_from_db()

        assert job.status == DiscoveryJobStatus.FAILED
        assert job.error_message == "Sitemap unreachable"

    def test_duration_seconds(self):
        from scraper.models import DiscoveryJob

        started = timezone.now()
        job = DiscoveryJob(kind="sitemap", started_at=started, completed_at=started + timedelta(seconds=90))

        assert job.duration_seconds == 90
        assert DiscoveryJob(kind="sitemap").duration_seconds is None

    def test_to_dict(self):
        from scraper.models import DiscoveryJob

        job = DiscoveryJob.objects.create(kind="brand", params={"brands": ["Dior"], "limit": 10})
        data = job.to_dict()

        assert data["id"] == str(job.id)
        assert data["kind"] == "brand"
        assert data["params"] == {"brands": ["Dior"], "limit": 10}
        assert data["started_at"] is None
        assert data["duration_seconds"] is None


@pytest.mark.django_db
class TestBrand:
    def test_name_is_unique(self):
        from scraper.models import Brand

        Brand.objects.create(name="Dior")
        with pytest.raises(IntegrityError):
            Brand.objects.create(name="Dior")

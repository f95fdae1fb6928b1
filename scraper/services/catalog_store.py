"""
Catalog Store - persistence of scraped perfumes.

Records are keyed by source_url. Re-scraping a known page merges into the
stored row instead of duplicating it:
- incoming non-null scalar fields overwrite
- incoming null fields keep the stored value
- notes and accords are always replaced wholesale

All methods are synchronous ORM calls; async callers wrap them with
sync_to_async.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from django.db import IntegrityError, transaction
from django.db.models import Count
from django.db.models.functions import Lower
from django.utils import timezone

from scraper.models import Brand, Perfume
from scraper.types import PerfumeRecord

logger = logging.getLogger(__name__)


# Fields merged with coalesce semantics
MERGED_FIELDS = (
    "name",
    "brand",
    "year",
    "perfumer",
    "perfumer_image_url",
    "gender",
    "concentration",
    "description",
    "image_url",
    "rating",
    "longevity",
    "sillage",
    "season_usage",
    "scraped_at",
)

# Point-in-time harvested structure, replaced on every write
REPLACED_FIELDS = ("notes", "accords")

# Fields update() accepts
UPDATABLE_FIELDS = MERGED_FIELDS + REPLACED_FIELDS

IN_CLAUSE_CHUNK = 500


def record_to_fields(record: PerfumeRecord) -> Dict[str, Any]:
    """Model field values for a record (JSON-shaped values as plain dicts)."""
    return {
        "name": record.name,
        "brand": record.brand,
        "year": record.year,
        "perfumer": record.perfumer,
        "perfumer_image_url": record.perfumer_image_url,
        "gender": record.gender,
        "concentration": record.concentration,
        "description": record.description,
        "image_url": record.image_url,
        "rating": record.rating,
        "longevity": record.longevity.to_dict() if record.longevity else None,
        "sillage": record.sillage.to_dict() if record.sillage else None,
        "season_usage": dict(record.season_usage) if record.season_usage else None,
        "scraped_at": record.scraped_at,
        "notes": record.notes.to_dict(),
        "accords": list(record.accords),
    }


def _chunks(items: List[str], size: int = IN_CLAUSE_CHUNK):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class CatalogStore:
    """
    Perfume catalog backed by the Perfume model.

    Usage:
        store = CatalogStore()
        stored = store.upsert(record)
    """

    # Source URLs

    def get_all_source_urls(self) -> Set[str]:
        return set(
            Perfume.objects.filter(source_url__isnull=False).values_list("source_url", flat=True)
        )

    def exists_by_source_url(self, url: str) -> bool:
        return Perfume.objects.filter(source_url=url).exists()

    def known_source_urls(self, urls: Iterable[str]) -> Set[str]:
        """Subset of urls already held by the catalog."""
        urls = list(urls)
        known = set()
        for chunk in _chunks(urls):
            known.update(
                Perfume.objects.filter(source_url__in=chunk).values_list("source_url", flat=True)
            )
        return known

    # Writes

    def add(self, record: PerfumeRecord) -> PerfumeRecord:
        """Insert a new record; raises IntegrityError if source_url is taken."""
        perfume = Perfume.objects.create(
            id=record.id,
            source_url=record.source_url,
            created_at=record.created_at or timezone.now(),
            updated_at=record.updated_at or timezone.now(),
            **record_to_fields(record),
        )
        return perfume.to_record()

    def upsert(self, record: PerfumeRecord) -> PerfumeRecord:
        """
        Insert or merge a record by source_url.

        Args:
            record: Scraped record; source_url must be set

        Returns:
            The stored record (keeps the existing id on merge)
        """
        if not record.source_url:
            raise ValueError("Cannot upsert a record without source_url")

        try:
            return self._upsert_once(record)
        except IntegrityError:
            # Another writer inserted the same source_url first; merge into it.
            logger.warning(f"Concurrent insert for {record.source_url}, retrying as merge")
            return self._upsert_once(record)

    def _upsert_once(self, record: PerfumeRecord) -> PerfumeRecord:
        values = record_to_fields(record)
        now = timezone.now()

        with transaction.atomic():
            existing = (
                Perfume.objects.select_for_update()
                .filter(source_url=record.source_url)
                .first()
            )

            if existing is None:
                perfume = Perfume.objects.create(
                    id=record.id,
                    source_url=record.source_url,
                    created_at=record.created_at or now,
                    updated_at=now,
                    **values,
                )
                logger.info(f"Catalog insert: {perfume.name} ({perfume.brand})")
                return perfume.to_record()

            for field_name in MERGED_FIELDS:
                if values[field_name] is not None:
                    setattr(existing, field_name, values[field_name])
            for field_name in REPLACED_FIELDS:
                setattr(existing, field_name, values[field_name])
            existing.updated_at = now
            existing.save()

            logger.info(f"Catalog merge: {existing.name} ({existing.brand})")
            return existing.to_record()

    def update(self, perfume_id: str, partial: Dict[str, Any]) -> Optional[PerfumeRecord]:
        """
        Overwrite selected fields of a stored perfume.

        Unknown keys are ignored. Returns None when the id is unknown.
        """
        perfume = self._get(perfume_id)
        if perfume is None:
            return None

        changed = [key for key in partial if key in UPDATABLE_FIELDS]
        for key in changed:
            setattr(perfume, key, partial[key])
        perfume.updated_at = timezone.now()
        perfume.save(update_fields=changed + ["updated_at"])
        return perfume.to_record()

    # Reads

    def _get(self, perfume_id: str) -> Optional[Perfume]:
        try:
            pk = uuid.UUID(str(perfume_id))
        except ValueError:
            return None
        return Perfume.objects.filter(pk=pk).first()

    def get_by_id(self, perfume_id: str) -> Optional[PerfumeRecord]:
        perfume = self._get(perfume_id)
        return perfume.to_record() if perfume else None

    def count(self) -> int:
        return Perfume.objects.count()

    def _incomplete(self):
        # Emptiness of JSON lists/objects is checked in Python: JSON equality
        # lookups behave differently across database backends.
        queryset = Perfume.objects.filter(source_url__isnull=False).order_by("-created_at")
        for perfume in queryset.iterator():
            if perfume.is_incomplete:
                yield perfume

    def get_incomplete(self, limit: int = 100) -> List[PerfumeRecord]:
        """Newest-first records missing notes, accords, longevity or sillage."""
        results = []
        for perfume in self._incomplete():
            if len(results) >= limit:
                break
            results.append(perfume.to_record())
        return results

    def count_incomplete(self) -> int:
        return sum(1 for _ in self._incomplete())

    def incomplete_by_brand(self) -> List[Dict[str, Any]]:
        """
        Group incomplete records by brand.

        Returns:
            [{"brand", "count", "ids", "urls"}], largest group first
        """
        groups: Dict[str, Dict[str, Any]] = {}
        for perfume in self._incomplete():
            if not perfume.brand:
                continue
            group = groups.setdefault(
                perfume.brand, {"brand": perfume.brand, "count": 0, "ids": [], "urls": []}
            )
            group["count"] += 1
            group["ids"].append(str(perfume.id))
            group["urls"].append(perfume.source_url)
        return sorted(groups.values(), key=lambda g: g["count"], reverse=True)

    # Duplicates

    @staticmethod
    def _keep_order(perfume: Perfume):
        # Highest rating first (unrated last), then oldest
        rating = float(perfume.rating) if perfume.rating is not None else -1.0
        return (-rating, perfume.created_at)

    def find_duplicates(self) -> List[Dict[str, Any]]:
        """
        Find perfumes sharing a case-insensitive (name, brand).

        Returns:
            One dict per group: name, brand, count, keep (id) and remove (ids)
        """
        annotated = Perfume.objects.annotate(name_key=Lower("name"), brand_key=Lower("brand"))
        groups = (
            annotated.values("name_key", "brand_key")
            .annotate(total=Count("id"))
            .filter(total__gt=1)
            .order_by("brand_key", "name_key")
        )

        duplicates = []
        for group in groups:
            members = sorted(
                annotated.filter(name_key=group["name_key"], brand_key=group["brand_key"]),
                key=self._keep_order,
            )
            keep, remove = members[0], members[1:]
            duplicates.append(
                {
                    "name": keep.name,
                    "brand": keep.brand,
                    "count": len(members),
                    "keep": str(keep.id),
                    "remove": [str(p.id) for p in remove],
                }
            )
        return duplicates

    def delete_duplicates(self) -> int:
        """Delete every duplicate except the one find_duplicates() keeps."""
        ids = [pk for group in self.find_duplicates() for pk in group["remove"]]
        if not ids:
            return 0
        deleted, _ = Perfume.objects.filter(pk__in=ids).delete()
        logger.info(f"Deleted {deleted} duplicate perfumes")
        return deleted

    # Brands

    def upsert_brand(self, name: str, logo_url: Optional[str], page_url: Optional[str]) -> Brand:
        """Create or update a brand; a missing logo keeps the stored one."""
        brand, created = Brand.objects.get_or_create(
            name=name, defaults={"logo_url": logo_url, "page_url": page_url}
        )
        if not created:
            if logo_url:
                brand.logo_url = logo_url
            if page_url:
                brand.page_url = page_url
            brand.save()
        return brand

    # Reset

    def clear(self) -> Dict[str, int]:
        """Delete every perfume and brand."""
        perfumes, _ = Perfume.objects.all().delete()
        brands, _ = Brand.objects.all().delete()
        logger.warning(f"Catalog cleared: {perfumes} perfumes, {brands} brands")
        return {"perfumes": perfumes, "brands": brands}

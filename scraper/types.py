"""
Value types shared by the extraction pipeline, the orchestrator and the worker.

PerfumeRecord is the contract between the scraping pipeline and the catalog:
everything the extractor harvests plus the identity fields assigned at scrape
time. ScrapeOutcome is the tagged result returned by the orchestrator so the
worker can switch on ScrapeErrorKind instead of inspecting messages.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from django.utils import timezone


class Gender(str, Enum):
    MASCULINE = "masculine"
    FEMININE = "feminine"
    UNISEX = "unisex"


@dataclass
class NotesPyramid:
    """Top / heart / base note names in first-seen order."""

    top: List[str] = field(default_factory=list)
    heart: List[str] = field(default_factory=list)
    base: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.top or self.heart or self.base)

    def deduplicated(self) -> "NotesPyramid":
        return NotesPyramid(
            top=list(dict.fromkeys(self.top)),
            heart=list(dict.fromkeys(self.heart)),
            base=list(dict.fromkeys(self.base)),
        )

    def to_dict(self) -> Dict[str, List[str]]:
        return {"top": list(self.top), "heart": list(self.heart), "base": list(self.base)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NotesPyramid":
        data = data or {}
        return cls(
            top=list(data.get("top") or []),
            heart=list(data.get("heart") or []),
            base=list(data.get("base") or []),
        )


@dataclass
class PerformanceMetric:
    """
    Vote-derived longevity or sillage summary.

    Attributes:
        dominant: Category with the highest vote count
        percentage: dominant votes / all votes, as a rounded percentage
        votes: Raw vote count per normalized category
    """

    dominant: str
    percentage: int
    votes: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dominant": self.dominant,
            "percentage": self.percentage,
            "votes": dict(self.votes),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PerformanceMetric"]:
        if not data:
            return None
        return cls(
            dominant=data["dominant"],
            percentage=int(data["percentage"]),
            votes=dict(data.get("votes") or {}),
        )


@dataclass
class ExtractedPerfume:
    """Attributes harvested from one document, before identity is assigned."""

    name: Optional[str] = None
    brand: Optional[str] = None
    year: Optional[int] = None
    perfumer: Optional[str] = None
    perfumer_image_url: Optional[str] = None
    gender: str = Gender.UNISEX.value
    concentration: Optional[str] = None
    notes: NotesPyramid = field(default_factory=NotesPyramid)
    accords: List[str] = field(default_factory=list)
    description: Optional[str] = None
    image_url: Optional[str] = None
    rating: Optional[float] = None
    longevity: Optional[PerformanceMetric] = None
    sillage: Optional[PerformanceMetric] = None
    season_usage: Optional[Dict[str, int]] = None


@dataclass
class PerfumeRecord(ExtractedPerfume):
    """A scraped perfume ready for the catalog."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    source_url: Optional[str] = None
    scraped_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_extracted(cls, extracted: ExtractedPerfume, source_url: str) -> "PerfumeRecord":
        now = timezone.now()
        return cls(
            **{name: getattr(extracted, name) for name in ExtractedPerfume.__dataclass_fields__},
            source_url=source_url,
            scraped_at=now,
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("scraped_at", "created_at", "updated_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class ScrapeErrorKind(str, Enum):
    """Classification of a failed scrape, used by the worker to pick a policy."""

    RATE_LIMITED = "rate_limited"
    INVALID_DATA = "invalid_data"
    TIMEOUT = "timeout"
    NAVIGATION_FAILURE = "navigation_failure"
    FAILED = "failed"


@dataclass
class ScrapeOutcome:
    """Result of scraping one URL: either a record or a classified error."""

    url: str
    record: Optional[PerfumeRecord] = None
    kind: Optional[ScrapeErrorKind] = None
    error: Optional[str] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.record is not None and self.kind is None

    @classmethod
    def success(cls, url: str, record: PerfumeRecord, from_cache: bool = False) -> "ScrapeOutcome":
        return cls(url=url, record=record, from_cache=from_cache)

    @classmethod
    def failure(cls, url: str, kind: ScrapeErrorKind, error: str) -> "ScrapeOutcome":
        return cls(url=url, kind=kind, error=error)

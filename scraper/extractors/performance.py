"""
Vote-derived performance fields: longevity, sillage and season usage.

Scores are only ever derived from vote counts found on the page. When no
vote signal is found the field is None, never a zeroed structure.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from bs4 import Tag

from scraper.extractors.base import (
    PageDocument,
    Strategy,
    class_string,
    own_text,
    parse_int_prefix,
    parse_vote_count,
    round_half_up,
    run_cascade,
    text_of,
)
from scraper.types import PerformanceMetric

VOTE_BUTTONS = '[class*="vote-button"], .vote_chart_graph, .vote-button-wrap'
VOTE_LABEL = '[class*="name"], [class*="legend"], [class*="label"]'
VOTE_COUNT = '[class*="count"], [class*="num"], [class*="votes"]'
METRIC_CONTAINERS = '[class*="cell"], [class*="col"], section, div'
METRIC_HEADINGS = "b, strong, h3, h4, p"
VOTE_TEXT_BLOCKS = '[class*="vote"], [class*="chart"]'

LONGEVITY_LABELS = {
    "poor": "poor",
    "very weak": "veryweak",
    "weak": "weak",
    "moderate": "moderate",
    "long lasting": "longlasting",
    "very long lasting": "verylong",
    "very long": "verylong",
    "eternal": "eternal",
    "escasa": "poor",
    "muy débil": "veryweak",
    "muy debil": "veryweak",
    "débil": "weak",
    "debil": "weak",
    "moderada": "moderate",
    "duradera": "longlasting",
    "muy duradera": "verylong",
    "eterna": "eternal",
}

SILLAGE_LABELS = {
    "intimate": "intimate",
    "moderate": "moderate",
    "strong": "strong",
    "enormous": "enormous",
    "suave": "intimate",
    "moderada": "moderate",
    "fuerte": "strong",
    "pesada": "strong",
    "enorme": "enormous",
}


@dataclass(frozen=True)
class MetricVocabulary:
    """Section keywords and vote labels for one performance metric."""

    name: str
    keywords: List[str]
    labels: Dict[str, str]


LONGEVITY = MetricVocabulary(
    name="longevity",
    keywords=["longevity", "longevidad", "lasting", "durance"],
    labels=LONGEVITY_LABELS,
)

SILLAGE = MetricVocabulary(
    name="sillage",
    keywords=["sillage", "estela", "trail", "projection", "proyección"],
    labels=SILLAGE_LABELS,
)


def _merge_max(votes: Dict[str, int], key: str, count: int) -> None:
    # Nested containers get scanned more than once; max avoids double counting.
    votes[key] = max(votes.get(key, 0), count)


def _collect_vote_buttons(container: Tag, vocabulary: MetricVocabulary, votes: Dict[str, int]) -> None:
    for button in container.select(VOTE_BUTTONS):
        label_el = button.select_one(VOTE_LABEL)
        count_el = button.select_one(VOTE_COUNT)
        label = (text_of(label_el) if label_el is not None else own_text(button)).lower()
        count = parse_int_prefix(text_of(count_el).replace(",", "")) if count_el is not None else None

        key = vocabulary.labels.get(label)
        if key and count is not None and count >= 0:
            _merge_max(votes, key, count)


def _votes_in_keyword_containers(doc: PageDocument, vocabulary: MetricVocabulary) -> Dict[str, int]:
    votes: Dict[str, int] = {}
    for container in doc.select(METRIC_CONTAINERS):
        text = own_text(container).lower()
        classes = class_string(container)
        if any(kw in text or kw in classes for kw in vocabulary.keywords):
            _collect_vote_buttons(container, vocabulary, votes)
    return votes


def _votes_near_headings(doc: PageDocument, vocabulary: MetricVocabulary) -> Dict[str, int]:
    votes: Dict[str, int] = {}
    for heading in doc.select(METRIC_HEADINGS):
        text = text_of(heading).lower()
        if not any(text == kw or text.startswith(kw) for kw in vocabulary.keywords):
            continue
        parent = heading.parent
        if parent is not None:
            _collect_vote_buttons(parent, vocabulary, votes)
            if parent.parent is not None:
                _collect_vote_buttons(parent.parent, vocabulary, votes)
    return votes


def _votes_in_text(doc: PageDocument, vocabulary: MetricVocabulary) -> Dict[str, int]:
    votes: Dict[str, int] = {}
    patterns = {
        label: re.compile(rf"{re.escape(label)}[^\d]*(\d[\d,]*)", re.IGNORECASE)
        for label in vocabulary.labels
    }
    for block in doc.select(VOTE_TEXT_BLOCKS):
        text = text_of(block).lower()
        has_keyword = any(kw in text for kw in vocabulary.keywords)
        has_label = any(label in text for label in vocabulary.labels)
        if not (has_keyword or has_label):
            continue
        for label, pattern in patterns.items():
            match = pattern.search(text)
            if match:
                _merge_max(votes, vocabulary.labels[label], int(match.group(1).replace(",", "")))
    return votes


def summarize_votes(votes: Dict[str, int]) -> Optional[PerformanceMetric]:
    """
    Reduce per-category votes to a PerformanceMetric.

    The dominant category is the one with most votes (first seen wins a
    tie); percentage is its share of all votes.
    """
    if not votes:
        return None
    dominant = max(votes, key=votes.get)
    total = sum(votes.values())
    percentage = round_half_up(votes[dominant] / total * 100) if total > 0 else 0
    return PerformanceMetric(dominant=dominant, percentage=percentage, votes=dict(votes))


def _metric_strategies(vocabulary: MetricVocabulary) -> List[Strategy]:
    return [
        Strategy("keyword containers", lambda doc: _votes_in_keyword_containers(doc, vocabulary)),
        Strategy("keyword headings", lambda doc: _votes_near_headings(doc, vocabulary)),
        Strategy("vote text", lambda doc: _votes_in_text(doc, vocabulary)),
    ]


LONGEVITY_STRATEGIES = _metric_strategies(LONGEVITY)
SILLAGE_STRATEGIES = _metric_strategies(SILLAGE)


def extract_longevity(doc: PageDocument) -> Optional[PerformanceMetric]:
    return summarize_votes(run_cascade("longevity", LONGEVITY_STRATEGIES, doc, default={}))


def extract_sillage(doc: PageDocument) -> Optional[PerformanceMetric]:
    return summarize_votes(run_cascade("sillage", SILLAGE_STRATEGIES, doc, default={}))


# Season and time of day

SEASON_BUCKETS = ("winter", "spring", "summer", "autumn", "day", "night")

SEASON_KEYWORDS = {
    "winter": "winter",
    "invierno": "winter",
    "spring": "spring",
    "primavera": "spring",
    "summer": "summer",
    "verano": "summer",
    "fall": "autumn",
    "autumn": "autumn",
    "otoño": "autumn",
    "otono": "autumn",
    "day": "day",
    "daytime": "day",
    "día": "day",
    "dia": "day",
    "night": "night",
    "noche": "night",
    "evening": "night",
}

SEASON_BUTTONS = '[class*="vote-button"], [class*="season"], [class*="accord-season"]'
SEASON_LABEL_TAGS = "span, div, p, td, li"
SEASON_NUMBER_RE = re.compile(r"(\d+(?:[.,]\d+)?k?)", re.IGNORECASE)


def _season_buttons(doc: PageDocument) -> Dict[str, float]:
    raw: Dict[str, float] = {}
    for element in doc.select(SEASON_BUTTONS):
        classes = class_string(element)
        text = text_of(element).lower()
        buckets = {bucket for kw, bucket in SEASON_KEYWORDS.items() if kw in classes or kw in text}
        # A wrapper around several buttons names several buckets; its first
        # number belongs to only one of them.
        if len(buckets) != 1:
            continue

        match = SEASON_NUMBER_RE.search(text)
        if not match:
            continue
        count = parse_vote_count(match.group(1))
        if count > 0:
            bucket = buckets.pop()
            raw[bucket] = max(raw.get(bucket, 0), count)
    return raw


def _season_label(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    return SEASON_KEYWORDS.get(own_text(element).lower()) or SEASON_KEYWORDS.get(text_of(element).lower())


def _label_count(label: Tag) -> float:
    """
    Vote count beside a season label.

    A row of labels pairs each label with the count after it; a count before
    the label is used only when no other label claims it. The parent's other
    children are searched only when none of them is another season label.
    """
    following = label.find_next_sibling()
    if following is not None and not _season_label(following):
        count = parse_vote_count(text_of(following))
        if count > 0:
            return count

    preceding = label.find_previous_sibling()
    if (
        preceding is not None
        and not _season_label(preceding)
        and not _season_label(preceding.find_previous_sibling())
    ):
        count = parse_vote_count(text_of(preceding))
        if count > 0:
            return count

    if label.parent is None:
        return 0
    others = [child for child in label.parent.find_all(recursive=False) if child is not label]
    if any(_season_label(child) for child in others):
        return 0
    return max((parse_vote_count(text_of(child)) for child in others), default=0)


def _season_labels(doc: PageDocument) -> Dict[str, float]:
    raw: Dict[str, float] = {}
    for element in doc.select(SEASON_LABEL_TAGS):
        bucket = SEASON_KEYWORDS.get(own_text(element).lower())
        if not bucket:
            continue

        count = _label_count(element)
        if count > 0:
            raw[bucket] = max(raw.get(bucket, 0), count)
    return raw


SEASON_STRATEGIES = [
    Strategy("season vote buttons", _season_buttons),
    Strategy("season labels", _season_labels),
]


def normalize_season_votes(raw: Dict[str, float]) -> Optional[Dict[str, int]]:
    """
    Scale raw bucket votes to 0-100 against the largest bucket.

    Returns:
        Scores for all six buckets, or None when no bucket has votes
    """
    counts = {bucket: raw.get(bucket, 0) for bucket in SEASON_BUCKETS}
    peak = max(counts.values())
    if peak <= 0:
        return None
    return {bucket: round_half_up(count / peak * 100) for bucket, count in counts.items()}


def extract_season_usage(doc: PageDocument) -> Optional[Dict[str, int]]:
    return normalize_season_votes(run_cascade("season_usage", SEASON_STRATEGIES, doc, default={}))

"""
Notes pyramid extraction.

Product pages lay out the pyramid in several ways depending on locale and
page age, so the cascade goes from the most structured reading to the
least:

1. A pyramid container with Top/Heart/Base headers walked in document order
2. Exact section headers anywhere, collecting links from following siblings
3. A single pass over every header and note link in the document
4. Free-text "Top Notes"/"Heart Notes"/"Base Notes" labels
5. Every note link, unclassified, in the heart bucket only

The last tier never invents top or base notes; it only records that the
page listed notes whose structure could not be read.
"""

import re
from typing import Iterable, Optional

from bs4 import Tag

from scraper.extractors.base import (
    PageDocument,
    Strategy,
    collapse_whitespace,
    own_text,
    run_cascade,
    text_of,
)
from scraper.types import NotesPyramid

NOTE_LINK = 'a[href*="/notes/"]'
PYRAMID_CONTAINER = '[id="pyramid"], .pyramid, [class*="pyramid"]'
HEADER_TAGS = {"b", "strong"}
SIBLING_STOP_TAGS = {"b", "strong", "h2", "h3", "h4"}
MAX_NOTE_LENGTH = 80

# Loose matching, used while walking a region in document order.
SECTION_SEARCH = [
    ("top", re.compile(r"top\s+notes?")),
    ("heart", re.compile(r"heart\s+notes?|middle\s+notes?")),
    ("base", re.compile(r"base\s+notes?")),
]

# Exact matching, used when headers are looked up anywhere on the page.
SECTION_EXACT = [
    ("top", re.compile(r"^top\s+notes?$", re.IGNORECASE)),
    ("heart", re.compile(r"^(heart|middle)\s+notes?$", re.IGNORECASE)),
    ("base", re.compile(r"^base\s+notes?$", re.IGNORECASE)),
]

TEXT_LABELS = {
    "top": ["top notes"],
    "heart": ["heart notes", "middle notes"],
    "base": ["base notes"],
}

BARE_NOTES_LABEL_RE = re.compile(r"^notes?$", re.IGNORECASE)


def note_text(link: Tag) -> Optional[str]:
    """Note name from a link's text, or from its image alt text."""
    text = text_of(link)
    if not text:
        img = link.find("img")
        text = collapse_whitespace(img.get("alt")) if img is not None else ""
    if not text or len(text) >= MAX_NOTE_LENGTH:
        return None
    return text


def _section_for(header_text: str) -> Optional[str]:
    lowered = header_text.lower()
    for key, pattern in SECTION_SEARCH:
        if pattern.search(lowered):
            return key
    return None


def _walk_in_order(elements: Iterable[Tag]) -> NotesPyramid:
    notes = NotesPyramid()
    current = None
    for element in elements:
        if element.name in HEADER_TAGS:
            current = _section_for(text_of(element)) or current
        elif current:
            text = note_text(element)
            if text:
                getattr(notes, current).append(text)
    return notes


def _from_pyramid_container(doc: PageDocument) -> NotesPyramid:
    container = doc.first(PYRAMID_CONTAINER)
    if container is None:
        return NotesPyramid()
    return _walk_in_order(container.select(f"b, strong, {NOTE_LINK}"))


def _links_in(element: Tag) -> Iterable[Tag]:
    if element.name == "a" and "/notes/" in (element.get("href") or ""):
        yield element
    yield from element.select(NOTE_LINK)


def _from_section_headers(doc: PageDocument) -> NotesPyramid:
    notes = NotesPyramid()
    for header in doc.select("b, strong"):
        header_text = text_of(header)
        key = next((k for k, pattern in SECTION_EXACT if pattern.match(header_text)), None)
        if key is None:
            continue

        bucket = getattr(notes, key)
        for sibling in header.find_next_siblings():
            if sibling.name in SIBLING_STOP_TAGS:
                break
            bucket.extend(t for t in map(note_text, _links_in(sibling)) if t)

        # Headers are often wrapped (<h4><b>Top Notes</b></h4>) with the
        # links in the wrapper's next sibling.
        if not bucket and header.parent is not None:
            following = header.parent.find_next_sibling()
            if following is not None:
                bucket.extend(t for t in map(note_text, _links_in(following)) if t)
    return notes


def _from_document_pass(doc: PageDocument) -> NotesPyramid:
    return _walk_in_order(doc.select(f"b, strong, {NOTE_LINK}"))


def _label_links(doc: PageDocument, labels) -> list:
    for label in labels:
        for element in doc.soup.find_all(True):
            if own_text(element).lower() == label:
                parent = element.parent
                if parent is None:
                    break
                found = [t for t in map(note_text, parent.select(NOTE_LINK)) if t]
                if found:
                    return found
                break
    return []


def _from_text_labels(doc: PageDocument) -> NotesPyramid:
    return NotesPyramid(
        top=_label_links(doc, TEXT_LABELS["top"]),
        heart=_label_links(doc, TEXT_LABELS["heart"]),
        base=_label_links(doc, TEXT_LABELS["base"]),
    )


def _unclassified(doc: PageDocument) -> NotesPyramid:
    heart = [
        text
        for text in map(note_text, doc.select(NOTE_LINK))
        if text and not BARE_NOTES_LABEL_RE.match(text)
    ]
    return NotesPyramid(heart=heart)


def _has_notes(pyramid: NotesPyramid) -> bool:
    return not pyramid.is_empty()


NOTES_STRATEGIES = [
    Strategy("pyramid container", _from_pyramid_container, _has_notes),
    Strategy("section headers", _from_section_headers, _has_notes),
    Strategy("document pass", _from_document_pass, _has_notes),
    Strategy("text labels", _from_text_labels, _has_notes),
    Strategy("unclassified links", _unclassified, _has_notes),
]


def extract_notes(doc: PageDocument) -> NotesPyramid:
    pyramid = run_cascade("notes", NOTES_STRATEGIES, doc, default=NotesPyramid())
    return pyramid.deduplicated()

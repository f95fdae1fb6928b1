"""
Tests for perfume page extraction.

Covers:
- Full product page extraction
- Fallback tiers for name, brand, year, perfumer, gender and concentration
- Notes pyramid cascade, from the pyramid container down to unclassified links
- Accord ordering
- Vote-derived longevity, sillage and season usage
- Rating, description and image helpers
"""

import pytest

from scraper.extractors import PerfumeExtractor
from scraper.extractors.accords import extract_accords
from scraper.extractors.base import PageDocument, Strategy, round_half_up, run_cascade
from scraper.extractors.identity import (
    extract_brand,
    extract_concentration,
    extract_gender,
    extract_name,
    extract_perfumer,
    extract_year,
)
from scraper.extractors.media import extract_image_url, extract_rating, normalize_rating
from scraper.extractors.notes import extract_notes
from scraper.extractors.performance import (
    extract_longevity,
    extract_season_usage,
    extract_sillage,
    normalize_season_votes,
    summarize_votes,
)

BASE_URL = "https://www.fragrantica.com"


def doc_for(body: str, title: str = "Fragrantica") -> PageDocument:
    html = f"<html><head><title>{title}</title></head><body>{body}</body></html>"
    return PageDocument.from_html(html, BASE_URL)


class TestProductPage:
    """Extraction of a complete product page."""

    @pytest.fixture
    def perfume(self, product_html):
        return PerfumeExtractor(base_url=BASE_URL).extract(product_html)

    def test_identity(self, perfume):
        """Name has the brand and gender suffix stripped."""
        assert perfume.name == "Sauvage"
        assert perfume.brand == "Dior"
        assert perfume.gender == "masculine"
        assert perfume.year == 2015
        assert perfume.concentration == "Eau de Toilette"

    def test_perfumer_and_portrait(self, perfume):
        assert perfume.perfumer == "Francois Demachy"
        assert perfume.perfumer_image_url == f"{BASE_URL}/mdimg/noses/demachy.jpg"

    def test_notes_pyramid(self, perfume):
        assert perfume.notes.top == ["Calabrian bergamot", "Pepper"]
        assert perfume.notes.heart == ["Sichuan Pepper", "Lavender"]
        assert perfume.notes.base == ["Ambroxan", "Cedar"]

    def test_accords_ordered_by_width(self, perfume):
        assert perfume.accords == ["citrus", "fresh spicy", "amber"]

    def test_media_fields(self, perfume):
        assert perfume.rating == 4.1
        assert perfume.description.startswith("Sauvage by Dior")
        assert perfume.image_url == "https://fimgs.net/mdimg/perfume/375x500.31861.jpg"

    def test_longevity(self, perfume):
        assert perfume.longevity.dominant == "longlasting"
        assert perfume.longevity.percentage == 60
        assert perfume.longevity.votes == {"moderate": 1204, "longlasting": 3010, "eternal": 786}

    def test_sillage(self, perfume):
        assert perfume.sillage.dominant == "moderate"
        assert perfume.sillage.percentage == 50
        assert perfume.sillage.votes == {"intimate": 500, "moderate": 2500, "strong": 1500, "enormous": 500}

    def test_season_usage(self, perfume):
        assert perfume.season_usage == {
            "winter": 20,
            "spring": 50,
            "summer": 75,
            "autumn": 15,
            "day": 100,
            "night": 25,
        }

    def test_empty_document_degrades_to_defaults(self):
        perfume = PerfumeExtractor(base_url=BASE_URL).extract("")

        assert perfume.name is None
        assert perfume.brand is None
        assert perfume.gender == "unisex"
        assert perfume.notes.is_empty()
        assert perfume.accords == []
        assert perfume.longevity is None
        assert perfume.sillage is None
        assert perfume.season_usage is None


class TestIdentityFallbacks:
    """Lower tiers of the identity cascades."""

    def test_name_from_title_prefix(self):
        doc = doc_for("<p>No heading here</p>", title="Aventus Creed for men | Fragrantica")
        assert extract_name(doc) == "Aventus Creed for men"

    def test_brand_from_designer_link(self):
        doc = doc_for('<a href="/designers/Creed.html">Creed</a>')
        assert extract_brand(doc) == "Creed"

    def test_year_skips_out_of_range_match(self):
        """An implausible year moves on to the next pattern."""
        doc = doc_for("<p>The house was launched in 1850 and this scent dates from 1999.</p>")
        assert extract_year(doc) == 1999

    def test_year_missing(self):
        assert extract_year(doc_for("<p>No date given.</p>")) is None

    def test_perfumer_from_credit_text(self):
        doc = doc_for("<p>It was created by Alberto Morillas in a single afternoon.</p>")
        assert extract_perfumer(doc) == ("Alberto Morillas", None)

    def test_multiple_perfumer_links_joined(self):
        doc = doc_for(
            '<a href="/noses/A.html">Perfumer: Jacques Cavallier</a>'
            '<a href="/noses/B.html">Alberto Morillas</a>'
            '<a href="/noses/A.html">Jacques Cavallier</a>'
        )
        assert extract_perfumer(doc) == ("Jacques Cavallier, Alberto Morillas", None)

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("An Extrait de Parfum of rare depth.", "Extrait de Parfum"),
            ("Sold as Eau de Parfum only.", "Eau de Parfum"),
            ("A classic Eau de Cologne.", "Eau de Cologne"),
            ("Pure parfum in a crystal flacon.", "Parfum"),
            ("Nothing to see.", None),
        ],
    )
    def test_concentration(self, text, expected):
        assert extract_concentration(doc_for(f"<p>{text}</p>")) == expected

    def test_combined_phrase_in_heading_is_unisex(self):
        doc = doc_for(
            '<h1 itemprop="name">Le Male Jean Paul Gaultier for women and men</h1>'
            "<p>Loved for women everywhere.</p>"
        )
        assert extract_gender(doc) == "unisex"

    def test_combined_phrase_in_body_is_unisex(self):
        """Both phrases in the body; the heading names no gender."""
        doc = doc_for(
            "<h1>Le Male</h1>"
            "<p>Also try these perfumes for women.</p>"
            "<p>Le Male is a fragrance for women and men.</p>"
        )
        assert extract_gender(doc) == "unisex"

    @pytest.mark.parametrize(
        "body,expected",
        [
            ('<h1 itemprop="name">Mon Paris Yves Saint Laurent for women</h1>', "feminine"),
            ("<h1>Bleu</h1><p>A fragrance for men.</p>", "masculine"),
            ("<h1>Bleu</h1><p>No audience named.</p>", "unisex"),
        ],
    )
    def test_gender_tiers(self, body, expected):
        assert extract_gender(doc_for(body)) == expected


class TestNotesCascade:
    """Each tier of the notes pyramid cascade."""

    def test_section_headers_collect_following_siblings(self):
        doc = doc_for(
            "<div>"
            "<b>Top Notes</b>"
            '<a href="/notes/Lemon.html">Lemon</a>'
            '<span><a href="/notes/Mint.html">Mint</a></span>'
            "<b>Base Notes</b>"
            '<a href="/notes/Musk.html">Musk</a>'
            "</div>"
        )
        notes = extract_notes(doc)

        assert notes.top == ["Lemon", "Mint"]
        assert notes.heart == []
        assert notes.base == ["Musk"]

    def test_text_labels(self):
        doc = doc_for('<div><span>Top Notes</span><a href="/notes/Yuzu.html">Yuzu</a></div>')
        notes = extract_notes(doc)

        assert notes.top == ["Yuzu"]
        assert notes.heart == []
        assert notes.base == []

    def test_unclassified_links_go_to_heart_only(self):
        doc = doc_for(
            "<div>"
            '<a href="/notes/Rose.html">Rose</a>'
            '<a href="/notes/">Notes</a>'
            '<a href="/notes/Oud.html">Oud</a>'
            "</div>"
        )
        notes = extract_notes(doc)

        assert notes.top == []
        assert notes.heart == ["Rose", "Oud"]
        assert notes.base == []

    def test_note_name_from_image_alt(self):
        doc = doc_for(
            '<div id="pyramid"><b>Base Notes</b>'
            '<a href="/notes/Vanilla.html"><img src="/n.jpg" alt="Vanilla"></a>'
            '<a href="/notes/Vanilla.html">Vanilla</a></div>'
        )
        assert extract_notes(doc).base == ["Vanilla"]

    def test_no_note_links(self):
        assert extract_notes(doc_for("<p>Nothing</p>")).is_empty()


class TestAccords:
    def test_links_deduplicated_and_short_names_dropped(self):
        doc = doc_for(
            '<a href="/accords/woody.html">woody</a>'
            '<a href="/accords/woody.html">woody</a>'
            '<a href="/accords/x.html">x</a>'
            '<a href="/accords/rose.html">rose</a>'
        )
        assert extract_accords(doc) == ["woody", "rose"]

    def test_bars_without_width_follow_in_page_order(self):
        doc = doc_for(
            '<div class="accord-bar"><span>powdery</span></div>'
            '<div class="accord-bar" style="width: 40%;"><span>floral</span></div>'
            '<div class="accord-bar" style="width: 90%;"><span>woody</span></div>'
        )
        assert extract_accords(doc) == ["woody", "floral", "powdery"]

    def test_no_accords(self):
        assert extract_accords(doc_for("<p>Plain page</p>")) == []


class TestPerformanceVotes:
    """Vote summaries and normalization."""

    def test_summarize_tie_keeps_first_category(self):
        metric = summarize_votes({"moderate": 10, "weak": 10})
        assert metric.dominant == "moderate"
        assert metric.percentage == 50

    def test_summarize_rounds_half_up(self):
        metric = summarize_votes({"y": 5, "x": 3})
        assert metric.dominant == "y"
        assert metric.percentage == 63

    def test_summarize_without_votes(self):
        assert summarize_votes({}) is None

    def test_longevity_from_vote_text(self):
        doc = doc_for('<div class="vote-chart">Longevity: poor 10 weak 20 moderate 150</div>')
        metric = extract_longevity(doc)

        assert metric.votes == {"poor": 10, "weak": 20, "moderate": 150}
        assert metric.dominant == "moderate"
        assert metric.percentage == 83

    def test_no_vote_signal_gives_none(self):
        doc = doc_for("<p>A lovely scent with no votes.</p>")
        assert extract_longevity(doc) is None
        assert extract_sillage(doc) is None
        assert extract_season_usage(doc) is None

    def test_season_labels_take_their_own_counts(self):
        doc = doc_for("<div><span>winter</span><span>40</span><span>summer</span><span>120</span></div>")
        assert extract_season_usage(doc) == {
            "winter": 33, "spring": 0, "summer": 100, "autumn": 0, "day": 0, "night": 0,
        }

    def test_season_label_after_its_count(self):
        doc = doc_for("<div><span>75</span><span>night</span></div><div><span>25</span><span>day</span></div>")
        assert extract_season_usage(doc) == {
            "winter": 0, "spring": 0, "summer": 0, "autumn": 0, "day": 33, "night": 100,
        }

    def test_season_label_without_count_borrows_nothing(self):
        doc = doc_for("<div><span>winter</span><span>40</span><span>summer</span></div>")
        assert extract_season_usage(doc) == {
            "winter": 100, "spring": 0, "summer": 0, "autumn": 0, "day": 0, "night": 0,
        }

    def test_season_label_count_in_nested_cell(self):
        doc = doc_for("<div><span>spring</span><div><b>Votes</b></div><div><i>18</i></div></div>")
        assert extract_season_usage(doc)["spring"] == 100

    def test_normalize_season_votes(self):
        scores = normalize_season_votes({"winter": 1, "summer": 8})
        assert scores == {"winter": 13, "spring": 0, "summer": 100, "autumn": 0, "day": 0, "night": 0}

    @pytest.mark.parametrize("raw", [{}, {"winter": 0, "night": 0}])
    def test_normalize_season_votes_empty(self, raw):
        assert normalize_season_votes(raw) is None


class TestMediaFields:
    def test_rating_on_ten_point_scale_is_halved(self):
        doc = doc_for('<span itemprop="ratingValue">8.6</span>')
        assert extract_rating(doc) == 4.3

    def test_rating_from_content_attribute(self):
        doc = doc_for('<meta itemprop="ratingValue" content="3.96">')
        assert extract_rating(doc) == 4.0

    def test_normalize_rating(self):
        assert normalize_rating(4.25) == 4.3
        assert normalize_rating(10) == 5.0

    def test_image_from_srcset_first_candidate(self):
        doc = doc_for(
            '<picture><source type="image/webp" srcset="/img/a.webp 1x, /img/b.webp 2x"></picture>'
        )
        assert extract_image_url(doc) == f"{BASE_URL}/img/a.webp"

    def test_image_missing(self):
        assert extract_image_url(doc_for("<p>No images</p>")) is None


class TestCascadeHelpers:
    def test_raising_strategy_is_skipped(self):
        strategies = [
            Strategy("broken", lambda doc: 1 / 0),
            Strategy("empty", lambda doc: ""),
            Strategy("working", lambda doc: "value"),
        ]
        assert run_cascade("field", strategies, doc_for("")) == "value"

    def test_default_when_nothing_accepted(self):
        strategies = [Strategy("empty", lambda doc: [])]
        assert run_cascade("field", strategies, doc_for(""), default="fallback") == "fallback"

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.125, 2) == 0.13
        assert round_half_up(62.4) == 62

"""
Pytest configuration and fixtures for the scraper test suite.
"""

import pytest


PRODUCT_URL = "https://www.fragrantica.com/perfume/Dior/Sauvage-31861.html"

PRODUCT_HTML = """
<html>
<head><title>Sauvage Dior cologne - a fragrance for men 2015 | Fragrantica</title></head>
<body>
<div id="main-content">
  <h1 itemprop="name">Sauvage Dior for men</h1>
  <p itemprop="brand"><span itemprop="name">Dior</span></p>
  <img itemprop="image" src="//fimgs.net/mdimg/perfume/375x500.31861.jpg" alt="Sauvage">
  <span itemprop="ratingValue">4.12</span>

  <div itemprop="description">
    Sauvage by Dior is an Aromatic Fougere fragrance for men. This Eau de Toilette
    was launched in 2015. The nose behind this fragrance is Francois Demachy.
  </div>

  <a href="/noses/Francois_Demachy.html"><img src="/mdimg/noses/demachy.jpg">Francois Demachy</a>

  <div class="accord-bar" style="width: 80%;"><span>fresh spicy</span></div>
  <div class="accord-bar" style="width: 100%;"><span>citrus</span></div>
  <div class="accord-bar" style="width: 65.5%;"><span>amber</span></div>

  <div id="pyramid">
    <h4><b>Top Notes</b></h4>
    <div>
      <a href="/notes/Calabrian-bergamot-75.html">Calabrian bergamot</a>
      <a href="/notes/Pepper-152.html">Pepper</a>
    </div>
    <h4><b>Middle Notes</b></h4>
    <div>
      <a href="/notes/Sichuan-Pepper-1067.html">Sichuan Pepper</a>
      <a href="/notes/Lavender-2.html">Lavender</a>
    </div>
    <h4><b>Base Notes</b></h4>
    <div>
      <a href="/notes/Ambroxan-3.html">Ambroxan</a>
      <a href="/notes/Cedar-28.html">Cedar</a>
    </div>
  </div>

  <div class="cell longevity-box">
    <div class="vote-button"><span class="vote-button-name">moderate</span><span class="vote-button-count">1,204</span></div>
    <div class="vote-button"><span class="vote-button-name">long lasting</span><span class="vote-button-count">3,010</span></div>
    <div class="vote-button"><span class="vote-button-name">eternal</span><span class="vote-button-count">786</span></div>
  </div>

  <div class="cell sillage-box">
    <div class="vote-button"><span class="vote-button-name">intimate</span><span class="vote-button-count">500</span></div>
    <div class="vote-button"><span class="vote-button-name">moderate</span><span class="vote-button-count">2,500</span></div>
    <div class="vote-button"><span class="vote-button-name">strong</span><span class="vote-button-count">1,500</span></div>
    <div class="vote-button"><span class="vote-button-name">enormous</span><span class="vote-button-count">500</span></div>
  </div>

  <div class="season-votes">
    <div class="season-winter">winter 120</div>
    <div class="season-spring">spring 300</div>
    <div class="season-summer">summer 450</div>
    <div class="season-fall">fall 90</div>
    <div class="season-day">day 600</div>
    <div class="season-night">night 150</div>
  </div>
</div>
</body>
</html>
"""

BLOCK_PAGE_HTML = """
<html>
<head><title>429 Too Many Requests</title></head>
<body><h1>Too Many Requests</h1><p>Please try again later.</p></body>
</html>
"""


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def admin_user(db):
    """Create a staff user allowed through IsAdminUser."""
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(
        username="scrape-admin",
        password="test-password",
        is_staff=True,
    )


@pytest.fixture
def admin_client(api_client, admin_user):
    """API client authenticated as an admin user."""
    api_client.force_authenticate(user=admin_user)
    return api_client


@pytest.fixture
def product_html():
    return PRODUCT_HTML


@pytest.fixture
def block_page_html():
    return BLOCK_PAGE_HTML


@pytest.fixture
def make_record():
    """Factory for PerfumeRecord instances with sensible defaults."""
    from django.utils import timezone

    from scraper.types import NotesPyramid, PerformanceMetric, PerfumeRecord

    def _make(**overrides):
        now = timezone.now()
        values = {
            "name": "Sauvage",
            "brand": "Dior",
            "year": 2015,
            "gender": "masculine",
            "notes": NotesPyramid(top=["Bergamot"], heart=["Lavender"], base=["Ambroxan"]),
            "accords": ["citrus", "fresh spicy"],
            "rating": 4.1,
            "longevity": PerformanceMetric(dominant="longlasting", percentage=60, votes={"longlasting": 3}),
            "sillage": PerformanceMetric(dominant="moderate", percentage=50, votes={"moderate": 2}),
            "source_url": PRODUCT_URL,
            "scraped_at": now,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return PerfumeRecord(**values)

    return _make


@pytest.fixture(autouse=True)
def clear_scrape_cache():
    """Each test starts with an empty response cache."""
    from django.core.cache import caches

    caches["scrape"].clear()
    yield
    caches["scrape"].clear()

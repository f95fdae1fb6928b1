"""
Perfume catalog scraper Django application.

This app turns catalog pages of a third-party fragrance site into structured
perfume records: discovery, a persistent scrape queue, page fetching,
HTML extraction and idempotent catalog upserts.
"""

"""
Scraper application configuration.
"""

from django.apps import AppConfig


class ScraperConfig(AppConfig):
    """Configuration for the scraper Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "scraper"
    verbose_name = "Perfume Scraper"

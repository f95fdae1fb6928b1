"""
Test settings for the Perfume Catalog Scraper service.

Uses in-memory SQLite and eager Celery for fast test execution.
"""

from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Test Cache - use local memory cache
CACHES["default"] = {
    "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    "LOCATION": "unique-snowflake",
}

# Test Celery - run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["scraper"]["level"] = "WARNING"

# Password validators disabled for faster tests
AUTH_PASSWORD_VALIDATORS = []

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

# Disable API throttling in tests
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {"scrape": None}

# Test scraper settings - no waiting
SCRAPER_PRE_FETCH_DELAY = 0
SCRAPER_INTER_REQUEST_DELAY = 0
SCRAPER_RATE_LIMIT_SHORT_COOLDOWN = 0
SCRAPER_RATE_LIMIT_LONG_COOLDOWN = 0
SCRAPER_RENDER_TIMEOUT = 5
SCRAPER_NAVIGATION_TIMEOUT = 5

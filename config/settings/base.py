"""
Django base settings for the Perfume Catalog Scraper service.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-perfume-scraper-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "scraper",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/4.2/howto/static-files/

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Cache Configuration
# https://docs.djangoproject.com/en/4.2/topics/cache/
# "default" is configured in environment-specific settings.
# "scrape" holds fetch+extract results and is always process-local.

SCRAPER_CACHE_ALIAS = "scrape"

CACHES = {
    SCRAPER_CACHE_ALIAS: {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "perfume-scrape-results",
        "OPTIONS": {
            "MAX_ENTRIES": int(os.getenv("SCRAPER_CACHE_MAX_ENTRIES", "5000")),
        },
    },
}


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 2 * 60 * 60  # full sitemap discovery can take a while

CELERY_TASK_ROUTES = {
    "scraper.tasks.run_discovery_job": {"queue": "discovery"},
}


# Django REST Framework Configuration
# https://www.django-rest-framework.org/

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAdminUser",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_RATES": {
        "scrape": os.getenv("SCRAPER_API_THROTTLE_RATE", "5/minute"),
    },
}


# DRF Spectacular (OpenAPI/Swagger) Configuration
# https://drf-spectacular.readthedocs.io/

SPECTACULAR_SETTINGS = {
    "TITLE": "Perfume Catalog Scraper API",
    "DESCRIPTION": "Administrative scraping endpoints for the perfume catalog",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "scraper": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.2"))


def init_sentry(dsn, environment, traces_sample_rate):
    """Initialise Sentry once per settings module when a DSN is configured."""
    if not dsn:
        return

    import sentry_sdk

    sentry_sdk.init(
        dsn=dsn,
        send_default_pii=False,
        traces_sample_rate=traces_sample_rate,
        environment=environment,
    )


# Scraper Configuration

# Site the catalog is harvested from
SCRAPER_SITE_BASE_URL = os.getenv(
    "SCRAPER_SITE_BASE_URL", "https://www.fragrantica.com"
).rstrip("/")

# Fixed delay before every page fetch (seconds)
SCRAPER_PRE_FETCH_DELAY = float(os.getenv("SCRAPER_PRE_FETCH_DELAY", "3"))

# Politeness delay between queue items (seconds)
SCRAPER_INTER_REQUEST_DELAY = float(os.getenv("SCRAPER_INTER_REQUEST_DELAY", "15"))

# Backoff when the site reports rate limiting (seconds)
SCRAPER_RATE_LIMIT_SHORT_COOLDOWN = float(
    os.getenv("SCRAPER_RATE_LIMIT_SHORT_COOLDOWN", "120")
)
SCRAPER_RATE_LIMIT_LONG_COOLDOWN = float(
    os.getenv("SCRAPER_RATE_LIMIT_LONG_COOLDOWN", "300")
)
SCRAPER_RATE_LIMIT_MAX_CONSECUTIVE = int(
    os.getenv("SCRAPER_RATE_LIMIT_MAX_CONSECUTIVE", "3")
)

# Browser timeouts (seconds)
SCRAPER_RENDER_TIMEOUT = float(os.getenv("SCRAPER_RENDER_TIMEOUT", "30"))
SCRAPER_NAVIGATION_TIMEOUT = float(os.getenv("SCRAPER_NAVIGATION_TIMEOUT", "60"))

# Browser fingerprint
SCRAPER_USER_AGENT = os.getenv(
    "SCRAPER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36",
)
SCRAPER_VIEWPORT_WIDTH = int(os.getenv("SCRAPER_VIEWPORT_WIDTH", "1920"))
SCRAPER_VIEWPORT_HEIGHT = int(os.getenv("SCRAPER_VIEWPORT_HEIGHT", "1080"))

# Scrape result memoization (seconds)
SCRAPER_CACHE_TTL = int(os.getenv("SCRAPER_CACHE_TTL", "86400"))

# Recent errors kept for the queue status endpoint
SCRAPER_ERROR_BUFFER_SIZE = int(os.getenv("SCRAPER_ERROR_BUFFER_SIZE", "20"))

# Synchronous endpoint limits
SCRAPER_BATCH_MAX_URLS = int(os.getenv("SCRAPER_BATCH_MAX_URLS", "10"))
SCRAPER_RESCRAPE_MAX_IDS = int(os.getenv("SCRAPER_RESCRAPE_MAX_IDS", "100"))

"""
Scraper API URL configuration (mounted under /api/v1/scrape/).

Endpoints:
- POST       perfume/                - Scrape one URL
- POST       batch/                  - Scrape a small batch
- POST       queue/                  - Enqueue URLs
- DELETE     queue/?status=          - Clear the queue
- POST       queue/check/            - Split URLs into existing/new
- POST       queue/start/            - Start the worker
- POST       queue/stop/             - Pause the worker
- GET        queue/status/           - Queue counts and session
- POST       queue/retry-failed/     - Failed entries back to pending
- POST       discover/brand/         - Brand-page discovery job
- POST       discover/sitemap/       - Sitemap discovery job
- GET        jobs/<job_id>/          - Discovery job status
- GET        incomplete/             - Incomplete perfumes
- GET        incomplete/by-brand/    - Incomplete perfumes by brand
- POST       rescrape/               - Re-scrape by id
- POST       rescrape/queue/         - Queue incomplete perfumes
- POST       reset/                  - Wipe the catalog
- GET/DELETE cache/                  - Cache stats / flush
- GET/DELETE duplicates/             - List / delete duplicates
"""

from django.urls import path

from scraper.api import views

app_name = 'scraper_api'

urlpatterns = [
    # Synchronous scraping
    path('perfume/', views.scrape_perfume, name='scrape_perfume'),
    path('batch/', views.scrape_batch, name='scrape_batch'),

    # Queue
    path('queue/', views.queue, name='queue'),
    path('queue/check/', views.queue_check, name='queue_check'),
    path('queue/start/', views.queue_start, name='queue_start'),
    path('queue/stop/', views.queue_stop, name='queue_stop'),
    path('queue/status/', views.queue_status, name='queue_status'),
    path('queue/retry-failed/', views.queue_retry_failed, name='queue_retry_failed'),

    # Discovery
    path('discover/brand/', views.discover_brand, name='discover_brand'),
    path('discover/sitemap/', views.discover_sitemap, name='discover_sitemap'),
    path('jobs/<uuid:job_id>/', views.discovery_job_status, name='discovery_job_status'),

    # Incomplete records
    path('incomplete/', views.incomplete, name='incomplete'),
    path('incomplete/by-brand/', views.incomplete_by_brand, name='incomplete_by_brand'),
    path('rescrape/', views.rescrape, name='rescrape'),
    path('rescrape/queue/', views.rescrape_queue, name='rescrape_queue'),

    # Maintenance
    path('reset/', views.reset_catalog, name='reset_catalog'),
    path('cache/', views.cache, name='cache'),
    path('duplicates/', views.duplicates, name='duplicates'),
]

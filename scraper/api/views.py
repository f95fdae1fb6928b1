"""
Scraper administration API views.

This module provides endpoints for:
- Synchronous scraping of one URL or a small batch
- The persistent scrape queue (enqueue, start/stop, status, retry, clear)
- Brand-page and sitemap discovery jobs
- Incomplete records and re-scraping them
- Cache, duplicate and catalog maintenance

All endpoints require an admin user. Endpoints that scrape synchronously are
rate limited on top of the scraper's own delays.
"""

import asyncio
import logging
from typing import Any, Dict, List

from asgiref.sync import async_to_sync, sync_to_async
from django.conf import settings
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from scraper.api.throttling import ScrapeThrottle
from scraper.models import DiscoveryJob, DiscoveryJobKind, QueueStatus
from scraper.queue import ScrapeQueue
from scraper.queue.scrape_queue import is_valid_url
from scraper.services.catalog_store import CatalogStore
from scraper.services.discovery import DEFAULT_BRAND_LIMIT, MAX_BRANDS_PER_JOB
from scraper.services.queue_worker import get_queue_worker_controller
from scraper.services.response_cache import ResponseCache
from scraper.tasks import run_discovery_job
from scraper.types import ScrapeErrorKind

logger = logging.getLogger(__name__)

RESET_CONFIRMATION = 'CONFIRM_RESET'
RESET_STOP_TIMEOUT = 10
MAX_INCOMPLETE_LIMIT = 1000
DEFAULT_RESCRAPE_QUEUE_LIMIT = 500


def _get_orchestrator():
    """Get ScrapeOrchestrator instance (lazy import keeps Playwright out of URL loading)."""
    from scraper.services.scrape_orchestrator import ScrapeOrchestrator
    return ScrapeOrchestrator()


def _bad_request(message: str) -> Response:
    return Response({'error': message}, status=status.HTTP_400_BAD_REQUEST)


def _url_list(data, key: str = 'urls'):
    """The request's URL list, or None when missing or empty."""
    urls = data.get(key)
    if not isinstance(urls, list) or not urls:
        return None
    return urls


def _positive_int(value, default: int, maximum: int = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    return min(number, maximum) if maximum else number


def _failure_status(kind) -> int:
    if kind is ScrapeErrorKind.RATE_LIMITED:
        return status.HTTP_429_TOO_MANY_REQUESTS
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# ============================================================
# Synchronous scraping
# ============================================================

@extend_schema(
    tags=['Scrape'],
    summary='Scrape a single perfume page',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'url': {'type': 'string', 'format': 'uri'},
                'save': {'type': 'boolean', 'default': False, 'description': 'Store the record in the catalog'},
            },
            'required': ['url'],
        }
    },
    responses={
        200: {'description': 'Scraped record'},
        400: {'description': 'Missing or invalid URL'},
        429: {'description': 'Source site rate limited the scrape'},
        500: {'description': 'Scrape failed'},
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([ScrapeThrottle])
def scrape_perfume(request):
    """
    Scrape one product page synchronously.

    Request body:
    {
        "url": "https://www.fragrantica.com/perfume/Dior/Sauvage-31861.html",
        "save": true
    }
    """
    url = request.data.get('url')
    if not url:
        return _bad_request('url is required')
    if not is_valid_url(url):
        return _bad_request('Invalid URL format')

    save = bool(request.data.get('save', False))
    logger.info(f"Scrape request: {url}")

    try:
        outcome = async_to_sync(_get_orchestrator().scrape_one)(url)
        if not outcome.ok:
            return Response(
                {'success': False, 'error': outcome.error, 'kind': outcome.kind.value},
                status=_failure_status(outcome.kind),
            )

        record = outcome.record
        if save:
            record = CatalogStore().upsert(record)
            logger.info(f"Perfume saved: {record.name}")

        return Response({
            'success': True,
            'data': record.to_dict(),
            'from_cache': outcome.from_cache,
            'saved': save,
        })

    except Exception as e:
        logger.error(f"Scrape failed for {url}: {e}")
        return Response(
            {'error': f'Scrape failed: {str(e)}'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


@extend_schema(
    tags=['Scrape'],
    summary='Scrape a small batch of perfume pages',
    description='URLs are scraped one after another; at most SCRAPER_BATCH_MAX_URLS per request.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'urls': {'type': 'array', 'items': {'type': 'string', 'format': 'uri'}, 'maxItems': 10},
                'save': {'type': 'boolean', 'default': False},
            },
            'required': ['urls'],
        }
    },
    responses={200: {'description': 'Per-URL results'}, 400: {'description': 'Invalid URL list'}},
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([ScrapeThrottle])
def scrape_batch(request):
    """
    Scrape up to SCRAPER_BATCH_MAX_URLS URLs sequentially.

    A failing URL does not stop the batch; it is reported under "errors".
    """
    urls = _url_list(request.data)
    if urls is None:
        return _bad_request('urls array is required')

    max_urls = settings.SCRAPER_BATCH_MAX_URLS
    if len(urls) > max_urls:
        return _bad_request(f'Maximum {max_urls} URLs per batch')

    for url in urls:
        if not is_valid_url(url):
            return _bad_request(f'Invalid URL: {url}')

    save = bool(request.data.get('save', False))
    logger.info(f"Batch scrape: {len(urls)} URLs")

    try:
        orchestrator = _get_orchestrator()
        catalog = CatalogStore()
        results = []
        errors = []

        for url in urls:
            outcome = async_to_sync(orchestrator.scrape_one)(url)
            if not outcome.ok:
                errors.append({'url': url, 'success': False, 'error': outcome.error, 'kind': outcome.kind.value})
                continue

            record = catalog.upsert(outcome.record) if save else outcome.record
            results.append({'url': url, 'success': True, 'data': record.to_dict()})

        return Response({
            'success': True,
            'processed': len(results),
            'failed': len(errors),
            'results': results,
            'errors': errors,
        })

    except Exception as e:
        logger.error(f"Batch scrape failed: {e}")
        return Response(
            {'error': f'Batch scrape failed: {str(e)}'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


# ============================================================
# Scrape queue
# ============================================================

@extend_schema(
    tags=['Queue'],
    summary='Enqueue URLs or clear the queue',
    description='''
    POST adds URLs as pending entries; URLs already queued or already in the
    catalog are skipped.

    DELETE removes entries, all of them or only those with ?status=.
    Pending entries cannot be cleared while the worker is running.
    ''',
    parameters=[
        OpenApiParameter(
            name='status',
            type=str,
            location=OpenApiParameter.QUERY,
            required=False,
            enum=QueueStatus.values,
            description='DELETE only: clear just this status',
        ),
    ],
    responses={200: {'description': 'Counts'}, 400: {'description': 'Invalid input'}, 409: {'description': 'Worker running'}},
)
@api_view(['POST', 'DELETE'])
@permission_classes([IsAdminUser])
def queue(request):
    if request.method == 'DELETE':
        return _clear_queue(request)

    urls = _url_list(request.data)
    if urls is None:
        return _bad_request('urls array is required')

    scrape_queue = ScrapeQueue()
    valid = list(dict.fromkeys(url for url in urls if is_valid_url(url)))
    added = scrape_queue.enqueue(valid)

    logger.info(f"Added {added} URLs to queue ({len(valid) - added} already in queue/catalog)")
    return Response({
        'success': True,
        'added': added,
        'skipped': len(valid) - added,
        'invalid': len(urls) - len(valid),
        'queue_size': scrape_queue.pending_count(),
    })


def _clear_queue(request):
    queue_status = request.query_params.get('status') or None
    if queue_status and queue_status not in QueueStatus.values:
        return _bad_request(f'Invalid status. Valid statuses: {", ".join(QueueStatus.values)}')

    controller = get_queue_worker_controller()
    if controller.is_running and queue_status in (None, QueueStatus.PENDING):
        return Response(
            {'success': False, 'message': 'Stop the queue before clearing pending items'},
            status=status.HTTP_409_CONFLICT,
        )

    deleted = ScrapeQueue().clear(queue_status)
    return Response({
        'success': True,
        'deleted': deleted,
        'message': f'Cleared {deleted} queue entries',
    })


@extend_schema(
    tags=['Queue'],
    summary='Split URLs into already-scraped and new',
    responses={200: {'description': 'existing and new URL lists'}, 400: {'description': 'Invalid URL list'}},
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def queue_check(request):
    urls = _url_list(request.data)
    if urls is None:
        return _bad_request('urls array is required')

    split = ScrapeQueue().check_urls(urls)
    return Response({
        'success': True,
        'total': len(split['existing']) + len(split['new']),
        'existing_count': len(split['existing']),
        'new_count': len(split['new']),
        'existing': split['existing'],
        'new': split['new'],
    })


@extend_schema(tags=['Queue'], summary='Start or resume the queue worker')
@api_view(['POST'])
@permission_classes([IsAdminUser])
def queue_start(request):
    """Entries stuck in processing from a previous run are reset first."""
    result = get_queue_worker_controller().start()
    return Response({'success': result.pop('started'), **result})


@extend_schema(tags=['Queue'], summary='Pause the queue worker after the URL in flight')
@api_view(['POST'])
@permission_classes([IsAdminUser])
def queue_stop(request):
    result = get_queue_worker_controller().stop()
    return Response({
        'success': True,
        'message': result['message'],
        'processed_this_session': result['processed_this_session'],
        'remaining': ScrapeQueue().pending_count(),
    })


@extend_schema(
    tags=['Queue'],
    summary='Queue counts and worker session',
    responses={
        200: {
            'description': 'Queue status',
            'content': {
                'application/json': {
                    'example': {
                        'success': True,
                        'processing': True,
                        'current': 'https://www.fragrantica.com/perfume/Dior/Sauvage-31861.html',
                        'queue': {'pending': 12, 'processing': 1, 'done': 40, 'failed': 2, 'total': 55},
                        'remaining': 13,
                        'processed_this_session': 5,
                        'failed_this_session': 1,
                        'errors': [],
                    }
                }
            }
        },
    },
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def queue_status(request):
    data = get_queue_worker_controller().status()
    counts = data['queue']
    return Response({
        'success': True,
        'remaining': counts[QueueStatus.PENDING] + counts[QueueStatus.PROCESSING],
        **data,
    })


@extend_schema(tags=['Queue'], summary='Move failed entries back to pending')
@api_view(['POST'])
@permission_classes([IsAdminUser])
def queue_retry_failed(request):
    count = ScrapeQueue().retry_failed()
    return Response({'success': True, 'retried': count})


# ============================================================
# Discovery
# ============================================================

def _dispatch_discovery(kind: str, params: Dict[str, Any]) -> Response:
    job = DiscoveryJob.objects.create(kind=kind, params=params)
    if params.get('auto_start'):
        # The worker must start under this process's controller
        get_queue_worker_controller().run_discovery(str(job.id))
    else:
        run_discovery_job.delay(str(job.id))
    logger.info(f"Dispatched discovery job {job.id} ({kind})")

    return Response({
        'success': True,
        'job_id': str(job.id),
        'kind': kind,
        'status': job.status,
        'status_url': f'/api/v1/scrape/jobs/{job.id}/',
    }, status=status.HTTP_202_ACCEPTED)


@extend_schema(
    tags=['Discovery'],
    summary='Discover perfumes from brand pages',
    description='Runs in the background; poll the returned status_url.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'brands': {'type': 'array', 'items': {'type': 'string'}, 'maxItems': MAX_BRANDS_PER_JOB},
                'limit': {'type': 'integer', 'default': DEFAULT_BRAND_LIMIT, 'description': 'URLs per brand'},
                'auto_start': {'type': 'boolean', 'default': False},
            },
            'required': ['brands'],
        }
    },
    responses={202: {'description': 'Job created'}, 400: {'description': 'Invalid brands'}},
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def discover_brand(request):
    brands = request.data.get('brands')
    if isinstance(brands, str):
        brands = [brands]
    if not isinstance(brands, list):
        brands = []
    brands = [b.strip() for b in brands if isinstance(b, str) and b.strip()]

    if not brands:
        return _bad_request('brands array is required')
    if len(brands) > MAX_BRANDS_PER_JOB:
        return _bad_request(f'Maximum {MAX_BRANDS_PER_JOB} brands per request')

    return _dispatch_discovery(DiscoveryJobKind.BRAND, {
        'brands': brands,
        'limit': _positive_int(request.data.get('limit'), DEFAULT_BRAND_LIMIT),
        'auto_start': bool(request.data.get('auto_start', False)),
    })


@extend_schema(
    tags=['Discovery'],
    summary='Discover every perfume from the site sitemaps',
    description='Runs in the background; poll the returned status_url.',
    responses={202: {'description': 'Job created'}},
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def discover_sitemap(request):
    return _dispatch_discovery(DiscoveryJobKind.SITEMAP, {
        'auto_start': bool(request.data.get('auto_start', False)),
    })


@extend_schema(
    tags=['Discovery'],
    summary='Get discovery job status',
    responses={200: {'description': 'Job status'}, 404: {'description': 'Job not found'}},
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def discovery_job_status(request, job_id):
    try:
        job = DiscoveryJob.objects.get(id=job_id)
    except DiscoveryJob.DoesNotExist:
        return Response(
            {'error': 'Job not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    return Response(job.to_dict())


# ============================================================
# Incomplete records and re-scraping
# ============================================================

@extend_schema(
    tags=['Rescrape'],
    summary='List perfumes missing notes, accords or performance data',
    parameters=[
        OpenApiParameter(name='limit', type=int, location=OpenApiParameter.QUERY, required=False,
                         description=f'Default 100, at most {MAX_INCOMPLETE_LIMIT}'),
    ],
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def incomplete(request):
    limit = _positive_int(request.query_params.get('limit'), 100, MAX_INCOMPLETE_LIMIT)
    catalog = CatalogStore()

    perfumes = [
        {
            'id': record.id,
            'name': record.name,
            'brand': record.brand,
            'source_url': record.source_url,
            'has_sillage': record.sillage is not None,
            'has_longevity': record.longevity is not None,
            'has_notes': not record.notes.is_empty(),
            'has_accords': bool(record.accords),
        }
        for record in catalog.get_incomplete(limit)
    ]
    return Response({'success': True, 'count': catalog.count_incomplete(), 'perfumes': perfumes})


@extend_schema(tags=['Rescrape'], summary='Incomplete perfumes grouped by brand')
@api_view(['GET'])
@permission_classes([IsAdminUser])
def incomplete_by_brand(request):
    brands = CatalogStore().incomplete_by_brand()
    return Response({
        'success': True,
        'brands': brands,
        'total': sum(group['count'] for group in brands),
    })


async def _rescrape_ids(ids: List[str]) -> Dict[str, list]:
    orchestrator = _get_orchestrator()
    catalog = CatalogStore()
    delay = settings.SCRAPER_INTER_REQUEST_DELAY
    results = []
    errors = []

    for position, perfume_id in enumerate(ids):
        existing = await sync_to_async(catalog.get_by_id)(perfume_id)
        if existing is None or not existing.source_url:
            errors.append({'id': perfume_id, 'error': 'No source URL found'})
            continue

        if position and delay:
            await asyncio.sleep(delay)

        outcome = await orchestrator.scrape_one(existing.source_url, use_cache=False)
        if outcome.ok:
            stored = await sync_to_async(catalog.upsert)(outcome.record)
            results.append({'id': stored.id, 'name': stored.name, 'success': True})
        else:
            errors.append({'id': perfume_id, 'error': outcome.error, 'kind': outcome.kind.value})

    return {'results': results, 'errors': errors}


@extend_schema(
    tags=['Rescrape'],
    summary='Re-scrape perfumes by id',
    description='Synchronous; records are updated in place. Waits the inter-request delay between pages.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'ids': {'type': 'array', 'items': {'type': 'string', 'format': 'uuid'}, 'maxItems': 100}},
            'required': ['ids'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
@throttle_classes([ScrapeThrottle])
def rescrape(request):
    ids = request.data.get('ids')
    if not isinstance(ids, list) or not ids:
        return _bad_request('ids array is required')

    max_ids = settings.SCRAPER_RESCRAPE_MAX_IDS
    if len(ids) > max_ids:
        return _bad_request(f'Maximum {max_ids} IDs per request')

    try:
        outcome = async_to_sync(_rescrape_ids)([str(i) for i in ids])
    except Exception as e:
        logger.error(f"Rescrape failed: {e}")
        return Response(
            {'error': f'Rescrape failed: {str(e)}'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response({
        'success': True,
        'processed': len(outcome['results']),
        'failed': len(outcome['errors']),
        **outcome,
    })


@extend_schema(
    tags=['Rescrape'],
    summary='Queue incomplete perfumes for re-scraping',
    description='''
    Queues incomplete perfumes (all, or one brand's) as forced re-scrapes and
    starts the worker.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'brand': {'type': 'string'},
                'limit': {'type': 'integer', 'default': DEFAULT_RESCRAPE_QUEUE_LIMIT},
            },
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def rescrape_queue(request):
    brand = request.data.get('brand')
    if brand is not None and (not isinstance(brand, str) or not brand.strip()):
        return _bad_request('brand must be a non-empty string')

    catalog = CatalogStore()
    if brand:
        brand = brand.strip()
        urls = [
            url
            for group in catalog.incomplete_by_brand()
            if group['brand'] == brand
            for url in group['urls']
        ]
    else:
        limit = _positive_int(request.data.get('limit'), DEFAULT_RESCRAPE_QUEUE_LIMIT)
        urls = [record.source_url for record in catalog.get_incomplete(limit) if record.source_url]

    scrape_queue = ScrapeQueue(catalog=catalog)
    if not urls:
        return Response({
            'success': True,
            'added': 0,
            'queue_size': scrape_queue.pending_count(),
            'message': 'No incomplete perfumes found',
        })

    added = scrape_queue.requeue(urls)
    worker = get_queue_worker_controller().start()

    return Response({
        'success': True,
        'added': added,
        'queue_size': scrape_queue.pending_count(),
        'auto_started': worker['started'],
    })


# ============================================================
# Maintenance
# ============================================================

@extend_schema(
    tags=['Maintenance'],
    summary='Delete every perfume, brand and queue entry',
    request={
        'application/json': {
            'type': 'object',
            'properties': {'confirm': {'type': 'string', 'enum': [RESET_CONFIRMATION]}},
            'required': ['confirm'],
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def reset_catalog(request):
    if request.data.get('confirm') != RESET_CONFIRMATION:
        return _bad_request(f'Send {{"confirm": "{RESET_CONFIRMATION}"}} to proceed')

    controller = get_queue_worker_controller()
    controller.stop()
    controller.join(timeout=RESET_STOP_TIMEOUT)
    if controller.is_running:
        return Response(
            {'success': False, 'message': 'Queue is still finishing a scrape; retry the reset shortly'},
            status=status.HTTP_409_CONFLICT,
        )

    queue_deleted = ScrapeQueue().clear()
    deleted = CatalogStore().clear()

    logger.warning(f"Reset: deleted {deleted['perfumes']} perfumes, {deleted['brands']} brands")
    return Response({
        'success': True,
        'deleted': {**deleted, 'queue_entries': queue_deleted},
        'message': 'All perfumes and brands have been deleted. Ready for fresh scraping.',
    })


@extend_schema(tags=['Maintenance'], summary='Response cache statistics, or flush it')
@api_view(['GET', 'DELETE'])
@permission_classes([IsAdminUser])
def cache(request):
    response_cache = ResponseCache()
    if request.method == 'DELETE':
        removed = response_cache.flush()
        return Response({'success': True, 'removed': removed, 'message': 'Cache flushed'})
    return Response({'success': True, 'data': response_cache.stats()})


@extend_schema(tags=['Maintenance'], summary='List duplicate perfumes, or delete all but the best of each')
@api_view(['GET', 'DELETE'])
@permission_classes([IsAdminUser])
def duplicates(request):
    catalog = CatalogStore()
    if request.method == 'DELETE':
        count = catalog.delete_duplicates()
        return Response({
            'success': True,
            'deleted': count,
            'message': f'Deleted {count} duplicate perfume(s)',
        })

    groups = catalog.find_duplicates()
    return Response({'success': True, 'count': len(groups), 'data': groups})

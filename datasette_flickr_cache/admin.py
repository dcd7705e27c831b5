import logging
from .discovery import canonicalize
from .urls import job_for_resource, parse_resource_url
from .warmer import DONE, RATE_LIMITED, warm_job

logger = logging.getLogger(__name__)

MANUAL_PRIORITY = 100

def rebuild_known_resources(services):
    """Rescan every document, then reseed the queue. Returns the number of known URLs."""
    registry = services.discovery.rebuild_registry()
    return len({url for urls in registry.values() for url in urls})

def enqueue_resource(services, url):
    url = canonicalize(services.config, None, url)
    resource = parse_resource_url(url)
    if not resource:
        return False

    job = job_for_resource(resource)
    services.queue.upsert(job._replace(priority=MANUAL_PRIORITY))
    services.state.schedule_next(0)
    return True

def reset_queue_to_bulk_mode(services):
    """Keep only album/photostream jobs; their pages harvest item data in bulk."""
    return services.discovery.reseed_queue(collections_only=True)

def clear_cache(services):
    version = services.cache.clear_all()
    rebuild_known_resources(services)
    services.state.clear_pause()
    services.state.schedule_next(0)
    return version

def request_warm(services, urls=()):
    """Queue the given URLs at manual priority and wake the warmer.

    Only touches the database; the warmer process does the fetching."""
    enqueued = 0
    invalid = 0

    for url in urls:
        resource = parse_resource_url(canonicalize(services.config, None, url))
        if not resource:
            invalid += 1
            continue

        services.queue.upsert(job_for_resource(resource)._replace(priority=MANUAL_PRIORITY))
        enqueued += 1

    services.state.clear_pause()
    services.state.schedule_next(0)
    logger.info('warm requested: enqueued=%s invalid=%s', enqueued, invalid)
    return {'enqueued': enqueued, 'invalid': invalid}

def warm_batch(services, urls):
    """Warm a list of URLs right now, stopping at the first rate limit."""
    calls_before = services.fetcher.api_calls
    processed = 0
    failed = 0
    rate_limited = False

    for url in urls:
        resource = parse_resource_url(url)
        if not resource:
            failed += 1
            continue

        outcome = warm_job(services, job_for_resource(resource))
        if outcome.status == RATE_LIMITED:
            rate_limited = True
            break

        if outcome.status == DONE:
            processed += 1
        else:
            failed += 1

    rv = {
        'processed': processed,
        'failed': failed,
        'total': len(urls),
        'rate_limited': rate_limited,
        'api_calls': services.fetcher.api_calls - calls_before,
    }
    logger.info('warm_batch: %s', rv)
    return rv

def warmer_status(services):
    return {
        'queue': services.queue.counts(),
        'api_calls_this_hour': services.quota.current_count(),
        'hourly_cap': services.settings.hourly_cap,
        'next_run_at': services.state.next_run_at(),
        'pause_until': services.state.pause_until(),
        'last_run': services.state.last_run(),
        'cache_version': services.cache.version,
    }

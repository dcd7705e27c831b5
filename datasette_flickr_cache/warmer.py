import logging
from collections import namedtuple
from .errors import FlickrCacheError
from .sizes import COMPREHENSIVE_SIZES

logger = logging.getLogger(__name__)

DONE = 'done'
PARTIAL = 'partial'
RATE_LIMITED = 'rate_limited'
FAILED = 'failed'

WarmOutcome = namedtuple('WarmOutcome', ['status', 'error'], defaults=(None,))

CycleResult = namedtuple('CycleResult', ['processed', 'failed', 'rate_limited', 'skipped', 'last_error'], defaults=(0, 0, False, False, None))

def warm_photo(services, photo_id):
    fetcher = services.fetcher
    calls_before = fetcher.api_calls

    sizes = fetcher.get_photo_sizes(photo_id, COMPREHENSIVE_SIZES, needs_metadata=True)
    if sizes.rate_limited:
        return WarmOutcome(RATE_LIMITED)

    stats = fetcher.get_photo_stats(photo_id)
    if stats.rate_limited:
        return WarmOutcome(RATE_LIMITED)

    if fetcher.api_calls > calls_before and services.settings.sleep_seconds:
        services.sleep(services.settings.sleep_seconds)

    if sizes.not_found and stats.not_found:
        return WarmOutcome(FAILED, 'photo {} not found'.format(photo_id))

    return WarmOutcome(DONE)

def warm_collection(result):
    if result.rate_limited:
        return WarmOutcome(RATE_LIMITED)

    if result.not_found:
        return WarmOutcome(FAILED, 'collection not found')

    if result.error:
        return WarmOutcome(FAILED, result.error)

    if result.partial:
        return WarmOutcome(PARTIAL)

    return WarmOutcome(DONE)

def warm_job(services, job):
    payload = job.payload or {}

    if job.job_type == 'photo':
        return warm_photo(services, payload['photo_id'])

    if job.job_type == 'album':
        return warm_collection(services.aggregator.fetch_album(payload['owner'], payload['set_id']))

    if job.job_type == 'photostream':
        return warm_collection(services.aggregator.fetch_photostream(payload['owner']))

    raise FlickrCacheError('unknown job type: {}'.format(job.job_type))

def run_cycle(services, process_all=False, max_seconds=None, bypass_pause=False):
    """Drain due jobs within the item budget (and optional time budget).

    Stops at the first rate-limited job, pauses the warmer and schedules the
    next run for when the pause ends."""
    settings = services.settings
    state = services.state
    queue = services.queue

    services.cache.reset_memo()

    if not settings.enabled:
        state.reschedule(settings.run_delay)
        return CycleResult(skipped=True)

    if not bypass_pause and state.is_paused():
        until = state.pause_until()
        logger.info('warmer paused until %s', until)
        state.reschedule(until - services.clock())
        return CycleResult(skipped=True)

    if not queue.pending_count():
        services.discovery.reseed_queue()

    jobs = queue.dequeue_due(None if process_all else settings.batch_size)

    start = services.clock()
    processed = 0
    failed = 0
    rate_limited = False
    last_error = None

    for job in jobs:
        if max_seconds is not None and services.clock() - start >= max_seconds:
            break

        try:
            outcome = warm_job(services, job)
        except FlickrCacheError:
            raise
        except Exception as e:
            logger.exception('warming %s failed', job.job_key)
            outcome = WarmOutcome(FAILED, repr(e))

        processed += 1

        if outcome.status == RATE_LIMITED:
            rate_limited = True
            queue.defer(job.job_key, services.clock() + settings.rate_limit_pause, 'rate_limited')
            break

        if outcome.status == DONE:
            queue.mark_result(job.job_key, True)
        elif outcome.status == PARTIAL:
            queue.defer(job.job_key, None)
        else:
            failed += 1
            last_error = outcome.error
            queue.mark_result(job.job_key, False, outcome.error)

    if rate_limited:
        state.pause(settings.rate_limit_pause)
        state.reschedule(settings.rate_limit_pause)
        last_error = 'rate_limited'
    else:
        if state.pause_until() is not None:
            state.clear_pause()
        state.reschedule(settings.run_delay, settings.jitter_fraction)

    state.record_run(processed, rate_limited, last_error)
    services.cache.purge_expired()

    logger.info('warmer cycle: processed=%s failed=%s rate_limited=%s quota=%s/%s', processed, failed, rate_limited, services.quota.current_count(), settings.hourly_cap)
    return CycleResult(processed, failed, rate_limited, False, last_error)

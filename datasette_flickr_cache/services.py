import random
import time
from collections import namedtuple
from .aggregator import CollectionAggregator
from .cache import ResourceCache
from .config import Settings
from .discovery import ResourceDiscovery
from .fetcher import MetadataFetcher
from .jobs import JobQueue
from .quota import QuotaTracker
from .scheduler import WarmerState

Services = namedtuple('Services', ['settings', 'config', 'cache', 'quota', 'fetcher', 'queue', 'aggregator', 'discovery', 'state', 'clock', 'sleep'])

def build_services(conn, config, client=None, factory=None, clock=time.time, sleep=time.sleep, rng=random.random):
    """Wire up every service for one database connection and plugin config."""
    config = config or {}
    settings = Settings.from_config(config)

    cache = ResourceCache(conn, namespace=settings.namespace, default_ttl=settings.cache_duration, clock=clock)
    quota = QuotaTracker(conn, hourly_cap=settings.hourly_cap, clock=clock)
    fetcher = MetadataFetcher(cache, quota, settings, client=client, clock=clock, sleep=sleep)
    queue = JobQueue(conn, retry_backoff_step=settings.retry_backoff_step, retry_backoff_cap=settings.retry_backoff_cap, clock=clock)

    return Services(
        settings=settings,
        config=config,
        cache=cache,
        quota=quota,
        fetcher=fetcher,
        queue=queue,
        aggregator=CollectionAggregator(fetcher, cache, settings, clock=clock),
        discovery=ResourceDiscovery(conn, queue, config, factory=factory),
        state=WarmerState(conn, clock=clock, rng=rng),
        clock=clock,
        sleep=sleep,
    )

import logging
from collections import namedtuple
from .schema import current_schema_version, schema
from .errors import FlickrCacheError

logger = logging.getLogger(__name__)

_plugin_name = 'datasette-flickr-cache'

_enabled_databases = None

HOUR = 3600
DAY = 24 * HOUR

FAST_DELAY = 60
SLOW_DELAY = 300

FAST_RETRY_STEP = 5 * 60
SLOW_RETRY_STEP = 15 * 60
RETRY_BACKOFF_CAP = 6 * HOUR

def enabled_databases(datasette, empty_if_not_initialized=False):
    global _enabled_databases

    if not _enabled_databases is None:
        return _enabled_databases

    if empty_if_not_initialized:
        return []

    rv = []

    for db_name in datasette.databases:
        local_config = datasette.plugin_config(_plugin_name, db_name)

        if local_config is None:
            continue

        rv.append(db_name)

    _enabled_databases = rv
    return _enabled_databases

def plugin_config(datasette, db_name):
    return datasette.plugin_config(_plugin_name, db_name) or {}

async def get_db_version(db):
    results = await db.execute('pragma user_version')
    for row in results:
        return row['user_version']

def ensure_wal_mode(conn):
    old_level = conn.isolation_level
    try:
        conn.isolation_level = None
        mode, = conn.execute('PRAGMA journal_mode=WAL').fetchone()
        if mode != 'wal':
            raise FlickrCacheError('unable to set PRAGMA journal_mode=WAL on connection, got {}'.format(mode))
    finally:
        conn.isolation_level = old_level

def install_schema(conn, name='main'):
    ensure_wal_mode(conn)

    v, = conn.execute("PRAGMA user_version").fetchone()

    if not v:
        logger.info('Installing datasette-flickr-cache schema into db %s', name)
        conn.executescript(schema)
    elif v == current_schema_version:
        pass
    else:
        raise FlickrCacheError('unsupported schema version in db {}: {} -- you may need to give datasette-flickr-cache its own database'.format(name, v))

async def ensure_schema(db):
    def ensure_schema_internal(conn):
        install_schema(conn, db.name)

    await db.execute_write_fn(ensure_schema_internal, block=True)
    version = await get_db_version(db)

    if version != current_schema_version:
        raise FlickrCacheError('unable to ensure schema in database {} (version={}; desired={}); please check that the database is mutable and not the _memory database'.format(db.name, version, current_schema_version))

def clamp(value, lo, hi=None):
    if value < lo:
        return lo
    if hi is not None and value > hi:
        return hi
    return value

_Settings = namedtuple(
    '_Settings',
    [
        'api_key',
        'api_url',
        'namespace',
        'cache_duration',
        'not_found_ttl',
        'hourly_cap',
        'request_timeout',
        'max_retries',
        'retry_delay',
        'failure_backoff',
        'rate_limit_backoff',
        'partial_ttl',
        'page_size',
        'batch_size',
        'max_seconds',
        'sleep_seconds',
        'enabled',
        'slow_mode',
        'rate_limit_pause',
        'jitter_fraction',
    ],
    defaults=(
        '',
        'https://api.flickr.com/services/rest/',
        'flickr',
        168 * HOUR,
        None,
        3550,
        30.0,
        2,
        2.0,
        300,
        600,
        HOUR,
        500,
        5,
        20.0,
        1.0,
        True,
        True,
        HOUR,
        0.1,
    )
)

class Settings(_Settings):
    """Operator settings, parsed from the datasette-flickr-cache plugin config.

    Config keys are the field names with dashes instead of underscores,
    eg `cache-duration` or `hourly-cap`. Durations are in seconds."""
    __slots__ = ()

    @classmethod
    def from_config(cls, config):
        config = config or {}
        values = {}
        for field in cls._fields:
            key = field.replace('_', '-')
            if key in config and config[key] is not None:
                values[field] = config[key]

        rv = cls(**values)

        cache_duration = clamp(int(rv.cache_duration), HOUR, 90 * DAY)
        not_found_ttl = cache_duration
        if rv.not_found_ttl is not None:
            not_found_ttl = clamp(int(rv.not_found_ttl), 60, cache_duration)

        return rv._replace(
            api_key=str(rv.api_key or '').strip(),
            cache_duration=cache_duration,
            not_found_ttl=not_found_ttl,
            hourly_cap=clamp(int(rv.hourly_cap), 100, 3600),
            request_timeout=clamp(float(rv.request_timeout), 1.0, 120.0),
            max_retries=clamp(int(rv.max_retries), 0, 5),
            retry_delay=clamp(float(rv.retry_delay), 0.0),
            failure_backoff=clamp(int(rv.failure_backoff), 0),
            rate_limit_backoff=clamp(int(rv.rate_limit_backoff), 0),
            partial_ttl=clamp(int(rv.partial_ttl), 60, cache_duration),
            page_size=clamp(int(rv.page_size), 1, 500),
            batch_size=clamp(int(rv.batch_size), 1, 25),
            max_seconds=clamp(float(rv.max_seconds), 5.0),
            sleep_seconds=clamp(float(rv.sleep_seconds), 0.0, 2.0),
            enabled=bool(rv.enabled),
            slow_mode=bool(rv.slow_mode),
            rate_limit_pause=clamp(int(rv.rate_limit_pause), 60),
            jitter_fraction=clamp(float(rv.jitter_fraction), 0.0, 0.5),
        )

    @property
    def run_delay(self):
        return SLOW_DELAY if self.slow_mode else FAST_DELAY

    @property
    def retry_backoff_step(self):
        return SLOW_RETRY_STEP if self.slow_mode else FAST_RETRY_STEP

    @property
    def retry_backoff_cap(self):
        return RETRY_BACKOFF_CAP

    @property
    def page_ttl(self):
        # Pages churn faster than photos
        return max(HOUR, self.cache_duration // 4)

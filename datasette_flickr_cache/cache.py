import logging
import time
from . import results
from .compression import pack, unpack

logger = logging.getLogger(__name__)

CACHE_VERSION = 'cache_version'

_MISS = object()

def get_cache_version(conn):
    row = conn.execute('SELECT value FROM dfc_setting WHERE name = ?', [CACHE_VERSION]).fetchone()
    if not row:
        return 1

    return int(row[0])

class ResourceCache:
    """Namespaced, versioned key/value cache backed by dfc_cache.

    Keys are built from a semantic path such as ('dims', photo_id, hash);
    the namespace and the current global version are added here. Values are
    JSON, stored zstd-compressed. A per-process memo sits in front of the
    table, so one execution context never reads the same key twice."""

    def __init__(self, conn, namespace='flickr', default_ttl=7 * 24 * 3600, clock=time.time):
        self.conn = conn
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.clock = clock
        self.memo = {}
        self.version = get_cache_version(conn)

    def reset_memo(self):
        self.memo = {}
        self.version = get_cache_version(self.conn)

    def make_key(self, parts):
        if isinstance(parts, str):
            parts = (parts,)

        return '{}:{}:v{}'.format(self.namespace, ':'.join(str(p) for p in parts), self.version)

    def get(self, parts):
        key = self.make_key(parts)
        now = self.clock()

        if key in self.memo:
            value, expires_at = self.memo[key]
            if value is _MISS or expires_at > now:
                return None if value is _MISS else value
            del self.memo[key]

        row = self.conn.execute('SELECT value, expires_at FROM dfc_cache WHERE key = ?', [key]).fetchone()

        if not row or row[1] <= now:
            self.memo[key] = (_MISS, None)
            return None

        value = unpack(row[0])
        self.memo[key] = (value, row[1])
        return value

    def set(self, parts, value, ttl=None):
        if ttl is None:
            ttl = self.default_ttl

        key = self.make_key(parts)
        now = self.clock()
        expires_at = now + ttl

        with self.conn:
            self.conn.execute(
                'INSERT INTO dfc_cache(key, value, expires_at, created_at) VALUES (?, ?, ?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at, created_at = excluded.created_at',
                [key, pack(value), expires_at, now]
            )

        self.memo[key] = (value, expires_at)

    def delete(self, parts):
        key = self.make_key(parts)
        with self.conn:
            self.conn.execute('DELETE FROM dfc_cache WHERE key = ?', [key])

        self.memo[key] = (_MISS, None)

    def get_result(self, parts):
        """Returns Found, NOT_FOUND, or None if nothing usable is cached."""
        return results.decode(self.get(parts))

    def set_result(self, parts, result, ttl=None):
        self.set(parts, results.encode(result), ttl)

    def clear_all(self, purge=True):
        """Invalidate every entry by bumping the global version."""
        old_version = get_cache_version(self.conn)
        new_version = old_version + 1

        with self.conn:
            self.conn.execute(
                'INSERT INTO dfc_setting(name, value) VALUES (?, ?) ON CONFLICT(name) DO UPDATE SET value = excluded.value',
                [CACHE_VERSION, str(new_version)]
            )

        self.memo = {}
        self.version = new_version
        logger.info('cache version bumped to %s (namespace=%s)', new_version, self.namespace)

        if purge:
            # Old-version rows are unreachable already; removing them is housekeeping.
            with self.conn:
                rv = self.conn.execute(
                    "DELETE FROM dfc_cache WHERE key LIKE ? AND key NOT LIKE ?",
                    ['{}:%'.format(self.namespace), '%:v{}'.format(new_version)]
                )
                logger.info('purged %s stale cache rows', rv.rowcount)

        return new_version

    def purge_expired(self):
        with self.conn:
            rv = self.conn.execute('DELETE FROM dfc_cache WHERE expires_at <= ?', [self.clock()])
            return rv.rowcount

import logging
import time
from collections import namedtuple
from contextlib import contextmanager
from urllib.parse import unquote
import httpx
from .results import Found, NOT_FOUND, RATE_LIMITED
from .sizes import (
    COMPREHENSIVE_SIZES_HASH,
    PAGE_EXTRAS,
    build_static_sizes,
    map_sizes,
    normalize_rotation,
    sizes_from_page_item,
    sizes_hash,
)
from .urls import is_nsid, photo_page_url
from .utils import stable_hash

logger = logging.getLogger(__name__)

USER_AGENT = 'datasette-flickr-cache'

OK = 'ok'
FAIL = 'fail'
MALFORMED = 'malformed'
QUOTA = 'quota'
RATE_LIMITED_STATUS = 'rate_limited'
SERVER_ERROR = 'server_error'
TRANSPORT_ERROR = 'transport_error'
NO_API_KEY = 'no_api_key'

ApiOutcome = namedtuple('ApiOutcome', ['kind', 'data', 'status_code'])

def default_client(settings):
    timeout = httpx.Timeout(5.0, read=settings.request_timeout)
    return httpx.Client(timeout=timeout, headers={'user-agent': USER_AGENT})

def _int(value):
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0

def _content(value):
    if isinstance(value, dict):
        return value.get('_content') or ''

    return value or ''

def _format_date(ts):
    ts = _int(ts)
    if ts <= 0:
        return ''

    return time.strftime('%Y-%m-%d', time.gmtime(ts))

def stats_from_info(info):
    return {
        'views': max(0, _int(info.get('views'))),
        'comments': max(0, _int(_content(info.get('comments')))),
        'favorites': max(0, _int(info.get('count_faves') or _content(info.get('favorites')))),
        'date': _format_date((info.get('dates') or {}).get('lastupdate')),
    }

class MetadataFetcher:
    """Quota-aware Flickr API client that reads and writes through the cache.

    Every public method returns Found(payload), NOT_FOUND or RATE_LIMITED.
    Definitive failures are negative-cached; rate limits never are."""

    def __init__(self, cache, quota, settings, client=None, clock=time.time, sleep=time.sleep):
        self.cache = cache
        self.quota = quota
        self.settings = settings
        self.client = client or default_client(settings)
        self.clock = clock
        self.sleep = sleep
        self.api_calls = 0
        self._fetch_budget = None

    @contextmanager
    def fetch_budget(self, calls):
        """Allow at most `calls` API requests inside the block; further lookups come back RATE_LIMITED."""
        previous = self._fetch_budget
        self._fetch_budget = calls
        try:
            yield
        finally:
            self._fetch_budget = previous

    def _call_api(self, method, params):
        if not self.settings.api_key:
            logger.warning('no Flickr API key configured, skipping %s', method)
            return ApiOutcome(NO_API_KEY, None, None)

        if self._fetch_budget is not None:
            if self._fetch_budget <= 0:
                logger.debug('%s: direct fetch budget spent, deferring', method)
                return ApiOutcome(QUOTA, None, None)

            self._fetch_budget -= 1

        query = dict(params)
        query.update({
            'method': method,
            'api_key': self.settings.api_key,
            'format': 'json',
            'nojsoncallback': 1,
        })

        response = None
        error = None
        attempts = 0
        blocked = False
        for attempt in range(self.settings.max_retries + 1):
            if not self.quota.can_make_call():
                if attempts:
                    logger.warning('%s: hourly cap reached before retry %s', method, attempt)
                blocked = True
                break

            attempts += 1
            try:
                response = self.client.get(self.settings.api_url, params=query)
                error = None
            except httpx.HTTPError as e:
                response = None
                error = e

            self.quota.increment()
            self.api_calls += 1

            if response is not None and response.status_code < 500:
                break

            if attempt < self.settings.max_retries:
                self.sleep(self.settings.retry_delay)

        if not attempts or blocked:
            return ApiOutcome(QUOTA, None, None)

        if response is None:
            logger.warning('%s failed after %s attempts: %r', method, attempts, error)
            return ApiOutcome(TRANSPORT_ERROR, None, None)

        status_code = response.status_code
        if status_code == 429:
            logger.warning('%s rate limited by Flickr (HTTP 429)', method)
            return ApiOutcome(RATE_LIMITED_STATUS, None, status_code)

        if status_code >= 500:
            logger.warning('%s got HTTP %s', method, status_code)
            return ApiOutcome(SERVER_ERROR, None, status_code)

        if status_code < 200 or status_code >= 300:
            return ApiOutcome(FAIL, None, status_code)

        try:
            data = response.json()
        except ValueError:
            return ApiOutcome(MALFORMED, None, status_code)

        if not isinstance(data, dict):
            return ApiOutcome(MALFORMED, None, status_code)

        if data.get('stat') == 'fail':
            logger.info('%s failed: code=%s message=%s', method, data.get('code'), data.get('message'))
            return ApiOutcome(FAIL, data, status_code)

        return ApiOutcome(OK, data, status_code)

    def _backoff_active(self, kind, identifier):
        entry = self.cache.get(('backoff', kind, identifier))
        return bool(entry) and entry.get('until', 0) > self.clock()

    def _install_backoff(self, kind, identifier, seconds):
        if seconds <= 0:
            return

        self.cache.set(('backoff', kind, identifier), {'until': self.clock() + seconds}, seconds)

    def _failed(self, outcome, kind, identifier, key, cache_transport_failures=True):
        """Translate a non-OK outcome into a result, caching what may be cached."""
        if outcome.kind == QUOTA:
            return RATE_LIMITED

        if outcome.kind == RATE_LIMITED_STATUS:
            self._install_backoff(kind, identifier, self.settings.rate_limit_backoff)
            return RATE_LIMITED

        if outcome.kind == SERVER_ERROR:
            self._install_backoff(kind, identifier, self.settings.failure_backoff)
            return RATE_LIMITED

        if outcome.kind == NO_API_KEY:
            return NOT_FOUND

        if outcome.kind == TRANSPORT_ERROR:
            if cache_transport_failures:
                self._install_backoff(kind, identifier, self.settings.failure_backoff)
                self.cache.set_result(key, NOT_FOUND, max(60, self.settings.failure_backoff))
            return NOT_FOUND

        return self._not_found(key)

    def _not_found(self, key):
        self.cache.set_result(key, NOT_FOUND, self.settings.not_found_ttl)
        return NOT_FOUND

    def get_photo_info(self, photo_id, force_refresh=False):
        photo_id = str(photo_id).strip()
        if not photo_id:
            return NOT_FOUND

        key = ('photo_info', photo_id)
        if not force_refresh:
            cached = self.cache.get_result(key)
            if cached:
                return cached

        if self._backoff_active('photo_info', photo_id):
            return RATE_LIMITED

        outcome = self._call_api('flickr.photos.getInfo', {'photo_id': photo_id})
        if outcome.kind != OK:
            return self._failed(outcome, 'photo_info', photo_id, key)

        info = outcome.data.get('photo')
        if not info:
            return self._not_found(key)

        rv = Found(info)
        self.cache.set_result(key, rv)
        return rv

    def get_photo_stats(self, photo_id):
        photo_id = str(photo_id).strip()
        key = ('photo_stats', photo_id)

        cached = self.cache.get_result(key)
        if cached:
            return cached

        comprehensive = self.cache.get_result(('dims', photo_id, COMPREHENSIVE_SIZES_HASH))
        if comprehensive and comprehensive.found and '_stats' in comprehensive.value:
            return Found(comprehensive.value['_stats'])

        info = self.get_photo_info(photo_id)
        if not info.found:
            return info

        rv = Found(stats_from_info(info.value))
        self.cache.set_result(key, rv)
        return rv

    def _with_rotation(self, photo_id, projection):
        """Backfill _photo_info/_rotation; page payloads never carry rotation."""
        if '_rotation' in projection:
            return projection, True

        info = self.get_photo_info(photo_id)
        if not info.found:
            return projection, False

        projection = dict(projection)
        projection['_photo_info'] = dict(projection.get('_photo_info') or {}, **info.value)
        projection['_rotation'] = normalize_rotation(info.value.get('rotation'))
        return projection, True

    def _fill_static(self, photo_id, projection, sizes):
        missing = [size for size in sizes if size not in projection]
        info = projection.get('_photo_info') or {}
        if missing and info.get('server') and info.get('secret'):
            projection.update(build_static_sizes(photo_id, info['server'], info['secret'], missing))

        return [size for size in sizes if size not in projection]

    def get_photo_sizes(self, photo_id, sizes, needs_metadata=False, force_refresh=False):
        photo_id = str(photo_id).strip()
        if not photo_id or not sizes:
            return NOT_FOUND

        key = ('dims', photo_id, sizes_hash(sizes))

        if not force_refresh:
            comprehensive_key = ('dims', photo_id, COMPREHENSIVE_SIZES_HASH)
            comprehensive = self.cache.get_result(comprehensive_key)
            if comprehensive and comprehensive.found:
                entry = comprehensive.value
                projection = {size: entry[size] for size in sizes if size in entry}
                for meta in ('_stats', '_photo_info', '_rotation'):
                    if meta in entry:
                        projection[meta] = entry[meta]

                self._fill_static(photo_id, projection, sizes)

                if needs_metadata:
                    projection, updated = self._with_rotation(photo_id, projection)
                    if updated and '_rotation' not in entry:
                        entry = dict(entry, _photo_info=projection['_photo_info'], _rotation=projection['_rotation'])
                        self.cache.set_result(comprehensive_key, Found(entry))

                if any(size in projection for size in sizes):
                    return Found(projection)

            cached = self.cache.get_result(key)
            if cached is NOT_FOUND:
                return cached

            if cached:
                projection = dict(cached.value)
                self._fill_static(photo_id, projection, sizes)
                if needs_metadata and '_rotation' not in projection:
                    projection, updated = self._with_rotation(photo_id, projection)
                    if updated:
                        self.cache.set_result(key, Found(projection))
                return Found(projection)

        if self._backoff_active('photo_sizes', photo_id):
            return RATE_LIMITED

        logger.debug('fetching sizes for photo %s', photo_id)
        outcome = self._call_api('flickr.photos.getSizes', {'photo_id': photo_id})
        if outcome.kind != OK:
            return self._failed(outcome, 'photo_sizes', photo_id, key)

        api_sizes = (outcome.data.get('sizes') or {}).get('size') or []
        projection = map_sizes(api_sizes, sizes)
        if not projection:
            return self._not_found(key)

        if needs_metadata:
            projection, _ = self._with_rotation(photo_id, projection)
            if '_photo_info' in projection:
                projection['_stats'] = stats_from_info(projection['_photo_info'])

        self.cache.set_result(key, Found(projection))
        return Found(projection)

    def resolve_user_id(self, username):
        username = unquote(str(username or '')).strip()
        if not username:
            return NOT_FOUND

        if is_nsid(username):
            return Found(username)

        digest = stable_hash(username)
        key = ('user_id', digest)
        cached = self.cache.get_result(key)
        if cached:
            return cached

        if self._backoff_active('user_id', digest):
            return RATE_LIMITED

        outcome = self._call_api('flickr.people.findByUsername', {'username': username})
        if outcome.kind != OK:
            return self._failed(outcome, 'user_id', digest, key)

        user = outcome.data.get('user') or {}
        nsid = user.get('nsid') or user.get('id')
        if not nsid:
            return self._not_found(key)

        rv = Found(nsid)
        self.cache.set_result(key, rv)
        return rv

    def get_photoset_info(self, owner, set_id):
        user = self.resolve_user_id(owner)
        if not user.found:
            return user

        key = ('set_info', stable_hash([user.value, str(set_id)]))
        cached = self.cache.get_result(key)
        if cached:
            return cached

        if self._backoff_active('set_info', set_id):
            return RATE_LIMITED

        outcome = self._call_api('flickr.photosets.getInfo', {'photoset_id': set_id, 'user_id': user.value})
        if outcome.kind != OK:
            return self._failed(outcome, 'set_info', set_id, key)

        photoset = outcome.data.get('photoset')
        if not photoset:
            return self._not_found(key)

        rv = Found({
            'title': _content(photoset.get('title')),
            'description': _content(photoset.get('description')),
            'photo_count': _int(photoset.get('count_photos') or photoset.get('photos')),
            'video_count': _int(photoset.get('count_videos') or photoset.get('videos')),
            'views': _int(photoset.get('count_views')),
            'comments': _int(photoset.get('count_comments')),
        })
        self.cache.set_result(key, rv)
        return rv

    def get_photoset_page(self, owner, set_id, page=1, per_page=500):
        user = self.resolve_user_id(owner)
        if not user.found:
            return user

        page = max(1, int(page))
        per_page = max(1, min(500, int(per_page)))
        key = ('set_page', stable_hash([user.value, str(set_id), page, per_page]))

        rv = self._fetch_page(
            key,
            'set_page',
            set_id,
            'flickr.photosets.getPhotos',
            {'photoset_id': set_id, 'user_id': user.value, 'page': page, 'per_page': per_page, 'extras': ','.join(PAGE_EXTRAS)},
            'photoset',
            owner,
            page,
            per_page,
        )

        if rv.found and page == 1 and rv.value.get('title'):
            info_key = ('set_info', stable_hash([user.value, str(set_id)]))
            if self.cache.get_result(info_key) is None:
                self.cache.set_result(info_key, Found({
                    'title': rv.value['title'],
                    'description': '',
                    'photo_count': rv.value['total'],
                }))

        return rv

    def get_photostream_page(self, owner, page=1, per_page=500):
        user = self.resolve_user_id(owner)
        if not user.found:
            return user

        page = max(1, int(page))
        per_page = max(1, min(500, int(per_page)))
        key = ('stream_page', stable_hash([user.value, page, per_page]))

        return self._fetch_page(
            key,
            'stream_page',
            user.value,
            'flickr.people.getPublicPhotos',
            {'user_id': user.value, 'page': page, 'per_page': per_page, 'extras': ','.join(PAGE_EXTRAS)},
            'photos',
            owner,
            page,
            per_page,
        )

    def _fetch_page(self, key, kind, identifier, method, params, container, owner, page, per_page):
        cached = self.cache.get_result(key)
        if cached:
            return cached

        if self._backoff_active(kind, identifier):
            return RATE_LIMITED

        outcome = self._call_api(method, params)
        if outcome.kind != OK:
            return self._failed(outcome, kind, identifier, key, cache_transport_failures=False)

        body = outcome.data.get(container)
        if not isinstance(body, dict):
            return self._not_found(key)

        items = body.get('photo') or []
        pages = max(1, _int(body.get('pages')))
        total = _int(body.get('total')) or len(items)

        photos = []
        photo_ids = []
        photo_views = {}
        for item in items:
            photo_id = self.cache_page_item(item)
            if not photo_id:
                continue
            photo_ids.append(photo_id)
            photos.append(photo_page_url(owner, photo_id))
            photo_views[photo_id] = max(0, _int(item.get('views')))

        rv = Found({
            'photos': photos,
            'photo_ids': photo_ids,
            'photo_views': photo_views,
            'has_more': page < pages or (pages <= 1 and len(items) >= per_page),
            'total': total,
            'page': page,
            'pages': pages,
            'title': _content(body.get('title')),
        })
        self.cache.set_result(key, rv, self.settings.page_ttl)
        return rv

    def cache_page_item(self, item):
        """Cache one album/photostream item under the comprehensive dims key."""
        photo_id = str(item.get('id') or '')
        if not photo_id:
            return None

        data = sizes_from_page_item(item)
        if not data:
            data = build_static_sizes(photo_id, item.get('server'), item.get('secret'))

        stats = {'views': max(0, _int(item.get('views')))}
        if 'count_comments' in item:
            stats['comments'] = max(0, _int(item['count_comments']))
        if 'count_faves' in item:
            stats['favorites'] = max(0, _int(item['count_faves']))
        if item.get('lastupdate'):
            stats['date'] = _format_date(item['lastupdate'])

        info = {
            'title': {'_content': _content(item.get('title'))},
            'description': {'_content': _content(item.get('description'))},
            'owner': {'nsid': item.get('owner', ''), 'username': item.get('ownername', '')},
            'dates': {
                'lastupdate': _int(item.get('lastupdate')),
                'posted': _int(item.get('dateupload')),
                'taken': item.get('datetaken', ''),
            },
            'views': stats['views'],
            'comments': {'_content': str(stats.get('comments', 0))},
            'count_faves': stats.get('favorites', 0),
        }
        for field in ('server', 'secret', 'media'):
            if item.get(field):
                info[field] = str(item[field])

        data['_stats'] = stats
        data['_photo_info'] = info

        key = ('dims', photo_id, COMPREHENSIVE_SIZES_HASH)
        existing = self.cache.get_result(key)
        if existing and existing.found and '_rotation' in existing.value:
            data['_rotation'] = existing.value['_rotation']

        self.cache.set_result(key, Found(data))
        return photo_id

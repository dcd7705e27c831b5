import logging
import time
from collections import namedtuple
from .results import Found
from .utils import stable_hash

logger = logging.getLogger(__name__)

_AggregateResult = namedtuple(
    'AggregateResult',
    ['photos', 'photo_ids', 'complete', 'partial', 'rate_limited', 'not_found', 'has_more', 'resume_page', 'pages_fetched', 'total', 'title', 'error'],
    defaults=(None, None, False, False, False, False, False, None, 0, 0, '', None)
)

class AggregateResult(_AggregateResult):
    __slots__ = ()

    def __new__(cls, photos=None, photo_ids=None, *args, **kwargs):
        return super().__new__(cls, list(photos or []), list(photo_ids or []), *args, **kwargs)

class CollectionAggregator:
    """Walks every page of an album or photostream, possibly across many runs.

    Progress is kept in a short-lived partial snapshot, so a run that runs out
    of time or quota picks up at the next unfetched page."""

    def __init__(self, fetcher, cache, settings, clock=time.time):
        self.fetcher = fetcher
        self.cache = cache
        self.settings = settings
        self.clock = clock

    def fetch_album(self, owner, set_id, max_seconds=None):
        def fetch_page(page):
            return self.fetcher.get_photoset_page(owner, set_id, page, self.settings.page_size)

        return self._aggregate('set', owner, set_id, fetch_page, max_seconds)

    def fetch_photostream(self, owner, max_seconds=None):
        def fetch_page(page):
            return self.fetcher.get_photostream_page(owner, page, self.settings.page_size)

        return self._aggregate('stream', owner, None, fetch_page, max_seconds)

    def keys(self, kind, nsid, collection_id):
        digest = stable_hash([nsid, str(collection_id)] if collection_id else [nsid])
        return (
            ('{}_full'.format(kind), digest),
            ('{}_full_partial'.format(kind), digest),
            ('{}_views_index'.format(kind), digest),
        )

    def cached_full(self, kind, owner, collection_id):
        """Complete cached aggregate, without touching the network beyond user resolution."""
        user = self.fetcher.resolve_user_id(owner)
        if not user.found:
            return user

        full_key, _, _ = self.keys(kind, user.value, collection_id)
        return self.cache.get_result(full_key)

    def _aggregate(self, kind, owner, collection_id, fetch_page, max_seconds):
        start = self.clock()
        budget = self.settings.max_seconds if max_seconds is None else max_seconds

        user = self.fetcher.resolve_user_id(owner)
        if user.rate_limited:
            return AggregateResult(rate_limited=True, has_more=True, resume_page=1)
        if not user.found:
            return AggregateResult(not_found=True)

        full_key, partial_key, views_key = self.keys(kind, user.value, collection_id)

        full = self.cache.get_result(full_key)
        if full and full.found:
            value = full.value
            return AggregateResult(
                photos=value['photos'],
                photo_ids=value['photo_ids'],
                complete=True,
                pages_fetched=0,
                total=value['total'],
                title=value['title'],
            )

        snapshot = self.cache.get(partial_key) or {}
        photos = list(snapshot.get('photos_so_far', []))
        photo_ids = list(snapshot.get('photo_ids', []))
        photo_views = dict(snapshot.get('photo_views', {}))
        pages_fetched = snapshot.get('pages_fetched', 0)
        total_expected = snapshot.get('total_expected', 0)
        title = snapshot.get('title', '')
        page = snapshot.get('resume_page', 1)

        if snapshot:
            logger.info('resuming %s %s/%s at page %s (%s photos so far)', kind, owner, collection_id, page, len(photos))

        def save_partial(rate_limited):
            self.cache.set(partial_key, {
                'photos_so_far': photos,
                'photo_ids': photo_ids,
                'photo_views': photo_views,
                'pages_fetched': pages_fetched,
                'resume_page': page,
                'total_expected': total_expected,
                'rate_limited': rate_limited,
                'title': title,
            }, self.settings.partial_ttl)

        def partial(**kwargs):
            return AggregateResult(
                photos=photos,
                photo_ids=photo_ids,
                partial=True,
                has_more=True,
                resume_page=page,
                pages_fetched=pages_fetched,
                total=total_expected,
                title=title,
                **kwargs
            )

        while True:
            result = fetch_page(page)

            if result.rate_limited:
                save_partial(True)
                logger.warning('rate limited aggregating %s %s/%s at page %s', kind, owner, collection_id, page)
                return partial(rate_limited=True)

            if not result.found:
                if page == 1 and not photos:
                    self.cache.delete(partial_key)
                    return AggregateResult(not_found=True)

                save_partial(False)
                return partial(error='page {} unavailable'.format(page))

            value = result.value
            photos.extend(value['photos'])
            photo_ids.extend(value['photo_ids'])
            photo_views.update(value['photo_views'])
            pages_fetched += 1
            total_expected = max(total_expected, value['total'])
            if page == 1 and value.get('title'):
                title = value['title']

            if not value['has_more'] or not value['photos']:
                break

            page += 1

            if self.clock() - start >= budget:
                save_partial(False)
                logger.info('time budget spent aggregating %s %s/%s; next page %s', kind, owner, collection_id, page)
                return partial()

        self.cache.set_result(full_key, Found({
            'photos': photos,
            'photo_ids': photo_ids,
            'photo_views': photo_views,
            'total': max(total_expected, len(photos)),
            'pages': page,
            'title': title,
        }))
        self.cache.delete(partial_key)

        ordered = sorted(zip(photo_ids, photos), key=lambda pair: -photo_views.get(pair[0], 0))
        self.cache.set_result(views_key, Found([
            [photo_id, photo_views.get(photo_id, 0), url] for photo_id, url in ordered
        ]))

        if kind == 'set':
            info_key = ('set_info', stable_hash([user.value, str(collection_id)]))
            if self.cache.get_result(info_key) is None:
                self.cache.set_result(info_key, Found({'title': title, 'description': '', 'photo_count': len(photos)}))

        logger.info('aggregated %s %s/%s: %s photos over %s pages', kind, owner, collection_id, len(photos), page)
        return AggregateResult(
            photos=photos,
            photo_ids=photo_ids,
            complete=True,
            pages_fetched=pages_fetched,
            total=max(total_expected, len(photos)),
            title=title,
        )

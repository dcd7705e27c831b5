from .results import Found, NOT_FOUND

class GalleryReader:
    """Read-through lookups for rendering.

    Never enqueues work; a cache miss costs at most one direct fetch under the
    fetcher's quota and backoff rules. A lookup that would need a second call
    (a username to resolve, rotation to backfill) comes back RATE_LIMITED or
    without the extra data, and the next read picks up where it stopped."""

    def __init__(self, services):
        self.services = services

    def get_photo_projection(self, photo_id, sizes, needs_metadata=False):
        fetcher = self.services.fetcher
        with fetcher.fetch_budget(1):
            return fetcher.get_photo_sizes(photo_id, sizes, needs_metadata=needs_metadata)

    def get_photo_stats(self, photo_id):
        fetcher = self.services.fetcher
        with fetcher.fetch_budget(1):
            return fetcher.get_photo_stats(photo_id)

    def get_collection_page(self, owner, collection_id=None, page=1, per_page=50):
        with self.services.fetcher.fetch_budget(1):
            return self._collection_page(owner, collection_id, page, per_page)

    def _collection_page(self, owner, collection_id, page, per_page):
        page = max(1, int(page))
        per_page = max(1, min(500, int(per_page)))
        kind = 'set' if collection_id else 'stream'

        full = self.services.aggregator.cached_full(kind, owner, collection_id)
        if full is not None and full.rate_limited:
            return full

        if full is not None and full.found:
            photos = full.value['photos']
            start = (page - 1) * per_page
            pages = max(1, -(-len(photos) // per_page))
            return Found({
                'photos': photos[start:start + per_page],
                'has_more': start + per_page < len(photos),
                'total': full.value['total'],
                'page': page,
                'pages': pages,
                'title': full.value['title'],
            })

        if collection_id:
            return self.services.fetcher.get_photoset_page(owner, collection_id, page, per_page)

        return self.services.fetcher.get_photostream_page(owner, page, per_page)

    def get_top_viewed(self, owner, set_id, limit=9):
        user = self.services.fetcher.resolve_user_id(owner)
        if not user.found:
            return user

        _, _, views_key = self.services.aggregator.keys('set', user.value, set_id)
        index = self.services.cache.get_result(views_key)
        if not index or not index.found:
            return NOT_FOUND

        return Found([
            {'photo_id': photo_id, 'views': views, 'url': url}
            for photo_id, views, url in index.value[:max(1, int(limit))]
        ])

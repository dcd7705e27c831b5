import httpx
from datasette_flickr_cache.aggregator import AggregateResult
from datasette_flickr_cache.utils import stable_hash

OWNER = '12345@N00'

def make_album(flickr, clock, count, seconds_per_call=0, fail_pages=()):
    def handler(params):
        clock.advance(seconds_per_call)
        page = int(params['page'])
        per_page = int(params['per_page'])

        if page in fail_pages:
            return httpx.Response(429)

        ids = range((page - 1) * per_page + 1, min(count, page * per_page) + 1)
        return {'photoset': {
            'page': page,
            'pages': (count + per_page - 1) // per_page,
            'total': count,
            'title': 'Big album',
            'photo': [
                {'id': str(i), 'server': '1', 'secret': 's', 'views': str(i % 17)}
                for i in ids
            ],
        }}

    flickr.on('flickr.photosets.getPhotos', handler)

def requested_pages(flickr):
    return [int(r['page']) for r in flickr.calls('flickr.photosets.getPhotos')]

def test_small_album_in_one_run(services, flickr, clock):
    make_album(flickr, clock, 3)

    rv = services.aggregator.fetch_album(OWNER, '77')
    assert rv.complete
    assert not rv.partial
    assert rv.photo_ids == ['1', '2', '3']
    assert rv.photos[0] == 'https://flickr.com/photos/{}/1/'.format(OWNER)
    assert rv.title == 'Big album'
    assert rv.total == 3

    # Served from cache next time
    again = services.aggregator.fetch_album(OWNER, '77')
    assert again.complete
    assert again.pages_fetched == 0
    assert again.photo_ids == ['1', '2', '3']
    assert requested_pages(flickr) == [1]

def test_large_album_resumes_across_runs(make_services, flickr, clock):
    services = make_services(**{'max-seconds': 10})
    make_album(flickr, clock, 1200, seconds_per_call=6)

    first = services.aggregator.fetch_album(OWNER, '77')
    assert first.partial
    assert first.has_more
    assert not first.complete
    assert first.resume_page == 3
    assert len(first.photos) == 1000
    assert requested_pages(flickr) == [1, 2]

    _, partial_key, _ = services.aggregator.keys('set', OWNER, '77')
    assert services.cache.get(partial_key)['resume_page'] == 3

    second = services.aggregator.fetch_album(OWNER, '77')
    assert second.complete
    assert requested_pages(flickr) == [1, 2, 3]
    assert second.photo_ids == [str(i) for i in range(1, 1201)]
    assert second.total == 1200
    assert services.cache.get(partial_key) is None

def test_always_fetches_one_page(make_services, flickr, clock):
    services = make_services(**{'max-seconds': 5})
    make_album(flickr, clock, 1200, seconds_per_call=60)

    rv = services.aggregator.fetch_album(OWNER, '77', max_seconds=0)
    assert rv.partial
    assert rv.resume_page == 2
    assert requested_pages(flickr) == [1]

def test_rate_limit_keeps_progress(services, flickr, clock):
    make_album(flickr, clock, 1200, fail_pages=(2,))

    rv = services.aggregator.fetch_album(OWNER, '77')
    assert rv.rate_limited
    assert rv.partial
    assert rv.resume_page == 2
    assert len(rv.photos) == 500

    _, partial_key, _ = services.aggregator.keys('set', OWNER, '77')
    snapshot = services.cache.get(partial_key)
    assert snapshot['rate_limited'] is True
    assert len(snapshot['photos_so_far']) == 500
    # The rate-limited page itself is neither cached nor negative-cached
    assert services.cache.get_result(('set_page', stable_hash([OWNER, '77', 2, 500]))) is None
    assert services.cache.get_result(('set_page', stable_hash([OWNER, '77', 1, 500]))).found

    # Once the backoff has passed, the run picks up at page 2
    clock.advance(services.settings.rate_limit_backoff + 1)
    make_album(flickr, clock, 1200)
    rv = services.aggregator.fetch_album(OWNER, '77')
    assert rv.complete
    assert len(rv.photos) == 1200
    assert requested_pages(flickr) == [1, 2, 2, 3]

def test_missing_album_is_not_found(services, flickr):
    # No handler: stat=fail
    rv = services.aggregator.fetch_album(OWNER, '404')
    assert rv.not_found
    assert not rv.complete
    assert rv.photos == []

def test_views_index(services, flickr, clock):
    make_album(flickr, clock, 20)
    services.aggregator.fetch_album(OWNER, '77')

    _, _, views_key = services.aggregator.keys('set', OWNER, '77')
    index = services.cache.get_result(views_key).value
    assert len(index) == 20
    views = [views for _, views, _ in index]
    assert views == sorted(views, reverse=True)
    assert index[0] == ['16', 16, 'https://flickr.com/photos/{}/16/'.format(OWNER)]

def test_photostream(services, flickr, clock):
    flickr.on('flickr.people.getPublicPhotos', lambda params: {'photos': {
        'page': 1,
        'pages': 1,
        'total': 2,
        'photo': [{'id': '5', 'server': '1', 'secret': 's'}, {'id': '6', 'server': '1', 'secret': 's'}],
    }})

    rv = services.aggregator.fetch_photostream(OWNER)
    assert rv.complete
    assert rv.photo_ids == ['5', '6']

    full = services.aggregator.cached_full('stream', OWNER, None)
    assert full.value['photo_ids'] == ['5', '6']

def test_unknown_owner(services, flickr):
    rv = services.aggregator.fetch_album('nobody', '77')
    assert rv.not_found
    assert flickr.calls('flickr.photosets.getPhotos') == []

def test_results_do_not_share_lists():
    a = AggregateResult()
    b = AggregateResult(not_found=True)
    assert a.photos == [] and a.photo_ids == []

    a.photos.append('x')
    assert b.photos == []
    assert a.photo_ids is not b.photo_ids

import httpx
import pytest
from datasette_flickr_cache.admin import MANUAL_PRIORITY, request_warm, warm_batch
from datasette_flickr_cache.errors import FlickrCacheError
from datasette_flickr_cache.jobs import Job
from datasette_flickr_cache.scheduler import WarmerState
from datasette_flickr_cache.warmer import run_cycle, warm_job

def missing_photo():
    return httpx.Response(200, json={'stat': 'fail', 'code': 1, 'message': 'Photo not found'})

def serve_photos(flickr, rate_limited=(), missing=()):
    def sizes(params):
        photo_id = params['photo_id']
        if photo_id in rate_limited:
            return httpx.Response(429)
        if photo_id in missing:
            return missing_photo()

        return {'sizes': {'size': [
            {'label': 'Large 1024', 'source': 'https://live.staticflickr.com/1/{}_x_b.jpg'.format(photo_id), 'width': 1024, 'height': 768},
        ]}}

    def info(params):
        if params['photo_id'] in missing:
            return missing_photo()

        return {'photo': {'id': params['photo_id'], 'rotation': 0, 'views': '3', 'dates': {'lastupdate': '1700000000'}}}

    flickr.on('flickr.photos.getSizes', sizes)
    flickr.on('flickr.photos.getInfo', info)

def photo_job(photo_id):
    return Job('photo:{}'.format(photo_id), 'photo', {'photo_id': str(photo_id)})

def enqueue(services, clock, *photo_ids):
    for photo_id in photo_ids:
        services.queue.upsert(photo_job(photo_id))
        clock.advance(1)

def test_cycle_respects_batch_size(services, flickr, clock):
    serve_photos(flickr)
    enqueue(services, clock, *range(1, 9))

    rv = run_cycle(services)
    assert rv.processed == 5
    assert not rv.rate_limited
    assert services.queue.counts()['done'] == 5
    assert services.queue.pending_count() == 3
    # getSizes + getInfo per photo; stats come from the sizes entry
    assert services.quota.current_count() == 10

    assert services.state.next_run_at() == clock() + 300
    assert services.state.last_run()['processed'] == 5

def test_process_all(services, flickr, clock):
    serve_photos(flickr)
    enqueue(services, clock, *range(1, 9))

    assert run_cycle(services, process_all=True).processed == 8
    assert services.queue.pending_count() == 0

def test_warmed_photo_is_served_from_cache(services, flickr, clock):
    serve_photos(flickr)
    enqueue(services, clock, 1)
    run_cycle(services)

    calls = len(flickr.calls())
    assert services.fetcher.get_photo_sizes('1', ['large1024']).value['large1024']['width'] == 1024
    assert services.fetcher.get_photo_stats('1').value['views'] == 3
    assert len(flickr.calls()) == calls

def test_rate_limit_pauses_the_warmer(services, flickr, clock):
    serve_photos(flickr, rate_limited=('2',))
    enqueue(services, clock, 1, 2, 3)

    rv = run_cycle(services)
    assert rv.rate_limited
    assert rv.processed == 2
    assert rv.last_error == 'rate_limited'

    assert services.queue.get('photo:1').status == 'done'
    row = services.queue.get('photo:2')
    assert row.status == 'pending'
    assert row.attempts == 0
    assert row.not_before == clock() + 3600
    assert services.queue.get('photo:3').attempts == 0

    assert services.state.is_paused()
    assert services.state.next_run_at() == clock() + 3600

    # Paused: nothing happens
    calls = len(flickr.calls())
    assert run_cycle(services).skipped
    assert len(flickr.calls()) == calls

    clock.advance(3601)
    serve_photos(flickr)
    rv = run_cycle(services)
    assert not rv.skipped
    assert rv.processed == 2
    assert services.state.pause_until() is None
    assert services.queue.pending_count() == 0

def test_bypass_pause(services, flickr, clock):
    serve_photos(flickr)
    enqueue(services, clock, 1)
    services.state.pause(3600)

    assert run_cycle(services).skipped
    assert run_cycle(services, bypass_pause=True).processed == 1

def test_failed_job_backs_off(services, flickr, clock):
    serve_photos(flickr, missing=('999',))
    enqueue(services, clock, 999)

    rv = run_cycle(services)
    assert rv.failed == 1
    assert rv.last_error == 'photo 999 not found'

    row = services.queue.get('photo:999')
    assert row.status == 'pending'
    assert row.attempts == 1
    assert row.not_before == clock() + 900

    # Not due yet
    assert run_cycle(services).processed == 0

def test_unexpected_errors_fail_the_job(services, clock):
    services.queue.upsert(Job('photo:bad', 'photo', {}))

    rv = run_cycle(services)
    assert rv.failed == 1
    assert services.queue.get('photo:bad').last_error == "KeyError('photo_id')"

def test_partial_collection_stays_pending(make_services, flickr, clock):
    services = make_services(**{'max-seconds': 10})

    def pages(params):
        clock.advance(6)
        page = int(params['page'])
        ids = range((page - 1) * 500 + 1, min(1200, page * 500) + 1)
        return {'photoset': {'page': page, 'pages': 3, 'total': 1200, 'photo': [
            {'id': str(i), 'server': '1', 'secret': 's'} for i in ids
        ]}}

    flickr.on('flickr.photosets.getPhotos', pages)
    services.queue.upsert(Job('album:12345@N00:7', 'album', {'owner': '12345@N00', 'set_id': '7'}))

    rv = run_cycle(services)
    assert rv.processed == 1
    assert rv.failed == 0
    row = services.queue.get('album:12345@N00:7')
    assert row.status == 'pending'
    assert row.attempts == 0
    assert row.not_before is None

    run_cycle(services)
    assert services.queue.get('album:12345@N00:7').status == 'done'
    assert len(flickr.calls('flickr.photosets.getPhotos')) == 3

def test_disabled(make_services, flickr, clock):
    services = make_services(enabled=False)
    enqueue(services, clock, 1)

    rv = run_cycle(services)
    assert rv.skipped
    assert flickr.calls() == []
    assert services.state.next_run_at() == clock() + 300

def test_fast_mode(make_services, flickr, clock):
    serve_photos(flickr)
    services = make_services(**{'slow-mode': False})
    enqueue(services, clock, 1)

    run_cycle(services)
    assert services.state.next_run_at() == clock() + 60

def test_empty_queue_is_reseeded(make_services, flickr, conn):
    conn.execute('CREATE TABLE posts(id integer primary key, body text)')
    conn.execute("INSERT INTO posts(body) VALUES ('https://flickr.com/photos/alice/42/')")
    services = make_services(documents=[{'table': 'posts', 'id': 'id', 'content': 'body'}])
    services.discovery.rebuild_registry()
    services.queue.delete('photo:42')
    serve_photos(flickr)

    assert run_cycle(services).processed == 1
    assert services.queue.get('photo:42').status == 'done'

def test_unknown_job_type(services):
    with pytest.raises(FlickrCacheError):
        warm_job(services, Job('video:1', 'video', {}))

def test_warm_batch(services, flickr):
    serve_photos(flickr, missing=('999',))

    rv = warm_batch(services, [
        'https://flickr.com/photos/alice/1/',
        'https://example.com/nope',
        'https://flickr.com/photos/alice/999/',
    ])
    assert rv == {'processed': 1, 'failed': 2, 'total': 3, 'rate_limited': False, 'api_calls': 4}

def test_warm_batch_stops_at_rate_limit(services, flickr):
    serve_photos(flickr, rate_limited=('1',))

    rv = warm_batch(services, ['https://flickr.com/photos/alice/1/', 'https://flickr.com/photos/alice/2/'])
    assert rv['rate_limited']
    assert rv['processed'] == 0
    assert rv['api_calls'] == 1

def test_request_warm_only_queues(services, flickr, clock):
    serve_photos(flickr)
    services.state.pause(3600)
    services.state.reschedule(300)

    rv = request_warm(services, ['https://flickr.com/photos/alice/1/', 'https://example.com/nope'])
    assert rv == {'enqueued': 1, 'invalid': 1}

    job = services.queue.get('photo:1')
    assert job.priority == MANUAL_PRIORITY
    assert job.status == 'pending'
    assert services.state.next_run_at() == clock()
    assert services.state.pause_until() is None
    assert flickr.calls() == []

    assert run_cycle(services).processed == 1
    assert services.queue.get('photo:1').status == 'done'

def test_request_warm_without_urls_wakes_the_warmer(services, flickr, clock):
    services.state.reschedule(300)

    assert request_warm(services) == {'enqueued': 0, 'invalid': 0}
    assert services.state.is_due()
    assert flickr.calls() == []

def test_schedule_next_never_postpones(services, clock):
    state = services.state
    state.reschedule(300)

    assert state.schedule_next(600) == clock() + 300
    assert state.schedule_next(0) == clock()
    assert state.is_due()

    clock.advance(10)
    # A run that is already overdue gets replaced
    assert state.schedule_next(60) == clock() + 60

def test_jitter(conn, clock):
    assert WarmerState(conn, clock, rng=lambda: 0.0).with_jitter(300, 0.1) == 270
    assert WarmerState(conn, clock, rng=lambda: 1.0).with_jitter(300, 0.1) == 330
    assert WarmerState(conn, clock, rng=lambda: 0.0).with_jitter(0, 0.1) == 0

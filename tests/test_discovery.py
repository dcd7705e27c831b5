import pytest
from datasette_flickr_cache.discovery import canonicalize, discover_urls

POST_1 = '''
<p>Our trip: <a href="https://www.flickr.com/photos/alice/albums/72157">album</a></p>
<p>Best shot https://flickr.com/photos/alice/5551/ and again
<a href="https://flickr.com/photos/alice/5551/in/dateposted/">here</a>.</p>
'''

POST_2 = '''
Everything is at https://flickr.com/photos/bob/ - also see
https://flickr.com/photos/alice/5551
'''

@pytest.fixture
def posts(conn):
    conn.execute('CREATE TABLE posts(id integer primary key, body text)')
    conn.execute('INSERT INTO posts(id, body) VALUES (1, ?), (2, ?), (3, ?)', [POST_1, POST_2, 'no links here'])
    return conn

@pytest.fixture
def services(make_services, posts):
    return make_services(documents=[{'table': 'posts', 'id': 'id', 'content': 'body'}])

def test_canonicalize():
    assert canonicalize({}, 'doc', 'http://www.flickr.com/photos/alice/123/in/album-5') == 'https://flickr.com/photos/alice/123/'
    assert canonicalize({}, 'doc', 'https://flickr.com/photos/alice/sets/5/') == 'https://flickr.com/photos/alice/albums/5'
    assert canonicalize({}, 'doc', 'https://flickr.com/photos/tags/cats') is None
    assert canonicalize({}, 'doc', 'https://example.com/') is None

def test_discover_urls_dedups():
    assert discover_urls({}, 'posts:1', POST_1) == [
        'https://flickr.com/photos/alice/albums/72157',
        'https://flickr.com/photos/alice/5551/',
    ]

def test_discovery_can_be_disabled():
    config = {'discover-text-urls': False, 'discover-html-links': False}
    assert discover_urls(config, 'posts:1', POST_1) == []

def test_rebuild_registry(services):
    registry = services.discovery.rebuild_registry()

    assert list(registry) == ['posts:1', 'posts:2']
    assert services.discovery.known_urls() == [
        'https://flickr.com/photos/alice/albums/72157',
        'https://flickr.com/photos/alice/5551/',
        'https://flickr.com/photos/bob/',
    ]

    # One job per resource, even though photo 5551 is in both posts
    jobs = {job.job_key: job for job in services.queue.dequeue_due()}
    assert sorted(jobs) == ['album:alice:72157', 'photo:5551', 'photostream:bob']
    assert jobs['album:alice:72157'].priority > jobs['photo:5551'].priority
    assert jobs['photo:5551'].payload['photo_id'] == '5551'

def test_rebuild_is_idempotent(services, conn):
    services.discovery.rebuild_registry()
    services.discovery.rebuild_registry()

    count, = conn.execute('SELECT count(*) FROM dfc_known_resource').fetchone()
    assert count == 4
    assert services.queue.pending_count() == 3

def test_update_and_remove_document(services):
    services.discovery.rebuild_registry()

    services.discovery.update_from_content('posts:2', 'now just https://flickr.com/photos/carol/albums/9')
    assert services.discovery.registry()['posts:2'] == ['https://flickr.com/photos/carol/albums/9']
    assert services.queue.get('photostream:bob') is None
    assert services.queue.get('album:carol:9').status == 'pending'
    # Still referenced by posts:1
    assert services.queue.get('photo:5551') is not None

    services.discovery.remove_document('posts:1')
    assert 'posts:1' not in services.discovery.registry()
    assert services.queue.get('photo:5551') is None
    assert services.queue.get('album:alice:72157') is None

def test_reseed_collections_only(services):
    services.discovery.rebuild_registry()

    assert services.discovery.reseed_queue(collections_only=True) == 2
    assert sorted(job.job_key for job in services.queue.dequeue_due()) == ['album:alice:72157', 'photostream:bob']

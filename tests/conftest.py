import sqlite3
import httpx
import pytest
from datasette_flickr_cache.config import install_schema
from datasette_flickr_cache.services import build_services

class FakeClock:
    def __init__(self, now=1700000000.0):
        self.now = now

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds

    advance = sleep

class FakeFlickr:
    """Stands in for api.flickr.com; handlers are keyed by API method."""

    def __init__(self):
        self.handlers = {}
        self.requests = []

    def on(self, method, handler):
        self.handlers[method] = handler

    def __call__(self, request):
        params = dict(request.url.params)
        self.requests.append(params)

        handler = self.handlers.get(params['method'])
        if handler is None:
            return httpx.Response(200, json={'stat': 'fail', 'code': 1, 'message': 'Not found'})

        rv = handler(params)
        if isinstance(rv, httpx.Response):
            return rv

        return httpx.Response(200, json=dict(rv, stat='ok'))

    def calls(self, method=None):
        return [r for r in self.requests if method is None or r['method'] == method]

@pytest.fixture
def conn(tmp_path):
    conn = sqlite3.connect(str(tmp_path / 'db.sqlite'))
    conn.isolation_level = None
    install_schema(conn)
    yield conn
    conn.close()

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def flickr():
    return FakeFlickr()

@pytest.fixture
def make_services(conn, clock, flickr):
    def make(**config):
        config = dict({'api-key': 'test-key', 'sleep-seconds': 0, 'retry-delay': 0}, **config)
        client = httpx.Client(transport=httpx.MockTransport(flickr))
        return build_services(conn, config, client=client, clock=clock, sleep=clock.sleep, rng=lambda: 0.5)

    return make

@pytest.fixture
def services(make_services):
    return make_services()

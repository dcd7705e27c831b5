import asyncio
from datasette import Response
from . import admin
from .config import Settings, enabled_databases, plugin_config
from .fetcher import default_client
from .reader import GalleryReader
from .services import build_services
from .utils import lazy_connection_factory

_clients = {}

def get_client(settings):
    key = (settings.request_timeout,)
    if not key in _clients:
        _clients[key] = default_client(settings)

    return _clients[key]

async def with_services(datasette, request, fn):
    """Run fn on the write thread. fn must not talk to Flickr."""
    db_name = request.url_vars['db']
    config = plugin_config(datasette, db_name)
    client = get_client(Settings.from_config(config))

    def inner(conn):
        return fn(build_services(conn, config, client=client))

    db = datasette.databases[db_name]
    return await db.execute_write_fn(inner, block=True)

async def with_reader(datasette, request, fn):
    """Run fn in an executor with its own connection, so cache misses don't hold up writes."""
    db_name = request.url_vars['db']
    config = plugin_config(datasette, db_name)
    client = get_client(Settings.from_config(config))
    path = datasette.databases[db_name].path

    def inner():
        conn = lazy_connection_factory({db_name: path})(db_name)
        try:
            return fn(build_services(conn, config, client=client))
        finally:
            conn.close()

    return await asyncio.get_event_loop().run_in_executor(None, inner)

async def flickr_cache_rebuild(datasette, request):
    if request.method != 'POST':
        return Response('Unexpected method', status=405)

    count = await with_services(datasette, request, admin.rebuild_known_resources)
    return Response.json({'ok': True, 'known_urls': count})

async def flickr_cache_enqueue(datasette, request):
    if request.method != 'POST':
        return Response('Unexpected method', status=405)

    form = await request.post_vars()
    url = form.get('url', '')
    enqueued = await with_services(datasette, request, lambda services: admin.enqueue_resource(services, url))

    if not enqueued:
        return Response.json({'ok': False, 'error': 'not a Flickr photo, album or photostream URL'}, status=400)

    return Response.json({'ok': True})

async def flickr_cache_reset_bulk(datasette, request):
    if request.method != 'POST':
        return Response('Unexpected method', status=405)

    count = await with_services(datasette, request, admin.reset_queue_to_bulk_mode)
    return Response.json({'ok': True, 'jobs': count})

async def flickr_cache_clear(datasette, request):
    if request.method != 'POST':
        return Response('Unexpected method', status=405)

    version = await with_services(datasette, request, admin.clear_cache)
    return Response.json({'ok': True, 'cache_version': version})

async def flickr_cache_warm(datasette, request):
    if request.method != 'POST':
        return Response('Unexpected method', status=405)

    form = await request.post_vars()
    urls = [url.strip() for url in form.get('urls', '').splitlines() if url.strip()]

    rv = await with_services(datasette, request, lambda services: admin.request_warm(services, urls))
    return Response.json(dict(rv, ok=True))

async def flickr_cache_status(datasette, request):
    if request.method != 'GET':
        return Response('Unexpected method', status=405)

    rv = await with_services(datasette, request, admin.warmer_status)
    return Response.json(rv)

async def flickr_cache_photo(datasette, request):
    if request.method != 'GET':
        return Response('Unexpected method', status=405)

    photo_id = request.url_vars['id']
    sizes = [s for s in request.args.get('sizes', 'large1024,original').split(',') if s]
    needs_metadata = request.args.get('metadata') == '1'

    def lookup(services):
        reader = GalleryReader(services)
        return {
            'sizes': reader.get_photo_projection(photo_id, sizes, needs_metadata).as_json(),
            'stats': reader.get_photo_stats(photo_id).as_json(),
        }

    return Response.json(await with_reader(datasette, request, lookup))

async def flickr_cache_collection(datasette, request):
    if request.method != 'GET':
        return Response('Unexpected method', status=405)

    owner = request.args.get('owner')
    if not owner:
        return Response.json({'ok': False, 'error': 'owner is required'}, status=400)

    set_id = request.args.get('set_id') or None
    try:
        page = int(request.args.get('page', 1))
        per_page = int(request.args.get('per_page', 50))
    except ValueError:
        return Response.json({'ok': False, 'error': 'page and per_page must be integers'}, status=400)

    def lookup(services):
        return GalleryReader(services).get_collection_page(owner, set_id, page, per_page).as_json()

    return Response.json(await with_reader(datasette, request, lookup))

def get_routes(datasette):
    routes = []

    for db in enabled_databases(datasette):
        routes.append((r"^/(?P<db>{})/-/flickr-cache/rebuild$".format(db), flickr_cache_rebuild))
        routes.append((r"^/(?P<db>{})/-/flickr-cache/enqueue$".format(db), flickr_cache_enqueue))
        routes.append((r"^/(?P<db>{})/-/flickr-cache/reset-bulk$".format(db), flickr_cache_reset_bulk))
        routes.append((r"^/(?P<db>{})/-/flickr-cache/clear$".format(db), flickr_cache_clear))
        routes.append((r"^/(?P<db>{})/-/flickr-cache/warm$".format(db), flickr_cache_warm))
        routes.append((r"^/(?P<db>{})/-/flickr-cache/status$".format(db), flickr_cache_status))
        routes.append((r"^/(?P<db>{})/-/flickr-cache/photo/(?P<id>[0-9]+)$".format(db), flickr_cache_photo))
        routes.append((r"^/(?P<db>{})/-/flickr-cache/collection$".format(db), flickr_cache_collection))

    return routes

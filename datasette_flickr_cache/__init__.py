import datasette
import glob
import os
from .config import enabled_databases, ensure_schema
from .plugin import pm
from .routes import get_routes
from .workers import start_warmer
from .utils import module_from_path

@datasette.hookimpl
def startup(datasette):
    async def inner():
        dbs = enabled_databases(datasette)
        for db_name in dbs:
            await ensure_schema(datasette.databases[db_name])

        if dbs:
            # Extra document sources / URL discovery plugins can live in --plugins-dir
            if datasette.plugins_dir:
                for filepath in glob.glob(os.path.join(datasette.plugins_dir, "*.py")):
                    if not os.path.isfile(filepath):
                        continue
                    mod = module_from_path(filepath, name=os.path.basename(filepath))
                    try:
                        pm.register(mod)
                    except ValueError:
                        # Plugin already registered
                        pass

            start_warmer(datasette)

    return inner

@datasette.hookimpl
def get_metadata(datasette, key, database, table):
    rv = {
        'databases': {}
    }

    # enabled_databases reads plugin config, which is itself metadata, so
    # only use it once it has been initialized.
    for db_name in enabled_databases(datasette, empty_if_not_initialized=True):
        rv['databases'][db_name] = {
            'tables': {
                'dfc_cache': {
                    'sort_desc': 'created_at',
                    'hidden': True,
                },
                'dfc_job': {
                    'sort_desc': 'priority'
                },
                'dfc_quota': {
                    'sort_desc': 'hour'
                },
                'dfc_known_resource': {
                    'sort': 'document_id'
                },
            }
        }

    return rv

@datasette.hookimpl
def register_routes(datasette):
    return get_routes(datasette)

import logging
import os
import sys
import time
from multiprocessing import Process
from .config import enabled_databases, plugin_config
from .errors import FlickrCacheError
from .services import build_services
from .utils import lazy_connection_factory, lazy_connection_factory_with_default
from .warmer import run_cycle

logger = logging.getLogger(__name__)

processes = []

def entrypoint_warmer(enabled_dbs, db_map, configs):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(name)s %(levelname)s %(message)s')
    logger.info('warmer started pid=%s dbs=%s', os.getpid(), enabled_dbs)

    raw_factory = lazy_connection_factory(db_map)

    services = {}
    for db in enabled_dbs:
        factory = lazy_connection_factory_with_default(raw_factory, db)
        services[db] = build_services(factory(None), configs[db], factory=factory)
        services[db].discovery.rebuild_registry()

    while True:
        ran = False
        for db, svc in services.items():
            if svc.state.is_due():
                run_cycle(svc)
                ran = True

        if not ran:
            time.sleep(1)

def start_warmer(datasette):
    # Don't start background workers if we're being tested under pytest.
    if "pytest" in sys.modules:
        return

    db_map = {}
    for k, v in datasette.databases.items():
        if v.is_memory or not v.is_mutable:
            continue
        db_map[k] = v.path

    enabled_dbs = [db for db in enabled_databases(datasette) if db in db_map]

    if not enabled_dbs:
        raise FlickrCacheError('datasette-flickr-cache: not enabled in any mutable database, why are we starting the warmer?')

    configs = {db: plugin_config(datasette, db) for db in enabled_dbs}

    p = Process(target=entrypoint_warmer, args=(enabled_dbs, db_map, configs), daemon=True)
    p.start()
    processes.append(('warmer', p))

import hashlib
import json
import sqlite3
import types
from selectolax.parser import HTMLParser
from .config import ensure_wal_mode
from .errors import FlickrCacheError

_last_html = None
_last_html_parser = None

def get_html_parser(text):
    global _last_html
    global _last_html_parser

    if text == _last_html:
        return _last_html_parser

    _last_html_parser = HTMLParser(text)
    _last_html = text
    return _last_html_parser

def stable_hash(value):
    """md5 of a JSON-able value, stable across processes."""
    if not isinstance(value, str):
        value = json.dumps(value, sort_keys=True, separators=(',', ':'))

    return hashlib.md5(value.encode('utf-8')).hexdigest()

def lazy_connection_factory(db_map):
    conns = {}

    def get_db(name):
        if not name in db_map:
            raise FlickrCacheError('unknown database name: {}'.format(name))

        if name in conns:
            return conns[name]

        conn = sqlite3.connect(db_map[name])
        conn.isolation_level = None
        ensure_wal_mode(conn)

        # See https://www.sqlite.org/pragma.html#pragma_synchronous; this is much faster,
        # at the expense of durability in the event of an unplanned shutdown.
        conn.execute('pragma synchronous = normal;')
        conns[name] = conn
        return conn

    return get_db

def lazy_connection_factory_with_default(factory, default):
    def get_db(name):
        if not name:
            return factory(default)

        return factory(name)

    return get_db

def module_from_path(path, name):
    # Stolen from https://github.com/simonw/datasette/blob/013496862f4d4b441ab61255242b838b24287607/datasette/utils/__init__.py#L741
    mod = types.ModuleType(name)
    mod.__file__ = path
    with open(path, "r") as file:
        code = compile(file.read(), path, "exec", dont_inherit=True)
    exec(code, mod.__dict__)
    return mod

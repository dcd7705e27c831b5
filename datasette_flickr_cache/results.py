"""Outcomes of a metadata fetch.

A fetch either finds its resource (`Found`), learns that it is missing or
private (`NOT_FOUND`), or is refused by the quota or the upstream rate limiter
(`RATE_LIMITED`). Only the first two may ever be cached."""

from collections import namedtuple
from .errors import FlickrCacheError

class Found(namedtuple('Found', ['value'])):
    __slots__ = ()

    found = True
    not_found = False
    rate_limited = False

    def as_json(self):
        return self.value

class _NotFound:
    found = False
    not_found = True
    rate_limited = False

    def as_json(self):
        return {}

    def __repr__(self):
        return 'NOT_FOUND'

class _RateLimited:
    found = False
    not_found = False
    rate_limited = True

    def as_json(self):
        return {'rate_limited': True}

    def __repr__(self):
        return 'RATE_LIMITED'

NOT_FOUND = _NotFound()
RATE_LIMITED = _RateLimited()

def encode(result):
    if result is NOT_FOUND:
        return {'status': 'not_found'}

    if isinstance(result, Found):
        return {'status': 'found', 'value': result.value}

    raise FlickrCacheError('refusing to cache {!r}'.format(result))

def decode(stored):
    if not isinstance(stored, dict):
        return None

    status = stored.get('status')
    if status == 'found':
        return Found(stored.get('value'))
    if status == 'not_found':
        return NOT_FOUND

    return None

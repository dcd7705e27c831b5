import re
from collections import namedtuple
from urllib.parse import unquote
from .jobs import Job

photo_re = re.compile(r'(?:www\.)?flickr\.com/photos/([^/?#]+)/(\d+)', re.I)
set_re = re.compile(r'(?:www\.)?flickr\.com/photos/([^/?#]+)/(?:sets|albums)/(\d+)(?:/with/(\d+))?', re.I)
photostream_re = re.compile(r'(?:www\.)?flickr\.com/photos/([^/?#]+)/?(?:[?#].*)?$', re.I)
nsid_re = re.compile(r'^[0-9]+@N[0-9]{2}$')

COLLECTION_PRIORITY = 10
PHOTO_PRIORITY = 0

Resource = namedtuple('Resource', ['kind', 'owner', 'id', 'url'])

def parse_resource_url(url):
    """Identify the Flickr resource a URL points at, or None."""
    if not url or not isinstance(url, str):
        return None

    url = url.strip()

    m = set_re.search(url)
    if m:
        return Resource('album', unquote(m.group(1)), m.group(2), url)

    m = photo_re.search(url)
    if m:
        return Resource('photo', unquote(m.group(1)), m.group(2), url)

    m = photostream_re.search(url)
    if m and m.group(1).lower() not in ('tags', 'upload', 'organize'):
        return Resource('photostream', unquote(m.group(1)), None, url)

    return None

def is_nsid(user_id):
    return bool(nsid_re.match(user_id)) or user_id.isdigit()

def photo_page_url(owner, photo_id):
    return 'https://flickr.com/photos/{}/{}/'.format(owner, photo_id)

def job_for_resource(resource):
    if resource.kind == 'photo':
        return Job(
            'photo:{}'.format(resource.id),
            'photo',
            {'url': resource.url, 'owner': resource.owner, 'photo_id': resource.id},
            PHOTO_PRIORITY,
        )

    if resource.kind == 'album':
        return Job(
            'album:{}:{}'.format(resource.owner, resource.id),
            'album',
            {'url': resource.url, 'owner': resource.owner, 'set_id': resource.id},
            COLLECTION_PRIORITY,
        )

    return Job(
        'photostream:{}'.format(resource.owner),
        'photostream',
        {'url': resource.url, 'owner': resource.owner},
        COLLECTION_PRIORITY,
    )

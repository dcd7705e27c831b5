from collections import OrderedDict
from urllib.parse import quote
from .utils import stable_hash

# name -> (suffix used by url_<suffix> extras, API size labels in preference order)
SIZE_DEFINITIONS = OrderedDict([
    ('original', ('o', ['Original'])),
    ('large6k', (None, ['Large 6144', 'Original'])),
    ('large5k', (None, ['Large 5120', 'Large 6144', 'Original'])),
    ('large4k', (None, ['Large 4096', 'Large 5120', 'Original'])),
    ('large3k', (None, ['Large 3072', 'Large 4096', 'Original'])),
    ('large2048', ('k', ['Large 2048', 'Large 3072', 'Original'])),
    ('large1600', ('h', ['Large 1600', 'Large 2048', 'Original'])),
    ('large1024', ('l', ['Large 1024', 'Large 1600', 'Original'])),
    ('large', (None, ['Large', 'Large 1024', 'Original'])),
    ('medium800', ('c', ['Medium 800', 'Large', 'Original'])),
    ('medium640', ('z', ['Medium 640', 'Medium 800', 'Large'])),
    ('medium500', ('m', ['Medium', 'Medium 640', 'Large'])),
    ('medium', (None, ['Medium', 'Medium 640', 'Large'])),
    ('small400', (None, ['Small 400', 'Medium'])),
    ('small320', ('n', ['Small 320', 'Small 400', 'Medium'])),
    ('small240', ('s', ['Small', 'Small 320', 'Medium'])),
    ('thumbnail100', ('t', ['Thumbnail'])),
    ('thumbnail150s', ('q', ['Large Square 150', 'Large Square', 'Square'])),
    ('thumbnail75s', ('sq', ['Square 75', 'Square'])),
])

SUFFIX_TO_SIZE = OrderedDict(
    (suffix, name) for name, (suffix, _) in SIZE_DEFINITIONS.items() if suffix
)

# Every size an album/photostream page can carry.
COMPREHENSIVE_SIZES = list(SUFFIX_TO_SIZE.values())
COMPREHENSIVE_SIZES_HASH = stable_hash(','.join(COMPREHENSIVE_SIZES))

# static.flickr.com suffixes that don't need the per-size secret
STATIC_SUFFIXES = {
    'large1024': 'b',
    'medium500': '',
    'medium': '',
    'small240': 'm',
    'thumbnail100': 't',
    'thumbnail150s': 'q',
}

STATIC_WIDTHS = {
    'large1024': (1024, 0),
    'medium500': (500, 0),
    'medium': (500, 0),
    'small240': (240, 0),
    'thumbnail100': (100, 0),
    'thumbnail150s': (150, 150),
}

PAGE_EXTRAS = [
    'license',
    'date_upload',
    'date_taken',
    'owner_name',
    'original_format',
    'last_update',
    'o_dims',
    'views',
    'media',
    'path_alias',
    'count_comments',
    'count_faves',
    'description',
] + ['url_{}'.format(suffix) for suffix in SUFFIX_TO_SIZE]

def sizes_hash(sizes):
    return stable_hash(','.join(sizes))

def build_static_url(size, server, secret, photo_id):
    if not photo_id or not server or not secret or size not in STATIC_SUFFIXES:
        return None

    suffix = STATIC_SUFFIXES[size]
    base = 'https://live.staticflickr.com/{}/{}_{}'.format(quote(str(server)), quote(str(photo_id)), quote(str(secret)))
    if suffix:
        return '{}_{}.jpg'.format(base, suffix)

    return base + '.jpg'

def build_static_sizes(photo_id, server, secret, sizes=None):
    rv = {}
    for size in sizes or STATIC_SUFFIXES:
        url = build_static_url(size, server, secret, photo_id)
        if url:
            width, height = STATIC_WIDTHS[size]
            rv[size] = {'url': url, 'width': width, 'height': height}

    return rv

def map_sizes(api_sizes, requested):
    """Pick one entry of flickr.photos.getSizes per requested size name."""
    rv = {}
    for name in requested:
        labels = SIZE_DEFINITIONS[name][1] if name in SIZE_DEFINITIONS else [name]

        for label in labels:
            match = next((s for s in api_sizes if s.get('label') == label and s.get('source')), None)
            if match:
                rv[name] = {
                    'url': match['source'],
                    'width': int(match.get('width') or 0),
                    'height': int(match.get('height') or 0),
                }
                break

    return rv

def sizes_from_page_item(item):
    rv = {}
    for suffix, name in SUFFIX_TO_SIZE.items():
        url = item.get('url_' + suffix)
        if url:
            rv[name] = {
                'url': url,
                'width': int(item.get('width_' + suffix) or 0),
                'height': int(item.get('height_' + suffix) or 0),
            }

    return rv

def normalize_rotation(rotation):
    try:
        rotation = int(round(float(rotation)))
    except (TypeError, ValueError):
        return 0

    return rotation % 360

def apply_rotation(dimensions, rotation):
    if normalize_rotation(rotation) not in (90, 270):
        return dimensions

    rv = dict(dimensions)
    rv['width'], rv['height'] = dimensions.get('height', 0), dimensions.get('width', 0)
    return rv

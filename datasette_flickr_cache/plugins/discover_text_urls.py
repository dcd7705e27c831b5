from ..hookspecs import hookimpl
import re

DISCOVER_TEXT_URLS = 'discover-text-urls'

url_re = re.compile(r'https?://(?:www\.)?flickr\.com/photos/[^\s"\'<>()\[\]]+', re.I)

@hookimpl
def discover_resource_urls(config, content):
    if not config.get(DISCOVER_TEXT_URLS, True):
        return []

    return [m.group(0).rstrip('.,;:!') for m in url_re.finditer(content or '')]

from ..hookspecs import hookimpl
from ..utils import get_html_parser

DISCOVER_HTML_LINKS = 'discover-html-links'

@hookimpl
def discover_resource_urls(config, content):
    if not config.get(DISCOVER_HTML_LINKS, True):
        return []

    if not content or '<' not in content:
        return []

    rv = []
    for el in get_html_parser(content).css('a[href]'):
        href = el.attributes.get('href')
        if href and 'flickr.com/photos/' in href:
            rv.append(href.strip())

    return rv

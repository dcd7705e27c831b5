from pluggy import HookimplMarker
from pluggy import HookspecMarker

hookspec = HookspecMarker("datasette_flickr_cache")
hookimpl = HookimplMarker("datasette_flickr_cache")

@hookspec
def get_documents(factory, config):
    """Yield (document_id, content) for every document that may reference Flickr."""

@hookspec
def discover_resource_urls(config, document_id, content):
    """Find candidate resource URLs in a document's content."""

@hookspec
def canonicalize_resource_url(config, document_id, url):
    """Canonicalize a discovered URL. Return False to reject it."""

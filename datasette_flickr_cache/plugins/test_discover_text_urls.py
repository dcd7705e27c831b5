from datasette_flickr_cache.plugins.discover_text_urls import discover_resource_urls

def test_discover_text_urls():
    assert discover_resource_urls({}, '') == []
    assert discover_resource_urls({}, 'no links here') == []

    assert discover_resource_urls(
        {},
        'See https://www.flickr.com/photos/alice/12345/, and https://flickr.com/photos/bob/albums/777.'
    ) == [
        'https://www.flickr.com/photos/alice/12345/',
        'https://flickr.com/photos/bob/albums/777',
    ]

    assert discover_resource_urls({'discover-text-urls': False}, 'https://flickr.com/photos/bob/1') == []

from datasette_flickr_cache.plugins.canonicalize_flickr_urls import canonicalize_resource_url

def test_canonicalize():
    assert canonicalize_resource_url('https://example.com/') == False
    assert canonicalize_resource_url('https://www.flickr.com/photos/alice/12345/in/dateposted/') == 'https://flickr.com/photos/alice/12345/'
    assert canonicalize_resource_url('https://flickr.com/photos/bob/sets/777/with/12') == 'https://flickr.com/photos/bob/albums/777'
    assert canonicalize_resource_url('https://flickr.com/photos/carol') == 'https://flickr.com/photos/carol/'

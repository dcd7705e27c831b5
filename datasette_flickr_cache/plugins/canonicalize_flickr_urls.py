from ..hookspecs import hookimpl
from ..urls import parse_resource_url

@hookimpl
def canonicalize_resource_url(url):
    resource = parse_resource_url(url)
    if not resource:
        return False

    if resource.kind == 'photo':
        return 'https://flickr.com/photos/{}/{}/'.format(resource.owner, resource.id)

    if resource.kind == 'album':
        return 'https://flickr.com/photos/{}/albums/{}'.format(resource.owner, resource.id)

    return 'https://flickr.com/photos/{}/'.format(resource.owner)

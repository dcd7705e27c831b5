class FlickrCacheError(Exception):
    pass

import importlib
import pluggy
import sys
from . import hookspecs

DEFAULT_PLUGINS = (
    "datasette_flickr_cache.plugins.documents_from_tables",
    "datasette_flickr_cache.plugins.discover_text_urls",
    "datasette_flickr_cache.plugins.discover_html_links",
    "datasette_flickr_cache.plugins.canonicalize_flickr_urls",
)

pm = pluggy.PluginManager("datasette_flickr_cache")
pm.add_hookspecs(hookspecs)

if not hasattr(sys, "_called_from_test"):
    # Only load plugins if not running tests
    pm.load_setuptools_entrypoints("datasette_flickr_cache")

# Load default plugins
for plugin in DEFAULT_PLUGINS:
    mod = importlib.import_module(plugin)
    pm.register(mod, plugin)

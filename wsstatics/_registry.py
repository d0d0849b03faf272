"""
This module implements the AssetRegistry, which holds the asset table that
is served, and the logic to decide which asset is served for "/".
"""

import threading

from ._assets import Asset, AssetTable
from ._logging import logger


DEFAULT_HTML = (
    "<html><head><title>WS STATIC OK</title></head><body>"
    "Success<br>"
    "Served by wsstatics"
    "</body></html>"
)

# Served when no table is installed. The header block is a bare MIME type,
# so responses get a no-cache header.
DEFAULT_TABLE = AssetTable(
    [Asset("/", "text/html; charset=utf-8", DEFAULT_HTML.encode())]
)


def find_root_alias(table):
    """ Determine the url to serve for "/", given an asset table.

    * An asset at "/index.html" or "/" (whichever comes first).
    * Otherwise the only ".html" asset, if there is exactly one.
    * Otherwise None, i.e. "/" is not found.
    """
    html_urls = []
    for asset in table:
        if asset.url in ("/index.html", "/"):
            return asset.url
        if asset.url.endswith(".html"):
            html_urls.append(asset.url)
    if len(html_urls) == 1:
        return html_urls[0]
    return None


class AssetRegistry:
    """ Holds the active asset table of a server. Create one at startup,
    install a table with ``set_active_table()`` (e.g. via a compiled
    module's ``init_embedded_assets()``), and pass it to the server. The
    server freezes the registry before accepting connections; after that
    the table cannot be replaced.
    """

    def __init__(self, table=None):
        self._table = None
        self._frozen = False
        self._root_alias = None
        self._root_resolved = False
        self._lock = threading.Lock()
        if table is not None:
            self.set_active_table(table)

    def __repr__(self):
        state = "frozen" if self._frozen else "open"
        return f"<AssetRegistry ({state}) with {self.get_active_table()!r}>"

    @property
    def frozen(self):
        """ Whether the registry is frozen (i.e. serving has started).
        """
        return self._frozen

    @property
    def root_alias(self):
        """ The url served for "/", or None if not (yet) resolved.
        """
        return self._root_alias

    def set_active_table(self, table):
        """ Install the asset table to serve. Replaces any previously set
        table. Can only be called before the registry is frozen.
        """
        if not isinstance(table, AssetTable):
            raise TypeError(f"Expected an AssetTable, not {type(table)}.")
        with self._lock:
            if self._frozen:
                raise RuntimeError(
                    "Cannot replace the asset table after serving has started."
                )
            if self._root_resolved:
                logger.warning(
                    "Asset table replaced after the root alias was resolved; "
                    + f"'/' keeps mapping to {self._root_alias}"
                )
            self._table = table

    def get_active_table(self):
        """ Get the active asset table, or the default table if none was set.
        """
        table = self._table
        return DEFAULT_TABLE if table is None else table

    def resolve_root_if_needed(self):
        """ Determine which url to serve for "/", if this has not been done
        before. This is done only once; the result is not updated when
        the table is replaced later. Returns the alias (or None).
        """
        with self._lock:
            if not self._root_resolved:
                self._root_alias = find_root_alias(self.get_active_table())
                self._root_resolved = True
                if self._root_alias is None:
                    logger.info("No asset to use for default root /")
                else:
                    logger.info(f"Will use [{self._root_alias}] for default root /")
            return self._root_alias

    def freeze(self):
        """ Resolve the root alias and prevent further table replacement.
        """
        self.resolve_root_if_needed()
        with self._lock:
            self._frozen = True

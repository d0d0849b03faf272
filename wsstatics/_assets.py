"""
This module implements the Asset and AssetTable classes, and the
functions that turn raw file contents into assets: the integrity hash
(used as etag), the gzip compression and the header block synthesis.
"""

import gzip
import hashlib
import zlib


# The file types we embed. Anything else is skipped by the compiler.
MIME_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".htm": "text/html; charset=utf-8",
    ".js": "text/javascript; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".txt": "text/plain; charset=utf-8",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".ico": "image/x-icon",
    ".wasm": "application/wasm",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}

ETAG_LENGTH = 40  # hex chars of a sha1 digest


class CompileError(Exception):
    """ Raised when assets cannot be compiled, e.g. because a file cannot
    be read or compressed. Fatal to the compiler.
    """


def content_type_for_filename(filename):
    """ Get the MIME type for the given filename, based on its extension
    (case insensitive). Returns None if the file type is not supported.
    """
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return None
    return MIME_TYPES.get("." + ext.lower(), None)


def compute_etag(data):
    """ Get the etag for the given (uncompressed) bytes: the sha1 hex digest,
    i.e. 40 lowercase hex characters.
    """
    return hashlib.sha1(data).hexdigest()


def compress_payload(data, compress=True):
    """ Compress the given bytes with gzip framing at the default level.
    The gzip timestamp is fixed, so the result only depends on the input.
    If ``compress`` is False, the data is returned as-is.
    """
    if not compress:
        return bytes(data)
    try:
        return gzip.compress(data, compresslevel=6, mtime=0)
    except (zlib.error, MemoryError) as err:
        raise CompileError(f"Could not compress payload: {err}") from err


def make_header_block(etag, mime, *, gzipped=True, max_age=None):
    """ Compose the header block that is send with an asset. Each line
    ends with CRLF, so the block can be inserted into a response verbatim.
    """
    lines = [f'ETag: "{etag}"']
    if gzipped:
        lines.append("Content-Encoding: gzip")
    if max_age is not None:
        lines.append(f"Cache-Control: public, must-revalidate, max-age={max_age:d}")
    lines.append(f"Content-Type: {mime}")
    return "".join(line + "\r\n" for line in lines)


class Asset:
    """ A static resource: the url it is served at, the header block to
    send with it, and the (possibly compressed) content. Assets are
    immutable; a change in content means a new asset.
    """

    __slots__ = ("_url", "_header_block", "_content")

    def __init__(self, url, header_block, content, size=None):
        if not isinstance(url, str):
            raise TypeError("Asset url must be a str.")
        if not url.startswith("/"):
            raise ValueError(f"Asset url must start with '/', got {url!r}")
        if not isinstance(header_block, str):
            raise TypeError("Asset header block must be a str.")
        if not isinstance(content, bytes):
            raise TypeError(f"Asset content must be bytes, not {type(content)}.")
        if size is not None and size != len(content):
            raise ValueError(
                f"Asset {url} declares size {size} but has {len(content)} bytes."
            )
        self._url = url
        self._header_block = header_block
        self._content = content

    def __repr__(self):
        return f"<Asset {self._url} ({len(self._content)} bytes)>"

    @property
    def url(self):
        """ The request path at which this asset is served.
        """
        return self._url

    @property
    def header_block(self):
        """ The header lines (CRLF separated) to send with this asset, or
        a bare MIME type.
        """
        return self._header_block

    @property
    def content(self):
        """ The bytes to send as the response body.
        """
        return self._content

    @property
    def size(self):
        """ The number of bytes in the content.
        """
        return len(self._content)


class AssetTable:
    """ An immutable, ordered collection of assets. Urls must be unique.
    """

    __slots__ = ("_assets",)

    def __init__(self, assets=()):
        assets = tuple(assets)
        seen = set()
        for asset in assets:
            if not isinstance(asset, Asset):
                raise TypeError("AssetTable can only contain Asset objects.")
            if asset.url in seen:
                raise ValueError(f"Duplicate url in asset table: {asset.url}")
            seen.add(asset.url)
        self._assets = assets

    @classmethod
    def from_arrays(cls, urls, header_blocks, contents, sizes):
        """ Create a table from parallel sequences, as stored in a
        compiled asset module.
        """
        n = len(urls)
        if not (len(header_blocks) == len(contents) == len(sizes) == n):
            raise ValueError("Asset arrays must all have the same length.")
        return cls(
            Asset(url, header_block, content, size)
            for url, header_block, content, size in zip(
                urls, header_blocks, contents, sizes
            )
        )

    def __repr__(self):
        return f"<AssetTable with {len(self._assets)} assets>"

    def __len__(self):
        return len(self._assets)

    def __iter__(self):
        return iter(self._assets)

    def __getitem__(self, index):
        return self._assets[index]

    @property
    def count(self):
        """ The number of assets in this table.
        """
        return len(self._assets)

    @property
    def urls(self):
        """ A tuple with the urls of all assets, in table order.
        """
        return tuple(asset.url for asset in self._assets)

    def find(self, path):
        """ Get the asset with the given url (exact match), or None.
        """
        for asset in self._assets:
            if asset.url == path:
                return asset
        return None

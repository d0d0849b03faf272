"""
This module implements the HTTP side of the server: deciding whether a
request is a websocket handshake, and answering plain requests from the
asset table. Every response closes the connection.

The functions here are synchronous and operate on the raw request bytes,
which are never modified.
"""

from ._assets import ETAG_LENGTH
from ._logging import logger


HEAD_TERMINATOR = b"\r\n\r\n"

# The header that distinguishes a websocket handshake from a plain request
WS_HANDSHAKE_HEADER = b"sec-websocket-key"

MAX_HEADER_SIZE = 512  # max size of the head of a response
MAX_PATH_LENGTH = 511  # max length of a request path (excluding the query)

DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"

REASON_PHRASES = {
    200: "OK",
    304: "Not Modified",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
}

BAD_REQUEST = b"Bad Request\n"
BAD_HANDSHAKE = b"Bad WebSocket handshake\n"
NOT_FOUND = b"Not Found\n"
METHOD_NOT_ALLOWED = b"Method Not Allowed\n"


class ResponseTooLargeError(Exception):
    """ Raised when the head of a response does not fit in the header
    buffer. The response must then not be send at all.
    """


class RequestHead:
    """ The parsed request line and a view on the header lines of a request.
    """

    __slots__ = ("method", "target", "headers")

    def __init__(self, method, target, headers):
        self.method = method
        self.target = target
        self.headers = headers

    def __repr__(self):
        return f"<RequestHead {self.method} {self.target}>"

    @property
    def path(self):
        """ The request target without the query string.
        """
        return self.target.partition("?")[0]


def looks_like_ws_upgrade(data):
    """ Get whether the given request bytes look like a websocket handshake,
    i.e. whether they contain a Sec-WebSocket-Key header (case insensitive).
    """
    return WS_HANDSHAKE_HEADER in bytes(data).lower()


def parse_request(data):
    """ Parse the request line of the given request bytes. Returns a
    RequestHead. Raises ``ValueError`` if the request is incomplete or
    the request line is malformed.
    """
    end = data.find(HEAD_TERMINATOR)
    if end < 0:
        raise ValueError("Request has no end of headers.")
    line_end = data.find(b"\r\n")
    parts = data[:line_end].split(b" ", 2)
    if len(parts) < 3:
        raise ValueError("Malformed request line.")
    method = parts[0].decode("latin-1")
    target = parts[1].decode("latin-1")
    headers = memoryview(data)[line_end + 2 : end + 2]
    return RequestHead(method, target, headers)


def get_etag(header_block):
    """ Get the etag value from a header block (without quotes), or None.
    """
    start = header_block.lower().find('etag: "')
    if start < 0:
        return None
    start += len('etag: "')
    end = header_block.find('"', start)
    if end < 0:
        return None
    return header_block[start:end]


def if_none_match(headers, etag):
    """ Get whether the request headers have an If-None-Match header that
    holds the given etag. Only a few filler chars (quotes, whitespace, weak
    validator prefix) are allowed between the colon and the etag.
    """
    lower = bytes(headers).lower()
    start = lower.find(b"if-none-match:")
    if start < 0:
        return False
    start += len(b"if-none-match:")
    index = lower.find(etag.lower().encode("latin-1"), start)
    return index >= 0 and index - start < 5


def _custom_headers(header_block):
    if header_block is None:
        header_block = DEFAULT_CONTENT_TYPE
    if header_block.endswith("\r\n"):
        # A full header block. Add no-cache unless it handles caching itself.
        lower = header_block.lower()
        if "etag:" in lower or "cache-control:" in lower:
            return header_block
        return "Cache-Control: no-cache\r\n" + header_block
    else:
        # A bare content type
        return f"Cache-Control: no-cache\r\nContent-Type: {header_block}\r\n"


def build_response(
    status, header_block=None, body=b"", content_length=None, *, max_header_size=None
):
    """ Compose an HTTP response (bytes). The ``header_block`` can be a
    MIME type, or one or more header lines that each end with CRLF. The
    ``content_length`` defaults to the length of the body, but can be
    given separately for HEAD and 304 responses.

    Raises ``ResponseTooLargeError`` if the head exceeds ``max_header_size``.
    """
    if max_header_size is None:
        max_header_size = MAX_HEADER_SIZE
    if content_length is None:
        content_length = len(body)
    reason = REASON_PHRASES.get(status, "OK")
    head = (
        f"HTTP/1.1 {status:d} {reason}\r\n"
        + "Connection: close\r\n"
        + _custom_headers(header_block)
        + f"Content-Length: {content_length:d}\r\n"
        + "\r\n"
    ).encode("latin-1")
    if len(head) > max_header_size:
        raise ResponseTooLargeError(
            f"Response head of {len(head)} bytes exceeds {max_header_size}."
        )
    return head + body


def serve_static_http(
    data, registry, *, max_header_size=MAX_HEADER_SIZE, max_path_length=MAX_PATH_LENGTH
):
    """ Produce the response (bytes) for the given request bytes, using
    the asset table of the given registry.

    * 400 if the request is incomplete, malformed, or its path too long.
    * 405 for methods other than GET and HEAD.
    * 404 if there is no asset at the requested path.
    * 304 if the request has an If-None-Match header matching the etag.
    * 200 otherwise (without body for HEAD).

    A request for "/" is served from the registry's root alias.
    """
    data = bytes(data)

    def respond(status, header_block=None, body=b"", content_length=None):
        logger.debug(f"static http response {status}")
        return build_response(
            status,
            header_block,
            body,
            content_length,
            max_header_size=max_header_size,
        )

    try:
        request = parse_request(data)
    except ValueError:
        return respond(400, None, BAD_REQUEST)

    if request.method not in ("GET", "HEAD"):
        return respond(405, None, METHOD_NOT_ALLOWED)

    path = request.path or "/"
    if len(path) > max_path_length:
        return respond(400, None, BAD_REQUEST)
    if path == "/":
        path = registry.resolve_root_if_needed()

    asset = None
    if path is not None:
        asset = registry.get_active_table().find(path)
    if asset is None:
        return respond(404, None, NOT_FOUND)

    # If the client already has this exact asset, confirm that it's up-to-date
    etag = get_etag(asset.header_block)
    if etag is not None and len(etag) == ETAG_LENGTH:
        if if_none_match(request.headers, etag):
            return respond(304, asset.header_block, b"", asset.size)

    # The response to a head request should not include a body
    if request.method == "HEAD":
        return respond(200, asset.header_block, b"", asset.size)

    return respond(200, asset.header_block, asset.content, asset.size)

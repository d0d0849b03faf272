"""
Test the request resolver: parsing, response assembly, and the rules for
serving assets from raw request bytes.
"""

from pytest import raises

from wsstatics import Asset, AssetTable, AssetRegistry, ResponseTooLargeError
from wsstatics import serve_static_http, looks_like_ws_upgrade
from wsstatics._http import (
    build_response,
    get_etag,
    if_none_match,
    parse_request,
)
from wsstatics._assets import compute_etag
from wsstatics.testutils import make_request_bytes, parse_response

from common import make_registry, make_table


FILES = {
    "index.html": "<html>index</html>",
    "foo.html": "<html>foo</html>",
    "style.css": "body {color: red}" * 20,
}


def serve(registry, method, path, headers=None, **kwargs):
    data = make_request_bytes(method, path, headers)
    return parse_response(serve_static_http(data, registry, **kwargs))


def test_looks_like_ws_upgrade():

    assert looks_like_ws_upgrade(b"GET / HTTP/1.1\r\nSec-WebSocket-Key: xx\r\n\r\n")
    assert looks_like_ws_upgrade(b"GET / HTTP/1.1\r\nsec-websocket-key: xx\r\n\r\n")
    assert looks_like_ws_upgrade(bytearray(b"GET / HTTP/1.1\r\nSEC-WEBSOCKET-KEY: x"))

    assert not looks_like_ws_upgrade(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")
    assert not looks_like_ws_upgrade(b"GET / HTTP/1.1\r\nUpgrade: websocket\r\n\r\n")
    assert not looks_like_ws_upgrade(b"")


def test_parse_request():

    data = b"GET /foo.html?x=1 HTTP/1.1\r\nHost: x\r\nIf-None-Match: y\r\n\r\n"
    request = parse_request(data)
    assert request.method == "GET"
    assert request.target == "/foo.html?x=1"
    assert request.path == "/foo.html"
    assert bytes(request.headers) == b"Host: x\r\nIf-None-Match: y\r\n"
    assert "GET" in repr(request)

    # The input is not touched
    assert data == b"GET /foo.html?x=1 HTTP/1.1\r\nHost: x\r\nIf-None-Match: y\r\n\r\n"

    # No headers
    request = parse_request(b"HEAD / HTTP/1.1\r\n\r\n")
    assert request.method == "HEAD"
    assert request.path == "/"
    assert bytes(request.headers) == b""

    with raises(ValueError):
        parse_request(b"GET / HTTP/1.1\r\nHost: x\r\n")
    with raises(ValueError):
        parse_request(b"GET /\r\nHost: x\r\n\r\n")
    with raises(ValueError):
        parse_request(b"GET\r\n\r\n")


def test_get_etag():

    etag = "0123456789abcdef0123456789abcdef01234567"
    assert get_etag(f'ETag: "{etag}"\r\nContent-Type: x\r\n') == etag
    assert get_etag(f'Content-Type: x\r\netag: "{etag}"\r\n') == etag
    assert get_etag('ETag: "short"\r\n') == "short"
    assert get_etag("Content-Type: x\r\n") is None
    assert get_etag("text/html") is None
    assert get_etag('ETag: "unterminated\r\n') is None


def test_if_none_match():

    etag = "0123456789abcdef0123456789abcdef01234567"

    assert if_none_match(f'If-None-Match: "{etag}"\r\n'.encode(), etag)
    assert if_none_match(f'if-none-match: "{etag.upper()}"\r\n'.encode(), etag)
    assert if_none_match(f"If-None-Match:{etag}\r\n".encode(), etag)
    assert if_none_match(f'If-None-Match: W/"{etag}"\r\n'.encode(), etag)
    assert if_none_match(memoryview(f'If-None-Match: "{etag}"\r\n'.encode()), etag)

    # Too much filler, other etag, no header
    assert not if_none_match(f'If-None-Match:      "{etag}"\r\n'.encode(), etag)
    assert not if_none_match(f'If-None-Match: "x", "{etag}"\r\n'.encode(), etag)
    assert not if_none_match(b'If-None-Match: "' + b"f" * 40 + b'"\r\n', etag)
    assert not if_none_match(f'ETag: "{etag}"\r\n'.encode(), etag)


def test_build_response():

    # Bare MIME type gets a no-cache header
    r = build_response(200, "text/html", b"hi")
    assert r == (
        b"HTTP/1.1 200 OK\r\n"
        b"Connection: close\r\n"
        b"Cache-Control: no-cache\r\n"
        b"Content-Type: text/html\r\n"
        b"Content-Length: 2\r\n"
        b"\r\n"
        b"hi"
    )

    # Default content type
    r = parse_response(build_response(404, None, b"Not Found\n"))
    assert r.status == 404
    assert r.headers["content-type"] == "text/plain; charset=utf-8"
    assert r.headers["cache-control"] == "no-cache"

    # A header block with etag is used verbatim
    block = 'ETag: "abc"\r\nContent-Type: text/css\r\n'
    r = build_response(200, block, b"x")
    assert b"\r\nConnection: close\r\n" + block.encode() + b"Content-Length: 1" in r
    assert b"Cache-Control" not in r

    # A header block with cache-control as well
    block = "Cache-Control: max-age=10\r\nContent-Type: text/css\r\n"
    r = build_response(200, block, b"x")
    assert r.count(b"Cache-Control") == 1

    # Other header blocks get no-cache
    block = "Content-Type: text/css\r\nX-Foo: bar\r\n"
    r = parse_response(build_response(200, block, b"x"))
    assert r.headers["cache-control"] == "no-cache"
    assert r.headers["x-foo"] == "bar"

    # Content length can differ from the body
    r = build_response(200, "text/plain", b"", 1234)
    assert r.endswith(b"Content-Length: 1234\r\n\r\n")

    # Reason phrases
    assert build_response(304, "x").startswith(b"HTTP/1.1 304 Not Modified\r\n")
    assert build_response(400, "x").startswith(b"HTTP/1.1 400 Bad Request\r\n")
    assert build_response(405, "x").startswith(b"HTTP/1.1 405 Method Not Allowed\r\n")
    assert build_response(418, "x").startswith(b"HTTP/1.1 418 OK\r\n")


def test_build_response_too_large():

    block = "X-Big: " + "x" * 600 + "\r\n"
    with raises(ResponseTooLargeError):
        build_response(200, block, b"")

    # Limit is configurable
    r = build_response(200, block, b"", max_header_size=1024)
    assert r.startswith(b"HTTP/1.1 200 OK")
    with raises(ResponseTooLargeError):
        build_response(200, "text/plain", b"", max_header_size=50)


def test_serve_get_and_head():

    registry = make_registry(FILES)
    asset = registry.get_active_table().find("/style.css")

    r1 = serve(registry, "GET", "/style.css")
    r2 = serve(registry, "HEAD", "/style.css")

    # Same status and headers, HEAD has no body
    assert r1.status == 200 and r2.status == 200
    assert r1.headers == r2.headers
    assert r1.body == asset.content
    assert r2.body == b""
    assert int(r1.headers["content-length"]) == asset.size
    assert int(r2.headers["content-length"]) == asset.size

    assert r1.headers["connection"] == "close"
    assert r1.headers["content-encoding"] == "gzip"
    assert r1.headers["content-type"] == "text/css; charset=utf-8"
    assert r1.headers["etag"] == '"' + compute_etag(FILES["style.css"].encode()) + '"'
    assert "cache-control" not in r1.headers


def test_serve_query_string_is_ignored():

    registry = make_registry(FILES)
    r = serve(registry, "GET", "/foo.html?v=3&x=y")
    assert r.status == 200
    assert r.body == registry.get_active_table().find("/foo.html").content


def test_serve_conditional_get():

    registry = make_registry(FILES)
    asset = registry.get_active_table().find("/index.html")
    etag = compute_etag(FILES["index.html"].encode())

    r = serve(registry, "GET", "/index.html", {"If-None-Match": f'"{etag}"'})
    assert r.status == 304
    assert r.body == b""
    assert r.headers["etag"] == f'"{etag}"'
    assert int(r.headers["content-length"]) == asset.size

    # Casing does not matter
    r = serve(registry, "GET", "/index.html", {"if-none-match": f'"{etag.upper()}"'})
    assert r.status == 304

    # Also for HEAD
    r = serve(registry, "HEAD", "/index.html", {"If-None-Match": f'"{etag}"'})
    assert r.status == 304

    # Other etag or no etag gives the full body
    other = compute_etag(b"something else")
    r = serve(registry, "GET", "/index.html", {"If-None-Match": f'"{other}"'})
    assert r.status == 200
    assert r.body == asset.content
    r = serve(registry, "GET", "/index.html")
    assert r.status == 200
    assert r.body == asset.content

    # The etag of another asset does not match
    r = serve(registry, "GET", "/foo.html", {"If-None-Match": f'"{etag}"'})
    assert r.status == 200


def test_serve_no_etag_no_304():

    # Assets without a (40 char) etag are always served in full
    registry = AssetRegistry(make_table({"a.txt": "aaa"}))
    r = serve(registry, "GET", "/a.txt")
    assert r.status == 200

    table = AssetTable(
        [
            Asset("/a.txt", "text/plain", b"aaa"),
            Asset("/b.txt", 'ETag: "abc"\r\nContent-Type: text/plain\r\n', b"bbb"),
        ]
    )
    registry = AssetRegistry(table)
    r = serve(registry, "GET", "/a.txt", {"If-None-Match": '"abc"'})
    assert r.status == 200
    assert r.headers["cache-control"] == "no-cache"
    r = serve(registry, "GET", "/b.txt", {"If-None-Match": '"abc"'})
    assert r.status == 200
    assert r.body == b"bbb"


def test_serve_root_alias():

    # Index.html wins over other html files
    files = {"index.html": "i", "a.html": "a", "b.html": "b", "c.html": "c"}
    registry = make_registry(files)
    r = serve(registry, "GET", "/")
    assert r.status == 200
    assert r.body == registry.get_active_table().find("/index.html").content
    assert registry.root_alias == "/index.html"

    # Query string on root
    r = serve(registry, "GET", "/?foo=bar")
    assert r.status == 200

    # Single html file
    registry = make_registry({"app.html": "app", "app.js": "js"})
    r = serve(registry, "GET", "/")
    assert r.status == 200
    assert r.body == registry.get_active_table().find("/app.html").content

    # No html files
    registry = make_registry({"app.js": "js", "style.css": "css"})
    assert serve(registry, "GET", "/").status == 404
    assert serve(registry, "GET", "/app.js").status == 200

    # Multiple html files without index
    registry = make_registry({"a.html": "a", "b.html": "b"})
    assert serve(registry, "GET", "/").status == 404

    # Default table
    registry = AssetRegistry()
    r = serve(registry, "GET", "/")
    assert r.status == 200
    assert b"Success" in r.body
    assert r.headers["content-type"] == "text/html; charset=utf-8"
    assert r.headers["cache-control"] == "no-cache"


def test_serve_errors():

    registry = make_registry(FILES)

    # Unsupported method
    for method in ("PUT", "POST", "DELETE", "get", "Head"):
        r = serve(registry, method, "/foo.html")
        assert r.status == 405
        assert r.body == b"Method Not Allowed\n"

    # Unknown path
    r = serve(registry, "GET", "/does-not-exist")
    assert r.status == 404
    assert r.body == b"Not Found\n"
    assert serve(registry, "GET", "/FOO.html").status == 404
    assert serve(registry, "GET", "/foo.html/").status == 404

    # Incomplete request
    data = b"GET /foo.html HTTP/1.1\r\nHost: x\r\n"
    r = parse_response(serve_static_http(data, registry))
    assert r.status == 400
    assert r.body == b"Bad Request\n"

    # Malformed request line
    for data in (b"GET /foo.html\r\n\r\n", b"GARBAGE\r\n\r\n", b"\r\n\r\n"):
        r = parse_response(serve_static_http(data, registry))
        assert r.status == 400


def test_serve_long_path_is_rejected():

    registry = make_registry(FILES)

    r = serve(registry, "GET", "/" + "x" * 510)
    assert r.status == 404

    r = serve(registry, "GET", "/" + "x" * 511)
    assert r.status == 400

    # A long query does not count
    r = serve(registry, "GET", "/foo.html?" + "x" * 1000)
    assert r.status == 200

    # Limit is configurable
    r = serve(registry, "GET", "/foo.html", max_path_length=5)
    assert r.status == 400


def test_serve_prefix():

    registry = make_registry(FILES, url_prefix="/static/")
    assert serve(registry, "GET", "/static/foo.html").status == 200
    assert serve(registry, "GET", "/foo.html").status == 404
    assert serve(registry, "GET", "/").status == 404


if __name__ == "__main__":
    from common import run_tests

    run_tests(globals())

"""
Wsstatics test utilities.
"""

import io
import time
import asyncio
import logging
import threading
from collections import namedtuple

import requests

from ._logging import logger, Formatter
from ._registry import AssetRegistry
from ._server import ConnectionHandler
from ._run import start_server


Response = namedtuple("Response", ["status", "headers", "body"])

# A handshake nonce and the accept key that the server must reply with (RFC 6455)
WS_KEY = "dGhlIHNhbXBsZSBub25jZQ=="
WS_ACCEPT = "s3pPLMBiTxaQ9kYGzzhZRbK+xOo="


def make_request_bytes(method, path, headers=None):
    """ Compose the bytes of an HTTP/1.1 request without body.
    """
    lines = [f"{method} {path} HTTP/1.1", "Host: testserver"]
    for key, val in (headers or {}).items():
        lines.append(f"{key}: {val}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def make_handshake_bytes(path="/", headers=None):
    """ Compose the bytes of a websocket handshake request.
    """
    ws_headers = {
        "Upgrade": "websocket",
        "Connection": "Upgrade",
        "Sec-WebSocket-Key": WS_KEY,
        "Sec-WebSocket-Version": "13",
    }
    ws_headers.update(headers or {})
    return make_request_bytes("GET", path, ws_headers)


def parse_response(data):
    """ Parse the raw bytes of an HTTP response into a named tuple
    ``(status, headers, body)``. Header keys are lowercase. The body is
    not decoded.
    """
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        key, _, val = line.partition(":")
        headers[key.strip().lower()] = val.strip()
    return Response(status, headers, body)


class BaseTestServer:
    """ Base class for test servers. Objects of this class represent a
    server instance that can be used to test a registry (and websocket
    handler).

    The server can be started/stopped by using it as a context manager.
    When the server has stopped, the ``out`` attribute contains the log
    output of the server.
    """

    def __init__(self, registry, ws_handler=None, **kwargs):
        if not isinstance(registry, AssetRegistry):
            raise TypeError("Test servers need an AssetRegistry.")
        self._registry = registry
        self._ws_handler = ws_handler
        self._kwargs = kwargs
        self._out = ""
        self._log_stream = None
        self._log_handler = None

    @property
    def registry(self):
        """ The registry that was given at instantiation.
        """
        return self._registry

    @property
    def out(self):
        """ The log output of the server. This gets set when the
        with-statement using this object exits.
        """
        return self._out

    def __enter__(self):
        self._out = ""
        self._log_stream = io.StringIO()
        self._log_handler = logging.StreamHandler(self._log_stream)
        self._log_handler.setFormatter(Formatter())
        logger.addHandler(self._log_handler)
        try:
            self._start_server()
        except Exception as err:
            logger.removeHandler(self._log_handler)
            raise err
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            self._stop_server()
        finally:
            logger.removeHandler(self._log_handler)
            self._out = self.filter_lines(self._log_stream.getvalue())

    def filter_lines(self, text):
        """ Overloadable line filter. By default drops info messages.
        """
        lines = [line for line in text.splitlines() if line.strip()]
        return "\n".join(line for line in lines if not line.startswith("[I "))

    def get(self, path, headers=None):
        """ Send a GET request to the server. See request() for detais.
        """
        return self.request("GET", path, headers=headers)

    def head(self, path, headers=None):
        """ Send a HEAD request to the server. See request() for detais.
        """
        return self.request("HEAD", path, headers=headers)

    def put(self, path, headers=None):
        """ Send a PUT request to the server. See request() for detais.
        """
        return self.request("PUT", path, headers=headers)

    def request(self, method, path, headers=None):
        """ Send a request to the server. Returns a named tuple ``(status, headers, body)``.
        """
        raise NotImplementedError()

    def _start_server(self):
        raise NotImplementedError()

    def _stop_server(self):
        raise NotImplementedError()


class _MockWriter:
    """ Collects what the server writes, mimicking ``asyncio.StreamWriter``.
    """

    def __init__(self):
        self._chunks = []
        self.eof = False
        self.closed = False

    def write(self, data):
        if self.closed:
            raise ConnectionResetError("Writing to a closed mock connection.")
        self._chunks.append(bytes(data))

    async def drain(self):
        pass

    def can_write_eof(self):
        return True

    def write_eof(self):
        self.eof = True

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        if name == "peername":
            return ("testclient", 50000)
        return default

    def getvalue(self):
        return b"".join(self._chunks)


class MockTestServer(BaseTestServer):
    """ Subclass of BaseTestServer that runs the connection handler
    in-process, without sockets. The client sends its bytes at once and
    then closes its side. This is fast and allows sending arbitrary
    (e.g. malformed) requests with ``raw()``.
    """

    def _start_server(self):
        self._loop = asyncio.new_event_loop()
        self._handler = ConnectionHandler(
            self._registry, self._ws_handler, **self._kwargs
        )
        self._registry.freeze()

    def _stop_server(self):
        self._loop.close()

    def raw(self, data):
        """ Send the given bytes as one connection. Returns all bytes that
        the server send back before closing.
        """

        async def communicate():
            reader = asyncio.StreamReader()
            reader.feed_data(data)
            reader.feed_eof()
            writer = _MockWriter()
            await self._handler(reader, writer)
            assert writer.closed
            return writer.getvalue()

        return self._loop.run_until_complete(communicate())

    def request(self, method, path, headers=None):
        data = self.raw(make_request_bytes(method, path, headers))
        return parse_response(data)


class ThreadTestServer(BaseTestServer):
    """ Subclass of BaseTestServer that runs a real server on a free port,
    in a background thread. Requests are made with ``requests`` (which
    decompresses gzipped bodies), and websockets can be tested with
    ``ws_communicate()``.
    """

    def _start_server(self):
        self._loop = asyncio.new_event_loop()
        self._server = None
        self._error = None
        ready = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(ready,), daemon=True)
        self._thread.start()
        if not ready.wait(5):
            raise RuntimeError("Server failed to start in time!")
        if self._error is not None:
            raise RuntimeError(f"Server failed to start: {self._error}")

    def _run(self, ready):
        asyncio.set_event_loop(self._loop)
        try:
            co = start_server(
                self._registry, self._ws_handler, "127.0.0.1:0", **self._kwargs
            )
            self._server = self._loop.run_until_complete(co)
        except Exception as err:
            self._error = err
            ready.set()
            return
        ready.set()
        self._loop.run_forever()
        # Clean up
        self._server.close()
        tasks = asyncio.all_tasks(self._loop)
        for task in tasks:
            task.cancel()
        self._loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
        self._loop.close()

    def _stop_server(self):
        t0 = time.time()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(5)
        if self._thread.is_alive():
            raise RuntimeError(f"Server did not stop in {time.time() - t0:0.1f}s")

    @property
    def port(self):
        """ The port that the server listens on.
        """
        return self._server.sockets[0].getsockname()[1]

    @property
    def url(self):
        """ The url at which the server is listening.
        """
        return f"http://127.0.0.1:{self.port}"

    def request(self, method, path, headers=None):
        url = self.url + "/" + path.lstrip("/")
        r = requests.request(method, url, headers=headers, timeout=5)
        return Response(r.status_code, r.headers, r.content)

    def ws_communicate(self, path, client_func):
        """ Connect a websocket and communicate over it. The ``client_func``
        receives a (synchronous) websocket client object from the
        ``websockets`` library, with methods ``send``, ``recv`` and ``close``.
        Returns what ``client_func`` returns.
        """
        from websockets.sync.client import connect

        url = self.url.replace("http", "ws") + "/" + path.lstrip("/")
        with connect(url, open_timeout=5, close_timeout=5) as ws:
            return client_func(ws)

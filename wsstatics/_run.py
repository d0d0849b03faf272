"""
This module implements ``serve()`` and ``run()`` to start a server that
serves the assets of a registry, and websockets on the same port.
"""

import asyncio

from ._logging import logger, set_log_level
from ._server import ConnectionHandler


def parse_bind(bind):
    """ Turn a "host:port" string into a (host, port) tuple.
    """
    if not isinstance(bind, str):
        raise TypeError("The bind arg must be a string.")
    host, colon, port = bind.replace("localhost", "127.0.0.1").rpartition(":")
    if not colon or not host:
        raise ValueError(f"The bind arg must be 'host:port', got {bind!r}")
    try:
        port = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in bind arg {bind!r}")
    return host, port


async def start_server(registry, ws_handler=None, bind="localhost:8080", **kwargs):
    """ Start listening and return the ``asyncio.Server``. The registry is
    frozen first: its table and root alias are fixed from here on.

    Arguments:

    * ``registry`` (required): The AssetRegistry to serve from.
    * ``ws_handler``: Async function to handle websocket connections.
    * ``bind``: The address to listen on, as "host:port".
    * ``kwargs``: additional arguments for the ConnectionHandler, e.g.
      ``max_request_size`` and ``max_header_size``.
    """
    host, port = parse_bind(bind)
    handler = ConnectionHandler(registry, ws_handler, **kwargs)
    registry.freeze()
    server = await asyncio.start_server(handler, host, port)
    for sock in server.sockets:
        addr = sock.getsockname()
        logger.info(f"Serving on http://{addr[0]}:{addr[1]}")
    return server


async def serve(registry, ws_handler=None, bind="localhost:8080", **kwargs):
    """ Serve the assets of the given registry until cancelled. See
    ``start_server()`` for the arguments.
    """
    server = await start_server(registry, ws_handler, bind, **kwargs)
    async with server:
        await server.serve_forever()


def run(registry, ws_handler=None, bind="localhost:8080", log_level=None, **kwargs):
    """ Programatic API to run a server (blocking). Serves the assets in
    the given registry over HTTP, and hands websocket connections to
    the given ``ws_handler``. Stops on KeyboardInterrupt.

    Arguments:

    * ``registry`` (required): The AssetRegistry to serve from.
    * ``ws_handler``: Async function that receives a WebsocketConnection.
    * ``bind``: The address to listen on, as "host:port".
    * ``log_level``: The logging level, e.g. 'warning', 'info', 'debug'.
    * ``kwargs``: additional arguments for the ConnectionHandler.
    """
    if log_level is not None:
        set_log_level(log_level)
    try:
        asyncio.run(serve(registry, ws_handler, bind, **kwargs))
    except KeyboardInterrupt:
        logger.info("Server stopped")

"""
This module implements the ConnectionHandler, the callback for
``asyncio.start_server()``. It reads the head of the first request and
either serves it from the asset table, or performs the websocket
handshake and hands the connection to the websocket handler.
"""

import inspect

from websockets.server import ServerProtocol

from ._http import (
    HEAD_TERMINATOR,
    MAX_HEADER_SIZE,
    MAX_PATH_LENGTH,
    BAD_HANDSHAKE,
    ResponseTooLargeError,
    build_response,
    looks_like_ws_upgrade,
    serve_static_http,
)
from ._logging import logger
from ._registry import AssetRegistry
from ._websocket import WebsocketConnection, DisconnectedError


MAX_REQUEST_SIZE = 8192  # max bytes read for the head of a request


class ConnectionHandler:
    """ Handles connections for a server. The ``registry`` provides the
    assets to serve. The optional ``ws_handler`` is an async function
    that receives a ``WebsocketConnection`` after each successful handshake.
    Without it, websocket connections are closed right away.
    """

    def __init__(
        self,
        registry,
        ws_handler=None,
        *,
        max_request_size=MAX_REQUEST_SIZE,
        max_header_size=MAX_HEADER_SIZE,
        max_path_length=MAX_PATH_LENGTH,
    ):
        if not isinstance(registry, AssetRegistry):
            raise TypeError("ConnectionHandler expects an AssetRegistry.")
        if ws_handler is not None and not inspect.iscoroutinefunction(ws_handler):
            raise TypeError("The websocket handler must be a coroutine function.")
        self._registry = registry
        self._ws_handler = ws_handler
        self._max_request_size = int(max_request_size)
        self._max_header_size = int(max_header_size)
        self._max_path_length = int(max_path_length)

    @property
    def registry(self):
        """ The AssetRegistry that this handler serves from.
        """
        return self._registry

    async def __call__(self, reader, writer):
        try:
            await self._handle(reader, writer)
        except ResponseTooLargeError as err:
            logger.error(f"Dropping connection: {err}")
        except ConnectionError as err:
            logger.debug(f"Connection lost: {err}")
        except Exception as err:
            logger.error(f"{type(err).__name__} in connection: {err}", exc_info=err)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass  # Already gone

    async def _read_head(self, reader):
        """ Read until the end of the request head, EOF, or the size limit.
        """
        data = b""
        while HEAD_TERMINATOR not in data and len(data) < self._max_request_size:
            chunk = await reader.read(self._max_request_size - len(data))
            if not chunk:
                break
            data += chunk
        return data

    async def _handle(self, reader, writer):
        data = await self._read_head(reader)
        if not data:
            return  # Client connected and left

        if HEAD_TERMINATOR in data and looks_like_ws_upgrade(data):
            await self._handle_websocket(data, reader, writer)
        else:
            response = serve_static_http(
                data,
                self._registry,
                max_header_size=self._max_header_size,
                max_path_length=self._max_path_length,
            )
            writer.write(response)
            await writer.drain()

    async def _handle_websocket(self, data, reader, writer):
        protocol = ServerProtocol()
        protocol.receive_data(data)
        events = protocol.events_received()

        # Let the protocol validate the handshake and produce the response
        request = events[0] if events else None
        response = None
        if request is not None and protocol.handshake_exc is None:
            response = protocol.accept(request)
        if response is None or response.status_code != 101:
            logger.debug(f"Bad websocket handshake: {protocol.handshake_exc}")
            writer.write(
                build_response(
                    400, None, BAD_HANDSHAKE, max_header_size=self._max_header_size
                )
            )
            await writer.drain()
            return

        protocol.send_response(response)
        connection = WebsocketConnection(protocol, reader, writer, request)
        connection._process_events(events[1:])
        await connection._flush()
        await self._run_ws_handler(connection)

    async def _run_ws_handler(self, connection):
        try:
            if self._ws_handler is not None:
                result = await self._ws_handler(connection)
                if result is not None:
                    raise IOError(
                        "A websocket handler should return None; "
                        + "use connection.send() and connection.receive() to communicate."
                    )
        except DisconnectedError:
            pass  # Not really an error
        except Exception as err:
            logger.error(
                f"{type(err).__name__} in websocket handler: {err}", exc_info=err
            )
        finally:
            try:
                await connection.close()
            except OSError as err:
                logger.debug(f"Error closing ws: {err}")

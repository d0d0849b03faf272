"""
This module implements the WebsocketConnection class that is passed to
the websocket handler once the handshake has succeeded. The framing is
done by the (sans-I/O) protocol object of the ``websockets`` library; this
class feeds it with data from the stream and writes out what it produces.
"""

import json
import asyncio

from websockets.frames import CloseCode, Opcode
from websockets.protocol import State


READ_SIZE = 2 ** 16
CLOSE_TIMEOUT = 5  # seconds to wait for the client to confirm a close


class DisconnectedError(IOError):
    """ An error raised when the websocket is disconnected by the client.
    Subclass of IOError. You don't need to catch these - it is considered
    ok for a handler to exit by this.
    """


class WebsocketConnection:
    """ An open websocket connection. An object of this class is passed
    to the websocket handler.
    """

    __slots__ = (
        "_protocol",
        "_reader",
        "_writer",
        "_request",
        "_messages",
        "_fragments",
        "_eof",
    )

    def __init__(self, protocol, reader, writer, request):
        self._protocol = protocol
        self._reader = reader
        self._writer = writer
        self._request = request
        self._messages = []
        self._fragments = None  # (opcode, chunks) of a message in progress
        self._eof = False

    def __repr__(self):
        return f"<WebsocketConnection {self.path} {self.state.name}>"

    @property
    def path(self):
        """ The path of the handshake request (including query string).
        """
        return self._request.path

    @property
    def headers(self):
        """ The headers of the handshake request (case insensitive mapping).
        """
        return self._request.headers

    @property
    def remote(self):
        """ The address of the client, as reported by the transport.
        """
        return self._writer.get_extra_info("peername")

    @property
    def state(self):
        """ The protocol state (``websockets.protocol.State``).
        """
        return self._protocol.state

    @property
    def close_code(self):
        """ The close code received from the client, or None.
        """
        close = self._protocol.close_rcvd
        return None if close is None else close.code

    def _process_events(self, events=None):
        if events is None:
            events = self._protocol.events_received()
        for frame in events:
            opcode = frame.opcode
            if opcode is Opcode.TEXT or opcode is Opcode.BINARY:
                self._fragments = opcode, [frame.data]
            elif opcode is Opcode.CONT and self._fragments is not None:
                self._fragments[1].append(frame.data)
            else:
                continue  # Control frames are answered by the protocol
            if frame.fin:
                opcode, chunks = self._fragments
                self._fragments = None
                data = b"".join(chunks)
                if opcode is Opcode.TEXT:
                    try:
                        data = data.decode()
                    except UnicodeDecodeError:
                        # The close frame goes out with the next flush
                        self._protocol.fail(CloseCode.INVALID_DATA, "invalid utf-8")
                        break
                self._messages.append(data)

    async def _flush(self):
        for data in self._protocol.data_to_send():
            if data:
                self._writer.write(data)
            elif self._writer.can_write_eof():
                self._writer.write_eof()
        await self._writer.drain()

    async def _receive_more(self):
        data = await self._reader.read(READ_SIZE)
        if data:
            self._protocol.receive_data(data)
        else:
            self._eof = True
            self._protocol.receive_eof()
        self._process_events()
        await self._flush()

    async def send(self, data):
        """ Async function to send a websocket message. The value can
        be ``bytes``, ``str`` or ``dict``. In the latter case, the message is
        encoded with JSON (and UTF-8).
        """
        if self._protocol.state is not State.OPEN:
            raise IOError("Cannot send to a closed ws.")
        if isinstance(data, bytes):
            self._protocol.send_binary(data)
        elif isinstance(data, str):
            self._protocol.send_text(data.encode())
        elif isinstance(data, dict):
            self._protocol.send_binary(json.dumps(data).encode())
        else:
            raise TypeError(f"Can only send bytes/str/dict over ws, not {type(data)}")
        await self._flush()

    async def receive(self):
        """ Async function to receive one websocket message. The result can be
        ``bytes`` or ``str`` (depending on how it was sent).
        Raises ``DisconnectedError`` when the client closed the connection.
        """
        while not self._messages:
            if self._eof or self._protocol.state is not State.OPEN:
                raise DisconnectedError(f"ws disconnect {self.close_code or 1006}")
            await self._receive_more()
        return self._messages.pop(0)

    async def receive_iter(self):
        """ Async generator to iterate over incoming messages as long
        as the connection is not closed. Each message can be a ``bytes`` or ``str``.
        """
        while True:
            try:
                result = await self.receive()
                yield result
            except DisconnectedError:
                break

    async def receive_json(self):
        """ Async convenience function to receive a JSON message. Works
        on binary as well as text messages, as long as its JSON encoded.
        Raises ``DisconnectedError`` when the client closed the connection.
        """
        result = await self.receive()
        if isinstance(result, bytes):
            result = result.decode()
        return json.loads(result)

    async def close(self, code=1000):
        """ Async function to close the websocket connection. Waits (a
        limited time) for the client to confirm.
        """
        if self._protocol.state is State.OPEN:
            self._protocol.send_close(code)
            await self._flush()
        try:
            await asyncio.wait_for(self._wait_closed(), CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            pass  # The transport is closed anyway

    async def _wait_closed(self):
        while not self._eof and self._protocol.state is not State.CLOSED:
            await self._receive_more()

"""
Chat socket for the Mixer ping bot.

This module provides the ChatSocket class that opens the chat WebSocket,
authenticates it with the channel id, user id and auth key, and then
dispatches chat events to registered handlers until the connection closes.

Packets on the socket are JSON objects:
    method: {"type": "method", "method": "msg", "arguments": [...], "id": 3}
    reply:  {"type": "reply", "id": 3, "error": null, "data": {...}}
    event:  {"type": "event", "event": "ChatMessage", "data": {...}}
"""

import asyncio
import inspect
import json
import logging
from typing import Dict, List, Optional, Callable, Any, Sequence

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from exceptions import HandshakeTimeout, AuthKeyRejected, TransportError
from models import UserJoined, MessageReceived, SessionState, CloseReason


USER_JOIN = 'UserJoin'
CHAT_MESSAGE = 'ChatMessage'

# Events delivered as typed models; every other event reaches handlers as its raw data dict
EVENT_PARSERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    USER_JOIN: UserJoined.from_event,
    CHAT_MESSAGE: MessageReceived.from_event,
}


class ChatSocket:
    """
    A single authenticated chat connection.

    The socket moves through CONNECTING -> AUTHENTICATING -> READY -> CLOSED.
    Events are only dispatched and outbound calls only accepted while READY.
    CLOSED is terminal; there is no reconnection.

    One reader task owns inbound traffic and runs handlers one after another,
    so a handler always finishes before the next event is dispatched. One
    writer task drains outbound calls.
    """

    def __init__(self, handshake_timeout: float = 10.0, connector: Optional[Callable] = None):
        """
        Initialize the chat socket.

        Args:
            handshake_timeout: Seconds to wait for the socket to open and for
                the auth reply
            connector: Coroutine function that opens a WebSocket for a URI
                (defaults to websockets.connect)
        """
        self.handshake_timeout = handshake_timeout
        self.connector = connector or websockets.connect
        self.logger = logging.getLogger(__name__)

        self.state = SessionState.CONNECTING
        self.close_reason: Optional[CloseReason] = None
        self.endpoint: Optional[str] = None
        self.roles: List[str] = []

        self._ws = None
        self._handlers: Dict[str, List[Callable]] = {}
        self._close_handlers: List[Callable] = []
        self._pending: Dict[int, asyncio.Future] = {}
        self._next_id = 0
        self._auth_id: Optional[int] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._closed_event = asyncio.Event()

        self.reader_task: Optional[asyncio.Task] = None
        self.writer_task: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    async def connect(self, endpoints: Sequence[str], channel_id: int, user_id: int, auth_key: str) -> 'ChatSocket':
        """
        Open the socket and authenticate it.

        Only the first endpoint is used. The auth arguments are sent in the
        order (channel_id, user_id, auth_key), which the chat server requires.

        Args:
            endpoints: Chat endpoints from the join response
            channel_id: Channel being joined
            user_id: User to chat as
            auth_key: Single-use key from the join response

        Returns:
            This socket, in the READY state

        Raises:
            HandshakeTimeout: If the socket or the auth reply takes too long
            AuthKeyRejected: If the server rejects the auth packet
            TransportError: If the socket fails to open or drops during auth
        """
        if self.state is not SessionState.CONNECTING or self._ws is not None:
            raise TransportError(f"Chat socket cannot connect from state {self.state.value}")

        endpoints = list(endpoints)
        if not endpoints:
            await self._finish(CloseReason(CloseReason.HANDSHAKE_FAILED, "no chat endpoints"))
            raise TransportError("No chat endpoints to connect to")

        self.endpoint = endpoints[0]
        self.logger.info(f"Connecting to chat endpoint {self.endpoint}")

        try:
            self._ws = await asyncio.wait_for(self.connector(self.endpoint), self.handshake_timeout)
        except (asyncio.TimeoutError, TimeoutError):
            await self._finish(CloseReason(CloseReason.HANDSHAKE_FAILED, "timed out opening socket"))
            raise HandshakeTimeout(f"Timed out opening {self.endpoint} after {self.handshake_timeout}s")
        except (OSError, WebSocketException) as e:
            await self._finish(CloseReason(CloseReason.TRANSPORT_ERROR, str(e)))
            raise TransportError(f"Failed to open chat socket {self.endpoint}: {e}") from e

        self.state = SessionState.AUTHENTICATING
        self._outbox = asyncio.Queue()
        self.reader_task = asyncio.create_task(self._read_loop())
        self.writer_task = asyncio.create_task(self._write_loop())

        # The reader switches to READY when it sees the accepted auth reply,
        # so events that follow it are dispatched
        self._auth_id = self._next_id
        try:
            reply = await asyncio.wait_for(
                self._request('auth', [channel_id, user_id, auth_key]),
                self.handshake_timeout
            )
        except (asyncio.TimeoutError, TimeoutError):
            await self._finish(CloseReason(CloseReason.HANDSHAKE_FAILED, "auth reply timed out"))
            raise HandshakeTimeout(f"No auth reply from {self.endpoint} within {self.handshake_timeout}s")
        except TransportError as e:
            await self._finish(CloseReason(CloseReason.TRANSPORT_ERROR, str(e)))
            raise

        if not self._auth_accepted(reply):
            detail = reply.get('error') or reply.get('data')
            await self._finish(CloseReason(CloseReason.HANDSHAKE_FAILED, f"auth rejected: {detail}"))
            raise AuthKeyRejected(f"Chat server rejected authentication: {detail}")

        if not self.is_ready:
            raise TransportError(f"Chat socket closed during authentication: {self.close_reason}")

        self.logger.info(f"Authenticated to channel {channel_id} as user {user_id} (roles: {self.roles})")
        return self

    def on(self, event_name: str, handler: Callable) -> None:
        """
        Register a handler for a chat event.

        Handlers run in registration order. Registering the same handler
        twice makes it run twice per event.
        """
        self._handlers.setdefault(event_name, []).append(handler)

    def on_close(self, handler: Callable) -> None:
        """Register a handler called with the CloseReason once the socket closes."""
        self._close_handlers.append(handler)

    def call(self, method: str, arguments: List[Any]) -> Optional[int]:
        """
        Queue a method call on the chat server.

        Delivery is fire-and-forget; a failed write closes the socket instead
        of raising here.

        Returns:
            The packet id, or None if the socket is not ready
        """
        if not self.is_ready:
            self.logger.warning(f"Dropping {method} call: chat socket is {self.state.value}")
            return None

        packet = self._packet(method, arguments)
        self._outbox.put_nowait(packet)
        return packet['id']

    def send(self, text: str) -> Optional[int]:
        """Queue a chat message."""
        return self.call('msg', [text])

    async def close(self) -> None:
        """Close the socket."""
        await self._finish(CloseReason(CloseReason.CLIENT_CLOSED, "closed by client"))

    async def wait_closed(self) -> CloseReason:
        """Wait until the socket is closed and return why."""
        await self._closed_event.wait()
        return self.close_reason

    def _packet(self, method: str, arguments: List[Any]) -> Dict[str, Any]:
        packet = {
            'type': 'method',
            'method': method,
            'arguments': list(arguments),
            'id': self._next_id
        }
        self._next_id += 1
        return packet

    async def _request(self, method: str, arguments: List[Any]) -> Dict[str, Any]:
        """Send a method packet directly and wait for its reply."""
        packet = self._packet(method, arguments)
        future = asyncio.get_running_loop().create_future()
        self._pending[packet['id']] = future

        try:
            await self._ws.send(json.dumps(packet))
        except (OSError, WebSocketException) as e:
            self._pending.pop(packet['id'], None)
            raise TransportError(f"Failed to send {method} packet: {e}") from e

        return await future

    async def _read_loop(self) -> None:
        """Read frames until the connection ends."""
        reason = CloseReason(CloseReason.SERVER_CLOSED, "connection closed by server")
        try:
            async for raw in self._ws:
                await self._handle_frame(raw)
        except ConnectionClosed as e:
            reason = CloseReason(CloseReason.TRANSPORT_ERROR, str(e))
        except (OSError, WebSocketException) as e:
            self.logger.error(f"Chat socket read failed: {e}")
            reason = CloseReason(CloseReason.TRANSPORT_ERROR, str(e))
        except Exception as e:
            self.logger.exception(f"Unexpected error reading chat socket: {e}")
            reason = CloseReason(CloseReason.TRANSPORT_ERROR, f"reader failed: {e}")
        finally:
            await self._finish(reason)

    async def _write_loop(self) -> None:
        """Send queued method packets in order."""
        while True:
            packet = await self._outbox.get()
            try:
                await self._ws.send(json.dumps(packet))
                self.logger.debug(f"Sent {packet['method']} packet {packet['id']}")
            except (OSError, WebSocketException) as e:
                self.logger.error(f"Failed to send {packet['method']} packet: {e}")
                await self._finish(CloseReason(CloseReason.TRANSPORT_ERROR, str(e)))
                return

    async def _handle_frame(self, raw: Any) -> None:
        """Route one inbound frame."""
        try:
            packet = json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            self.logger.warning(f"Ignoring malformed chat frame: {raw!r}")
            return

        if not isinstance(packet, dict):
            return

        packet_type = packet.get('type')
        if packet_type == 'reply':
            self._resolve_reply(packet)
        elif packet_type == 'event':
            await self._dispatch(packet.get('event'), packet.get('data'))
        else:
            self.logger.debug(f"Ignoring chat packet of type {packet_type!r}")

    def _resolve_reply(self, packet: Dict[str, Any]) -> None:
        packet_id = packet.get('id')
        future = self._pending.pop(packet_id, None) if isinstance(packet_id, int) else None
        if future is not None and not future.done():
            if (packet_id == self._auth_id and self.state is SessionState.AUTHENTICATING
                    and self._auth_accepted(packet)):
                self.roles = list(packet['data'].get('roles') or [])
                self.state = SessionState.READY
            future.set_result(packet)
        elif packet.get('error'):
            self.logger.warning(f"Chat call {packet_id} failed: {packet['error']}")

    @staticmethod
    def _auth_accepted(reply: Dict[str, Any]) -> bool:
        data = reply.get('data')
        return not reply.get('error') and isinstance(data, dict) and bool(data.get('authenticated'))

    async def _dispatch(self, event_name: Optional[str], data: Any) -> None:
        """Run every handler registered for an event."""
        if not isinstance(event_name, str):
            self.logger.warning(f"Ignoring chat event with invalid name: {event_name!r}")
            return

        if not self.is_ready:
            self.logger.debug(f"Not dispatching {event_name}: chat socket is {self.state.value}")
            return

        handlers = list(self._handlers.get(event_name, ()))
        if not handlers:
            return

        event = data
        parser = EVENT_PARSERS.get(event_name)
        if parser:
            try:
                event = parser(data or {})
            except (AttributeError, TypeError, ValueError) as e:
                self.logger.warning(f"Ignoring malformed {event_name} event: {e}")
                return

        for handler in handlers:
            try:
                await self._invoke(handler, event)
            except Exception as e:
                self.logger.error(f"Error in {event_name} handler: {e}")

    async def _invoke(self, handler: Callable, *args: Any) -> None:
        result = handler(*args)
        if inspect.isawaitable(result):
            await result

    async def _finish(self, reason: CloseReason) -> None:
        """Move to CLOSED, release the connection and notify close handlers."""
        if self.close_reason is None:
            self.close_reason = reason
        if self.state is SessionState.CLOSED:
            return

        self.state = SessionState.CLOSED

        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(f"Chat socket closed: {self.close_reason}"))
        self._pending.clear()

        current = asyncio.current_task()
        for task in (self.writer_task, self.reader_task):
            if task and task is not current and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, WebSocketException) as e:
                self.logger.debug(f"Error closing chat socket: {e}")

        self._closed_event.set()
        self.logger.info(f"Chat socket closed ({self.close_reason})")

        for handler in self._close_handlers:
            try:
                await self._invoke(handler, self.close_reason)
            except Exception as e:
                self.logger.error(f"Error in close handler: {e}")

"""
Persistent WebSocket connection to a Yellow ClearNode.

Handles the socket lifecycle, request/response correlation over a
single socket and automatic reconnection with exponential backoff.
Inbound frames are broadcast to message handlers before correlation.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine

import websockets

from jack_sdk.errors import JackError, JackTimeoutError, NetworkError
from jack_sdk.events import EventHandler, EventManager

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Coroutine[Any, Any, None] | None]
WebSocketFactory = Callable[[str], Awaitable[Any]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISPOSED = "disposed"


def calculate_backoff_delay(initial_delay: float, attempt: int) -> float:
    """Delay before reconnect ``attempt``: ``initial * 2**(attempt-1)``, attempt clamped to >= 1."""
    if attempt < 1:
        return initial_delay
    return initial_delay * 2 ** (attempt - 1)


def extract_method(message: dict[str, Any]) -> str | None:
    """Correlation key of an inbound frame: ``method``, ``type`` or ``response.method``."""
    if isinstance(message.get("method"), str):
        return message["method"]
    if isinstance(message.get("type"), str):
        return message["type"]
    response = message.get("response")
    if isinstance(response, dict) and isinstance(response.get("method"), str):
        return response["method"]
    return None


async def _websockets_factory(url: str) -> Any:
    return await websockets.connect(url)


class ClearNodeConnection:
    """Socket client with correlated requests.

    Args:
        url: ClearNode WebSocket URL.
        max_reconnect_attempts: Reconnects tried after an unexpected drop.
        reconnect_delay_ms: Base delay for :func:`calculate_backoff_delay`.
        message_timeout_ms: Default wait for a correlated response.
        ws_factory: Coroutine function opening a socket for a URL.
            Defaults to ``websockets.connect``.
    """

    def __init__(
        self,
        url: str,
        *,
        max_reconnect_attempts: int = 5,
        reconnect_delay_ms: float = 1000,
        message_timeout_ms: float = 30000,
        ws_factory: WebSocketFactory | None = None,
    ) -> None:
        self.url = url
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_delay_ms = reconnect_delay_ms
        self._message_timeout_ms = message_timeout_ms
        self._ws_factory = ws_factory or _websockets_factory

        self._state = ConnectionState.DISCONNECTED
        self._ws: Any | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._pending: list[tuple[str, asyncio.Future[Any]]] = []
        self._message_handlers: list[MessageHandler] = []
        self._events = EventManager()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._ws is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ---- Lifecycle ----

    async def connect(self) -> None:
        """Open the socket. No-op when already connected.

        Raises:
            JackError: The connection was disposed by :meth:`disconnect`.
            NetworkError: The socket could not be opened.
        """
        if self._state == ConnectionState.DISPOSED:
            raise JackError("ClearNodeConnection has been disposed")
        if self.is_connected:
            return

        self._state = ConnectionState.CONNECTING
        try:
            ws = await self._ws_factory(self.url)
        except Exception as e:
            if self._state != ConnectionState.DISPOSED:
                self._state = ConnectionState.DISCONNECTED
            raise NetworkError(f"WebSocket connection failed: {e}", original_error=e) from e

        if self._state == ConnectionState.DISPOSED:
            await ws.close()
            raise JackError("ClearNodeConnection has been disposed")

        self._ws = ws
        self._state = ConnectionState.CONNECTED
        self._listen_task = asyncio.create_task(self._listen_loop(ws))
        logger.info("Connected to ClearNode at %s", self.url)
        await self._events.emit("connected")

    async def disconnect(self) -> None:
        """Close the socket for good and reject every pending request.

        Idempotent. The connection cannot be reopened afterwards.
        """
        was_disposed = self._state == ConnectionState.DISPOSED
        self._state = ConnectionState.DISPOSED
        current = asyncio.current_task()
        reconnecting = self._reconnect_task is not None and not self._reconnect_task.done()

        if reconnecting and self._reconnect_task is not current:
            self._reconnect_task.cancel()
        self._reconnect_task = None

        self._reject_pending(JackError("Connection closed by client"))
        self._message_handlers.clear()

        ws, self._ws = self._ws, None
        listen_task, self._listen_task = self._listen_task, None
        if listen_task and not listen_task.done() and listen_task is not current:
            listen_task.cancel()
            try:
                await listen_task
            except asyncio.CancelledError:
                pass

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug("Error closing ClearNode socket: %s", e)

        # a drop whose reconnects ran out has already announced itself
        if not was_disposed and (ws is not None or reconnecting):
            logger.info("Disconnected from ClearNode")
            await self._events.emit("disconnected")

    # ---- Messaging ----

    async def send(self, payload: Any) -> None:
        """Send without waiting for a reply.

        Raises:
            JackError: Not connected.
        """
        ws = self._require_socket()
        await ws.send(self._encode(payload))

    async def send_and_wait(
        self,
        payload: Any,
        method: str,
        timeout_ms: float | None = None,
    ) -> dict[str, Any]:
        """Send ``payload`` and wait for the next inbound frame keyed ``method``.

        Concurrent calls with different keys resolve independently, in
        whatever order their responses arrive.

        Raises:
            JackError: Not connected, or the connection closed while waiting.
            JackTimeoutError: No matching frame within the timeout.
            NetworkError: The frame could not be written.
        """
        ws = self._require_socket()
        timeout = self._message_timeout_ms if timeout_ms is None else timeout_ms
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        entry = (method, future)
        self._pending.append(entry)
        try:
            try:
                await ws.send(self._encode(payload))
            except Exception as e:
                raise NetworkError(f"WebSocket send failed: {e}", original_error=e) from e
            return await asyncio.wait_for(future, timeout / 1000.0)
        except asyncio.TimeoutError as e:
            raise JackTimeoutError(
                f"Request timed out waiting for response to method: {method}",
                timeout,
                context={"method": method},
            ) from e
        finally:
            if entry in self._pending:
                self._pending.remove(entry)

    def on_message(self, handler: MessageHandler) -> None:
        """Receive every inbound frame (decoded JSON, or the raw frame if not JSON)."""
        self._message_handlers.append(handler)

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to ``connected`` or ``disconnected``."""
        self._events.subscribe(event_type, handler)

    def off(self, event_type: str, handler: EventHandler | None = None) -> None:
        self._events.unsubscribe(event_type, handler)

    # ---- Internal ----

    def _require_socket(self) -> Any:
        if not self.is_connected:
            raise JackError("WebSocket is not connected")
        return self._ws

    @staticmethod
    def _encode(payload: Any) -> str:
        if isinstance(payload, (str, bytes)):
            return payload
        return json.dumps(payload)

    def _reject_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, []
        for _, future in pending:
            if not future.done():
                future.set_exception(error)

    async def _dispatch(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            data = raw

        for handler in list(self._message_handlers):
            try:
                result = handler(data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in ClearNode message handler")

        if not isinstance(data, dict):
            return
        method = extract_method(data)
        if method is None:
            return
        for entry in self._pending:
            key, future = entry
            if key == method and not future.done():
                self._pending.remove(entry)
                future.set_result(data)
                break

    async def _listen_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                await self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("ClearNode listen loop ended: %s", e)

        if self._ws is ws:
            self._handle_drop()

    def _handle_drop(self) -> None:
        was_connected = self._state == ConnectionState.CONNECTED
        self._ws = None
        self._listen_task = None
        if self._state == ConnectionState.DISPOSED:
            return
        self._state = ConnectionState.DISCONNECTED
        if was_connected:
            logger.warning("ClearNode connection lost")
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        for attempt in range(1, self._max_reconnect_attempts + 1):
            delay = calculate_backoff_delay(self._reconnect_delay_ms, attempt) / 1000.0
            logger.info(
                "Reconnecting to ClearNode in %.1fs (attempt %d/%d)",
                delay, attempt, self._max_reconnect_attempts,
            )
            await asyncio.sleep(delay)
            if self._state == ConnectionState.DISPOSED:
                return
            try:
                await self.connect()
                self._reconnect_task = None
                return
            except JackError as e:
                logger.warning("Reconnect attempt %d failed: %s", attempt, e)
                if self._state == ConnectionState.DISPOSED:
                    return

        logger.warning("All %d ClearNode reconnection attempts exhausted", self._max_reconnect_attempts)
        self._reconnect_task = None
        self._reject_pending(JackError("All reconnection attempts exhausted"))
        await self._events.emit("disconnected")

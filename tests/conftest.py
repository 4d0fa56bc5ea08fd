"""Shared fixtures and payload builders."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable

import pytest_asyncio

from jack_sdk.client import JackClient


BASE_URL = "http://api.jack.test"

USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"


def intent_params(**overrides: Any) -> dict[str, Any]:
    params = {
        "sourceChain": "arbitrum",
        "destinationChain": "base",
        "tokenIn": USDC,
        "tokenOut": WETH,
        "amountIn": "1000000",
        "minAmountOut": "400000000000000",
        "deadline": int(time.time() * 1000) + 3_600_000,
    }
    params.update(overrides)
    return params


def intent_json(intent_id: str, status: str, **extra: Any) -> dict[str, Any]:
    return {
        "id": intent_id,
        "params": intent_params(),
        "status": status,
        "createdAt": 1700000000000,
        "executionSteps": [],
        **extra,
    }


@pytest_asyncio.fixture
async def client():
    jack = JackClient(base_url=BASE_URL, retry_delay_ms=0, max_retries=1)
    yield jack
    await jack.close()


# ============================================================
#  In-memory ClearNode socket
# ============================================================

_CLOSED = object()


class FakeSocket:
    """Stands in for a websockets client connection.

    ``responder`` receives each decoded outbound message and returns the
    frames the server answers with.
    """

    def __init__(self, responder: Callable[[dict[str, Any]], list[Any]] | None = None) -> None:
        self.responder = responder
        self.sent: list[Any] = []
        self.closed = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, frame: str) -> None:
        message = json.loads(frame)
        self.sent.append(message)
        if self.responder:
            for reply in self.responder(message) or []:
                self.push(reply)

    def push(self, message: Any) -> None:
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self) -> None:
        """Simulate the server going away."""
        self._inbox.put_nowait(_CLOSED)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    def sent_methods(self) -> list[str]:
        return [m.get("method") for m in self.sent if isinstance(m, dict)]

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


def socket_factory(*sockets: Any):
    """Factory handing out ``sockets`` in order; exceptions are raised instead."""
    queue = list(sockets)
    calls: list[str] = []

    async def factory(url: str) -> Any:
        calls.append(url)
        if not queue:
            raise OSError("connection refused")
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    factory.calls = calls
    return factory


async def settle(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)

"""
Execution tracking: one-shot waits and long-lived watchers over an
intent's status.

Both poll ``GET /api/intents/{id}`` on an interval, bypassing the
response cache so every poll sees the server's current state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable

from jack_sdk.client import JackClient
from jack_sdk.errors import JackTimeoutError
from jack_sdk.events import EventHandler, EventManager
from jack_sdk.intents import intent_path
from jack_sdk.types import (
    TERMINAL_STATUSES,
    ExecutionStatus,
    Intent,
    PollOptions,
    RequestOptions,
)

logger = logging.getLogger(__name__)

StatusArg = ExecutionStatus | str | Iterable[ExecutionStatus | str]


def _status_set(value: StatusArg | None) -> frozenset[ExecutionStatus]:
    if value is None:
        return frozenset()
    if isinstance(value, (ExecutionStatus, str)):
        return frozenset({ExecutionStatus(value)})
    return frozenset(ExecutionStatus(v) for v in value)


def _poll_options(options: PollOptions | None, overrides: dict[str, Any]) -> PollOptions:
    base = options or PollOptions()
    updates = {k: v for k, v in overrides.items() if v is not None}
    if "stop_statuses" in updates:
        updates["stop_statuses"] = list(_status_set(updates["stop_statuses"]))
    return base.model_copy(update=updates) if updates else base


class ExecutionTracker:
    """Polls intent status on behalf of callers."""

    def __init__(self, client: JackClient) -> None:
        self._client = client

    async def get_status(self, intent_id: str) -> Intent:
        """Fetch the current snapshot of an intent."""
        data = await self._client.get(intent_path(intent_id), RequestOptions(skip_cache=True))
        return Intent(**data)

    async def wait_for_status(
        self,
        intent_id: str,
        target_status: StatusArg,
        options: PollOptions | None = None,
        *,
        interval_ms: float | None = None,
        timeout_ms: float | None = None,
        stop_statuses: StatusArg | None = None,
    ) -> Intent:
        """Poll until the intent reaches ``target_status`` (or any of a list).

        Returns early with the fetched intent when its status is in
        ``stop_statuses``. Transport errors propagate unchanged.

        Raises:
            JackTimeoutError: Neither a target nor a stop status was seen
                within ``timeout_ms``. ``context`` carries ``intentId``,
                ``targetStatuses`` and ``elapsed`` (ms).
        """
        opts = _poll_options(
            options,
            {"interval_ms": interval_ms, "timeout_ms": timeout_ms, "stop_statuses": stop_statuses},
        )
        targets = _status_set(target_status)
        stops = frozenset(opts.stop_statuses)
        start = time.monotonic()

        while True:
            elapsed = (time.monotonic() - start) * 1000
            if elapsed >= opts.timeout_ms:
                names = sorted(s.value for s in targets)
                raise JackTimeoutError(
                    f"Timeout waiting for intent {intent_id} to reach status {' or '.join(names)}",
                    opts.timeout_ms,
                    context={"intentId": intent_id, "targetStatuses": names, "elapsed": elapsed},
                )

            intent = await self.get_status(intent_id)
            if intent.status in targets or intent.status in stops:
                return intent

            remaining = opts.timeout_ms - (time.monotonic() - start) * 1000
            await asyncio.sleep(max(0.0, min(opts.interval_ms, remaining)) / 1000.0)

    def watch(
        self,
        intent_id: str,
        options: PollOptions | None = None,
        *,
        interval_ms: float | None = None,
        timeout_ms: float | None = None,
        stop_statuses: StatusArg | None = None,
    ) -> ExecutionWatcher:
        """Start a background watcher. Must be called from a running event loop."""
        opts = _poll_options(
            options,
            {"interval_ms": interval_ms, "timeout_ms": timeout_ms, "stop_statuses": stop_statuses},
        )
        return ExecutionWatcher(self, intent_id, opts)


class ExecutionWatcher:
    """Cancellable status subscription for a single intent.

    * ``on_update`` fires when a poll returns a status different from the
      previous poll. The first poll only sets the baseline.
    * ``on_complete`` fires once when a terminal status (or one of the
      configured stop statuses) is seen.
    * ``on_error`` fires once on a fetch failure or when ``timeout_ms``
      elapses.

    Polling ends after ``on_complete``/``on_error`` or :meth:`stop`.
    """

    def __init__(self, tracker: ExecutionTracker, intent_id: str, options: PollOptions) -> None:
        self.intent_id = intent_id
        self._tracker = tracker
        self._interval = options.interval_ms / 1000.0
        self._timeout_ms = options.timeout_ms
        self._stop_statuses = frozenset(options.stop_statuses)
        self._events = EventManager()
        self._last_status: ExecutionStatus | None = None
        self._stopped = False
        self._task: asyncio.Task[None] = asyncio.create_task(self._run())

    def on_update(self, callback: EventHandler) -> None:
        self._events.subscribe("update", callback)

    def on_complete(self, callback: EventHandler) -> None:
        self._events.subscribe("complete", callback)

    def on_error(self, callback: EventHandler) -> None:
        self._events.subscribe("error", callback)

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def last_status(self) -> ExecutionStatus | None:
        return self._last_status

    def stop(self) -> None:
        """Halt polling and drop all callbacks. Safe to call repeatedly."""
        self._stopped = True
        self._events.clear()
        if not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()

    def unsubscribe(self) -> None:
        self.stop()

    async def wait(self) -> None:
        """Wait until polling has ended for any reason."""
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def _finish(self, event_type: str, payload: Any) -> None:
        await self._events.emit(event_type, payload)
        self.stop()

    async def _run(self) -> None:
        start = time.monotonic()
        while not self._stopped:
            elapsed = (time.monotonic() - start) * 1000
            if elapsed >= self._timeout_ms:
                await self._finish(
                    "error",
                    JackTimeoutError(
                        f"Timeout watching intent {self.intent_id}",
                        self._timeout_ms,
                        context={"intentId": self.intent_id, "elapsed": elapsed},
                    ),
                )
                return

            try:
                intent = await self._tracker.get_status(self.intent_id)
            except Exception as e:
                logger.debug("Watcher for %s stopping after error: %s", self.intent_id, e)
                await self._finish("error", e)
                return

            if self._stopped:
                return

            changed = self._last_status is not None and self._last_status != intent.status
            self._last_status = intent.status
            if changed:
                await self._events.emit("update", intent)
                if self._stopped:
                    return

            if intent.status in TERMINAL_STATUSES or intent.status in self._stop_statuses:
                await self._finish("complete", intent)
                return

            remaining = self._timeout_ms / 1000.0 - (time.monotonic() - start)
            await asyncio.sleep(max(0.0, min(self._interval, remaining)))

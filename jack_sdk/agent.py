"""
Helpers for autonomous agents: batch submission, offline dry runs,
policy checks and multi-intent status subscriptions.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine, Iterable

from jack_sdk.client import JackClient
from jack_sdk.execution import ExecutionTracker
from jack_sdk.intents import IntentManager
from jack_sdk.types import (
    BatchSubmitResult,
    DryRunResult,
    Intent,
    IntentParams,
    Policy,
    ValidationResult,
)
from jack_sdk.validation import coerce_intent_params, validate_intent_params

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[str, Intent], Coroutine[Any, Any, None] | None]


def _as_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


class Subscription:
    """Handle for a running :meth:`AgentUtils.subscribe_to_updates` loop."""

    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped or self._task.done()

    def unsubscribe(self) -> None:
        """Stop polling. Safe to call more than once or after the loop ended."""
        self._stopped = True
        if not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class AgentUtils:
    """Agent-oriented operations built on the intent and execution managers."""

    def __init__(self, client: JackClient) -> None:
        self._intents = IntentManager(client)
        self._tracker = ExecutionTracker(client)

    async def batch_submit(self, items: Iterable[dict[str, Any]]) -> list[BatchSubmitResult]:
        """Submit ``{"params": ..., "signature": ...}`` items concurrently.

        Results line up with the input. A failing item reports
        ``success=False`` with its exception and never affects the others.
        """
        async def submit_one(item: dict[str, Any]) -> str:
            return await self._intents.submit(item["params"], item["signature"])

        outcomes = await asyncio.gather(*(submit_one(item) for item in items), return_exceptions=True)

        results: list[BatchSubmitResult] = []
        for outcome in outcomes:
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                results.append(BatchSubmitResult(intent_id="", success=False, error=outcome))
            else:
                results.append(BatchSubmitResult(intent_id=outcome, success=True))
        return results

    async def dry_run(self, params: IntentParams | dict[str, Any]) -> DryRunResult:
        """Validate without touching the network."""
        result = validate_intent_params(params)
        return DryRunResult(valid=result.valid, errors=result.errors)

    def validate_policy(self, params: IntentParams | dict[str, Any], policy: Policy) -> ValidationResult:
        """Check ``params`` against every constraint in ``policy``.

        Each configured rule is evaluated independently and all
        violations are returned together. An empty policy always passes.
        """
        p, errors = coerce_intent_params(params)
        if p is None:
            return ValidationResult(valid=False, errors=errors)

        if policy.max_amount_in is not None:
            amount, ceiling = _as_int(p.amount_in), _as_int(policy.max_amount_in)
            if amount is None or ceiling is None:
                errors.append(f"Amount in {p.amount_in} cannot be compared with maximum {policy.max_amount_in}")
            elif amount > ceiling:
                errors.append(f"Amount in {p.amount_in} exceeds maximum {policy.max_amount_in}")

        if policy.min_amount_out is not None:
            amount, floor = _as_int(p.min_amount_out), _as_int(policy.min_amount_out)
            if amount is None or floor is None:
                errors.append(
                    f"Minimum amount out {p.min_amount_out} cannot be compared with policy minimum {policy.min_amount_out}"
                )
            elif amount < floor:
                errors.append(
                    f"Minimum amount out {p.min_amount_out} is below policy minimum {policy.min_amount_out}"
                )

        if policy.allowed_source_chains is not None and p.source_chain not in policy.allowed_source_chains:
            errors.append(
                f"Source chain {p.source_chain} is not in allowed list: {', '.join(policy.allowed_source_chains)}"
            )

        if policy.allowed_destination_chains is not None and p.destination_chain not in policy.allowed_destination_chains:
            errors.append(
                f"Destination chain {p.destination_chain} is not in allowed list: "
                f"{', '.join(policy.allowed_destination_chains)}"
            )

        if policy.allowed_tokens_in is not None and p.token_in not in policy.allowed_tokens_in:
            errors.append(f"Input token {p.token_in} is not in allowed list")

        if policy.allowed_tokens_out is not None and p.token_out not in policy.allowed_tokens_out:
            errors.append(f"Output token {p.token_out} is not in allowed list")

        if policy.max_deadline_offset_ms is not None and p.deadline is not None:
            offset = p.deadline - int(time.time() * 1000)
            if offset > policy.max_deadline_offset_ms:
                errors.append(
                    f"Deadline offset {offset}ms exceeds maximum {policy.max_deadline_offset_ms}ms"
                )

        return ValidationResult(valid=not errors, errors=errors)

    def subscribe_to_updates(
        self,
        intent_ids: Iterable[str],
        callback: UpdateCallback,
        *,
        interval_ms: float = 2000,
        timeout_ms: float | None = None,
    ) -> Subscription:
        """Poll several intents and call ``callback(intent_id, intent)`` on change.

        The first observation of each intent counts as a change. Fetch
        errors for one id are logged and retried on the next tick. When
        ``timeout_ms`` is set the loop ends on its own after that long.
        """
        ids = list(intent_ids)
        return Subscription(asyncio.create_task(self._poll_loop(ids, callback, interval_ms, timeout_ms)))

    async def _poll_loop(
        self,
        ids: list[str],
        callback: UpdateCallback,
        interval_ms: float,
        timeout_ms: float | None,
    ) -> None:
        last_statuses: dict[str, str] = {}
        start = time.monotonic()

        async def poll_one(intent_id: str) -> None:
            try:
                intent = await self._tracker.get_status(intent_id)
            except Exception as e:
                logger.debug("Status poll for %s failed: %s", intent_id, e)
                return
            if last_statuses.get(intent_id) == intent.status:
                return
            last_statuses[intent_id] = intent.status
            try:
                result = callback(intent_id, intent)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in update callback for %s", intent_id)

        while True:
            if timeout_ms is not None and (time.monotonic() - start) * 1000 > timeout_ms:
                logger.debug("Subscription for %d intents timed out", len(ids))
                return
            await asyncio.gather(*(poll_one(i) for i in ids))
            await asyncio.sleep(interval_ms / 1000.0)

"""Top-level facade wiring the transport and every manager together."""

from __future__ import annotations

import logging
from typing import Any

from jack_sdk.agent import AgentUtils
from jack_sdk.client import JackClient
from jack_sdk.costs import CostTracker
from jack_sdk.execution import ExecutionTracker
from jack_sdk.intents import IntentManager
from jack_sdk.routing import QuoteProvider, build_fallback_quote
from jack_sdk.serialization import ZERO_ADDRESS
from jack_sdk.types import (
    ClientConfig,
    ExecutionStatus,
    Intent,
    IntentParams,
    QuotePayload,
    TypedData,
    YellowConfig,
)
from jack_sdk.yellow.provider import YellowProvider
from jack_sdk.yellow.signer import WalletSigner

logger = logging.getLogger(__name__)

SETTLEMENT_TIMEOUT_MS = 120000
SETTLEMENT_POLL_INTERVAL_MS = 2000


class JackSDK:
    """
    The main JACK client.

    Owns one :class:`JackClient` and exposes the managers built on it as
    attributes: ``intents``, ``execution``, ``costs`` and ``agent``.
    ``yellow`` is a :class:`YellowProvider` when both a Yellow config and
    a wallet signer are given, otherwise ``None``. ``quotes`` is the
    optional routing-aggregator collaborator.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        yellow: YellowConfig | dict[str, Any] | None = None,
        signer: WalletSigner | None = None,
        quotes: QuoteProvider | None = None,
        transport: Any | None = None,
        **options: Any,
    ) -> None:
        self.client = JackClient(config, transport=transport, **options)

        # Sub-managers
        self.intents = IntentManager(self.client)
        self.execution = ExecutionTracker(self.client)
        self.costs = CostTracker(self.client)
        self.agent = AgentUtils(self.client)

        self.yellow: YellowProvider | None = None
        if yellow is not None and signer is not None:
            self.yellow = YellowProvider(yellow, signer)
        elif yellow is not None:
            logger.warning("Yellow config given without a signer; state-channel execution disabled")

        self.quotes = quotes

    # -- Intents --------------------------------------------------------------

    async def submit_intent(self, params: IntentParams | dict[str, Any], signature: str) -> str:
        return await self.intents.submit(params, signature)

    async def get_intent(self, intent_id: str) -> Intent:
        return await self.intents.get(intent_id)

    async def list_intents(self) -> list[Intent]:
        return await self.intents.list()

    def get_intent_typed_data(
        self,
        params: IntentParams | dict[str, Any],
        chain_id: int = 1,
        verifying_contract: str = ZERO_ADDRESS,
    ) -> TypedData:
        return self.intents.get_typed_data(params, chain_id, verifying_contract)

    # -- Execution ------------------------------------------------------------

    async def get_execution_status(self, intent_id: str) -> Intent:
        return await self.execution.get_status(intent_id)

    async def wait_for_settlement(self, intent_id: str, timeout_ms: float = SETTLEMENT_TIMEOUT_MS) -> Intent:
        """
        Wait until the intent settles or reaches another terminal status.

        Returns the intent as soon as it is SETTLED, ABORTED or EXPIRED;
        callers check ``intent.status`` to tell success from failure.

        Raises:
            JackTimeoutError: No terminal status within ``timeout_ms``.
        """
        return await self.execution.wait_for_status(
            intent_id,
            ExecutionStatus.SETTLED,
            interval_ms=SETTLEMENT_POLL_INTERVAL_MS,
            timeout_ms=timeout_ms,
            stop_statuses=[ExecutionStatus.ABORTED, ExecutionStatus.EXPIRED],
        )

    # -- Routing --------------------------------------------------------------

    async def get_quote(self, params: IntentParams | dict[str, Any]) -> QuotePayload:
        """Quote from the routing aggregator, or a deterministic fallback quote."""
        p = IntentParams.coerce(params)
        if self.quotes is None:
            return build_fallback_quote(p, "ROUTER_UNAVAILABLE", "No routing aggregator configured")
        try:
            return await self.quotes.fetch_quote(p)
        except Exception as e:
            logger.warning("Quote provider failed, using fallback quote: %s", e)
            return build_fallback_quote(p, "ROUTER_UNAVAILABLE", f"Quote provider failed: {e}")

    # -- Lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        if self.yellow is not None:
            await self.yellow.disconnect()
        await self.client.close()

    async def __aenter__(self) -> JackSDK:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

"""
Routing-aggregator boundary.

The aggregator itself lives outside this package; it is consumed
through :class:`QuoteProvider`. When no aggregator is reachable a
deterministic fallback quote is built from a small static rate table.
"""

from __future__ import annotations

import time
from typing import Any, Protocol, runtime_checkable

from jack_sdk.types import IntentParams, QuoteDetails, QuoteFallback, QuotePayload

CHAIN_IDS: dict[str, int] = {
    "arbitrum": 42161,
    "optimism": 10,
    "base": 8453,
    "polygon": 137,
}

# "IN:OUT" symbol pair -> units of OUT per unit of IN
FALLBACK_RATES: dict[str, float] = {
    "USDC:WETH": 0.0004,
    "USDC:ETH": 0.0004,
    "ETH:USDC": 2500,
    "WETH:USDC": 2500,
    "ETH:WETH": 1,
    "WETH:ETH": 1,
}


@runtime_checkable
class QuoteProvider(Protocol):
    """Anything that can price normalized intent parameters."""

    async def fetch_quote(self, params: IntentParams) -> QuotePayload: ...


def resolve_chain(name: str) -> int | None:
    """Chain id for a chain name (case-insensitive), or ``None`` if unknown."""
    return CHAIN_IDS.get(name.strip().lower())


def deterministic_id(seed: str) -> str:
    """Stable route id derived from ``seed`` (DJB2-xor, base36)."""
    h = 5381
    for ch in seed:
        h = ((h * 33) ^ ord(ch)) & 0xFFFFFFFF
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    out = ""
    while True:
        h, rem = divmod(h, 36)
        out = digits[rem] + out
        if h == 0:
            break
    return f"JK-ROUTE-{out}"


def build_fallback_quote(
    params: IntentParams | dict[str, Any],
    reason_code: str,
    message: str,
) -> QuotePayload:
    p = IntentParams.coerce(params)
    rate = FALLBACK_RATES.get(f"{p.token_in}:{p.token_out}".upper(), 1)

    try:
        amount_out = f"{float(p.amount_in or '0') * rate:.6f}"
    except ValueError:
        amount_out = p.amount_in

    seed = f"{p.source_chain}-{p.destination_chain}-{p.token_in}-{p.token_out}-{p.amount_in}"
    return QuotePayload(
        provider="fallback",
        route_id=deterministic_id(seed),
        timestamp=int(time.time() * 1000),
        quote=QuoteDetails(
            amount_in=p.amount_in,
            amount_out=amount_out,
            min_amount_out=p.min_amount_out or None,
            from_chain_id=resolve_chain(p.source_chain) or 0,
            to_chain_id=resolve_chain(p.destination_chain) or 0,
            from_token=p.token_in,
            to_token=p.token_out,
            estimated_gas_usd="0",
        ),
        fallback=QuoteFallback(reason_code=reason_code, message=message),
    )


class FallbackQuoteProvider:
    """Quote provider that always answers with the static fallback quote."""

    def __init__(self, reason_code: str = "ROUTER_UNAVAILABLE", message: str = "No routing aggregator configured") -> None:
        self.reason_code = reason_code
        self.message = message

    async def fetch_quote(self, params: IntentParams) -> QuotePayload:
        return build_fallback_quote(params, self.reason_code, self.message)

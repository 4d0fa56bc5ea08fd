"""
Canonical encoding of intent parameters.

Only the seven signed fields take part: extra application keys on
:class:`~jack_sdk.types.IntentParams` never reach the signing payload or
the serialized form.
"""

from __future__ import annotations

import json
from typing import Any

from jack_sdk.errors import ValidationError
from jack_sdk.types import EIP712Domain, IntentParams, TypedData, TypedDataField
from jack_sdk.validation import coerce_intent_params

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DOMAIN_NAME = "JACK"
DOMAIN_VERSION = "1"
PRIMARY_TYPE = "Intent"

# (wire name, EIP-712 type), in signing order
CANONICAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("sourceChain", "string"),
    ("destinationChain", "string"),
    ("tokenIn", "string"),
    ("tokenOut", "string"),
    ("amountIn", "string"),
    ("minAmountOut", "string"),
    ("deadline", "uint256"),
)


def _canonical_message(params: IntentParams | dict[str, Any]) -> dict[str, Any]:
    p = IntentParams.coerce(params)
    return {
        "sourceChain": p.source_chain,
        "destinationChain": p.destination_chain,
        "tokenIn": p.token_in,
        "tokenOut": p.token_out,
        "amountIn": p.amount_in,
        "minAmountOut": p.min_amount_out,
        "deadline": p.deadline,
    }


def get_typed_data(
    params: IntentParams | dict[str, Any],
    chain_id: int = 1,
    verifying_contract: str = ZERO_ADDRESS,
) -> TypedData:
    """Build the EIP-712 payload a wallet signs for ``params``.

    Deterministic: the same arguments always produce an equal result.
    """
    return TypedData(
        domain=EIP712Domain(
            name=DOMAIN_NAME,
            version=DOMAIN_VERSION,
            chain_id=chain_id,
            verifying_contract=verifying_contract,
        ),
        types={
            PRIMARY_TYPE: [TypedDataField(name=name, type=kind) for name, kind in CANONICAL_FIELDS],
        },
        message=_canonical_message(params),
        primary_type=PRIMARY_TYPE,
    )


def serialize_intent_params(params: IntentParams | dict[str, Any]) -> str:
    """Compact JSON of the canonical fields with sorted keys."""
    return json.dumps(_canonical_message(params), sort_keys=True, separators=(",", ":"))


def parse_intent_params(serialized: str) -> IntentParams:
    """Inverse of :func:`serialize_intent_params`.

    Raises:
        ValidationError: On malformed JSON, a non-object document or a
            missing canonical field.
    """
    try:
        parsed = json.loads(serialized)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Failed to parse intent parameters: {e}", [str(e)]) from e

    if not isinstance(parsed, dict):
        raise ValidationError(
            "Failed to parse intent parameters: expected a JSON object",
            ["expected a JSON object"],
        )

    missing = [name for name, _ in CANONICAL_FIELDS if name not in parsed]
    if missing:
        raise ValidationError(
            f"Failed to parse intent parameters: Missing required field: {missing[0]}",
            [f"Missing required field: {name}" for name in missing],
        )

    params, errors = coerce_intent_params({name: parsed[name] for name, _ in CANONICAL_FIELDS})
    if errors:
        raise ValidationError(f"Failed to parse intent parameters: {errors[0]}", errors)
    return params

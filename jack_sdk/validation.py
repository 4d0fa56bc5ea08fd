"""Pure checks on intent parameters. No I/O."""

from __future__ import annotations

import re
import time
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from jack_sdk.types import IntentParams, ValidationResult

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_INTEGER_RE = re.compile(r"^[0-9]+$")

_REQUIRED_TEXT_FIELDS = (
    ("source_chain", "sourceChain"),
    ("destination_chain", "destinationChain"),
    ("token_in", "tokenIn"),
    ("token_out", "tokenOut"),
    ("amount_in", "amountIn"),
    ("min_amount_out", "minAmountOut"),
)

_WIRE_NAMES = dict(_REQUIRED_TEXT_FIELDS)
_WIRE_NAMES["deadline"] = "deadline"
_INTEGER_FIELDS = frozenset({"deadline"})


def is_valid_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value))


def is_positive_amount(value: Any) -> bool:
    """True for decimal-integer strings greater than zero (no sign, no fraction)."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not _INTEGER_RE.match(text):
        return False
    return int(text) > 0


def coerce_intent_params(params: IntentParams | dict[str, Any]) -> tuple[IntentParams | None, list[str]]:
    """Coerce ``params`` and report wrongly typed fields instead of raising.

    Fields that fail type checks are reported by wire name and left at
    their defaults in the returned model, so the remaining fields can
    still be checked. Returns ``None`` when ``params`` is not a mapping.
    """
    p, errors, _ = _parse(params)
    return p, errors


def _parse(params: Any) -> tuple[IntentParams | None, list[str], set[str]]:
    try:
        return IntentParams.coerce(params), [], set()
    except PydanticValidationError as e:
        if not isinstance(params, dict):
            return None, ["params must be an object"], set()

        errors: list[str] = []
        bad_keys: set[Any] = set()
        mistyped: set[str] = set()
        for entry in e.errors():
            key = entry["loc"][0] if entry["loc"] else None
            bad_keys.add(key)
            wire_name = _WIRE_NAMES.get(key, key)
            mistyped.add(wire_name)
            expected = "an integer" if wire_name in _INTEGER_FIELDS else "a string"
            message = f"{wire_name} must be {expected}"
            if message not in errors:
                errors.append(message)

        cleaned = {k: v for k, v in params.items() if k not in bad_keys}
        return IntentParams.model_validate(cleaned), errors, mistyped


def validate_intent_params(params: IntentParams | dict[str, Any]) -> ValidationResult:
    """Collect every problem with ``params``; never stops at the first one."""
    p, errors, mistyped = _parse(params)
    if p is None:
        return ValidationResult(valid=False, errors=errors)

    for attr, wire_name in _REQUIRED_TEXT_FIELDS:
        if wire_name in mistyped:
            continue
        value = getattr(p, attr)
        if not value or not value.strip():
            errors.append(f"{wire_name} is required and must not be empty")

    if p.deadline is None and "deadline" not in mistyped:
        errors.append("deadline is required")

    if p.amount_in and not is_positive_amount(p.amount_in):
        errors.append("amountIn must be a positive number")

    if p.min_amount_out and not is_positive_amount(p.min_amount_out):
        errors.append("minAmountOut must be a positive number")

    if p.deadline is not None and p.deadline <= int(time.time() * 1000):
        errors.append("deadline must be in the future")

    if p.token_in and not is_valid_address(p.token_in):
        errors.append("tokenIn must be a valid Ethereum address (0x followed by 40 hex characters)")

    if p.token_out and not is_valid_address(p.token_out):
        errors.append("tokenOut must be a valid Ethereum address (0x followed by 40 hex characters)")

    return ValidationResult(valid=not errors, errors=errors)

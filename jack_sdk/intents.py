"""Intent submission and retrieval."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote as url_quote

from jack_sdk.client import JackClient
from jack_sdk.errors import APIError, ValidationError
from jack_sdk.serialization import ZERO_ADDRESS, get_typed_data
from jack_sdk.types import Intent, IntentParams, TypedData, ValidationResult
from jack_sdk.validation import validate_intent_params

logger = logging.getLogger(__name__)

INTENTS_PATH = "/api/intents"


def intent_path(intent_id: str) -> str:
    return f"{INTENTS_PATH}/{url_quote(intent_id, safe='')}"


class IntentManager:
    """Validate, sign-prepare, submit and fetch intents."""

    def __init__(self, client: JackClient) -> None:
        self._client = client

    def validate(self, params: IntentParams | dict[str, Any]) -> ValidationResult:
        return validate_intent_params(params)

    def get_typed_data(
        self,
        params: IntentParams | dict[str, Any],
        chain_id: int = 1,
        verifying_contract: str = ZERO_ADDRESS,
    ) -> TypedData:
        return get_typed_data(params, chain_id, verifying_contract)

    async def submit(self, params: IntentParams | dict[str, Any], signature: str) -> str:
        """Submit a signed intent and return the server-assigned id.

        Validation runs first; nothing is sent when it fails.

        Raises:
            ValidationError: The parameters have one or more problems.
        """
        result = validate_intent_params(params)
        if not result.valid:
            raise ValidationError("Invalid intent parameters", result.errors)
        p = IntentParams.coerce(params)

        data = await self._client.post(INTENTS_PATH, {"params": p.to_wire(), "signature": signature})
        intent_id = data.get("intentId") if isinstance(data, dict) else None
        if not intent_id:
            raise APIError("Submission response did not include an intentId", 200, data)
        logger.info("Submitted intent %s", intent_id)
        return str(intent_id)

    async def get(self, intent_id: str) -> Intent:
        data = await self._client.get(intent_path(intent_id))
        return Intent(**data)

    async def list(self) -> list[Intent]:
        data = await self._client.get(INTENTS_PATH)
        items = data.get("intents", []) if isinstance(data, dict) else data
        return [Intent(**item) for item in items]

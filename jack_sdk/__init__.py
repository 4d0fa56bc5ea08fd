"""
JACK SDK for Python.

Async client for submitting cross-chain intents, tracking their
execution and clearing them through Yellow Network state channels.

Example::

    from jack_sdk import JackSDK

    sdk = JackSDK(base_url="https://api.jack.example")

    typed_data = sdk.get_intent_typed_data(params)
    signature = wallet.sign_typed_data(typed_data.to_dict())
    intent_id = await sdk.submit_intent(params, signature)

    intent = await sdk.wait_for_settlement(intent_id)
    print(intent.status, intent.settlement_tx)

    await sdk.close()
"""

from jack_sdk.sdk import JackSDK
from jack_sdk.agent import AgentUtils, Subscription
from jack_sdk.client import JackClient
from jack_sdk.costs import CostTracker
from jack_sdk.execution import ExecutionTracker, ExecutionWatcher
from jack_sdk.intents import IntentManager
from jack_sdk.routing import FallbackQuoteProvider, QuoteProvider, build_fallback_quote
from jack_sdk.serialization import get_typed_data, parse_intent_params, serialize_intent_params
from jack_sdk.validation import validate_intent_params
from jack_sdk.errors import (
    JackError,
    NetworkError,
    APIError,
    ValidationError,
    JackTimeoutError,
    RetryError,
)
from jack_sdk.types import (
    ClientConfig,
    RequestOptions,
    PollOptions,
    ExecutionStatus,
    TERMINAL_STATUSES,
    IntentParams,
    Intent,
    ExecutionStep,
    StepStatus,
    TypedData,
    ValidationResult,
    DryRunResult,
    BatchSubmitResult,
    Policy,
    IssueCost,
    CostsResponse,
    ChannelState,
    ChannelStatus,
    ChannelAllocation,
    YellowConfig,
    YellowFallback,
    YellowReasonCode,
    QuotePayload,
)
from jack_sdk.yellow import (
    YellowProvider,
    YellowRegistry,
    LocalAccountSigner,
    create_sepolia_yellow_config,
)

__version__ = "0.1.0"

__all__ = [
    "JackSDK",
    "AgentUtils",
    "Subscription",
    "JackClient",
    "CostTracker",
    "ExecutionTracker",
    "ExecutionWatcher",
    "IntentManager",
    "FallbackQuoteProvider",
    "QuoteProvider",
    "build_fallback_quote",
    "get_typed_data",
    "parse_intent_params",
    "serialize_intent_params",
    "validate_intent_params",
    "JackError",
    "NetworkError",
    "APIError",
    "ValidationError",
    "JackTimeoutError",
    "RetryError",
    "ClientConfig",
    "RequestOptions",
    "PollOptions",
    "ExecutionStatus",
    "TERMINAL_STATUSES",
    "IntentParams",
    "Intent",
    "ExecutionStep",
    "StepStatus",
    "TypedData",
    "ValidationResult",
    "DryRunResult",
    "BatchSubmitResult",
    "Policy",
    "IssueCost",
    "CostsResponse",
    "ChannelState",
    "ChannelStatus",
    "ChannelAllocation",
    "YellowConfig",
    "YellowFallback",
    "YellowReasonCode",
    "QuotePayload",
    "YellowProvider",
    "YellowRegistry",
    "LocalAccountSigner",
    "create_sepolia_yellow_config",
]

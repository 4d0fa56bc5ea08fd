"""
Pydantic models for the JACK SDK.

Wire payloads keep their camelCase names through field aliases; Python
code uses snake_case attributes. Every model accepts either form.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


# ============================================================
#  Configuration
# ============================================================


class ClientConfig(BaseModel):
    """Settings for :class:`jack_sdk.client.JackClient`.

    Durations are milliseconds. Values are checked when the client is
    built, so an invalid config fails there rather than on first request.
    """

    base_url: str = Field(alias="baseUrl")
    timeout_ms: float = Field(30000, alias="timeout")
    max_retries: int = Field(3, alias="maxRetries")
    retry_delay_ms: float = Field(1000, alias="retryDelay")
    retry_backoff: float = Field(2, alias="retryBackoff")
    enable_cache: bool = Field(False, alias="enableCache")
    cache_ttl_ms: float = Field(60000, alias="cacheTTL")
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class RequestOptions(BaseModel):
    """Per-request overrides."""

    timeout_ms: float | None = Field(None, alias="timeout")
    no_retry: bool = Field(False, alias="noRetry")
    skip_cache: bool = Field(False, alias="skipCache")
    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None

    model_config = {"populate_by_name": True}


class ExecutionStatus(str, Enum):
    """Intent lifecycle, in order. The last three are terminal."""

    CREATED = "CREATED"
    QUOTED = "QUOTED"
    EXECUTING = "EXECUTING"
    SETTLING = "SETTLING"
    SETTLED = "SETTLED"
    ABORTED = "ABORTED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {ExecutionStatus.SETTLED, ExecutionStatus.ABORTED, ExecutionStatus.EXPIRED}
)


class PollOptions(BaseModel):
    """Polling cadence for status waits, watchers and subscriptions."""

    interval_ms: float = Field(2000, alias="interval")
    timeout_ms: float = Field(60000, alias="timeout")
    stop_statuses: list[ExecutionStatus] = Field(default_factory=list, alias="stopStatuses")

    model_config = {"populate_by_name": True}


# ============================================================
#  Intents
# ============================================================


class IntentParams(BaseModel):
    """User-authored intent: swap/bridge ``amount_in`` for at least
    ``min_amount_out`` before ``deadline`` (epoch milliseconds).

    Missing fields default to blanks so that validation can report
    every problem at once. Extra keys are kept but never signed.
    """

    source_chain: str = Field("", alias="sourceChain")
    destination_chain: str = Field("", alias="destinationChain")
    token_in: str = Field("", alias="tokenIn")
    token_out: str = Field("", alias="tokenOut")
    amount_in: str = Field("", alias="amountIn")
    min_amount_out: str = Field("", alias="minAmountOut")
    deadline: int | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}

    @classmethod
    def coerce(cls, value: IntentParams | dict[str, Any]) -> IntentParams:
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)

    def to_wire(self) -> dict[str, Any]:
        """camelCase dict including any extra keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


class StepStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ExecutionStep(BaseModel):
    step: str
    status: StepStatus
    timestamp: int
    details: str | None = None


class Intent(BaseModel):
    """Server-side snapshot of a submitted intent."""

    id: str
    params: IntentParams
    signature: str | None = None
    status: ExecutionStatus
    created_at: int = Field(0, alias="createdAt")
    execution_steps: list[ExecutionStep] = Field(default_factory=list, alias="executionSteps")
    settlement_tx: str | None = Field(None, alias="settlementTx")

    model_config = {"populate_by_name": True}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ============================================================
#  Signing payload
# ============================================================


class EIP712Domain(BaseModel):
    name: str
    version: str
    chain_id: int = Field(alias="chainId")
    verifying_contract: str = Field(alias="verifyingContract")

    model_config = {"populate_by_name": True}


class TypedDataField(BaseModel):
    name: str
    type: str


class TypedData(BaseModel):
    """EIP-712 structure handed to an external wallet for signing."""

    domain: EIP712Domain
    types: dict[str, list[TypedDataField]]
    message: dict[str, Any]
    primary_type: str = Field(alias="primaryType")

    model_config = {"populate_by_name": True}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ============================================================
#  Results
# ============================================================


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class DryRunResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    estimated_cost: str | None = Field(None, alias="estimatedCost")

    model_config = {"populate_by_name": True}


class BatchSubmitResult(BaseModel):
    """Outcome of one item in a batch. ``intent_id`` is empty on failure."""

    intent_id: str = Field("", alias="intentId")
    success: bool
    error: Exception | None = None

    model_config = {"populate_by_name": True, "arbitrary_types_allowed": True}


class Policy(BaseModel):
    """Declarative limits an agent applies before submitting."""

    max_amount_in: str | None = Field(None, alias="maxAmountIn")
    min_amount_out: str | None = Field(None, alias="minAmountOut")
    allowed_source_chains: list[str] | None = Field(None, alias="allowedSourceChains")
    allowed_destination_chains: list[str] | None = Field(None, alias="allowedDestinationChains")
    allowed_tokens_in: list[str] | None = Field(None, alias="allowedTokensIn")
    allowed_tokens_out: list[str] | None = Field(None, alias="allowedTokensOut")
    max_deadline_offset_ms: int | None = Field(None, alias="maxDeadlineOffset")

    model_config = {"populate_by_name": True}


# ============================================================
#  Costs
# ============================================================


class IssueCost(BaseModel):
    issue_id: str = Field(alias="issueId")
    total_cost: float = Field(alias="totalCost")
    budget: float
    over_budget: bool = Field(alias="overBudget")

    model_config = {"populate_by_name": True}


class CostsResponse(BaseModel):
    issue_costs: list[IssueCost] = Field(default_factory=list, alias="issueCosts")

    model_config = {"populate_by_name": True}


# ============================================================
#  State channels (Yellow / ERC-7824)
# ============================================================


class ChannelStatus(str, Enum):
    VOID = "VOID"
    INITIAL = "INITIAL"
    ACTIVE = "ACTIVE"
    DISPUTE = "DISPUTE"
    FINAL = "FINAL"


class StateIntent(str, Enum):
    INITIALIZE = "INITIALIZE"
    OPERATE = "OPERATE"
    RESIZE = "RESIZE"
    FINALIZE = "FINALIZE"


class YellowReasonCode(str, Enum):
    MISSING_PARAMS = "MISSING_PARAMS"
    UNSUPPORTED_CHAIN = "UNSUPPORTED_CHAIN"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_CHANNEL_BALANCE = "INSUFFICIENT_CHANNEL_BALANCE"
    NO_SOLVER_QUOTES = "NO_SOLVER_QUOTES"
    YELLOW_UNAVAILABLE = "YELLOW_UNAVAILABLE"
    YELLOW_TX_FAILED = "YELLOW_TX_FAILED"
    YELLOW_AUTH_FAILED = "YELLOW_AUTH_FAILED"
    YELLOW_TIMEOUT = "YELLOW_TIMEOUT"
    YELLOW_CHANNEL_DISPUTE = "YELLOW_CHANNEL_DISPUTE"
    YELLOW_WS_ERROR = "YELLOW_WS_ERROR"


class YellowFallback(BaseModel):
    """Returned instead of raising when the ClearNode path is unusable."""

    enabled: bool = True
    reason_code: YellowReasonCode = Field(alias="reasonCode")
    message: str

    model_config = {"populate_by_name": True}


class ChannelAllocation(BaseModel):
    destination: str
    token: str
    amount: str

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_string(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ChannelState(BaseModel):
    channel_id: str = Field(alias="channelId")
    status: ChannelStatus
    chain_id: int = Field(0, alias="chainId")
    token: str = ""
    allocations: list[ChannelAllocation] = Field(default_factory=list)
    state_version: int = Field(0, alias="stateVersion")
    state_intent: str = Field("", alias="stateIntent")
    state_hash: str | None = Field(None, alias="stateHash")
    adjudicator: str = ""
    challenge_period: int = Field(0, alias="challengePeriod")
    challenge_expiration: int | None = Field(None, alias="challengeExpiration")
    created_at: int = Field(0, alias="createdAt")
    updated_at: int = Field(0, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class YellowQuote(BaseModel):
    solver_id: str = Field(alias="solverId")
    channel_id: str = Field(alias="channelId")
    amount_in: str = Field(alias="amountIn")
    amount_out: str = Field(alias="amountOut")
    estimated_time: int = Field(alias="estimatedTime")
    timestamp: int

    model_config = {"populate_by_name": True}


class SettlementProof(BaseModel):
    state_hash: str = Field("", alias="stateHash")
    signatures: list[str] = Field(default_factory=list)
    tx_hash: str | None = Field(None, alias="txHash")
    final_allocations: list[ChannelAllocation] = Field(default_factory=list, alias="finalAllocations")

    model_config = {"populate_by_name": True}


class ClearingResult(BaseModel):
    channel_id: str = Field(alias="channelId")
    matched_amount_in: str = Field(alias="matchedAmountIn")
    matched_amount_out: str = Field(alias="matchedAmountOut")
    net_settlement: str = Field("0", alias="netSettlement")
    settlement_proof: SettlementProof | None = Field(None, alias="settlementProof")
    timestamp: int

    model_config = {"populate_by_name": True}


class YellowConnectionResult(BaseModel):
    connected: bool
    session_address: str | None = Field(None, alias="sessionAddress")
    fallback: YellowFallback | None = None

    model_config = {"populate_by_name": True}


class YellowChannelResult(BaseModel):
    channel_id: str | None = Field(None, alias="channelId")
    state: ChannelState | None = None
    tx_hash: str | None = Field(None, alias="txHash")
    fallback: YellowFallback | None = None

    model_config = {"populate_by_name": True}


class YellowChannelsResult(BaseModel):
    channels: list[ChannelState] = Field(default_factory=list)
    fallback: YellowFallback | None = None


class YellowTransferResult(BaseModel):
    success: bool
    updated_allocations: list[ChannelAllocation] | None = Field(None, alias="updatedAllocations")
    fallback: YellowFallback | None = None

    model_config = {"populate_by_name": True}


class YellowExecutionResult(BaseModel):
    provider: str  # "yellow" | "fallback"
    intent_id: str | None = Field(None, alias="intentId")
    quote: YellowQuote | None = None
    clearing: ClearingResult | None = None
    channel_id: str | None = Field(None, alias="channelId")
    timestamp: int
    fallback: YellowFallback | None = None

    model_config = {"populate_by_name": True}


class TransferAllocation(BaseModel):
    asset: str
    amount: str


class SessionInfo(BaseModel):
    session_address: str = Field(alias="sessionAddress")
    expires_at: int = Field(alias="expiresAt")
    authenticated: bool = True

    model_config = {"populate_by_name": True}


class YellowConfig(BaseModel):
    """Settings for :class:`jack_sdk.yellow.provider.YellowProvider`.

    ``challenge_duration`` and ``session_expiry`` are seconds, the rest
    of the durations are milliseconds.
    """

    custody_address: str = Field(alias="custodyAddress")
    adjudicator_address: str = Field(alias="adjudicatorAddress")
    chain_id: int = Field(alias="chainId")
    clear_node_url: str = Field("wss://clearnet-sandbox.yellow.com/ws", alias="clearNodeUrl")
    challenge_duration: int = Field(3600, alias="challengeDuration")
    session_expiry: int = Field(3600, alias="sessionExpiry")
    message_timeout_ms: float = Field(30000, alias="messageTimeout")
    max_reconnect_attempts: int = Field(5, alias="maxReconnectAttempts")
    reconnect_delay_ms: float = Field(1000, alias="reconnectDelay")
    channel_state_ttl_ms: float = Field(30000, alias="channelStateTTL")

    model_config = {"populate_by_name": True}


class MappedEvent(BaseModel):
    """A ClearNode signal translated into the intent lifecycle vocabulary."""

    execution_status: ExecutionStatus = Field(alias="executionStatus")
    step_label: str = Field(alias="stepLabel")
    step_status: StepStatus = Field(alias="stepStatus")
    is_terminal: bool = Field(alias="isTerminal")

    model_config = {"populate_by_name": True, "frozen": True}


# ============================================================
#  Routing aggregator boundary
# ============================================================


class QuoteDetails(BaseModel):
    amount_in: str = Field(alias="amountIn")
    amount_out: str = Field(alias="amountOut")
    min_amount_out: str | None = Field(None, alias="minAmountOut")
    from_chain_id: int = Field(alias="fromChainId")
    to_chain_id: int = Field(alias="toChainId")
    from_token: str = Field(alias="fromToken")
    to_token: str = Field(alias="toToken")
    estimated_gas_usd: str | None = Field(None, alias="estimatedGasUsd")

    model_config = {"populate_by_name": True}


class QuoteFallback(BaseModel):
    enabled: bool = True
    reason_code: str = Field(alias="reasonCode")
    message: str

    model_config = {"populate_by_name": True}


class QuotePayload(BaseModel):
    """Quote from a routing aggregator, or a deterministic stand-in."""

    provider: str  # aggregator name or "fallback"
    route_id: str = Field(alias="routeId")
    timestamp: int
    quote: QuoteDetails
    raw: Any = None
    fallback: QuoteFallback | None = None

    model_config = {"populate_by_name": True}

"""
Yellow Network (ERC-7824) execution provider.

:class:`YellowProvider` owns a :class:`ClearNodeConnection`, the session
handshake and the local channel cache, and exposes the channel lifecycle
plus intent execution through state channels.

Expected failures (ClearNode unreachable, authentication refused, timeouts,
insufficient balances) never raise: every operation returns a result model
whose ``fallback`` field carries a :class:`YellowReasonCode` and a message,
so callers can route the intent elsewhere.

Example::

    provider = YellowProvider(create_sepolia_yellow_config(), signer)
    result = await provider.connect()
    if result.fallback:
        ...
    execution = await provider.execute_intent(params)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from jack_sdk.errors import JackError, JackTimeoutError
from jack_sdk.events import EventHandler, EventManager
from jack_sdk.types import (
    ChannelAllocation,
    ChannelState,
    ChannelStatus,
    ClearingResult,
    IntentParams,
    SettlementProof,
    StateIntent,
    TransferAllocation,
    YellowChannelResult,
    YellowChannelsResult,
    YellowConfig,
    YellowConnectionResult,
    YellowExecutionResult,
    YellowFallback,
    YellowQuote,
    YellowReasonCode,
    YellowTransferResult,
)
from jack_sdk.yellow.channel_state import ChannelStateManager
from jack_sdk.yellow.connection import ClearNodeConnection, WebSocketFactory, extract_method
from jack_sdk.yellow.event_mapper import infer_mapping
from jack_sdk.yellow.session import SessionKeyFactory, SessionKeyManager
from jack_sdk.yellow.signer import WalletSigner

logger = logging.getLogger(__name__)

_R = YellowReasonCode

# Correlated replies; everything else carrying a channel id is a notification.
_RESPONSE_METHODS = frozenset({
    "create_channel",
    "resize_channel",
    "close_channel",
    "transfer",
    "submit_intent",
    "get_ledger_balances",
    "auth_request",
    "auth_challenge",
    "auth_verify",
    "error",
})

_REQUIRED_INTENT_FIELDS = (
    ("source_chain", "sourceChain"),
    ("destination_chain", "destinationChain"),
    ("token_in", "tokenIn"),
    ("token_out", "tokenOut"),
    ("amount_in", "amountIn"),
)


# ============================================================
#  Error classification
# ============================================================


def map_error_to_reason_code(error: BaseException | str) -> YellowReasonCode:
    """Classify a failure by the words in its message.

    Checked in order: timeout, auth, on-chain revert, transport, dispute,
    channel balance, balance. Anything else is ``YELLOW_UNAVAILABLE``.
    """
    text = str(error).lower()

    if any(k in text for k in ("timed out", "timeout", "timed_out")):
        return _R.YELLOW_TIMEOUT
    if any(k in text for k in ("auth", "unauthorized", "eip-712 signing", "session expired", "session invalid")):
        return _R.YELLOW_AUTH_FAILED
    if any(k in text for k in (
        "revert", "transaction failed", "tx failed", "on-chain", "onchain", "contract call",
    )):
        return _R.YELLOW_TX_FAILED
    if any(k in text for k in (
        "websocket", "ws ", "connection", "reconnect", "disconnected", "not connected",
        "clearnode", "unavailable", "econnrefused", "socket hang up",
    )):
        return _R.YELLOW_UNAVAILABLE
    if "dispute" in text:
        return _R.YELLOW_CHANNEL_DISPUTE
    if "insufficient" in text and "channel" in text:
        return _R.INSUFFICIENT_CHANNEL_BALANCE
    if "insufficient" in text or "balance" in text:
        return _R.INSUFFICIENT_BALANCE
    return _R.YELLOW_UNAVAILABLE


def _reason_from_suffix(suffix: str) -> str | None:
    text = suffix.lstrip()
    if text.lower().startswith("ed"):
        text = text[2:].lstrip()
    if text.lower().startswith("with reason"):
        text = text[len("with reason"):].lstrip()
    if text.startswith((":", "-")):
        text = text[1:].lstrip()
    reason = text.splitlines()[0].strip() if text else ""
    return reason or None


def extract_revert_reason(error: BaseException | str) -> str | None:
    """Human readable revert reason from an on-chain failure message, if any.

    >>> extract_revert_reason("execution reverted: ERC20: insufficient allowance")
    'ERC20: insufficient allowance'
    """
    message = str(error)
    lower = message.lower()
    for marker in ("execution reverted", "revert"):
        index = lower.find(marker)
        if index != -1:
            reason = _reason_from_suffix(message[index + len(marker):])
            if reason:
                return reason
    return None


def _fallback(code: YellowReasonCode, message: str) -> YellowFallback:
    return YellowFallback(reason_code=code, message=message)


def _error_fallback(error: BaseException | str, prefix: str) -> YellowFallback:
    code = map_error_to_reason_code(error)
    detail = str(error)
    if code == _R.YELLOW_TX_FAILED:
        detail = extract_revert_reason(error) or detail
    return _fallback(code, f"{prefix}: {detail}")


def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _notification_channel_id(message: dict[str, Any]) -> str | None:
    for container in (message.get("data"), message.get("params"), message):
        if isinstance(container, dict) and isinstance(container.get("channelId"), str):
            return container["channelId"]
    return None


# ============================================================
#  Provider
# ============================================================


class YellowProvider:
    """State-channel execution through a Yellow ClearNode.

    Args:
        config: Contract addresses, chain and timing settings.
        signer: Wallet collaborator that signs the session handshake.
        ws_factory: Optional socket factory passed to the connection.
        session_key_factory: Optional session key generator.

    Events (``on``/``off``): ``connected``, ``disconnected``, ``error``,
    ``channel_created``, ``channel_resized``, ``channel_closed``,
    ``transfer_completed``, ``quote_received``, ``clearing_completed``,
    ``channel_update``.
    """

    def __init__(
        self,
        config: YellowConfig | dict[str, Any],
        signer: WalletSigner,
        *,
        ws_factory: WebSocketFactory | None = None,
        session_key_factory: SessionKeyFactory | None = None,
    ) -> None:
        self.config = config if isinstance(config, YellowConfig) else YellowConfig.model_validate(config)
        self._signer = signer
        self._ws_factory = ws_factory
        self._session_key_factory = session_key_factory

        self._status = "disconnected"
        self._connection: ClearNodeConnection | None = None
        self._session: SessionKeyManager | None = None
        self._channels = ChannelStateManager(self.config.channel_state_ttl_ms)
        self._events = EventManager()
        self._refresh_tasks: set[asyncio.Task[None]] = set()

    # ---- State ----

    @property
    def status(self) -> str:
        """``disconnected``, ``connecting``, ``connected`` or ``error``."""
        return self._status

    @property
    def is_connected(self) -> bool:
        return (
            self._status == "connected"
            and self._connection is not None
            and self._connection.is_connected
            and self._session is not None
            and self._session.is_authenticated
        )

    @property
    def channels(self) -> ChannelStateManager:
        return self._channels

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._events.subscribe(event_type, handler)

    def off(self, event_type: str, handler: EventHandler | None = None) -> None:
        self._events.unsubscribe(event_type, handler)

    # ---- Lifecycle ----

    async def connect(self) -> YellowConnectionResult:
        """Open the ClearNode connection and authenticate a session key."""
        if self._connection is not None:
            await self._connection.disconnect()

        self._status = "connecting"
        connection = ClearNodeConnection(
            self.config.clear_node_url,
            max_reconnect_attempts=self.config.max_reconnect_attempts,
            reconnect_delay_ms=self.config.reconnect_delay_ms,
            message_timeout_ms=self.config.message_timeout_ms,
            ws_factory=self._ws_factory,
        )
        connection.on("connected", self._on_connected)
        connection.on("disconnected", self._on_disconnected)
        connection.on_message(self._on_message)
        self._connection = connection

        try:
            await connection.connect()
            self._session = SessionKeyManager(
                self._signer,
                connection,
                key_factory=self._session_key_factory,
                session_expiry=self.config.session_expiry,
            )
            info = await self._session.authenticate()
        except JackError as e:
            await connection.disconnect()
            self._connection = None
            self._session = None
            self._status = "error"
            code = map_error_to_reason_code(e)
            logger.warning("ClearNode connect failed (%s): %s", code.value, e)
            await self._events.emit("error", {"message": str(e), "reasonCode": code})
            return YellowConnectionResult(
                connected=False,
                fallback=_fallback(code, f"Failed to connect to ClearNode: {e}"),
            )

        self._status = "connected"
        return YellowConnectionResult(connected=True, session_address=info.session_address)

    async def disconnect(self) -> None:
        for task in list(self._refresh_tasks):
            task.cancel()
        self._refresh_tasks.clear()

        if self._connection is not None:
            connection, self._connection = self._connection, None
            await connection.disconnect()
        if self._session is not None:
            self._session.invalidate()
            self._session = None
        self._channels.clear()
        self._status = "disconnected"

    # ---- Channel lifecycle ----

    async def create_channel(self, chain_id: int, token: str) -> YellowChannelResult:
        fallback = await self._preflight()
        if fallback:
            return YellowChannelResult(fallback=fallback)

        try:
            response = await self._request("create_channel", {"chainId": chain_id, "token": token})
        except JackError as e:
            return YellowChannelResult(fallback=_error_fallback(e, "ClearNode create_channel failed"))
        if response.get("error"):
            return YellowChannelResult(fallback=_error_fallback(response["error"], "ClearNode create_channel failed"))

        data = response.get("data") or {}
        channel_id = data.get("channelId") or response.get("channelId")
        if not channel_id:
            return YellowChannelResult(
                fallback=_fallback(_R.YELLOW_UNAVAILABLE, "ClearNode create_channel response did not include a channelId")
            )

        now = int(time.time())
        state = ChannelState(
            channel_id=channel_id,
            status=ChannelStatus.ACTIVE,
            chain_id=chain_id,
            token=token,
            allocations=data.get("allocations") or [
                ChannelAllocation(destination=self._signer.address, token=token, amount="0")
            ],
            state_version=data.get("stateVersion", 1),
            state_intent=StateIntent.INITIALIZE.value,
            state_hash=data.get("stateHash"),
            adjudicator=self.config.adjudicator_address,
            challenge_period=self.config.challenge_duration,
            created_at=now,
            updated_at=now,
        )
        self._channels.update_channel(channel_id, state)

        tx_hash = data.get("txHash") or response.get("txHash")
        logger.info("Channel %s created on chain %d", channel_id, chain_id)
        await self._events.emit("channel_created", {"channelId": channel_id, "state": state, "txHash": tx_hash})
        return YellowChannelResult(channel_id=channel_id, state=state, tx_hash=tx_hash)

    async def resize_channel(
        self,
        channel_id: str,
        allocate_amount: str,
        funds_destination: str | None = None,
    ) -> YellowChannelResult:
        fallback = await self._preflight()
        if fallback:
            return YellowChannelResult(channel_id=channel_id, fallback=fallback)

        amount = _to_int(allocate_amount)
        if amount is None:
            return YellowChannelResult(
                channel_id=channel_id,
                fallback=_fallback(_R.INSUFFICIENT_BALANCE, f"Invalid allocation amount: {allocate_amount}"),
            )
        if amount < 0:
            return YellowChannelResult(
                channel_id=channel_id,
                fallback=_fallback(_R.INSUFFICIENT_BALANCE, "Resize allocation amount cannot be negative"),
            )

        params = {"channelId": channel_id, "allocateAmount": str(allocate_amount)}
        if funds_destination:
            params["fundsDestination"] = funds_destination
        try:
            response = await self._request("resize_channel", params)
        except JackError as e:
            if "insufficient" in str(e).lower() or "balance" in str(e).lower():
                return YellowChannelResult(
                    channel_id=channel_id,
                    fallback=_fallback(_R.INSUFFICIENT_BALANCE, f"Insufficient balance for resize: {e}"),
                )
            return YellowChannelResult(
                channel_id=channel_id, fallback=_error_fallback(e, "ClearNode resize_channel failed")
            )

        error = response.get("error")
        if error:
            text = str(error).lower()
            if "insufficient" in text or "balance" in text:
                return YellowChannelResult(
                    channel_id=channel_id,
                    fallback=_fallback(_R.INSUFFICIENT_BALANCE, f"Insufficient balance for resize: {error}"),
                )
            return YellowChannelResult(
                channel_id=channel_id, fallback=_error_fallback(error, "ClearNode resize_channel failed")
            )

        data = response.get("data") or {}
        existing = self._channels.get_channel(channel_id)
        token = existing.token if existing else ""
        now = int(time.time())
        state = ChannelState(
            channel_id=channel_id,
            status=existing.status if existing else ChannelStatus.ACTIVE,
            chain_id=existing.chain_id if existing else self.config.chain_id,
            token=token,
            allocations=data.get("allocations") or [
                ChannelAllocation(
                    destination=funds_destination or self._signer.address,
                    token=token,
                    amount=str(allocate_amount),
                )
            ],
            state_version=(existing.state_version if existing else 0) + 1,
            state_intent=StateIntent.RESIZE.value,
            state_hash=data.get("stateHash"),
            adjudicator=self.config.adjudicator_address,
            challenge_period=self.config.challenge_duration,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._channels.update_channel(channel_id, state)

        tx_hash = data.get("txHash") or response.get("txHash")
        await self._events.emit("channel_resized", {"channelId": channel_id, "state": state, "txHash": tx_hash})
        return YellowChannelResult(channel_id=channel_id, state=state, tx_hash=tx_hash)

    async def close_channel(self, channel_id: str, withdraw: bool = True) -> YellowChannelResult:
        """Cooperatively close a channel, withdrawing funds from custody by default.

        A channel under dispute cannot be closed; the cached state is
        returned with a ``YELLOW_CHANNEL_DISPUTE`` fallback instead.
        """
        fallback = await self._preflight()
        if fallback:
            return YellowChannelResult(channel_id=channel_id, fallback=fallback)

        existing = self._channels.get_channel(channel_id)
        if existing and existing.status == ChannelStatus.DISPUTE:
            return YellowChannelResult(
                channel_id=channel_id,
                state=existing,
                fallback=_fallback(
                    _R.YELLOW_CHANNEL_DISPUTE,
                    "Cannot close channel: channel is in DISPUTE status. Wait for dispute resolution before closing.",
                ),
            )

        try:
            response = await self._request("close_channel", {"channelId": channel_id, "withdraw": withdraw})
        except JackError as e:
            return YellowChannelResult(channel_id=channel_id, fallback=_error_fallback(e, "ClearNode close_channel failed"))
        if response.get("error"):
            return YellowChannelResult(
                channel_id=channel_id, fallback=_error_fallback(response["error"], "ClearNode close_channel failed")
            )

        data = response.get("data") or {}
        token = existing.token if existing else ""
        now = int(time.time())
        allocations = data.get("allocations")
        if not allocations:
            allocations = existing.allocations if existing else [
                ChannelAllocation(destination=self._signer.address, token=token, amount="0")
            ]
        state = ChannelState(
            channel_id=channel_id,
            status=ChannelStatus.FINAL,
            chain_id=existing.chain_id if existing else self.config.chain_id,
            token=token,
            allocations=allocations,
            state_version=(existing.state_version if existing else 0) + 1,
            state_intent=StateIntent.FINALIZE.value,
            state_hash=data.get("stateHash"),
            adjudicator=self.config.adjudicator_address,
            challenge_period=self.config.challenge_duration,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._channels.update_channel(channel_id, state)

        tx_hash = data.get("txHash") or response.get("txHash")
        logger.info("Channel %s closed", channel_id)
        await self._events.emit("channel_closed", {"channelId": channel_id, "state": state, "txHash": tx_hash})
        return YellowChannelResult(channel_id=channel_id, state=state, tx_hash=tx_hash)

    # ---- Off-chain transfer ----

    async def transfer(
        self,
        destination: str,
        allocations: list[TransferAllocation | dict[str, str]],
    ) -> YellowTransferResult:
        fallback = await self._preflight()
        if fallback:
            return YellowTransferResult(success=False, fallback=fallback)

        items = [a if isinstance(a, TransferAllocation) else TransferAllocation.model_validate(a) for a in allocations]
        wallet = self._signer.address.lower()
        for item in items:
            amount = _to_int(item.amount)
            if amount is None or amount < 0:
                return YellowTransferResult(
                    success=False,
                    fallback=_fallback(_R.INSUFFICIENT_CHANNEL_BALANCE, f"Invalid transfer amount: {item.amount}"),
                )
            channel = self._channels.find_open_channel(item.asset)
            if channel is None:
                continue
            own = next(
                (a for a in channel.allocations
                 if a.destination.lower() == wallet and a.token.lower() == item.asset.lower()),
                None,
            )
            balance = (_to_int(own.amount) or 0) if own else 0
            if amount > balance:
                return YellowTransferResult(
                    success=False,
                    fallback=_fallback(
                        _R.INSUFFICIENT_CHANNEL_BALANCE,
                        f"Transfer amount {item.amount} exceeds sender's channel allocation "
                        f"{balance} for asset {item.asset}",
                    ),
                )

        try:
            response = await self._request(
                "transfer",
                {"destination": destination, "allocations": [i.model_dump() for i in items]},
            )
        except JackError as e:
            return YellowTransferResult(success=False, fallback=_error_fallback(e, "ClearNode transfer failed"))

        error = response.get("error")
        if error:
            text = str(error).lower()
            if "insufficient" in text or "balance" in text:
                code, message = _R.INSUFFICIENT_CHANNEL_BALANCE, f"Transfer rejected: {error}"
            else:
                code, message = _R.YELLOW_UNAVAILABLE, f"Transfer rejected by ClearNode: {error}"
            return YellowTransferResult(success=False, fallback=_fallback(code, message))

        data = response.get("data") or {}
        if data.get("allocations"):
            updated = [ChannelAllocation.model_validate(a) for a in data["allocations"]]
        else:
            updated = [ChannelAllocation(destination=destination, token=i.asset, amount=i.amount) for i in items]

        channel_id = data.get("channelId")
        existing = self._channels.get_channel(channel_id) if channel_id else None
        if existing:
            self._channels.update_channel(channel_id, existing.model_copy(update={
                "allocations": updated,
                "state_version": data.get("stateVersion", existing.state_version + 1),
                "state_intent": StateIntent.OPERATE.value,
                "updated_at": int(time.time()),
            }))

        await self._events.emit("transfer_completed", {"destination": destination, "allocations": updated})
        return YellowTransferResult(success=True, updated_allocations=updated)

    # ---- Intent execution ----

    async def execute_intent(self, params: IntentParams | dict[str, Any]) -> YellowExecutionResult:
        """Clear an intent through a state channel.

        Reuses an open channel for ``token_in`` or creates one, submits the
        intent for solver matching and normalizes the returned quote and
        clearing data.
        """
        now_ms = int(time.time() * 1000)
        p = IntentParams.coerce(params)

        missing = [wire for attr, wire in _REQUIRED_INTENT_FIELDS if not str(getattr(p, attr)).strip()]
        if missing:
            return YellowExecutionResult(
                provider="fallback",
                timestamp=now_ms,
                fallback=_fallback(_R.MISSING_PARAMS, f"Missing required intent parameters: {', '.join(missing)}"),
            )

        fallback = await self._preflight()
        if fallback:
            return YellowExecutionResult(provider="fallback", timestamp=now_ms, fallback=fallback)

        channel = self._channels.find_open_channel(p.token_in)
        if channel is None:
            created = await self.create_channel(self.config.chain_id, p.token_in)
            if created.fallback or created.state is None:
                return YellowExecutionResult(provider="fallback", timestamp=now_ms, fallback=created.fallback)
            channel = created.state
        channel_id = channel.channel_id

        request = {
            "sourceChain": p.source_chain,
            "destinationChain": p.destination_chain,
            "tokenIn": p.token_in,
            "tokenOut": p.token_out,
            "amountIn": p.amount_in,
            "minAmountOut": p.min_amount_out,
            "deadline": p.deadline,
            "channelId": channel_id,
        }
        try:
            response = await self._request("submit_intent", request)
        except JackError as e:
            code = map_error_to_reason_code(e)
            if isinstance(e, JackTimeoutError) or code == _R.YELLOW_TIMEOUT:
                fb = _fallback(_R.NO_SOLVER_QUOTES, f"No solver quotes received within timeout: {e}")
            else:
                fb = _error_fallback(e, "ClearNode submit_intent failed")
            return YellowExecutionResult(provider="fallback", channel_id=channel_id, timestamp=now_ms, fallback=fb)

        if response.get("error"):
            return YellowExecutionResult(
                provider="fallback",
                channel_id=channel_id,
                timestamp=now_ms,
                fallback=_fallback(_R.NO_SOLVER_QUOTES, f"Intent submission rejected: {response['error']}"),
            )

        data = response.get("data") or {}
        intent_id = data.get("intentId") or f"intent-{now_ms}"
        raw_quote = data.get("quote")
        if not raw_quote:
            logger.warning("No solver quote for intent %s on channel %s", intent_id, channel_id)
            return YellowExecutionResult(
                provider="fallback",
                intent_id=intent_id,
                channel_id=channel_id,
                timestamp=now_ms,
                fallback=_fallback(_R.NO_SOLVER_QUOTES, "No solver quotes received from ClearNode"),
            )

        quote = YellowQuote(
            solver_id=str(raw_quote.get("solverId", "unknown")),
            channel_id=channel_id,
            amount_in=str(raw_quote.get("amountIn", p.amount_in)),
            amount_out=str(raw_quote.get("amountOut", p.min_amount_out)),
            estimated_time=int(raw_quote.get("estimatedTime", 60)),
            timestamp=now_ms // 1000,
        )
        await self._events.emit("quote_received", {"intentId": intent_id, "quote": quote})

        clearing = None
        raw_clearing = data.get("clearing")
        if raw_clearing:
            proof = raw_clearing.get("settlementProof")
            clearing = ClearingResult(
                channel_id=raw_clearing.get("channelId", channel_id),
                matched_amount_in=str(raw_clearing.get("matchedAmountIn", quote.amount_in)),
                matched_amount_out=str(raw_clearing.get("matchedAmountOut", quote.amount_out)),
                net_settlement=str(raw_clearing.get("netSettlement", "0")),
                settlement_proof=SettlementProof.model_validate(proof) if proof else None,
                timestamp=now_ms // 1000,
            )
            await self._events.emit("clearing_completed", {"intentId": intent_id, "clearing": clearing})

        return YellowExecutionResult(
            provider="yellow",
            intent_id=intent_id,
            quote=quote,
            clearing=clearing,
            channel_id=channel_id,
            timestamp=now_ms,
        )

    # ---- Queries ----

    async def get_channels(self) -> YellowChannelsResult:
        """All channels known to the ClearNode, or the cached ones when it is unreachable."""
        if self._connection is None or not self._connection.is_connected:
            return self._cached_channels(
                _fallback(_R.YELLOW_UNAVAILABLE, "Not connected to ClearNode and no cached channel data available")
            )

        try:
            response = await self._request("get_ledger_balances", {})
            if response.get("error"):
                raise JackError(f"ClearNode rejected get_ledger_balances: {response['error']}")
        except JackError as e:
            return self._cached_channels(_error_fallback(e, "ClearNode get_ledger_balances failed"))

        try:
            channels = [ChannelState.model_validate(ch) for ch in (response.get("data") or {}).get("channels", [])]
        except ValueError as e:
            return self._cached_channels(_error_fallback(e, "Failed to query channels"))

        for channel in channels:
            self._channels.update_channel(channel.channel_id, channel)
        return YellowChannelsResult(channels=channels)

    async def get_channel_state(self, channel_id: str) -> YellowChannelResult:
        """State of one channel: cached while fresh, refreshed from the ClearNode otherwise."""
        if self._connection is None or not self._connection.is_connected:
            return YellowChannelResult(
                channel_id=channel_id,
                fallback=_fallback(_R.YELLOW_UNAVAILABLE, "Not connected to ClearNode"),
            )

        cached = self._channels.get_channel(channel_id)
        if cached is not None and self._channels.is_fresh(channel_id):
            return YellowChannelResult(channel_id=channel_id, state=cached)

        try:
            state = await self._refresh_channel(channel_id)
        except (JackError, ValueError) as e:
            return YellowChannelResult(
                channel_id=channel_id,
                state=cached,
                fallback=_error_fallback(e, "ClearNode get_ledger_balances failed"),
            )

        if state is None:
            return YellowChannelResult(
                channel_id=channel_id,
                fallback=_fallback(_R.YELLOW_UNAVAILABLE, f"No channel state found for channel {channel_id}"),
            )
        return YellowChannelResult(channel_id=channel_id, state=state)

    # ---- Internal ----

    async def _preflight(self) -> YellowFallback | None:
        if self._connection is None or not self._connection.is_connected:
            return _fallback(_R.YELLOW_UNAVAILABLE, "Not connected to ClearNode")
        if self._session is None:
            return _fallback(_R.YELLOW_UNAVAILABLE, "Session manager not initialized: call connect() first")
        try:
            await self._session.ensure_authenticated()
        except JackError as e:
            return _fallback(_R.YELLOW_AUTH_FAILED, f"Authentication failed: {e}")
        return None

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if self._connection is None:
            raise JackError("WebSocket is not connected")
        return await self._connection.send_and_wait(
            {"method": method, "params": params},
            method,
            self.config.message_timeout_ms,
        )

    def _cached_channels(self, fallback: YellowFallback) -> YellowChannelsResult:
        cached = self._channels.get_all_channels()
        if cached:
            return YellowChannelsResult(channels=cached)
        return YellowChannelsResult(fallback=fallback)

    async def _refresh_channel(self, channel_id: str) -> ChannelState | None:
        response = await self._request("get_ledger_balances", {"channelId": channel_id})
        if response.get("error"):
            raise JackError(f"ClearNode rejected get_ledger_balances: {response['error']}")

        found = None
        for raw in (response.get("data") or {}).get("channels", []):
            state = ChannelState.model_validate(raw)
            self._channels.update_channel(state.channel_id, state)
            if state.channel_id == channel_id:
                found = state
        return found

    async def _on_connected(self, _: Any) -> None:
        self._status = "connected"
        await self._events.emit("connected")

    async def _on_disconnected(self, _: Any) -> None:
        self._status = "disconnected"
        await self._events.emit("disconnected")

    def _on_message(self, message: Any) -> None:
        if not isinstance(message, dict):
            return
        method = extract_method(message)
        if method in _RESPONSE_METHODS:
            return
        channel_id = _notification_channel_id(message)
        if channel_id is None:
            return

        task = asyncio.create_task(self._handle_notification(channel_id, method, message))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _handle_notification(self, channel_id: str, method: str | None, message: dict[str, Any]) -> None:
        data = next((c for c in (message.get("data"), message.get("params")) if isinstance(c, dict)), {})
        try:
            state = await self._refresh_channel(channel_id)
        except (JackError, ValueError) as e:
            logger.debug("Background refresh of channel %s failed: %s", channel_id, e)
            state = self._channels.get_channel(channel_id)

        mapping = infer_mapping(
            event=data.get("event") or method,
            channel_status=state.status.value if state else data.get("status"),
            state_intent=state.state_intent if state else data.get("stateIntent"),
        )
        await self._events.emit("channel_update", {
            "channelId": channel_id,
            "event": method,
            "mapping": mapping,
            "state": state,
        })

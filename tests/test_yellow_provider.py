"""Tests for the Yellow state-channel provider against an in-memory ClearNode."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from jack_sdk.types import ChannelStatus, ExecutionStatus, YellowReasonCode
from jack_sdk.yellow.provider import (
    YellowProvider,
    extract_revert_reason,
    map_error_to_reason_code,
)
from jack_sdk.yellow.registry import SEPOLIA_YELLOW_ADDRESSES, create_sepolia_yellow_config

from conftest import USDC, WETH, FakeSocket, intent_params, settle, socket_factory


WALLET = "0x1111111111111111111111111111111111111111"
SESSION = "0x2222222222222222222222222222222222222222"
RECIPIENT = "0x3333333333333333333333333333333333333333"


class FakeSigner:
    def __init__(self, address: str = WALLET) -> None:
        self.address = address
        self.signed: list[dict[str, Any]] = []

    async def sign_typed_data(self, typed_data: dict[str, Any]) -> str:
        self.signed.append(typed_data)
        return "0xsigned"


class ClearNode:
    """Scripted server: answers the auth handshake and any method in ``replies``."""

    def __init__(self) -> None:
        self.replies: dict[str, Any] = {}
        self.verified = True

    def __call__(self, message: dict[str, Any]) -> list[dict[str, Any]]:
        method = message["method"]
        if method == "auth_request":
            return [{"method": "auth_challenge", "data": {"challenge": "challenge-123"}}]
        if method == "auth_verify":
            return [{"method": "auth_verify", "data": {"authenticated": self.verified}}]
        reply = self.replies.get(method)
        if reply is None:
            return []
        if callable(reply):
            reply = reply(message)
        return [{"method": method, **reply}]


def channel_json(channel_id: str, status: str = "ACTIVE", amount: str = "1000", **extra: Any) -> dict[str, Any]:
    return {
        "channelId": channel_id,
        "status": status,
        "chainId": 11155111,
        "token": USDC,
        "allocations": [{"destination": WALLET, "token": USDC, "amount": amount}],
        "stateVersion": 3,
        "stateIntent": "OPERATE",
        "adjudicator": SEPOLIA_YELLOW_ADDRESSES["adjudicator"],
        "challengePeriod": 3600,
        "createdAt": 1700000000,
        "updatedAt": 1700000100,
        **extra,
    }


def make_provider(node: ClearNode, sock: FakeSocket, signer: FakeSigner | None = None, **config: Any) -> YellowProvider:
    config.setdefault("message_timeout_ms", 200)
    return YellowProvider(
        create_sepolia_yellow_config(**config),
        signer or FakeSigner(),
        ws_factory=socket_factory(sock),
        session_key_factory=lambda: FakeSigner(SESSION),
    )


@pytest_asyncio.fixture
async def node():
    return ClearNode()


@pytest_asyncio.fixture
async def sock(node):
    return FakeSocket(node)


@pytest_asyncio.fixture
async def provider(node, sock):
    yellow = make_provider(node, sock)
    result = await yellow.connect()
    assert result.connected
    yield yellow
    await yellow.disconnect()


def record(provider: YellowProvider, event_type: str) -> list[Any]:
    seen: list[Any] = []
    provider.on(event_type, seen.append)
    return seen


# ============================================================
#  Error classification
# ============================================================


@pytest.mark.parametrize(
    "message, code",
    [
        ("Request timed out waiting for response", YellowReasonCode.YELLOW_TIMEOUT),
        ("Authentication failed: bad signature", YellowReasonCode.YELLOW_AUTH_FAILED),
        ("execution reverted: nope", YellowReasonCode.YELLOW_TX_FAILED),
        ("WebSocket is not connected", YellowReasonCode.YELLOW_UNAVAILABLE),
        ("channel in dispute", YellowReasonCode.YELLOW_CHANNEL_DISPUTE),
        ("insufficient channel funds", YellowReasonCode.INSUFFICIENT_CHANNEL_BALANCE),
        ("balance too low", YellowReasonCode.INSUFFICIENT_BALANCE),
        ("something odd", YellowReasonCode.YELLOW_UNAVAILABLE),
    ],
)
def test_map_error_to_reason_code(message: str, code: YellowReasonCode) -> None:
    assert map_error_to_reason_code(message) == code
    assert map_error_to_reason_code(RuntimeError(message)) == code


def test_extract_revert_reason() -> None:
    assert extract_revert_reason("execution reverted: ERC20: insufficient allowance") == "ERC20: insufficient allowance"
    assert extract_revert_reason("Transaction reverted with reason: Custody: locked") == "Custody: locked"
    assert extract_revert_reason(RuntimeError("execution reverted - paused\nstack...")) == "paused"
    assert extract_revert_reason("execution reverted") is None
    assert extract_revert_reason("connection refused") is None


# ============================================================
#  Not connected
# ============================================================


@pytest.mark.asyncio
async def test_operations_fall_back_when_not_connected(node, sock) -> None:
    yellow = make_provider(node, sock)

    created = await yellow.create_channel(11155111, USDC)
    assert created.fallback.reason_code == YellowReasonCode.YELLOW_UNAVAILABLE
    assert created.fallback.message == "Not connected to ClearNode"

    transferred = await yellow.transfer(RECIPIENT, [{"asset": USDC, "amount": "1"}])
    assert not transferred.success
    assert transferred.fallback.reason_code == YellowReasonCode.YELLOW_UNAVAILABLE

    channels = await yellow.get_channels()
    assert channels.channels == []
    assert channels.fallback.message == "Not connected to ClearNode and no cached channel data available"

    state = await yellow.get_channel_state("0xch")
    assert state.fallback.message == "Not connected to ClearNode"

    executed = await yellow.execute_intent(intent_params())
    assert executed.provider == "fallback"
    assert executed.fallback.reason_code == YellowReasonCode.YELLOW_UNAVAILABLE
    assert sock.sent == []


@pytest.mark.asyncio
async def test_execute_intent_reports_missing_fields(node, sock) -> None:
    yellow = make_provider(node, sock)
    result = await yellow.execute_intent(intent_params(sourceChain="", amountIn=" "))

    assert result.provider == "fallback"
    assert result.fallback.reason_code == YellowReasonCode.MISSING_PARAMS
    assert result.fallback.message == "Missing required intent parameters: sourceChain, amountIn"


# ============================================================
#  Connect / disconnect
# ============================================================


@pytest.mark.asyncio
async def test_connect_authenticates_session(node, sock) -> None:
    signer = FakeSigner()
    yellow = make_provider(node, sock, signer)
    connected = record(yellow, "connected")

    result = await yellow.connect()

    assert result.connected
    assert result.session_address == SESSION
    assert result.fallback is None
    assert yellow.is_connected
    assert yellow.status == "connected"
    assert connected == [None]

    assert sock.sent_methods() == ["auth_request", "auth_verify"]
    auth_request = sock.sent[0]["params"]
    assert auth_request["wallet"] == WALLET
    assert auth_request["participant"] == SESSION
    assert auth_request["scope"] == "jack-kernel"
    assert sock.sent[1]["params"] == {"participant": SESSION, "signature": "0xsigned", "challenge": "challenge-123"}
    assert signer.signed[0]["primaryType"] == "Auth"
    assert signer.signed[0]["message"] == {"challenge": "challenge-123"}

    await yellow.disconnect()


@pytest.mark.asyncio
async def test_connect_failure_returns_fallback() -> None:
    yellow = YellowProvider(
        create_sepolia_yellow_config(),
        FakeSigner(),
        ws_factory=socket_factory(OSError("refused")),
        session_key_factory=lambda: FakeSigner(SESSION),
    )
    errors = record(yellow, "error")

    result = await yellow.connect()

    assert not result.connected
    assert result.fallback.reason_code == YellowReasonCode.YELLOW_UNAVAILABLE
    assert result.fallback.message.startswith("Failed to connect to ClearNode: WebSocket connection failed")
    assert yellow.status == "error"
    assert not yellow.is_connected
    assert errors[0]["reasonCode"] == YellowReasonCode.YELLOW_UNAVAILABLE


@pytest.mark.asyncio
async def test_rejected_auth_returns_auth_fallback(node, sock) -> None:
    node.verified = False
    yellow = make_provider(node, sock)

    result = await yellow.connect()

    assert not result.connected
    assert result.fallback.reason_code == YellowReasonCode.YELLOW_AUTH_FAILED
    assert sock.closed


@pytest.mark.asyncio
async def test_disconnect_clears_state(provider, node) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    await provider.create_channel(11155111, USDC)
    disconnected = record(provider, "disconnected")

    await provider.disconnect()

    assert provider.status == "disconnected"
    assert not provider.is_connected
    assert len(provider.channels) == 0
    assert disconnected == [None]


# ============================================================
#  Channel lifecycle
# ============================================================


@pytest.mark.asyncio
async def test_create_channel(provider, node, sock) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1", "txHash": "0xtx1"}}
    created = record(provider, "channel_created")

    result = await provider.create_channel(11155111, USDC)

    assert result.fallback is None
    assert result.channel_id == "0xch1"
    assert result.tx_hash == "0xtx1"
    state = result.state
    assert state.status == ChannelStatus.ACTIVE
    assert state.state_intent == "INITIALIZE"
    assert state.state_version == 1
    assert state.adjudicator == SEPOLIA_YELLOW_ADDRESSES["adjudicator"]
    assert state.challenge_period == 3600
    assert [(a.destination, a.token, a.amount) for a in state.allocations] == [(WALLET, USDC, "0")]
    assert provider.channels.get_channel("0xch1") == state
    assert created[0]["channelId"] == "0xch1"
    assert sock.sent[-1] == {"method": "create_channel", "params": {"chainId": 11155111, "token": USDC}}


@pytest.mark.asyncio
async def test_create_channel_without_id_falls_back(provider, node) -> None:
    node.replies["create_channel"] = {"data": {}}
    result = await provider.create_channel(11155111, USDC)

    assert result.channel_id is None
    assert result.fallback.message == "ClearNode create_channel response did not include a channelId"


@pytest.mark.asyncio
async def test_create_channel_revert_reason(provider, node) -> None:
    node.replies["create_channel"] = {"error": "execution reverted: ERC20: insufficient allowance"}
    result = await provider.create_channel(11155111, USDC)

    assert result.fallback.reason_code == YellowReasonCode.YELLOW_TX_FAILED
    assert result.fallback.message == "ClearNode create_channel failed: ERC20: insufficient allowance"


@pytest.mark.asyncio
async def test_resize_channel(provider, node, sock) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    node.replies["resize_channel"] = {"data": {"txHash": "0xtx2"}}
    await provider.create_channel(11155111, USDC)

    result = await provider.resize_channel("0xch1", "500")

    assert result.fallback is None
    assert result.state.state_version == 2
    assert result.state.state_intent == "RESIZE"
    assert result.state.allocations[0].amount == "500"
    assert result.tx_hash == "0xtx2"
    assert sock.sent[-1]["params"] == {"channelId": "0xch1", "allocateAmount": "500"}


@pytest.mark.asyncio
async def test_resize_rejects_bad_amounts(provider, node) -> None:
    negative = await provider.resize_channel("0xch1", "-1")
    assert negative.fallback.reason_code == YellowReasonCode.INSUFFICIENT_BALANCE
    assert negative.fallback.message == "Resize allocation amount cannot be negative"

    invalid = await provider.resize_channel("0xch1", "lots")
    assert invalid.fallback.message == "Invalid allocation amount: lots"

    node.replies["resize_channel"] = {"error": "insufficient funds in custody"}
    rejected = await provider.resize_channel("0xch1", "10")
    assert rejected.fallback.reason_code == YellowReasonCode.INSUFFICIENT_BALANCE
    assert rejected.fallback.message == "Insufficient balance for resize: insufficient funds in custody"


@pytest.mark.asyncio
async def test_close_channel(provider, node, sock) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    node.replies["close_channel"] = {"data": {"txHash": "0xtx3"}}
    closed = record(provider, "channel_closed")
    await provider.create_channel(11155111, USDC)

    result = await provider.close_channel("0xch1")

    assert result.state.status == ChannelStatus.FINAL
    assert result.state.state_intent == "FINALIZE"
    assert result.state.state_version == 2
    assert sock.sent[-1]["params"] == {"channelId": "0xch1", "withdraw": True}
    assert closed[0]["txHash"] == "0xtx3"


@pytest.mark.asyncio
async def test_close_channel_in_dispute(provider, sock) -> None:
    from jack_sdk.types import ChannelState

    disputed = ChannelState.model_validate(channel_json("0xch9", status="DISPUTE"))
    provider.channels.update_channel("0xch9", disputed)
    sent_before = len(sock.sent)

    result = await provider.close_channel("0xch9")

    assert result.state == disputed
    assert result.fallback.reason_code == YellowReasonCode.YELLOW_CHANNEL_DISPUTE
    assert len(sock.sent) == sent_before


# ============================================================
#  Transfers
# ============================================================


@pytest_asyncio.fixture
async def funded(provider, node):
    node.replies["create_channel"] = {
        "data": {"channelId": "0xch1", "allocations": [{"destination": WALLET, "token": USDC, "amount": "1000"}]}
    }
    await provider.create_channel(11155111, USDC)
    return provider


@pytest.mark.asyncio
async def test_transfer_within_allocation(funded, node, sock) -> None:
    node.replies["transfer"] = {
        "data": {
            "channelId": "0xch1",
            "allocations": [
                {"destination": WALLET, "token": USDC, "amount": "600"},
                {"destination": RECIPIENT, "token": USDC, "amount": "400"},
            ],
        }
    }
    completed = record(funded, "transfer_completed")

    result = await funded.transfer(RECIPIENT, [{"asset": USDC, "amount": "400"}])

    assert result.success
    assert [a.amount for a in result.updated_allocations] == ["600", "400"]
    assert sock.sent[-1]["params"] == {"destination": RECIPIENT, "allocations": [{"asset": USDC, "amount": "400"}]}
    cached = funded.channels.get_channel("0xch1")
    assert cached.state_intent == "OPERATE"
    assert cached.state_version == 2
    assert completed[0]["destination"] == RECIPIENT


@pytest.mark.asyncio
async def test_transfer_exceeding_allocation_not_sent(funded, sock) -> None:
    sent_before = len(sock.sent)
    result = await funded.transfer(RECIPIENT, [{"asset": USDC, "amount": "1500"}])

    assert not result.success
    assert result.fallback.reason_code == YellowReasonCode.INSUFFICIENT_CHANNEL_BALANCE
    assert result.fallback.message == (
        f"Transfer amount 1500 exceeds sender's channel allocation 1000 for asset {USDC}"
    )
    assert len(sock.sent) == sent_before


@pytest.mark.asyncio
async def test_transfer_rejections(funded, node) -> None:
    node.replies["transfer"] = {"error": "insufficient balance"}
    result = await funded.transfer(RECIPIENT, [{"asset": USDC, "amount": "10"}])
    assert result.fallback.reason_code == YellowReasonCode.INSUFFICIENT_CHANNEL_BALANCE
    assert result.fallback.message == "Transfer rejected: insufficient balance"

    node.replies["transfer"] = {"error": "rate limited"}
    result = await funded.transfer(RECIPIENT, [{"asset": USDC, "amount": "10"}])
    assert result.fallback.reason_code == YellowReasonCode.YELLOW_UNAVAILABLE
    assert result.fallback.message == "Transfer rejected by ClearNode: rate limited"

    result = await funded.transfer(RECIPIENT, [{"asset": USDC, "amount": "-3"}])
    assert result.fallback.reason_code == YellowReasonCode.INSUFFICIENT_CHANNEL_BALANCE


# ============================================================
#  Intent execution
# ============================================================


QUOTED = {
    "data": {
        "intentId": "JK-42",
        "quote": {"solverId": "solver-1", "amountIn": "1000000", "amountOut": "410000000000000", "estimatedTime": 30},
        "clearing": {
            "matchedAmountIn": "1000000",
            "matchedAmountOut": "410000000000000",
            "settlementProof": {"stateHash": "0xhash", "signatures": ["0xa", "0xb"]},
        },
    }
}


@pytest.mark.asyncio
async def test_execute_intent_through_channel(provider, node, sock) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    node.replies["submit_intent"] = QUOTED
    quotes = record(provider, "quote_received")
    clearings = record(provider, "clearing_completed")

    result = await provider.execute_intent(intent_params())

    assert result.provider == "yellow"
    assert result.fallback is None
    assert result.intent_id == "JK-42"
    assert result.channel_id == "0xch1"
    assert result.quote.solver_id == "solver-1"
    assert result.quote.estimated_time == 30
    assert result.quote.channel_id == "0xch1"
    assert result.clearing.channel_id == "0xch1"
    assert result.clearing.net_settlement == "0"
    assert result.clearing.settlement_proof.signatures == ["0xa", "0xb"]
    assert quotes[0]["intentId"] == "JK-42"
    assert clearings[0]["clearing"] == result.clearing

    submitted = sock.sent[-1]["params"]
    assert submitted["channelId"] == "0xch1"
    assert submitted["tokenIn"] == USDC
    assert submitted["tokenOut"] == WETH

    await provider.execute_intent(intent_params())
    assert sock.sent_methods().count("create_channel") == 1


@pytest.mark.asyncio
async def test_execute_intent_without_quote(provider, node) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    node.replies["submit_intent"] = {"data": {}}

    result = await provider.execute_intent(intent_params())

    assert result.provider == "fallback"
    assert result.intent_id.startswith("intent-")
    assert result.fallback.reason_code == YellowReasonCode.NO_SOLVER_QUOTES
    assert result.fallback.message == "No solver quotes received from ClearNode"


@pytest.mark.asyncio
async def test_execute_intent_timeout(node, sock) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    yellow = make_provider(node, sock, message_timeout_ms=30)
    await yellow.connect()

    result = await yellow.execute_intent(intent_params())

    assert result.fallback.reason_code == YellowReasonCode.NO_SOLVER_QUOTES
    assert result.fallback.message.startswith("No solver quotes received within timeout")
    assert result.channel_id == "0xch1"
    await yellow.disconnect()


@pytest.mark.asyncio
async def test_execute_intent_rejected(provider, node) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    node.replies["submit_intent"] = {"error": "deadline too short"}

    result = await provider.execute_intent(intent_params())

    assert result.fallback.reason_code == YellowReasonCode.NO_SOLVER_QUOTES
    assert result.fallback.message == "Intent submission rejected: deadline too short"


@pytest.mark.asyncio
async def test_execute_intent_channel_failure(provider, node) -> None:
    node.replies["create_channel"] = {"error": "ClearNode unavailable"}
    result = await provider.execute_intent(intent_params())

    assert result.provider == "fallback"
    assert result.fallback.reason_code == YellowReasonCode.YELLOW_UNAVAILABLE


# ============================================================
#  Channel queries
# ============================================================


@pytest.mark.asyncio
async def test_get_channels_updates_cache(provider, node) -> None:
    node.replies["get_ledger_balances"] = {"data": {"channels": [channel_json("0xa"), channel_json("0xb", "final")]}}

    result = await provider.get_channels()

    assert [c.channel_id for c in result.channels] == ["0xa", "0xb"]
    assert result.channels[1].status == ChannelStatus.FINAL
    assert provider.channels.get_channel("0xa").state_version == 3


@pytest.mark.asyncio
async def test_get_channels_error_returns_cache(provider, node) -> None:
    node.replies["get_ledger_balances"] = {"data": {"channels": [channel_json("0xa")]}}
    await provider.get_channels()

    node.replies["get_ledger_balances"] = {"error": "internal"}
    result = await provider.get_channels()

    assert [c.channel_id for c in result.channels] == ["0xa"]
    assert result.fallback is None


@pytest.mark.asyncio
async def test_get_channel_state_uses_fresh_cache(provider, node, sock) -> None:
    node.replies["create_channel"] = {"data": {"channelId": "0xch1"}}
    await provider.create_channel(11155111, USDC)

    result = await provider.get_channel_state("0xch1")

    assert result.state.channel_id == "0xch1"
    assert "get_ledger_balances" not in sock.sent_methods()


@pytest.mark.asyncio
async def test_get_channel_state_refreshes_when_stale(node, sock) -> None:
    node.replies["get_ledger_balances"] = {"data": {"channels": [channel_json("0xch1", amount="77")]}}
    yellow = make_provider(node, sock, channel_state_ttl_ms=0)
    await yellow.connect()

    result = await yellow.get_channel_state("0xch1")
    assert result.state.allocations[0].amount == "77"
    assert sock.sent[-1]["params"] == {"channelId": "0xch1"}

    missing = await yellow.get_channel_state("0xnone")
    assert missing.state is None
    assert missing.fallback.message == "No channel state found for channel 0xnone"

    node.replies["get_ledger_balances"] = {"error": "ClearNode overloaded"}
    stale = await yellow.get_channel_state("0xch1")
    assert stale.state.allocations[0].amount == "77"
    assert stale.fallback.reason_code == YellowReasonCode.YELLOW_UNAVAILABLE

    await yellow.disconnect()


# ============================================================
#  Notifications
# ============================================================


@pytest.mark.asyncio
async def test_notification_refreshes_and_maps(provider, node, sock) -> None:
    node.replies["get_ledger_balances"] = {
        "data": {"channels": [channel_json("0xch1", status="FINAL", stateIntent="FINALIZE")]}
    }
    updates = record(provider, "channel_update")

    sock.push({"method": "channel_notification", "data": {"channelId": "0xch1", "event": "settled"}})
    await settle(lambda: updates)

    update = updates[0]
    assert update["channelId"] == "0xch1"
    assert update["event"] == "channel_notification"
    assert update["state"].status == ChannelStatus.FINAL
    assert update["mapping"].execution_status == ExecutionStatus.SETTLED
    assert update["mapping"].is_terminal
    assert provider.channels.get_channel("0xch1").status == ChannelStatus.FINAL


@pytest.mark.asyncio
async def test_notification_without_refresh_uses_payload(provider, sock) -> None:
    updates = record(provider, "channel_update")

    sock.push({"method": "channel_notification", "params": {"channelId": "0xch2", "status": "ACTIVE"}})
    await asyncio.wait_for(settle(lambda: updates), 2)

    assert updates[0]["state"] is None
    assert updates[0]["mapping"].execution_status == ExecutionStatus.EXECUTING


@pytest.mark.asyncio
async def test_responses_are_not_notifications(provider, sock) -> None:
    updates = record(provider, "channel_update")
    sock.push({"method": "transfer", "data": {"channelId": "0xch1"}})
    await asyncio.sleep(0.05)
    assert updates == []

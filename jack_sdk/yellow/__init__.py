"""Yellow Network (ERC-7824) state-channel integration."""

from jack_sdk.yellow.channel_state import ChannelStateManager
from jack_sdk.yellow.connection import (
    ClearNodeConnection,
    ConnectionState,
    calculate_backoff_delay,
    extract_method,
)
from jack_sdk.yellow.event_mapper import (
    infer_mapping,
    map_channel_status,
    map_state_intent,
    map_yellow_event,
)
from jack_sdk.yellow.provider import (
    YellowProvider,
    extract_revert_reason,
    map_error_to_reason_code,
)
from jack_sdk.yellow.registry import (
    SEPOLIA_YELLOW_ADDRESSES,
    YellowRegistry,
    create_sepolia_yellow_config,
)
from jack_sdk.yellow.session import SessionKeyManager, build_auth_typed_data
from jack_sdk.yellow.signer import LocalAccountSigner, WalletSigner

__all__ = [
    "ChannelStateManager",
    "ClearNodeConnection",
    "ConnectionState",
    "calculate_backoff_delay",
    "extract_method",
    "infer_mapping",
    "map_channel_status",
    "map_state_intent",
    "map_yellow_event",
    "YellowProvider",
    "extract_revert_reason",
    "map_error_to_reason_code",
    "SEPOLIA_YELLOW_ADDRESSES",
    "YellowRegistry",
    "create_sepolia_yellow_config",
    "SessionKeyManager",
    "build_auth_typed_data",
    "LocalAccountSigner",
    "WalletSigner",
]

"""Local cache of ClearNode channel states."""

from __future__ import annotations

import time

from jack_sdk.types import ChannelState, ChannelStatus


class ChannelStateManager:
    """Channel states keyed by channel id, with a freshness window.

    The ClearNode stays the source of truth: entries are snapshots that
    the provider refreshes on demand or when a notification arrives.
    Writes replace a whole entry, so readers never see a partial update.
    """

    def __init__(self, ttl_ms: float = 30000) -> None:
        self._ttl = ttl_ms / 1000.0
        self._channels: dict[str, ChannelState] = {}
        self._refreshed_at: dict[str, float] = {}

    def update_channel(self, channel_id: str, state: ChannelState) -> None:
        self._channels[channel_id] = state
        self._refreshed_at[channel_id] = time.monotonic()

    def get_channel(self, channel_id: str) -> ChannelState | None:
        return self._channels.get(channel_id)

    def get_all_channels(self) -> list[ChannelState]:
        return list(self._channels.values())

    def is_fresh(self, channel_id: str) -> bool:
        refreshed = self._refreshed_at.get(channel_id)
        return refreshed is not None and time.monotonic() - refreshed < self._ttl

    def find_open_channel(self, token: str) -> ChannelState | None:
        """First ACTIVE channel holding ``token``."""
        for channel in self._channels.values():
            if channel.status == ChannelStatus.ACTIVE and channel.token == token:
                return channel
        return None

    def clear(self) -> None:
        self._channels.clear()
        self._refreshed_at.clear()

    def __len__(self) -> int:
        return len(self._channels)

"""Holder for an application-wide :class:`YellowProvider`."""

from __future__ import annotations

import logging
from typing import Any

from jack_sdk.types import YellowConfig
from jack_sdk.yellow.provider import YellowProvider
from jack_sdk.yellow.signer import WalletSigner

logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111

SEPOLIA_YELLOW_ADDRESSES: dict[str, str] = {
    "custody": "0x019B65A265EB3363822f2752141b3dF16131b262",
    "adjudicator": "0x7c7ccbc98469190849BCC6c926307794fDfB11F2",
}


def create_sepolia_yellow_config(**overrides: Any) -> YellowConfig:
    """Config for the public Sepolia deployment; keyword arguments override fields."""
    return YellowConfig(
        custody_address=SEPOLIA_YELLOW_ADDRESSES["custody"],
        adjudicator_address=SEPOLIA_YELLOW_ADDRESSES["adjudicator"],
        chain_id=SEPOLIA_CHAIN_ID,
    ).model_copy(update=overrides)


class YellowRegistry:
    """Explicit init/get/reset lifecycle for one shared provider.

    Owned by the application's composition root; nothing in the SDK
    reads it implicitly.
    """

    def __init__(self) -> None:
        self._provider: YellowProvider | None = None

    def init(
        self,
        config: YellowConfig | dict[str, Any],
        signer: WalletSigner,
        **kwargs: Any,
    ) -> YellowProvider:
        """Create a provider and make it the current one.

        A previously registered provider is replaced, not disconnected;
        the caller still owns its lifecycle.
        """
        if self._provider is not None:
            logger.info("Replacing registered Yellow provider")
        self._provider = YellowProvider(config, signer, **kwargs)
        return self._provider

    def get(self) -> YellowProvider | None:
        return self._provider

    def reset(self) -> None:
        self._provider = None

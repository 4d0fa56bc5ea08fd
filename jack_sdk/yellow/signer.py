"""
Wallet collaborators for EIP-712 signing.

The SDK never holds user keys itself: anything with an ``address`` and a
``sign_typed_data`` method can act as the wallet. :class:`LocalAccountSigner`
is a convenience implementation backed by ``eth-account``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Protocol, runtime_checkable

_INSTALL_HINT = "eth-account not installed: install with pip install jack-sdk[signing]"


@runtime_checkable
class WalletSigner(Protocol):
    """Signs EIP-712 typed data on behalf of :attr:`address`.

    ``sign_typed_data`` may be a plain method or a coroutine.
    """

    @property
    def address(self) -> str: ...

    def sign_typed_data(self, typed_data: dict[str, Any]) -> str | Awaitable[str]: ...


async def sign_typed_data(signer: WalletSigner, typed_data: dict[str, Any]) -> str:
    """Call ``signer.sign_typed_data`` and await the result if needed."""
    result = signer.sign_typed_data(typed_data)
    if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
        result = await result
    return result


def _load_eth_account() -> tuple[Any, Any, Any]:
    try:
        from eth_account import Account
        from eth_account.messages import encode_typed_data
        from eth_utils import to_checksum_address
    except ImportError:
        raise RuntimeError(_INSTALL_HINT)
    return Account, encode_typed_data, to_checksum_address


class LocalAccountSigner:
    """Wallet backed by a raw private key.

    Args:
        private_key: Hex private key, with or without ``0x``.

    Raises:
        RuntimeError: If ``eth-account`` is not installed.
    """

    def __init__(self, private_key: str) -> None:
        Account, _, _ = _load_eth_account()
        self._private_key = private_key
        self._account = Account.from_key(private_key)

    @classmethod
    def generate(cls) -> LocalAccountSigner:
        """Signer for a freshly generated throwaway key."""
        Account, _, _ = _load_eth_account()
        account = Account.create()
        return cls(account.key.hex())

    @property
    def address(self) -> str:
        return self._account.address

    def sign_typed_data(self, typed_data: dict[str, Any]) -> str:
        _, encode_typed_data, to_checksum_address = _load_eth_account()

        types = {k: v for k, v in typed_data["types"].items() if k != "EIP712Domain"}
        primary = typed_data.get("primaryType")

        # Numeric fields travel as decimal strings; eth-abi wants ints
        message = dict(typed_data["message"])
        for field in types.get(primary, []):
            name, kind = field["name"], field["type"]
            if kind.startswith(("uint", "int")) and isinstance(message.get(name), str):
                message[name] = int(message[name])

        domain = {k: v for k, v in typed_data["domain"].items() if v is not None}
        if "verifyingContract" in domain:
            domain["verifyingContract"] = to_checksum_address(domain["verifyingContract"])

        signable = encode_typed_data(
            domain_data=domain,
            message_types=types,
            message_data=message,
        )
        signed = self._account.sign_message(signable)

        sig_hex = signed.signature.hex()
        if not sig_hex.startswith("0x"):
            sig_hex = "0x" + sig_hex
        return sig_hex

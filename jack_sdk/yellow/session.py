"""
ClearNode session authentication.

A throwaway session key is generated per session and registered with the
ClearNode through a challenge/response handshake signed by the main wallet::

    auth_request  ->  auth_challenge  ->  (wallet signs Auth)  ->  auth_verify
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from jack_sdk.errors import JackError
from jack_sdk.types import SessionInfo
from jack_sdk.yellow.connection import ClearNodeConnection
from jack_sdk.yellow.signer import LocalAccountSigner, WalletSigner, sign_typed_data

logger = logging.getLogger(__name__)

AUTH_TIMEOUT_MS = 30000
DEFAULT_SCOPE = "jack-kernel"
DEFAULT_SESSION_EXPIRY = 3600  # seconds

SessionKeyFactory = Callable[[], WalletSigner]


def build_auth_typed_data(challenge: str) -> dict[str, Any]:
    """EIP-712 payload the main wallet signs to answer a challenge."""
    return {
        "domain": {"name": "Yellow ClearNode", "version": "1"},
        "types": {"Auth": [{"name": "challenge", "type": "string"}]},
        "primaryType": "Auth",
        "message": {"challenge": challenge},
    }


def _is_confirmed(response: dict[str, Any]) -> bool:
    data = response.get("data") or {}
    return (
        data.get("authenticated") is True
        or response.get("status") == "ok"
        or data.get("status") in ("ok", "authenticated")
    )


class SessionKeyManager:
    """Owns the session key and the authenticated session for one connection."""

    def __init__(
        self,
        signer: WalletSigner,
        connection: ClearNodeConnection,
        key_factory: SessionKeyFactory | None = None,
        session_expiry: int = DEFAULT_SESSION_EXPIRY,
    ) -> None:
        self._signer = signer
        self._connection = connection
        self._key_factory = key_factory or LocalAccountSigner.generate
        self._session_expiry = session_expiry
        self._session_key: WalletSigner | None = None
        self._session: SessionInfo | None = None
        self._last_auth: dict[str, Any] | None = None

    @property
    def session_info(self) -> SessionInfo | None:
        return self._session

    @property
    def session_key(self) -> WalletSigner:
        if self._session_key is None:
            raise JackError("No authenticated session: call authenticate() first")
        return self._session_key

    @property
    def session_address(self) -> str:
        if self._session_key is None:
            raise JackError("No session key generated: call authenticate() first")
        return self._session_key.address

    @property
    def is_authenticated(self) -> bool:
        if self._session is None or not self._session.authenticated:
            return False
        if int(time.time()) >= self._session.expires_at:
            self._session.authenticated = False
            return False
        return True

    async def authenticate(
        self,
        allowances: list[dict[str, str]] | None = None,
        expires_at: int | None = None,
        scope: str | None = None,
    ) -> SessionInfo:
        """Run the handshake and return the new session.

        Args:
            allowances: ``{"asset", "amount"}`` spending limits for the session key.
            expires_at: Unix seconds. Defaults to ``session_expiry`` seconds from now.
            scope: Application scope. Defaults to ``"jack-kernel"``.

        Raises:
            JackError: Any step of the handshake failed.
        """
        self._last_auth = {"allowances": allowances, "scope": scope}

        self._session_key = self._key_factory()
        session_address = self._session_key.address
        expire = expires_at if expires_at is not None else int(time.time()) + self._session_expiry

        request = {
            "method": "auth_request",
            "params": {
                "wallet": self._signer.address,
                "participant": session_address,
                "allowances": allowances or [],
                "expire": expire,
                "scope": scope or DEFAULT_SCOPE,
            },
        }
        try:
            challenge_response = await self._connection.send_and_wait(request, "auth_challenge", AUTH_TIMEOUT_MS)
        except JackError as e:
            raise JackError(f"Authentication failed: could not receive auth_challenge: {e.message}") from e

        challenge = challenge_response.get("challenge") or (challenge_response.get("data") or {}).get("challenge")
        if not isinstance(challenge, str) or not challenge:
            raise JackError("Authentication failed: invalid auth_challenge response, missing challenge string")

        try:
            signature = await sign_typed_data(self._signer, build_auth_typed_data(challenge))
        except Exception as e:
            raise JackError(f"Authentication failed: EIP-712 signing error: {e}") from e

        verify = {
            "method": "auth_verify",
            "params": {"participant": session_address, "signature": signature, "challenge": challenge},
        }
        try:
            verify_response = await self._connection.send_and_wait(verify, "auth_verify", AUTH_TIMEOUT_MS)
        except JackError as e:
            raise JackError(f"Authentication failed: could not receive auth_verify confirmation: {e.message}") from e

        if not _is_confirmed(verify_response):
            raise JackError("Authentication failed: ClearNode rejected the auth_verify request")

        self._session = SessionInfo(session_address=session_address, expires_at=expire, authenticated=True)
        logger.info("ClearNode session %s authenticated until %d", session_address, expire)
        return self._session.model_copy()

    def invalidate(self) -> None:
        self._session_key = None
        self._session = None

    async def reauthenticate(self) -> SessionInfo:
        if self._last_auth is None:
            raise JackError("Cannot re-authenticate: no previous authentication parameters available")
        params = self._last_auth
        self.invalidate()
        return await self.authenticate(**params)

    async def ensure_authenticated(self) -> SessionInfo:
        """Current session, re-running the handshake if it expired."""
        if self.is_authenticated and self._session is not None:
            return self._session.model_copy()
        return await self.reauthenticate()

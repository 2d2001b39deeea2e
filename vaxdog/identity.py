import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from vaxdog import config
from vaxdog.errors import AuthenticationError, GatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    uid: str
    phone_number: str | None = None
    display_name: str | None = None


class IdentityProvider(Protocol):
    async def lookup(self, id_token: str) -> Identity: ...


class FirebaseIdentityProvider:
    """
    Resolves an ID token minted by the phone-OTP sign-in flow to the
    account it belongs to, via the Identity Toolkit ``accounts:lookup`` call.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = config.IDENTITY_TOOLKIT_URL,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def lookup(self, id_token: str) -> Identity:
        if not self._api_key:
            logger.error("FIREBASE_API_KEY not configured")
            raise GatewayError("Identity provider not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/accounts:lookup",
                    params={"key": self._api_key},
                    json={"idToken": id_token},
                )
        except httpx.HTTPError as e:
            logger.error(f"Identity provider lookup failed: {e}")
            raise GatewayError("Identity provider is unreachable") from e

        if response.status_code == 400:
            raise AuthenticationError("Invalid or expired sign-in token")
        if response.status_code >= 400:
            logger.error(f"Identity provider returned HTTP {response.status_code}")
            raise GatewayError(f"Identity provider error (HTTP {response.status_code})")

        users = response.json().get("users") or []
        if not users:
            raise AuthenticationError("Invalid or expired sign-in token")

        account = users[0]
        return Identity(
            uid=account["localId"],
            phone_number=account.get("phoneNumber"),
            display_name=account.get("displayName"),
        )

"""Backchannel calls to the BlueJeans API: token exchange and profile fetch.

Both calls are single attempts bounded by ``backchannel_timeout``. A failed
exchange raises; a failed profile fetch only degrades the resulting identity.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from fastapi_bluejeans.consts import (
    MAX_RESPONSE_CONTENT_BYTES,
    TOKEN_ENDPOINT,
    USER_INFO_ENDPOINT_FORMAT,
)
from fastapi_bluejeans.exceptions import BackchannelError, MissingTokenError, OAuth2Error
from fastapi_bluejeans.options import BlueJeansAuthenticationOptions

logger = logging.getLogger(__name__)


class GrantType(str, Enum):
    """OAuth2 grant types."""
    AUTHORIZATION_CODE = "authorization_code"


def parse_expires_in(value: Any) -> Optional[timedelta]:
    """Parse ``expires_in`` given as an integer or a numeric string.

    Anything else, including fractional values, leaves the expiry unset.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return timedelta(seconds=value)
    if isinstance(value, float):
        return timedelta(seconds=int(value)) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return timedelta(seconds=int(value.strip()))
        except ValueError:
            return None
    return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


@dataclass
class TokenResponse:
    """Parsed response of the token endpoint."""
    access_token: str
    expires_in: Optional[timedelta] = None
    refresh_token: Optional[str] = None
    scope: List[str] = field(default_factory=list)
    user_id: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Any) -> "TokenResponse":
        """Build a token response from the provider's JSON body.

        Raises:
            BackchannelError: If the body is not a JSON object.
            MissingTokenError: If ``access_token`` is absent or empty.
        """
        if not isinstance(payload, dict):
            raise BackchannelError(
                "Token response is not a JSON object", OAuth2Error.SERVER_ERROR.value
            )
        access_token = payload.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise MissingTokenError("Token response does not contain an access token")

        scope: List[str] = []
        user_id = None
        nested = payload.get("scope")
        if isinstance(nested, dict):
            permissions = nested.get("bearerPermissions")
            if isinstance(permissions, str) and permissions:
                scope = permissions.split(",")
            elif isinstance(permissions, list):
                scope = [str(p) for p in permissions]
            user_id = _optional_str(nested.get("user"))

        return cls(
            access_token=access_token,
            expires_in=parse_expires_in(payload.get("expires_in")),
            refresh_token=_optional_str(payload.get("refresh_token")),
            scope=scope,
            user_id=user_id,
        )


def create_backchannel_client(options: BlueJeansAuthenticationOptions) -> httpx.AsyncClient:
    """Create the pooled HTTP client shared by every flow of one middleware."""
    kwargs: Dict[str, Any] = {"timeout": options.backchannel_timeout}
    if options.backchannel_transport is not None:
        kwargs["transport"] = options.backchannel_transport
    if options.backchannel_verify is not None:
        kwargs["verify"] = options.backchannel_verify
    return httpx.AsyncClient(**kwargs)


class BlueJeansBackchannel:
    """Token exchange client and profile fetcher."""

    def __init__(
        self,
        options: BlueJeansAuthenticationOptions,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.options = options
        self._client = client or create_backchannel_client(options)

    async def exchange_code(self, code: Optional[str], redirect_uri: str) -> TokenResponse:
        """Exchange an authorization code for an access token.

        ``redirect_uri`` must be the exact callback URI sent in the authorization
        request.

        Raises:
            BackchannelError: On network errors, timeouts, non-2xx responses and
                unreadable or oversized bodies.
            MissingTokenError: If the response carries no access token.
        """
        token_data = {
            "grant_type": GrantType.AUTHORIZATION_CODE.value,
            "client_id": self.options.client_id,
            "client_secret": self.options.client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        }
        headers = {"Accept": "application/json"}

        try:
            async with self._client.stream(
                "POST", TOKEN_ENDPOINT, json=token_data, headers=headers
            ) as response:
                response.raise_for_status()
                content = await self._read_content(response)
        except httpx.HTTPStatusError as e:
            raise BackchannelError(
                f"Token endpoint returned HTTP {e.response.status_code}",
                OAuth2Error.INVALID_GRANT.value
                if e.response.status_code == 400
                else OAuth2Error.SERVER_ERROR.value,
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise BackchannelError("Token request timed out") from e
        except httpx.RequestError as e:
            raise BackchannelError(f"Network error: {str(e)}") from e

        try:
            payload = json.loads(content)
        except ValueError as e:
            raise BackchannelError(
                "Token response is not valid JSON", OAuth2Error.SERVER_ERROR.value
            ) from e
        return TokenResponse.from_json(payload)

    async def fetch_profile(
        self, user_id: Optional[str], access_token: str
    ) -> Optional[Dict[str, Any]]:
        """Return the user's profile JSON, or ``None`` if it is unavailable."""
        url = USER_INFO_ENDPOINT_FORMAT.format(
            user_id=quote(user_id or "", safe=""),
            access_token=quote(access_token, safe=""),
        )
        try:
            async with self._client.stream(
                "GET", url, headers={"Accept": "application/json"}
            ) as response:
                if not response.is_success:
                    logger.warning(f"Profile endpoint returned HTTP {response.status_code}")
                    return None
                content = await self._read_content(response)
        except httpx.HTTPError as e:
            logger.warning(f"Profile request failed: {type(e).__name__}")
            return None
        except BackchannelError as e:
            logger.warning(f"Unreadable profile response: {e}")
            return None

        try:
            profile = json.loads(content)
        except ValueError as e:
            logger.warning(f"Unreadable profile response: {e}")
            return None
        if not isinstance(profile, dict):
            logger.warning("Profile response is not a JSON object")
            return None
        return profile

    async def _read_content(self, response: httpx.Response) -> bytes:
        """Read the body of a streamed response, stopping past the size cap.

        Raises:
            BackchannelError: If the body is larger than ``MAX_RESPONSE_CONTENT_BYTES``.
        """
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > MAX_RESPONSE_CONTENT_BYTES:
            raise self._oversized()
        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > MAX_RESPONSE_CONTENT_BYTES:
                raise self._oversized()
        return bytes(content)

    @staticmethod
    def _oversized() -> BackchannelError:
        return BackchannelError(
            f"Response exceeds {MAX_RESPONSE_CONTENT_BYTES} bytes",
            OAuth2Error.SERVER_ERROR.value,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

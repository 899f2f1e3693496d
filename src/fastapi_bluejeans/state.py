"""The opaque ``state`` parameter carried through the provider round trip."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from cryptography.fernet import InvalidToken

from fastapi_bluejeans.consts import MAX_STATE_LENGTH, STATE_PROTECTOR_VERSION
from fastapi_bluejeans.data_protection import DataProtectionProvider, DataProtector
from fastapi_bluejeans.exceptions import StateDecodeError, StateEncodeError

logger = logging.getLogger(__name__)

STATE_PURPOSE = "fastapi_bluejeans.middleware.BlueJeansAuthenticationMiddleware"


@dataclass
class AuthorizationRequestState:
    """Property bag issued at challenge time and decoded once on callback."""
    redirect_uri: Optional[str] = None
    correlation_token: Optional[str] = None
    extras: Dict[str, str] = field(default_factory=dict)
    # Unix time the correlation token was issued at
    issued_at: Optional[int] = None

    def pop_extra(self, name: str) -> Optional[str]:
        """Remove a caller-supplied extra so it is not serialized into the state."""
        return self.extras.pop(name, None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "r": self.redirect_uri,
            "x": self.correlation_token,
            "t": self.issued_at,
            "e": dict(self.extras),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AuthorizationRequestState":
        if not isinstance(data, dict):
            raise StateDecodeError("State payload is not an object")
        redirect_uri = data.get("r")
        correlation_token = data.get("x")
        issued_at = data.get("t")
        extras = data.get("e", {})
        for value in (redirect_uri, correlation_token):
            if value is not None and not isinstance(value, str):
                raise StateDecodeError("State payload has a non-string field")
        if issued_at is not None and (
            isinstance(issued_at, bool) or not isinstance(issued_at, int)
        ):
            raise StateDecodeError("State issue time must be an integer")
        if not isinstance(extras, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in extras.items()
        ):
            raise StateDecodeError("State extras must map strings to strings")
        return cls(
            redirect_uri=redirect_uri,
            correlation_token=correlation_token,
            extras=extras,
            issued_at=issued_at,
        )


class StateDataFormat:
    """Encodes :class:`AuthorizationRequestState` into a URL-safe, tamper-evident blob.

    Decoding fails closed: anything that is not a blob issued by this format,
    for this purpose chain, decodes to ``None``. Blobs are at most
    ``MAX_STATE_LENGTH`` characters long in both directions.
    """

    def __init__(self, protector: DataProtector, max_age: Optional[int] = None):
        self.protector = protector
        self.max_age = max_age

    def protect(self, state: AuthorizationRequestState) -> str:
        """Encode ``state``.

        Raises:
            StateEncodeError: If the blob would be longer than ``unprotect`` accepts.
        """
        payload = json.dumps(state.to_dict(), separators=(",", ":"), sort_keys=True)
        blob = self.protector.protect(payload.encode("utf-8"))
        if len(blob) > MAX_STATE_LENGTH:
            raise StateEncodeError(
                f"Encoded state of {len(blob)} characters exceeds {MAX_STATE_LENGTH}"
            )
        return blob

    def unprotect(self, blob: Optional[str]) -> Optional[AuthorizationRequestState]:
        if not blob:
            return None
        if len(blob) > MAX_STATE_LENGTH:
            logger.debug(f"Rejected state of {len(blob)} characters")
            return None
        try:
            payload = self.protector.unprotect(blob, max_age=self.max_age)
            return AuthorizationRequestState.from_dict(json.loads(payload))
        except (InvalidToken, ValueError, TypeError, StateDecodeError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
            logger.debug(f"Rejected state: {type(e).__name__}")
            return None

    encode = protect
    decode = unprotect


def create_state_data_format(
    secret_key: Union[str, bytes, DataProtectionProvider],
    authentication_type: str,
    max_age: Optional[int] = None,
) -> StateDataFormat:
    """Build the state format bound to one provider integration."""
    provider = (
        secret_key
        if isinstance(secret_key, DataProtectionProvider)
        else DataProtectionProvider(secret_key)
    )
    protector = provider.create_protector(
        STATE_PURPOSE, authentication_type, STATE_PROTECTOR_VERSION
    )
    return StateDataFormat(protector, max_age=max_age)

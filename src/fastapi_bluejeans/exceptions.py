"""Errors raised while authenticating against BlueJeans.

Only :class:`ConfigurationError` ever leaves the library: it is raised when the
middleware is constructed with unusable options. Every other error is flow-local
and is converted by the authentication handler into a failed or cancelled
callback result. A :class:`StateEncodeError` leaves the challenged 401 unchanged.
"""

from enum import Enum
from typing import Optional


class OAuth2Error(str, Enum):
    """OAuth2 error codes as defined in RFC 6749."""
    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    ACCESS_DENIED = "access_denied"
    SERVER_ERROR = "server_error"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"


class BlueJeansAuthenticationError(Exception):
    """Base class for every error raised by this package."""

    default_error_code = OAuth2Error.SERVER_ERROR.value

    def __init__(self, error_description: str, error_code: Optional[str] = None):
        self.error_code = error_code or self.default_error_code
        self.error_description = error_description
        super().__init__(f"{self.error_code}: {error_description}")


class ConfigurationError(BlueJeansAuthenticationError):
    """Options are missing or inconsistent; fatal at startup."""

    default_error_code = OAuth2Error.INVALID_CLIENT.value


class StateDecodeError(BlueJeansAuthenticationError):
    """The ``state`` parameter is missing, malformed or has been tampered with."""

    default_error_code = OAuth2Error.INVALID_REQUEST.value


class StateEncodeError(BlueJeansAuthenticationError):
    """The properties of a challenge do not fit into the ``state`` parameter."""

    default_error_code = OAuth2Error.INVALID_REQUEST.value


class CorrelationError(BlueJeansAuthenticationError):
    """The correlation token of the callback does not match the one issued."""

    default_error_code = OAuth2Error.INVALID_REQUEST.value


class BackchannelError(BlueJeansAuthenticationError):
    """A backchannel call failed: network error, timeout or non-2xx status."""

    default_error_code = OAuth2Error.TEMPORARILY_UNAVAILABLE.value

    def __init__(
        self,
        error_description: str,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(error_description, error_code)


class MissingTokenError(BackchannelError):
    """The token endpoint answered 2xx but without an access token."""

    default_error_code = OAuth2Error.INVALID_GRANT.value


class ProviderDenied(BlueJeansAuthenticationError):
    """The provider redirected back with an ``error`` parameter."""

    default_error_code = OAuth2Error.ACCESS_DENIED.value

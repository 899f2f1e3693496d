"""Configuration of the BlueJeans authentication middleware."""

import os
import ssl
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from fastapi_bluejeans.consts import (
    CORRELATION_COOKIE_PREFIX,
    DEFAULT_AUTHENTICATION_TYPE,
    DEFAULT_BACKCHANNEL_TIMEOUT_SECONDS,
    DEFAULT_CALLBACK_PATH,
    DEFAULT_CORRELATION_TTL_SECONDS,
    DEFAULT_SCOPE,
)
from fastapi_bluejeans.exceptions import ConfigurationError
from fastapi_bluejeans.provider import BlueJeansAuthenticationProvider
from fastapi_bluejeans.state import StateDataFormat


class AuthenticationMode(str, Enum):
    """Whether the middleware reacts to every 401 or only to explicit challenges."""
    ACTIVE = "active"
    PASSIVE = "passive"


class BlueJeansAuthenticationOptions(BaseModel):
    """Options for :class:`~fastapi_bluejeans.middleware.BlueJeansAuthenticationMiddleware`.

    ``client_id`` and ``client_secret`` are checked by :meth:`validate_required`
    when the middleware is constructed. ``scopes`` falls back to ``user_info`` the
    first time a challenge is issued.

    Behind a TLS-terminating proxy the request scheme is only ``https`` when the
    proxy headers are applied (uvicorn's ``--proxy-headers``); otherwise set
    ``correlation_cookie_secure=True`` explicitly.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Client credentials
    client_id: str = ""
    client_secret: str = ""

    # Authorization request
    callback_path: str = DEFAULT_CALLBACK_PATH
    scopes: List[str] = Field(default_factory=list)
    app_name: Optional[str] = None
    app_logo_url: Optional[str] = None

    # Backchannel
    backchannel_timeout: float = Field(default=DEFAULT_BACKCHANNEL_TIMEOUT_SECONDS, gt=0)
    backchannel_transport: Optional[httpx.AsyncBaseTransport] = None
    backchannel_verify: Optional[Union[ssl.SSLContext, bool, str]] = None

    # Identity
    authentication_type: str = DEFAULT_AUTHENTICATION_TYPE
    authentication_mode: AuthenticationMode = AuthenticationMode.PASSIVE
    caption: Optional[str] = None
    sign_in_as_authentication_type: Optional[str] = None

    # Extension points
    provider: Optional[BlueJeansAuthenticationProvider] = None
    state_data_format: Optional[StateDataFormat] = None

    # Correlation cookie
    correlation_ttl_seconds: int = Field(default=DEFAULT_CORRELATION_TTL_SECONDS, gt=0)
    # None marks the cookie Secure only when the request came in over https
    correlation_cookie_secure: Optional[bool] = None
    correlation_cookie_samesite: str = "lax"

    @field_validator("callback_path")
    @classmethod
    def validate_callback_path(cls, v):
        """The callback path is matched against the request path, so it must be absolute."""
        if not v or not v.startswith("/"):
            raise ValueError("callback_path must start with '/'")
        return v

    @field_validator("correlation_cookie_samesite")
    @classmethod
    def validate_samesite(cls, v):
        v = v.lower()
        if v not in ("lax", "strict", "none"):
            raise ValueError("SameSite must be 'lax', 'strict' or 'none'")
        return v

    @field_validator("authentication_type")
    @classmethod
    def validate_authentication_type(cls, v):
        if not v:
            raise ValueError("authentication_type must not be empty")
        return v

    @property
    def correlation_cookie_name(self) -> str:
        return CORRELATION_COOKIE_PREFIX + self.authentication_type

    @property
    def display_caption(self) -> str:
        return self.caption or self.authentication_type

    def ensure_default_scope(self) -> List[str]:
        """Apply the default scope when none has been configured."""
        if not self.scopes:
            self.scopes.append(DEFAULT_SCOPE)
        return self.scopes

    def validate_required(self) -> None:
        """Raise :class:`ConfigurationError` if the options cannot be used.

        Raises:
            ConfigurationError: When the client credentials are blank, or when a
                certificate validator is combined with a custom transport.
        """
        if not self.client_id or not self.client_id.strip():
            raise ConfigurationError("client_id option must be provided.")
        if not self.client_secret or not self.client_secret.strip():
            raise ConfigurationError("client_secret option must be provided.")
        if self.backchannel_verify is not None and self.backchannel_transport is not None:
            raise ConfigurationError(
                "backchannel_verify cannot be combined with a custom backchannel_transport; "
                "configure certificate validation on the transport instead."
            )

    @classmethod
    def from_env(
        cls,
        prefix: str = "BLUEJEANS_",
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "BlueJeansAuthenticationOptions":
        """Build options from ``<prefix>CLIENT_ID``, ``<prefix>CLIENT_SECRET`` and friends.

        ``<prefix>SCOPES`` is a comma-separated list. Keyword arguments win over
        environment values.
        """
        environ = os.environ if environ is None else environ
        names = {
            "CLIENT_ID": "client_id",
            "CLIENT_SECRET": "client_secret",
            "CALLBACK_PATH": "callback_path",
            "APP_NAME": "app_name",
            "APP_LOGO_URL": "app_logo_url",
            "BACKCHANNEL_TIMEOUT": "backchannel_timeout",
            "AUTHENTICATION_TYPE": "authentication_type",
            "AUTHENTICATION_MODE": "authentication_mode",
            "CAPTION": "caption",
            "SIGN_IN_AS_AUTHENTICATION_TYPE": "sign_in_as_authentication_type",
            "CORRELATION_TTL_SECONDS": "correlation_ttl_seconds",
        }
        values = {}
        for env_name, field_name in names.items():
            value = environ.get(prefix + env_name)
            if value:
                values[field_name] = value
        scopes = environ.get(prefix + "SCOPES")
        if scopes:
            values["scopes"] = [s.strip() for s in scopes.split(",") if s.strip()]
        values.update(overrides)
        return cls(**values)

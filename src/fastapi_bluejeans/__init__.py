"""FastAPI BlueJeans - Sign users in with their BlueJeans account.

FastAPI BlueJeans implements the OAuth2 authorization code flow against
BlueJeans as ASGI middleware. Endpoints ask for authentication by returning a
challenge; the middleware redirects the user agent to BlueJeans, handles the
callback, exchanges the code for an access token, fetches the user's profile
and hands a claims identity to your sign-in function.

Key Components:
    - BlueJeansAuthenticationMiddleware: The ASGI middleware
    - BlueJeansAuthenticationOptions: Client credentials and flow settings
    - BlueJeansAuthenticationProvider: Hooks into authentication, return and redirect
    - use_bluejeans_authentication: Registers the middleware on an application
    - challenge: Asks the middleware to authenticate the current request

Usage:
    ```python
    from fastapi import FastAPI, Request
    from starlette.middleware.sessions import SessionMiddleware
    from fastapi_bluejeans import challenge, get_signed_in_identity, use_bluejeans_authentication

    app = FastAPI()
    use_bluejeans_authentication(
        app,
        client_id="my-client-id",
        client_secret="my-client-secret",
        secret_key="a-long-random-secret",
    )
    app.add_middleware(SessionMiddleware, secret_key="another-secret")

    @app.get("/login")
    def login(request: Request):
        return challenge(request, {"appName": "My App"})

    @app.get("/me")
    def me(request: Request):
        identity = get_signed_in_identity(request)
        return {"name": identity.name if identity else None}
    ```
"""

from fastapi_bluejeans.consts import (
    AUTHORIZE_ENDPOINT,
    DEFAULT_AUTHENTICATION_TYPE,
    DEFAULT_CALLBACK_PATH,
    DEFAULT_SCOPE,
    TOKEN_ENDPOINT,
    USER_INFO_ENDPOINT_FORMAT,
)
from fastapi_bluejeans.exceptions import (
    BackchannelError,
    BlueJeansAuthenticationError,
    ConfigurationError,
    CorrelationError,
    MissingTokenError,
    OAuth2Error,
    ProviderDenied,
    StateDecodeError,
    StateEncodeError,
)
from fastapi_bluejeans.data_protection import DataProtectionProvider, DataProtector
from fastapi_bluejeans.state import (
    AuthorizationRequestState,
    StateDataFormat,
    create_state_data_format,
)
from fastapi_bluejeans.identity import (
    AuthenticatedIdentity,
    Claim,
    ClaimsIdentity,
    ClaimTypes,
    assemble_identity,
)
from fastapi_bluejeans.provider import (
    ApplyRedirectContext,
    AuthenticatedContext,
    BlueJeansAuthenticationProvider,
    ReturnEndpointContext,
)
from fastapi_bluejeans.options import AuthenticationMode, BlueJeansAuthenticationOptions
from fastapi_bluejeans.correlation import (
    CorrelationStore,
    CorrelationValidator,
    MemoryCorrelationStore,
)
from fastapi_bluejeans.redirect import build_authorization_url
from fastapi_bluejeans.backchannel import BlueJeansBackchannel, TokenResponse
from fastapi_bluejeans.handler import (
    AuthenticationChallenge,
    BlueJeansAuthenticationHandler,
    CallbackResult,
    FlowOutcome,
    RequestKind,
)
from fastapi_bluejeans.middleware import (
    BlueJeansAuthenticationMiddleware,
    challenge,
    get_signed_in_identity,
    raise_challenge,
    session_sign_in,
)
from fastapi_bluejeans.extensions import use_bluejeans_authentication

__version__ = "0.1.0"

__all__ = [
    # Endpoints and defaults
    "AUTHORIZE_ENDPOINT",
    "TOKEN_ENDPOINT",
    "USER_INFO_ENDPOINT_FORMAT",
    "DEFAULT_AUTHENTICATION_TYPE",
    "DEFAULT_CALLBACK_PATH",
    "DEFAULT_SCOPE",
    # Errors
    "BlueJeansAuthenticationError",
    "ConfigurationError",
    "StateDecodeError",
    "StateEncodeError",
    "CorrelationError",
    "BackchannelError",
    "MissingTokenError",
    "ProviderDenied",
    "OAuth2Error",
    # State
    "DataProtectionProvider",
    "DataProtector",
    "AuthorizationRequestState",
    "StateDataFormat",
    "create_state_data_format",
    # Identity
    "AuthenticatedIdentity",
    "Claim",
    "ClaimsIdentity",
    "ClaimTypes",
    "assemble_identity",
    # Provider
    "BlueJeansAuthenticationProvider",
    "AuthenticatedContext",
    "ReturnEndpointContext",
    "ApplyRedirectContext",
    # Options
    "AuthenticationMode",
    "BlueJeansAuthenticationOptions",
    # Flow
    "CorrelationStore",
    "CorrelationValidator",
    "MemoryCorrelationStore",
    "build_authorization_url",
    "BlueJeansBackchannel",
    "TokenResponse",
    "AuthenticationChallenge",
    "BlueJeansAuthenticationHandler",
    "CallbackResult",
    "FlowOutcome",
    "RequestKind",
    # Middleware
    "BlueJeansAuthenticationMiddleware",
    "challenge",
    "raise_challenge",
    "session_sign_in",
    "get_signed_in_identity",
    "use_bluejeans_authentication",
]

"""ASGI middleware wiring the BlueJeans authentication handler into an application.

The middleware intercepts the callback path and watches every other response:
a 401 for which a challenge has been recorded (see :func:`challenge`) is
replaced by a redirect to BlueJeans.
"""

import logging
from typing import Any, Dict, List, Optional, Union

import httpx
from fastapi import HTTPException, status
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fastapi_bluejeans.backchannel import BlueJeansBackchannel
from fastapi_bluejeans.consts import (
    CHALLENGES_SCOPE_KEY,
    DEFAULT_AUTHENTICATION_TYPE,
    SESSION_IDENTITY_KEY,
)
from fastapi_bluejeans.correlation import CorrelationStore, CorrelationValidator
from fastapi_bluejeans.data_protection import DataProtectionProvider
from fastapi_bluejeans.exceptions import ConfigurationError, StateEncodeError
from fastapi_bluejeans.handler import (
    AuthenticationChallenge,
    BlueJeansAuthenticationHandler,
    RequestKind,
)
from fastapi_bluejeans.identity import Claim, ClaimsIdentity
from fastapi_bluejeans.options import BlueJeansAuthenticationOptions
from fastapi_bluejeans.provider import BlueJeansAuthenticationProvider
from fastapi_bluejeans.state import AuthorizationRequestState, create_state_data_format
from fastapi_bluejeans.typing import SignInFunc

logger = logging.getLogger(__name__)

DEFAULT_SIGN_IN_AS_AUTHENTICATION_TYPE = "ExternalCookie"


def _record_challenge(
    request: Request,
    properties: Optional[Union[AuthorizationRequestState, Dict[str, str]]],
    authentication_type: Optional[str],
) -> None:
    if properties is None:
        properties = AuthorizationRequestState()
    elif isinstance(properties, dict):
        properties = AuthorizationRequestState(extras=dict(properties))
    challenges: List[AuthenticationChallenge] = request.scope.setdefault(
        CHALLENGES_SCOPE_KEY, []
    )
    challenges.append(AuthenticationChallenge(authentication_type, properties))


def challenge(
    request: Request,
    properties: Optional[Union[AuthorizationRequestState, Dict[str, str]]] = None,
    authentication_type: Optional[str] = DEFAULT_AUTHENTICATION_TYPE,
) -> Response:
    """Ask the middleware to authenticate the current user with BlueJeans.

    Returns a 401 response for the endpoint to return; the middleware replaces
    it with the redirect. ``properties`` may carry the post-sign-in redirect
    target and extras such as ``appName``.
    """
    _record_challenge(request, properties, authentication_type)
    return Response(status_code=status.HTTP_401_UNAUTHORIZED)


def raise_challenge(
    request: Request,
    properties: Optional[Union[AuthorizationRequestState, Dict[str, str]]] = None,
    authentication_type: Optional[str] = DEFAULT_AUTHENTICATION_TYPE,
) -> None:
    """Like :func:`challenge`, but raises ``HTTPException(401)``."""
    _record_challenge(request, properties, authentication_type)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


def session_sign_in(
    request: Request,
    response: Optional[Response],
    identity: ClaimsIdentity,
    properties: AuthorizationRequestState,
) -> None:
    """Default sign-in: store the identity in Starlette's session, when installed."""
    if "session" not in request.scope:
        logger.warning(
            "SessionMiddleware is not installed; pass sign_in= to persist the identity"
        )
        return
    request.session[SESSION_IDENTITY_KEY] = {
        "identity": identity.to_dict(),
        "properties": dict(properties.extras),
    }


def get_signed_in_identity(request: Request) -> Optional[ClaimsIdentity]:
    """Read back the identity stored by :func:`session_sign_in`."""
    if "session" not in request.scope:
        return None
    data = request.session.get(SESSION_IDENTITY_KEY)
    if not data:
        return None
    identity = data["identity"]
    return ClaimsIdentity(
        authentication_type=identity["authentication_type"],
        claims=[Claim(**claim) for claim in identity["claims"]],
    )


class BlueJeansAuthenticationMiddleware:
    """ASGI middleware implementing BlueJeans sign-in.

    ``options`` is copied; the caller's instance is never modified. Pass a
    ``correlation_store`` to make every correlation nonce single use; the store
    must be shared by all workers serving the callback path.

    Raises:
        ConfigurationError: At construction, when the options are unusable or no
            secret is available to protect the state parameter.
    """

    def __init__(
        self,
        app: ASGIApp,
        options: Optional[BlueJeansAuthenticationOptions] = None,
        *,
        secret_key: Optional[Union[str, bytes, DataProtectionProvider]] = None,
        sign_in: Optional[SignInFunc] = session_sign_in,
        correlation_store: Optional[CorrelationStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        **option_kwargs: Any,
    ):
        self.app = app
        if options is None:
            options = BlueJeansAuthenticationOptions(**option_kwargs)
        else:
            # Defaults below are filled into a private copy
            options = options.model_copy(update={"scopes": list(options.scopes)})
        options.validate_required()

        if options.provider is None:
            options.provider = BlueJeansAuthenticationProvider()
        if options.state_data_format is None:
            if not secret_key:
                raise ConfigurationError(
                    "secret_key must be provided unless state_data_format is configured."
                )
            options.state_data_format = create_state_data_format(
                secret_key, options.authentication_type
            )
        if not options.sign_in_as_authentication_type:
            options.sign_in_as_authentication_type = DEFAULT_SIGN_IN_AS_AUTHENTICATION_TYPE

        self.options = options
        self.backchannel = BlueJeansBackchannel(options, client=http_client)
        self.correlation = CorrelationValidator(
            cookie_name=options.correlation_cookie_name,
            store=correlation_store,
            ttl_seconds=options.correlation_ttl_seconds,
            cookie_secure=options.correlation_cookie_secure,
            cookie_samesite=options.correlation_cookie_samesite,
        )
        self.handler = BlueJeansAuthenticationHandler(
            options,
            self.backchannel,
            self.correlation,
            options.state_data_format,
            sign_in=sign_in,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI application entry point."""
        if scope["type"] == "lifespan":
            await self.app(scope, self._closing_receive(receive), send)
            return
        if scope["type"] != "http":
            # Pass through websockets
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        if self.handler.classify(request) is RequestKind.CALLBACK:
            response = await self.handler.invoke_return_endpoint(request)
            if response is not None:
                await response(scope, receive, send)
                return

        await self._call_with_challenge(request, scope, receive, send)

    async def _call_with_challenge(
        self, request: Request, scope: Scope, receive: Receive, send: Send
    ) -> None:
        # Shared list: challenges recorded downstream land here even if the scope is copied
        scope.setdefault(CHALLENGES_SCOPE_KEY, [])
        replaced = False

        async def challenge_send(message: Message) -> None:
            nonlocal replaced
            if replaced:
                # Drop the body of the replaced 401
                return
            if (
                message["type"] == "http.response.start"
                and message["status"] == status.HTTP_401_UNAUTHORIZED
            ):
                response = await self._challenge_response(request, scope)
                if response is not None:
                    replaced = True
                    await response(scope, receive, send)
                    return
            await send(message)

        await self.app(scope, receive, challenge_send)

    async def _challenge_response(self, request: Request, scope: Scope) -> Optional[Response]:
        pending = self.handler.lookup_challenge(scope)
        if pending is None:
            return None
        try:
            return await self.handler.apply_challenge(request, pending)
        except StateEncodeError as e:
            logger.warning(f"Unable to issue the BlueJeans challenge: {e}")
            return None
        except Exception:
            logger.exception("Failed to issue the BlueJeans challenge")
            return None

    def _closing_receive(self, receive: Receive) -> Receive:
        async def wrapped() -> Message:
            message = await receive()
            if message["type"] == "lifespan.shutdown":
                await self.aclose()
            return message

        return wrapped

    async def aclose(self) -> None:
        """Release the backchannel HTTP client."""
        await self.backchannel.close()

"""The BlueJeans authentication handler: challenge and callback processing.

Every request is first classified. Requests to the callback path run the
callback state machine; every other request is left to the application, and a
401 it produces may be turned into a challenge redirect.

    Idle -> ChallengeIssued -> CallbackReceived -> Succeeded | Failed | Cancelled

Nothing is persisted between the challenge and the callback except the
protected state blob and the correlation cookie, both held by the user agent.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import Scope

from fastapi_bluejeans.backchannel import BlueJeansBackchannel
from fastapi_bluejeans.consts import ACCESS_DENIED, CHALLENGES_SCOPE_KEY
from fastapi_bluejeans.correlation import CorrelationValidator
from fastapi_bluejeans.exceptions import (
    BlueJeansAuthenticationError,
    CorrelationError,
    ProviderDenied,
    StateDecodeError,
)
from fastapi_bluejeans.identity import AuthenticatedIdentity, assemble_identity
from fastapi_bluejeans.options import AuthenticationMode, BlueJeansAuthenticationOptions
from fastapi_bluejeans.provider import (
    ApplyRedirectContext,
    AuthenticatedContext,
    BlueJeansAuthenticationProvider,
    ReturnEndpointContext,
)
from fastapi_bluejeans.redirect import authorization_query, build_authorization_url
from fastapi_bluejeans.state import AuthorizationRequestState, StateDataFormat
from fastapi_bluejeans.typing import SignInFunc
from fastapi_bluejeans.utils import (
    append_query_string,
    get_base_uri,
    get_current_uri,
    get_request_path,
    get_single_query_value,
    maybe_await,
)

logger = logging.getLogger(__name__)


class RequestKind(str, Enum):
    """How the handler treats an incoming request."""
    CALLBACK = "callback"
    PASSTHROUGH = "passthrough"


class FlowOutcome(str, Enum):
    """Terminal states of the callback."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class AuthenticationChallenge:
    """A request, recorded by the application, to authenticate with a provider.

    ``authentication_type`` of ``None`` addresses every active provider.
    """
    authentication_type: Optional[str] = None
    properties: AuthorizationRequestState = field(default_factory=AuthorizationRequestState)


@dataclass
class CallbackResult:
    """Outcome of the callback; ``identity`` is set if and only if it succeeded."""
    outcome: FlowOutcome
    identity: Optional[AuthenticatedIdentity] = None
    state: Optional[AuthorizationRequestState] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is FlowOutcome.SUCCEEDED


class BlueJeansAuthenticationHandler:
    """Drives the authorization code flow for one provider integration."""

    def __init__(
        self,
        options: BlueJeansAuthenticationOptions,
        backchannel: BlueJeansBackchannel,
        correlation: CorrelationValidator,
        state_data_format: StateDataFormat,
        sign_in: Optional[SignInFunc] = None,
    ):
        self.options = options
        self.backchannel = backchannel
        self.correlation = correlation
        self.state_data_format = state_data_format
        self.sign_in = sign_in

    @property
    def provider(self) -> BlueJeansAuthenticationProvider:
        if self.options.provider is None:
            self.options.provider = BlueJeansAuthenticationProvider()
        return self.options.provider

    def classify(self, request: Request) -> RequestKind:
        if get_request_path(request) == self.options.callback_path:
            return RequestKind.CALLBACK
        return RequestKind.PASSTHROUGH

    def callback_uri(self, request: Request) -> str:
        return get_base_uri(request) + self.options.callback_path

    def lookup_challenge(self, scope: Scope) -> Optional[AuthenticationChallenge]:
        """Find the challenge addressed to this provider, if any.

        In active mode an unaddressed 401 is treated as a challenge with empty
        properties.
        """
        challenges: List[AuthenticationChallenge] = scope.get(CHALLENGES_SCOPE_KEY) or []
        active = self.options.authentication_mode is AuthenticationMode.ACTIVE
        for challenge in challenges:
            if challenge.authentication_type == self.options.authentication_type:
                return challenge
        for challenge in challenges:
            if challenge.authentication_type is None and active:
                return challenge
        if not challenges and active:
            return AuthenticationChallenge()
        return None

    async def apply_challenge(
        self, request: Request, challenge: AuthenticationChallenge
    ) -> Optional[Response]:
        """Build the response redirecting the user agent to BlueJeans.

        Returns ``None`` when the ``apply_redirect`` hook produced no response.
        """
        state = replace(challenge.properties, extras=dict(challenge.properties.extras))
        if not state.redirect_uri:
            state.redirect_uri = get_current_uri(request)

        token = await self.correlation.issue(state)
        callback_uri = self.callback_uri(request)
        query = authorization_query(self.options, state, callback_uri)
        encoded_state = self.state_data_format.protect(state)
        authorization_url = build_authorization_url(
            self.options, encoded_state, callback_uri, query
        )

        context = ApplyRedirectContext(request, self.options, state, authorization_url)
        await self.provider.apply_redirect(context)
        if context.response is None:
            return None
        self.correlation.set_cookie(context.response, token, request=request)
        logger.debug(f"Challenge issued for {self.options.authentication_type}")
        return context.response

    async def authenticate(self, request: Request) -> CallbackResult:
        """Run the callback state machine. Never raises."""
        state: Optional[AuthorizationRequestState] = None
        try:
            query = request.query_params
            state = self.state_data_format.unprotect(get_single_query_value(query, "state"))
            if state is None:
                return CallbackResult(
                    FlowOutcome.FAILED,
                    error=StateDecodeError("The state parameter is missing or invalid"),
                )

            error = get_single_query_value(query, "error")
            if error is not None:
                logger.info(f"Provider denied authorization: {error}")
                return CallbackResult(
                    FlowOutcome.CANCELLED,
                    state=state,
                    error=ProviderDenied(f"The provider returned error={error}"),
                )

            # A missing code is not rejected here; the exchange fails for it
            code = get_single_query_value(query, "code")

            if not await self.correlation.validate(request, state):
                return CallbackResult(
                    FlowOutcome.FAILED,
                    state=state,
                    error=CorrelationError("Correlation failed"),
                )

            token = await self.backchannel.exchange_code(code, self.callback_uri(request))
            profile = await self.backchannel.fetch_profile(token.user_id, token.access_token)
            identity = assemble_identity(
                token, profile, self.options.authentication_type, state
            )

            context = AuthenticatedContext(request, identity)
            await self.provider.authenticated(context)
            if context.identity is None:
                return CallbackResult(FlowOutcome.FAILED, state=context.properties)
            return CallbackResult(
                FlowOutcome.SUCCEEDED,
                identity=context.identity,
                state=context.identity.properties,
            )
        except BlueJeansAuthenticationError as e:
            logger.warning(f"Authentication failed: {e}")
            return CallbackResult(FlowOutcome.FAILED, state=state, error=e)
        except Exception as e:
            logger.exception("Authentication failed")
            return CallbackResult(FlowOutcome.FAILED, state=state, error=e)

    async def invoke_return_endpoint(self, request: Request) -> Optional[Response]:
        """Handle a request to the callback path.

        Returns the response to send, or ``None`` when the application should
        handle the request itself.
        """
        result = await self.authenticate(request)
        if result.state is None:
            logger.warning("Invalid return state, unable to redirect.")
            response = Response(status_code=500)
            self.correlation.delete_cookie(response, request=request)
            return response

        context = ReturnEndpointContext(
            request,
            result.identity,
            result.state,
            sign_in_as_authentication_type=self.options.sign_in_as_authentication_type,
        )
        await self.provider.return_endpoint(context)

        response = context.response
        if not context.is_request_completed and context.redirect_uri is not None:
            redirect_uri = context.redirect_uri
            if context.identity is None:
                # Hint to the application that sign-in failed
                redirect_uri = append_query_string(redirect_uri, {"error": ACCESS_DENIED})
            response = RedirectResponse(redirect_uri, status_code=302)
            context.request_completed()
        elif context.is_request_completed and response is None:
            response = Response()

        if context.sign_in_as_authentication_type and context.identity is not None:
            await self._sign_in(request, response, context)

        if response is not None:
            self.correlation.delete_cookie(response, request=request)
        return response if context.is_request_completed else None

    async def _sign_in(
        self,
        request: Request,
        response: Optional[Response],
        context: ReturnEndpointContext,
    ) -> None:
        if self.sign_in is None:
            logger.warning("No sign-in handler configured; identity discarded")
            return
        identity = context.identity
        grant_identity = identity.claims_identity
        if grant_identity.authentication_type != context.sign_in_as_authentication_type:
            grant_identity = grant_identity.with_authentication_type(
                context.sign_in_as_authentication_type
            )
        await maybe_await(self.sign_in(request, response, grant_identity, context.properties))

"""Extension points invoked by the authentication handler.

Hooks may be plain functions or coroutines. Subclass
:class:`BlueJeansAuthenticationProvider` or pass the hooks to its constructor.
"""

from typing import Any, Dict, List, Optional

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from fastapi_bluejeans.identity import AuthenticatedIdentity, ClaimsIdentity
from fastapi_bluejeans.state import AuthorizationRequestState
from fastapi_bluejeans.typing import (
    ApplyRedirectHook,
    AuthenticatedHook,
    ReturnEndpointHook,
)
from fastapi_bluejeans.utils import maybe_await

TYPE_CHECKING = False

if TYPE_CHECKING:
    from fastapi_bluejeans.options import BlueJeansAuthenticationOptions


class AuthenticatedContext:
    """Passed to ``on_authenticated`` once tokens and profile have been retrieved.

    Hooks may add claims to :attr:`claims_identity`, edit :attr:`properties`, or
    set :attr:`identity` to ``None`` to reject the sign-in.
    """

    def __init__(self, request: Request, identity: AuthenticatedIdentity):
        self.request = request
        self.identity: Optional[AuthenticatedIdentity] = identity
        self._properties = identity.properties

    @property
    def properties(self) -> AuthorizationRequestState:
        return self._properties

    @properties.setter
    def properties(self, value: AuthorizationRequestState) -> None:
        self._properties = value
        if self.identity is not None:
            self.identity.properties = value

    @property
    def claims_identity(self) -> Optional[ClaimsIdentity]:
        return self.identity.claims_identity if self.identity else None

    @property
    def access_token(self) -> Optional[str]:
        return self.identity.access_token if self.identity else None

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    @property
    def scope(self) -> List[str]:
        return self.identity.scope if self.identity else []

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        """The raw profile JSON, ``None`` when the profile could not be fetched."""
        return self.identity.user if self.identity else None


class ReturnEndpointContext:
    """Passed to ``on_return_endpoint`` at the end of every callback."""

    def __init__(
        self,
        request: Request,
        identity: Optional[AuthenticatedIdentity],
        properties: AuthorizationRequestState,
        sign_in_as_authentication_type: Optional[str] = None,
    ):
        self.request = request
        self.identity = identity
        self.properties = properties
        self.redirect_uri: Optional[str] = properties.redirect_uri
        self.sign_in_as_authentication_type = sign_in_as_authentication_type
        self.response: Optional[Response] = None
        self._request_completed = False

    @property
    def is_request_completed(self) -> bool:
        return self._request_completed

    def request_completed(self) -> None:
        """Mark the request as handled; no redirect will be issued."""
        self._request_completed = True


class ApplyRedirectContext:
    """Passed to ``on_apply_redirect`` when a challenge redirects to BlueJeans."""

    def __init__(
        self,
        request: Request,
        options: "BlueJeansAuthenticationOptions",
        properties: AuthorizationRequestState,
        redirect_uri: str,
    ):
        self.request = request
        self.options = options
        self.properties = properties
        self.redirect_uri = redirect_uri
        self.response: Optional[Response] = None


def _noop(context: Any) -> None:
    return None


def default_apply_redirect(context: ApplyRedirectContext) -> None:
    context.response = RedirectResponse(context.redirect_uri, status_code=302)


class BlueJeansAuthenticationProvider:
    """Default provider: no-op hooks and an immediate 302 to the authorization URL."""

    def __init__(
        self,
        on_authenticated: Optional[AuthenticatedHook] = None,
        on_return_endpoint: Optional[ReturnEndpointHook] = None,
        on_apply_redirect: Optional[ApplyRedirectHook] = None,
    ):
        self.on_authenticated = on_authenticated or _noop
        self.on_return_endpoint = on_return_endpoint or _noop
        self.on_apply_redirect = on_apply_redirect or default_apply_redirect

    async def authenticated(self, context: AuthenticatedContext) -> None:
        await maybe_await(self.on_authenticated(context))

    async def return_endpoint(self, context: ReturnEndpointContext) -> None:
        await maybe_await(self.on_return_endpoint(context))

    async def apply_redirect(self, context: ApplyRedirectContext) -> None:
        await maybe_await(self.on_apply_redirect(context))

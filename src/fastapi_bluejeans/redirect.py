"""Construction of the BlueJeans authorization URL."""

from typing import Dict, Optional

from fastapi_bluejeans.consts import AUTHORIZE_ENDPOINT
from fastapi_bluejeans.options import BlueJeansAuthenticationOptions
from fastapi_bluejeans.state import AuthorizationRequestState
from fastapi_bluejeans.utils import append_query_string

RESPONSE_TYPE_CODE = "code"

# Caller extras with these names become query parameters instead of state
PROMOTED_PARAMETERS = ("scope", "appName", "appLogoUrl")


def promote_extra(
    query: Dict[str, str],
    state: AuthorizationRequestState,
    name: str,
    default: Optional[str] = None,
) -> None:
    """Move the extra ``name`` out of ``state`` into ``query``, falling back to ``default``."""
    value = state.pop_extra(name)
    if value is None:
        value = default
    if value is None:
        return
    query[name] = value


def authorization_query(
    options: BlueJeansAuthenticationOptions,
    state: AuthorizationRequestState,
    callback_uri: str,
) -> Dict[str, str]:
    """Build every authorization parameter except ``state``.

    Must run before ``state`` is encoded: promoted extras are removed from it.
    """
    query = {
        "responseType": RESPONSE_TYPE_CODE,
        "clientId": options.client_id,
        "redirectUri": callback_uri,
    }
    promote_extra(query, state, "scope", ",".join(options.ensure_default_scope()))
    promote_extra(query, state, "appName", options.app_name or None)
    promote_extra(query, state, "appLogoUrl", options.app_logo_url or None)
    return query


def build_authorization_url(
    options: BlueJeansAuthenticationOptions,
    encoded_state: str,
    callback_uri: str,
    query: Optional[Dict[str, str]] = None,
) -> str:
    """Return the authorization endpoint URL carrying ``encoded_state``.

    Args:
        options: The middleware options.
        encoded_state: The protected state blob.
        callback_uri: Absolute URI of the callback path; sent as ``redirectUri``.
        query: Parameters prepared by :func:`authorization_query`. Built from
            the options alone when omitted.
    """
    if query is None:
        query = authorization_query(options, AuthorizationRequestState(), callback_uri)
    params = dict(query)
    params["state"] = encoded_state
    return append_query_string(AUTHORIZE_ENDPOINT, params)

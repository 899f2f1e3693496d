import inspect
from typing import Any, Mapping, Optional
from urllib.parse import quote, urlencode

from starlette.datastructures import QueryParams
from starlette.requests import Request


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if a hook returned an awaitable, return it unchanged otherwise."""
    if inspect.isawaitable(value):
        return await value
    return value


def encode_query(params: Mapping[str, str]) -> str:
    # Percent-encode everything outside the unreserved set, commas and slashes included
    return urlencode(params, quote_via=quote, safe="")


def append_query_string(uri: str, params: Mapping[str, str]) -> str:
    """Append ``params`` to ``uri``, keeping any query string it already has."""
    if not params:
        return uri
    fragment = ""
    if "#" in uri:
        uri, fragment = uri.split("#", 1)
        fragment = "#" + fragment
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{encode_query(params)}{fragment}"


def get_single_query_value(query_params: QueryParams, name: str) -> Optional[str]:
    """Return the value of ``name`` only when it occurs exactly once."""
    values = query_params.getlist(name)
    if len(values) != 1:
        return None
    return values[0]


def get_path_base(request: Request) -> str:
    return request.scope.get("root_path", "") or ""


def get_request_path(request: Request) -> str:
    """Return the request path relative to the application's mount point."""
    path = request.scope.get("path", "")
    path_base = get_path_base(request)
    if path_base and path.startswith(path_base):
        path = path[len(path_base):] or "/"
    return path


def get_base_uri(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}{get_path_base(request)}"


def get_current_uri(request: Request) -> str:
    uri = get_base_uri(request) + get_request_path(request)
    if request.url.query:
        uri = f"{uri}?{request.url.query}"
    return uri

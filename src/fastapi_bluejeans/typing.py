from typing import Awaitable, Callable, TypeVar, Union

TYPE_CHECKING = False

if TYPE_CHECKING:
    from fastapi_bluejeans.provider import (
        ApplyRedirectContext,
        AuthenticatedContext,
        ReturnEndpointContext,
    )

T = TypeVar("T")
MaybeAwaitable = Union[T, Awaitable[T]]
AuthenticatedHook = Callable[["AuthenticatedContext"], MaybeAwaitable[None]]
ReturnEndpointHook = Callable[["ReturnEndpointContext"], MaybeAwaitable[None]]
ApplyRedirectHook = Callable[["ApplyRedirectContext"], MaybeAwaitable[None]]
SignInFunc = Callable[..., MaybeAwaitable[None]]

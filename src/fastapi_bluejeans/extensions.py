"""Registration helpers for FastAPI and Starlette applications."""

import logging
from typing import Any, Optional, Union

from starlette.applications import Starlette

from fastapi_bluejeans.data_protection import DataProtectionProvider
from fastapi_bluejeans.exceptions import ConfigurationError
from fastapi_bluejeans.middleware import BlueJeansAuthenticationMiddleware
from fastapi_bluejeans.options import BlueJeansAuthenticationOptions

logger = logging.getLogger(__name__)


def use_bluejeans_authentication(
    app: Starlette,
    options: Optional[BlueJeansAuthenticationOptions] = None,
    *,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    secret_key: Optional[Union[str, bytes, DataProtectionProvider]] = None,
    **kwargs: Any,
) -> Starlette:
    """Add BlueJeans sign-in to ``app``.

    Either pass a complete ``options`` object, or ``client_id`` and
    ``client_secret`` (plus any other option as a keyword argument).
    Middleware keyword arguments (``sign_in``, ``correlation_store``,
    ``http_client``) are forwarded as well.

    Options are validated immediately so that a misconfigured application
    fails at startup instead of on its first request.

    Raises:
        ConfigurationError: If the options are incomplete or inconsistent.

    Example:
        ```python
        app = FastAPI()
        use_bluejeans_authentication(
            app,
            client_id="my-client",
            client_secret="my-secret",
            secret_key=os.environ["APP_SECRET"],
        )
        ```
    """
    middleware_kwargs = {
        name: kwargs.pop(name)
        for name in ("sign_in", "correlation_store", "http_client")
        if name in kwargs
    }
    if options is None:
        options = BlueJeansAuthenticationOptions(
            client_id=client_id or "",
            client_secret=client_secret or "",
            **kwargs,
        )
    elif client_id is not None or client_secret is not None or kwargs:
        options = options.model_copy(
            update={
                **({"client_id": client_id} if client_id is not None else {}),
                **({"client_secret": client_secret} if client_secret is not None else {}),
                **kwargs,
            }
        )
    options.validate_required()
    if options.state_data_format is None and not secret_key:
        raise ConfigurationError(
            "secret_key must be provided unless state_data_format is configured."
        )

    app.add_middleware(
        BlueJeansAuthenticationMiddleware,
        options=options,
        secret_key=secret_key,
        **middleware_kwargs,
    )
    logger.info(
        f"BlueJeans authentication registered as {options.authentication_type} "
        f"on {options.callback_path}"
    )
    return app

"""Purpose-bound authenticated encryption.

A :class:`DataProtectionProvider` holds the application-level secret. Every
:class:`DataProtector` it creates derives its own key from that secret and a
chain of purpose strings, so data protected for one purpose can never be
unprotected for another.
"""

import base64
from typing import Optional, Tuple, Union

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from fastapi_bluejeans.exceptions import ConfigurationError

PURPOSE_SEPARATOR = "/"


def derive_key(secret_key: bytes, purposes: Tuple[str, ...]) -> bytes:
    """Derive a Fernet key from the application secret and a purpose chain."""
    info = PURPOSE_SEPARATOR.join(purposes).encode("utf-8")
    derived = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=info,
    ).derive(secret_key)
    return base64.urlsafe_b64encode(derived)


class DataProtector:
    """Encrypts and authenticates payloads for a single purpose chain.

    The protected form is a URL-safe Fernet token (AES-128-CBC with an
    HMAC-SHA256 tag and an embedded issue timestamp).
    """

    def __init__(self, secret_key: bytes, purposes: Tuple[str, ...]):
        self.purposes = purposes
        self._fernet = Fernet(derive_key(secret_key, purposes))

    def protect(self, data: bytes) -> str:
        return self._fernet.encrypt(data).decode("ascii")

    def unprotect(self, protected: str, max_age: Optional[int] = None) -> bytes:
        """Return the original payload.

        Raises:
            cryptography.fernet.InvalidToken: If the token is malformed, was
                tampered with, was issued for another purpose or is older than
                ``max_age`` seconds.
        """
        return self._fernet.decrypt(protected, ttl=max_age)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(purposes={self.purposes!r})"


class DataProtectionProvider:
    """Creates purpose-bound protectors from one application secret."""

    def __init__(self, secret_key: Union[str, bytes]):
        if isinstance(secret_key, str):
            secret_key = secret_key.encode("utf-8")
        if not secret_key:
            raise ConfigurationError("A non-empty secret key is required for data protection.")
        self._secret_key = secret_key

    def create_protector(self, *purposes: str) -> DataProtector:
        if not purposes or not all(purposes):
            raise ConfigurationError("Data protectors need at least one non-empty purpose.")
        return DataProtector(self._secret_key, tuple(purposes))

"""Normalized identity assembled from the token and profile responses.

The assembler is a pure mapping step: no network, no storage, deterministic
given its inputs.
"""

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi_bluejeans.consts import XML_SCHEMA_STRING
from fastapi_bluejeans.state import AuthorizationRequestState

TYPE_CHECKING = False

if TYPE_CHECKING:
    from fastapi_bluejeans.backchannel import TokenResponse


class ClaimTypes:
    """Well-known claim type URIs."""
    NAME_IDENTIFIER = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier"
    NAME = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name"
    EMAIL = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress"
    GIVEN_NAME = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/givenname"
    SURNAME = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/surname"
    ROLE = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"


# Profile JSON field -> claim type
PROFILE_CLAIMS = (
    ("username", ClaimTypes.NAME),
    ("emailId", ClaimTypes.EMAIL),
    ("firstName", ClaimTypes.GIVEN_NAME),
    ("lastName", ClaimTypes.SURNAME),
)


@dataclass(frozen=True)
class Claim:
    type: str
    value: str
    value_type: str = XML_SCHEMA_STRING
    issuer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "value": self.value,
            "value_type": self.value_type,
            "issuer": self.issuer,
        }


@dataclass
class ClaimsIdentity:
    """An ordered set of claims tagged with the authentication type that issued them."""
    authentication_type: str
    claims: List[Claim] = field(default_factory=list)
    name_claim_type: str = ClaimTypes.NAME
    role_claim_type: str = ClaimTypes.ROLE

    @property
    def is_authenticated(self) -> bool:
        return bool(self.authentication_type)

    @property
    def name(self) -> Optional[str]:
        return self.find_first(self.name_claim_type)

    def add_claim(self, claim: Claim) -> None:
        self.claims.append(claim)

    def find_first(self, claim_type: str) -> Optional[str]:
        for claim in self.claims:
            if claim.type == claim_type:
                return claim.value
        return None

    def has_claim(self, claim_type: str, value: Optional[str] = None) -> bool:
        return any(
            claim.type == claim_type and (value is None or claim.value == value)
            for claim in self.claims
        )

    def with_authentication_type(self, authentication_type: str) -> "ClaimsIdentity":
        """Copy the claims into an identity carrying another authentication type."""
        return replace(self, authentication_type=authentication_type, claims=list(self.claims))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authentication_type": self.authentication_type,
            "claims": [claim.to_dict() for claim in self.claims],
        }


@dataclass
class AuthenticatedIdentity:
    """The result of a successful callback, handed to the host's sign-in."""
    claims_identity: ClaimsIdentity
    access_token: str
    properties: AuthorizationRequestState = field(default_factory=AuthorizationRequestState)
    user_id: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    surname: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[timedelta] = None
    scope: List[str] = field(default_factory=list)
    user: Optional[Dict[str, Any]] = None


def _profile_value(profile: Optional[Dict[str, Any]], name: str) -> Optional[str]:
    if not profile:
        return None
    value = profile.get(name)
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def assemble_identity(
    token: "TokenResponse",
    profile: Optional[Dict[str, Any]],
    authentication_type: str,
    properties: Optional[AuthorizationRequestState] = None,
) -> AuthenticatedIdentity:
    """Map the token response and the (optional) profile onto claims.

    A claim is added only for a non-empty value; a missing profile yields an
    identity carrying the token-derived claims alone.
    """
    identity = ClaimsIdentity(authentication_type=authentication_type)

    def add(claim_type: str, value: Optional[str]) -> None:
        if value:
            identity.add_claim(Claim(claim_type, value, issuer=authentication_type))

    add(ClaimTypes.NAME_IDENTIFIER, token.user_id)
    fields = {name: _profile_value(profile, name) for name, _ in PROFILE_CLAIMS}
    for name, claim_type in PROFILE_CLAIMS:
        add(claim_type, fields[name])

    return AuthenticatedIdentity(
        claims_identity=identity,
        access_token=token.access_token,
        properties=properties if properties is not None else AuthorizationRequestState(),
        user_id=token.user_id,
        username=fields["username"],
        email=fields["emailId"],
        given_name=fields["firstName"],
        surname=fields["lastName"],
        refresh_token=token.refresh_token,
        expires_in=token.expires_in,
        scope=list(token.scope),
        user=profile,
    )

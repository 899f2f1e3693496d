AUTHORIZE_ENDPOINT = "https://bluejeans.com/oauth2/authorize/"
"""The provider's authorization endpoint the user agent is redirected to"""

TOKEN_ENDPOINT = "https://api.bluejeans.com/oauth2/token?Code"
"""The backchannel endpoint exchanging an authorization code for tokens"""

USER_INFO_ENDPOINT_FORMAT = "https://api.bluejeans.com/v1/user/{user_id}?access_token={access_token}"
"""The backchannel endpoint returning the profile of the authenticated user"""

DEFAULT_AUTHENTICATION_TYPE = "BlueJeans"
DEFAULT_CALLBACK_PATH = "/signin-bluejeans"
DEFAULT_SCOPE = "user_info"
DEFAULT_BACKCHANNEL_TIMEOUT_SECONDS = 60.0

MAX_RESPONSE_CONTENT_BYTES = 1024 * 1024 * 10
"""Backchannel responses larger than this are treated as failures"""

XML_SCHEMA_STRING = "http://www.w3.org/2001/XMLSchema#string"

STATE_PROTECTOR_VERSION = "v1"
"""Part of the purpose chain of the state protector; bump it to invalidate issued state blobs"""

MAX_STATE_LENGTH = 4096

CORRELATION_COOKIE_PREFIX = ".bluejeans.correlation."
DEFAULT_CORRELATION_TTL_SECONDS = 900

CHALLENGES_SCOPE_KEY = "bluejeans.challenges"
"""The ASGI scope key under which pending authentication challenges are recorded"""

SESSION_IDENTITY_KEY = "bluejeans.identity"
"""The session key used by the default sign-in callable"""

ACCESS_DENIED = "access_denied"

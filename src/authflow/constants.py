"""Protocol defaults and fixed limits used by the auth flow."""

DEFAULT_SCOPES = ("openid", "profile", "email")
DEFAULT_BASE_PATH = "/"
DEFAULT_CALLBACK_PATH = "/callback"
DEFAULT_POST_LOGIN_REDIRECT = "/"

# Storage keys, prefixed with the namespace derived from the base path
STORAGE_KEY_TOKENS = "auth_tokens"
STORAGE_KEY_PKCE = "auth_pkce"
STORAGE_KEY_USER = "auth_user"
STORAGE_KEY_RETURN_URL = "auth_return_url"

PKCE_VERIFIER_LENGTH = 64
PKCE_STATE_LENGTH = 32
PKCE_NONCE_LENGTH = 32

# Refresh when the access token expires within this many seconds
TOKEN_REFRESH_BUFFER_SECONDS = 60

# An in-flight sign-in older than this is abandoned
PKCE_DATA_EXPIRY_SECONDS = 10 * 60

# Keycloak-style endpoint sub-paths relative to the realm URL
AUTHORIZATION_PATH = "/protocol/openid-connect/auth"
TOKEN_PATH = "/protocol/openid-connect/token"
USERINFO_PATH = "/protocol/openid-connect/userinfo"
LOGOUT_PATH = "/protocol/openid-connect/logout"
REVOCATION_PATH = "/protocol/openid-connect/revoke"

# Backend actions the proxy is allowed to forward.
SIGN_IN_ACTION = "auth:signIn"
SIGN_OUT_ACTION = "auth:signOut"
ALLOWED_ACTIONS = frozenset({SIGN_IN_ACTION, SIGN_OUT_ACTION})

# Sent to the browser in place of the real refresh token.
REFRESH_TOKEN_PLACEHOLDER = "dummy"

# Cookie names; secure deployments add the "__Host-" prefix.
TOKEN_COOKIE_NAME = "__session_bridge_jwt"
REFRESH_TOKEN_COOKIE_NAME = "__session_bridge_refresh_token"
VERIFIER_COOKIE_NAME = "__session_bridge_oauth_verifier"
SECURE_COOKIE_PREFIX = "__Host-"

# An access token must stay valid for at least this long...
REQUIRED_TOKEN_LIFETIME_MS = 60_000
# ...unless that exceeds 10% of its total lifetime, but never below this.
MINIMUM_REQUIRED_TOKEN_LIFETIME_MS = 10_000

# Argument keys whose values are secrets and must not be logged.
SECRET_ARG_KEYS = frozenset({"refreshToken", "verifier", "code", "token"})

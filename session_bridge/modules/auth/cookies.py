"""
Request-scoped view over the three auth cookies.

One `AuthCookies` instance is created per request. Reads reflect the incoming
cookies (possibly stripped by the CORS guard or updated by a refresh); writes are
queued and only land on a response through `apply()`.
"""

from typing import Literal, cast

from fastapi import Request, Response

from session_bridge.core.config import Settings, settings as default_settings
from session_bridge.modules.auth.constants import (
    REFRESH_TOKEN_COOKIE_NAME,
    SECURE_COOKIE_PREFIX,
    TOKEN_COOKIE_NAME,
    VERIFIER_COOKIE_NAME,
)
from session_bridge.modules.auth.schemas import TokenPair

SameSite = Literal["lax", "strict", "none"]


def cookie_samesite(settings: Settings) -> SameSite:
    samesite = settings.AUTH_COOKIE_SAMESITE.lower()
    if samesite not in {"lax", "strict", "none"}:
        samesite = "lax"
    return cast(SameSite, samesite)


def cookies_secure(settings: Settings) -> bool:
    # If SameSite=None, cookie spec requires Secure; also require Secure outside local.
    return settings.ENVIRONMENT != "local" or cookie_samesite(settings) == "none"


class AuthCookies:
    def __init__(
        self,
        token: str | None = None,
        refresh_token: str | None = None,
        verifier: str | None = None,
        *,
        secure: bool = True,
        samesite: SameSite = "lax",
        max_age: int | None = None,
    ) -> None:
        self.token = token or None
        self.refresh_token = refresh_token or None
        self.verifier = verifier or None
        self.secure = secure
        self.samesite = samesite
        self.max_age = max_age
        # cookie name -> new value, None meaning delete
        self._pending: dict[str, str | None] = {}

    @classmethod
    def from_request(
        cls, request: Request, settings: Settings = default_settings
    ) -> "AuthCookies":
        secure = cookies_secure(settings)
        names = cookie_names(secure)
        return cls(
            token=request.cookies.get(names["token"]),
            refresh_token=request.cookies.get(names["refresh_token"]),
            verifier=request.cookies.get(names["verifier"]),
            secure=secure,
            samesite=cookie_samesite(settings),
            max_age=settings.AUTH_COOKIE_MAX_AGE_SECONDS,
        )

    @property
    def names(self) -> dict[str, str]:
        return cookie_names(self.secure)

    @property
    def pending(self) -> dict[str, str | None]:
        return dict(self._pending)

    def strip(self) -> None:
        """Hide every auth cookie from the rest of the request without writing."""
        self.token = None
        self.refresh_token = None
        self.verifier = None

    def set_tokens(self, tokens: TokenPair | None) -> None:
        if tokens is None:
            self.token = None
            self.refresh_token = None
            self._pending[self.names["token"]] = None
            self._pending[self.names["refresh_token"]] = None
        else:
            self.token = tokens.token
            self.refresh_token = tokens.refresh_token
            self._pending[self.names["token"]] = tokens.token
            self._pending[self.names["refresh_token"]] = tokens.refresh_token

    def set_verifier(self, verifier: str | None) -> None:
        self.verifier = verifier or None
        self._pending[self.names["verifier"]] = verifier or None

    def set_auth(self, tokens: TokenPair | None) -> None:
        """Store a new session (or none); any pending verifier is consumed."""
        self.set_tokens(tokens)
        self.set_verifier(None)

    def clear(self) -> None:
        self.set_auth(None)

    def apply(self, response: Response) -> Response:
        for name, value in self._pending.items():
            if value is None:
                response.delete_cookie(
                    key=name,
                    httponly=True,
                    secure=self.secure,
                    samesite=self.samesite,
                    path="/",
                )
            else:
                response.set_cookie(
                    key=name,
                    value=value,
                    httponly=True,
                    secure=self.secure,
                    samesite=self.samesite,
                    max_age=self.max_age,
                    path="/",
                )
        return response


def cookie_names(secure: bool) -> dict[str, str]:
    prefix = SECURE_COOKIE_PREFIX if secure else ""
    return {
        "token": prefix + TOKEN_COOKIE_NAME,
        "refresh_token": prefix + REFRESH_TOKEN_COOKIE_NAME,
        "verifier": prefix + VERIFIER_COOKIE_NAME,
    }


def get_auth_cookies(request: Request) -> AuthCookies:
    """FastAPI dependency returning the cookie context of the current request."""
    cookies = getattr(request.state, "auth_cookies", None)
    if cookies is None:
        settings = getattr(request.app.state, "settings", default_settings)
        cookies = AuthCookies.from_request(request, settings)
        request.state.auth_cookies = cookies
    return cookies


def is_authenticated(cookies: AuthCookies) -> bool:
    return cookies.token is not None

import time
from typing import Any, Callable, Union
from urllib.parse import urlsplit

import structlog
from fastapi import Request
from fastapi.responses import RedirectResponse

from session_bridge.core import security
from session_bridge.core.config import Settings, settings as default_settings
from session_bridge.modules.auth.backend import BackendActionInvoker
from session_bridge.modules.auth.constants import (
    MINIMUM_REQUIRED_TOKEN_LIFETIME_MS,
    REQUIRED_TOKEN_LIFETIME_MS,
    SECRET_ARG_KEYS,
    SIGN_IN_ACTION,
)
from session_bridge.modules.auth.cookies import AuthCookies
from session_bridge.modules.auth.schemas import (
    RefreshOutcome,
    RefreshStatus,
    require_tokens_result,
)

log = structlog.get_logger()

AuthenticationResult = Union[RedirectResponse, RefreshOutcome]

DEFAULT_PORTS = {"http": 80, "https": 443}


def is_cross_origin(request: Request) -> bool:
    """True when an Origin header is present and names a different site."""
    origin = request.headers.get("origin")
    if origin is None:
        return False
    scheme = request.url.scheme
    origin_site = _site(origin)
    host = request.headers.get("host")
    if origin_site is None or host is None:
        return True
    return origin_site != _site(f"{scheme}://{host}")


def _site(url: str) -> tuple[str, str, int] | None:
    """(scheme, lowercased host, port) with default ports filled in."""
    parsed = urlsplit(url)
    try:
        port = parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None
    scheme = parsed.scheme.lower()
    if port is None:
        port = DEFAULT_PORTS.get(scheme, 0)
    return scheme, parsed.hostname.lower(), port


def redact_args(args: Any) -> Any:
    if isinstance(args, dict):
        return {
            key: "[redacted]" if key in SECRET_ARG_KEYS else redact_args(value)
            for key, value in args.items()
        }
    if isinstance(args, list):
        return [redact_args(item) for item in args]
    return args


def refresh_deadline_ms(exp: float, iat: float, now_ms: float) -> float:
    """
    Earliest acceptable expiry (ms since epoch) for a token used right now.

    The token must remain valid for one minute, or 10% of its total lifetime when
    that is shorter, but never less than 10 seconds.
    """
    total_lifetime_ms = (exp - iat) * 1000
    return now_ms + min(
        REQUIRED_TOKEN_LIFETIME_MS,
        max(MINIMUM_REQUIRED_TOKEN_LIFETIME_MS, total_lifetime_ms / 10),
    )


def first_code(request: Request) -> str | None:
    """First `code` query value; repeated parameters after it are ignored."""
    codes = request.query_params.getlist("code")
    return codes[0] if codes else None


def should_exchange_code(request: Request) -> bool:
    return (
        request.method == "GET"
        and "text/html" in request.headers.get("accept", "")
        and bool(first_code(request))
    )


def url_without_code(request: Request) -> str:
    url = request.url.remove_query_params("code")
    return f"{url.path}?{url.query}" if url.query else url.path


class AuthService:
    def __init__(
        self,
        backend: BackendActionInvoker,
        settings: Settings = default_settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.verbose = settings.AUTH_VERBOSE
        self.clock = clock

    def _trace(self, event: str, **kwargs: Any) -> None:
        if self.verbose:
            log.debug(event, **kwargs)

    def guard_cors(self, request: Request, cookies: AuthCookies) -> bool:
        """Hide auth cookies from cross-origin requests. Returns True if stripped."""
        if not is_cross_origin(request):
            return False
        cookies.strip()
        self._trace("auth.cors.cookies_stripped", origin=request.headers.get("origin"))
        return True

    async def evaluate_refresh(self, cookies: AuthCookies) -> RefreshOutcome:
        token, refresh_token = cookies.token, cookies.refresh_token
        if token is None and refresh_token is None:
            self._trace("auth.refresh.no_session")
            return RefreshOutcome.unspecified()
        if token is None or refresh_token is None:
            self._trace(
                "auth.refresh.inconsistent_cookies",
                token_missing=token is None,
                refresh_token_missing=refresh_token is None,
            )
            return RefreshOutcome.invalid()

        claims = security.decode_unverified_claims(token)
        if claims is None:
            self._trace("auth.refresh.undecodable_token")
            return RefreshOutcome.invalid()

        try:
            exp = security.numeric_claim(claims, "exp")
            iat = security.numeric_claim(claims, "iat")
        except ValueError:
            self._trace("auth.refresh.unusable_claims")
            return RefreshOutcome.invalid()

        # Without both claims no schedule can be computed; refresh now.
        if exp is not None and iat is not None:
            deadline = refresh_deadline_ms(exp, iat, self.clock() * 1000)
            if exp * 1000 > deadline:
                self._trace("auth.refresh.not_needed", exp=exp)
                return RefreshOutcome.unchanged()

        try:
            raw = await self.backend.invoke(
                SIGN_IN_ACTION, {"refreshToken": refresh_token}
            )
            result = require_tokens_result(raw)
        except Exception:
            log.exception("auth.refresh.failed")
            return RefreshOutcome.invalid()

        if result.tokens is None:
            log.info("auth.refresh.rejected")
            return RefreshOutcome.invalid()

        self._trace("auth.refresh.succeeded")
        return RefreshOutcome.refreshed(result.tokens)

    async def exchange_code(
        self, request: Request, cookies: AuthCookies
    ) -> RedirectResponse:
        """
        Trade an OAuth / magic link `code` for tokens and redirect to the same URL
        without it. The redirect always happens; only the cookies differ.
        """
        code = first_code(request)
        target = url_without_code(request)
        args: dict[str, Any] = {"params": {"code": code}}
        if cookies.verifier is not None:
            args["verifier"] = cookies.verifier

        try:
            raw = await self.backend.invoke(SIGN_IN_ACTION, args)
            result = require_tokens_result(raw)
        except Exception:
            log.exception("auth.exchange.failed", redirect=target)
            cookies.clear()
        else:
            cookies.set_auth(result.tokens)
            if result.tokens is None:
                log.info("auth.exchange.rejected", redirect=target)
            else:
                self._trace("auth.exchange.succeeded", redirect=target)

        return cookies.apply(RedirectResponse(target))

    async def authenticate(
        self, request: Request, cookies: AuthCookies
    ) -> AuthenticationResult:
        """
        Run once per request before the page is produced: CORS guard, then either
        the code exchange (qualifying navigations) or the refresh check.
        """
        self.guard_cors(request, cookies)

        if should_exchange_code(request):
            # The exchange replaces every auth cookie, so a refresh would be wasted.
            self._trace("auth.exchange.started", path=request.url.path)
            return await self.exchange_code(request, cookies)

        return await self.evaluate_refresh(cookies)


def apply_refresh_outcome(cookies: AuthCookies, outcome: RefreshOutcome) -> None:
    """Translate a refresh outcome into cookie writes on the request context."""
    if outcome.status is RefreshStatus.INVALID:
        cookies.clear()
    elif outcome.status is RefreshStatus.REFRESHED:
        cookies.set_auth(outcome.tokens)
    # UNSPECIFIED and UNCHANGED leave the cookies alone.


def get_auth_service(request: Request) -> AuthService:
    """Build the per-request service from the app's backend and settings."""
    settings = getattr(request.app.state, "settings", default_settings)
    clock = getattr(request.app.state, "clock", time.time)
    return AuthService(request.app.state.backend, settings, clock=clock)

import time
import uuid
from typing import Awaitable, Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from session_bridge.core.config import get_settings
from session_bridge.modules.auth.cookies import get_auth_cookies
from session_bridge.modules.auth.router import should_proxy_auth_action
from session_bridge.modules.auth.service import (
    apply_refresh_outcome,
    get_auth_service,
)


class StructlogMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # 1. Generate or Retrieve Request ID
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        correlation_id = request.headers.get("X-Correlation-ID") or request_id

        # 2. Bind ContextVars
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        # 3. Log Request Start
        logger = structlog.get_logger()
        if get_settings(request).ENVIRONMENT in ["local", "dev"]:
            logger.info("request_started")

        start_time = time.perf_counter()

        try:
            # 4. Process Request
            response = await call_next(request)

            # 5. Log Request Success
            process_time = time.perf_counter() - start_time
            logger.info(
                "request_finished",
                status_code=response.status_code,
                duration=process_time,
            )

            # 6. Append Header
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception:
            # 5b. Log Request Failure (Exception), re-raised for the exception handler
            process_time = time.perf_counter() - start_time
            logger.exception(
                "request_failed",
                duration=process_time,
            )
            raise


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Runs the request authenticator once per request, before the page is built.

    Code exchanges short-circuit with a redirect. Otherwise the refresh outcome is
    applied to the request's cookie context (so handlers see a fresh token) and
    the resulting cookie writes are merged into the downstream response.
    """

    def __init__(self, app: ASGIApp, proxy_path: str) -> None:
        super().__init__(app)
        self.proxy_path = proxy_path

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # The proxy route does its own origin checks and cookie writes.
        if should_proxy_auth_action(request.url.path, self.proxy_path):
            return await call_next(request)

        cookies = get_auth_cookies(request)
        result = await get_auth_service(request).authenticate(request, cookies)
        if isinstance(result, RedirectResponse):
            return result

        apply_refresh_outcome(cookies, result)
        response = await call_next(request)
        return cookies.apply(response)

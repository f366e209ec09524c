from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from session_bridge.core.config import Settings, get_settings
from session_bridge.core.exceptions import (
    CrossOriginRejection,
    MalformedActionBody,
    MethodNotAllowed,
    ProtocolViolation,
)
from session_bridge.modules.auth.backend import BackendActionInvoker, get_backend
from session_bridge.modules.auth.constants import (
    ALLOWED_ACTIONS,
    SIGN_OUT_ACTION,
)
from session_bridge.modules.auth.cookies import AuthCookies, get_auth_cookies
from session_bridge.modules.auth.schemas import (
    ActionRequest,
    ClientTokenPair,
    RedirectResult,
    StartedResult,
    TokensResult,
    parse_sign_in_result,
)
from session_bridge.modules.auth.service import is_cross_origin, redact_args

log = structlog.get_logger()

router = APIRouter()

# Every method is routed here so that the proxy, not the framework, answers 405.
PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def should_proxy_auth_action(path: str, proxy_path: str) -> bool:
    """Match the proxy path with or without a trailing slash."""
    base = proxy_path.rstrip("/")
    return path == base or path == base + "/"


async def _read_action_request(request: Request) -> ActionRequest:
    try:
        body: Any = await request.json()
    except ValueError as exc:
        raise MalformedActionBody(f"Body is not valid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise MalformedActionBody("Body must be a JSON object")

    action = body.get("action")
    if not isinstance(action, str) or action not in ALLOWED_ACTIONS:
        log.info("auth.proxy.invalid_action", action=str(action)[:64])
        raise ProtocolViolation()

    args = body.get("args")
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise MalformedActionBody("`args` must be a JSON object")
    return ActionRequest(action=action, args=args)


def _shape_sign_in_response(raw: Any, cookies: AuthCookies) -> JSONResponse:
    result = parse_sign_in_result(raw)

    if isinstance(result, RedirectResult):
        cookies.set_verifier(result.verifier)
        return JSONResponse({"redirect": result.redirect})

    if isinstance(result, TokensResult):
        # The real refresh token stays in the cookie; the client gets a placeholder.
        cookies.set_auth(result.tokens)
        client_tokens = (
            ClientTokenPair.from_pair(result.tokens).model_dump(by_alias=True)
            if result.tokens is not None
            else None
        )
        return JSONResponse({"tokens": client_tokens})

    if isinstance(result, StartedResult):
        return JSONResponse({"started": result.started})

    # EmptyResult: nothing to hand back, the session is over.
    cookies.clear()
    return JSONResponse(None)


@router.api_route("", methods=PROXY_METHODS, summary="Proxy an auth action")
@router.api_route("/", methods=PROXY_METHODS, include_in_schema=False)
async def proxy_auth_action(
    request: Request,
    cookies: AuthCookies = Depends(get_auth_cookies),
    backend: BackendActionInvoker = Depends(get_backend),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Forward `auth:signIn` / `auth:signOut` to the backend on behalf of the browser.

    The refresh token never leaves the server: clients send the placeholder
    `"dummy"` and receive it back in place of the real value.
    """
    if request.method != "POST":
        raise MethodNotAllowed()
    if is_cross_origin(request):
        log.info("auth.proxy.cross_origin", origin=request.headers.get("origin"))
        raise CrossOriginRejection()

    action_request = await _read_action_request(request)
    action, args = action_request.action, dict(action_request.args)

    token: str | None = None
    if action != SIGN_OUT_ACTION and "refreshToken" in args:
        refresh_token = cookies.refresh_token
        if refresh_token is None:
            log.warning("auth.proxy.missing_refresh_cookie")
            return JSONResponse({"tokens": None})
        args["refreshToken"] = refresh_token
    else:
        # Keep the backend call authenticated as the current session, if any.
        token = cookies.token

    if settings.AUTH_VERBOSE:
        log.debug(
            "auth.proxy.invoke",
            action=action,
            action_args=redact_args(args),
            authenticated=token is not None,
        )
    raw = await backend.invoke(action, args, token=token)

    if action == SIGN_OUT_ACTION:
        cookies.clear()
        response = JSONResponse(None)
    else:
        response = _shape_sign_in_response(raw, cookies)

    if settings.AUTH_VERBOSE:
        log.debug("auth.proxy.completed", action=action, cookie_writes=len(cookies.pending))
    return cookies.apply(response)

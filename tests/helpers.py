import time
from typing import Any

from httpx import Response
from starlette.requests import Request
from jose import jwt

from session_bridge.modules.auth.cookies import cookie_names

TEST_HOST = "testserver"
TEST_ORIGIN = f"http://{TEST_HOST}"

# Names used when ENVIRONMENT=local (no __Host- prefix).
NAMES = cookie_names(secure=False)


class FakeBackend:
    """
    Stand-in for the backend action invoker.

    `results` is a list of values (or exceptions) handed out in call order; every
    call is recorded as (action, args, token).
    """

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, dict[str, Any], str | None]] = []

    async def invoke(
        self, action: str, args: dict[str, Any], token: str | None = None
    ) -> Any:
        self.calls.append((action, args, token))
        if not self.results:
            raise AssertionError(f"Unexpected backend call: {action}")
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


def make_jwt(
    lifetime: float, remaining: float, now: float | None = None, **claims: Any
) -> str:
    """Access token issued `lifetime - remaining` seconds ago, expiring in `remaining`."""
    now = time.time() if now is None else now
    exp = now + remaining
    return jwt.encode(
        {"sub": "user-1", "iat": int(exp - lifetime), "exp": int(exp), **claims},
        "test-secret",
        algorithm="HS256",
    )


def cookie_header(**values: str) -> dict[str, str]:
    """Build a Cookie header from token / refresh_token / verifier keyword values."""
    return {"Cookie": "; ".join(f"{NAMES[k]}={v}" for k, v in values.items())}


def set_cookies(response: Response) -> dict[str, str]:
    """Map cookie name -> value from Set-Cookie headers ("" means deleted)."""
    cookies: dict[str, str] = {}
    for header in response.headers.get_list("set-cookie"):
        name, _, rest = header.partition("=")
        cookies[name] = rest.split(";", 1)[0].strip('"')
    return cookies




def make_request(
    method: str = "GET",
    path: str = "/",
    query: str = "",
    headers: dict[str, str] | None = None,
    scheme: str = "http",
) -> Request:
    """Bare Starlette request for unit tests that bypass the ASGI app."""
    all_headers = {"host": TEST_HOST, **(headers or {})}
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in all_headers.items()],
        "scheme": scheme,
        "server": (TEST_HOST, 443 if scheme == "https" else 80),
    }
    return Request(scope)

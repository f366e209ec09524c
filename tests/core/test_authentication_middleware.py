import pytest
from fastapi import Depends, FastAPI
from httpx import AsyncClient
from jose import jwt

from session_bridge.core.exceptions import BackendTransportError
from session_bridge.modules.auth.cookies import AuthCookies, get_auth_cookies
from tests.helpers import NAMES, FakeBackend, cookie_header, make_jwt, set_cookies

HTML = {"Accept": "text/html,application/xhtml+xml"}


@pytest.fixture
def app(app: FastAPI) -> FastAPI:
    @app.get("/whoami")
    def whoami(cookies: AuthCookies = Depends(get_auth_cookies)) -> dict:
        return {"token": cookies.token, "verifier": cookies.verifier}

    return app


@pytest.mark.asyncio
async def test_code_exchange_success_redirects_with_new_cookies(
    client: AsyncClient, backend: FakeBackend
):
    backend.results.append({"tokens": {"token": "t2", "refreshToken": "r2"}})
    response = await client.get(
        "/cb?code=abc123", headers={**HTML, **cookie_header(verifier="v1")}
    )

    assert response.status_code == 307
    assert response.headers["location"] == "/cb"
    assert backend.calls == [
        ("auth:signIn", {"params": {"code": "abc123"}, "verifier": "v1"}, None)
    ]
    cookies = set_cookies(response)
    assert cookies[NAMES["token"]] == "t2"
    assert cookies[NAMES["refresh_token"]] == "r2"


@pytest.mark.asyncio
async def test_code_exchange_failure_redirects_and_clears_cookies(
    client: AsyncClient, backend: FakeBackend
):
    backend.results.append(BackendTransportError("backend down"))
    response = await client.get(
        "/cb?code=abc123",
        headers={**HTML, **cookie_header(token="t1", refresh_token="r1", verifier="v1")},
    )

    assert response.status_code == 307
    assert response.headers["location"] == "/cb"
    assert set_cookies(response) == {
        NAMES["token"]: "",
        NAMES["refresh_token"]: "",
        NAMES["verifier"]: "",
    }


@pytest.mark.asyncio
async def test_code_on_api_request_is_not_exchanged(
    client: AsyncClient, backend: FakeBackend
):
    response = await client.get("/whoami?code=abc", headers={"Accept": "application/json"})
    assert response.status_code == 200
    assert backend.calls == []


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed_before_the_handler_runs(
    client: AsyncClient, backend: FakeBackend
):
    new_token = make_jwt(3600, 3600)
    backend.results.append({"tokens": {"token": new_token, "refreshToken": "r2"}})
    response = await client.get(
        "/whoami",
        headers=cookie_header(token=make_jwt(3600, 20), refresh_token="r1"),
    )

    assert response.status_code == 200
    assert response.json()["token"] == new_token
    cookies = set_cookies(response)
    assert cookies[NAMES["token"]] == new_token
    assert cookies[NAMES["refresh_token"]] == "r2"


@pytest.mark.asyncio
async def test_fresh_token_passes_through_untouched(
    client: AsyncClient, backend: FakeBackend
):
    token = make_jwt(3600, 3000)
    response = await client.get(
        "/whoami", headers=cookie_header(token=token, refresh_token="r1")
    )

    assert response.json()["token"] == token
    assert set_cookies(response) == {}
    assert backend.calls == []


@pytest.mark.asyncio
async def test_failed_refresh_signs_the_user_out(
    client: AsyncClient, backend: FakeBackend
):
    backend.results.append({"tokens": None})
    response = await client.get(
        "/session", headers=cookie_header(token=make_jwt(3600, 5), refresh_token="r1")
    )

    assert response.json() == {"authenticated": False}
    assert set(set_cookies(response).values()) == {""}


@pytest.mark.asyncio
async def test_inconsistent_cookies_are_cleared(client: AsyncClient, backend: FakeBackend):
    response = await client.get("/whoami", headers=cookie_header(token="t1"))

    assert response.json()["token"] is None
    assert len(set_cookies(response)) == 3
    assert backend.calls == []


@pytest.mark.asyncio
async def test_cross_origin_request_sees_no_cookies(
    client: AsyncClient, backend: FakeBackend
):
    response = await client.get(
        "/whoami",
        headers={
            "Origin": "https://evil.example",
            **cookie_header(token=make_jwt(3600, 5), refresh_token="r1", verifier="v1"),
        },
    )

    assert response.json() == {"token": None, "verifier": None}
    assert set_cookies(response) == {}
    assert backend.calls == []


@pytest.mark.asyncio
async def test_proxy_route_is_not_refreshed_by_the_middleware(
    client: AsyncClient, backend: FakeBackend
):
    backend.results.append(None)
    response = await client.post(
        "/api/auth",
        json={"action": "auth:signOut", "args": {}},
        headers=cookie_header(token=make_jwt(3600, 5), refresh_token="r1"),
    )

    assert response.status_code == 200
    assert [call[0] for call in backend.calls] == ["auth:signOut"]


@pytest.mark.asyncio
async def test_health_and_request_id(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-1"})
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "req-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("exp", [10**400, "tomorrow"])
async def test_tampered_expiry_claim_clears_cookies(
    client: AsyncClient, backend: FakeBackend, exp
):
    token = jwt.encode({"sub": "user-1", "iat": 1, "exp": exp}, "k", algorithm="HS256")
    response = await client.get(
        "/session", headers=cookie_header(token=token, refresh_token="r1")
    )

    assert response.status_code == 200
    assert response.json() == {"authenticated": False}
    assert set_cookies(response) == {
        NAMES["token"]: "",
        NAMES["refresh_token"]: "",
        NAMES["verifier"]: "",
    }
    assert backend.calls == []


@pytest.mark.asyncio
async def test_code_exchange_uses_first_code_value(
    client: AsyncClient, backend: FakeBackend
):
    backend.results.append({"tokens": None})
    response = await client.get("/cb?code=first&code=second", headers=HTML)

    assert response.headers["location"] == "/cb"
    assert backend.calls[0][1] == {"params": {"code": "first"}}

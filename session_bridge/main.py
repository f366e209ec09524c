from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from session_bridge.core.config import Settings, settings as default_settings
from session_bridge.core.exceptions import (
    SessionBridgeError,
    session_bridge_exception_handler,
)
from session_bridge.core.logging import setup_logging
from session_bridge.core.middleware import AuthenticationMiddleware, StructlogMiddleware
from session_bridge.modules.auth import router as auth_router
from session_bridge.modules.auth.backend import BackendActionInvoker, HttpBackendInvoker
from session_bridge.modules.auth.cookies import (
    AuthCookies,
    get_auth_cookies,
    is_authenticated,
)


def create_app(
    settings: Settings = default_settings,
    backend: BackendActionInvoker | None = None,
) -> FastAPI:
    """
    Build the application. `backend` overrides the HTTP invoker (tests, embedding).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        owned: HttpBackendInvoker | None = None
        if getattr(app.state, "backend", None) is None:
            owned = HttpBackendInvoker(
                settings.BACKEND_URL, timeout=settings.BACKEND_TIMEOUT_SECONDS
            )
            app.state.backend = owned

        yield

        # Shutdown
        if owned is not None:
            await owned.aclose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="""
    ## Session Bridge

    Keeps browser sessions in http-only cookies while the backend speaks bearer
    tokens:
    * **Auth proxy**: `POST` `auth:signIn` / `auth:signOut` actions
    * **Session refresh**: access tokens are rotated before they expire
    * **Code exchange**: OAuth / magic link `?code=` navigations are completed
      server side
    """,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend

    app.add_exception_handler(SessionBridgeError, session_bridge_exception_handler)

    app.add_middleware(
        AuthenticationMiddleware, proxy_path=settings.AUTH_PROXY_PATH
    )

    # Set all CORS enabled origins
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(StructlogMiddleware)

    app.include_router(
        auth_router.router,
        prefix=settings.AUTH_PROXY_PATH.rstrip("/"),
        tags=["auth"],
    )

    @app.get("/health")
    def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/session")
    def session_status(
        cookies: AuthCookies = Depends(get_auth_cookies),
    ) -> dict[str, bool]:
        return {"authenticated": is_authenticated(cookies)}

    return app


setup_logging()
app = create_app()

from typing import Any, Protocol

import httpx
import structlog
from fastapi import Request

from session_bridge.core.exceptions import BackendFault, BackendTransportError

logger = structlog.get_logger(__name__)


class BackendActionInvoker(Protocol):
    async def invoke(
        self, action: str, args: dict[str, Any], token: str | None = None
    ) -> Any:
        """Run a named backend action, optionally as the bearer of `token`."""
        ...


class HttpBackendInvoker:
    """
    Calls actions over the backend's HTTP action API.

    Request:  POST {base_url}/api/action  {"path", "args", "format": "json"}
    Response: {"status": "success", "value": ...}
              {"status": "error", "errorMessage": ...}
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not base_url:
            raise ValueError("BACKEND_URL must be configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def invoke(
        self, action: str, args: dict[str, Any], token: str | None = None
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.post(
                f"{self.base_url}/api/action",
                json={"path": action, "args": args, "format": "json"},
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("backend.transport_error", action=action, error=str(exc))
            raise BackendTransportError(f"{action}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            if payload.get("status") == "success":
                return payload.get("value")
            if payload.get("status") == "error":
                logger.warning(
                    "backend.action_error",
                    action=action,
                    status_code=response.status_code,
                    error=payload.get("errorMessage"),
                )
                raise BackendFault(f"{action}: {payload.get('errorMessage')}")

        if response.is_error:
            raise BackendTransportError(
                f"{action}: HTTP {response.status_code} from backend"
            )
        raise BackendFault(f"{action}: unexpected response envelope")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def get_backend(request: Request) -> BackendActionInvoker:
    """FastAPI dependency exposing the invoker created at startup."""
    return request.app.state.backend

import structlog
from fastapi import Request, status
from fastapi.responses import PlainTextResponse

logger = structlog.get_logger(__name__)


class SessionBridgeError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.public_message
        super().__init__(self.message)


class ProtocolViolation(SessionBridgeError):
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid action"


class CrossOriginRejection(SessionBridgeError):
    status_code = status.HTTP_403_FORBIDDEN
    public_message = "Invalid origin"


class MethodNotAllowed(SessionBridgeError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    public_message = "Invalid method"


class MalformedActionBody(SessionBridgeError):
    """The proxy body was not a JSON object; surfaced as a server error."""


class BackendFault(SessionBridgeError):
    """The backend answered with something the auth protocol does not allow."""


class BackendTransportError(BackendFault):
    """The backend could not be reached or answered with an HTTP error."""


async def session_bridge_exception_handler(
    request: Request, exc: SessionBridgeError
) -> PlainTextResponse:
    if exc.status_code >= 500:
        logger.error(
            "request.server_error",
            error=exc.message,
            error_type=type(exc).__name__,
            path=request.url.path,
        )
    # The internal message stays in the logs; clients only see the fixed text.
    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from session_bridge.core.exceptions import BackendFault
from session_bridge.modules.auth.constants import REFRESH_TOKEN_PLACEHOLDER


class TokenPair(BaseModel):
    """Access token plus the real refresh secret. Only ever lives in cookies."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    token: str
    refresh_token: str = Field(alias="refreshToken")


class ClientTokenPair(BaseModel):
    """What the browser is allowed to see of a TokenPair."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    refresh_token: Literal["dummy"] = Field(
        default=REFRESH_TOKEN_PLACEHOLDER, alias="refreshToken"
    )

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "ClientTokenPair":
        return cls(token=pair.token)


class ActionRequest(BaseModel):
    action: str
    args: dict[str, Any] = Field(default_factory=dict)


# Backend sign-in results, validated once at the boundary.


class RedirectResult(BaseModel):
    redirect: str
    verifier: str | None = None


class TokensResult(BaseModel):
    tokens: TokenPair | None


class StartedResult(BaseModel):
    """A flow was started out of band (e.g. an emailed one-time code)."""

    started: bool


class EmptyResult(BaseModel):
    pass


SignInResult = Union[RedirectResult, TokensResult, StartedResult, EmptyResult]


def parse_sign_in_result(raw: Any) -> SignInResult:
    if raw is None or raw == {}:
        return EmptyResult()
    if not isinstance(raw, dict):
        raise BackendFault(f"Unexpected signIn result type: {type(raw).__name__}")

    try:
        if raw.get("redirect") is not None:
            return RedirectResult.model_validate(raw)
        if "tokens" in raw:
            return TokensResult.model_validate(raw)
        if "started" in raw:
            return StartedResult.model_validate(raw)
    except ValidationError as exc:
        raise BackendFault(f"Malformed signIn result: {exc}") from exc

    raise BackendFault(f"Unexpected signIn result keys: {sorted(raw)}")


def require_tokens_result(raw: Any) -> TokensResult:
    """Refresh and code exchange only accept a result carrying `tokens`."""
    result = parse_sign_in_result(raw)
    if not isinstance(result, TokensResult):
        raise BackendFault("Invalid `signIn` action result: missing tokens")
    return result


class RefreshStatus(str, Enum):
    UNSPECIFIED = "unspecified"  # no session cookies at all
    UNCHANGED = "unchanged"  # access token still fresh enough
    INVALID = "invalid"  # inconsistent cookies or failed refresh
    REFRESHED = "refreshed"


@dataclass(frozen=True)
class RefreshOutcome:
    status: RefreshStatus
    tokens: TokenPair | None = None

    def __post_init__(self) -> None:
        if (self.status is RefreshStatus.REFRESHED) != (self.tokens is not None):
            raise ValueError("Only a refreshed outcome carries tokens")

    @classmethod
    def unspecified(cls) -> "RefreshOutcome":
        return cls(RefreshStatus.UNSPECIFIED)

    @classmethod
    def unchanged(cls) -> "RefreshOutcome":
        return cls(RefreshStatus.UNCHANGED)

    @classmethod
    def invalid(cls) -> "RefreshOutcome":
        return cls(RefreshStatus.INVALID)

    @classmethod
    def refreshed(cls, tokens: TokenPair) -> "RefreshOutcome":
        return cls(RefreshStatus.REFRESHED, tokens)

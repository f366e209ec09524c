import math
from typing import Any

from jose import JWTError, jwt

# Claims are read for refresh scheduling only; signatures are not checked.


def decode_unverified_claims(token: str) -> dict[str, Any] | None:
    """
    Read the claims of a JWT without verifying its signature.

    Returns None when the value is not a decodable JWT.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    if not isinstance(claims, dict):
        return None
    return claims


def numeric_claim(claims: dict[str, Any], name: str) -> float | None:
    """
    Timestamp claim as seconds since the epoch, or None when absent.

    Raises ValueError when the claim is present but not a finite number.
    """
    value = claims.get(name)
    if value is None:
        return None
    # bool is an int subclass but never a valid timestamp.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Claim {name!r} is not numeric")
    try:
        seconds = float(value)
    except OverflowError as exc:
        raise ValueError(f"Claim {name!r} is out of range") from exc
    if not math.isfinite(seconds):
        raise ValueError(f"Claim {name!r} is not finite")
    return seconds

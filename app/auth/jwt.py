"""
JWT access token handling.

Security measures:
- Short-lived access tokens (60 min default)
- Secret key from environment
- Token type validation
- Issuer and audience validation
- Every token has a unique jti, which binds it to the refresh token issued
  alongside it
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Any

from pydantic import BaseModel, Field
from jose import jwt, JWTError, ExpiredSignatureError

from app.core.config import (
    JWT_SECRET_KEY,
    JWT_ALGORITHM,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    TOKEN_ISSUER,
    TOKEN_AUDIENCE,
)

ACCESS_TOKEN_TYPE = "access"


class TokenPayload(BaseModel):
    """JWT token payload structure."""
    sub: str                                        # User ID (subject)
    unique_name: str                                # Username
    email: str
    roles: list[str] = Field(default_factory=list)  # Active role names
    type: str                                       # Always "access"
    iat: datetime                                   # Issued at
    exp: datetime                                   # Expiration
    iss: str = TOKEN_ISSUER
    aud: str = TOKEN_AUDIENCE
    jti: str                                        # JWT ID, bound to a refresh token

    @property
    def user_id(self) -> int:
        return int(self.sub)

    @property
    def username(self) -> str:
        return self.unique_name

    def remaining_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return max(0, int((self.exp - now).total_seconds()))


def create_access_token(
    user_id: int,
    username: str,
    email: str,
    roles: list[str],
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None,
) -> tuple[str, TokenPayload]:
    """
    Create a short-lived access token.

    Args:
        user_id: The user's database ID
        username: Login name, carried as ``unique_name``
        email: User's email address
        roles: Names of the user's active roles
        expires_delta: Lifetime override (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)
        additional_claims: Optional extra claims to include

    Returns:
        The encoded JWT and its decoded payload
    """
    now = datetime.now(timezone.utc).replace(microsecond=0)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    payload = {
        "sub": str(user_id),
        "unique_name": username,
        "email": email,
        "roles": list(roles),
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
        "jti": secrets.token_urlsafe(16),
    }

    if additional_claims:
        payload.update(additional_claims)

    encoded = jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)
    return encoded, _to_payload(payload)


def verify_token(token: str, allow_expired: bool = False) -> TokenPayload:
    """
    Verify and decode an access token.

    Args:
        token: The JWT string to verify
        allow_expired: Accept a token whose only defect is its expiry. Used
            by refresh, where the access token is expected to be stale.

    Returns:
        TokenPayload with decoded claims

    Raises:
        ExpiredSignatureError: If the token has expired (and allow_expired is False)
        JWTError: If the token is invalid or of the wrong type
    """
    payload = jwt.decode(
        token,
        JWT_SECRET_KEY,
        algorithms=[JWT_ALGORITHM],
        audience=TOKEN_AUDIENCE,
        issuer=TOKEN_ISSUER,
        options={"verify_exp": not allow_expired},
    )

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise JWTError(f"Invalid token type. Expected {ACCESS_TOKEN_TYPE}, got {payload.get('type')}")

    try:
        return _to_payload(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise JWTError(f"Malformed token claims: {e}")


def get_token_payload(token: str) -> Optional[TokenPayload]:
    """
    Decode a token whose signature is valid, ignoring expiry.
    Returns None if the token is malformed or forged.
    """
    try:
        return verify_token(token, allow_expired=True)
    except JWTError:
        return None


def _to_payload(payload: dict[str, Any]) -> TokenPayload:
    return TokenPayload(
        sub=str(payload["sub"]),
        unique_name=payload["unique_name"],
        email=payload.get("email", ""),
        roles=list(payload.get("roles") or []),
        type=payload["type"],
        iat=_as_datetime(payload["iat"]),
        exp=_as_datetime(payload["exp"]),
        iss=payload.get("iss", TOKEN_ISSUER),
        aud=payload.get("aud", TOKEN_AUDIENCE),
        jti=payload["jti"],
    )


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


__all__ = [
    "TokenPayload",
    "create_access_token",
    "verify_token",
    "get_token_payload",
    "JWTError",
    "ExpiredSignatureError",
]

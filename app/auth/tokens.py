"""
Token service: access-token issuance/validation and refresh-token lifecycle.

Refresh token states (see RefreshTokenState):

    Issued -> Active -> Rotated   (used once by refresh_access_token)
                     -> Revoked   (logout, password change, explicit revoke)
                     -> Expired   (expires_at passed)

Rotation is a conditional UPDATE on the token row; whichever transaction
flips ``is_used`` first wins and every later attempt sees zero affected
rows and is rejected. Rotation and bulk revocation both lock the owning
user row first, so for one user they run one after the other and a refresh
can never hand out a token that a concurrent revocation misses.

The service flushes but does not commit; callers wrap it in unit_of_work().
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import (
    TokenPayload,
    create_access_token,
    verify_token,
    get_token_payload,
    JWTError,
    ExpiredSignatureError,
)
from app.auth.store import CredentialStore, SqlCredentialStore
from app.core.config import REFRESH_TOKEN_EXPIRE_DAYS
from app.core.errors import AuthenticationError
from app.core.types import utc_now
from app.models.token import RefreshToken, RefreshTokenState, hash_refresh_token
from app.models.user import User

logger = logging.getLogger(__name__)

INVALID_REFRESH_MESSAGE = "Invalid token or refresh token"

# 64 random bytes, URL-safe base64 encoded
REFRESH_TOKEN_BYTES = 64


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    claims: TokenPayload
    refresh_token_id: int
    refresh_token_expires_at: datetime

    @property
    def expiration(self) -> datetime:
        """Access token expiry."""
        return self.claims.exp


@dataclass(frozen=True)
class TokenValidation:
    is_valid: bool
    claims: Optional[TokenPayload] = None
    remaining_seconds: Optional[int] = None

    @property
    def user_id(self) -> Optional[int]:
        return self.claims.user_id if self.claims else None

    @property
    def username(self) -> Optional[str]:
        return self.claims.username if self.claims else None


class TokenService:
    def __init__(
        self,
        session: AsyncSession,
        store: Optional[CredentialStore] = None,
        refresh_token_lifetime: timedelta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
        access_token_lifetime: Optional[timedelta] = None,
    ):
        self.session = session
        self.store = store or SqlCredentialStore(session)
        self.refresh_token_lifetime = refresh_token_lifetime
        self.access_token_lifetime = access_token_lifetime

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def generate_token_pair(self, user: User) -> TokenPair:
        """Issue a signed access token and persist a new Active refresh token."""
        roles = await self.store.active_role_names(user.id)
        access_token, claims = create_access_token(
            user_id=user.id,
            username=user.username,
            email=user.email,
            roles=roles,
            expires_delta=self.access_token_lifetime,
        )

        raw_refresh = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
        now = utc_now()
        row = RefreshToken(
            user_id=user.id,
            token_hash=hash_refresh_token(raw_refresh),
            jwt_id=claims.jti,
            issued_at=now,
            expires_at=now + self.refresh_token_lifetime,
        )
        self.session.add(row)
        await self.session.flush()

        return TokenPair(
            access_token=access_token,
            refresh_token=raw_refresh,
            claims=claims,
            refresh_token_id=row.id,
            refresh_token_expires_at=row.expires_at,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_access_token(self, token: Optional[str]) -> TokenValidation:
        """
        Check signature, issuer, audience and expiry. No storage access.

        An expired but otherwise genuine token is reported invalid with its
        identity and zero remaining seconds; anything else invalid carries no
        identity.
        """
        if not token:
            return TokenValidation(is_valid=False)

        try:
            claims = verify_token(token)
        except ExpiredSignatureError:
            claims = get_token_payload(token)
            if claims is None:
                return TokenValidation(is_valid=False)
            return TokenValidation(is_valid=False, claims=claims, remaining_seconds=0)
        except JWTError as e:
            logger.debug("Access token rejected: %s", e)
            return TokenValidation(is_valid=False)

        return TokenValidation(
            is_valid=True,
            claims=claims,
            remaining_seconds=claims.remaining_seconds(),
        )

    # ------------------------------------------------------------------
    # Rotation / revocation
    # ------------------------------------------------------------------

    async def refresh_access_token(self, access_token: str, refresh_token: str) -> TokenPair:
        """
        Exchange a (possibly expired) access token and its refresh token for
        a new pair. The refresh token becomes Rotated.

        Raises:
            AuthenticationError: token missing, forged, mismatched, expired,
                revoked or already rotated; the message is the same for all.
        """
        claims = get_token_payload(access_token) if access_token else None
        if claims is None or not refresh_token:
            raise self._reject("unreadable access token or missing refresh token")

        result = await self.session.execute(
            select(RefreshToken.id, RefreshToken.user_id, RefreshToken.jwt_id)
            .where(RefreshToken.token_hash == hash_refresh_token(refresh_token))
        )
        stored = result.one_or_none()
        if stored is None:
            raise self._reject("unknown refresh token", user_id=claims.user_id)
        if stored.user_id != claims.user_id or stored.jwt_id != claims.jti:
            raise self._reject("refresh token does not belong to access token", user_id=claims.user_id)

        await self._lock_user(stored.user_id)

        consumed = await self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.id == stored.id,
                RefreshToken.is_used.is_(False),
                RefreshToken.is_revoked.is_(False),
                RefreshToken.expires_at > utc_now(),
            )
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            raise self._reject("refresh token expired, revoked or already rotated", user_id=stored.user_id)

        user = await self.store.find_user_by_id(stored.user_id, active_only=True)
        if user is None:
            raise self._reject("owner missing or inactive", user_id=stored.user_id)

        pair = await self.generate_token_pair(user)
        await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == stored.id)
            .values(replaced_by_id=pair.refresh_token_id)
            .execution_options(synchronize_session=False)
        )
        logger.info("Refresh token %s rotated to %s for user %s", stored.id, pair.refresh_token_id, user.id)
        return pair

    async def revoke_all_refresh_tokens(self, user_id: int) -> int:
        """Revoke every unrevoked refresh token of the user. Returns how many changed."""
        await self._lock_user(user_id)
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        revoked = result.rowcount or 0
        logger.info("Revoked %d refresh token(s) for user %s", revoked, user_id)
        return revoked

    async def get_refresh_token_state(self, refresh_token: str) -> Optional[RefreshTokenState]:
        """Current state of a raw refresh token, or None if it was never issued."""
        result = await self.session.execute(
            select(RefreshToken)
            .where(RefreshToken.token_hash == hash_refresh_token(refresh_token))
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return row.state if row else None

    async def _lock_user(self, user_id: int) -> None:
        # Row lock on PostgreSQL; SQLite serialises writers on its own
        await self.session.execute(
            select(User.id).where(User.id == user_id).with_for_update()
        )

    @staticmethod
    def _reject(reason: str, user_id: Optional[int] = None) -> AuthenticationError:
        logger.info("Refresh rejected for user %s: %s", user_id, reason)
        return AuthenticationError(INVALID_REFRESH_MESSAGE)

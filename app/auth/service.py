"""
Authentication flows: login, register, refresh, logout, change password.

AuthService composes the credential store, password hasher, token service,
permission resolver and audit recorder over one request-scoped session.
Each flow commits its own unit of work; audit entries are written after the
outcome is decided and never change it.

Credential failures raise AuthenticationError with one message whether the
username is unknown or the password is wrong.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import AuditRecorder
from app.auth.jwt import get_token_payload
from app.auth.password import (
    hash_password,
    verify_password,
    needs_rehash,
    validate_password_strength,
)
from app.auth.permissions import PermissionResolver
from app.auth.store import CredentialStore, SqlCredentialStore
from app.auth.tokens import TokenPair, TokenService, TokenValidation
from app.core.config import (
    DEFAULT_ROLE_NAME,
    ADMIN_REDIRECT_URL,
    USER_REDIRECT_URL,
)
from app.core.database import store_errors, unit_of_work
from app.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models.audit import AuditAction, UNKNOWN_USER_ID
from app.models.user import Person, User

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"


@dataclass(frozen=True)
class UserProfile:
    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    roles: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RoleRedirection:
    user_id: int
    username: str
    is_admin: bool
    redirect_url: str


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful login, registration or refresh."""
    tokens: TokenPair
    user: UserProfile
    role_redirection: RoleRedirection


@dataclass
class RegistrationProfile:
    username: str
    email: str
    password: str
    confirm_password: str
    first_name: str
    last_name: str
    document_number: str
    document_type: str = "CC"
    phone: Optional[str] = None

    REQUIRED = ("username", "email", "password", "first_name", "last_name", "document_number")

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED if not (getattr(self, name) or "").strip()]


class AuthService:
    def __init__(
        self,
        session: AsyncSession,
        audit: Optional[AuditRecorder] = None,
        store: Optional[CredentialStore] = None,
        tokens: Optional[TokenService] = None,
        permissions: Optional[PermissionResolver] = None,
    ):
        self.session = session
        self.audit = audit or AuditRecorder()
        self.store = store or SqlCredentialStore(session)
        self.tokens = tokens or TokenService(session, store=self.store)
        self.permissions = permissions or PermissionResolver(session)

    # ------------------------------------------------------------------
    # Login / register
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str, client_ip: Optional[str] = None) -> AuthResult:
        """
        Authenticate an active user and issue a token pair.

        A legacy or outdated password digest is replaced by a fresh Argon2id
        digest in the same transaction that stores the refresh token.

        Raises:
            ValidationError: username or password empty
            AuthenticationError: unknown/inactive user or wrong password
        """
        if not username or not password:
            raise ValidationError("Username and password are required")
        origin = f" from {client_ip}" if client_ip else ""

        async with store_errors("Login"):
            user = await self.store.find_user_by_username(username)

        if user is None:
            await self.audit.record(
                UNKNOWN_USER_ID, AuditAction.LOGIN_FAILURE, False, f"User not found - Username: {username}{origin}"
            )
            logger.info("Login failed: unknown user %s", username)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if not verify_password(password, user.password_hash):
            await self.audit.record(
                user.id, AuditAction.LOGIN_FAILURE, False, f"Wrong password - Username: {username}{origin}"
            )
            logger.info("Login failed: wrong password for user %s", user.id)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        async with store_errors("Login"):
            async with unit_of_work(self.session):
                if needs_rehash(user.password_hash):
                    user.password_hash = hash_password(password)
                    logger.info("Password digest upgraded for user %s", user.id)
                pair = await self.tokens.generate_token_pair(user)
            result = await self._build_result(user, pair)

        await self.audit.record(user.id, AuditAction.LOGIN_SUCCESS, True, f"Login successful - Username: {username}{origin}")
        return result

    async def register(self, profile: RegistrationProfile) -> AuthResult:
        """
        Create Person, User and default role membership atomically, then log
        the new user in.

        Raises:
            ValidationError: missing field, password mismatch or weak password
            ConflictError: username, email or document number already taken
        """
        missing = profile.missing_fields()
        if missing:
            raise ValidationError(f"Required fields missing: {', '.join(missing)}")
        if profile.password != profile.confirm_password:
            raise ValidationError("Passwords do not match")
        ok, issues = validate_password_strength(profile.password)
        if not ok:
            raise ValidationError("; ".join(issues))

        username = profile.username.strip()
        email = profile.email.strip()
        document_number = profile.document_number.strip()

        async with store_errors("Registration"):
            try:
                async with unit_of_work(self.session):
                    if await self.store.user_exists(username=username):
                        raise ConflictError("Username is already in use")
                    if await self.store.user_exists(email=email):
                        raise ConflictError("Email is already registered")
                    if await self.store.person_exists(document_number):
                        raise ConflictError("Document number is already registered")

                    person = await self.store.save_person(Person(
                        first_name=profile.first_name.strip(),
                        last_name=profile.last_name.strip(),
                        document_number=document_number,
                        document_type=(profile.document_type or "CC").strip() or "CC",
                        phone=profile.phone,
                        is_active=True,
                    ))
                    user = await self.store.save_user(User(
                        username=username,
                        email=email,
                        password_hash=hash_password(profile.password),
                        person_id=person.id,
                        person=person,
                        is_active=True,
                    ))

                    role = await self.store.find_role_by_name(DEFAULT_ROLE_NAME)
                    if role is not None:
                        await self.store.save_role_assignment(user.id, role.id)
                    else:
                        logger.warning("Default role '%s' not found; %s registered without roles", DEFAULT_ROLE_NAME, username)
            except IntegrityError as e:
                # Lost a race with a concurrent registration of the same identity
                logger.info("Registration conflict for %s: %s", username, e.orig)
                raise ConflictError(
                    "Username, email or document number is already registered", original_error=e
                ) from e

        await self.audit.record(user.id, AuditAction.REGISTER, True, f"New user registered: {username}")

        async with store_errors("Registration"):
            async with unit_of_work(self.session):
                pair = await self.tokens.generate_token_pair(user)
            return await self._build_result(user, pair)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def refresh(self, access_token: str, refresh_token: str) -> AuthResult:
        """Rotate the refresh token and return a new pair with the user's current profile."""
        if not access_token or not refresh_token:
            raise ValidationError("Token and refresh token are required")

        try:
            async with store_errors("Token refresh"):
                async with unit_of_work(self.session):
                    pair = await self.tokens.refresh_access_token(access_token, refresh_token)
                    user = await self.store.find_user_by_id(pair.claims.user_id, active_only=True)
                    if user is None:
                        raise AuthenticationError("Invalid token or refresh token")
                result = await self._build_result(user, pair)
        except AuthenticationError:
            claims = get_token_payload(access_token)
            await self.audit.record(
                claims.user_id if claims else UNKNOWN_USER_ID,
                AuditAction.TOKEN_REFRESH_FAILURE,
                False,
                "Refresh token rejected",
            )
            raise

        await self.audit.record(user.id, AuditAction.TOKEN_REFRESH, True, "Token refreshed")
        return result

    async def logout(self, user_id: int, username: Optional[str] = None) -> int:
        """Revoke every refresh token of the user. Returns how many were revoked."""
        if not user_id or user_id <= 0:
            raise ValidationError("Invalid user id")

        async with store_errors("Logout"):
            async with unit_of_work(self.session):
                revoked = await self.tokens.revoke_all_refresh_tokens(user_id)

        await self.audit.record(user_id, AuditAction.LOGOUT, True, f"Logout for user: {username or user_id}")
        return revoked

    async def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        confirm_new_password: str,
    ) -> None:
        """
        Replace the user's password and revoke all their refresh tokens.

        Raises:
            ValidationError: empty fields, mismatch or weak new password
            NotFoundError: no such user, or the user is deactivated
            AuthenticationError: current password is wrong
        """
        if not current_password or not new_password or not confirm_new_password:
            raise ValidationError("All fields are required")
        if new_password != confirm_new_password:
            raise ValidationError("New passwords do not match")

        async with store_errors("Password change"):
            user = await self.store.find_user_by_id(user_id, active_only=True)
        if user is None:
            raise NotFoundError("User not found")

        if not verify_password(current_password, user.password_hash):
            await self.audit.record(
                user.id, AuditAction.PASSWORD_CHANGE_FAILURE, False, "Current password incorrect"
            )
            raise AuthenticationError("Current password is incorrect")

        ok, issues = validate_password_strength(new_password)
        if not ok:
            raise ValidationError("; ".join(issues))

        async with store_errors("Password change"):
            async with unit_of_work(self.session):
                user.password_hash = hash_password(new_password)
                await self.session.flush()
                await self.tokens.revoke_all_refresh_tokens(user.id)

        await self.audit.record(user.id, AuditAction.PASSWORD_CHANGE, True, "Password updated")

    def validate_session(self, access_token: Optional[str]) -> TokenValidation:
        return self.tokens.validate_access_token(access_token)

    def check_token(self, token: Optional[str]) -> TokenValidation:
        if not token or not token.strip():
            raise ValidationError("Token is required")
        return self.validate_session(token.strip())

    # ------------------------------------------------------------------

    async def _build_result(self, user: User, pair: TokenPair) -> AuthResult:
        person = user.person
        is_admin = await self.permissions.is_admin(user.id)
        return AuthResult(
            tokens=pair,
            user=UserProfile(
                id=user.id,
                username=user.username,
                email=user.email,
                first_name=person.first_name if person else "",
                last_name=person.last_name if person else "",
                roles=list(pair.claims.roles),
            ),
            role_redirection=RoleRedirection(
                user_id=user.id,
                username=user.username,
                is_admin=is_admin,
                redirect_url=ADMIN_REDIRECT_URL if is_admin else USER_REDIRECT_URL,
            ),
        )

"""
Authentication-related schemas.

Field names are camelCase on the wire; snake_case is accepted on input.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator
from pydantic.alias_generators import to_camel

from app.auth.service import AuthResult, RegistrationProfile
from app.auth.tokens import TokenValidation


class CamelModel(BaseModel):
    """Base for every API payload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    """Login request with username and password."""

    username: str = Field(min_length=1, max_length=50, description="Login name")
    password: str = Field(min_length=1, max_length=128, description="User password")

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()


class RegisterRequest(CamelModel):
    """New account with its person profile."""

    username: str = Field(min_length=1, max_length=50)
    email: EmailStr = Field(description="User email address")
    password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    document_type: str = Field(default="CC", max_length=10)
    document_number: str = Field(min_length=1, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=30)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()

    def to_profile(self) -> RegistrationProfile:
        return RegistrationProfile(
            username=self.username,
            email=self.email,
            password=self.password,
            confirm_password=self.confirm_password,
            first_name=self.first_name,
            last_name=self.last_name,
            document_number=self.document_number,
            document_type=self.document_type,
            phone=self.phone,
        )


class UserInfo(CamelModel):
    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    roles: list[str] = Field(default_factory=list)


class RoleRedirectionResponse(CamelModel):
    user_id: int
    username: str
    is_admin: bool
    redirect_url: str


class AuthResponse(CamelModel):
    """Login / refresh response with tokens."""

    token: str = Field(description="JWT access token")
    refresh_token: str = Field(description="Opaque single-use refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expiration: datetime = Field(description="Access token expiry (UTC)")
    user: UserInfo
    role_redirection: RoleRedirectionResponse

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            expiration=result.tokens.expiration,
            user=UserInfo(
                id=result.user.id,
                username=result.user.username,
                email=result.user.email,
                first_name=result.user.first_name,
                last_name=result.user.last_name,
                roles=result.user.roles,
            ),
            role_redirection=RoleRedirectionResponse(
                user_id=result.role_redirection.user_id,
                username=result.role_redirection.username,
                is_admin=result.role_redirection.is_admin,
                redirect_url=result.role_redirection.redirect_url,
            ),
        )


class RegisterResponse(AuthResponse):
    message: str = "User registered successfully"


class TokenValidationResponse(CamelModel):
    is_valid: bool
    user_id: Optional[int] = None
    username: Optional[str] = None
    remaining_time_in_seconds: Optional[int] = None

    @classmethod
    def from_validation(cls, validation: TokenValidation) -> "TokenValidationResponse":
        return cls(
            is_valid=validation.is_valid,
            user_id=validation.user_id,
            username=validation.username,
            remaining_time_in_seconds=validation.remaining_seconds,
        )


class CheckTokenRequest(CamelModel):
    token: str = Field(default="", max_length=4096)


class RefreshTokenRequest(CamelModel):
    """Expired (or live) access token plus its refresh token."""

    token: str = Field(default="", max_length=4096, description="Access token issued with the refresh token")
    refresh_token: str = Field(default="", max_length=512, description="Current refresh token")


class PasswordChangeRequest(CamelModel):
    """Request to change password."""

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)
    confirm_new_password: str = Field(min_length=1, max_length=128)


class MessageResponse(CamelModel):
    message: str

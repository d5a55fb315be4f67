"""
Authentication endpoints.

Provides:
- Login (username/password -> access + refresh token)
- Registration with automatic login
- Token validation and checking
- Token refresh (rotation)
- Logout
- Password change

Service errors (AppError) are rendered by the handler in app.main.
"""

from fastapi import APIRouter, Depends, Request

from app.auth.dependencies import (
    get_auth_service,
    get_bearer_token,
    get_client_ip,
    get_current_claims,
)
from app.auth.jwt import TokenPayload
from app.auth.service import AuthService
from app.core.errors import AuthenticationError
from app.schemas.auth import (
    AuthResponse,
    CheckTokenRequest,
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    TokenValidationResponse,
)

router = APIRouter()


@router.post("/login", response_model=AuthResponse)
async def login(
    request: Request,
    login_data: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Authenticate user and return an access token and a refresh token.

    The response also says where the client should send the user
    (administrator or regular dashboard).
    """
    result = await auth.login(login_data.username, login_data.password, client_ip=get_client_ip(request))
    return AuthResponse.from_result(result)


@router.post("/register", response_model=RegisterResponse)
async def register(
    data: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Create a user (and its person) and log it in."""
    result = await auth.register(data.to_profile())
    base = AuthResponse.from_result(result)
    return RegisterResponse(**base.model_dump())


@router.get("/validate", response_model=TokenValidationResponse)
async def validate(
    token: str = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Validate the bearer access token.

    An expired token answers 401; the identity is still reported by
    check-token.
    """
    validation = auth.validate_session(token)
    if not validation.is_valid:
        raise AuthenticationError("Token has expired" if validation.claims else "Invalid token")
    return TokenValidationResponse.from_validation(validation)


@router.post("/check-token", response_model=TokenValidationResponse)
async def check_token(
    data: CheckTokenRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Check a token without requiring authentication."""
    return TokenValidationResponse.from_validation(auth.check_token(data.token))


@router.post("/refresh-token", response_model=AuthResponse)
async def refresh_token(
    data: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Exchange an access token (expired or not) and its refresh token for a
    new pair. Each refresh token works once.
    """
    result = await auth.refresh(data.token, data.refresh_token)
    return AuthResponse.from_result(result)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    claims: TokenPayload = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
):
    """Revoke all refresh tokens of the current user."""
    await auth.logout(claims.user_id, claims.username)
    return MessageResponse(message="Logged out successfully")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    data: PasswordChangeRequest,
    claims: TokenPayload = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Change the current user's password.

    Every refresh token of the user is revoked; existing access tokens stay
    valid until they expire.
    """
    await auth.change_password(
        claims.user_id,
        data.current_password,
        data.new_password,
        data.confirm_new_password,
    )
    return MessageResponse(message="Password updated successfully")

"""Authentication endpoints."""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from sealedlove.api.deps import (
    AuthRateLimit,
    BearerCredentials,
    CurrentUser,
    SessionDep,
    SignInDep,
    unauthorized,
)
from sealedlove.config import settings
from sealedlove.models import User, UserRead
from sealedlove.services.auth import AuthError, create_token, refresh_token, user_read
from sealedlove.services.authenticator import (
    PROFILE_UPDATE_SENTINEL,
    InvalidCode,
    UserPersistenceError,
)
from sealedlove.services.cache import StoreUnavailable
from sealedlove.services.email import EmailDeliveryError
from sealedlove.services.tokens import InvalidOrExpiredToken

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    """Request body for login."""

    email: EmailStr


class LoginResponse(BaseModel):
    """Response for login request."""

    message: str
    # In development, include the magic link for testing
    magic_link: str | None = None


class VerifyCodeRequest(BaseModel):
    """Request body for code verification."""

    email: EmailStr
    code: str = Field(min_length=1, max_length=32)


class VerifyRequest(BaseModel):
    """Request body for magic-link verification."""

    email: EmailStr
    token: str = Field(min_length=1, max_length=128)


class ProfileUpdateRequest(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)


class TokenResponse(BaseModel):
    """Response containing JWT token."""

    access_token: str
    token_type: str = "bearer"
    user: UserRead


def store_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Service temporarily unavailable",
    )


def session_response(user: User) -> TokenResponse:
    return TokenResponse(access_token=create_token(user), user=user_read(user))


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    signin: SignInDep,
    _rate_limit: AuthRateLimit,
):
    """
    Request a sign-in code and magic link.

    Both are sent in one email. Requesting again within the code's lifetime
    sends the same code.
    """
    email = request.email.lower()
    try:
        token = await signin.request_sign_in(email)
    except StoreUnavailable as e:
        logger.error(f"Sign-in request for {email} failed: {e}")
        raise store_unavailable() from e
    except EmailDeliveryError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send verification email",
        ) from e

    response = LoginResponse(message="Check your email for a sign-in code")

    # Include magic link in development for testing
    if settings.is_development:
        response.magic_link = f"/auth/verify?{urlencode({'token': token, 'email': email})}"

    return response


@router.post("/verify-code", response_model=TokenResponse)
async def verify_code(
    request: VerifyCodeRequest,
    session: SessionDep,
    signin: SignInDep,
    _rate_limit: AuthRateLimit,
):
    """Exchange an emailed 6-digit code for a session."""
    try:
        result = await signin.verify_code(session, request.email.lower(), request.code)
    except InvalidCode as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired code",
        ) from e
    except (StoreUnavailable, UserPersistenceError) as e:
        logger.error(f"Sign-in for {request.email} failed: {e}")
        raise store_unavailable() from e

    return session_response(result.user)


@router.post("/verify", response_model=TokenResponse)
async def verify(
    request: VerifyRequest,
    session: SessionDep,
    signin: SignInDep,
    _rate_limit: AuthRateLimit,
):
    """Verify a magic link token and return JWT."""
    try:
        result = await signin.complete_magic_link(session, request.email.lower(), request.token)
    except InvalidOrExpiredToken as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired token",
        ) from e
    except (StoreUnavailable, UserPersistenceError) as e:
        logger.error(f"Sign-in for {request.email} failed: {e}")
        raise store_unavailable() from e

    return session_response(result.user)


@router.get("/me", response_model=UserRead)
async def get_current_user_info(user: CurrentUser):
    """Get current authenticated user info."""
    return user_read(user)


@router.patch("/me", response_model=TokenResponse)
async def update_profile(
    request: ProfileUpdateRequest,
    user: CurrentUser,
    session: SessionDep,
    signin: SignInDep,
):
    """
    Update the display name and re-issue the session.

    The new session goes through the trusted re-authentication path so it
    carries the updated name.
    """
    user.name = f"{request.first_name.strip()} {request.last_name.strip()}".strip()
    session.add(user)
    await session.commit()

    try:
        result = await signin.authenticator.authenticate(
            session, user.email, PROFILE_UPDATE_SENTINEL, allow_profile_update=True
        )
    except InvalidCode as e:
        raise unauthorized() from e

    return session_response(result.user)


@router.post("/logout")
async def logout():
    """
    Logout endpoint.

    Since we use stateless JWT, this is mostly for client-side token clearing.
    """
    return {"message": "Logged out successfully"}


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    session: SessionDep,
    credentials: BearerCredentials,
    _rate_limit: AuthRateLimit,
):
    """
    Refresh JWT token.

    Issues a new token with fresh user data and a recomputed admin flag. The
    session's absolute expiry does not move.
    """
    if not credentials:
        raise unauthorized("Not authenticated")

    try:
        access_token, user = await refresh_token(session, credentials.credentials)
    except AuthError as e:
        raise unauthorized(str(e)) from e

    return TokenResponse(access_token=access_token, user=user_read(user))

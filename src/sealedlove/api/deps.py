"""FastAPI dependencies for dependency injection."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from sealedlove.database import get_session
from sealedlove.models import User
from sealedlove.services.auth import AuthError, verify_token
from sealedlove.services.cache import EphemeralStore, get_store
from sealedlove.services.email import EmailService, get_email_service
from sealedlove.services.rate_limit import (
    RateLimitResult,
    RateLimitType,
    check_rate_limit,
    rate_limit_headers,
)
from sealedlove.services.signin import SignInService

logger = logging.getLogger(__name__)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]
StoreDep = Annotated[EphemeralStore, Depends(get_store)]
EmailServiceDep = Annotated[EmailService, Depends(get_email_service)]

# Security scheme
security = HTTPBearer(auto_error=False)

BearerCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]


def get_signin_service(store: StoreDep, emails: EmailServiceDep) -> SignInService:
    return SignInService(store, emails)


SignInDep = Annotated[SignInService, Depends(get_signin_service)]


def unauthorized(detail: str = "Invalid or expired token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: SessionDep,
    credentials: BearerCredentials,
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise unauthorized("Not authenticated")

    try:
        return await verify_token(session, credentials.credentials)
    except AuthError as e:
        logger.debug(f"Token verification failed: {e!r}")
        raise unauthorized() from e


# Type aliases for common dependencies
CurrentUser = Annotated[User, Depends(get_current_user)]


def raise_if_limited(result: RateLimitResult) -> None:
    """Raise 429 for a failed rate limit check."""
    if result.success:
        return
    headers = rate_limit_headers(result)
    retry_after = headers.get("Retry-After", "60")
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
        headers=headers,
    )


class RateLimitDependency:
    """Dependency class for rate limiting endpoints.

    Usage:
        @router.post("/endpoint")
        async def endpoint(
            rate_limit: Annotated[None, Depends(RateLimitDependency(RateLimitType.AUTH))]
        ):
            ...
    """

    def __init__(self, limit_type: RateLimitType) -> None:
        self.limit_type = limit_type

    async def __call__(self, request: Request, store: StoreDep) -> None:
        """Check rate limit and raise 429 if exceeded."""
        raise_if_limited(await check_rate_limit(request, self.limit_type, store))


# Pre-configured rate limit dependencies
AuthRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.AUTH))]

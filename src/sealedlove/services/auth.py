"""Session issuance: signed JWTs carrying the admin flag."""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sealedlove.config import settings
from sealedlove.models import User, UserRead


class AuthError(Exception):
    """Authentication error."""

    pass


def is_admin_email(email: str | None, admins: Iterable[str] | None = None) -> bool:
    """Check an address against the admin allow-list, case-insensitively.

    The list is read on every call so removals take effect on the next refresh.
    """
    if not email:
        return False
    allow_list = settings.admin_emails if admins is None else [a.strip().lower() for a in admins]
    return email.strip().lower() in allow_list


def user_read(user: User) -> UserRead:
    """Build the public view of a user with a freshly computed admin flag."""
    return UserRead(
        id=user.id,
        email=user.email,
        name=user.name,
        email_verified=user.email_verified,
        is_admin=is_admin_email(user.email),
    )


def _encode(user: User, issued_at: datetime, expires: datetime) -> str:
    payload = {
        "sub": str(user.id),
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "is_admin": is_admin_email(user.email),
        "exp": expires,
        "iat": issued_at,
    }
    return jwt.encode(payload, settings.session_secret, algorithm=settings.jwt_algorithm)


def create_token(user: User) -> str:
    """Create a session JWT for a user."""
    now = datetime.now(UTC)
    expires = now + timedelta(seconds=settings.session_max_age_seconds)
    return _encode(user, now, expires)


def decode_token(token: str) -> dict:
    """Decode and validate a session JWT."""
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError as e:
        raise AuthError(f"Invalid token: {e}") from e


async def verify_token(session: AsyncSession, token: str) -> User:
    """Verify a session JWT and return the associated user."""
    payload = decode_token(token)

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token: missing user ID")

    stmt = select(User).where(User.id == user_id)
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()

    if not user:
        raise AuthError("User not found")

    return user


async def refresh_token(session: AsyncSession, token: str) -> tuple[str, User]:
    """Re-issue a session with fresh user data.

    The admin flag is recomputed from the allow-list; the absolute expiry of
    the original session is kept.
    """
    payload = decode_token(token)
    user = await verify_token(session, token)

    expires = datetime.fromtimestamp(payload["exp"], UTC)
    return _encode(user, datetime.now(UTC), expires), user

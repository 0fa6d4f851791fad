"""Email + one-time-code authentication.

A verified submission ends in USER_RESOLVED or USER_CREATED; any failure is
raised as InvalidCode. Callers turn the resolved user into a session.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sealedlove.models import User, utcnow
from sealedlove.services.email import EmailService
from sealedlove.services.verification import VerificationCodeManager

logger = logging.getLogger(__name__)

# Reserved code used by trusted internal callers to re-assert an existing
# session's identity. Only honored when allow_profile_update=True.
PROFILE_UPDATE_SENTINEL = "profile_update"


class InvalidCode(Exception):
    """Submitted code is wrong, already used, or was never issued."""

    pass


class UserPersistenceError(Exception):
    """The user row could neither be created nor found."""

    pass


class AuthState(str, Enum):
    """Terminal success states of an authentication attempt."""

    USER_RESOLVED = "user_resolved"
    USER_CREATED = "user_created"


@dataclass
class AuthenticationResult:
    user: User
    state: AuthState

    @property
    def created(self) -> bool:
        return self.state == AuthState.USER_CREATED


class CredentialAuthenticator:
    """Validates (email, code) pairs and resolves the user behind them."""

    def __init__(self, codes: VerificationCodeManager, emails: EmailService):
        self.codes = codes
        self.emails = emails

    async def authenticate(
        self,
        session: AsyncSession,
        email: str,
        code: str,
        *,
        allow_profile_update: bool = False,
    ) -> AuthenticationResult:
        if not email or not code:
            raise InvalidCode("Invalid or expired code")

        if allow_profile_update and code == PROFILE_UPDATE_SENTINEL:
            return await self.reauthenticate(session, email)

        # Compare-and-delete, so a code can only ever succeed once
        if not await self.codes.consume(email, code):
            logger.info(f"Rejected verification code for {email}")
            raise InvalidCode("Invalid or expired code")

        return await self.resolve_user(session, email)

    async def reauthenticate(self, session: AsyncSession, email: str) -> AuthenticationResult:
        """Trusted path: resolve an existing user without a code."""
        user = await self._find_user(session, email)
        if user is None:
            raise InvalidCode("Invalid or expired code")
        return AuthenticationResult(user=user, state=AuthState.USER_RESOLVED)

    async def resolve_user(self, session: AsyncSession, email: str) -> AuthenticationResult:
        """Find or create the user for a verified address."""
        user = await self._find_user(session, email)
        if user is not None:
            if user.email_verified is None:
                user.email_verified = utcnow()
                session.add(user)
                await session.commit()
            return AuthenticationResult(user=user, state=AuthState.USER_RESOLVED)

        user = User(email=email, name="", email_verified=utcnow())
        session.add(user)
        try:
            await session.commit()
        except IntegrityError:
            # Concurrent first sign-in for the same address already created it
            await session.rollback()
            existing = await self._find_user(session, email)
            if existing is None:
                raise UserPersistenceError(f"Could not create or load user {email}") from None
            logger.info(f"User {email} created concurrently, using existing row")
            return AuthenticationResult(user=existing, state=AuthState.USER_RESOLVED)

        logger.info(f"Created user {user.id} for {email}")
        await self._send_welcome(user)
        return AuthenticationResult(user=user, state=AuthState.USER_CREATED)

    async def _send_welcome(self, user: User) -> None:
        try:
            sent = await self.emails.send_welcome(user.email, user.name or None)
        except Exception as e:
            logger.error(f"Failed to send welcome email to {user.email}: {e}")
            return
        if not sent:
            logger.warning(f"Welcome email to {user.email} was not delivered")

    @staticmethod
    async def _find_user(session: AsyncSession, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

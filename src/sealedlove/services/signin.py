"""Sign-in orchestration: request a code/link, complete a magic link."""

import logging
from datetime import UTC, datetime, timedelta
from secrets import token_hex
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from sealedlove.config import settings
from sealedlove.services.authenticator import AuthenticationResult, CredentialAuthenticator
from sealedlove.services.cache import EphemeralStore
from sealedlove.services.email import EmailDeliveryError, EmailService
from sealedlove.services.tokens import TokenManager
from sealedlove.services.verification import VerificationCodeManager

logger = logging.getLogger(__name__)


def build_magic_link(email: str, token: str) -> str:
    query = urlencode({"token": token, "email": email})
    return f"{settings.app_url.rstrip('/')}/auth/verify?{query}"


class SignInService:
    """Ties codes, tokens and email delivery into the two sign-in paths."""

    def __init__(self, store: EphemeralStore, emails: EmailService):
        self.codes = VerificationCodeManager(store)
        self.tokens = TokenManager(store, self.codes)
        self.authenticator = CredentialAuthenticator(self.codes, emails)
        self.emails = emails

    async def request_sign_in(self, email: str) -> str:
        """Issue (or reuse) a code, mint a magic-link token and email both.

        Returns the token. Raises EmailDeliveryError if the email could not be
        sent, since the user would have no other way to get the code.
        """
        token = token_hex(32)
        expires = datetime.now(UTC) + timedelta(seconds=settings.verification_ttl_seconds)
        await self.tokens.create_token(email, token, expires)
        await self.send_verification(email, token)
        return token

    async def send_verification(self, email: str, token: str) -> None:
        """Email the code and magic link for an already stored token.

        A stored record without a code is re-created with the active one first.
        """
        record = await self.tokens.get_token(token)
        if record is not None:
            record = await self.tokens.ensure_code(record)
            code = record.verification_code
        else:
            code = await self.codes.get_or_create(email)

        sent = await self.emails.send_verification(
            to=email,
            verification_code=code or "",
            url=build_magic_link(email, token),
        )
        if not sent:
            logger.error(f"Verification email to {email} could not be sent")
            raise EmailDeliveryError("Failed to send verification email")

    async def verify_code(
        self, session: AsyncSession, email: str, code: str
    ) -> AuthenticationResult:
        return await self.authenticator.authenticate(session, email, code)

    async def complete_magic_link(
        self, session: AsyncSession, email: str, token: str
    ) -> AuthenticationResult:
        """Consume a magic-link token and resolve its user.

        The login code embedded in the link is dropped as well, so the same
        email cannot be used twice.
        """
        record = await self.tokens.use_token(email, token)
        await self.codes.delete(record.identifier)
        return await self.authenticator.resolve_user(session, record.identifier)

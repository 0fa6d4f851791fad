"""One-time login codes kept in the ephemeral store."""

import logging
import secrets
from collections.abc import Callable

from sealedlove.config import settings
from sealedlove.services.cache import EphemeralStore

logger = logging.getLogger(__name__)

VERIFICATION_CODE_PREFIX = "login-verification:"

CODE_MIN = 100_000
CODE_MAX = 999_999


def generate_code() -> str:
    """Return a random 6-digit code in 100000-999999."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def normalize_code(code: str) -> str:
    """Normalize a code for comparison (trimmed, lower-cased)."""
    return code.strip().lower()


class VerificationCodeManager:
    """Issues at most one active code per email address.

    Store failures propagate as StoreUnavailable; there is no local fallback.
    """

    def __init__(
        self,
        store: EphemeralStore,
        ttl_seconds: int | None = None,
        generator: Callable[[], str] = generate_code,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds or settings.verification_ttl_seconds
        self.generator = generator

    @staticmethod
    def _key(email: str) -> str:
        return f"{VERIFICATION_CODE_PREFIX}{email}"

    async def get(self, email: str) -> str | None:
        code = await self.store.get(self._key(email))
        return code if isinstance(code, str) and code else None

    async def get_or_create(self, email: str) -> str:
        """Return the active code for email, creating one if none exists.

        An existing code is returned unchanged and its TTL is not extended.
        """
        existing = await self.get(email)
        if existing:
            return existing

        code = self.generator()
        created = await self.store.set(
            self._key(email), code, self.ttl_seconds, only_if_absent=True
        )
        if created:
            logger.debug(f"Issued new verification code for {email}")
            return code

        # Another request created one between our read and write
        existing = await self.get(email)
        if existing:
            return existing

        await self.store.set(self._key(email), code, self.ttl_seconds)
        return code

    async def consume(self, email: str, submitted: str) -> bool:
        """Atomically delete the stored code if it matches submitted."""
        expected = normalize_code(submitted)
        if not expected:
            return False
        return await self.store.compare_and_delete(
            self._key(email),
            lambda stored: isinstance(stored, str) and normalize_code(stored) == expected,
        )

    async def delete(self, email: str) -> None:
        await self.store.delete(self._key(email))

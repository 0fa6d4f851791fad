"""Single-use magic-link tokens kept in the ephemeral store."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from sealedlove.config import settings
from sealedlove.models import VerificationTokenRecord
from sealedlove.services.cache import EphemeralStore
from sealedlove.services.verification import VerificationCodeManager

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "login-token:"


class InvalidOrExpiredToken(Exception):
    """Token missing, bound to another identifier, or past its expiry."""

    pass


class InvalidToken(InvalidOrExpiredToken):
    pass


class TokenExpired(InvalidOrExpiredToken):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenManager:
    """Creates, reads and consumes verification tokens.

    Records are stored with the same fixed TTL as login codes, independent of
    the caller-supplied expiry, so a token and the code it embeds disappear
    together.
    """

    def __init__(
        self,
        store: EphemeralStore,
        codes: VerificationCodeManager,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.codes = codes
        self.ttl_seconds = ttl_seconds or settings.verification_ttl_seconds
        self.clock = clock

    @staticmethod
    def _key(token: str) -> str:
        return f"{TOKEN_PREFIX}{token}"

    async def create_token(
        self, identifier: str, token: str, expires: datetime
    ) -> VerificationTokenRecord:
        verification_code = await self.codes.get_or_create(identifier)
        record = VerificationTokenRecord(
            identifier=identifier,
            token=token,
            expires=expires,
            verification_code=verification_code,
        )
        await self.store.set(self._key(token), record.model_dump(mode="json"), self.ttl_seconds)
        return record

    async def get_token(self, token: str) -> VerificationTokenRecord | None:
        data = await self.store.get(self._key(token))
        if not isinstance(data, dict):
            return None
        try:
            record = VerificationTokenRecord.model_validate(data)
        except ValidationError:
            logger.warning(f"Discarding malformed token record for {token[:8]}...")
            return None
        if record.expires.tzinfo is None:
            record.expires = record.expires.replace(tzinfo=UTC)
        return record

    async def delete_token(self, token: str) -> None:
        await self.store.delete(self._key(token))

    async def use_token(self, identifier: str, token: str) -> VerificationTokenRecord:
        """Consume a token. It can succeed at most once."""
        record = await self.get_token(token)
        if record is None or record.identifier != identifier:
            raise InvalidToken("Invalid or expired verification token")

        if self.clock() > record.expires:
            raise TokenExpired("Verification token expired")

        consumed = await self.store.compare_and_delete(
            self._key(token),
            lambda data: isinstance(data, dict) and data.get("identifier") == identifier,
        )
        if not consumed:
            # Someone else used it between our read and delete
            raise InvalidToken("Invalid or expired verification token")
        return record

    async def ensure_code(self, record: VerificationTokenRecord) -> VerificationTokenRecord:
        """Backfill a record created before a code existed for its identifier."""
        if record.verification_code:
            return record
        return await self.create_token(record.identifier, record.token, record.expires)

"""Credential authenticator tests."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sealedlove.models import User
from sealedlove.services.authenticator import (
    PROFILE_UPDATE_SENTINEL,
    AuthState,
    CredentialAuthenticator,
    InvalidCode,
    UserPersistenceError,
)
from sealedlove.services.cache import EphemeralStore
from sealedlove.services.email import EmailService
from sealedlove.services.verification import VerificationCodeManager
from tests.conftest import RecordingEmailBackend


@pytest.fixture
def codes(store: EphemeralStore) -> VerificationCodeManager:
    return VerificationCodeManager(store, generator=lambda: "482913")


@pytest.fixture
def authenticator(
    codes: VerificationCodeManager, email_service: EmailService
) -> CredentialAuthenticator:
    return CredentialAuthenticator(codes, email_service)


async def count_users(session: AsyncSession, email: str) -> int:
    result = await session.execute(select(User).where(User.email == email))
    return len(result.scalars().all())


class TestAuthenticate:
    async def test_first_sign_in_scenario(
        self,
        session: AsyncSession,
        codes: VerificationCodeManager,
        authenticator: CredentialAuthenticator,
        email_backend: RecordingEmailBackend,
    ):
        """a@example.com gets 482913, signs in once, and cannot reuse it."""
        assert await codes.get_or_create("a@example.com") == "482913"

        result = await authenticator.authenticate(session, "a@example.com", "482913")

        assert result.state == AuthState.USER_CREATED
        assert result.created is True
        assert result.user.email == "a@example.com"
        assert result.user.email_verified is not None
        assert email_backend.subjects_for("a@example.com") == ["Welcome to sealed.love!"]

        with pytest.raises(InvalidCode):
            await authenticator.authenticate(session, "a@example.com", "482913")

    async def test_existing_user_is_resolved(
        self,
        session: AsyncSession,
        user: User,
        codes: VerificationCodeManager,
        authenticator: CredentialAuthenticator,
        email_backend: RecordingEmailBackend,
    ):
        await codes.get_or_create(user.email)

        result = await authenticator.authenticate(session, user.email, "482913")

        assert result.state == AuthState.USER_RESOLVED
        assert result.user.id == user.id
        assert email_backend.sent == []

    async def test_unverified_user_gets_verified(
        self,
        session: AsyncSession,
        codes: VerificationCodeManager,
        authenticator: CredentialAuthenticator,
    ):
        pending = User(email="pending@example.com")
        session.add(pending)
        await session.commit()
        await codes.get_or_create(pending.email)

        result = await authenticator.authenticate(session, pending.email, "482913")

        assert result.state == AuthState.USER_RESOLVED
        assert result.user.email_verified is not None

    async def test_wrong_code(
        self,
        session: AsyncSession,
        codes: VerificationCodeManager,
        authenticator: CredentialAuthenticator,
    ):
        await codes.get_or_create("a@example.com")

        with pytest.raises(InvalidCode):
            await authenticator.authenticate(session, "a@example.com", "000000")

        assert await count_users(session, "a@example.com") == 0
        # The real code survives a wrong guess
        assert await codes.get("a@example.com") == "482913"

    async def test_no_code_issued(self, session: AsyncSession, authenticator: CredentialAuthenticator):
        with pytest.raises(InvalidCode):
            await authenticator.authenticate(session, "a@example.com", "482913")

    @pytest.mark.parametrize("email,code", [("", "482913"), ("a@example.com", "")])
    async def test_missing_credentials(
        self, session: AsyncSession, authenticator: CredentialAuthenticator, email, code
    ):
        with pytest.raises(InvalidCode):
            await authenticator.authenticate(session, email, code)


class TestProfileUpdateSentinel:
    async def test_trusted_caller_existing_user(
        self, session: AsyncSession, user: User, authenticator: CredentialAuthenticator
    ):
        result = await authenticator.authenticate(
            session, user.email, PROFILE_UPDATE_SENTINEL, allow_profile_update=True
        )

        assert result.state == AuthState.USER_RESOLVED
        assert result.user.id == user.id

    async def test_trusted_caller_unknown_user(
        self, session: AsyncSession, authenticator: CredentialAuthenticator
    ):
        with pytest.raises(InvalidCode):
            await authenticator.authenticate(
                session, "ghost@example.com", PROFILE_UPDATE_SENTINEL, allow_profile_update=True
            )

    async def test_untrusted_caller_is_rejected(
        self, session: AsyncSession, user: User, authenticator: CredentialAuthenticator
    ):
        with pytest.raises(InvalidCode):
            await authenticator.authenticate(session, user.email, PROFILE_UPDATE_SENTINEL)

    async def test_reauthenticate(
        self, session: AsyncSession, user: User, authenticator: CredentialAuthenticator
    ):
        result = await authenticator.reauthenticate(session, user.email)
        assert result.user.id == user.id


class TestResolveUser:
    async def test_concurrent_create_uses_existing_row(
        self,
        session: AsyncSession,
        user: User,
        authenticator: CredentialAuthenticator,
        email_backend: RecordingEmailBackend,
    ):
        """The row appears between our lookup and our insert."""
        lookups = []
        real_find = CredentialAuthenticator._find_user

        async def racing_find(session, email):
            lookups.append(email)
            if len(lookups) == 1:
                return None
            return await real_find(session, email)

        with patch.object(CredentialAuthenticator, "_find_user", staticmethod(racing_find)):
            result = await authenticator.resolve_user(session, user.email)

        assert result.state == AuthState.USER_RESOLVED
        assert result.user.id == user.id
        assert await count_users(session, user.email) == 1
        assert email_backend.sent == []

    async def test_row_missing_after_conflict(
        self, session: AsyncSession, user: User, authenticator: CredentialAuthenticator
    ):
        """The insert conflicts but the conflicting row cannot be read back."""
        with patch.object(
            CredentialAuthenticator, "_find_user", staticmethod(AsyncMock(return_value=None))
        ):
            with pytest.raises(UserPersistenceError):
                await authenticator.resolve_user(session, user.email)

    async def test_welcome_failure_does_not_fail_sign_in(
        self,
        session: AsyncSession,
        codes: VerificationCodeManager,
        email_service: EmailService,
    ):
        email_service.send_welcome = AsyncMock(side_effect=RuntimeError("smtp down"))  # type: ignore[method-assign]
        authenticator = CredentialAuthenticator(codes, email_service)

        result = await authenticator.resolve_user(session, "new@example.com")

        assert result.created is True
        email_service.send_welcome.assert_awaited_once()

    async def test_welcome_not_delivered(
        self,
        session: AsyncSession,
        authenticator: CredentialAuthenticator,
        email_backend: RecordingEmailBackend,
    ):
        email_backend.succeed = False

        result = await authenticator.resolve_user(session, "new@example.com")

        assert result.created is True

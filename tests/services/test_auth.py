"""Session token tests."""

import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from sealedlove.config import settings
from sealedlove.models import User
from sealedlove.services.auth import (
    AuthError,
    create_token,
    decode_token,
    is_admin_email,
    refresh_token,
    user_read,
    verify_token,
)


class TestIsAdminEmail:
    def test_case_insensitive(self):
        assert is_admin_email("Admin@Example.com", ["admin@example.com"]) is True
        assert is_admin_email(" admin@example.com ", ["ADMIN@example.com "]) is True

    def test_not_listed(self):
        assert is_admin_email("someone@example.com", ["admin@example.com"]) is False

    def test_empty(self):
        assert is_admin_email(None) is False
        assert is_admin_email("", ["admin@example.com"]) is False

    def test_reads_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "website_admins", "Boss@example.com, ,other@example.com")
        assert is_admin_email("boss@example.com") is True
        assert is_admin_email("admin@example.com") is False


class TestSessionTokens:
    def test_claims(self, admin_user: User):
        payload = decode_token(create_token(admin_user))

        assert payload["sub"] == admin_user.id
        assert payload["id"] == admin_user.id
        assert payload["email"] == "admin@example.com"
        assert payload["name"] == "Admin User"
        assert payload["is_admin"] is True
        assert payload["exp"] - payload["iat"] == settings.session_max_age_seconds

    def test_non_admin_claim(self, user: User):
        assert decode_token(create_token(user))["is_admin"] is False

    def test_bad_signature(self, user: User):
        forged = jwt.encode({"sub": user.id}, "x" * 32, algorithm="HS256")
        with pytest.raises(AuthError):
            decode_token(forged)

    async def test_verify_token(self, session: AsyncSession, user: User):
        assert (await verify_token(session, create_token(user))).id == user.id

    async def test_verify_token_unknown_user(self, session: AsyncSession):
        ghost = User(id="ghost", email="ghost@example.com")
        with pytest.raises(AuthError, match="User not found"):
            await verify_token(session, create_token(ghost))

    def test_user_read_computes_admin(self, admin_user: User, user: User):
        assert user_read(admin_user).is_admin is True
        assert user_read(user).is_admin is False


class TestRefresh:
    async def test_keeps_absolute_expiry(self, session: AsyncSession, user: User):
        original = create_token(user)

        refreshed, _ = await refresh_token(session, original)

        assert decode_token(refreshed)["exp"] == decode_token(original)["exp"]

    async def test_admin_revoked_on_refresh(
        self, session: AsyncSession, admin_user: User, monkeypatch
    ):
        original = create_token(admin_user)
        assert decode_token(original)["is_admin"] is True

        monkeypatch.setattr(settings, "website_admins", "")
        refreshed, refreshed_user = await refresh_token(session, original)

        assert decode_token(refreshed)["is_admin"] is False
        assert user_read(refreshed_user).is_admin is False

    async def test_admin_granted_on_refresh(
        self, session: AsyncSession, user: User, monkeypatch
    ):
        original = create_token(user)

        monkeypatch.setattr(settings, "website_admins", "test@example.com")
        refreshed, _ = await refresh_token(session, original)

        assert decode_token(refreshed)["is_admin"] is True

    async def test_picks_up_new_name(self, session: AsyncSession, user: User):
        original = create_token(user)
        user.name = "Renamed"
        session.add(user)
        await session.commit()

        refreshed, _ = await refresh_token(session, original)

        assert decode_token(refreshed)["name"] == "Renamed"

"""Login code generation and management tests."""

import asyncio
from unittest.mock import MagicMock

from sealedlove.services.cache import EphemeralStore
from sealedlove.services.verification import (
    VERIFICATION_CODE_PREFIX,
    VerificationCodeManager,
    generate_code,
    normalize_code,
)


class TestGenerateCode:
    def test_always_six_digits(self):
        for _ in range(1000):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    def test_codes_vary(self):
        assert len({generate_code() for _ in range(50)}) > 1

    def test_normalize(self):
        assert normalize_code("  48291A ") == "48291a"


class TestVerificationCodeManager:
    async def test_get_or_create_is_idempotent(self, store: EphemeralStore):
        codes = VerificationCodeManager(store)

        first = await codes.get_or_create("a@example.com")
        second = await codes.get_or_create("a@example.com")

        assert first == second
        assert await codes.get("a@example.com") == first

    async def test_reuse_does_not_extend_ttl(self, store: EphemeralStore, redis):
        codes = VerificationCodeManager(store)
        await codes.get_or_create("a@example.com")

        key = f"sealed_love:{VERIFICATION_CODE_PREFIX}a@example.com"
        await redis.expire(key, 100)
        await codes.get_or_create("a@example.com")

        assert await redis.ttl(key) <= 100

    async def test_new_code_after_expiry(self, store: EphemeralStore, redis):
        generator = MagicMock(side_effect=["111111", "222222"])
        codes = VerificationCodeManager(store, generator=generator)

        assert await codes.get_or_create("a@example.com") == "111111"
        # Simulate the TTL elapsing
        await redis.delete(f"sealed_love:{VERIFICATION_CODE_PREFIX}a@example.com")

        assert await codes.get_or_create("a@example.com") == "222222"
        assert generator.call_count == 2

    async def test_codes_are_per_email(self, store: EphemeralStore):
        generator = MagicMock(side_effect=["111111", "222222"])
        codes = VerificationCodeManager(store, generator=generator)

        assert await codes.get_or_create("a@example.com") == "111111"
        assert await codes.get_or_create("b@example.com") == "222222"

    async def test_concurrent_creators_agree(self, store: EphemeralStore):
        codes = VerificationCodeManager(store)

        results = await asyncio.gather(
            *[codes.get_or_create("a@example.com") for _ in range(10)]
        )

        assert len(set(results)) == 1
        assert await codes.get("a@example.com") == results[0]

    async def test_consume_once(self, store: EphemeralStore):
        codes = VerificationCodeManager(store, generator=lambda: "482913")
        await codes.get_or_create("a@example.com")

        assert await codes.consume("a@example.com", "482913") is True
        assert await codes.consume("a@example.com", "482913") is False
        assert await codes.get("a@example.com") is None

    async def test_consume_wrong_code_keeps_code(self, store: EphemeralStore):
        codes = VerificationCodeManager(store, generator=lambda: "482913")
        await codes.get_or_create("a@example.com")

        assert await codes.consume("a@example.com", "000000") is False
        assert await codes.get("a@example.com") == "482913"

    async def test_consume_normalizes_input(self, store: EphemeralStore):
        codes = VerificationCodeManager(store, generator=lambda: "482913")
        await codes.get_or_create("a@example.com")

        assert await codes.consume("a@example.com", " 482913 ") is True

    async def test_consume_blank(self, store: EphemeralStore):
        codes = VerificationCodeManager(store)
        assert await codes.consume("a@example.com", "   ") is False

    async def test_delete(self, store: EphemeralStore):
        codes = VerificationCodeManager(store)
        await codes.get_or_create("a@example.com")
        await codes.delete("a@example.com")
        assert await codes.get("a@example.com") is None

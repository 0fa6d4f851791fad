"""SQLModel database models."""

from sealedlove.models.base import TimestampMixin, generate_nanoid, utcnow
from sealedlove.models.user import User, UserRead
from sealedlove.models.verification_token import VerificationTokenRecord

__all__ = [
    "TimestampMixin",
    "User",
    "UserRead",
    "VerificationTokenRecord",
    "generate_nanoid",
    "utcnow",
]

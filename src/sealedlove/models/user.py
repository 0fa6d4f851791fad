"""User model."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from sealedlove.models.base import TimestampMixin, generate_nanoid


class User(TimestampMixin, SQLModel, table=True):
    """User account model.

    Admin rights are not stored here; they are derived from the configured
    allow-list whenever a session is issued or checked.
    """

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    email_verified: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="When the address was first confirmed by a code or magic link",
    )


class UserRead(SQLModel):
    """Schema for reading a user."""

    id: str
    email: str
    name: str | None
    email_verified: datetime | None
    is_admin: bool = False

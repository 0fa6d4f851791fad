"""Verification token record for magic link auth."""

from datetime import datetime

from sqlmodel import Field, SQLModel


class VerificationTokenRecord(SQLModel):
    """Magic-link token as persisted in the ephemeral store.

    Not a table: records live only as long as the store TTL.
    """

    identifier: str = Field(description="Email address")
    token: str = Field(description="Random verification token")
    expires: datetime = Field(description="Token expiration time")
    verification_code: str | None = Field(
        default=None, description="Login code active when the token was created"
    )

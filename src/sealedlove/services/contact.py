"""Contact form handling."""

import logging

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from sealedlove.services.email import EmailDeliveryError, EmailService

logger = logging.getLogger(__name__)


class ContactForm(BaseModel):
    """A visitor's message to the site owner."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=10, max_length=5000)

    @field_validator("name", "subject")
    @classmethod
    def no_markup(cls, value: str) -> str:
        if "<" in value or ">" in value:
            raise ValueError("contains invalid characters")
        return value

    @field_validator("email")
    @classmethod
    def email_length(cls, value: str) -> str:
        if len(value) > 100:
            raise ValueError("email is too long")
        return value


async def submit_contact_form(form: ContactForm, emails: EmailService) -> None:
    """Forward the form to the configured contact address.

    Raises EmailDeliveryError if the message was not delivered.
    """
    sent = await emails.send_contact_message(
        name=form.name, email=str(form.email), subject=form.subject, message=form.message
    )
    if not sent:
        raise EmailDeliveryError("Failed to send contact message")
    logger.info(f"Contact form message from {form.email} forwarded")

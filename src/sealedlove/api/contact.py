"""Contact form endpoint."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from sealedlove.api.deps import EmailServiceDep, StoreDep, raise_if_limited
from sealedlove.services.contact import ContactForm, submit_contact_form
from sealedlove.services.email import EmailDeliveryError
from sealedlove.services.rate_limit import RateLimitType, check_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def contact(
    form: ContactForm,
    request: Request,
    store: StoreDep,
    emails: EmailServiceDep,
):
    """Send a message to the site owner. Limited per client IP and sender address."""
    raise_if_limited(
        await check_rate_limit(request, RateLimitType.CONTACT, store, scope=str(form.email))
    )

    try:
        await submit_contact_form(form, emails)
    except EmailDeliveryError as e:
        logger.error(f"Contact form submission failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send message",
        ) from e

    return {"message": "Message sent"}

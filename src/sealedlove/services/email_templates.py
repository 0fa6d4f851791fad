"""Transactional email templates."""

from dataclasses import dataclass
from datetime import UTC, datetime
from html import escape

BRAND = "sealed.love"


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


def _layout(body: str, footer_note: str | None = None) -> str:
    year = datetime.now(UTC).year
    note = (
        f'<p style="color: #666; font-size: 13px; margin: 0 0 8px;">{footer_note}</p>'
        if footer_note
        else ""
    )
    return f"""
<div style="max-width: 600px; margin: 0 auto; padding: 0; font-family: 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; color: #333; background-color: #ffffff;">
    <div style="background-color: #4a6cf7; padding: 30px 40px; text-align: center; border-radius: 8px 8px 0 0;">
        <h1 style="color: white; margin: 0; font-weight: 600; font-size: 24px;">{BRAND}</h1>
    </div>
    <div style="padding: 40px; background-color: #ffffff; border-left: 1px solid #eaeaea; border-right: 1px solid #eaeaea;">
        {body}
    </div>
    <div style="padding: 24px 40px; text-align: center; background-color: #f9f9fb; border-radius: 0 0 8px 8px; border: 1px solid #eaeaea; border-top: none;">
        {note}
        <p style="color: #666; font-size: 13px; margin: 0;">&copy; {year} {BRAND}. All rights reserved.</p>
    </div>
</div>
"""


def verification_email(verification_code: str, url: str, ttl_minutes: int = 10) -> RenderedEmail:
    """Sign-in email carrying both the code and the magic link."""
    text = f"""Your verification code is: {verification_code}

Enter this 6-digit code in the verification screen.

Or click this link to sign in: {url}

This code and link will expire in {ttl_minutes} minutes."""

    body = f"""
        <h2 style="color: #333; margin-top: 0; margin-bottom: 24px; font-weight: 600; font-size: 20px;">Verify your email</h2>
        <p style="margin-bottom: 24px; line-height: 1.6; color: #555;">To complete your sign in, please use one of the following methods:</p>
        <div style="background-color: #f9f9fb; border-radius: 12px; padding: 24px; margin-bottom: 32px; border: 1px solid #eaeaea;">
            <p style="font-weight: 600; margin-top: 0; margin-bottom: 16px;">Enter this verification code</p>
            <div style="background-color: white; padding: 16px; font-size: 28px; text-align: center; letter-spacing: 8px; font-weight: 600; border-radius: 8px; border: 1px solid #eaeaea;">
                {escape(verification_code)}
            </div>
        </div>
        <div style="text-align: center; margin-bottom: 32px;">
            <p style="font-weight: 600; margin-bottom: 16px;">Or use this magic link</p>
            <a href="{escape(url, quote=True)}" style="display: inline-block; background-color: #4a6cf7; color: white; text-decoration: none; padding: 14px 32px; border-radius: 8px; font-weight: 500;">
                Sign in to {BRAND}
            </a>
        </div>
        <p style="color: #666; font-size: 14px; line-height: 1.5;">This verification code and link will expire in {ttl_minutes} minutes for security reasons.</p>
"""
    return RenderedEmail(
        subject=f"Your verification code for {BRAND}",
        text=text,
        html=_layout(body, "If you didn't request this email, you can safely ignore it."),
    )


def welcome_email(email: str, name: str | None = None) -> RenderedEmail:
    """Sent once, after a first successful sign-in."""
    greeting = f"Hi {name}" if name else "Hi there"

    text = f"""{greeting},

I'm Alex, and I'm genuinely excited to welcome you to {BRAND}!

Your account ({email}) is now ready for you to create time capsules of emotion - secure vaults that preserve your most precious love stories for generations to come.

We've built this with care and purpose, and we're honored that you've chosen to be part of this journey with us.

Be kind, be honest, be human!

Alex"""

    body = f"""
        <h2 style="color: #333; margin-top: 0; margin-bottom: 24px; font-weight: 600; font-size: 20px;">{escape(greeting)}</h2>
        <p style="margin-bottom: 24px; line-height: 1.6; color: #555;">I'm Alex, and I'm genuinely excited to welcome you to {BRAND}!</p>
        <p style="margin-bottom: 24px; line-height: 1.6; color: #555;">Your account (<strong>{escape(email)}</strong>) is now ready for you to create time capsules of emotion - secure vaults that preserve your most precious love stories for generations to come.</p>
        <p style="color: #555; line-height: 1.6;">We've built this with care and purpose, and we're honored that you've chosen to be part of this journey with us.</p>
        <p style="color: #555; line-height: 1.6; margin-top: 24px; font-style: italic;">Be kind, be honest, be human!</p>
        <p style="color: #555; line-height: 1.6; font-weight: 600;">Alex</p>
"""
    return RenderedEmail(subject=f"Welcome to {BRAND}!", text=text, html=_layout(body))


def contact_form_email(name: str, email: str, subject: str, message: str) -> RenderedEmail:
    """Forward a contact form submission. All user input is HTML-escaped."""
    text = f"""
Contact Form Submission

From: {name} ({email})
Subject: {subject}

Message:
{message}

---
This message was sent from the contact form on {BRAND}
"""

    html_message = escape(message).replace("\n", "<br>")
    html = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta http-equiv="Content-Security-Policy" content="default-src 'self'; img-src 'self' data:; style-src 'unsafe-inline'">
    <title>Contact Form Submission</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; padding: 20px; max-width: 600px; margin: 0 auto; color: #333; line-height: 1.6;">
    <h1 style="color: #2563eb; font-size: 24px;">Contact Form Submission</h1>
    <p><strong>From:</strong> {escape(name)} ({escape(email)})</p>
    <p><strong>Subject:</strong> {escape(subject)}</p>
    <div style="background-color: #fff; padding: 15px; border-radius: 4px; border: 1px solid #e1e1e1;">
        {html_message}
    </div>
    <p style="font-size: 12px; color: #666;">This message was sent from the contact form on {BRAND}</p>
</body>
</html>
"""
    return RenderedEmail(subject=f"[Website Contact] {subject}", text=text, html=html)

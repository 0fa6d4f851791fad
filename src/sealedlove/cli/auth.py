"""Sign-in support CLI commands."""

import asyncio
from datetime import UTC, datetime, timedelta
from secrets import token_hex

import typer
from rich.console import Console

from sealedlove.config import settings
from sealedlove.services.auth import is_admin_email
from sealedlove.services.cache import StoreUnavailable, close_store, get_store
from sealedlove.services.signin import build_magic_link
from sealedlove.services.tokens import TokenManager
from sealedlove.services.verification import VerificationCodeManager

console = Console()
app = typer.Typer(help="Sign-in support commands")


@app.command("issue-code")
def issue_code(email: str = typer.Argument(..., help="User email")):
    """Issue a login code and magic link without sending an email."""

    async def _issue():
        address = email.lower()
        store = get_store()
        try:
            tokens = TokenManager(store, VerificationCodeManager(store))
            token = token_hex(32)
            expires = datetime.now(UTC) + timedelta(seconds=settings.verification_ttl_seconds)
            record = await tokens.create_token(address, token, expires)
        finally:
            await close_store()

        console.print(f"[green]Code:[/green] {record.verification_code}")
        console.print(f"[green]Login URL:[/green] {build_magic_link(address, token)}")
        console.print(f"[dim]Expires: {expires}[/dim]")

    try:
        asyncio.run(_issue())
    except StoreUnavailable as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command("admins")
def admins():
    """List the configured admin addresses."""
    if not settings.admin_emails:
        console.print("[yellow]No admins configured[/yellow] [dim](set WEBSITE_ADMINS)[/dim]")
        return
    for address in settings.admin_emails:
        console.print(address)


@app.command("check-admin")
def check_admin(email: str = typer.Argument(..., help="Email to check")):
    """Exit non-zero unless the address is on the admin allow-list."""
    if is_admin_email(email):
        console.print(f"[green]{email} is an admin[/green]")
        return
    console.print(f"{email} is not an admin")
    raise typer.Exit(1)

"""User management CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from sealedlove.database import get_session_context
from sealedlove.models import User, utcnow
from sealedlove.services.auth import is_admin_email

console = Console()
app = typer.Typer(help="User management commands")


@app.command("list")
def list_users():
    """List all users."""

    async def _list():
        async with get_session_context() as session:
            stmt = select(User).order_by(User.email)
            result = await session.execute(stmt)
            users = result.scalars().all()

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Name")
            table.add_column("Verified", style="dim")
            table.add_column("Admin", style="magenta")

            for user in users:
                admin_str = "[green]Yes[/green]" if is_admin_email(user.email) else "No"
                verified = (
                    user.email_verified.strftime("%Y-%m-%d") if user.email_verified else "-"
                )
                table.add_row(user.id, user.email, user.name or "", verified, admin_str)

            console.print(table)

    asyncio.run(_list())


@app.command("show")
def show_user(email: str = typer.Argument(..., help="User email")):
    """Show a single user."""

    async def _show():
        async with get_session_context() as session:
            stmt = select(User).where(User.email == email.lower())
            result = await session.execute(stmt)
            user = result.scalar_one_or_none()

            if not user:
                console.print(f"[red]Error:[/red] User {email} not found")
                raise typer.Exit(1)

            console.print(f"[bold]{user.email}[/bold] [dim]({user.id})[/dim]")
            console.print(f"  Name: {user.name or '-'}")
            console.print(f"  Verified: {user.email_verified or 'no'}")
            console.print(f"  Admin: {'yes' if is_admin_email(user.email) else 'no'}")
            console.print(f"  Created: {user.created_at}")

    asyncio.run(_show())


@app.command("create")
def create_user(
    email: str = typer.Argument(..., help="User email"),
    name: str | None = typer.Option(None, "--name", "-n", help="Display name"),
    verified: bool = typer.Option(False, "--verified", help="Mark the address as verified"),
):
    """Create a new user."""

    async def _create():
        async with get_session_context() as session:
            address = email.lower()
            stmt = select(User).where(User.email == address)
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                console.print(f"[red]Error:[/red] User {address} already exists")
                raise typer.Exit(1)

            user = User(email=address, name=name, email_verified=utcnow() if verified else None)
            session.add(user)
            await session.commit()
            name_str = f" ({name})" if name else ""
            console.print(f"[green]Created user:[/green] {address}{name_str}")

    asyncio.run(_create())

"""Database management CLI commands."""

import asyncio

import typer
from rich.console import Console

from sealedlove.config import settings
from sealedlove.database import close_db, init_db

console = Console()
app = typer.Typer(help="Database management commands")


@app.command("init")
def init():
    """Create any missing tables."""
    console.print("[dim]Creating tables...[/dim]")

    async def _init():
        try:
            await init_db()
        finally:
            await close_db()

    try:
        asyncio.run(_init())
    except Exception as e:
        console.print(f"[red]Database init failed:[/red] {e}")
        raise typer.Exit(1) from e

    host = settings.database_url.rsplit("@", 1)[-1]
    console.print(f"[green]Database ready![/green] [dim]({host})[/dim]")

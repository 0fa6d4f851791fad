"""CLI commands using Typer."""

import typer

from sealedlove.cli.auth import app as auth_app
from sealedlove.cli.db import app as db_app
from sealedlove.cli.users import app as users_app

app = typer.Typer(name="sealedlove", help="SealedLove CLI")

# Register sub-apps
app.add_typer(db_app, name="db")
app.add_typer(users_app, name="users")
app.add_typer(auth_app, name="auth")


@app.callback()
def main():
    """Configure logging before any command runs."""
    from sealedlove.logging import setup_logging

    setup_logging()


@app.command()
def version():
    """Show version information."""
    from sealedlove import __version__

    typer.echo(f"SealedLove v{__version__}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
):
    """Run the development server."""
    import uvicorn

    from sealedlove.logging import get_uvicorn_log_config

    uvicorn.run(
        "sealedlove.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    app()

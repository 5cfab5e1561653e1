#!/usr/bin/env python3
"""
entraops - Entra ID admin tools

A CLI for bulk Microsoft Entra ID operations: per-user MFA, password
resets and SharePoint site permissions.
"""
import typer
from rich.console import Console

from . import __version__
from .commands import config, mfa, password, sharepoint
from .utils.config import Config
from .utils.logging_config import setup_logging

app = typer.Typer(
    help="Entra ID admin tools - bulk MFA, password and SharePoint permission management through Microsoft Graph.",
    add_completion=True,
    no_args_is_help=True,
)
console = Console()

# Add subcommands
app.add_typer(mfa.app, name="mfa")
app.add_typer(password.app, name="password")
app.add_typer(sharepoint.app, name="sharepoint")
app.add_typer(config.app, name="config")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to the console"),
):
    """Configure logging before any command runs."""
    setup_logging(Config().get_section("logging"), verbose=verbose)


# Add version command
@app.command()
def version():
    """Show the application version and exit."""
    console.print(f"entraops version: {__version__}")
    raise typer.Exit()


if __name__ == "__main__":
    app()

"""Configuration management commands for entraops."""

import json
from typing import Any, Dict, Optional

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from ..utils.config import Config

app = typer.Typer(help="Manage entraops configuration: Graph connection, bulk engine and logging.")
console = Console()


@app.command("show")
def show_config(
    section: Optional[str] = typer.Option(
        None, "--section", "-s", help="Show a single section (bulk, graph, logging)"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, yaml, json"),
) -> None:
    """Show the effective configuration (defaults overlaid with the config file)."""
    config = Config()
    config_data = config.get_all()

    if section:
        if section not in config_data:
            console.print(f"[red]Configuration section '{section}' not found.[/red]")
            console.print(f"Available sections: {', '.join(config_data.keys())}")
            raise typer.Exit(1)
        config_data = {section: config_data[section]}

    if format == "yaml":
        yaml_output = yaml.dump(config_data, default_flow_style=False, indent=2, sort_keys=False)
        console.print(Syntax(yaml_output, "yaml", theme="monokai", line_numbers=True))
    elif format == "json":
        json_output = json.dumps(config_data, indent=2, default=str)
        console.print(Syntax(json_output, "json", theme="monokai", line_numbers=True))
    else:
        _display_config_table(config_data)


@app.command("path")
def show_config_path():
    """Show the path to the configuration file."""
    config_path = Config().config_file

    console.print(f"[green]Configuration file:[/green] {config_path}")
    if config_path.exists():
        console.print("[green]File exists:[/green] Yes")
        console.print(f"[green]File size:[/green] {config_path.stat().st_size} bytes")
    else:
        console.print("[yellow]File exists:[/yellow] No")


@app.command("set")
def set_config(
    key_value: str = typer.Argument(
        ..., help="Configuration key=value pair (e.g., bulk.batch_size=10)"
    ),
) -> None:
    """Set a configuration value using key=value format.

    Examples:
    - entraops config set graph.tenant_id=contoso.onmicrosoft.com
    - entraops config set bulk.concurrency_limit=5
    - entraops config set bulk.start_delay_range=0.2,1.0
    - entraops config set logging.level=DEBUG

    The client secret is never stored; set ENTRAOPS_CLIENT_SECRET instead.
    """
    if "=" not in key_value:
        console.print(
            "[red]Error: Invalid format. Use 'key=value' (e.g., bulk.batch_size=10)[/red]"
        )
        raise typer.Exit(1)

    key, value = key_value.split("=", 1)
    key = key.strip()
    value = value.strip()

    if not key or not value:
        console.print("[red]Error: Both key and value are required[/red]")
        raise typer.Exit(1)

    if key.split(".")[-1] == "client_secret":
        console.print(
            "[red]Error: The client secret is read from ENTRAOPS_CLIENT_SECRET only[/red]"
        )
        raise typer.Exit(1)

    config = Config()
    parsed_value = _parse_config_value(value)
    try:
        config.set(key, parsed_value)
    except OSError as e:
        console.print(f"[red]Error setting configuration: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Configuration '{key}' set to '{parsed_value}'[/green]")


def _display_config_table(config_data: Dict[str, Any]) -> None:
    """Display configuration data in table format."""
    for section_name, section_data in config_data.items():
        console.print(f"\n[bold blue]{section_name.title()} Configuration[/bold blue]")

        table = Table()
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        if isinstance(section_data, dict):
            for key, value in section_data.items():
                table.add_row(key, _format_value(value))
        else:
            table.add_row(section_name, _format_value(section_data))
        console.print(table)


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]not set[/dim]"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _parse_config_value(value: str) -> Any:
    """Parse configuration value string into appropriate Python type."""
    if "," in value:
        return [_parse_config_value(part) for part in value.split(",") if part.strip()]

    value = value.strip()
    lowered = value.lower()

    # Boolean values
    if lowered in ["true", "false", "yes", "no", "on", "off"]:
        return lowered in ["true", "yes", "on"]

    # Integer values
    try:
        return int(value)
    except ValueError:
        pass

    # Float values
    try:
        return float(value)
    except ValueError:
        pass

    return value

"""SharePoint site permission commands for entraops.

Manages application permissions on individual sites (``Sites.Selected``).

Examples:
    $ entraops sharepoint list https://contoso.sharepoint.com/sites/Finance
    $ entraops sharepoint grant https://contoso.sharepoint.com/sites/Finance --app-id 1234... --role read
    $ entraops sharepoint update <site> --permission-id aTowaS50... --role fullcontrol
    $ entraops sharepoint revoke <site> --app-id 1234...
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional

import typer
from rich.table import Table

from ..graph_clients import GraphClientManager, GraphError
from ..operations.sharepoint import (
    SitePermission,
    SitePermissionAction,
    SitePermissionManager,
    parse_roles,
)
from .common import EXIT_FATAL, confirm_or_abort, console, create_graph_client, get_config

app = typer.Typer(help="Manage application permissions on SharePoint sites.")


@contextmanager
def _connected_manager() -> Iterator[SitePermissionManager]:
    graph: GraphClientManager = create_graph_client(get_config())
    try:
        graph.connect()
        yield SitePermissionManager(graph)
    except (GraphError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(EXIT_FATAL)
    finally:
        if graph.is_connected():
            graph.disconnect()


def _display_permissions(permissions: List[SitePermission]) -> None:
    if not permissions:
        console.print("[yellow]No application permissions on this site.[/yellow]")
        return

    table = Table(title="Site Permissions")
    table.add_column("Permission ID", style="cyan")
    table.add_column("Application", style="green")
    table.add_column("App ID", style="dim")
    table.add_column("Roles", style="magenta")
    for permission in permissions:
        table.add_row(
            permission.permission_id,
            permission.app_display_name or "",
            permission.app_id or "",
            ", ".join(permission.roles),
        )
    console.print(table)


@app.command("list")
def list_permissions(
    site: str = typer.Argument(..., help="Site URL or site id"),
):
    """List application permissions on a site."""
    with _connected_manager() as manager:
        permissions = manager.execute(SitePermissionAction.LIST, site)
        _display_permissions(permissions)


@app.command("grant")
def grant_permission(
    site: str = typer.Argument(..., help="Site URL or site id"),
    app_id: str = typer.Option(..., "--app-id", help="Client id of the application"),
    roles: List[str] = typer.Option(
        ["read"], "--role", "-r", help="Role to grant: read, write, manage, fullcontrol"
    ),
    display_name: Optional[str] = typer.Option(
        None, "--display-name", help="Application display name stored on the permission"
    ),
):
    """Grant an application access to a site."""
    try:
        parsed = parse_roles(roles)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(EXIT_FATAL)

    with _connected_manager() as manager:
        permission = manager.execute(
            SitePermissionAction.GRANT,
            site,
            app_id=app_id,
            roles=parsed,
            display_name=display_name,
        )
        console.print(
            f"[green]✓ Granted {', '.join(permission.roles)} to {app_id} "
            f"(permission {permission.permission_id})[/green]"
        )


@app.command("update")
def update_permission(
    site: str = typer.Argument(..., help="Site URL or site id"),
    permission_id: str = typer.Option(..., "--permission-id", help="Permission to update"),
    roles: List[str] = typer.Option(..., "--role", "-r", help="New role(s) of the permission"),
):
    """Change the roles of an existing site permission."""
    try:
        parsed = parse_roles(roles)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(EXIT_FATAL)

    with _connected_manager() as manager:
        permission = manager.execute(
            SitePermissionAction.UPDATE, site, permission_id=permission_id, roles=parsed
        )
        console.print(
            f"[green]✓ Permission {permission.permission_id} now has roles: "
            f"{', '.join(permission.roles)}[/green]"
        )


@app.command("revoke")
def revoke_permission(
    site: str = typer.Argument(..., help="Site URL or site id"),
    permission_id: Optional[str] = typer.Option(None, "--permission-id", help="Permission to delete"),
    app_id: Optional[str] = typer.Option(
        None, "--app-id", help="Delete every permission held by this application"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt"),
):
    """Revoke an application's access to a site."""
    if not permission_id and not app_id:
        console.print("[red]Error: Either --permission-id or --app-id is required.[/red]")
        raise typer.Exit(EXIT_FATAL)

    confirm_or_abort(f"Revoke {permission_id or app_id} on {site}?", force, dry_run=False)

    with _connected_manager() as manager:
        revoked = manager.execute(
            SitePermissionAction.REVOKE, site, permission_id=permission_id, app_id=app_id
        )
        if revoked:
            console.print(f"[green]✓ Revoked {len(revoked)} permission(s)[/green]")
        else:
            console.print("[yellow]No matching permission found.[/yellow]")

"""Per-user MFA commands for entraops.

Commands:
    export: Export per-user MFA state and registered methods
    disable: Disable per-user MFA
    sync-group: Add MFA-capable users to a group

Input is a CSV with an ``ObjectId`` or ``UserPrincipalName`` column, or
``--all-users`` to enumerate the directory.

Examples:
    $ entraops mfa export --all-users
    $ entraops mfa disable users.csv --dry-run
    $ entraops mfa sync-group users.csv --group-id 5f2c... --remove-incapable
"""

from pathlib import Path
from typing import Optional

import typer

from ..operations.mfa import DisableMfaOperation, ExportMfaStateOperation, MfaGroupSyncOperation
from .common import (
    BulkRunOptions,
    all_users_option,
    batch_delay_option,
    batch_size_option,
    concurrency_option,
    confirm_or_abort,
    create_graph_client,
    dry_run_option,
    force_option,
    get_config,
    max_retries_option,
    output_dir_option,
    resume_option,
    run_bulk_operation,
)

app = typer.Typer(
    help="""Manage per-user MFA in bulk.

Input CSV files need an ObjectId (or Id, UserId) or UserPrincipalName
(or UPN, Mail) column. Use --all-users to process the whole directory.
"""
)


@app.command("export")
def export_mfa(
    input_file: Optional[Path] = typer.Argument(None, help="CSV file with users"),
    all_users: bool = all_users_option(),
    include_methods: bool = typer.Option(
        True, "--methods/--no-methods", help="Also export registered authentication methods"
    ),
    batch_size: Optional[int] = batch_size_option(),
    concurrency: Optional[int] = concurrency_option(),
    max_retries: Optional[int] = max_retries_option(),
    batch_delay: Optional[float] = batch_delay_option(),
    dry_run: bool = dry_run_option(),
    output_dir: Optional[Path] = output_dir_option(),
    resume: Optional[Path] = resume_option(),
):
    """Export per-user MFA state and registered methods to the report file."""
    config = get_config()
    graph = create_graph_client(config)
    operation = ExportMfaStateOperation(graph, include_methods=include_methods)
    options = BulkRunOptions(
        batch_size=batch_size,
        concurrency=concurrency,
        max_retries=max_retries,
        batch_delay=batch_delay,
        dry_run=dry_run,
        output_dir=output_dir,
        resume=resume,
    )
    raise typer.Exit(
        run_bulk_operation(operation, graph, input_file, options, all_users=all_users, config=config)
    )


@app.command("disable")
def disable_mfa(
    input_file: Optional[Path] = typer.Argument(None, help="CSV file with users"),
    all_users: bool = all_users_option(),
    batch_size: Optional[int] = batch_size_option(),
    concurrency: Optional[int] = concurrency_option(),
    max_retries: Optional[int] = max_retries_option(),
    batch_delay: Optional[float] = batch_delay_option(),
    dry_run: bool = dry_run_option(),
    output_dir: Optional[Path] = output_dir_option(),
    resume: Optional[Path] = resume_option(),
    force: bool = force_option(),
):
    """Disable per-user MFA. Users already disabled are reported as skipped."""
    target = "every user in the directory" if all_users else f"users in {input_file}"
    confirm_or_abort(f"Disable per-user MFA for {target}?", force, dry_run)

    config = get_config()
    graph = create_graph_client(config)
    options = BulkRunOptions(
        batch_size=batch_size,
        concurrency=concurrency,
        max_retries=max_retries,
        batch_delay=batch_delay,
        dry_run=dry_run,
        output_dir=output_dir,
        resume=resume,
    )
    raise typer.Exit(
        run_bulk_operation(
            DisableMfaOperation(graph), graph, input_file, options, all_users=all_users, config=config
        )
    )


@app.command("sync-group")
def sync_group(
    input_file: Optional[Path] = typer.Argument(None, help="CSV file with users"),
    group_id: str = typer.Option(..., "--group-id", "-g", help="Object id of the target group"),
    remove_incapable: bool = typer.Option(
        False, "--remove-incapable", help="Remove members without a strong authentication method"
    ),
    all_users: bool = all_users_option(),
    batch_size: Optional[int] = batch_size_option(),
    concurrency: Optional[int] = concurrency_option(),
    max_retries: Optional[int] = max_retries_option(),
    batch_delay: Optional[float] = batch_delay_option(),
    dry_run: bool = dry_run_option(),
    output_dir: Optional[Path] = output_dir_option(),
    resume: Optional[Path] = resume_option(),
    force: bool = force_option(),
):
    """Add users with a strong authentication method to a group."""
    if remove_incapable:
        confirm_or_abort(
            f"Members of group {group_id} without a strong method will be removed. Continue?",
            force,
            dry_run,
        )

    config = get_config()
    graph = create_graph_client(config)
    operation = MfaGroupSyncOperation(graph, group_id, remove_incapable=remove_incapable)
    options = BulkRunOptions(
        batch_size=batch_size,
        concurrency=concurrency,
        max_retries=max_retries,
        batch_delay=batch_delay,
        dry_run=dry_run,
        output_dir=output_dir,
        resume=resume,
    )
    raise typer.Exit(
        run_bulk_operation(operation, graph, input_file, options, all_users=all_users, config=config)
    )

"""Password reset commands for entraops."""

from pathlib import Path
from typing import Optional

import typer

from ..operations.password import MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH, PasswordResetOperation
from .common import (
    BulkRunOptions,
    all_users_option,
    batch_delay_option,
    batch_size_option,
    concurrency_option,
    confirm_or_abort,
    console,
    create_graph_client,
    dry_run_option,
    force_option,
    get_config,
    max_retries_option,
    output_dir_option,
    resume_option,
    run_bulk_operation,
)

app = typer.Typer(help="Reset user passwords in bulk.")


@app.command("reset")
def reset_passwords(
    input_file: Optional[Path] = typer.Argument(
        None, help="CSV file with users and an optional Password column"
    ),
    all_users: bool = all_users_option(),
    force_change: bool = typer.Option(
        True,
        "--force-change/--no-force-change",
        help="Require a password change at next sign-in",
    ),
    length: int = typer.Option(
        16,
        "--length",
        min=MIN_PASSWORD_LENGTH,
        max=MAX_PASSWORD_LENGTH,
        help="Length of generated passwords",
    ),
    no_password_in_report: bool = typer.Option(
        False, "--no-password-in-report", help="Do not write generated passwords to the report"
    ),
    batch_size: Optional[int] = batch_size_option(),
    concurrency: Optional[int] = concurrency_option(),
    max_retries: Optional[int] = max_retries_option(),
    batch_delay: Optional[float] = batch_delay_option(),
    dry_run: bool = dry_run_option(),
    output_dir: Optional[Path] = output_dir_option(),
    resume: Optional[Path] = resume_option(),
    force: bool = force_option(),
):
    """Reset passwords.

    Rows with a Password (or NewPassword) value get that password; all other
    users get a generated one.

    EXAMPLES:

      $ entraops password reset users.csv

      $ entraops password reset users.csv --no-force-change --length 20

      $ entraops password reset users.csv --no-password-in-report --force
    """
    target = "every user in the directory" if all_users else f"users in {input_file}"
    confirm_or_abort(f"Reset passwords for {target}?", force, dry_run)

    config = get_config()
    graph = create_graph_client(config)
    operation = PasswordResetOperation(
        graph,
        force_change=force_change,
        password_length=length,
        include_password_in_report=not no_password_in_report,
    )
    options = BulkRunOptions(
        batch_size=batch_size,
        concurrency=concurrency,
        max_retries=max_retries,
        batch_delay=batch_delay,
        dry_run=dry_run,
        output_dir=output_dir,
        resume=resume,
    )
    exit_code = run_bulk_operation(
        operation, graph, input_file, options, all_users=all_users, config=config
    )
    if not no_password_in_report and not dry_run:
        console.print("[yellow]The report contains generated passwords. Store it securely.[/yellow]")
    raise typer.Exit(exit_code)

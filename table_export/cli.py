"""Command Line Interface for Table-Export.

This module provides a CLI using Typer for running one table export with the
configured remote table store.

Security Impact:
    - Inputs are validated before any remote call is made
    - The auth token is masked in all output
    - Health codes are not echoed back
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from table_export import __version__
from table_export.adapters.filesystem import LocalFileSystem
from table_export.domain.models import DownloadFromTableParameters, UploadSchema
from table_export.domain.ports import ExportError
from table_export.infrastructure.logging_config import setup_logging
from table_export.infrastructure.settings import settings
from table_export.main import create_remote_client, process_export

# Initialize Typer app and Rich console
app = typer.Typer(
    name="table-export",
    help="Table-Export: export a subject's health data table rows and attachments",
    add_completion=False
)
console = Console()


def load_schema(schema_file: Path) -> UploadSchema:
    """Load an upload schema from a JSON file.

    Expected format:
        {
            "key": {"studyId": "study", "schemaId": "survey", "revision": 2},
            "fieldTypeMap": {"photo": "attachment_blob", "answer": "string"},
            "attachmentTypes": ["attachment_blob"]   # optional
        }
    """
    with open(schema_file, "r", encoding="utf-8") as f:
        return UploadSchema.model_validate(json.load(f))


def remove_temp_dir(file_system: LocalFileSystem, path: Path) -> None:
    """Remove a temp dir the command created, warning if it is not empty."""
    try:
        file_system.delete_dir(path)
    except OSError as e:
        console.print(f"[yellow]⚠[/yellow] Could not remove temp directory {path}: {str(e)}")


@app.command()
def export(
    table_id: str = typer.Argument(..., help="Remote table ID (e.g. syn12345)"),
    health_code: str = typer.Argument(..., help="Health code of the subject to export"),
    start_date: datetime = typer.Argument(..., formats=["%Y-%m-%d"], help="First upload date (inclusive)"),
    end_date: datetime = typer.Argument(..., formats=["%Y-%m-%d"], help="Last upload date (inclusive)"),
    schema_file: Path = typer.Option(..., "--schema", "-s", help="Upload schema JSON file", exists=True, dir_okay=False),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for exported files (default: new temp dir)", file_okay=False),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Export one subject's rows from a table, with their attachments.

    Produces <schemaKey>.csv (health codes cleared, attachments replaced by zip
    entry names) and, if any attachments are referenced, <schemaKey>.zip.

    Examples:
        table-export export syn12345 <health-code> 2024-01-01 2024-01-31 --schema schema.json
        table-export export syn12345 <health-code> 2024-01-01 2024-01-31 -s schema.json -o out/ -v
    """
    setup_logging(use_json=settings.log_json, log_level="DEBUG" if verbose else settings.log_level)

    try:
        schema = load_schema(schema_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]✗[/red] Invalid schema file {schema_file}: {str(e)}")
        raise typer.Exit(code=1)

    file_system = LocalFileSystem(temp_root=settings.temp_dir)
    created_temp_dir = output_dir is None
    if output_dir is None:
        output_dir = file_system.create_temp_dir()
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    try:
        params = DownloadFromTableParameters(
            synapse_table_id=table_id,
            health_code=health_code,
            start_date=start_date.date(),
            end_date=end_date.date(),
            upload_schema=schema,
            temp_dir=output_dir,
        )
    except PydanticValidationError as e:
        console.print(f"[red]✗[/red] Invalid export parameters: {str(e)}")
        if created_temp_dir:
            remove_temp_dir(file_system, output_dir)
        raise typer.Exit(code=1)

    console.print(f"\n[bold blue]Table-Export[/bold blue]")
    console.print(f"[dim]Table:[/dim] {table_id}")
    console.print(f"[dim]Schema:[/dim] {schema.key}")
    console.print(f"[dim]Date range:[/dim] {params.start_date} to {params.end_date}")
    console.print(f"[dim]Output directory:[/dim] {output_dir}")
    console.print()

    try:
        remote = create_remote_client(file_system)
        with console.status("[bold green]Exporting table..."):
            result = process_export(params, file_system=file_system, remote=remote)
    except (ExportError, PydanticValidationError) as e:
        console.print(f"\n[red]✗[/red] Export failed: {str(e)}")
        if verbose:
            console.print_exception()
        if created_temp_dir:
            remove_temp_dir(file_system, output_dir)
        raise typer.Exit(code=1)

    if result.is_empty:
        if created_temp_dir:
            remove_temp_dir(file_system, output_dir)
        console.print("[yellow]⚠[/yellow] No data found for this subject and date range")
        return

    files_table = Table(show_header=True, header_style="bold")
    files_table.add_column("File", style="cyan")
    files_table.add_column("Size (bytes)", justify="right")
    for path in result.files:
        files_table.add_row(str(path), f"{path.stat().st_size:,}")
    console.print(files_table)

    if result.bulk_download_file is None:
        console.print("[dim]No attachments referenced; no zip produced.[/dim]")
    console.print(f"\n[green]✓[/green] Export completed successfully")


@app.command()
def info() -> None:
    """Display application settings and remote configuration."""
    console.print("[bold blue]System Information[/bold blue]\n")

    remote_config = settings.remote_config

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Worker Pool Size:", str(settings.worker_pool_size))
    info_table.add_row("Temp Directory:", str(settings.temp_dir or "(system default)"))
    info_table.add_row("Remote Endpoint:", remote_config.endpoint)
    info_table.add_row("Auth Token:", "********" if remote_config.auth_token else "(not set)")
    info_table.add_row("Poll Interval:", f"{remote_config.poll_interval_seconds:g} s")
    info_table.add_row("Max Job Wait:", f"{remote_config.max_wait_seconds:.0f} s")
    info_table.add_row("Max Retries:", str(remote_config.max_retries))

    console.print(info_table)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version information")
) -> None:
    """Table-Export: export a subject's health data table rows and attachments."""
    if version:
        console.print(f"Table-Export v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()

"""Will registry CLI: bulk will uploads from the command line.

Unified entry point for CSV validation, bulk import and job control.

Usage:
    willregistry template -o wills.csv     Write the upload template
    willregistry validate wills.csv        Check a file without importing
    willregistry import wills.csv ...      Validate, fix and import a file
    willregistry job list                  List upload jobs
    willregistry serve                     Run the jobs API
"""

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError as ConfigValidationError
from rich.console import Console
from rich.markup import escape

from willregistry.cli.config import WillRegistryConfig, configure_logging, resolve_config
from willregistry.cli.output import (
    RECOMMENDATIONS,
    format_fix_preview,
    format_issue_table,
    format_job_detail,
    format_job_errors,
    format_job_table,
    format_validation_stats,
)
from willregistry.db.connection import configure, get_database_url, get_db_context, init_db
from willregistry.db.models import JobStatus, UploadJob
from willregistry.errors import DomainError, MappingIncompleteError, get_error
from willregistry.models.validation import RowStatus
from willregistry.services.bulk_fix import FixType
from willregistry.services.exports import (
    job_failed_records_csv,
    normalized_rows_csv,
    template_csv,
    write_export,
)
from willregistry.services.job_runner import JobRunner
from willregistry.services.job_service import JOB_VIEWS, JobService
from willregistry.services.record_store import WillRecordStore
from willregistry.services.upload_session import UploadSession

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="willregistry",
    help="Bulk will registration: validate, fix and import CSV files",
    no_args_is_help=True,
)
job_app = typer.Typer(help="Manage upload jobs")
config_app = typer.Typer(help="Configuration management")

app.add_typer(job_app, name="job")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to willregistry.yaml config file"
    ),
):
    """Will registry CLI: bulk will uploads."""
    global _config_path
    _config_path = config


def _load_settings() -> WillRegistryConfig:
    """Resolve config and configure logging, exiting cleanly on bad config."""
    try:
        cfg = resolve_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except ConfigValidationError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(cfg.logging)
    return cfg


def _open_database(cfg: WillRegistryConfig) -> None:
    configure(cfg.database.url)
    init_db()


@contextmanager
def _domain_errors() -> Iterator[None]:
    """Print domain errors and exit 1 instead of showing a traceback."""
    try:
        yield
    except DomainError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _parse_pairs(values: list[str] | None, option: str) -> list[tuple[str, str]]:
    pairs = []
    for value in values or []:
        key, sep, rest = value.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Invalid {option} value '{value}'; expected FIELD=VALUE[/red]")
            raise typer.Exit(1)
        pairs.append((key.strip(), rest))
    return pairs


def _prepare_session(
    file: Path,
    mappings: list[str] | None,
    fixed: list[str] | None,
) -> UploadSession:
    """Load a file and apply --map / --fixed overrides."""
    session = UploadSession()
    try:
        session.load_file(file)
    except FileNotFoundError:
        console.print(f"[red]File not found: {file}[/red]")
        raise typer.Exit(1)

    for field_name, columns in _parse_pairs(mappings, "--map"):
        parts = [c.strip() for c in columns.split("+") if c.strip()]
        source: Any = parts if len(parts) > 1 else (parts[0] if parts else None)
        session.update_mapping(field_name, csv_column=source, fixed_value=None)
    for field_name, value in _parse_pairs(fixed, "--fixed"):
        session.update_mapping(field_name, fixed_value=value)
    return session


def _validate_session(session: UploadSession) -> None:
    try:
        session.validate()
    except MappingIncompleteError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        console.print("Detected columns: " + ", ".join(session.parsed.column_names))
        console.print("Map them with --map FIELD=COLUMN or set --fixed FIELD=VALUE.")
        raise typer.Exit(1)


def _run_job(job_service: JobService, store: WillRecordStore, job: UploadJob, delay: float) -> UploadJob:
    """Run a queued job to completion, printing batch progress."""
    runner = JobRunner(job_service, store, batch_delay=delay)
    total = job.total_records

    async def _progress(**progress: Any) -> None:
        console.print(
            f"  Batch {progress['batch']}/{progress['total_batches']} "
            f"({progress['processed']}/{total})"
        )

    job_id = job.id
    try:
        asyncio.run(runner.run(job_id, on_progress=_progress))
    except KeyboardInterrupt:
        current = job_service.require_job(job_id)
        if current.can_cancel:
            job_service.cancel_job(job_id)
        console.print(f"[yellow]Job {job_id} cancelled.[/yellow]")
    return job_service.require_job(job_id)


def _emit(output: str, as_json: bool) -> None:
    """Print formatter output; JSON goes out unwrapped and without markup."""
    if as_json:
        typer.echo(output)
    else:
        console.print(output)


def _print_job_outcome(job: UploadJob) -> None:
    if job.status == JobStatus.complete.value:
        console.print(
            f"[green]Job {job.id} complete:[/green] {job.successful_records} successful, "
            f"{job.failed_records} failed ({job.duration})"
        )
        if job.failed_records:
            console.print(f"  Export failures with: willregistry job errors {job.id} -o failed.csv")
    elif job.status == JobStatus.failed.value:
        failure = get_error("E-4001")
        console.print(f"[red]Job {job.id} failed.[/red] {failure.remediation}")
        console.print(f"  Retry with: willregistry job retry {job.id}")
    else:
        console.print(f"Job {job.id}: {job.status}")


# --- Template / validate / import ---


@app.command()
def template(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write template to this file"),
):
    """Print or write the CSV upload template."""
    content = template_csv()
    if output is None:
        typer.echo(content, nl=False)
        return
    write_export(output, content)
    console.print(f"[green]Template written to {output}[/green]")


@app.command()
def validate(
    file: Path = typer.Argument(help="CSV file to validate"),
    mappings: Optional[list[str]] = typer.Option(
        None, "--map", help="Map FIELD=COLUMN (join columns with '+')"
    ),
    fixed: Optional[list[str]] = typer.Option(None, "--fixed", help="Fixed FIELD=VALUE for every row"),
    normalize_dates: Optional[Path] = typer.Option(
        None, "--normalize-dates", help="Write mapped rows with ISO (YYYY-MM-DD) dates to this file"
    ),
):
    """Validate a CSV file without importing it."""
    _load_settings()
    with _domain_errors():
        session = _prepare_session(file, mappings, fixed)
        _validate_session(session)

    console.print(format_validation_stats(session.stats))
    console.print(format_issue_table(session.rows))

    if normalize_dates is not None:
        write_export(normalize_dates, normalized_rows_csv(session.rows))
        console.print(f"[green]Normalized rows written to {normalize_dates}[/green]")

    if session.stats.errors:
        raise typer.Exit(1)


def _offer_fix(session: UploadSession, fix_type: FixType, assume_yes: bool) -> None:
    preview = session.preview_fix(fix_type)
    console.print(format_fix_preview(preview))
    if not preview.entries:
        return
    if not assume_yes and not typer.confirm(f"Apply {fix_type.value} fix to {len(preview)} row(s)?"):
        console.print(f"[yellow]{fix_type.value.title()} fix skipped.[/yellow]")
        return
    stats = session.apply_fix(preview, confirmed=True)
    console.print(f"[green]{fix_type.value.title()} fix applied.[/green] {stats.errors} error row(s) remain.")


@app.command("import")
def import_file(
    file: Path = typer.Argument(help="CSV file of wills to register"),
    firm_id: str = typer.Option(..., "--firm-id", help="Firm the wills are registered against"),
    firm_name: str = typer.Option(..., "--firm-name", help="Firm display name"),
    user_id: str = typer.Option(..., "--user-id", help="Uploading user id (email)"),
    user_name: str = typer.Option(..., "--user-name", help="Uploading user display name"),
    mappings: Optional[list[str]] = typer.Option(
        None, "--map", help="Map FIELD=COLUMN (join columns with '+')"
    ),
    fixed: Optional[list[str]] = typer.Option(None, "--fixed", help="Fixed FIELD=VALUE for every row"),
    fix_postcodes: bool = typer.Option(False, "--fix-postcodes", help="Standardize problem postcodes"),
    fix_dates: bool = typer.Option(False, "--fix-dates", help="Swap MM/DD/YYYY dates to DD/MM/YYYY"),
    skip_errors: Optional[Path] = typer.Option(
        None, "--skip-errors", help="Export error rows to this file and import the rest"
    ),
    admin: bool = typer.Option(False, "--admin", help="Register as an admin upload on behalf of the firm"),
    context: Optional[str] = typer.Option(None, "--context", help="Admin upload context"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Admin upload notes"),
    reject_duplicates: bool = typer.Option(
        False, "--reject-duplicates", help="Fail records whose name and DOB are already registered"
    ),
    queue_only: bool = typer.Option(False, "--queue-only", help="Create the job without running it"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Validate, fix and import a CSV file as a background upload job."""
    cfg = _load_settings()
    with _domain_errors():
        session = _prepare_session(file, mappings, fixed)
        _validate_session(session)
        console.print(format_validation_stats(session.stats))

        if fix_postcodes:
            _offer_fix(session, FixType.postcode, yes)
        if fix_dates:
            _offer_fix(session, FixType.date, yes)

        if session.stats.errors:
            if skip_errors is None:
                console.print(format_issue_table(session.rows_with_status(RowStatus.error)))
                recommendation = session.recommendation
                if recommendation:
                    console.print(f"[bold]Recommendation:[/bold] {RECOMMENDATIONS[recommendation]}")
                console.print(f"[red]{session.stats.errors} row(s) have errors; nothing imported.[/red]")
                raise typer.Exit(1)
            skipped = session.stats.errors
            write_export(skip_errors, session.skip_errors())
            console.print(f"[yellow]Skipped {skipped} error row(s); exported to {skip_errors}[/yellow]")

        stats = session.continue_to_review()
        console.print(
            f"Ready to import [bold]{stats.importable}[/bold] will(s) "
            f"({stats.valid} valid, {stats.warnings} with warnings) for {firm_name}."
        )
        if not yes and not typer.confirm("Start import?"):
            console.print("[yellow]Import aborted.[/yellow]")
            raise typer.Exit(0)

        _open_database(cfg)
        with get_db_context() as db:
            job_service = JobService(db)
            job = session.confirm_import(
                job_service,
                firm_id=firm_id,
                firm_name=firm_name,
                user_id=user_id,
                user_name=user_name,
                admin_upload=admin,
                upload_context=context,
                upload_notes=notes,
            )
            console.print(f"[green]Job created:[/green] {job.id} ({job.total_records} records)")
            if queue_only:
                console.print(f"  Run it with: willregistry job run {job.id}")
                return
            store = WillRecordStore(db, reject_duplicates=reject_duplicates)
            job = _run_job(job_service, store, job, cfg.jobs.batch_delay_seconds)
            _print_job_outcome(job)


# --- Job commands ---


@job_app.command("list")
def job_list(
    view: str = typer.Option("all", "--view", "-v", help=f"One of: {', '.join(JOB_VIEWS)}"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List upload jobs, newest first."""
    cfg = _load_settings()
    _open_database(cfg)
    with _domain_errors(), get_db_context() as db:
        jobs = JobService(db).filter_jobs(view)
        output = format_job_table(jobs, as_json=json_output)
    _emit(output, json_output)


@job_app.command("inspect")
def job_inspect(
    job_id: str = typer.Argument(help="Job ID to inspect"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show detailed information about a specific job."""
    cfg = _load_settings()
    _open_database(cfg)
    with _domain_errors(), get_db_context() as db:
        job = JobService(db).require_job(job_id)
        output = format_job_detail(job, as_json=json_output)
    _emit(output, json_output)


@job_app.command("cancel")
def job_cancel(
    job_id: str = typer.Argument(help="Job ID to cancel"),
):
    """Cancel a queued or processing job."""
    cfg = _load_settings()
    _open_database(cfg)
    with _domain_errors(), get_db_context() as db:
        JobService(db).cancel_job(job_id)
        console.print(f"[yellow]Job {job_id} cancelled.[/yellow]")


@job_app.command("errors")
def job_errors(
    job_id: str = typer.Argument(help="Job ID"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write failed records CSV here"),
):
    """Show or export a job's failed records."""
    cfg = _load_settings()
    _open_database(cfg)
    with _domain_errors(), get_db_context() as db:
        job = JobService(db).require_job(job_id)
        if output is None:
            console.print(format_job_errors(job))
            return
        write_export(output, job_failed_records_csv(job))
        console.print(f"[green]Wrote {len(job.errors)} failed record(s) to {output}[/green]")


@job_app.command("run")
def job_run(
    job_id: str = typer.Argument(help="Queued job ID to run"),
    reject_duplicates: bool = typer.Option(
        False, "--reject-duplicates", help="Fail records whose name and DOB are already registered"
    ),
):
    """Run a queued job in the foreground."""
    cfg = _load_settings()
    _open_database(cfg)
    with _domain_errors(), get_db_context() as db:
        job_service = JobService(db)
        job = job_service.require_job(job_id)
        store = WillRecordStore(db, reject_duplicates=reject_duplicates)
        _print_job_outcome(_run_job(job_service, store, job, cfg.jobs.batch_delay_seconds))


@job_app.command("retry")
def job_retry(
    job_id: str = typer.Argument(help="Failed job ID to retry"),
    queue_only: bool = typer.Option(False, "--queue-only", help="Create the job without running it"),
):
    """Re-run a failed job's records as a new job."""
    cfg = _load_settings()
    _open_database(cfg)
    with _domain_errors(), get_db_context() as db:
        job_service = JobService(db)
        new_job = job_service.retry_job(job_id)
        console.print(f"[green]Job {job_id} retried as {new_job.id}[/green]")
        if queue_only:
            return
        _print_job_outcome(
            _run_job(job_service, WillRecordStore(db), new_job, cfg.jobs.batch_delay_seconds)
        )


@job_app.command("cleanup")
def job_cleanup(
    days: Optional[int] = typer.Option(None, "--days", help="Retention window (default from config)"),
):
    """Delete finished jobs older than the retention window."""
    cfg = _load_settings()
    _open_database(cfg)
    retention = days if days is not None else cfg.jobs.retention_days
    with get_db_context() as db:
        deleted = JobService(db).cleanup_old_jobs(retention_days=retention)
    console.print(f"Deleted {deleted} job(s) older than {retention} day(s).")


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration."""
    cfg = _load_settings()
    console.print("[bold]Database:[/bold]")
    console.print(f"  configured url: {cfg.database.url or '-'}")
    console.print(f"  resolved url: {get_database_url(cfg.database.url)}")
    console.print("\n[bold]Jobs:[/bold]")
    console.print(f"  batch_delay_seconds: {cfg.jobs.batch_delay_seconds}")
    console.print(f"  retention_days: {cfg.jobs.retention_days}")
    console.print("\n[bold]Logging:[/bold]")
    console.print(f"  level: {cfg.logging.level}")
    console.print(f"  format: {cfg.logging.format}")


# --- API server ---


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
):
    """Run the jobs API with uvicorn."""
    import uvicorn

    cfg = _load_settings()
    _open_database(cfg)
    console.print(f"[bold]Serving jobs API on {host}:{port}[/bold]")
    uvicorn.run("willregistry.api.main:app", host=host, port=port, log_level=cfg.logging.level)


if __name__ == "__main__":
    app()

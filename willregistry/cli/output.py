"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from willregistry.db.models import UploadJob
from willregistry.models.validation import RowStatus, ValidatedRow
from willregistry.services.bulk_fix import FixPreview
from willregistry.services.row_validator import ValidationStats

console = Console()

# Status color map (matches web UI domain colors)
STATUS_COLORS = {
    "queued": "yellow",
    "processing": "blue",
    "complete": "green",
    "failed": "red",
    "cancelled": "dim",
}

ROW_STATUS_COLORS = {
    RowStatus.valid.value: "green",
    RowStatus.warning.value: "yellow",
    RowStatus.error.value: "red",
}

RECOMMENDATIONS = {
    "inline": "Fix the few errors inline (edit the rows or pass --fixed / --map).",
    "bulk": "Use the bulk fixes: --fix-postcodes and/or --fix-dates.",
    "export": "Too many errors to fix here. Export them with --skip-errors and fix the source file.",
}


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def job_to_dict(job: UploadJob) -> dict[str, Any]:
    """Plain-data view of a job, without its record payload."""
    return {
        "id": job.id,
        "type": job.type,
        "file_name": job.file_name,
        "firm_id": job.firm_id,
        "firm_name": job.firm_name,
        "user_id": job.user_id,
        "user_name": job.user_name,
        "status": job.status,
        "total_records": job.total_records,
        "processed_records": job.processed_records,
        "successful_records": job.successful_records,
        "failed_records": job.failed_records,
        "current_batch": job.current_batch,
        "total_batches": job.total_batches,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "duration": job.duration,
        "can_cancel": job.can_cancel,
        "can_retry": job.can_retry,
        "errors": job.errors,
        "activity_log": [{"timestamp": a.timestamp, "message": a.message} for a in job.activity_log],
    }


def format_progress(job: UploadJob) -> str:
    """Percent of records processed, e.g. '40%'."""
    if not job.total_records:
        return "0%"
    return f"{job.processed_records * 100 // job.total_records}%"


def format_job_table(jobs: list[UploadJob], as_json: bool = False) -> str:
    """Format a list of jobs as a Rich table or JSON.

    Args:
        jobs: Jobs to display.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(
            [{k: v for k, v in job_to_dict(j).items() if k not in ("errors", "activity_log")} for j in jobs],
            indent=2,
        )

    if not jobs:
        return "No jobs found."

    table = Table(title="Upload Jobs", show_lines=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("File", style="white")
    table.add_column("Firm")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("OK", justify="right", style="green")
    table.add_column("Fail", justify="right", style="red")
    table.add_column("Started")

    for job in jobs:
        status_color = STATUS_COLORS.get(job.status, "white")
        table.add_row(
            job.id,
            job.file_name,
            job.firm_name,
            f"[{status_color}]{job.status}[/{status_color}]",
            f"{job.processed_records}/{job.total_records} ({format_progress(job)})",
            str(job.successful_records),
            str(job.failed_records),
            job.started_at[:19],
        )

    return _render(table)


def format_job_detail(job: UploadJob, as_json: bool = False) -> str:
    """Format a single job's full detail as a Rich panel or JSON."""
    if as_json:
        return json.dumps(job_to_dict(job), indent=2)

    status_color = STATUS_COLORS.get(job.status, "white")

    lines = [
        f"[bold]Job ID:[/bold]    {job.id}",
        f"[bold]File:[/bold]      {job.file_name}",
        f"[bold]Firm:[/bold]      {job.firm_name} ({job.firm_id})",
        f"[bold]User:[/bold]      {job.user_name} ({job.user_id})",
        f"[bold]Status:[/bold]    [{status_color}]{job.status}[/{status_color}]",
        "",
        f"[bold]Records:[/bold]   {job.processed_records}/{job.total_records} processed ({format_progress(job)})",
        f"[bold]Batches:[/bold]   {job.current_batch}/{job.total_batches}",
        f"[bold]Success:[/bold]   [green]{job.successful_records}[/green]",
        f"[bold]Failed:[/bold]    [red]{job.failed_records}[/red]",
        "",
        f"[bold]Started:[/bold]   {job.started_at[:19]}",
        f"[bold]Completed:[/bold] {job.completed_at[:19] if job.completed_at else '-'}",
        f"[bold]Duration:[/bold]  {job.duration or '-'}",
    ]

    actions = [name for name, allowed in (("cancel", job.can_cancel), ("retry", job.can_retry)) if allowed]
    if actions:
        lines.append(f"[bold]Actions:[/bold]   {', '.join(actions)}")

    if job.activity_log:
        lines.append("")
        lines.append("[bold]Activity:[/bold]")
        for entry in job.activity_log:
            lines.append(f"  {entry.timestamp[11:19]}  {entry.message}")

    return _render(Panel("\n".join(lines), title="Job Detail", border_style="cyan"))


def format_job_errors(job: UploadJob, limit: int = 20) -> str:
    """Table of a job's first failed records."""
    errors = job.errors
    if not errors:
        return "No failed records."

    table = Table(title=f"Failed Records ({len(errors)})", show_lines=True)
    table.add_column("Row", justify="right")
    table.add_column("Testator", style="white")
    table.add_column("Reason", style="red")
    for entry in errors[:limit]:
        data = entry.get("data") or {}
        table.add_row(str(entry.get("row", 0) + 1), data.get("testatorName") or "-", entry.get("reason") or "")
    rendered = _render(table)
    if len(errors) > limit:
        rendered += f"... and {len(errors) - limit} more\n"
    return rendered


def format_validation_stats(stats: ValidationStats) -> str:
    """Summary panel of a validation run with the fix recommendation."""
    lines = [
        f"[bold]Total:[/bold]     {stats.total}",
        f"[bold]Valid:[/bold]     [green]{stats.valid}[/green]",
        f"[bold]Warnings:[/bold]  [yellow]{stats.warnings}[/yellow]",
        f"[bold]Errors:[/bold]    [red]{stats.errors}[/red]",
    ]
    if stats.recommendation:
        lines.append("")
        lines.append(f"[bold]Recommendation:[/bold] {RECOMMENDATIONS[stats.recommendation]}")
    border = "red" if stats.errors else "green"
    return _render(Panel("\n".join(lines), title="Validation", border_style=border))


def format_issue_table(rows: list[ValidatedRow], limit: int = 25) -> str:
    """Table of every issue on rows that have one."""
    flagged = [row for row in rows if row.errors]
    if not flagged:
        return "No issues found."

    table = Table(title="Issues", show_lines=True)
    table.add_column("Row", justify="right")
    table.add_column("Status")
    table.add_column("Field", style="cyan")
    table.add_column("Code", style="dim")
    table.add_column("Issue")
    table.add_column("Suggestion", style="dim")

    shown = 0
    for row in flagged:
        color = ROW_STATUS_COLORS.get(row.status.value, "white")
        for issue in row.errors:
            if shown >= limit:
                break
            table.add_row(
                str(row.row_index + 1),
                f"[{color}]{row.status.value}[/{color}]",
                issue.field,
                issue.code or "",
                issue.message,
                issue.suggestion or "",
            )
            shown += 1

    rendered = _render(table)
    total = sum(len(row.errors) for row in flagged)
    if total > shown:
        rendered += f"... and {total - shown} more\n"
    return rendered


def format_fix_preview(preview: FixPreview, limit: int = 20) -> str:
    """Before/after table for a bulk fix awaiting confirmation."""
    if not preview.entries:
        return f"No {preview.fix_type.value} issues to fix."

    table = Table(
        title=f"{preview.fix_type.value.title()} fix: {len(preview)} row(s), {preview.changed_count} change(s)",
        show_lines=False,
    )
    table.add_column("Row", justify="right")
    table.add_column("Field", style="cyan")
    table.add_column("Before", style="red")
    table.add_column("After", style="green")
    for entry in preview.entries[:limit]:
        table.add_row(str(entry.row_index + 1), entry.field, entry.before, entry.after)
    rendered = _render(table)
    if len(preview) > limit:
        rendered += f"... and {len(preview) - limit} more\n"
    return rendered

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ticket_planner.core.aggregate.aggregate_estimates import ProjectStatistics, aggregate, statistics
from ticket_planner.core.build.build_tickets import build_tickets
from ticket_planner.core.errors import SubmissionError, TicketPlanError, TransportError, ValidationError
from ticket_planner.core.io.ticket_document import dump_document, dump_report, load_document
from ticket_planner.core.model import PROCESS_LABELS, CreationReport, ProcessType, TicketNode, TicketOptions
from ticket_planner.core.render.render_html import render_html
from ticket_planner.core.security import mask_secret, sanitize_message, validate_source_path
from ticket_planner.core.source.read_estimates import read_task_estimates
from ticket_planner.core.source.source_config import (
    SourceConfig,
    SourceConfigError,
    load_source_config,
    parse_process_columns,
)
from ticket_planner.core.source.workbook import column_names, list_sheets, load_source
from ticket_planner.core.submit.redmine_client import RedmineClient, RedmineSettings
from ticket_planner.core.submit.submit_tickets import (
    DryRunClient,
    IssueClient,
    submit,
    summarize,
    validate_options,
    validate_tree,
)
from ticket_planner.core.tree import count_tickets

app = typer.Typer(add_completion=False, no_args_is_help=True)

logger = logging.getLogger(__name__)


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Turn spreadsheet estimates into hierarchical Redmine tickets."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


@app.command("convert")
def convert(
    source: str = typer.Argument(..., help="Estimate spreadsheet (.xlsx/.xlsm/.xls)"),
    out: Optional[str] = typer.Option(None, "--out", help="Ticket document to write (.yaml/.yml/.json)"),
    html: Optional[str] = typer.Option(None, "--html", help="HTML preview to write"),
    config: Optional[str] = typer.Option(None, "--config", help="YAML column-mapping file"),
    sheet: Optional[str] = typer.Option(None, "--sheet", help="Sheet name (default: first sheet)"),
    header_row: Optional[int] = typer.Option(None, "--header-row"),
    start_row: Optional[int] = typer.Option(None, "--start-row"),
    end_row: Optional[int] = typer.Option(None, "--end-row"),
    task_column: Optional[str] = typer.Option(None, "--task-column"),
    group_column: Optional[str] = typer.Option(None, "--group-column"),
    process: Optional[list[str]] = typer.Option(
        None,
        "--process",
        help="process=COLUMN, repeatable; replaces the configured process columns",
    ),
    group: bool = typer.Option(True, "--group/--no-group", help="Group tasks by screen/feature"),
) -> None:
    """Read an estimate sheet and write a ticket document plus an HTML preview."""
    try:
        source_path = validate_source_path(source)
        cfg = _source_config(
            config,
            sheet=sheet,
            header_row=header_row,
            start_row=start_row,
            end_row=end_row,
            task_column=task_column.strip().upper() if task_column else None,
            group_column=group_column.strip().upper() if group_column else None,
            process=process,
        )
        with load_source(source_path) as handle:
            tasks = read_task_estimates(handle, cfg)
        data = aggregate(tasks)
    except TicketPlanError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    _print_statistics(statistics(data))

    tickets = build_tickets(data, group=group and cfg.group_column is not None)

    out_path = out or str(source_path.with_suffix(".yaml"))
    html_path = html or str(Path(out_path).with_suffix(".html"))
    dump_document(tickets, out_path)
    _write_text(html_path, render_html(tickets))

    typer.echo(f"OK: {len(tickets)} root ticket(s), {count_tickets(tickets)} ticket(s) total")
    typer.echo(f"Document: {out_path}")
    typer.echo(f"Preview: {html_path}")


@app.command("preview")
def preview(
    document: str = typer.Argument(..., help="Ticket document (.yaml/.yml/.json)"),
    html: Optional[str] = typer.Option(None, "--html", help="HTML file to write"),
) -> None:
    """Regenerate the HTML preview from a ticket document."""
    try:
        tickets = load_document(document)
    except TicketPlanError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    html_path = html or str(Path(document).with_suffix(".html"))
    _write_text(html_path, render_html(tickets))
    typer.echo(f"OK: wrote preview of {count_tickets(tickets)} ticket(s) to {html_path}")


@app.command("create")
def create(
    document: str = typer.Argument(..., help="Ticket document (.yaml/.yml/.json)"),
    tracker_id: int = typer.Option(..., "--tracker-id"),
    status_id: int = typer.Option(..., "--status-id"),
    priority_id: int = typer.Option(..., "--priority-id"),
    url: Optional[str] = typer.Option(None, "--url", envvar="REDMINE_URL", help="Redmine base URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", envvar="REDMINE_API_KEY"),
    project: Optional[str] = typer.Option(None, "--project", envvar="REDMINE_PROJECT"),
    timeout: float = typer.Option(30.0, "--timeout", help="Per-request timeout in seconds"),
    max_retries: int = typer.Option(2, "--max-retries", help="Retries for transient failures"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Walk the tree without calling Redmine"),
    report: Optional[str] = typer.Option(None, "--report", help="Write the creation report (YAML)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Create the tickets of a document in Redmine, parents first."""
    options = TicketOptions(tracker_id=tracker_id, status_id=status_id, priority_id=priority_id)
    try:
        tickets = load_document(document)
        validate_options(options)
        validate_tree(tickets)
        settings = None if dry_run else RedmineSettings.resolve(url, api_key, project)
    except TicketPlanError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    total = count_tickets(tickets)
    logger.debug("loaded %d ticket(s) from %s", total, document)

    if settings is None:
        typer.echo(f"DRY RUN: {total} ticket(s), Redmine is not contacted")
        result = _submit(tickets, options, DryRunClient(), report)
    else:
        with RedmineClient(settings, timeout=timeout, max_retries=max_retries) as redmine:
            project_name = _check_redmine(redmine)
            if not yes:
                typer.echo(f"Document: {document}")
                typer.echo(f"Tickets: {total}")
                typer.echo(
                    f"Redmine: {settings.base_url} (project {project_name}, key {mask_secret(settings.api_key)})"
                )
                if not typer.confirm("Create these tickets?", default=False):
                    typer.echo("Cancelled.")
                    raise typer.Exit(code=0)
            result = _submit(tickets, options, redmine, report)

    typer.echo(summarize(result))
    typer.echo(f"OK: created {len(result.created_tickets)} ticket(s)")


@app.command("inspect")
def inspect_source(
    source: str = typer.Argument(..., help="Estimate spreadsheet (.xlsx/.xlsm/.xls)"),
    header_row: int = typer.Option(1, "--header-row"),
) -> None:
    """List sheets and header columns, to help fill in a column mapping."""
    try:
        source_path = validate_source_path(source)
        with load_source(source_path) as handle:
            for name in list_sheets(handle):
                typer.echo(f"Sheet: {name}")
                for label in column_names(handle, name, header_row):
                    typer.echo(f"  - {label}")
    except TicketPlanError as e:
        _print_errors([e])
        raise typer.Exit(code=1)


@app.command("lookups")
def lookups(
    url: Optional[str] = typer.Option(None, "--url", envvar="REDMINE_URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", envvar="REDMINE_API_KEY"),
    project: Optional[str] = typer.Option(None, "--project", envvar="REDMINE_PROJECT"),
) -> None:
    """List Redmine trackers, statuses and priorities with their ids."""
    try:
        settings = RedmineSettings.resolve(url, api_key, project)
        with RedmineClient(settings) as redmine:
            sections = [
                ("Trackers", redmine.list_trackers()),
                ("Statuses", redmine.list_statuses()),
                ("Priorities", redmine.list_priorities()),
            ]
    except TicketPlanError as e:
        _print_errors([e])
        raise typer.Exit(code=1)
    except TransportError as e:
        typer.echo(f"<redmine>: E_REDMINE_REQUEST: {sanitize_message(e)}", err=True)
        raise typer.Exit(code=1)

    console = Console()
    for title, items in sections:
        table = Table(title=title)
        table.add_column("id", justify="right")
        table.add_column("name")
        for item in items:
            table.add_row(str(item.get("id", "")), str(item.get("name", "")))
        console.print(table)


def _check_redmine(redmine: RedmineClient) -> str:
    """Fail early on a wrong URL, key or project. Returns the project name."""
    if not redmine.check_connection():
        typer.echo(f"<redmine>: E_REDMINE_UNREACHABLE: cannot reach {redmine.settings.base_url}", err=True)
        raise typer.Exit(code=1)
    try:
        project = redmine.get_project()
    except TransportError as e:
        typer.echo(f"<redmine>: E_REDMINE_PROJECT: {sanitize_message(e)}", err=True)
        raise typer.Exit(code=1)
    return str(project.get("name") or redmine.settings.project_id)


def _submit(
    tickets: list[TicketNode],
    options: TicketOptions,
    client: IssueClient,
    report: Optional[str],
) -> CreationReport:
    try:
        result = submit(tickets, options, client)
    except SubmissionError as e:
        _print_errors([e])
        partial = CreationReport(created_tickets=list(e.created))
        if partial.created_tickets:
            typer.echo("Tickets created before the failure remain in Redmine:", err=True)
            typer.echo(summarize(partial), err=True)
        if report:
            dump_report(partial, report)
        raise typer.Exit(code=1)
    except TicketPlanError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    if report:
        dump_report(result, report)
    return result


def _source_config(config_file: Optional[str], *, process: Optional[list[str]], **overrides) -> SourceConfig:
    try:
        cfg = load_source_config(config_file) if config_file else SourceConfig()
        if process:
            overrides["process_columns"] = parse_process_columns(_parse_process_options(process))
        return cfg.with_overrides(**overrides)
    except FileNotFoundError as e:
        raise ValidationError(
            code="E_CONFIG_FILE_NOT_FOUND",
            message=f"config file not found: {config_file}",
            path="config",
        ) from e
    except SourceConfigError as e:
        raise ValidationError(
            code="E_CONFIG_INVALID", message=str(e), file=config_file, path="config"
        ) from e


def _parse_process_options(values: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in values:
        name, sep, column = item.partition("=")
        if not sep or not name.strip() or not column.strip():
            raise SourceConfigError(f"--process expects process=COLUMN, got '{item}'")
        out[name.strip()] = column.strip()
    return out


def _print_statistics(stats: ProjectStatistics) -> None:
    table = Table(title=f"{stats.total_tasks} task(s), {stats.total_hours:g}h total")
    table.add_column("process")
    table.add_column("hours", justify="right")
    table.add_column("tasks", justify="right")
    table.add_column("share", justify="right")
    for process in ProcessType:
        s = stats.per_process[process]
        if s.hours <= 0:
            continue
        table.add_row(PROCESS_LABELS[process], f"{s.hours:g}", str(s.task_count), f"{s.percentage}%")
    Console().print(table)


def _write_text(path: str, text: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")


def _print_errors(errors: list[TicketPlanError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(sanitize_message(str(e)), err=True)


def main() -> None:
    app(prog_name="ticket-planner")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()

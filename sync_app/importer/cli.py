"""
``flask importer`` commands.

Sources are addressed by ``source_name``. Checks run inline by default;
``--queue`` hands them to the Celery worker instead.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask.cli import ScriptInfo, with_appcontext

from sync_app.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from sync_app.importer.errors import ImporterError, NotFoundError
from sync_app.importer.pipeline import (
    CheckOutcome,
    Import,
    ImportSourceCheckService,
    dump_bundle,
    fetch_last_run,
    import_import_source,
    load_bundle,
)
from sync_app.models import db
from sync_app.models.importer.schema import ImportSource
from sync_app.utils.importer import get_importer_providers, is_importer_enabled


@click.group(name="importer", invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """
    Import source management commands.

    Lists the configured providers when invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. Enable it to run importer CLI commands."
        )
    if ctx.invoked_subcommand is None:
        providers = get_importer_providers(app)
        if not providers:
            click.echo("No import providers configured.")
        else:
            click.echo("Enabled import providers:")
            for provider in providers:
                click.echo(f"  - {provider}")


def get_disabled_importer_group() -> click.Group:
    """Stand-in group telling the operator the importer is disabled."""

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true and the "
            "importer package initialises before running worker commands."
        )
    return celery_app


def _load_source(source_name: str) -> ImportSource:
    source = db.session.query(ImportSource).filter(ImportSource.source_name == source_name).one_or_none()
    if source is None:
        raise click.ClickException(f"Import source '{source_name}' not found.")
    return source


def _format_outcome(source_name: str, outcome: CheckOutcome) -> str:
    line = f"{source_name}: {outcome.state.value} (changes={'yes' if outcome.had_changes else 'no'})"
    if outcome.error_message:
        line += f"\n  error: {outcome.error_message}"
    return line


@importer_cli.command("sources")
@with_appcontext
@click.option("--json", "as_json", is_flag=True, help="Emit machine-readable JSON.")
def importer_sources(as_json: bool):
    """List import sources with their current state."""
    sources = db.session.query(ImportSource).order_by(ImportSource.source_name).all()
    rows = [
        {
            "id": source.id,
            "source_name": source.source_name,
            "provider_class": source.provider_class,
            "import_state": source.state_value,
            "last_attempt": source.last_attempt.isoformat() if source.last_attempt else None,
            "last_error_message": source.last_error_message,
            "row_modifiers": len(source.row_modifiers),
        }
        for source in sources
    ]
    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        click.echo("No import sources configured.")
        return
    for row in rows:
        attempt = row["last_attempt"] or "never"
        click.echo(f"{row['source_name']} [{row['provider_class']}] {row['import_state']} (last attempt: {attempt})")
        if row["last_error_message"]:
            click.echo(f"  error: {row['last_error_message']}")


@importer_cli.command("check")
@with_appcontext
@click.option("--source", "source_name", help="Name of the import source to check.")
@click.option("--all", "check_all", is_flag=True, help="Check every import source.")
@click.option("--commit", is_flag=True, help="Store detected changes as a new import run.")
@click.option("--queue", "enqueue", is_flag=True, help="Queue the check on the importer worker.")
@click.pass_context
def importer_check(ctx, source_name: Optional[str], check_all: bool, commit: bool, enqueue: bool):
    """Check one or all import sources for changes."""
    if bool(source_name) == check_all:
        raise click.UsageError("Pass exactly one of --source or --all.")

    if enqueue:
        info = ctx.ensure_object(ScriptInfo)
        celery_app = _resolve_celery(info.load_app())
        if check_all:
            result = celery_app.tasks["importer.check_all_sources"].apply_async(kwargs={"commit": commit})
        else:
            _load_source(source_name)
            result = celery_app.tasks["importer.check_source"].apply_async(
                kwargs={"source_name": source_name, "commit": commit}
            )
        click.echo(json.dumps({"task_id": result.id, "queue": DEFAULT_QUEUE_NAME}))
        return

    service = ImportSourceCheckService()
    if check_all:
        outcomes = service.check_all(commit=commit)
        if not outcomes:
            click.echo("No import sources configured.")
            return
    else:
        source = _load_source(source_name)
        outcomes = {source.source_name: service.check(source, commit=commit)}

    for name, outcome in outcomes.items():
        click.echo(_format_outcome(name, outcome))
    if any(outcome.failed for outcome in outcomes.values()):
        ctx.exit(1)


@importer_cli.command("run")
@with_appcontext
@click.option("--source", "source_name", required=True, help="Name of the import source to import.")
@click.pass_context
def importer_run(ctx, source_name: str):
    """Check a source and store its data when it changed."""
    source = _load_source(source_name)
    outcome = ImportSourceCheckService().check(source, commit=True)
    click.echo(_format_outcome(source_name, outcome))
    if outcome.failed:
        ctx.exit(1)


@importer_cli.command("preview")
@with_appcontext
@click.option("--source", "source_name", required=True, help="Name of the import source to preview.")
@click.option("--limit", default=10, show_default=True, type=int, help="Maximum rows to print.")
def importer_preview(source_name: str, limit: int):
    """Print transformed rows without storing anything."""
    source = _load_source(source_name)
    detector = Import(source)
    try:
        rows = detector.fetch_rows()
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc
    except ValueError as exc:
        raise click.ClickException(f"Row modifier failed: {exc}") from exc

    preview = dict(list(rows.items())[: max(limit, 0)])
    click.echo(json.dumps(preview, indent=2, default=str))
    summary = detector.pipeline_summary
    if summary is not None:
        click.echo(
            f"{summary.rows_out} of {summary.rows_in} row(s) kept, {summary.rows_rejected} rejected.",
            err=True,
        )


@importer_cli.command("last-run")
@with_appcontext
@click.option("--source", "source_name", required=True, help="Name of the import source.")
def importer_last_run(source_name: str):
    """Show the most recent stored import run of a source."""
    source = _load_source(source_name)
    try:
        run = fetch_last_run(source, required=True)
    except NotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        json.dumps(
            {
                "id": run.id,
                "source_name": source.source_name,
                "start_time": run.start_time.isoformat(),
                "end_time": run.end_time.isoformat() if run.end_time else None,
                "succeeded": run.succeeded,
                "row_count": run.row_count,
                "rowset_checksum": run.rowset_checksum,
            },
            indent=2,
        )
    )


@importer_cli.command("export")
@with_appcontext
@click.option("--source", "source_names", multiple=True, help="Limit the export to these sources.")
@click.option("--file", "file_path", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file.")
def importer_export(source_names: tuple[str, ...], file_path: Optional[Path]):
    """Export import source configuration as a YAML bundle."""
    if source_names:
        sources = [_load_source(name) for name in source_names]
    else:
        sources = db.session.query(ImportSource).order_by(ImportSource.source_name).all()
    document = dump_bundle(sources)
    if file_path is None:
        click.echo(document, nl=False)
        return
    file_path.write_text(document, encoding="utf-8")
    click.echo(f"Exported {len(sources)} import source(s) to {file_path}.")


@importer_cli.command("import")
@with_appcontext
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def importer_import(file_path: Path):
    """Create or update import sources from a YAML or JSON bundle."""
    try:
        entries = load_bundle(file_path.read_text(encoding="utf-8"))
        sources = [import_import_source(entry) for entry in entries]
        db.session.commit()
    except ImporterError as exc:
        db.session.rollback()
        raise click.ClickException(str(exc)) from exc
    for source in sources:
        click.echo(f"Imported import source {source.source_name} (id={source.id}).")


@importer_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the importer background worker."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    state = app.extensions.get("importer", {})
    if not state.get("worker_enabled") and not app.config.get("IMPORTER_WORKER_ENABLED"):
        click.echo(
            "Warning: IMPORTER_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list.")
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """Start the Celery worker in the current process."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    app.extensions.setdefault("importer", {})["worker_enabled"] = True

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    click.echo(f"Starting importer worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """Run the heartbeat task and print its payload."""
    info = ctx.ensure_object(ScriptInfo)
    celery_app = _resolve_celery(info.load_app())
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    click.echo(json.dumps(payload, indent=2))

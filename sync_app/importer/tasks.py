"""
Celery tasks for import source checks.

Each task runs one (or every) check cycle inside the Flask application
context and returns the outcome as a plain dict so results survive the
result backend.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task
from flask import current_app

from sync_app.importer.errors import NotFoundError
from sync_app.importer.pipeline import CheckOutcome, ImportSourceCheckService
from sync_app.models import db
from sync_app.models.importer.schema import ImportSource


def _outcome_payload(source_name: str, outcome: CheckOutcome, *, commit: bool) -> dict[str, Any]:
    return {
        "source_name": source_name,
        "state": outcome.state.value,
        "had_changes": outcome.had_changes,
        "error_message": outcome.error_message,
        "commit": commit,
    }


def _load_source(source_id: int | None, source_name: str | None) -> ImportSource:
    source: ImportSource | None = None
    if source_id is not None:
        source = db.session.get(ImportSource, source_id)
    elif source_name:
        source = db.session.query(ImportSource).filter(ImportSource.source_name == source_name).one_or_none()
    else:
        raise ValueError("Either source_id or source_name is required.")
    if source is None:
        raise NotFoundError(f"Import source {source_name or source_id} not found.")
    return source


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """Heartbeat used by ``flask importer worker ping``."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name="importer.check_source", bind=True)
def check_source(
    self,
    *,
    source_id: int | None = None,
    source_name: str | None = None,
    commit: bool = False,
) -> dict[str, Any]:
    """Run one check cycle for a stored import source."""
    source = _load_source(source_id, source_name)
    name = source.source_name
    outcome = ImportSourceCheckService().check(source, commit=commit)
    current_app.logger.info(
        "Importer task checked source %s",
        name,
        extra={"importer_source": name, "importer_task_id": self.request.id},
    )
    return _outcome_payload(name, outcome, commit=commit)


@shared_task(name="importer.check_all_sources", bind=True)
def check_all_sources(self, *, commit: bool = False) -> dict[str, Any]:
    """Check every stored import source; one failing source does not stop the rest."""
    outcomes = ImportSourceCheckService().check_all(commit=commit)
    results = [_outcome_payload(name, outcome, commit=commit) for name, outcome in outcomes.items()]
    failing = sum(1 for outcome in outcomes.values() if outcome.failed)
    current_app.logger.info(
        "Importer task checked %d source(s), %d failing",
        len(results),
        failing,
        extra={"importer_task_id": self.request.id, "importer_failing_sources": failing},
    )
    return {"checked": len(results), "failing": failing, "sources": results}

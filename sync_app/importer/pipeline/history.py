"""Import run history lookups for an import source."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from sync_app.importer.errors import NotFoundError
from sync_app.models import db
from sync_app.models.importer.schema import ImportRun, ImportSource

DEFAULT_LAST_RUN_EPSILON_SECONDS = 1


def fetch_last_run(source: ImportSource, *, required: bool = False, session: Session | None = None) -> ImportRun | None:
    """
    Return the most recent run of ``source``.

    Looks slightly into the future so a run that started "now" is still
    found despite clock resolution.
    """
    epsilon = DEFAULT_LAST_RUN_EPSILON_SECONDS
    if has_app_context():
        epsilon = current_app.config.get("IMPORTER_LAST_RUN_EPSILON_SECONDS", epsilon)
    timestamp = datetime.now(timezone.utc) + timedelta(seconds=epsilon)
    return fetch_last_run_before(source, timestamp, required=required, session=session)


def fetch_last_run_before(
    source: ImportSource,
    timestamp: datetime | int | float | None = None,
    *,
    required: bool = False,
    session: Session | None = None,
) -> ImportRun | None:
    """
    Return the latest run of ``source`` that started strictly before ``timestamp``.

    ``timestamp`` defaults to now. With ``required`` a missing run (or a
    source that was never stored) raises :class:`NotFoundError` instead of
    returning ``None``.
    """
    if not source.has_been_persisted():
        return _none_unless_required(source, required)

    cutoff = _coerce_timestamp(timestamp)
    session = session or db.session
    run = (
        session.query(ImportRun)
        .filter(ImportRun.source_id == source.id, ImportRun.start_time < cutoff)
        .order_by(ImportRun.start_time.desc(), ImportRun.id.desc())
        .first()
    )
    if run is None:
        return _none_unless_required(source, required)
    return run


def _none_unless_required(source: ImportSource, required: bool) -> None:
    if required:
        raise NotFoundError(f'No data has been imported for "{source.source_name}" yet')
    return None


def _coerce_timestamp(value: datetime | int | float | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

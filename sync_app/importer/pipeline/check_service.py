"""
Import source state machine.

A check cycle asks a freshly built change detector whether the source's
transformed data differs from the last stored run, optionally commits it, and
records the resulting state on the source:

* ``unknown`` -> ``in-sync`` when nothing changed, or changes were committed
* ``unknown`` -> ``pending-changes`` when changes exist and were not committed
* ``unknown`` -> ``failing`` when detection or commit raised

Detector failures never escape :meth:`ImportSourceCheckService.check_for_changes`;
they become a ``failing`` state plus the stored error message, so one broken
source cannot abort a batch of checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sync_app.importer.benchmark import Benchmark
from sync_app.importer.metrics import record_check_outcome
from sync_app.models import db
from sync_app.models.importer.schema import STATE_PROPERTIES, ImportSource, ImportSourceState

from .detector import ChangeDetector, Import

DetectorFactory = Callable[[ImportSource], ChangeDetector]


@dataclass(frozen=True)
class CheckOutcome:
    """Result of one check cycle, before it is applied to the source."""

    state: ImportSourceState
    had_changes: bool = False
    error_message: str | None = None

    @property
    def failed(self) -> bool:
        return self.state is ImportSourceState.FAILING


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Any) -> Any:
    # SQLite hands datetimes back without tzinfo; they are stored as UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _snapshot_state(source: ImportSource) -> tuple[Any, ...]:
    return tuple(_as_utc(getattr(source, name)) for name in STATE_PROPERTIES)


def _describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


class ImportSourceCheckService:
    """Run check cycles for import sources and persist their outcome."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        detector_factory: DetectorFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session: Session = session or db.session
        self.detector_factory: DetectorFactory = detector_factory or (lambda source: Import(source, self.session))
        self.clock = clock or _utcnow

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    def check_for_changes(self, source: ImportSource, commit: bool = False) -> bool:
        """Run one cycle and return whether differences were found."""
        return self.check(source, commit=commit).had_changes

    def run_import(self, source: ImportSource) -> bool:
        return self.check_for_changes(source, commit=True)

    def check(self, source: ImportSource, *, commit: bool = False) -> CheckOutcome:
        """Run one cycle and return its full outcome."""
        benchmark = Benchmark()
        source_name = source.source_name
        benchmark.measure(f"Starting with import {source_name}")
        before = _snapshot_state(source)
        attempt = self.clock().replace(microsecond=0)

        outcome = self._detect(source, commit=commit, benchmark=benchmark)
        if outcome.failed:
            # Drop whatever the detector left half-written before recording state.
            self.session.rollback()

        source.last_attempt = attempt
        self._apply_outcome(source, outcome)
        if _snapshot_state(source) != before:
            self._store(source)

        record_check_outcome(outcome.state.value, benchmark.elapsed_seconds)
        log = current_app.logger.warning if outcome.failed else current_app.logger.info
        log(
            "Import source '%s' checked: state=%s changes=%s",
            source_name,
            outcome.state.value,
            outcome.had_changes,
            extra={
                "importer_source": source_name,
                "importer_state": outcome.state.value,
                "importer_had_changes": outcome.had_changes,
                "importer_commit": commit,
                "importer_error": outcome.error_message,
                "importer_markers": benchmark.messages(),
            },
        )
        return outcome

    def check_all(
        self,
        sources: Iterable[ImportSource] | None = None,
        *,
        commit: bool = False,
    ) -> dict[str, CheckOutcome]:
        """Check every given (default: every stored) source independently."""
        if sources is None:
            sources = self.session.query(ImportSource).order_by(ImportSource.source_name).all()

        outcomes: dict[str, CheckOutcome] = {}
        for source in sources:
            source_name = source.source_name
            try:
                outcomes[source_name] = self.check(source, commit=commit)
            except SQLAlchemyError as exc:
                current_app.logger.error(
                    f"Could not record check result for import source {source_name}: {exc}",
                    extra={"importer_source": source_name},
                )
                outcomes[source_name] = CheckOutcome(ImportSourceState.FAILING, error_message=_describe_error(exc))
        return outcomes

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------

    def _detect(self, source: ImportSource, *, commit: bool, benchmark: Benchmark) -> CheckOutcome:
        source_name = source.source_name
        had_changes = False
        try:
            detector = self.detector_factory(source)
            if not detector.provides_changes():
                return CheckOutcome(ImportSourceState.IN_SYNC)

            benchmark.measure(f"Found changes for {source_name}")
            had_changes = True
            if commit and detector.run():
                benchmark.measure(f"Import succeeded for {source_name}")
                return CheckOutcome(ImportSourceState.IN_SYNC, had_changes=True)
            return CheckOutcome(ImportSourceState.PENDING_CHANGES, had_changes=True)
        except Exception as exc:
            benchmark.measure(f"Import failed for {source_name}")
            current_app.logger.warning(
                "Import source '%s' check failed: %s",
                source_name,
                exc,
                exc_info=True,
                extra={"importer_source": source_name},
            )
            return CheckOutcome(
                ImportSourceState.FAILING,
                had_changes=had_changes,
                error_message=_describe_error(exc),
            )

    @staticmethod
    def _apply_outcome(source: ImportSource, outcome: CheckOutcome) -> None:
        source.import_state = outcome.state
        source.last_error_message = outcome.error_message if outcome.failed else None

    def _store(self, source: ImportSource) -> None:
        try:
            self.session.add(source)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

"""
Change detection and commit for a single import source.

``Import`` is built fresh for every check cycle. It fetches rows from the
source's provider, runs the row modifier pipeline, and compares a checksum of
the transformed rowset with the last stored run.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Protocol

from flask import has_app_context
from sqlalchemy.orm import Session

from sync_app.importer.errors import ConfigurationError, ProviderError
from sync_app.importer.metrics import record_rows_rejected, record_run_committed
from sync_app.importer.providers import ImportProvider
from sync_app.importer.registry import create_provider
from sync_app.importer.rows import get_specific_value
from sync_app.models import db
from sync_app.models.importer.schema import ImportRun, ImportSource
from sync_app.utils.importer import get_importer_providers

from .history import fetch_last_run
from .row_pipeline import RowPipelineSummary, apply_modifiers

logger = logging.getLogger(__name__)


class ChangeDetector(Protocol):
    """What a check cycle needs from a detector/committer."""

    def provides_changes(self) -> bool: ...

    def run(self) -> bool: ...


def compute_rowset_checksum(rows: Mapping[str, Any]) -> str:
    serialized = json.dumps(rows, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def key_rows(rows: Iterable[Mapping[str, Any]], key_column: str | None) -> dict[str, dict[str, Any]]:
    """
    Key transformed rows by ``key_column``; rows are keyed by position when
    no key column is configured.
    """
    keyed: dict[str, dict[str, Any]] = {}
    for index, row in enumerate(rows):
        if not key_column:
            keyed[str(index)] = dict(row)
            continue
        key = row[key_column] if key_column in row else get_specific_value(row, key_column)
        if key is None or key == "":
            raise ProviderError(f"Row {index} has no value for key column '{key_column}'.")
        key = str(key)
        if key in keyed:
            raise ProviderError(f"Duplicate value '{key}' for key column '{key_column}'.")
        keyed[key] = dict(row)
    return keyed


class Import:
    """Detect and commit changes of one import source."""

    def __init__(
        self,
        source: ImportSource,
        session: Session | None = None,
        *,
        provider: ImportProvider | None = None,
    ) -> None:
        self.source = source
        self.session: Session = session or db.session
        self._provider = provider
        self._rows: dict[str, dict[str, Any]] | None = None
        self._checksum: str | None = None
        self.pipeline_summary: RowPipelineSummary | None = None

    @property
    def provider(self) -> ImportProvider:
        if self._provider is None:
            allowed = get_importer_providers() if has_app_context() else ()
            provider_class = (self.source.provider_class or "").strip().lower()
            if allowed and provider_class not in allowed:
                raise ConfigurationError(
                    f"Provider '{self.source.provider_class}' is not enabled via IMPORTER_PROVIDERS."
                )
            self._provider = create_provider(self.source.provider_class, self.source.get_settings())
        return self._provider

    def fetch_rows(self) -> dict[str, dict[str, Any]]:
        """Fetched, transformed and keyed rows (computed once per instance)."""
        if self._rows is None:
            fetched = self.provider.fetch_data()
            data: dict[int, dict[str, Any]] = {index: dict(row) for index, row in enumerate(fetched)}
            chain = self.source.get_row_modifier_chain()
            if chain.has_row_modifiers():
                self.pipeline_summary = apply_modifiers(data, chain.flat)
                record_rows_rejected(self.pipeline_summary.rows_rejected)
            self._rows = key_rows(data.values(), self.source.key_column)
        return self._rows

    def rowset_checksum(self) -> str:
        if self._checksum is None:
            self._checksum = compute_rowset_checksum(self.fetch_rows())
        return self._checksum

    def provides_changes(self) -> bool:
        """Fetch and transform the rowset, then compare it with the last stored run."""
        checksum = self.rowset_checksum()
        last_run = fetch_last_run(self.source, session=self.session)
        return last_run is None or last_run.rowset_checksum != checksum

    def run(self) -> bool:
        """
        Store the current rowset as a new run when it differs from the last one.

        Returns ``False`` when nothing had to be stored.
        """
        if not self.provides_changes():
            return False

        start_time = datetime.now(timezone.utc)
        rows = self.fetch_rows()
        if not self.source.has_been_persisted():
            self.session.add(self.source)
            self.session.flush()

        run = ImportRun(
            source_id=self.source.id,
            start_time=start_time,
            rowset_checksum=self.rowset_checksum(),
            row_count=len(rows),
            rows_json=rows,
        )
        run.end_time = datetime.now(timezone.utc)
        run.succeeded = True
        self.session.add(run)
        self.session.commit()
        record_run_committed()
        logger.info(
            "Stored import run %s for %s (%d rows)",
            run.id,
            self.source.source_name,
            run.row_count,
        )
        return True

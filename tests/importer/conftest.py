from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Sequence

import pytest

from sync_app.importer import init_importer
from sync_app.models import db
from sync_app.models.importer.schema import ImportRowModifier, ImportRun, ImportSource


@pytest.fixture
def importer_app(app, tmp_path):
    app.config.update(
        {
            "IMPORTER_ENABLED": True,
            "IMPORTER_PROVIDERS": ("csv", "json"),
            "CELERY_SQLITE_PATH": str(tmp_path / "celery.sqlite"),
            "CELERY_CONFIG": {"task_always_eager": True, "task_eager_propagates": True},
        }
    )
    app.extensions.pop("importer", None)
    init_importer(app)
    yield app


@pytest.fixture
def write_json_rows(tmp_path):
    counter = {"value": 0}

    def _write(rows: Sequence[Mapping[str, Any]], *, name: str | None = None) -> str:
        counter["value"] += 1
        path = tmp_path / (name or f"rows_{counter['value']}.json")
        path.write_text(json.dumps(list(rows)), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def source_factory(write_json_rows):
    """Persist a JSON-backed import source; pass ``rows`` to write its data file."""

    def _factory(
        *,
        source_name: str = "hosts",
        rows: Sequence[Mapping[str, Any]] | None = None,
        key_column: str | None = "name",
        provider_class: str = "json",
        settings: Mapping[str, Any] | None = None,
        persist: bool = True,
    ) -> ImportSource:
        source = ImportSource(source_name=source_name, provider_class=provider_class, key_column=key_column)
        values = dict(settings or {})
        if rows is not None:
            values.setdefault("file_path", write_json_rows(rows))
        source.set_settings(values)
        if persist:
            db.session.add(source)
            db.session.commit()
        return source

    return _factory


@pytest.fixture
def modifier_factory():
    def _factory(
        source: ImportSource,
        provider_class: str,
        property_name: str,
        *,
        settings: Mapping[str, Any] | None = None,
        target_property: str | None = None,
        priority: int = 0,
        commit: bool = True,
    ) -> ImportRowModifier:
        modifier = ImportRowModifier(
            property_name=property_name,
            provider_class=provider_class,
            target_property=target_property,
            priority=priority,
        )
        modifier.set_settings(dict(settings or {}))
        source.row_modifiers.append(modifier)
        source.invalidate_row_modifiers()
        if commit:
            db.session.commit()
        return modifier

    return _factory


@pytest.fixture
def run_factory():
    def _factory(
        source: ImportSource,
        *,
        started_offset_seconds: int = 60,
        checksum: str | None = "0" * 64,
        rows: Mapping[str, Any] | None = None,
    ) -> ImportRun:
        start_time = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(seconds=started_offset_seconds)
        run = ImportRun(
            source_id=source.id,
            start_time=start_time,
            end_time=start_time + timedelta(seconds=1),
            succeeded=True,
            rowset_checksum=checksum,
            row_count=len(rows or {}),
            rows_json=dict(rows or {}),
        )
        db.session.add(run)
        db.session.commit()
        return run

    return _factory

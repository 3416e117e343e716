"""JSON file provider."""

from __future__ import annotations

import json
from typing import Any, Mapping

from sync_app.importer.errors import ProviderError
from sync_app.importer.rows import get_specific_value

from .base import ImportProvider


class JSONFileProvider(ImportProvider):
    """
    Read rows from a JSON document.

    The document is either a list of objects, an object of objects (keys are
    ignored), or contains such a collection at the dotted ``records_path``.
    """

    name = "json"
    required_settings = ("file_path",)

    def fetch_data(self) -> list[dict[str, Any]]:
        path = self._resolve_path()
        try:
            payload = json.loads(path.read_text(encoding=str(self.settings.get("encoding") or "utf-8")))
        except FileNotFoundError as exc:
            raise ProviderError(f"JSON file not found: {path}") from exc
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProviderError(f"Failed to read JSON file {path}: {exc}") from exc

        records_path = self.settings.get("records_path")
        if records_path:
            payload = get_specific_value(payload, str(records_path))
            if payload is None:
                raise ProviderError(f"No records found at '{records_path}' in {path}.")

        if isinstance(payload, Mapping):
            payload = list(payload.values())
        if not isinstance(payload, list):
            raise ProviderError(f"Expected a list of records in {path}, got {type(payload).__name__}.")

        rows = []
        for index, record in enumerate(payload):
            if not isinstance(record, Mapping):
                raise ProviderError(f"Record {index} in {path} is not an object.")
            rows.append(dict(record))
        return rows

"""Provider interface shared by every import source backend."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from sync_app.importer.errors import ConfigurationError


class ImportProvider:
    """
    Fetch raw rows for an import source.

    Providers receive the source's settings mapping and return plain dicts;
    keying, transformation and comparison happen downstream.
    """

    name: str = ""
    required_settings: tuple[str, ...] = ()

    def __init__(self, settings: Mapping[str, Any] | None = None) -> None:
        self.settings: dict[str, Any] = dict(settings or {})
        missing = [name for name in self.required_settings if not self.settings.get(name)]
        if missing:
            raise ConfigurationError(f"Provider '{self.name}' is missing required settings: " + ", ".join(missing))

    def fetch_data(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def list_columns(self) -> list[str]:
        columns: dict[str, None] = {}
        for row in self.fetch_data():
            for column in row:
                columns[column] = None
        return list(columns)

    def _resolve_path(self) -> Path:
        return Path(str(self.settings["file_path"])).expanduser()

"""CSV file provider."""

from __future__ import annotations

import csv
from typing import Any

from sync_app.importer.errors import ProviderError

from .base import ImportProvider


def _sanitize_header(header: str | None) -> str:
    token = (header or "").strip()
    return token.lstrip("\ufeff")


def _row_is_blank(row: dict[str, Any]) -> bool:
    return all((value is None or (isinstance(value, str) and value.strip() == "")) for value in row.values())


class CSVFileProvider(ImportProvider):
    """Read rows from a delimited text file with a header line."""

    name = "csv"
    required_settings = ("file_path",)

    def fetch_data(self) -> list[dict[str, Any]]:
        path = self._resolve_path()
        delimiter = str(self.settings.get("delimiter") or ",")
        encoding = str(self.settings.get("encoding") or "utf-8")
        skip_blank = str(self.settings.get("skip_blank_rows", "true")).lower() in ("1", "true", "yes", "on")

        try:
            with path.open("r", encoding=encoding, newline="") as handle:
                reader = csv.DictReader(handle, delimiter=delimiter)
                if reader.fieldnames is None:
                    raise ProviderError(f"CSV file {path} has no header row.")
                reader.fieldnames = [_sanitize_header(header) for header in reader.fieldnames]
                rows = []
                for raw_row in reader:
                    row = {key: value for key, value in raw_row.items() if key is not None}
                    if skip_blank and _row_is_blank(row):
                        continue
                    rows.append(row)
                return rows
        except FileNotFoundError as exc:
            raise ProviderError(f"CSV file not found: {path}") from exc
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise ProviderError(f"Failed to read CSV file {path}: {exc}") from exc

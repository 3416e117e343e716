"""Import providers bundled with the engine."""

from __future__ import annotations

from .base import ImportProvider
from .csv_file import CSVFileProvider
from .json_file import JSONFileProvider

__all__ = [
    "CSVFileProvider",
    "ImportProvider",
    "JSONFileProvider",
]

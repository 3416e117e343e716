"""Importer pipeline: row modifiers, change detection, and source state."""

from __future__ import annotations

from .bundle import dump_bundle, export_import_source, import_import_source, load_bundle
from .chain import RowModifierChain
from .check_service import CheckOutcome, ImportSourceCheckService
from .detector import ChangeDetector, Import, compute_rowset_checksum, key_rows
from .history import fetch_last_run, fetch_last_run_before
from .row_pipeline import RowPipelineSummary, apply_modifier_to_row, apply_modifiers

__all__ = [
    "ChangeDetector",
    "CheckOutcome",
    "Import",
    "ImportSourceCheckService",
    "RowModifierChain",
    "RowPipelineSummary",
    "apply_modifier_to_row",
    "apply_modifiers",
    "compute_rowset_checksum",
    "dump_bundle",
    "export_import_source",
    "fetch_last_run",
    "fetch_last_run_before",
    "import_import_source",
    "key_rows",
    "load_bundle",
]

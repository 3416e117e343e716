"""
Importer-specific SQLAlchemy models: sources, their settings and row
modifiers, and committed import runs.
"""

from .schema import (
    STATE_PROPERTIES,
    ImportRowModifier,
    ImportRowModifierSetting,
    ImportRun,
    ImportSource,
    ImportSourceSetting,
    ImportSourceState,
    RowModifierCache,
)

__all__ = [
    "STATE_PROPERTIES",
    "ImportRowModifier",
    "ImportRowModifierSetting",
    "ImportRun",
    "ImportSource",
    "ImportSourceSetting",
    "ImportSourceState",
    "RowModifierCache",
]

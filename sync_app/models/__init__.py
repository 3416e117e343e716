# sync_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .importer import (
    ImportRowModifier,
    ImportRowModifierSetting,
    ImportRun,
    ImportSource,
    ImportSourceSetting,
    ImportSourceState,
)

__all__ = [
    "db",
    "BaseModel",
    # Importer models
    "ImportSource",
    "ImportSourceSetting",
    "ImportSourceState",
    "ImportRowModifier",
    "ImportRowModifierSetting",
    "ImportRun",
]

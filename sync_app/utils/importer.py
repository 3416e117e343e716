"""
Feature flag helpers for the import source machinery.
"""

from __future__ import annotations

from typing import Iterable, Tuple

from flask import current_app


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_importer_enabled(app=None) -> bool:
    """Return True when IMPORTER_ENABLED is set."""
    config = _get_config(app)
    return bool(config.get("IMPORTER_ENABLED", False))


def get_importer_providers(app=None) -> Tuple[str, ...]:
    """
    Return the provider names import sources may use.

    Accepts a sequence or a comma separated string (as read from the environment).
    """
    config = _get_config(app)
    providers: Iterable[str] | str = config.get("IMPORTER_PROVIDERS", ())
    if isinstance(providers, str):
        providers = providers.split(",")
    return tuple(name.strip().lower() for name in providers if name and name.strip())

"""
Import source machinery.

``init_importer`` validates the configured providers, wires up the Celery
worker and registers the ``flask importer`` CLI group. When
``IMPORTER_ENABLED`` is false only a stub CLI group is registered.
"""

from __future__ import annotations

from typing import Iterable, Tuple

from flask import Flask

from sync_app.utils.importer import get_importer_providers, is_importer_enabled

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_importer_group, importer_cli
from .errors import ConfigurationError, ImporterError, NotFoundError, ProviderError
from .pipeline import CheckOutcome, ImportSourceCheckService
from .registry import ProviderDescriptor, get_provider_registry, resolve_providers

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "get_celery_app",
    "CheckOutcome",
    "ImportSourceCheckService",
    "ImporterError",
    "ConfigurationError",
    "NotFoundError",
    "ProviderError",
]


def _ensure_extension_state(app: Flask) -> dict:
    return app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {
            "enabled": False,
            "configured_providers": (),
            "active_providers": (),
            "worker_enabled": False,
            "celery_app": None,
        },
    )


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the real or the disabled CLI group, replacing any previous one."""
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Record importer state in ``app.extensions['importer']`` and register the CLI.

    Raises ``ValueError`` when ``IMPORTER_PROVIDERS`` names an unknown provider.
    """
    enabled = is_importer_enabled(app)
    configured_providers: Tuple[str, ...] = get_importer_providers(app)

    state = _ensure_extension_state(app)
    state.update(
        {
            "enabled": enabled,
            "configured_providers": configured_providers,
            "worker_enabled": bool(app.config.get("IMPORTER_WORKER_ENABLED", False)),
        }
    )

    if not enabled:
        state["active_providers"] = ()
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    active: Iterable[ProviderDescriptor] = resolve_providers(configured_providers, get_provider_registry())
    state["active_providers"] = tuple(active)
    ensure_celery_app(app, state)
    _set_cli(app, enabled=True)

    provider_names = ", ".join(descriptor.name for descriptor in state["active_providers"]) or "none"
    app.logger.info("Importer enabled with providers: %s", provider_names)

"""
Property modifier registry.

Modifier types are resolved by their registered name when a configured
``ImportRowModifier`` is instantiated; unknown names are configuration errors.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sync_app.importer.errors import ConfigurationError

from .base import PropertyModifier
from .builtin import BUILTIN_MODIFIERS


@dataclass(frozen=True)
class ModifierDescriptor:
    """Metadata describing a registered modifier type."""

    name: str
    title: str
    factory: type[PropertyModifier]
    has_array_support: bool = False
    requires_row: bool = False


_REGISTRY: "OrderedDict[str, ModifierDescriptor]" = OrderedDict()


def register_modifier(modifier_cls: type[PropertyModifier], *, name: str | None = None) -> type[PropertyModifier]:
    """Register ``modifier_cls`` under ``name`` (defaults to its ``name`` attribute)."""
    key = (name or modifier_cls.name).strip().lower()
    if not key:
        raise ValueError(f"Modifier {modifier_cls.__name__} has no registry name.")
    _REGISTRY[key] = ModifierDescriptor(
        name=key,
        title=modifier_cls.title or key,
        factory=modifier_cls,
        has_array_support=modifier_cls.supports_arrays,
        requires_row=modifier_cls.needs_row,
    )
    return modifier_cls


def get_modifier_registry() -> Mapping[str, ModifierDescriptor]:
    return OrderedDict(_REGISTRY)


def create_modifier(
    type_name: str,
    settings: Mapping[str, Any] | None = None,
    *,
    target_property: str | None = None,
) -> PropertyModifier:
    """Instantiate the modifier registered as ``type_name``."""
    descriptor = _REGISTRY.get((type_name or "").strip().lower())
    if descriptor is None:
        raise ConfigurationError(
            f"Unknown property modifier '{type_name}'. Known modifiers: " + ", ".join(_REGISTRY)
        )
    return descriptor.factory(settings, target_property=target_property)


def _register_builtins(modifiers: Iterable[type[PropertyModifier]]) -> None:
    for modifier_cls in modifiers:
        register_modifier(modifier_cls)


_register_builtins(BUILTIN_MODIFIERS)

__all__ = [
    "ModifierDescriptor",
    "PropertyModifier",
    "create_modifier",
    "get_modifier_registry",
    "register_modifier",
]

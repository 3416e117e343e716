"""Derived views over the row modifiers configured for an import source."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from sync_app.importer.modifiers import PropertyModifier

if TYPE_CHECKING:  # pragma: no cover - typing only
    from sync_app.models.importer.schema import ImportRowModifier


@dataclass(frozen=True)
class RowModifierChain:
    """
    Modifier instances for one source, materialized once per load.

    ``flat`` keeps the global (priority, id) order across all properties and
    drives the row pipeline. ``grouped`` maps each property name to its own
    ordered chain.
    """

    flat: tuple[tuple[str, PropertyModifier], ...] = ()

    @classmethod
    def from_records(cls, records: Iterable["ImportRowModifier"]) -> "RowModifierChain":
        return cls(flat=tuple((record.property_name, record.get_instance()) for record in records))

    @cached_property
    def grouped(self) -> Mapping[str, Sequence[PropertyModifier]]:
        grouped: dict[str, list[PropertyModifier]] = {}
        for property_name, modifier in self.flat:
            grouped.setdefault(property_name, []).append(modifier)
        return {name: tuple(modifiers) for name, modifiers in grouped.items()}

    def has_row_modifiers(self) -> bool:
        return bool(self.flat)

    def list_target_properties(self) -> list[str]:
        """Every distinct explicit output field, in first-seen order."""
        targets: dict[str, None] = {}
        for _property_name, modifier in self.flat:
            if modifier.has_target_property():
                targets[modifier.get_target_property()] = None
        return list(targets)

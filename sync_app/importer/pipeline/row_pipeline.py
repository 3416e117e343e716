"""Apply row modifier chains to a keyed dataset of imported rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, MutableMapping

from sync_app.importer.errors import ConfigurationError
from sync_app.importer.modifiers import PropertyModifier
from sync_app.importer.rows import get_specific_value, is_nested_path, is_sequence_value

logger = logging.getLogger(__name__)

Row = MutableMapping[str, Any]


@dataclass
class RowPipelineSummary:
    """Outcome statistics for one pipeline pass over a dataset."""

    rows_in: int = 0
    rows_out: int = 0
    rows_rejected: int = 0
    modifiers_applied: int = 0
    rejected_by_property: dict[str, int] = field(default_factory=dict)


def apply_modifiers(
    data: MutableMapping[Any, Row],
    modifiers: Iterable[tuple[str, PropertyModifier]],
) -> RowPipelineSummary:
    """
    Run every ``(property_name, modifier)`` pair over ``data`` in place.

    Each modifier visits all remaining rows before the next one starts.
    Rows it rejects are removed once its pass completes.
    """
    summary = RowPipelineSummary(rows_in=len(data))

    for property_name, modifier in modifiers:
        rejected: list[Any] = []
        try:
            for key, row in data.items():
                apply_modifier_to_row(modifier, property_name, row)
                if modifier.rejects_row():
                    rejected.append(key)
                    modifier.reject_row(False)
        finally:
            # Cached modifiers must not hold on to the dataset.
            modifier.set_row(None)

        for key in rejected:
            del data[key]

        summary.modifiers_applied += 1
        if rejected:
            summary.rows_rejected += len(rejected)
            summary.rejected_by_property[property_name] = (
                summary.rejected_by_property.get(property_name, 0) + len(rejected)
            )
            logger.debug("Modifier %r on '%s' rejected %d row(s)", modifier, property_name, len(rejected))

    summary.rows_out = len(data)
    return summary


def apply_modifier_to_row(modifier: PropertyModifier, property_name: str, row: Row) -> None:
    """Transform ``row[property_name]`` and write it to the modifier's target."""
    if modifier.requires_row():
        modifier.set_row(row)

    if property_name in row:
        value = row[property_name]
    elif is_nested_path(property_name):
        value = get_specific_value(row, property_name)
    else:
        value = None

    target = modifier.get_target_property(property_name)
    if is_nested_path(target):
        raise ConfigurationError(f'Cannot set value for nested key "{target}"')

    if is_sequence_value(value) and not modifier.has_array_support():
        row[target] = type(value)(modifier.transform(item) for item in value)
    else:
        row[target] = modifier.transform(value)

"""
Export and import of import source configuration bundles.

A bundle carries configuration only: source properties, provider settings
and row modifiers. Run-local state (``import_state``, ``last_error_message``,
``last_attempt``) never leaves or enters through a bundle.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

import yaml
from sqlalchemy.orm import Session

from sync_app.importer.errors import ConfigurationError
from sync_app.importer.modifiers import create_modifier
from sync_app.models import db
from sync_app.models.importer.schema import STATE_PROPERTIES, ImportRowModifier, ImportSource

BUNDLE_VERSION = 1
EXPORT_PROPERTIES: tuple[str, ...] = ("source_name", "provider_class", "key_column", "description")
MODIFIER_PROPERTIES: tuple[str, ...] = ("property_name", "target_property", "provider_class", "priority", "description")


def export_import_source(source: ImportSource) -> dict[str, Any]:
    """Serialize ``source`` configuration into a plain dict."""
    plain: dict[str, Any] = {name: getattr(source, name) for name in EXPORT_PROPERTIES}
    plain["originalId"] = source.id
    plain["settings"] = source.get_settings()
    plain["modifiers"] = [modifier.export() for modifier in source.fetch_row_modifiers()]
    return plain


def import_import_source(plain: Mapping[str, Any], session: Session | None = None) -> ImportSource:
    """
    Create or update an import source from an exported dict.

    An existing source is updated only when both its name and id match the
    bundle's ``source_name`` and ``originalId``; otherwise a new source is
    created. The caller commits.
    """
    session = session or db.session
    properties = dict(plain)
    original_id = properties.pop("originalId", None)
    settings = properties.pop("settings", None) or {}
    modifiers = properties.pop("modifiers", None) or []
    for name in STATE_PROPERTIES:
        properties.pop(name, None)

    unknown = sorted(set(properties) - set(EXPORT_PROPERTIES))
    if unknown:
        raise ConfigurationError("Unknown import source properties in bundle: " + ", ".join(unknown))
    source_name = str(properties.get("source_name") or "").strip()
    if not source_name:
        raise ConfigurationError("Import source bundle entry is missing 'source_name'.")
    properties["source_name"] = source_name
    if not properties.get("provider_class"):
        raise ConfigurationError(f"Import source '{source_name}' is missing 'provider_class'.")
    if not isinstance(settings, Mapping):
        raise ConfigurationError(f"Settings for import source '{source_name}' must be a mapping.")

    # Fail on unknown modifier types or broken settings before anything is touched.
    replacements = _build_row_modifiers(modifiers)

    source = _find_with_name_and_id(session, source_name, original_id)
    if source is None:
        clash = session.query(ImportSource).filter(ImportSource.source_name == source_name).one_or_none()
        if clash is not None:
            raise ConfigurationError(
                f"Import source '{source_name}' already exists with id {clash.id}; "
                f"the bundle refers to id {original_id}."
            )
        source = ImportSource()
        session.add(source)

    for name, value in properties.items():
        setattr(source, name, value)
    source.set_settings(settings)
    source.row_modifiers.clear()
    source.row_modifiers.extend(replacements)
    source.invalidate_row_modifiers()
    return source


def _find_with_name_and_id(session: Session, name: str, original_id: Any) -> ImportSource | None:
    if original_id in (None, ""):
        return None
    try:
        source_id = int(original_id)
    except (TypeError, ValueError):
        return None
    return (
        session.query(ImportSource)
        .filter(ImportSource.id == source_id, ImportSource.source_name == name)
        .one_or_none()
    )


def _coerce_int(value: Any, *, default: int, label: str) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{label} must be an integer, got {value!r}.") from exc


def _build_row_modifiers(modifiers: Sequence[Mapping[str, Any]]) -> list[ImportRowModifier]:
    replacements: list[ImportRowModifier] = []
    for index, entry in enumerate(modifiers):
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"Modifier definition must be a mapping, got {entry!r}")
        values = {name: entry.get(name) for name in MODIFIER_PROPERTIES}
        if not values["property_name"] or not values["provider_class"]:
            raise ConfigurationError(f"Modifier #{index} needs both 'property_name' and 'provider_class'.")
        settings = entry.get("settings") or {}
        create_modifier(values["provider_class"], settings, target_property=values["target_property"])
        record = ImportRowModifier(
            property_name=str(values["property_name"]),
            target_property=values["target_property"] or None,
            provider_class=str(values["provider_class"]),
            priority=_coerce_int(values["priority"], default=index, label=f"Modifier #{index} priority"),
            description=values["description"],
        )
        record.set_settings(settings)
        replacements.append(record)
    return replacements


# Bundle files ------------------------------------------------------------------


def dump_bundle(sources: Iterable[ImportSource]) -> str:
    """Render sources as a YAML bundle document."""
    payload = {
        "version": BUNDLE_VERSION,
        "import_sources": [export_import_source(source) for source in sources],
    }
    return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)


def load_bundle(text: str) -> list[dict[str, Any]]:
    """
    Parse a YAML (or JSON) bundle into import source dicts.

    A bare single-source dict is accepted as well.
    """
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse import source bundle: {exc}") from exc

    if isinstance(raw, Mapping) and "import_sources" in raw:
        version = raw.get("version", BUNDLE_VERSION)
        if _coerce_int(version, default=BUNDLE_VERSION, label="Bundle version") != BUNDLE_VERSION:
            raise ConfigurationError(f"Unsupported bundle version {version}.")
        entries = raw["import_sources"] or []
    elif isinstance(raw, Mapping):
        entries = [raw]
    else:
        raise ConfigurationError("Import source bundle must be a mapping.")

    if not isinstance(entries, list) or not all(isinstance(entry, Mapping) for entry in entries):
        raise ConfigurationError("'import_sources' must be a list of mappings.")
    return [dict(entry) for entry in entries]

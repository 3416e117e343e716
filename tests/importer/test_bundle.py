from datetime import datetime, timezone

import pytest

from sync_app.importer.errors import ConfigurationError
from sync_app.importer.pipeline import dump_bundle, export_import_source, import_import_source, load_bundle
from sync_app.models import db
from sync_app.models.importer.schema import ImportRowModifier, ImportSource, ImportSourceState


@pytest.fixture
def configured_source(source_factory, modifier_factory):
    source = source_factory(source_name="hosts", settings={"file_path": "/data/hosts.json"})
    source.description = "Inventory hosts"
    source.import_state = ImportSourceState.FAILING
    source.last_error_message = "broken"
    source.last_attempt = datetime(2026, 1, 1, tzinfo=timezone.utc)
    db.session.commit()
    modifier_factory(source, "map", "env", settings={"map": {"p": "prod"}, "on_missing": "keep"}, priority=2)
    modifier_factory(source, "uppercase", "name", target_property="name_upper", priority=1)
    return source


def test_export_contains_configuration_only(configured_source):
    exported = export_import_source(configured_source)

    assert exported["source_name"] == "hosts"
    assert exported["provider_class"] == "json"
    assert exported["key_column"] == "name"
    assert exported["description"] == "Inventory hosts"
    assert exported["originalId"] == configured_source.id
    assert exported["settings"] == {"file_path": "/data/hosts.json"}
    for name in ("import_state", "last_error_message", "last_attempt"):
        assert name not in exported
    assert [modifier["provider_class"] for modifier in exported["modifiers"]] == ["uppercase", "map"]
    assert exported["modifiers"][1]["settings"] == {"map": {"p": "prod"}, "on_missing": "keep"}


def test_import_with_matching_name_and_id_updates_in_place(configured_source):
    exported = export_import_source(configured_source)
    exported["description"] = "Updated"
    exported["settings"] = {"file_path": "/data/other.json"}
    exported["modifiers"] = [{"property_name": "name", "provider_class": "lowercase"}]
    exported["import_state"] = "in-sync"

    imported = import_import_source(exported)
    db.session.commit()

    assert imported.id == configured_source.id
    assert db.session.query(ImportSource).count() == 1
    stored = db.session.get(ImportSource, configured_source.id)
    assert stored.description == "Updated"
    assert stored.get_settings() == {"file_path": "/data/other.json"}
    assert [(m.provider_class, m.priority) for m in stored.fetch_row_modifiers()] == [("lowercase", 0)]
    assert db.session.query(ImportRowModifier).count() == 1
    assert stored.import_state is ImportSourceState.FAILING
    assert stored.last_error_message == "broken"


def test_import_without_id_creates_new_source(configured_source):
    exported = export_import_source(configured_source)
    exported.pop("originalId")
    exported["source_name"] = "hosts-copy"

    imported = import_import_source(exported)
    db.session.commit()

    assert imported.id != configured_source.id
    assert imported.import_state is ImportSourceState.UNKNOWN
    assert imported.last_error_message is None
    assert imported.has_row_modifiers()
    assert imported.list_modifier_target_properties() == ["name_upper"]


def test_import_name_clash_with_other_id_is_rejected(configured_source):
    exported = export_import_source(configured_source)
    exported["originalId"] = configured_source.id + 100

    with pytest.raises(ConfigurationError, match="already exists"):
        import_import_source(exported)


def test_import_rejects_unknown_properties_and_modifiers(configured_source):
    with pytest.raises(ConfigurationError, match="Unknown import source properties"):
        import_import_source({"source_name": "x", "provider_class": "json", "colour": "blue"})
    with pytest.raises(ConfigurationError, match="missing 'provider_class'"):
        import_import_source({"source_name": "x"})
    with pytest.raises(ConfigurationError, match="Unknown property modifier"):
        import_import_source(
            {
                "source_name": "x",
                "provider_class": "json",
                "modifiers": [{"property_name": "a", "provider_class": "bogus"}],
            }
        )


def test_yaml_bundle_roundtrip(configured_source):
    document = dump_bundle([configured_source])

    assert "version: 1" in document
    assert "import_state" not in document

    entries = load_bundle(document)
    assert len(entries) == 1
    assert entries[0]["source_name"] == "hosts"


def test_load_bundle_accepts_single_json_source():
    entries = load_bundle('{"source_name": "hosts", "provider_class": "csv"}')
    assert entries == [{"source_name": "hosts", "provider_class": "csv"}]


def test_load_bundle_rejects_bad_documents():
    with pytest.raises(ConfigurationError, match="Unsupported bundle version"):
        load_bundle("version: 7\nimport_sources: []\n")
    with pytest.raises(ConfigurationError, match="must be a mapping"):
        load_bundle("- a\n- b\n")
    with pytest.raises(ConfigurationError, match="Failed to parse"):
        load_bundle("key: [unclosed")

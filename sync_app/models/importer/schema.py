"""
SQLAlchemy models for import sources, their row modifiers, and import runs.

An ``ImportSource`` carries configuration (provider, key column, settings,
row modifiers) alongside run-local state (``import_state``,
``last_error_message``, ``last_attempt``). Only the configuration half is
ever exported; state belongs to the host that performs check cycles.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, reconstructor, relationship

from ..base import BaseModel, db

if TYPE_CHECKING:  # pragma: no cover - typing only
    from sync_app.importer.modifiers import PropertyModifier
    from sync_app.importer.pipeline.chain import RowModifierChain


class ImportSourceState(str, enum.Enum):
    """Lifecycle states recorded after each check cycle."""

    UNKNOWN = "unknown"
    PENDING_CHANGES = "pending-changes"
    IN_SYNC = "in-sync"
    FAILING = "failing"


STATE_PROPERTIES: tuple[str, ...] = ("import_state", "last_error_message", "last_attempt")


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


@dataclass
class RowModifierCache:
    """Holds the derived modifier chain of one ImportSource instance."""

    loaded: bool = False
    chain: "RowModifierChain | None" = None

    def store(self, chain: "RowModifierChain") -> None:
        self.chain = chain
        self.loaded = True

    def invalidate(self) -> None:
        self.chain = None
        self.loaded = False


class ImportSource(BaseModel):
    """A configured external data source and the outcome of its last check."""

    __tablename__ = "import_sources"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    source_name: Mapped[str] = mapped_column(db.String(255), nullable=False, unique=True, index=True)
    provider_class: Mapped[str] = mapped_column(db.String(100), nullable=False)
    key_column: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    import_state: Mapped[ImportSourceState] = mapped_column(
        Enum(ImportSourceState, name="import_source_state_enum", values_callable=_enum_values),
        nullable=False,
        default=ImportSourceState.UNKNOWN,
        index=True,
    )
    last_error_message: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    last_attempt: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    settings = relationship(
        "ImportSourceSetting",
        back_populates="source",
        cascade="all, delete-orphan",
    )
    row_modifiers = relationship(
        "ImportRowModifier",
        back_populates="source",
        cascade="all, delete-orphan",
    )
    runs = relationship(
        "ImportRun",
        back_populates="source",
        cascade="all, delete-orphan",
    )

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("import_state", ImportSourceState.UNKNOWN)
        super().__init__(**kwargs)
        self._row_modifier_cache = RowModifierCache()

    @reconstructor
    def _init_on_load(self) -> None:
        self._row_modifier_cache = RowModifierCache()

    def __repr__(self):
        return f"<ImportSource {self.source_name} state={self.state_value}>"

    @property
    def state_value(self) -> str:
        state = self.import_state
        return state.value if isinstance(state, ImportSourceState) else str(state)

    def has_been_persisted(self) -> bool:
        """True once the row exists in the database (flushed or loaded)."""
        state = inspect(self)
        return self.id is not None and (state.persistent or state.detached)

    # Settings ---------------------------------------------------------------

    def get_settings(self) -> dict[str, str | None]:
        return {setting.setting_name: setting.setting_value for setting in self.settings}

    def get_setting(self, name: str, default: Any = None) -> Any:
        for setting in self.settings:
            if setting.setting_name == name:
                return setting.setting_value
        return default

    def set_setting(self, name: str, value: Any) -> None:
        text = None if value is None else str(value)
        for setting in self.settings:
            if setting.setting_name == name:
                setting.setting_value = text
                return
        self.settings.append(ImportSourceSetting(setting_name=name, setting_value=text))

    def set_settings(self, values: Mapping[str, Any]) -> None:
        """Replace every setting with ``values``."""
        wanted = dict(values)
        for setting in list(self.settings):
            if setting.setting_name not in wanted:
                self.settings.remove(setting)
        for name, value in wanted.items():
            self.set_setting(name, value)

    # Row modifiers ----------------------------------------------------------

    def fetch_row_modifiers(self) -> list["ImportRowModifier"]:
        """Configured modifiers ordered by priority, ties broken by id."""
        return sorted(self.row_modifiers, key=_modifier_sort_key)

    def get_row_modifier_chain(self) -> "RowModifierChain":
        """Return the cached modifier chain, building it on first use."""
        cache = self._row_modifier_cache
        if not cache.loaded:
            from sync_app.importer.pipeline.chain import RowModifierChain

            cache.store(RowModifierChain.from_records(self.fetch_row_modifiers()))
        return cache.chain

    def invalidate_row_modifiers(self) -> None:
        self._row_modifier_cache.invalidate()

    def has_row_modifiers(self) -> bool:
        return self.get_row_modifier_chain().has_row_modifiers()

    def list_modifier_target_properties(self) -> list[str]:
        return self.get_row_modifier_chain().list_target_properties()


@event.listens_for(ImportSource, "refresh")
def _invalidate_on_refresh(target: ImportSource, context, attrs) -> None:
    target.invalidate_row_modifiers()


def _modifier_sort_key(modifier: "ImportRowModifier") -> tuple[int, bool, int]:
    return (modifier.priority or 0, modifier.id is None, modifier.id or 0)


class ImportSourceSetting(BaseModel):
    """Provider configuration value attached to an import source."""

    __tablename__ = "import_source_settings"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        ForeignKey("import_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    setting_name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    setting_value: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    source = relationship("ImportSource", back_populates="settings")

    __table_args__ = (UniqueConstraint("source_id", "setting_name", name="uq_import_source_settings_name"),)


class ImportRowModifier(BaseModel):
    """
    A single property modifier rule configured for an import source.

    ``provider_class`` names the modifier type in the modifier registry,
    ``property_name`` is the field it reads, and ``target_property`` (when
    set) redirects where the transformed value is written.
    """

    __tablename__ = "import_row_modifiers"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        ForeignKey("import_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    target_property: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    provider_class: Mapped[str] = mapped_column(db.String(100), nullable=False)
    priority: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    source = relationship("ImportSource", back_populates="row_modifiers")
    settings = relationship(
        "ImportRowModifierSetting",
        back_populates="row_modifier",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_import_row_modifiers_source_priority", "source_id", "priority"),)

    def __repr__(self):
        return f"<ImportRowModifier {self.provider_class} on {self.property_name} prio={self.priority}>"

    def get_settings(self) -> dict[str, Any]:
        return {setting.setting_name: setting.setting_value for setting in self.settings}

    def set_settings(self, values: Mapping[str, Any]) -> None:
        existing = {setting.setting_name: setting for setting in self.settings}
        for name, setting in existing.items():
            if name not in values:
                self.settings.remove(setting)
        for name, value in values.items():
            if name in existing:
                existing[name].setting_value = value
            else:
                self.settings.append(ImportRowModifierSetting(setting_name=name, setting_value=value))

    def get_instance(self) -> "PropertyModifier":
        """Instantiate the configured modifier type with this rule's settings."""
        from sync_app.importer.modifiers import create_modifier

        return create_modifier(
            self.provider_class,
            self.get_settings(),
            target_property=self.target_property,
        )

    def export(self) -> dict[str, Any]:
        return {
            "originalId": self.id,
            "property_name": self.property_name,
            "target_property": self.target_property,
            "provider_class": self.provider_class,
            "priority": self.priority,
            "description": self.description,
            "settings": self.get_settings(),
        }


class ImportRowModifierSetting(BaseModel):
    """Modifier setting; values are JSON so maps and lists survive."""

    __tablename__ = "import_row_modifier_settings"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    row_modifier_id: Mapped[int] = mapped_column(
        ForeignKey("import_row_modifiers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    setting_name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    setting_value: Mapped[Any] = mapped_column(db.JSON, nullable=True)

    row_modifier = relationship("ImportRowModifier", back_populates="settings")

    __table_args__ = (
        UniqueConstraint("row_modifier_id", "setting_name", name="uq_import_row_modifier_settings_name"),
    )


class ImportRun(BaseModel):
    """A committed import of a source's transformed rowset."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        ForeignKey("import_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    succeeded: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    rowset_checksum: Mapped[str | None] = mapped_column(db.String(64), nullable=True, index=True)
    row_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    rows_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Transformed rows keyed by the source key column.",
    )

    source = relationship("ImportSource", back_populates="runs")

    __table_args__ = (Index("idx_import_runs_source_start", "source_id", "start_time"),)

    def __repr__(self):
        return f"<ImportRun {self.id} source={self.source_id} start={self.start_time}>"

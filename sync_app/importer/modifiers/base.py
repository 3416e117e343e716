"""Base class shared by every property modifier."""

from __future__ import annotations

from typing import Any, Mapping

from sync_app.importer.errors import ConfigurationError


class PropertyModifier:
    """
    Transform a single property value of an imported row.

    Subclasses implement :meth:`transform` and may declare capabilities:

    * ``requires_row`` - the pipeline hands over the full row via
      :meth:`set_row` before every :meth:`transform` call.
    * ``has_array_support`` - list values are passed in whole; otherwise the
      pipeline calls :meth:`transform` once per element.
    * a target property - the result is written to another field than the
      one it was read from.
    * row rejection - :meth:`reject_row` flags the current row for removal.
      The pipeline reads the flag once per row and resets it.
    """

    name: str = ""
    title: str = ""
    required_settings: tuple[str, ...] = ()
    supports_arrays: bool = False
    needs_row: bool = False

    def __init__(self, settings: Mapping[str, Any] | None = None, *, target_property: str | None = None) -> None:
        self.settings: dict[str, Any] = dict(settings or {})
        missing = [name for name in self.required_settings if self.settings.get(name) is None]
        if missing:
            raise ConfigurationError(
                f"Modifier '{self.name or type(self).__name__}' is missing required settings: " + ", ".join(missing)
            )
        self._target_property = target_property or None
        self._row: dict[str, Any] | None = None
        self._rejected = False
        self.setup()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} target={self._target_property!r}>"

    def setup(self) -> None:
        """Validate and pre-compute settings; called once from ``__init__``."""

    def get_setting(self, name: str, default: Any = None) -> Any:
        value = self.settings.get(name)
        return default if value is None else value

    def transform(self, value: Any) -> Any:
        raise NotImplementedError

    # Capabilities -----------------------------------------------------------

    def requires_row(self) -> bool:
        return self.needs_row

    def has_array_support(self) -> bool:
        return self.supports_arrays

    def set_row(self, row: dict[str, Any] | None) -> "PropertyModifier":
        self._row = row
        return self

    def get_row(self) -> dict[str, Any] | None:
        return self._row

    def has_target_property(self) -> bool:
        return self._target_property is not None

    def get_target_property(self, default: str | None = None) -> str | None:
        return self._target_property if self._target_property is not None else default

    def rejects_row(self) -> bool:
        return self._rejected

    def reject_row(self, reject: bool = True) -> "PropertyModifier":
        self._rejected = bool(reject)
        return self

"""Built-in property modifiers."""

from __future__ import annotations

import json
import re
from typing import Any, Iterable

from sync_app.importer.errors import ConfigurationError
from sync_app.importer.rows import get_specific_value, is_sequence_value

from .base import PropertyModifier


def _choice(modifier: PropertyModifier, name: str, choices: Iterable[str], default: str) -> str:
    value = str(modifier.get_setting(name, default))
    allowed = tuple(choices)
    if value not in allowed:
        raise ConfigurationError(
            f"Modifier '{modifier.name}' setting '{name}' must be one of {', '.join(allowed)}; got '{value}'."
        )
    return value


class UppercaseModifier(PropertyModifier):
    name = "uppercase"
    title = "Convert to upper case"

    def transform(self, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class LowercaseModifier(PropertyModifier):
    name = "lowercase"
    title = "Convert to lower case"

    def transform(self, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class TrimModifier(PropertyModifier):
    name = "trim"
    title = "Trim whitespace (or the given characters)"

    def transform(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        characters = self.settings.get("characters")
        return value.strip(characters) if characters else value.strip()


class ReplaceModifier(PropertyModifier):
    name = "replace"
    title = "Replace a substring"
    required_settings = ("string",)

    def transform(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return value.replace(str(self.settings["string"]), str(self.get_setting("replacement", "")))


class RegexReplaceModifier(PropertyModifier):
    name = "regex_replace"
    title = "Regular expression based replacement"
    required_settings = ("pattern",)

    def setup(self) -> None:
        try:
            self._pattern = re.compile(str(self.settings["pattern"]))
        except re.error as exc:
            raise ConfigurationError(f"Invalid regular expression '{self.settings['pattern']}': {exc}") from exc

    def transform(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return self._pattern.sub(str(self.get_setting("replacement", "")), value)


class SubstringModifier(PropertyModifier):
    name = "substring"
    title = "Extract a substring"
    required_settings = ("start",)

    def setup(self) -> None:
        try:
            self._start = int(self.settings["start"])
            length = self.settings.get("length")
            self._length = None if length in (None, "") else int(length)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Substring offsets must be integers: {exc}") from exc

    def transform(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        start = self._start
        if start < 0:
            start = max(len(value) + start, 0)
        if self._length is None:
            return value[start:]
        if self._length < 0:
            return value[start : len(value) + self._length]
        return value[start : start + self._length]


class StripDomainModifier(PropertyModifier):
    name = "strip_domain"
    title = "Strip a domain suffix"
    required_settings = ("domain",)

    def transform(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        suffix = "." + str(self.settings["domain"]).lstrip(".")
        if value.lower().endswith(suffix.lower()):
            return value[: -len(suffix)]
        return value


class SplitModifier(PropertyModifier):
    name = "split"
    title = "Split a string into a list"

    def setup(self) -> None:
        self._when_empty = _choice(self, "when_empty", ("empty_array", "null"), "empty_array")

    def transform(self, value: Any) -> Any:
        if value is None or value == "":
            return [] if self._when_empty == "empty_array" else None
        delimiter = self.get_setting("delimiter", ",")
        return [part.strip() for part in str(value).split(delimiter)]


class JoinModifier(PropertyModifier):
    name = "join"
    title = "Join list elements into a string"
    supports_arrays = True

    def transform(self, value: Any) -> Any:
        if value is None:
            return None
        glue = str(self.get_setting("glue", ","))
        if is_sequence_value(value):
            return glue.join("" if item is None else str(item) for item in value)
        return str(value)


class ToIntModifier(PropertyModifier):
    name = "to_int"
    title = "Cast to integer"

    def setup(self) -> None:
        self._on_failure = _choice(self, "on_failure", ("null", "keep", "fail"), "null")

    def transform(self, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            if self._on_failure == "keep":
                return value
            if self._on_failure == "fail":
                raise ValueError(f"'{value}' is not an integer")
            return None


class JsonDecodeModifier(PropertyModifier):
    name = "json_decode"
    title = "Decode a JSON string"

    def setup(self) -> None:
        self._on_failure = _choice(self, "on_failure", ("null", "keep", "fail"), "fail")

    def transform(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except json.JSONDecodeError as exc:
            if self._on_failure == "keep":
                return value
            if self._on_failure == "null":
                return None
            raise ValueError(f"Invalid JSON: {exc}") from exc


class MapModifier(PropertyModifier):
    name = "map"
    title = "Look up values in a map"
    required_settings = ("map",)

    def setup(self) -> None:
        mapping = self.settings["map"]
        if not isinstance(mapping, dict):
            raise ConfigurationError("Map modifier setting 'map' must be a mapping.")
        self._map = {str(key): value for key, value in mapping.items()}
        self._on_missing = _choice(self, "on_missing", ("null", "keep", "default", "fail", "reject"), "null")

    def transform(self, value: Any) -> Any:
        key = "" if value is None else str(value)
        if key in self._map:
            return self._map[key]
        if self._on_missing == "keep":
            return value
        if self._on_missing == "default":
            return self.settings.get("default")
        if self._on_missing == "fail":
            raise ValueError(f"No mapping found for '{key}'")
        if self._on_missing == "reject":
            self.reject_row()
        return None


class _ValueMatcher:
    methods = ("equals", "regex", "is_null", "is_not_null", "in_list")

    def __init__(self, modifier: PropertyModifier) -> None:
        self.method = _choice(modifier, "filter_method", self.methods, "equals")
        raw = modifier.settings.get("filter_string")
        if self.method in ("equals", "regex", "in_list") and raw is None:
            raise ConfigurationError(f"Modifier '{modifier.name}' requires 'filter_string' for '{self.method}'.")
        self._regex = None
        self._choices: frozenset[str] = frozenset()
        if self.method == "regex":
            try:
                self._regex = re.compile(str(raw))
            except re.error as exc:
                raise ConfigurationError(f"Invalid regular expression '{raw}': {exc}") from exc
        elif self.method == "in_list":
            items = raw if isinstance(raw, list) else str(raw).split(",")
            self._choices = frozenset(str(item).strip() for item in items)
        self._expected = raw

    def matches(self, value: Any) -> bool:
        if self.method == "is_null":
            return value is None
        if self.method == "is_not_null":
            return value is not None
        if value is None:
            return False
        if self.method == "regex":
            return self._regex.search(str(value)) is not None
        if self.method == "in_list":
            return str(value) in self._choices
        return str(value) == str(self._expected)


class RejectOrSelectModifier(PropertyModifier):
    name = "reject_or_select"
    title = "Reject or select rows by value"

    def setup(self) -> None:
        self._matcher = _ValueMatcher(self)
        self._policy = _choice(self, "policy", ("reject_matching", "keep_matching"), "reject_matching")

    def transform(self, value: Any) -> Any:
        matched = self._matcher.matches(value)
        if matched == (self._policy == "reject_matching"):
            self.reject_row()
        return value


class ArrayFilterModifier(PropertyModifier):
    name = "array_filter"
    title = "Filter list elements"
    supports_arrays = True

    def setup(self) -> None:
        self._matcher = _ValueMatcher(self)
        self._policy = _choice(self, "policy", ("keep_matching", "reject_matching"), "keep_matching")
        self._when_empty = _choice(self, "when_empty", ("empty_array", "null"), "empty_array")

    def transform(self, value: Any) -> Any:
        if value is None:
            items: list[Any] = []
        elif is_sequence_value(value):
            items = list(value)
        else:
            items = [value]
        keep = self._policy == "keep_matching"
        filtered = [item for item in items if self._matcher.matches(item) == keep]
        if not filtered and self._when_empty == "null":
            return None
        return filtered


class CombineModifier(PropertyModifier):
    """Build a value from other row fields: ``${first} ${address.city}``."""

    name = "combine"
    title = "Combine multiple properties"
    required_settings = ("pattern",)
    needs_row = True

    _placeholder = re.compile(r"\$\{([^}]+)\}")

    def transform(self, value: Any) -> Any:
        row = self.get_row() or {}

        def _replace(match: re.Match) -> str:
            found = get_specific_value(row, match.group(1).strip())
            return "" if found is None else str(found)

        return self._placeholder.sub(_replace, str(self.settings["pattern"]))


BUILTIN_MODIFIERS: tuple[type[PropertyModifier], ...] = (
    UppercaseModifier,
    LowercaseModifier,
    TrimModifier,
    ReplaceModifier,
    RegexReplaceModifier,
    SubstringModifier,
    StripDomainModifier,
    SplitModifier,
    JoinModifier,
    ToIntModifier,
    JsonDecodeModifier,
    MapModifier,
    RejectOrSelectModifier,
    ArrayFilterModifier,
    CombineModifier,
)

"""Typed, consumption-tracking views over nested config mappings."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable

_REQUIRED = object()


def _child_path(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else key


def _clean_key(key: Any) -> str:
    if isinstance(key, str) and key.strip():
        return key.strip()
    raise TypeError("ConfigNamespace key must be a non-empty string")


def _type_name(value: Any) -> str:
    return type(value).__name__


def _check_range(label: str, value: Any, low: Any, high: Any) -> None:
    if low is not None and value < low:
        raise ValueError(f"{label} must be >= {low} (got {value})")
    if high is not None and value > high:
        raise ValueError(f"{label} must be <= {high} (got {value})")


class ConfigNamespace:
    """Typed accessors over one config mapping.

    Every accessor marks its key as consumed. `unconsumed_paths()` then reports
    keys nobody asked for, so callers can warn about (or reject) typos.
    """

    def __init__(self, data: Mapping[str, Any], path: str = ""):
        self.data = data
        self.path = path
        self._seen: set[str] = set()
        self._sections: dict[str, ConfigNamespace] = {}
        self._resolved: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"ConfigNamespace(path={self.path!r}, keys={sorted(map(str, self.data))!r})"

    def unconsumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(str(key) for key in self.data if key not in self._seen))

    def unconsumed_paths(self) -> tuple[str, ...]:
        """Dotted paths of every unknown key, including nested namespaces."""

        paths = [_child_path(self.path, key) for key in self.unconsumed_keys()]
        for section in self._sections.values():
            paths += section.unconsumed_paths()
        return tuple(paths)

    def assert_consumed(self) -> None:
        leftover = self.unconsumed_paths()
        if leftover:
            raise ValueError(f"Unknown config keys: {', '.join(leftover)}")

    def effective_values(self) -> dict[str, Any]:
        """Values handed out so far (defaults included), nested by section."""

        resolved = dict(self._resolved)
        for name, section in self._sections.items():
            nested = section.effective_values()
            if nested:
                resolved[name] = nested
        return resolved

    def namespace(self, key: str, *, default: Mapping[str, Any] | None | object = _REQUIRED) -> "ConfigNamespace":
        name = _clean_key(key)
        cached = self._sections.get(name)
        if cached is not None:
            return cached

        label = _child_path(self.path, name)
        value = self.data.get(name)
        if value is None:
            if default is _REQUIRED:
                raise ValueError(f"Missing required config namespace: {label}")
            if not (default is None or isinstance(default, Mapping)):
                raise TypeError(f"default for {label} must be a mapping or None")
            value = default or {}
        elif not isinstance(value, Mapping):
            raise TypeError(f"{label} must be a mapping (type={_type_name(value)})")

        self._seen.add(name)
        section = self._sections[name] = ConfigNamespace(dict(value), path=label)
        return section

    def get_raw(self, key: str, *, default: Any = _REQUIRED) -> Any:
        name = _clean_key(key)
        label = _child_path(self.path, name)
        if name in self._sections:
            raise ValueError(f"{label} already accessed as a nested namespace")
        self._seen.add(name)
        if name in self.data:
            return self.data[name]
        if default is _REQUIRED:
            raise ValueError(f"Missing required config key: {label}")
        return default

    def _lookup(self, key: str, default: Any) -> tuple[str, str, Any]:
        value = self.get_raw(key, default=default)
        name = _clean_key(key)
        return name, _child_path(self.path, name), value

    def _keep(self, name: str, value: Any) -> Any:
        self._resolved[name] = value
        return value

    def get_bool(self, key: str, *, default: bool | object = _REQUIRED) -> bool:
        name, label, value = self._lookup(key, default)
        if isinstance(value, bool):
            return self._keep(name, value)
        raise TypeError(f"{label} must be a boolean (type={_type_name(value)})")

    def get_int(
        self,
        key: str,
        *,
        default: int | object = _REQUIRED,
        min_value: int | None = None,
        max_value: int | None = None,
    ) -> int:
        name, label, value = self._lookup(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{label} must be an int (type={_type_name(value)})")
        _check_range(label, value, min_value, max_value)
        return self._keep(name, value)

    def get_float(
        self,
        key: str,
        *,
        default: float | object = _REQUIRED,
        min_value: float | None = None,
        max_value: float | None = None,
    ) -> float:
        name, label, value = self._lookup(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{label} must be a float (type={_type_name(value)})")
        number = float(value)
        _check_range(
            label,
            number,
            None if min_value is None else float(min_value),
            None if max_value is None else float(max_value),
        )
        return self._keep(name, number)

    def get_str(
        self,
        key: str,
        *,
        default: str | None | object = _REQUIRED,
        allow_empty: bool = False,
        choices: Iterable[str] | None = None,
    ) -> str | None:
        name, label, value = self._lookup(key, default)
        if value is None:
            return self._keep(name, None)
        if not isinstance(value, str):
            raise TypeError(f"{label} must be a string (type={_type_name(value)})")
        text = value.strip()
        if not (text or allow_empty):
            raise ValueError(f"{label} cannot be empty")
        allowed = None if choices is None else tuple(choices)
        if allowed is not None and text not in allowed:
            raise ValueError(f"{label} must be one of: {', '.join(allowed)} (got {text!r})")
        return self._keep(name, text)

    def get_list(self, key: str, *, default: list[Any] | tuple[Any, ...] | object = _REQUIRED) -> list[Any]:
        name, label, value = self._lookup(key, default)
        if value is None:
            return self._keep(name, [])
        if isinstance(value, (list, tuple)):
            return self._keep(name, list(value))
        raise TypeError(f"{label} must be a list (type={_type_name(value)})")

    def get_list_str(self, key: str, *, default: list[str] | tuple[str, ...] | object = _REQUIRED) -> list[str]:
        items = self.get_list(key, default=default)
        name = _clean_key(key)
        label = _child_path(self.path, name)
        bad = next((idx for idx, item in enumerate(items) if not isinstance(item, str) or not item.strip()), None)
        if bad is not None:
            raise ValueError(f"{label}[{bad}] must be a non-empty string")
        return self._keep(name, [item.strip() for item in items])

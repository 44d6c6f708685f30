"""Effective settings for a workspace: built-in defaults overlaid by ``.colb.toml``."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

from .config_loader import (
    DECODE_ERRORS,
    find_config_files,
    load_config_file,
    normalize_string_list,
    require_bool,
    require_choice,
    require_int,
)
from .errors import ConfigExistsError, ConfigParseError

CONFIG_STEM = ".colb"
CONFIG_FILENAME = f"{CONFIG_STEM}.toml"

BUILD_TYPES = ("Debug", "Release", "RelWithDebInfo", "MinSizeRel")
DEPENDENCY_SOURCES = ("colcon", "manifest")
DEFAULT_MIXINS = ("ccache", "ninja", "mold")
EXTENSION_MIXINS = ("compile-commands",)


def _unique(values: List[str]) -> Tuple[str, ...]:
    ordered: List[str] = []
    for value in values:
        if value not in ordered:
            ordered.append(value)
    return tuple(ordered)


@dataclass(slots=True, frozen=True)
class EffectiveConfig:
    dependency_build_args: Tuple[str, ...] = ()
    package_build_args: Tuple[str, ...] = ()
    enabled_mixins: Tuple[str, ...] = DEFAULT_MIXINS
    extra_colcon_extensions: bool = True
    build_type: str = "Debug"
    parallel_jobs: int = 8
    cmake_args: Tuple[str, ...] = ()
    dependency_build_tests: bool = False
    package_build_tests: bool = True
    build_base: str = "build"
    install_base: str = "install"
    dependency_source: str = "colcon"

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(item.name for item in fields(cls))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EffectiveConfig":
        """Overlay ``data`` onto the defaults, one field at a time."""

        unknown = sorted(str(key) for key in data if key not in cls.field_names())
        if unknown:
            allowed = ", ".join(cls.field_names())
            raise ValueError(f"unknown option(s) {', '.join(unknown)} (recognized: {allowed})")

        overrides: Dict[str, Any] = {}
        for key in ("dependency_build_args", "package_build_args", "cmake_args"):
            if key in data:
                overrides[key] = tuple(normalize_string_list(data[key], field_name=key))
        if "enabled_mixins" in data:
            overrides["enabled_mixins"] = _unique(
                normalize_string_list(data["enabled_mixins"], field_name="enabled_mixins")
            )
        for key in ("extra_colcon_extensions", "dependency_build_tests", "package_build_tests"):
            if key in data:
                overrides[key] = require_bool(data[key], field_name=key)
        if "build_type" in data:
            overrides["build_type"] = require_choice(data["build_type"], field_name="build_type", choices=BUILD_TYPES)
        if "parallel_jobs" in data:
            overrides["parallel_jobs"] = require_int(data["parallel_jobs"], field_name="parallel_jobs")
        for key in ("build_base", "install_base"):
            if key in data:
                value = data[key]
                if not isinstance(value, str) or not value.strip():
                    raise TypeError(f"{key} must be a non-empty string")
                if Path(value).is_absolute():
                    raise ValueError(f"{key} must be a path relative to the workspace root")
                overrides[key] = value.strip()
        if "dependency_source" in data:
            overrides["dependency_source"] = require_choice(
                data["dependency_source"], field_name="dependency_source", choices=DEPENDENCY_SOURCES
            )
        return replace(cls(), **overrides)

    def to_mapping(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name in self.field_names():
            value = getattr(self, name)
            data[name] = list(value) if isinstance(value, tuple) else value
        return data

    @property
    def mixins(self) -> Tuple[str, ...]:
        """Mixins applied to colcon builds, extensions included."""

        extra = list(EXTENSION_MIXINS) if self.extra_colcon_extensions else []
        return _unique([*self.enabled_mixins, *extra])


def config_path(workspace_root: Path) -> Path | None:
    """Return the override file of ``workspace_root``, if there is one."""

    found = find_config_files(workspace_root, CONFIG_STEM)
    if len(found) > 1:
        names = ", ".join(path.name for path in found)
        raise ConfigParseError(workspace_root, f"multiple configuration files found ({names}); keep only one")
    return found[0] if found else None


def load(workspace_root: Path) -> EffectiveConfig:
    path = config_path(workspace_root)
    if path is None:
        return EffectiveConfig()
    try:
        data = load_config_file(path)
        return EffectiveConfig.from_mapping(data)
    except (*DECODE_ERRORS, TypeError, ValueError) as exc:
        raise ConfigParseError(path, str(exc)) from exc


_TOML_ESCAPES = {"\\": "\\\\", '"': '\\"', "\b": "\\b", "\t": "\\t", "\n": "\\n", "\f": "\\f", "\r": "\\r"}


def _escape_toml_string(value: str) -> str:
    escaped: List[str] = []
    for char in value:
        if char in _TOML_ESCAPES:
            escaped.append(_TOML_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\u{ord(char):04X}")
        else:
            escaped.append(char)
    return "".join(escaped)


def _format_toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape_toml_string(value)}"'
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_toml_value(item) for item in value) + "]"
    raise TypeError(f"Cannot represent {type(value).__name__} in TOML")


def dumps_toml(data: Mapping[str, Any]) -> str:
    """Render a flat mapping of scalars and lists as TOML."""

    lines = [f"{key} = {_format_toml_value(value)}" for key, value in data.items()]
    return "\n".join(lines) + "\n"


def write_defaults(workspace_root: Path, *, force: bool = False) -> Path:
    path = workspace_root / CONFIG_FILENAME
    existing = find_config_files(workspace_root, CONFIG_STEM)
    # --force only replaces the TOML file, never a config written in another format
    if existing and (not force or existing != [path]):
        raise ConfigExistsError(existing[0])
    path.write_text(dumps_toml(EffectiveConfig().to_mapping()), encoding="utf-8")
    return path


__all__ = [
    "BUILD_TYPES",
    "CONFIG_FILENAME",
    "CONFIG_STEM",
    "DEFAULT_MIXINS",
    "EffectiveConfig",
    "config_path",
    "dumps_toml",
    "load",
    "write_defaults",
]

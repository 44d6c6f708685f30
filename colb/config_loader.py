"""Helpers for locating and decoding configuration mappings."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence

import json
import tomllib

try:  # Optional dependency for YAML support
    import yaml
except ModuleNotFoundError:  # pragma: no cover - exercised when PyYAML absent
    yaml = None


ConfigLoader = Callable[[Any], Mapping[str, Any]]


def _raise_yaml_missing() -> Mapping[str, Any]:
    raise RuntimeError(
        "PyYAML is required to load YAML configuration files. Install with `pip install PyYAML`."
    )


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
    ".yml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
}
"""Mapping of file suffixes to loader callables."""

DECODE_ERRORS: tuple[type[Exception], ...] = (tomllib.TOMLDecodeError, json.JSONDecodeError, UnicodeDecodeError)
if yaml is not None:
    DECODE_ERRORS = (*DECODE_ERRORS, yaml.YAMLError)


def candidate_names(stem: str) -> tuple[str, ...]:
    """Return the file names ``stem`` may take, in order of preference."""

    return tuple(f"{stem}{suffix}" for suffix in FILE_LOADERS)


def find_config_files(directory: Path, stem: str) -> List[Path]:
    """Return the existing configuration files named ``stem`` within ``directory``."""

    found: List[Path] = []
    for name in candidate_names(stem):
        path = directory / name
        if path.is_file():
            found.append(path)
    return found


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``.

    An empty TOML or YAML file decodes to an empty mapping.
    """

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS)) or "<none>"
        raise ValueError(
            f"Unsupported configuration file extension: {suffix}. Supported: {supported}"
        )

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    with path.open(mode, **kwargs) as handle:
        data = loader(handle)

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")

    return data


def normalize_string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Coerce ``value`` into a list of trimmed strings."""

    if value is None:
        return []

    if isinstance(value, (str, bytes)):
        text = str(value).strip()
        return [text] if text else []

    if isinstance(value, Sequence):
        items: List[str] = []
        for item in value:
            if not isinstance(item, (str, bytes)):
                label = f"{field_name} " if field_name else ""
                raise TypeError(f"{label}entries must be strings")
            text = str(item).strip()
            if text:
                items.append(text)
        return items

    label = f"{field_name} " if field_name else ""
    raise TypeError(f"{label}must be a string or sequence of strings")


def require_bool(value: Any, *, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{field_name} must be a boolean")
    return value


def require_int(value: Any, *, field_name: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field_name} must be an integer")
    if value < minimum:
        raise ValueError(f"{field_name} must be at least {minimum}")
    return value


def require_choice(value: Any, *, field_name: str, choices: Sequence[str]) -> str:
    text = str(value).strip() if isinstance(value, str) else None
    if text not in choices:
        allowed = ", ".join(choices)
        raise ValueError(f"{field_name} must be one of: {allowed}")
    return text


__all__ = [
    "ConfigLoader",
    "DECODE_ERRORS",
    "FILE_LOADERS",
    "candidate_names",
    "find_config_files",
    "load_config_file",
    "normalize_string_list",
    "require_bool",
    "require_choice",
    "require_int",
]

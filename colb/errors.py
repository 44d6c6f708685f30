"""Error types raised while resolving and running a colb invocation."""
from __future__ import annotations


class ColbError(RuntimeError):
    """Base class for every error colb reports to the user."""


class WorkspaceNotFoundError(ColbError):
    def __init__(self, start_dir: str, markers: tuple[str, ...] = ()):
        if markers:
            message = (
                f"No workspace found from '{start_dir}' upwards (looked for {', '.join(markers)}). "
                "Run 'colb init' in the workspace root or pass --workspace."
            )
        else:
            message = f"Workspace directory '{start_dir}' does not exist"
        super().__init__(message)
        self.start_dir = start_dir


class UnknownPackageError(ColbError):
    def __init__(self, name: str, available: list[str]):
        listing = ", ".join(sorted(available)) or "<none>"
        super().__init__(f"Package '{name}' not found in workspace. Available packages: {listing}")
        self.name = name


class AmbiguousPackageError(ColbError):
    """Raised when no single package can be derived from the environment."""


class ConfigParseError(ColbError):
    def __init__(self, path: object, reason: str):
        super().__init__(f"Could not parse config file '{path}': {reason}")
        self.path = path
        self.reason = reason


class ConfigExistsError(ColbError):
    def __init__(self, path: object):
        super().__init__(f"Will not overwrite '{path}' without --force")
        self.path = path


class DependencyQueryError(ColbError):
    """Raised when the dependency closure of a package set cannot be determined."""


class BuildOutputMissingError(ColbError):
    def __init__(self, package: str, build_dir: object):
        super().__init__(
            f"No build output for '{package}' at '{build_dir}'. "
            f"Build it first with 'colb build {package}'."
        )
        self.package = package
        self.build_dir = build_dir


class ConflictingModifiersError(ColbError):
    """Raised when command line modifiers contradict each other."""


class ExternalCommandFailed(ColbError):
    def __init__(self, exit_code: int, description: str | None = None):
        label = f"'{description}' " if description else ""
        super().__init__(f"Step {label}failed with exit code {exit_code}")
        self.exit_code = exit_code
        self.description = description


__all__ = [
    "AmbiguousPackageError",
    "BuildOutputMissingError",
    "ColbError",
    "ConfigExistsError",
    "ConfigParseError",
    "ConflictingModifiersError",
    "DependencyQueryError",
    "ExternalCommandFailed",
    "UnknownPackageError",
    "WorkspaceNotFoundError",
]

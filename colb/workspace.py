"""Workspace root discovery and package resolution.

The workspace root is the nearest directory, walking upwards from the
start directory, that holds a colb configuration file. Packages are the
directories beneath it carrying a ``package.xml`` manifest, found the way
colcon discovers them: hidden directories, the build/install/log bases and
anything below a ``COLCON_IGNORE`` file are skipped, and the search does not
descend into a package once one is found.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Sequence, Tuple
import os
import xml.etree.ElementTree as ElementTree

from .config import CONFIG_STEM
from .config_loader import candidate_names
from .errors import (
    AmbiguousPackageError,
    ConflictingModifiersError,
    UnknownPackageError,
    WorkspaceNotFoundError,
)

MANIFEST_NAME = "package.xml"
IGNORE_MARKER = "COLCON_IGNORE"
CWD_PACKAGE = "."

WORKSPACE_MARKERS: Tuple[str, ...] = candidate_names(CONFIG_STEM)

DEPENDENCY_TAGS = (
    "depend",
    "build_depend",
    "buildtool_depend",
    "build_export_depend",
    "test_depend",
)


@dataclass(slots=True, frozen=True)
class WorkspaceRoot:
    path: Path
    marker: Path | None = None

    @classmethod
    def explicit(cls, path: Path) -> "WorkspaceRoot":
        """A root named on the command line, used without searching."""

        resolved = path.expanduser().resolve()
        if not resolved.is_dir():
            raise WorkspaceNotFoundError(str(resolved))
        marker = next((resolved / name for name in WORKSPACE_MARKERS if (resolved / name).is_file()), None)
        return cls(path=resolved, marker=marker)


@dataclass(slots=True, frozen=True, order=True)
class PackageRef:
    name: str
    source_dir: PurePosixPath

    def absolute_source_dir(self, root: WorkspaceRoot) -> Path:
        return root.path.joinpath(*self.source_dir.parts)

    def build_dir(self, root: WorkspaceRoot, build_base: str) -> Path:
        return root.path / build_base / self.name


@dataclass(slots=True)
class PackageManifest:
    ref: PackageRef
    path: Path
    dependencies: Tuple[str, ...] | None = None
    error: str | None = None


def parse_manifest(path: Path) -> Tuple[str, Tuple[str, ...] | None, str | None]:
    """Return ``(name, dependencies, error)`` for the manifest at ``path``.

    The package name falls back to the directory name when the manifest
    cannot be read or names no package; dependencies are ``None`` then.
    """

    fallback = path.parent.name
    try:
        tree = ElementTree.parse(path)
    except (ElementTree.ParseError, OSError) as exc:
        return fallback, None, str(exc)

    root = tree.getroot()
    name_text = (root.findtext("name") or "").strip()
    dependencies: List[str] = []
    for tag in DEPENDENCY_TAGS:
        for element in root.iter(tag):
            text = (element.text or "").strip()
            if text and text not in dependencies:
                dependencies.append(text)
    return name_text or fallback, tuple(dependencies), None


@dataclass(slots=True)
class PackageIndex:
    root: WorkspaceRoot
    manifests: Dict[str, PackageManifest] = field(default_factory=dict)

    @classmethod
    def scan(cls, root: WorkspaceRoot, *, skip: Iterable[str] = ("build", "install", "log")) -> "PackageIndex":
        skipped_at_root = {PurePosixPath(Path(entry).as_posix()) for entry in skip}
        manifests: Dict[str, PackageManifest] = {}

        for current, dirnames, filenames in os.walk(root.path):
            current_path = Path(current)
            relative = PurePosixPath(current_path.relative_to(root.path).as_posix())
            if IGNORE_MARKER in filenames:
                dirnames[:] = []
                continue
            if MANIFEST_NAME in filenames:
                manifest_path = current_path / MANIFEST_NAME
                name, dependencies, error = parse_manifest(manifest_path)
                if name in manifests:
                    other = manifests[name].ref.source_dir
                    raise AmbiguousPackageError(
                        f"Package name '{name}' is declared twice: '{other}' and '{relative}'"
                    )
                manifests[name] = PackageManifest(
                    ref=PackageRef(name=name, source_dir=relative),
                    path=manifest_path,
                    dependencies=dependencies,
                    error=error,
                )
                dirnames[:] = []
                continue
            dirnames[:] = sorted(
                entry
                for entry in dirnames
                if not entry.startswith(".") and (relative / entry) not in skipped_at_root
            )

        return cls(root=root, manifests=manifests)

    def names(self) -> List[str]:
        return sorted(self.manifests)

    def get(self, name: str) -> PackageRef:
        manifest = self.manifests.get(name)
        if manifest is None:
            raise UnknownPackageError(name, self.names())
        return manifest.ref

    def __contains__(self, name: object) -> bool:
        return name in self.manifests

    def containing(self, directory: Path) -> PackageRef | None:
        """Return the package whose source tree is the nearest ancestor of ``directory``."""

        try:
            relative = directory.resolve().relative_to(self.root.path)
        except ValueError:
            return None
        by_source = {manifest.ref.source_dir: manifest.ref for manifest in self.manifests.values()}
        candidate = PurePosixPath(relative.as_posix())
        for path in (candidate, *candidate.parents):
            ref = by_source.get(path)
            if ref is not None:
                return ref
        return None


def locate(start_dir: Path) -> WorkspaceRoot:
    origin = start_dir.expanduser().resolve()
    for candidate in (origin, *origin.parents):
        for name in WORKSPACE_MARKERS:
            marker = candidate / name
            if marker.is_file():
                return WorkspaceRoot(path=candidate, marker=marker)
    raise WorkspaceNotFoundError(str(origin), WORKSPACE_MARKERS)


def _ambient_package(index: PackageIndex, start_dir: Path) -> PackageRef | None:
    return index.containing(start_dir)


def resolve_package(
    workspace_root: WorkspaceRoot,
    start_dir: Path,
    explicit_name: str | None = None,
    *,
    index: PackageIndex | None = None,
) -> PackageRef:
    index = index if index is not None else PackageIndex.scan(workspace_root)
    if explicit_name is not None:
        return index.get(explicit_name)

    ref = _ambient_package(index, start_dir)
    if ref is None:
        raise AmbiguousPackageError(
            f"Could not detect a package from '{start_dir}', try specifying it explicitly!"
        )
    return ref


def resolve_packages(
    workspace_root: WorkspaceRoot,
    start_dir: Path,
    names: Sequence[str],
    *,
    index: PackageIndex | None = None,
) -> List[PackageRef]:
    """Resolve the primary packages of an invocation.

    Without names the package is derived from ``start_dir``. Explicit names
    take priority and keep their command line order. ``.`` stands for the
    package at ``start_dir`` and cannot be combined with other names.
    """

    index = index if index is not None else PackageIndex.scan(workspace_root)
    requested = [name.strip() for name in names if name.strip()]
    explicit = [name for name in requested if name != CWD_PACKAGE]

    if CWD_PACKAGE in requested and explicit:
        raise ConflictingModifiersError(
            f"Cannot combine '{CWD_PACKAGE}' (package at the current directory) with explicit packages: "
            + ", ".join(explicit)
        )
    if not explicit:
        return [resolve_package(workspace_root, start_dir, index=index)]

    resolved: List[PackageRef] = []
    for name in explicit:
        ref = resolve_package(workspace_root, start_dir, name, index=index)
        if ref not in resolved:
            resolved.append(ref)
    return resolved


__all__ = [
    "CWD_PACKAGE",
    "DEPENDENCY_TAGS",
    "MANIFEST_NAME",
    "PackageIndex",
    "PackageManifest",
    "PackageRef",
    "WORKSPACE_MARKERS",
    "WorkspaceRoot",
    "locate",
    "parse_manifest",
    "resolve_package",
    "resolve_packages",
]

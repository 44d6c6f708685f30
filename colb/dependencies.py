"""Transitive build dependency lookup for a set of workspace packages.

The answer is a set of package names. Names reported by colcon are taken as
they come: colcon also discovers packages that carry no ``package.xml``.
"""
from __future__ import annotations

from typing import Iterable, List, Set
import re

from .command_runner import CommandError, CommandRunner
from .errors import DependencyQueryError
from .workspace import PackageIndex, PackageRef

_PACKAGE_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")


class DependencyQuery:
    """Answers which packages must be built before a set of packages."""

    def dependencies_of(self, package_refs: Iterable[PackageRef]) -> Set[str]:
        raise NotImplementedError


class ColconDependencyQuery(DependencyQuery):
    """Asks ``colcon list`` for the packages up to the requested ones."""

    def __init__(self, index: PackageIndex, runner: CommandRunner, *, executable: str = "colcon") -> None:
        self._index = index
        self._runner = runner
        self._executable = executable

    def command(self, package_refs: Iterable[PackageRef]) -> List[str]:
        names = [ref.name for ref in package_refs]
        return [self._executable, "list", "--names-only", "--packages-up-to", *names]

    def dependencies_of(self, package_refs: Iterable[PackageRef]) -> Set[str]:
        requested = list(package_refs)
        if not requested:
            return set()
        command = self.command(requested)
        try:
            result = self._runner.capture(command, cwd=self._index.root.path, note="Query dependencies")
        except CommandError as exc:
            raise DependencyQueryError(f"Dependency query failed: {exc}") from exc
        except OSError as exc:
            raise DependencyQueryError(f"Could not run '{self._executable}': {exc}") from exc

        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not lines:
            raise DependencyQueryError(
                f"'{self._runner.format_command(command)}' reported no packages"
            )

        for line in lines:
            if not _PACKAGE_NAME.match(line):
                raise DependencyQueryError(f"Unexpected line in colcon output: {line!r}")
        return set(lines) - {ref.name for ref in requested}


class ManifestDependencyQuery(DependencyQuery):
    """Follows the dependency tags of the workspace's ``package.xml`` files.

    Dependencies that are not workspace packages are provided by the
    system and take no part in the closure.
    """

    def __init__(self, index: PackageIndex) -> None:
        self._index = index

    def dependencies_of(self, package_refs: Iterable[PackageRef]) -> Set[str]:
        requested = [ref.name for ref in package_refs]
        closure: Set[str] = set()
        pending = list(requested)
        visited: Set[str] = set()

        while pending:
            name = pending.pop()
            if name in visited:
                continue
            visited.add(name)
            manifest = self._index.manifests[name]
            if manifest.dependencies is None:
                raise DependencyQueryError(f"Could not read manifest '{manifest.path}': {manifest.error}")
            for dependency in manifest.dependencies:
                if dependency not in self._index:
                    continue
                closure.add(dependency)
                pending.append(dependency)

        return closure - set(requested)


def make_query(source: str, index: PackageIndex, runner: CommandRunner | None = None) -> DependencyQuery:
    if source == "manifest":
        return ManifestDependencyQuery(index)
    if source == "colcon":
        if runner is None:
            raise ValueError("The colcon dependency source needs a command runner")
        return ColconDependencyQuery(index, runner)
    raise ValueError(f"Unknown dependency source: {source}")


__all__ = [
    "ColconDependencyQuery",
    "DependencyQuery",
    "ManifestDependencyQuery",
    "make_query",
]

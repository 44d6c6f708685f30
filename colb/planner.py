"""Turns a resolved request into the ordered steps that serve it."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Set, Tuple

from .config import EffectiveConfig
from .errors import BuildOutputMissingError, ConflictingModifiersError
from .workspace import PackageRef, WorkspaceRoot


class Verb(str, Enum):
    BUILD = "build"
    TEST = "test"


class Step:
    """One external invocation of a plan."""

    description: str


@dataclass(slots=True, frozen=True)
class OrchestratorBuild(Step):
    packages: Tuple[str, ...]
    args: Tuple[str, ...]
    description: str


@dataclass(slots=True, frozen=True)
class OrchestratorTest(Step):
    packages: Tuple[str, ...]
    args: Tuple[str, ...]
    description: str


@dataclass(slots=True, frozen=True)
class OrchestratorTestResult(Step):
    packages: Tuple[str, ...]
    result_base: str
    description: str


@dataclass(slots=True, frozen=True)
class DirectBuild(Step):
    working_dir: Path
    target: str | None
    tool: str
    description: str


@dataclass(slots=True, frozen=True)
class DirectTest(Step):
    working_dir: Path
    test_filter: str
    description: str


@dataclass(slots=True, frozen=True)
class InvocationPlan:
    steps: Tuple[Step, ...] = ()

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def of_type(self, kind: type) -> List[Step]:
        return [step for step in self.steps if isinstance(step, kind)]


@dataclass(slots=True)
class PlanRequest:
    verb: Verb
    packages: List[PackageRef]
    single: bool = False
    recursive: bool = False
    test_filter: str | None = None
    skip_rebuild: bool = False
    build_type: str | None = None
    skip_tests: bool = False

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(ref.name for ref in self.packages)


@dataclass(slots=True, frozen=True)
class EventHandlers:
    summary: bool = True
    console_start_end: bool = True
    console_cohesion: bool = False
    desktop_notification: bool = False

    @classmethod
    def silent(cls) -> "EventHandlers":
        return cls(summary=False, console_start_end=False)

    @classmethod
    def compile_logs_only(cls) -> "EventHandlers":
        return cls(summary=False, console_start_end=False, console_cohesion=True)

    def args(self) -> List[str]:
        def handler(name: str, enabled: bool) -> str:
            return f"{name}{'+' if enabled else '-'}"

        return [
            "--event-handlers",
            handler("summary", self.summary),
            handler("console_start_end", self.console_start_end),
            handler("console_cohesion", self.console_cohesion),
            handler("desktop_notification", self.desktop_notification),
        ]


def mixin_flags(config: EffectiveConfig) -> List[str]:
    mixins = list(config.mixins)
    if not mixins:
        return []
    return ["--mixin", *mixins]


def _cmake_arg(name: str, value: str) -> str:
    return f"-D{name}={value}"


def _quoted(names: Sequence[str]) -> str:
    return ", ".join(f"'{name}'" for name in names)


@dataclass(slots=True)
class InvocationPlanner:
    root: WorkspaceRoot
    config: EffectiveConfig
    test_args: Tuple[str, ...] = field(default=("--ctest-args", "--output-on-failure"))

    def validate(self, request: PlanRequest) -> None:
        if not request.packages:
            raise ConflictingModifiersError("At least one package is required")
        if request.single and request.recursive:
            raise ConflictingModifiersError("--single and --recursive cannot be used together")
        if request.verb is Verb.BUILD:
            if request.test_filter is not None:
                raise ConflictingModifiersError("--test is only valid for 'colb test'")
            if request.skip_rebuild:
                raise ConflictingModifiersError("--no-build is only valid for 'colb test'")
            return
        if request.skip_rebuild and request.recursive:
            raise ConflictingModifiersError("--no-build and --recursive cannot be used together")
        if request.test_filter is not None and len(request.packages) != 1:
            raise ConflictingModifiersError(
                f"--test requires exactly one package, got {len(request.packages)}: {_quoted(request.names)}"
            )

    def wants_dependencies(self, request: PlanRequest) -> bool:
        """Whether ``request`` builds dependencies before the packages themselves."""

        if request.verb is Verb.BUILD:
            return not request.single
        return request.recursive

    def build_output_dir(self, ref: PackageRef) -> Path:
        return ref.build_dir(self.root, self.config.build_base)

    def preflight(self, request: PlanRequest) -> None:
        """Reject ``request`` before anything is spawned, including dependency queries.

        A direct test needs an existing build tree unless the plan rebuilds the
        package through colcon first.
        """

        self.validate(request)
        if request.verb is Verb.TEST and request.test_filter is not None and not self.wants_dependencies(request):
            ref = request.packages[0]
            build_dir = self.build_output_dir(ref)
            if not build_dir.is_dir():
                raise BuildOutputMissingError(ref.name, build_dir)

    def build_args(self, *, dependencies: bool, request: PlanRequest) -> Tuple[str, ...]:
        config = self.config
        args: List[str] = ["--build-base", config.build_base, "--install-base", config.install_base]
        if config.parallel_jobs:
            args.extend(["--executor", "parallel", "--parallel-workers", str(config.parallel_jobs)])

        if dependencies:
            args.extend(EventHandlers().args())
            args.extend(config.dependency_build_args)
            build_tests = config.dependency_build_tests
            build_type = config.build_type
        else:
            args.extend(EventHandlers.compile_logs_only().args())
            args.extend(config.package_build_args)
            build_tests = config.package_build_tests
            build_type = request.build_type or config.build_type

        if request.skip_tests:
            build_tests = False
        args.extend(mixin_flags(config))
        args.append("--cmake-args")
        args.append(_cmake_arg("BUILD_TESTING", "ON" if build_tests else "OFF"))
        args.extend(config.cmake_args)
        args.append(_cmake_arg("CMAKE_BUILD_TYPE", build_type))
        return tuple(args)

    def direct_build_tool(self) -> str:
        return "ninja" if "ninja" in self.config.mixins else "cmake"

    def plan(self, request: PlanRequest, dependencies: Iterable[str] = ()) -> InvocationPlan:
        self.preflight(request)
        primaries = request.names
        steps: List[Step] = []

        dependency_pass = self.wants_dependencies(request)
        if dependency_pass:
            excluded: Set[str] = set(primaries)
            dependency_names = tuple(sorted(set(dependencies) - excluded))
            if dependency_names:
                steps.append(
                    OrchestratorBuild(
                        packages=dependency_names,
                        args=self.build_args(dependencies=True, request=request),
                        description=f"Building dependencies for {_quoted(primaries)}",
                    )
                )

        direct = request.verb is Verb.TEST and request.test_filter is not None
        if not request.skip_rebuild and (not direct or dependency_pass):
            steps.append(
                OrchestratorBuild(
                    packages=primaries,
                    args=self.build_args(dependencies=False, request=request),
                    description=f"Building {_quoted(primaries)}",
                )
            )

        if request.verb is Verb.BUILD:
            return InvocationPlan(tuple(steps))

        if direct:
            steps.extend(self._direct_test_steps(request))
        else:
            steps.extend(self._orchestrated_test_steps(request))
        return InvocationPlan(tuple(steps))

    def _direct_test_steps(self, request: PlanRequest) -> List[Step]:
        ref = request.packages[0]
        test = request.test_filter
        build_dir = self.build_output_dir(ref)
        steps: List[Step] = []
        if not request.skip_rebuild:
            steps.append(
                DirectBuild(
                    working_dir=build_dir,
                    target=test,
                    tool=self.direct_build_tool(),
                    description=f"Building test '{test}' in '{ref.name}'",
                )
            )
        steps.append(
            DirectTest(
                working_dir=build_dir,
                test_filter=test,
                description=f"Running test '{test}' in '{ref.name}'",
            )
        )
        return steps

    def _orchestrated_test_steps(self, request: PlanRequest) -> List[Step]:
        primaries = request.names
        if len(primaries) == 1:
            result_base = f"{self.config.build_base}/{primaries[0]}"
        else:
            result_base = self.config.build_base
        return [
            OrchestratorTest(
                packages=primaries,
                args=(*EventHandlers.silent().args(), *self.test_args),
                description=f"Running tests for {_quoted(primaries)}",
            ),
            OrchestratorTestResult(
                packages=primaries,
                result_base=result_base,
                description=f"Test results for {_quoted(primaries)}",
            ),
        ]


__all__ = [
    "DirectBuild",
    "DirectTest",
    "EventHandlers",
    "InvocationPlan",
    "InvocationPlanner",
    "OrchestratorBuild",
    "OrchestratorTest",
    "OrchestratorTestResult",
    "PlanRequest",
    "Step",
    "Verb",
    "mixin_flags",
]

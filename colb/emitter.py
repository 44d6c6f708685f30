"""Translates plan steps into processes and runs them in order."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple
import os

from .command_runner import CommandRunner, normalize_exit_code
from .console import Console
from .errors import ExternalCommandFailed
from .planner import (
    DirectBuild,
    DirectTest,
    InvocationPlan,
    OrchestratorBuild,
    OrchestratorTest,
    OrchestratorTestResult,
    Step,
)
from .workspace import WorkspaceRoot

COLCON = "colcon"
CTEST = "ctest"

EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126


@dataclass(slots=True, frozen=True)
class Invocation:
    command: Tuple[str, ...]
    cwd: Path
    description: str


@dataclass(slots=True, frozen=True)
class StepResult:
    step: Step
    exit_code: int


@dataclass(slots=True)
class ExecutionReport:
    results: List[StepResult] = field(default_factory=list)
    exit_code: int = 0
    failed_step: Step | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def raise_for_status(self) -> None:
        if self.exit_code != 0:
            description = self.failed_step.description if self.failed_step is not None else None
            raise ExternalCommandFailed(self.exit_code, description)


class CommandEmitter:
    def __init__(self, *, root: WorkspaceRoot, runner: CommandRunner, console: Console) -> None:
        self._root = root
        self._runner = runner
        self._console = console

    def to_invocation(self, step: Step) -> Invocation:
        workspace = self._root.path
        if isinstance(step, OrchestratorBuild):
            command = [
                COLCON, "--log-base", os.devnull, "build",
                "--packages-select", *step.packages,
                *step.args,
            ]
            return Invocation(tuple(command), workspace, step.description)
        if isinstance(step, OrchestratorTest):
            command = [
                COLCON, "--log-base", "log", "test",
                "--packages-select", *step.packages,
                *step.args,
            ]
            return Invocation(tuple(command), workspace, step.description)
        if isinstance(step, OrchestratorTestResult):
            command = [
                COLCON, "--log-base", os.devnull, "test-result",
                "--test-result-base", step.result_base,
                "--verbose", "--all",
            ]
            return Invocation(tuple(command), workspace, step.description)
        if isinstance(step, DirectBuild):
            if step.tool == "ninja":
                command = ["ninja", *([step.target] if step.target else [])]
            else:
                command = ["cmake", "--build", ".", *(["--target", step.target] if step.target else [])]
            return Invocation(tuple(command), step.working_dir, step.description)
        if isinstance(step, DirectTest):
            command = [CTEST, "--output-on-failure", "-R", f"^{step.test_filter}$"]
            return Invocation(tuple(command), step.working_dir, step.description)
        raise TypeError(f"Unsupported step type: {type(step).__name__}")

    def execute(self, step: Step) -> int:
        invocation = self.to_invocation(step)
        self._console.header(invocation.description)
        self._console.command(self._runner.format_command(invocation.command), cwd=str(invocation.cwd))
        try:
            return self._runner.stream(invocation.command, cwd=invocation.cwd, note=invocation.description)
        except FileNotFoundError:
            self._console.error(f"'{invocation.command[0]}' not found")
            return EXIT_NOT_FOUND
        except PermissionError as exc:
            self._console.error(f"Could not run '{invocation.command[0]}': {exc}")
            return EXIT_NOT_EXECUTABLE


class PlanExecutor:
    """Runs the steps of a plan one at a time, stopping at the first failure."""

    def __init__(self, emitter: CommandEmitter) -> None:
        self._emitter = emitter

    def run(self, plan: InvocationPlan) -> ExecutionReport:
        report = ExecutionReport()
        for step in plan:
            exit_code = self._emitter.execute(step)
            report.results.append(StepResult(step=step, exit_code=exit_code))
            if exit_code != 0:
                report.exit_code = exit_code
                report.failed_step = step
                break
        return report


__all__ = [
    "CommandEmitter",
    "ExecutionReport",
    "Invocation",
    "PlanExecutor",
    "StepResult",
    "normalize_exit_code",
]

"""Spawning the external tools colb drives.

Build and test tools are *streamed*: they own the terminal and colb only
keeps their exit code. Tools whose output colb reads, such as
``colcon list``, are *captured*. :class:`RecordingCommandRunner` stands in
for both during dry runs.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple
import shlex
import subprocess


@dataclass(slots=True, frozen=True)
class CommandResult:
    command: Tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandError(RuntimeError):
    """Raised when a captured command exits non-zero."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {format_command(result.command)}"
        if result.stderr.strip():
            message = f"{message}\nstderr: {result.stderr.strip()}"
        super().__init__(message)
        self.result = result


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in command)


def normalize_exit_code(returncode: int) -> int:
    """Map a child killed by signal N (negative return code) to ``128 + N``."""

    if returncode < 0:
        return 128 - returncode
    return returncode


class CommandRunner:
    def stream(self, command: Sequence[str], *, cwd: Path | None = None, note: str | None = None) -> int:
        """Run ``command`` attached to the terminal and return its exit code."""
        raise NotImplementedError

    def capture(self, command: Sequence[str], *, cwd: Path | None = None, note: str | None = None) -> CommandResult:
        """Run ``command`` for its output, raising :class:`CommandError` on failure."""
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return format_command(command)


class SubprocessCommandRunner(CommandRunner):
    def stream(self, command: Sequence[str], *, cwd: Path | None = None, note: str | None = None) -> int:
        process = subprocess.run(list(command), cwd=str(cwd) if cwd else None, check=False)
        return normalize_exit_code(process.returncode)

    def capture(self, command: Sequence[str], *, cwd: Path | None = None, note: str | None = None) -> CommandResult:
        process = subprocess.run(
            list(command),
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            check=False,
        )
        result = CommandResult(tuple(command), process.returncode, process.stdout, process.stderr)
        if result.returncode != 0:
            raise CommandError(result)
        return result


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    note: str | None
    captured: bool


class RecordingCommandRunner(CommandRunner):
    """Records commands instead of executing them.

    Streamed commands succeed. Captured commands answer with the entry of
    ``outputs`` keyed by program name, or with empty output.
    """

    def __init__(self, outputs: Mapping[str, CommandResult] | None = None) -> None:
        self.commands: List[RecordedCommand] = []
        self._outputs: Dict[str, CommandResult] = dict(outputs or {})

    def _record(self, command: Sequence[str], cwd: Path | None, note: str | None, *, captured: bool) -> None:
        self.commands.append(
            RecordedCommand(command=list(command), cwd=str(cwd) if cwd else None, note=note, captured=captured)
        )

    def stream(self, command: Sequence[str], *, cwd: Path | None = None, note: str | None = None) -> int:
        self._record(command, cwd, note, captured=False)
        return 0

    def capture(self, command: Sequence[str], *, cwd: Path | None = None, note: str | None = None) -> CommandResult:
        self._record(command, cwd, note, captured=True)
        canned = self._outputs.get(command[0]) if command else None
        if canned is None:
            return CommandResult(tuple(command), 0)
        result = CommandResult(tuple(command), canned.returncode, canned.stdout, canned.stderr)
        if result.returncode != 0:
            raise CommandError(result)
        return result

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterable[str]:
        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            parts: List[str] = ["[dry-run]"]
            if record.note:
                parts.append(record.note)
            cwd = record.cwd or default_cwd
            if cwd:
                parts.append(f"(cwd={cwd})")
            parts.append(self.format_command(record.command))
            yield " ".join(parts)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "format_command",
    "normalize_exit_code",
]

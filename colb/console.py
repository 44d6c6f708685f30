"""Console output for colb: step headers, command echo and levelled messages."""
from __future__ import annotations

from typing import TextIO
import os
import sys

_RESET = "\033[0m"
_DECO = "\033[90m"
_HEADER = "\033[1;94m"


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    Default: 'info'. Errors go to stderr, everything else to stdout.
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(
        self,
        level: str = "info",
        *,
        color: bool | None = None,
        stream: TextIO | None = None,
        error_stream: TextIO | None = None,
    ):
        self.level_name = level
        self.level = self.LEVELS.get(level, self.LEVELS["info"])
        self._stream = stream
        self._error_stream = error_stream
        self._color = color

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def error_stream(self) -> TextIO:
        return self._error_stream if self._error_stream is not None else sys.stderr

    @property
    def color(self) -> bool:
        if self._color is not None:
            return self._color
        if os.environ.get("NO_COLOR"):
            return False
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def _style(self, text: str, style: str) -> str:
        return f"{style}{text}{_RESET}" if self.color else text

    def _emit(self, message: str) -> None:
        print(message, file=self.stream, flush=True)

    def header(self, title: str) -> None:
        if self.level < self.LEVELS["info"]:
            return
        self._emit(f"{self._style('┌[', _DECO)} {self._style(title, _HEADER)} {self._style(']', _DECO)}")

    def context(self, message: str) -> None:
        if self.level < self.LEVELS["info"]:
            return
        self._emit(f"{self._style('└>', _DECO)} {message}")

    def command(self, command_line: str, *, cwd: str | None = None) -> None:
        """Echo a command about to run, followed by the output divider."""

        if self.level < self.LEVELS["info"]:
            return
        self.context(command_line)
        if cwd:
            self.debug(f"cwd: {cwd}")
        self._emit(self._style("[ \\ \\ \\ Output / / / ]", _DECO))

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._emit(message)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"Error: {message}", file=self.error_stream, flush=True)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            self._emit(f"[DEBUG] {message}")


__all__ = ["Console"]

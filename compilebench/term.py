"""Minimal terminal drawing: a command list and one interpreter for it."""
from __future__ import annotations

import math
import shutil
import sys
from dataclasses import dataclass
from typing import TextIO, Union

CLEAR_LINE = "\r\x1b[2K"
CURSOR_UP = "\x1b[1A"
RESET = "\x1b[0m"
MAX_BAR_WIDTH = 70


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Newline:
    pass


@dataclass(frozen=True)
class SetColor:
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class ResetColor:
    pass


@dataclass(frozen=True)
class ProgressBar:
    prefix: str
    fraction: float


RenderCommand = Union[Text, Newline, SetColor, ResetColor, ProgressBar]

BLUE = SetColor(100, 162, 217)
RED = SetColor(219, 126, 94)
GREEN = SetColor(143, 209, 98)
BAR_DONE = SetColor(137, 114, 186)
BAR_TODO = SetColor(119, 116, 125)


class View:
    """Buffered writer that remembers what it drew so it can erase it.

    ``lines`` holds the printable width of every line written since the last
    reset; ``rewind`` moves the cursor back over exactly those rows.
    """

    def __init__(self, stream: TextIO | None = None, width: int | None = None, color: bool | None = None) -> None:
        self.stream = stream if stream is not None else sys.stderr
        self.width = width or shutil.get_terminal_size((60, 24)).columns
        if color is None:
            color = bool(getattr(self.stream, "isatty", lambda: False)())
        self.color = color
        self.lines: list[int] = []
        self.line = 0
        self._buffer: list[str] = []

    @property
    def col(self) -> int:
        return self.line

    def print(self, text: str, size: int) -> None:
        self._buffer.append(text)
        self.line += size

    def control(self, code: str) -> None:
        if self.color:
            self._buffer.append(code)

    def newline(self) -> None:
        self._buffer.append("\n")
        self.lines.append(self.line)
        self.line = 0

    def flush(self) -> None:
        if self._buffer:
            self.stream.write("".join(self._buffer))
            self._buffer = []
        self.stream.flush()

    def reset(self) -> None:
        self.flush()
        self.line = 0
        self.lines.clear()

    def rows(self) -> int:
        widths = self.lines + [self.line]
        return sum(max(1, math.ceil(width / self.width)) for width in widths)

    def rewind(self) -> None:
        rows = self.rows()
        self._buffer.append(CLEAR_LINE)
        for _ in range(rows - 1):
            self._buffer.append(CURSOR_UP + CLEAR_LINE)
        self.reset()


def render(view: View, commands: list[RenderCommand]) -> None:
    for command in commands:
        if isinstance(command, Text):
            view.print(command.text, len(command.text))
        elif isinstance(command, Newline):
            view.newline()
        elif isinstance(command, SetColor):
            view.control(f"\x1b[38;2;{command.r};{command.g};{command.b}m")
        elif isinstance(command, ResetColor):
            view.control(RESET)
        elif isinstance(command, ProgressBar):
            render(view, progress_bar(view, command))
        else:
            raise TypeError(f"unknown render command: {command!r}")


def progress_bar(view: View, bar: ProgressBar) -> list[RenderCommand]:
    length = max(0, min(view.width - len(bar.prefix), MAX_BAR_WIDTH))
    filled = min(length, max(0, round(bar.fraction * length)))
    return [
        Text(bar.prefix),
        BAR_DONE,
        Text("#" * filled),
        BAR_TODO,
        Text("-" * (length - filled)),
        ResetColor(),
        Newline(),
    ]

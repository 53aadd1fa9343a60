from __future__ import annotations

import math
from enum import Enum
from typing import TextIO


class Alignment(Enum):
    LEFT = "left"
    RIGHT = "right"


def format_float(value: float, digits: int) -> str:
    """Shortest fixed-point rendering of ``value`` fitting in ``digits + 1`` characters."""
    if math.isnan(value):
        return ""
    if value == 0.0:
        return "0."
    if value % 1 == 0.0:
        return "%d." % int(value)
    text = ("%-" + str(digits) + "f") % value
    text = text[: digits + 1]
    if "." in text:
        text = text.rstrip("0")
    return text


class RecordWriter:
    """Fixed-column writer: 1-based inclusive column ranges, blanks between fields."""

    def __init__(self, stream: TextIO, newline: str = "\n") -> None:
        self._stream = stream
        self._newline = newline
        self._position = 1

    def add_value(
        self,
        value,
        col_start: int,
        col_end: int | None = None,
        alignment: Alignment | None = None,
    ) -> None:
        if isinstance(value, float):
            if col_end is None:
                raise ValueError("A column end is required for float values")
            text = format_float(value, col_end - col_start)
            default = Alignment.RIGHT
        elif isinstance(value, int) and not isinstance(value, bool):
            text = str(value)
            default = Alignment.RIGHT
        elif isinstance(value, str):
            text = value
            default = Alignment.LEFT
        else:
            raise TypeError(f"Unsupported record value {value!r}")
        if col_end is None:
            col_end = col_start + len(text) - 1
        self._write(text, col_start, col_end, alignment or default)

    def _write(self, text: str, col_start: int, col_end: int, alignment: Alignment) -> None:
        if col_end < col_start:
            raise ValueError(f"Column end {col_end} is before column start {col_start}")
        if col_start > self._position:
            self._stream.write(" " * (col_start - self._position))
            self._position = col_start
        size = col_end - col_start + 1
        if alignment is Alignment.LEFT:
            field = text.ljust(size)
        else:
            field = text.rjust(size)
        self._stream.write(field)
        self._position += size

    def add_new_line(self) -> None:
        self._stream.write(self._newline)
        self._position = 1

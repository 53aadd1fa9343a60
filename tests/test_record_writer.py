from __future__ import annotations

import io
import math

import pytest

from src.ech_io.record_writer import Alignment, RecordWriter, format_float


@pytest.mark.parametrize(
    ("value", "digits", "expected"),
    [
        (math.nan, 7, ""),
        (0.0, 7, "0."),
        (380.0, 7, "380."),
        (-3.5, 7, "-3.5"),
        (1 / 3, 7, "0.333333"),
        (123456.789, 7, "123456.7"),
        (0.005, 7, "0.005"),
    ],
)
def test_format_float(value: float, digits: int, expected: str) -> None:
    assert format_float(value, digits) == expected


def test_fields_are_padded_to_their_columns() -> None:
    stream = io.StringIO()
    writer = RecordWriter(stream)

    writer.add_value("AB", 1)
    writer.add_value(1.5, 4, 8)
    writer.add_value(7, 10, 12)
    writer.add_value("X", 14, 16, Alignment.RIGHT)
    writer.add_new_line()
    writer.add_value("N", 1, 2)
    writer.add_new_line()

    assert stream.getvalue() == "AB   1.5   7   X\nN \n"


def test_nan_leaves_columns_blank() -> None:
    stream = io.StringIO()
    writer = RecordWriter(stream)

    writer.add_value("G", 1, 2)
    writer.add_value(math.nan, 4, 11)
    writer.add_value("Y", 13, 13)

    assert stream.getvalue() == "G" + " " * 11 + "Y"


def test_invalid_fields_are_rejected() -> None:
    writer = RecordWriter(io.StringIO())

    with pytest.raises(ValueError):
        writer.add_value(1.0, 1)
    with pytest.raises(ValueError):
        writer.add_value("A", 5, 4)
    with pytest.raises(TypeError):
        writer.add_value(True, 1, 1)
    with pytest.raises(TypeError):
        writer.add_value(None, 1, 1)

"""Quote-aware CSV tokenizer for catalog imports.

The parser never raises on malformed input. An unterminated quote is closed
implicitly at the end of its physical line so messy exports still import on
a best-effort basis.
"""
from __future__ import annotations

import re
from typing import Iterator

from medcatalog.core.types import MutableRawRow

_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")
_LINE_BREAK_CAPTURE_RE = re.compile(r"(\r\n|\n|\r)")
_BOM = "\ufeff"


def _ends_in_open_field(text: str) -> bool:
    """True when text ends inside a quoted field whose quote opened the field.

    A quote in the middle of a field only toggles quoting for the current
    line; it never pulls the next line into the record.
    """
    in_quotes = False
    opened_at_field_start = False
    at_field_start = True
    position = 0
    length = len(text)
    while position < length:
        char = text[position]
        if char == '"':
            if in_quotes and position + 1 < length and text[position + 1] == '"':
                position += 1
            elif in_quotes:
                in_quotes = False
            else:
                in_quotes = True
                opened_at_field_start = at_field_start
            at_field_start = False
        elif char == "," and not in_quotes:
            at_field_start = True
        else:
            at_field_start = False
        position += 1
    return in_quotes and opened_at_field_start


def _physical_lines(text: str) -> list[tuple[str, str]]:
    """Split text into (line, line break) pairs; the last break is empty."""
    pieces = _LINE_BREAK_CAPTURE_RE.split(text)
    return list(zip(pieces[0::2], [*pieces[1::2], ""]))


def _logical_records(lines: list[tuple[str, str]]) -> Iterator[str]:
    """Join physical lines that belong to one quoted multi-line field.

    The original line break is kept inside the joined field.
    """
    index = 0
    total = len(lines)
    while index < total:
        record = lines[index][0]
        end = index
        while _ends_in_open_field(record) and end + 1 < total:
            record = f"{record}{lines[end][1]}{lines[end + 1][0]}"
            end += 1
        if _ends_in_open_field(record) and end > index:
            # Never closed: fall back to the single physical line.
            yield lines[index][0]
            index += 1
            continue
        yield record
        index = end + 1


def split_fields(line: str) -> list[str]:
    """Split one record into raw field values."""
    values: list[str] = []
    current: list[str] = []
    in_quotes = False
    position = 0
    length = len(line)
    while position < length:
        char = line[position]
        if char == '"':
            if in_quotes and position + 1 < length and line[position + 1] == '"':
                current.append('"')
                position += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append("".join(current))
            current = []
        else:
            current.append(char)
        position += 1
    values.append("".join(current))
    return values


def parse_header(line: str) -> list[str]:
    return [name.strip() for name in line.split(",")]


def iter_csv_rows(raw_text: str) -> Iterator[MutableRawRow]:
    """Yield header-keyed rows from raw CSV text, in input order."""
    if raw_text.startswith(_BOM):
        raw_text = raw_text[len(_BOM):]

    headers: list[str] | None = None
    for record in _logical_records(_physical_lines(raw_text)):
        if not record.strip():
            continue
        if headers is None:
            headers = parse_header(record)
            continue
        values = split_fields(record)
        yield {
            header: values[position] if position < len(values) else ""
            for position, header in enumerate(headers)
        }


def parse_csv(raw_text: str) -> list[MutableRawRow]:
    """Parse raw CSV text into a list of header-keyed rows."""
    return list(iter_csv_rows(raw_text))


def read_headers(raw_text: str) -> list[str]:
    """Return the header names of a CSV document, or an empty list."""
    if raw_text.startswith(_BOM):
        raw_text = raw_text[len(_BOM):]
    for line in _LINE_BREAK_RE.split(raw_text):
        if line.strip():
            return parse_header(line)
    return []

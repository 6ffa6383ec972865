"""Delimiter-sniffing CSV reader for GTFS tables."""

from __future__ import annotations

import re

_LINE_SPLIT = re.compile(r"\r?\n")


def sniff_delimiter(header_line: str) -> str:
    """Semicolon if the header has more semicolons than commas, else comma."""
    return ";" if header_line.count(";") > header_line.count(",") else ","


def parse_line(line: str, delimiter: str) -> list[str]:
    """Split one line, honouring double quotes and "" as an escaped quote."""
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    index = 0
    while index < len(line):
        char = line[index]
        if char == '"':
            if in_quotes and index + 1 < len(line) and line[index + 1] == '"':
                current.append('"')
                index += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1
    fields.append("".join(current))
    return fields


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse a table into rows keyed by header name; short rows pad with ""."""
    lines = [line for line in _LINE_SPLIT.split(text) if line]
    if not lines:
        return []
    header_line = lines[0].lstrip("\ufeff")
    delimiter = sniff_delimiter(header_line)
    headers = parse_line(header_line, delimiter)
    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        columns = parse_line(line, delimiter)
        rows.append(
            {header: columns[i] if i < len(columns) else "" for i, header in enumerate(headers)}
        )
    return rows


__all__ = ["parse_csv", "parse_line", "sniff_delimiter"]

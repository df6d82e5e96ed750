"""Statement template translation and classification."""

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Literal

from fitpair.domain.errors import MalformedStatement

PlaceholderStyle = Literal["numeric", "qmark"]

ABSTRACT_PLACEHOLDER = "?"

_RETURNING = re.compile(r"\bRETURNING\b", re.IGNORECASE)
_SELECT = re.compile(r"SELECT\b", re.IGNORECASE)


@dataclass(frozen=True)
class PreparedStatement:
    """A statement translated for one backend."""

    sql: str
    parameters: tuple[object, ...]
    returns_rows: bool


def prepare(
    template: str, parameters: Sequence[object], style: PlaceholderStyle
) -> PreparedStatement:
    """Translate placeholders and classify a statement template."""
    if not template or not template.strip():
        raise MalformedStatement("Statement template is empty")
    if isinstance(parameters, str | bytes):
        raise MalformedStatement("Parameters must be a sequence of values")
    sql, count = translate_placeholders(template, style)
    if count != len(parameters):
        raise MalformedStatement(
            f"Statement expects {count} parameters, got {len(parameters)}"
        )
    return PreparedStatement(
        sql=sql,
        parameters=tuple(parameters),
        returns_rows=returns_rows(template),
    )


def translate_placeholders(template: str, style: PlaceholderStyle) -> tuple[str, int]:
    """Rewrite abstract placeholders into the backend syntax.

    Question marks inside quoted literals, identifiers or comments are left
    alone. Returns the rewritten text and the number of placeholders found.
    """
    parts: list[str] = []
    count = 0
    for quoted, chunk in _segments(template):
        if quoted:
            parts.append(chunk)
            continue
        pieces = chunk.split(ABSTRACT_PLACEHOLDER)
        parts.append(pieces[0])
        for piece in pieces[1:]:
            count += 1
            parts.append(f"${count}" if style == "numeric" else "?")
            parts.append(piece)
    return "".join(parts), count


def returns_rows(template: str) -> bool:
    """Return True for SELECT statements and statements with RETURNING."""
    bare = " ".join(chunk for quoted, chunk in _segments(template) if not quoted)
    if _SELECT.match(bare.lstrip()):
        return True
    return _RETURNING.search(bare) is not None


def _segments(template: str) -> Iterator[tuple[bool, str]]:
    """Split text into plain runs and skipped (quoted or commented) runs."""
    start = 0
    index = 0
    length = len(template)
    while index < length:
        char = template[index]
        if char in {"'", '"'}:
            end = template.find(char, index + 1)
            if end == -1:
                raise MalformedStatement("Unterminated quoted literal in statement")
            end += 1
        elif template.startswith("--", index):
            end = template.find("\n", index)
            end = length if end == -1 else end
        elif template.startswith("/*", index):
            end = template.find("*/", index + 2)
            if end == -1:
                raise MalformedStatement("Unterminated comment in statement")
            end += 2
        else:
            index += 1
            continue
        if index > start:
            yield False, template[start:index]
        yield True, template[index:end]
        start = index = end
    if start < length:
        yield False, template[start:]

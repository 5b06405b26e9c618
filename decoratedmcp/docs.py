"""
Documentation Extractor

This module reads the documentation written for an operation and parses it into a summary and per-parameter
descriptions. The recognized convention is deliberately small:

    \"\"\"
    Add two numbers together.

    @param a First number
    @param b Second number
    @returns Sum of a and b
    \"\"\"
    @tool
    async def add(self, args): ...

The block sits directly above the decorator. When there is none, the method's own docstring is parsed with the same
convention.
"""

import inspect
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .locator import SourceLocation, decorator_stack_top, locate_decorator_line, read_source_lines

logger = logging.getLogger(__name__)

_DELIMITERS = ('"""', "'''")

# Compile regex patterns ahead of time for better performance
_PARAM_PATTERN = re.compile(r"^@param\s+(\w+)(?:\s+(.*))?$")
_RETURNS_PATTERN = re.compile(r"^@returns?(?:\s+(.*))?$")


@dataclass(frozen=True)
class ParsedDoc:
    """
    Result of parsing a documentation block.

    Absent values are None and are never replaced by empty values here: the resolver must be able to tell "not
    documented" from "documented as empty".

    Attributes:
        description: Summary text before the first tag
        params: Parameter name to description, for every @param tag
        returns: Description given by the @returns tag
    """

    description: str | None
    params: dict[str, str] | None
    returns: str | None


def extract_block_above(lines: list[str], anchor: int) -> str | None:
    """
    Extract the triple-quoted documentation block directly above a line.

    Blank lines and ``#`` comments between the block and the anchor are skipped. Any other line ends the search.
    A string that is the docstring of an enclosing or preceding class or function is not a documentation block.

    Args:
        lines: Source lines
        anchor: 0-based index of the line the block must precede, usually the top decorator

    Returns:
        The block text including both delimiters, or None if there is no such block
    """
    for end in range(anchor - 1, -1, -1):
        stripped = lines[end].strip()
        if not stripped or stripped.startswith("#"):
            continue
        delimiter = next((d for d in _DELIMITERS if stripped.endswith(d)), None)
        if delimiter is None:
            return None
        if stripped.count(delimiter) >= 2:
            start = end
        else:
            start = next((i for i in range(end - 1, -1, -1) if delimiter in lines[i]), -1)
            if start == -1:
                return None
        if _is_body_docstring(lines, start, anchor):
            return None
        return "\n".join(lines[start : end + 1])
    return None


def _is_body_docstring(lines: list[str], start: int, anchor: int) -> bool:
    if anchor < len(lines) and _indent(lines[start]) != _indent(lines[anchor]):
        return True
    previous = next((lines[i] for i in range(start - 1, -1, -1) if lines[i].strip()), "")
    return previous.rstrip().endswith(":")


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def parse_doc(raw: str) -> ParsedDoc:
    """
    Parse a documentation block or a plain docstring.

    Args:
        raw: Block text as returned by extract_block_above, or docstring text without delimiters

    Returns:
        The parsed summary, parameter descriptions and return description
    """
    lines = raw.splitlines()
    delimiter = next((d for d in _DELIMITERS if d in raw), None)
    started = delimiter is None
    params: dict[str, str] = {}
    description_lines: list[str] = []
    returns: str | None = None
    tagged = False

    for line in lines:
        if not started:
            # delimiter is set whenever started is False
            idx = line.find(delimiter)  # type: ignore[arg-type]
            if idx == -1:
                continue
            line = line[idx + 3 :]
            started = True
        end = line.find(delimiter) if delimiter else -1
        if end != -1:
            line = line[:end]
        line = line.strip()

        if line.startswith("@"):
            tagged = True
            if match := _PARAM_PATTERN.match(line):
                params[match.group(1)] = (match.group(2) or "").strip()
            elif match := _RETURNS_PATTERN.match(line):
                returns = (match.group(1) or "").strip()
        elif line and not tagged:
            description_lines.append(line)

        if end != -1:
            break

    description = " ".join(description_lines).rstrip("\"'").strip() or None
    return ParsedDoc(description=description, params=params or None, returns=returns)


def documentation_for(
    func: Callable[..., Any],
    method_name: str,
    kind: str,
    source: SourceLocation | None,
) -> ParsedDoc | None:
    """
    Find and parse the documentation of a decorated method.

    This never raises: when nothing can be found, inference is simply skipped.

    Args:
        func: The decorated function
        method_name: Name the function is bound to on its class
        kind: Decorator name used to find the declaration, e.g. "tool"
        source: Declaration site captured when the decorator was applied

    Returns:
        The parsed documentation, or None if there is none
    """
    raw = None
    lines = read_source_lines(source.path) if source is not None else None
    if lines:
        # source.line is the first decorator line, which is at or above the definition
        decorator_line = locate_decorator_line(lines, method_name, kind, start=source.line - 1)  # type: ignore[union-attr]
        if decorator_line is not None:
            raw = extract_block_above(lines, decorator_stack_top(lines, decorator_line))
    if raw is None:
        raw = inspect.getdoc(func)
    if not raw:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"No documentation found for {kind} {method_name}", extra={"kind": kind})
        return None
    return parse_doc(raw)

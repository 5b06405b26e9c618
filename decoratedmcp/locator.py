"""
Declaration-Site Locator

This module finds where an operation was declared in source code, so that the documentation block written above its
decorator can be read.

The primary mechanism is the source location token carried by the function's code object. Stack walking is only used
for callables that have no code object of their own.
"""

import functools
import inspect
import logging
import os
import re
import sys
import tokenize
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
_THIRD_PARTY_DIRS = frozenset({"site-packages", "dist-packages"})

# Compile regex patterns ahead of time for better performance
_DEFINITION_PATTERN = re.compile(r"^\s*(?:async\s+def|def|class)\s+\w+")
_DECORATOR_PATTERN = re.compile(r"^\s*@")


@dataclass(frozen=True)
class SourceLocation:
    """
    A position in a source file.

    Attributes:
        path: Path of the source file
        line: 1-based line number. For decorated functions this is the line of the first decorator.
    """

    path: str
    line: int

    @classmethod
    def of(cls, func: Any) -> "SourceLocation | None":
        """
        Capture the declaration site of a function from its code object.

        Args:
            func: The decorated function, possibly wrapped by functools.wraps based decorators

        Returns:
            The location, or None if the callable has no code object backed by a real file
        """
        code = getattr(inspect.unwrap(func), "__code__", None)
        if code is None or code.co_filename.startswith("<"):
            return None
        return cls(path=prefer_source(code.co_filename), line=code.co_firstlineno)


def locate_callsite() -> str | None:
    """
    Find the source file of the first caller outside of this package and outside of installed third-party packages.

    Returns:
        The file path, or None if every frame on the stack is internal
    """
    frame = sys._getframe(1)
    while frame is not None:
        filename = frame.f_code.co_filename
        if not _is_internal_frame(filename):
            return prefer_source(filename)
        frame = frame.f_back
    return None


def prefer_source(path: str) -> str:
    """
    Map a compiled module path to the source file next to it, if that source file exists.

    Handles both ``pkg/__pycache__/mod.cpython-312.pyc`` and legacy ``pkg/mod.pyc`` layouts.
    """
    if not path.endswith((".pyc", ".pyo")):
        return path
    directory, filename = os.path.split(path)
    module = filename.split(".", 1)[0]
    if os.path.basename(directory) == "__pycache__":
        directory = os.path.dirname(directory)
    candidate = os.path.join(directory, module + ".py")
    return candidate if os.path.exists(candidate) else path


@functools.lru_cache(maxsize=None)
def _read_lines(normalized_path: str) -> tuple[str, ...] | None:
    try:
        with tokenize.open(normalized_path) as f:
            return tuple(f.read().splitlines())
    except (OSError, SyntaxError, UnicodeDecodeError) as e:
        logger.debug(f"Cannot read source file {normalized_path}: {e}")
        return None


def read_source_lines(path: str) -> list[str] | None:
    """
    Read a source file as lines. Results are cached for the lifetime of the process.

    Returns:
        The lines without line terminators, or None if the file cannot be read
    """
    lines = _read_lines(os.path.normcase(os.path.abspath(path)))
    return list(lines) if lines is not None else None


def locate_decorator_line(lines: list[str], method_name: str, kind: str, start: int = 0) -> int | None:
    """
    Find the line applying the ``kind`` decorator to a method.

    The method definition is searched from ``start`` downward. From there the search goes upward for the nearest
    decorator of the requested kind, and gives up when it reaches another definition first.

    Args:
        lines: Source lines
        method_name: Name of the decorated method
        kind: Decorator name, e.g. "tool"
        start: 0-based line index to start looking for the definition from

    Returns:
        0-based index of the decorator line, or None if it cannot be found
    """
    definition = re.compile(rf"^\s*(?:async\s+)?def\s+{re.escape(method_name)}\s*\(")
    decorator = re.compile(rf"^\s*@(?:[\w.]+\.)?{re.escape(kind)}\b")

    def_line = next((i for i in range(max(start, 0), len(lines)) if definition.match(lines[i])), None)
    if def_line is None:
        return None
    for i in range(def_line - 1, -1, -1):
        if decorator.match(lines[i]):
            return i
        if _DEFINITION_PATTERN.match(lines[i]):
            return None
    return None


def decorator_stack_top(lines: list[str], index: int) -> int:
    """Walk upward over single-line decorators stacked directly above ``index``."""
    while index > 0 and _DECORATOR_PATTERN.match(lines[index - 1]):
        index -= 1
    return index


def _is_internal_frame(filename: str) -> bool:
    if filename.startswith("<"):
        return True
    path = os.path.abspath(filename)
    if path == _PACKAGE_DIR or path.startswith(_PACKAGE_DIR + os.sep):
        return True
    return not _THIRD_PARTY_DIRS.isdisjoint(path.split(os.sep))

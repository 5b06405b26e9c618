import functools
import os
from pathlib import Path

from decoratedmcp.locator import (
    SourceLocation,
    decorator_stack_top,
    locate_callsite,
    locate_decorator_line,
    prefer_source,
    read_source_lines,
)

SOURCE = """class Service:
    @tool
    async def first(self, args):
        return args

    @prompt
    @tool(name="second_tool")
    def second(self, args):
        return args

    @tool
    def helper(self, args):
        return args

    def second(self, args):
        return args
""".splitlines()


def test_locate_decorator_line() -> None:
    assert locate_decorator_line(SOURCE, "first", "tool") == 1


def test_locate_decorator_line_in_stack() -> None:
    assert locate_decorator_line(SOURCE, "second", "tool") == 6
    assert locate_decorator_line(SOURCE, "second", "prompt") == 5


def test_locate_decorator_line_stops_at_previous_definition() -> None:
    # helper's decorator must not be attributed to the undecorated redefinition
    assert locate_decorator_line(SOURCE, "second", "tool", start=12) is None


def test_locate_decorator_line_missing_method() -> None:
    assert locate_decorator_line(SOURCE, "missing", "tool") is None


def test_locate_decorator_line_wrong_kind() -> None:
    assert locate_decorator_line(SOURCE, "first", "resource") is None


def test_locate_decorator_line_qualified_decorator() -> None:
    lines = ["class Service:", "    @decoratedmcp.tool", "    def first(self, args): ..."]
    assert locate_decorator_line(lines, "first", "tool") == 1


def test_decorator_stack_top() -> None:
    assert decorator_stack_top(SOURCE, 6) == 5
    assert decorator_stack_top(SOURCE, 1) == 1


def _plain(args):
    return args


def _wrapping(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


@_wrapping
def _wrapped(args):
    return args


def test_source_location_of_function() -> None:
    location = SourceLocation.of(_plain)
    assert location is not None
    assert os.path.samefile(location.path, __file__)
    assert location.line == _plain.__code__.co_firstlineno


def test_source_location_of_unwraps() -> None:
    location = SourceLocation.of(_wrapped)
    assert location is not None
    assert location.line == _wrapped.__wrapped__.__code__.co_firstlineno  # type: ignore[attr-defined]


def test_source_location_without_code() -> None:
    assert SourceLocation.of(len) is None
    assert SourceLocation.of(functools.partial(_plain)) is None


def test_source_location_of_dynamic_code() -> None:
    namespace: dict[str, object] = {}
    exec("def generated(args):\n    return args\n", namespace)
    assert SourceLocation.of(namespace["generated"]) is None


def test_locate_callsite_is_caller_file() -> None:
    callsite = locate_callsite()
    assert callsite is not None
    assert os.path.samefile(callsite, __file__)


def test_prefer_source_maps_pycache(tmp_path: Path) -> None:
    source = tmp_path / "module.py"
    source.write_text("x = 1\n")
    cache = tmp_path / "__pycache__"
    cache.mkdir()
    assert prefer_source(str(cache / "module.cpython-312.pyc")) == str(source)
    assert prefer_source(str(tmp_path / "module.pyc")) == str(source)


def test_prefer_source_without_source(tmp_path: Path) -> None:
    compiled = str(tmp_path / "__pycache__" / "gone.cpython-312.pyc")
    assert prefer_source(compiled) == compiled
    assert prefer_source(str(tmp_path / "plain.py")) == str(tmp_path / "plain.py")


def test_read_source_lines(tmp_path: Path) -> None:
    source = tmp_path / "module.py"
    source.write_text("first\nsecond\n")
    assert read_source_lines(str(source)) == ["first", "second"]
    assert read_source_lines(str(tmp_path / "missing.py")) is None

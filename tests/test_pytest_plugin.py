"""Tests for libchild pytest plugin."""

from __future__ import annotations

import textwrap
import typing as t

if t.TYPE_CHECKING:
    import pytest


def test_plugin(
    pytester: pytest.Pytester,
) -> None:
    """Fixtures are available to projects with libchild installed."""
    pytester.makefile(
        ".ini",
        pytest=textwrap.dedent(
            """
[pytest]
addopts=-vv
        """.strip(),
        ),
    )
    pytester.makeconftest(
        textwrap.dedent(
            r"""
import pytest

@pytest.fixture
def child_programs(child_programs):
    def hello(proc):
        proc.print("hello " + proc.argv[1])
        return 0

    return {**child_programs, "hello": hello}
    """,
        ),
    )
    tests_path = pytester.path / "tests"
    files = {
        "example.py": textwrap.dedent(
            """
import sys

from libchild import Facet, run


def test_simulated(simulated_context) -> None:
    out = run("hello", "world", output=Facet.STDOUT_TRIMMED, context=simulated_context)
    assert out.value == "hello world"
    assert run("true", output=Facet.SUCCESS, context=simulated_context).success


def test_production(production_context, tmp_path) -> None:
    assert production_context.cwd == str(tmp_path)
    out = run(
        sys.executable,
        "-c",
        "print('real')",
        output=Facet.STDOUT_TRIMMED,
        context=production_context,
    )
    assert out.value == "real"
        """,
        ),
    }
    first_test_key = next(iter(files.keys()))
    first_test_filename = str(tests_path / first_test_key)

    tests_path.mkdir()
    for file_name, text in files.items():
        test_file = tests_path / file_name
        test_file.write_text(
            text,
            encoding="utf-8",
        )

    result = pytester.runpytest(first_test_filename)
    result.assert_outcomes(passed=2)


def test_leak_fails_test(pytester: pytest.Pytester) -> None:
    """A child left running fails the test at teardown."""
    pytester.makepyfile(
        test_leak=textwrap.dedent(
            """
from libchild import start


def test_leaks(simulated_context) -> None:
    start("sleep", "60", context=simulated_context)
            """,
        ),
    )
    result = pytester.runpytest()
    result.assert_outcomes(passed=1, errors=1)
    result.stdout.fnmatch_lines(["*HandleLeakError*"])

"""Tests for folding argument contributions into a CommandSpec."""

from __future__ import annotations

import pathlib
import typing as t

import pytest

from libchild import exc
from libchild.args import (
    CommandSpec,
    CurrentDir,
    Env,
    LogCommand,
    Split,
    Stdin,
    collect,
    split_whitespace,
)


class SplitFixture(t.NamedTuple):
    """Test fixture for test_split_whitespace()."""

    test_id: str
    value: str
    expected: list[str]


SPLIT_FIXTURES: list[SplitFixture] = [
    SplitFixture(
        test_id="surrounding_and_repeated_spaces",
        value="  a   b  ",
        expected=["a", "b"],
    ),
    SplitFixture(
        test_id="tabs_and_newlines",
        value="a\tb\nc\r\nd",
        expected=["a", "b", "c", "d"],
    ),
    SplitFixture(
        test_id="only_whitespace",
        value=" \t\n ",
        expected=[],
    ),
    SplitFixture(
        test_id="empty",
        value="",
        expected=[],
    ),
    SplitFixture(
        test_id="quotes_are_not_special",
        value="'a b' c",
        expected=["'a", "b'", "c"],
    ),
    SplitFixture(
        test_id="non_ascii_whitespace_kept",
        value="a\u00a0b c",
        expected=["a\u00a0b", "c"],
    ),
]


@pytest.mark.parametrize(
    list(SplitFixture._fields),
    SPLIT_FIXTURES,
    ids=[test.test_id for test in SPLIT_FIXTURES],
)
def test_split_whitespace(test_id: str, value: str, expected: list[str]) -> None:
    """Split drops empty fragments and splits on ASCII whitespace only."""
    assert split_whitespace(value) == expected
    assert collect("cmd", Split(value)).tokens == ("cmd", *expected)


def test_tokens_keep_order() -> None:
    """Token contributions append in order, whatever is interleaved."""
    spec = collect(
        "git",
        Env("GIT_PAGER", "cat"),
        "-C",
        pathlib.Path("/srv/repo"),
        CurrentDir("/tmp"),
        Split("log  -n 1"),
        ["--format", ("%H",)],
        3,
    )
    assert spec.tokens == (
        "git",
        "-C",
        "/srv/repo",
        "log",
        "-n",
        "1",
        "--format",
        "%H",
        "3",
    )
    assert spec.executable == "git"
    assert spec.arguments[:2] == ("-C", "/srv/repo")


def test_string_with_spaces_is_one_token() -> None:
    """Plain strings are never split."""
    spec = collect("echo", "foo bar")
    assert spec.tokens == ("echo", "foo bar")


def test_scalars_last_wins() -> None:
    """CurrentDir, Stdin and LogCommand keep the last contribution."""
    spec = collect(
        "cat",
        CurrentDir("/a"),
        Stdin("first"),
        LogCommand(),
        CurrentDir("/b"),
        Stdin(b"second"),
        LogCommand(enabled=False),
    )
    assert spec.cwd == "/b"
    assert spec.stdin == b"second"
    assert spec.log_command is False


def test_env_last_wins_per_name() -> None:
    """Later Env entries replace earlier ones with the same name."""
    spec = collect("env", Env("A", "1"), Env("B", "2"), Env("A", "3"))
    assert spec.env == {"A": "3", "B": "2"}
    assert list(spec.env) == ["B", "A"]


def test_env_empty_value_allowed() -> None:
    """An empty value is distinct from unset."""
    assert collect("env", Env("EMPTY", "")).env == {"EMPTY": ""}


class BadEnvFixture(t.NamedTuple):
    """Test fixture for test_bad_env_name()."""

    test_id: str
    name: str
    exc_msg_regex: str


BAD_ENV_FIXTURES: list[BadEnvFixture] = [
    BadEnvFixture(test_id="empty", name="", exc_msg_regex="must not be empty"),
    BadEnvFixture(test_id="equals", name="A=B", exc_msg_regex="illegal"),
    BadEnvFixture(test_id="nul", name="A\0B", exc_msg_regex="illegal"),
]


@pytest.mark.parametrize(
    list(BadEnvFixture._fields),
    BAD_ENV_FIXTURES,
    ids=[test.test_id for test in BAD_ENV_FIXTURES],
)
def test_bad_env_name(test_id: str, name: str, exc_msg_regex: str) -> None:
    """Environment names that cannot reach a child are rejected up front."""
    with pytest.raises(exc.ConfigurationError) as exc_info:
        collect("env", Env(name, "x"))
    assert exc_info.match(exc_msg_regex)


def test_stdin_text_is_utf8() -> None:
    """Text stdin payloads are encoded as UTF-8."""
    assert collect("cat", Stdin("ünïcode")).stdin == "ünïcode".encode()
    assert collect("cat", Stdin(bytearray(b"raw"))).stdin == b"raw"


def test_no_tokens() -> None:
    """A command needs at least the executable."""
    with pytest.raises(exc.ConfigurationError, match="no arguments given"):
        collect(Env("A", "1"), CurrentDir("/tmp"))
    with pytest.raises(exc.ConfigurationError, match="no arguments given"):
        collect()


def test_configuration_error_is_value_error() -> None:
    """Callers catching ValueError also catch bad configurations."""
    with pytest.raises(ValueError):
        collect()


@pytest.mark.parametrize(
    "contribution",
    [None, True, 1.5, {"a": 1}, object()],
    ids=["none", "bool", "float", "dict", "object"],
)
def test_unsupported_contribution(contribution: t.Any) -> None:
    """Values without a meaning as contribution are rejected."""
    with pytest.raises(exc.ConfigurationError, match="Unsupported"):
        collect("cmd", contribution)


def test_splice_command_spec() -> None:
    """A CommandSpec folds in as tokens plus its set scalars."""
    base = collect("git", Env("GIT_PAGER", "cat"), CurrentDir("/srv/repo"))
    spec = collect(CurrentDir("/ignored"), base, Split("status --short"))
    assert spec.tokens == ("git", "status", "--short")
    assert spec.env == {"GIT_PAGER": "cat"}
    assert spec.cwd == "/srv/repo"

    # unset scalars of the spliced spec do not clear earlier values
    spec = collect(Stdin("keep"), LogCommand(), collect("cat"))
    assert spec.stdin == b"keep"
    assert spec.log_command is True


def test_extend() -> None:
    """extend() returns a new spec and leaves the original untouched."""
    base = collect("git")
    extended = base.extend("log", Env("A", "1"))
    assert base.tokens == ("git",)
    assert base.env == {}
    assert extended.tokens == ("git", "log")
    assert extended.env == {"A": "1"}


def test_command_spec_is_frozen() -> None:
    """CommandSpec cannot be modified after assembly."""
    spec = CommandSpec(("ls",))
    with pytest.raises(AttributeError):
        spec.tokens = ("rm",)  # type: ignore[misc]

    spec = collect("env", Env("A", "1"))
    with pytest.raises(TypeError):
        spec.env["SNEAKY"] = "1"  # type: ignore[index]
    assert spec.env == {"A": "1"}


def test_command_spec_env_is_copied() -> None:
    """Changing the source mapping does not reach a built spec."""
    overlay = {"A": "1"}
    spec = CommandSpec(("env",), env=overlay)
    overlay["A"] = "2"
    assert spec.env == {"A": "1"}
    assert spec.extend("-0").env == {"A": "1"}


def test_command_spec_is_hashable() -> None:
    """Equal specs hash alike and can key a dict."""
    first = collect("git", "log", Env("GIT_PAGER", "cat"))
    second = collect("git", "log", Env("GIT_PAGER", "cat"))
    assert first == second
    assert hash(first) == hash(second)
    assert {first: "cached"}[second] == "cached"


def test_command_spec_repr_skips_defaults() -> None:
    """repr() only shows what was set."""
    assert repr(CommandSpec(["ls"])) == "CommandSpec(tokens=('ls',))"
    assert repr(collect("ls", CurrentDir("/tmp"))) == (
        "CommandSpec(tokens=('ls',), cwd='/tmp')"
    )

"""Fold argument contributions into a :class:`CommandSpec`.

libchild.args
~~~~~~~~~~~~~

A command is described by an ordered list of small contributions. Plain
strings become single tokens, :class:`Split` breaks a string on whitespace,
and the remaining wrappers set the working directory, environment, stdin
payload or the logging toggle:

>>> spec = collect('echo', Split('-n  hello'), Env('LANG', 'C'), LogCommand())
>>> spec.tokens
('echo', '-n', 'hello')
>>> dict(spec.env)
{'LANG': 'C'}
>>> spec.log_command
True

Lists and tuples group contributions and are folded in place:

>>> git = ('git', '--no-pager', CurrentDir('/srv/repo'))
>>> collect(git, Split('log -1')).tokens
('git', '--no-pager', 'log', '-1')
"""

from __future__ import annotations

import dataclasses
import logging
import os
import re
import types
import typing as t

from libchild import exc
from libchild._internal.dataclasses import SkipDefaultFieldsReprMixin

if t.TYPE_CHECKING:
    from collections.abc import Mapping

    from libchild._internal.types import StdinData, StrPath

logger = logging.getLogger(__name__)

_ASCII_WHITESPACE = re.compile(r"[ \t\n\r\x0b\x0c]+")


def split_whitespace(value: str) -> list[str]:
    """Split ``value`` on ASCII whitespace, dropping empty fragments.

    Examples
    --------
    >>> split_whitespace('  a   b  ')
    ['a', 'b']

    >>> split_whitespace('')
    []

    Non-ASCII whitespace is part of a token:

    >>> split_whitespace('a\\u00a0b c')
    ['a\\xa0b', 'c']
    """
    return [fragment for fragment in _ASCII_WHITESPACE.split(value) if fragment]


@dataclasses.dataclass(frozen=True)
class Split:
    """Contribute the whitespace-separated words of a string as tokens."""

    value: str


@dataclasses.dataclass(frozen=True)
class CurrentDir:
    """Run the child in ``path`` instead of the context's directory."""

    path: StrPath


@dataclasses.dataclass(frozen=True)
class Env:
    """Set environment variable ``name`` to ``value`` for the child."""

    name: str
    value: str


@dataclasses.dataclass(frozen=True)
class Stdin:
    """Write ``data`` to the child's stdin, then close it.

    Text is encoded as UTF-8.
    """

    data: StdinData

    def to_bytes(self) -> bytes:
        """Return the payload as bytes."""
        if isinstance(self.data, str):
            return self.data.encode("utf-8")
        return bytes(self.data)


@dataclasses.dataclass(frozen=True)
class LogCommand:
    """Toggle writing the command line to the context's log sink."""

    enabled: bool = True


@dataclasses.dataclass(frozen=True, repr=False)
class CommandSpec(SkipDefaultFieldsReprMixin):
    """Fully assembled description of one child-process invocation.

    Build one with :func:`collect`; construct directly only when the parts
    are already known.

    Parameters
    ----------
    tokens : tuple[str, ...]
        executable reference followed by its arguments, never empty
    cwd : str or PathLike, optional
        working directory override
    env : Mapping[str, str]
        variables overlaid on the inherited environment, read-only
    stdin : bytes, optional
        payload written to the child's stdin
    log_command : bool
        write the command line to the log sink before spawning

    Examples
    --------
    >>> CommandSpec(('ls', '-l'))
    CommandSpec(tokens=('ls', '-l'))

    >>> CommandSpec(())
    Traceback (most recent call last):
        ...
    libchild.exc.ConfigurationError: no arguments given
    """

    tokens: tuple[str, ...]
    cwd: StrPath | None = None
    env: Mapping[str, str] = dataclasses.field(default_factory=dict, hash=False)
    stdin: bytes | None = None
    log_command: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "tokens", tuple(self.tokens))
        object.__setattr__(self, "env", types.MappingProxyType(dict(self.env)))
        if not self.tokens:
            msg = "no arguments given"
            raise exc.ConfigurationError(msg)
        for name in self.env:
            _check_env_name(name)

    @property
    def executable(self) -> str:
        """First token: the program to run."""
        return self.tokens[0]

    @property
    def arguments(self) -> tuple[str, ...]:
        """Tokens after the executable."""
        return self.tokens[1:]

    def extend(self, *contributions: t.Any) -> CommandSpec:
        """Return a new spec with ``contributions`` folded onto this one.

        >>> base = collect('git', Env('GIT_PAGER', 'cat'))
        >>> base.extend(Split('log --oneline')).tokens
        ('git', 'log', '--oneline')
        """
        return collect(self, *contributions)


class _Accumulator:
    """Mutable state while folding contributions left to right."""

    def __init__(self) -> None:
        self.tokens: list[str] = []
        self.cwd: StrPath | None = None
        self.env: dict[str, str] = {}
        self.stdin: bytes | None = None
        self.log_command = False

    def add(self, contribution: t.Any) -> None:
        if isinstance(contribution, str):
            self.tokens.append(contribution)
        elif isinstance(contribution, Split):
            self.tokens.extend(split_whitespace(contribution.value))
        elif isinstance(contribution, os.PathLike):
            self.tokens.append(os.fspath(contribution))
        elif isinstance(contribution, CurrentDir):
            self.cwd = contribution.path
        elif isinstance(contribution, Env):
            _check_env_name(contribution.name)
            # re-insert so iteration order follows the last write
            self.env.pop(contribution.name, None)
            self.env[contribution.name] = contribution.value
        elif isinstance(contribution, Stdin):
            self.stdin = contribution.to_bytes()
        elif isinstance(contribution, LogCommand):
            self.log_command = contribution.enabled
        elif isinstance(contribution, CommandSpec):
            self.splice(contribution)
        elif isinstance(contribution, (list, tuple)):
            for item in contribution:
                self.add(item)
        elif isinstance(contribution, int) and not isinstance(contribution, bool):
            self.tokens.append(str(contribution))
        else:
            msg = f"Unsupported argument contribution: {contribution!r}"
            raise exc.ConfigurationError(msg)

    def splice(self, spec: CommandSpec) -> None:
        self.tokens.extend(spec.tokens)
        for name, value in spec.env.items():
            self.add(Env(name, value))
        if spec.cwd is not None:
            self.cwd = spec.cwd
        if spec.stdin is not None:
            self.stdin = spec.stdin
        if spec.log_command:
            self.log_command = True

    def build(self) -> CommandSpec:
        return CommandSpec(
            tokens=tuple(self.tokens),
            cwd=self.cwd,
            env=dict(self.env),
            stdin=self.stdin,
            log_command=self.log_command,
        )


def _check_env_name(name: str) -> None:
    if not name:
        msg = "environment variable name must not be empty"
        raise exc.ConfigurationError(msg)
    if "=" in name or "\0" in name:
        msg = f"illegal environment variable name: {name!r}"
        raise exc.ConfigurationError(msg)


def collect(*contributions: t.Any) -> CommandSpec:
    """Fold ``contributions`` left to right into a :class:`CommandSpec`.

    Token contributions append in order. Scalar contributions
    (:class:`CurrentDir`, :class:`Stdin`, :class:`LogCommand`) overwrite
    earlier values; :class:`Env` entries overwrite earlier entries with the
    same name.

    Raises
    ------
    :exc:`exc.ConfigurationError`
        if no token was contributed, an environment name is empty or a
        contribution has an unsupported type

    Examples
    --------
    >>> spec = collect('cat', Stdin('first'), Stdin(b'second'))
    >>> spec.stdin
    b'second'

    >>> dict(collect(Env('A', '1'), Env('B', '2'), Env('A', '3'), 'env').env)
    {'B': '2', 'A': '3'}

    >>> collect(Split('   '))
    Traceback (most recent call last):
        ...
    libchild.exc.ConfigurationError: no arguments given
    """
    accumulator = _Accumulator()
    for contribution in contributions:
        accumulator.add(contribution)
    spec = accumulator.build()
    logger.debug("collected %r", spec)
    return spec


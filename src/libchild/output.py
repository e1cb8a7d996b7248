"""Declare which result facets to extract from a finished command.

libchild.output
~~~~~~~~~~~~~~~

An :class:`OutputRequest` is known before the child is spawned. It decides
which streams are piped (:attr:`OutputRequest.capture_stdout`,
:attr:`OutputRequest.capture_stderr`) and, once an
:class:`~libchild.record.ExecutionRecord` exists, :func:`extract` projects
it into a :class:`CommandOutput`.

>>> request = OutputRequest(Facet.STDOUT_TRIMMED, Facet.EXIT_CODE)
>>> request.capture_stdout, request.capture_stderr, request.wants_status
(True, False, True)
"""

from __future__ import annotations

import enum
import logging
import typing as t

from libchild import exc
from libchild.constants import STDERR, STDOUT

if t.TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from libchild.record import ExecutionRecord, ExitStatus

logger = logging.getLogger(__name__)


class Facet(enum.Enum):
    """A named piece of output derivable from one execution."""

    STATUS = "status"
    EXIT_CODE = "exit_code"
    SUCCESS = "success"
    STDOUT = "stdout"
    STDOUT_TRIMMED = "stdout_trimmed"
    STDOUT_BYTES = "stdout_bytes"
    STDERR = "stderr"
    STDERR_TRIMMED = "stderr_trimmed"
    STDERR_BYTES = "stderr_bytes"
    COMBINED = "combined"
    COMBINED_BYTES = "combined_bytes"
    DISCARD = "discard"

    def __str__(self) -> str:
        return self.value


#: Facets that opt out of :exc:`~libchild.exc.StatusError`
STATUS_FACETS = frozenset({Facet.STATUS, Facet.EXIT_CODE, Facet.SUCCESS})

_STDOUT_FACETS = frozenset(
    {Facet.STDOUT, Facet.STDOUT_TRIMMED, Facet.STDOUT_BYTES},
)
_STDERR_FACETS = frozenset(
    {Facet.STDERR, Facet.STDERR_TRIMMED, Facet.STDERR_BYTES},
)
_COMBINED_FACETS = frozenset({Facet.COMBINED, Facet.COMBINED_BYTES})


class OutputRequest:
    """Ordered set of facets the caller wants from one execution.

    Duplicates are dropped, the first occurrence keeps its position.

    Examples
    --------
    >>> OutputRequest(Facet.STDOUT, Facet.STDOUT)
    OutputRequest(stdout)

    Nothing is piped for :attr:`Facet.DISCARD`:

    >>> discard = OutputRequest(Facet.DISCARD)
    >>> discard.capture_stdout or discard.capture_stderr
    False
    """

    __slots__ = ("facets",)

    facets: tuple[Facet, ...]

    def __init__(self, *facets: Facet) -> None:
        ordered: list[Facet] = []
        for facet in facets:
            if not isinstance(facet, Facet):
                msg = f"Not an output facet: {facet!r}"
                raise exc.ConfigurationError(msg)
            if facet not in ordered:
                ordered.append(facet)
        object.__setattr__(self, "facets", tuple(ordered))

    def __setattr__(self, name: str, value: t.Any) -> None:
        msg = f"{self.__class__.__name__} is immutable"
        raise AttributeError(msg)

    @classmethod
    def coerce(
        cls,
        value: OutputRequest | Facet | Iterable[Facet] | None,
    ) -> OutputRequest:
        """Turn the ``output=`` argument of :func:`libchild.run` into a request.

        >>> OutputRequest.coerce(None)
        OutputRequest(discard)
        >>> OutputRequest.coerce(Facet.SUCCESS)
        OutputRequest(success)
        >>> OutputRequest.coerce([Facet.STDOUT, Facet.STATUS])
        OutputRequest(stdout, status)
        """
        if value is None:
            return cls(Facet.DISCARD)
        if isinstance(value, OutputRequest):
            return value
        if isinstance(value, Facet):
            return cls(value)
        return cls(*value)

    def __contains__(self, facet: object) -> bool:
        return facet in self.facets

    def __iter__(self) -> Iterator[Facet]:
        return iter(self.facets)

    def __len__(self) -> int:
        return len(self.facets)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OutputRequest):
            return NotImplemented
        return self.facets == other.facets

    def __hash__(self) -> int:
        return hash(self.facets)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({', '.join(map(str, self.facets))})"

    @property
    def capture_stdout(self) -> bool:
        """Whether stdout must be piped and buffered."""
        return any(f in _STDOUT_FACETS or f in _COMBINED_FACETS for f in self.facets)

    @property
    def capture_stderr(self) -> bool:
        """Whether stderr must be piped and buffered."""
        return any(f in _STDERR_FACETS or f in _COMBINED_FACETS for f in self.facets)

    @property
    def wants_status(self) -> bool:
        """Whether the caller takes responsibility for a failing status."""
        return any(f in STATUS_FACETS for f in self.facets)


def _decode(data: bytes, stream: str, command_line: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise exc.EncodingError(command_line, stream, e.start) from e


def _trim(text: str) -> str:
    return text.rstrip("\r\n")


def _project(
    facet: Facet,
    record: ExecutionRecord,
    command_line: str,
) -> t.Any:
    if facet is Facet.STATUS:
        return record.status
    if facet is Facet.EXIT_CODE:
        return record.status.code
    if facet is Facet.SUCCESS:
        return record.status.success()
    if facet is Facet.STDOUT_BYTES:
        return record.stdout
    if facet is Facet.STDERR_BYTES:
        return record.stderr
    if facet is Facet.COMBINED_BYTES:
        return record.combined
    if facet is Facet.STDOUT:
        return _decode(record.stdout, STDOUT, command_line)
    if facet is Facet.STDOUT_TRIMMED:
        return _trim(_decode(record.stdout, STDOUT, command_line))
    if facet is Facet.STDERR:
        return _decode(record.stderr, STDERR, command_line)
    if facet is Facet.STDERR_TRIMMED:
        return _trim(_decode(record.stderr, STDERR, command_line))
    if facet is Facet.COMBINED:
        return _decode(record.combined, "combined output", command_line)
    return None


class CommandOutput:
    """Typed result holding exactly the requested facets.

    Index by :class:`Facet`, read a named accessor, or unpack in request
    order:

    >>> from libchild.record import ExecutionRecord, ExitStatus
    >>> record = ExecutionRecord(
    ...     argv=('echo', 'hi'), stdout=b'hi\\n', stderr=b'',
    ...     status=ExitStatus(code=0), arrivals=(('stdout', 3),),
    ... )
    >>> output = extract(record, OutputRequest(Facet.STDOUT, Facet.EXIT_CODE))
    >>> output.stdout
    'hi\\n'
    >>> output[Facet.EXIT_CODE]
    0
    >>> text, code = output
    >>> text, code
    ('hi\\n', 0)

    Facets that were not requested are not available:

    >>> output.success
    Traceback (most recent call last):
        ...
    libchild.exc.FacetNotRequested: Facet not requested: success
    """

    __slots__ = ("_values",)

    def __init__(self, values: dict[Facet, t.Any]) -> None:
        self._values = values

    @property
    def facets(self) -> tuple[Facet, ...]:
        """Requested facets, in request order."""
        return tuple(self._values)

    def __getitem__(self, facet: Facet) -> t.Any:
        try:
            return self._values[facet]
        except KeyError:
            raise exc.FacetNotRequested(facet) from None

    def __contains__(self, facet: object) -> bool:
        return facet in self._values

    def __iter__(self) -> Iterator[t.Any]:
        return iter(self._values.values())

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        items = ", ".join(f"{facet}={value!r}" for facet, value in self._values.items())
        return f"{self.__class__.__name__}({items})"

    def _first(self, *candidates: Facet) -> t.Any:
        for facet in candidates:
            if facet in self._values:
                return self._values[facet]
        raise exc.FacetNotRequested(candidates[0])

    @property
    def value(self) -> t.Any:
        """Return the single requested facet.

        Raises
        ------
        :exc:`ValueError`
            if more or less than one facet was requested
        """
        if len(self._values) != 1:
            msg = f"Expected exactly one facet, got {len(self._values)}"
            raise ValueError(msg)
        return next(iter(self._values.values()))

    @property
    def stdout(self) -> str | bytes:
        """Whichever stdout variant was requested."""
        return self._first(Facet.STDOUT, Facet.STDOUT_TRIMMED, Facet.STDOUT_BYTES)

    @property
    def stderr(self) -> str | bytes:
        """Whichever stderr variant was requested."""
        return self._first(Facet.STDERR, Facet.STDERR_TRIMMED, Facet.STDERR_BYTES)

    @property
    def combined(self) -> str | bytes:
        """Whichever combined-output variant was requested."""
        return self._first(Facet.COMBINED, Facet.COMBINED_BYTES)

    @property
    def status(self) -> ExitStatus:
        """Termination outcome."""
        return t.cast("ExitStatus", self[Facet.STATUS])

    @property
    def exit_code(self) -> int | None:
        """Exit code, ``None`` if the child was killed by a signal."""
        return t.cast("int | None", self[Facet.EXIT_CODE])

    @property
    def success(self) -> bool:
        """Whether the child exited with code 0."""
        return bool(self[Facet.SUCCESS])


def extract(
    record: ExecutionRecord,
    request: OutputRequest,
    command_line: str | None = None,
) -> CommandOutput:
    """Project ``record`` into the facets named by ``request``.

    Parameters
    ----------
    record : :class:`~libchild.record.ExecutionRecord`
        finished execution
    request : :class:`OutputRequest`
        facets to derive
    command_line : str, optional
        used in :exc:`~libchild.exc.EncodingError` messages, defaults to the
        record's argv joined by spaces

    Raises
    ------
    :exc:`exc.EncodingError`
        if a text facet was requested and the bytes are not valid UTF-8
    """
    if command_line is None:
        command_line = " ".join(record.argv)
    values = {
        facet: _project(facet, record, command_line)
        for facet in request
        if facet is not Facet.DISCARD
    }
    return CommandOutput(values)

"""Immutable results of a single child-process execution.

libchild.record
~~~~~~~~~~~~~~~

"""

from __future__ import annotations

import dataclasses
import signal as _signal
import typing as t

from libchild.constants import STDERR, STDOUT

if t.TYPE_CHECKING:
    from libchild._internal.types import ReturnCode


@dataclasses.dataclass(frozen=True)
class ExitStatus:
    """How a child process terminated: an exit code, or a signal.

    Examples
    --------
    >>> ExitStatus.from_returncode(0).success()
    True

    >>> status = ExitStatus.from_returncode(7)
    >>> status.code, status.signal, status.success()
    (7, None, False)
    >>> str(status)
    'exit code: 7'

    Negative return codes mean the process was killed by a signal:

    >>> killed = ExitStatus.from_returncode(-9)
    >>> killed.code is None, killed.signal
    (True, 9)
    >>> str(killed)
    'signal: 9 (SIGKILL)'
    """

    code: int | None = None
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: ReturnCode) -> ExitStatus:
        """Build from a :class:`subprocess.Popen` style ``returncode``."""
        if returncode < 0:
            return cls(signal=-returncode)
        return cls(code=returncode)

    def success(self) -> bool:
        """Return ``True`` if the process exited with code 0."""
        return self.code == 0

    def __str__(self) -> str:
        if self.signal is not None:
            try:
                name = _signal.Signals(self.signal).name
            except ValueError:
                return f"signal: {self.signal}"
            return f"signal: {self.signal} ({name})"
        return f"exit code: {self.code}"


@dataclasses.dataclass(frozen=True)
class ExecutionRecord:
    """Everything observed while running one command.

    Streams that were not piped are recorded as empty bytes.

    Attributes
    ----------
    argv : tuple[str, ...]
        the argument vector the process was started with
    stdout : bytes
        captured standard output
    stderr : bytes
        captured standard error
    status : ExitStatus
        termination outcome
    arrivals : tuple[tuple[str, int], ...]
        ``(stream, length)`` for every chunk read, in the order the chunks
        arrived, used to interleave :attr:`combined`
    """

    argv: tuple[str, ...]
    stdout: bytes
    stderr: bytes
    status: ExitStatus
    arrivals: tuple[tuple[str, int], ...] = ()

    @property
    def combined(self) -> bytes:
        """Stdout and stderr interleaved in arrival order.

        >>> record = ExecutionRecord(
        ...     argv=('demo',),
        ...     stdout=b'out1 out2 ',
        ...     stderr=b'err1 ',
        ...     status=ExitStatus(code=0),
        ...     arrivals=(('stdout', 5), ('stderr', 5), ('stdout', 5)),
        ... )
        >>> record.combined
        b'out1 err1 out2 '
        """
        offsets = {STDOUT: 0, STDERR: 0}
        sources = {STDOUT: self.stdout, STDERR: self.stderr}
        parts: list[bytes] = []
        for stream, length in self.arrivals:
            start = offsets[stream]
            parts.append(sources[stream][start : start + length])
            offsets[stream] = start + length
        return b"".join(parts)

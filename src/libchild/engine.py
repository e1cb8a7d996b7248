"""Run one :class:`~libchild.args.CommandSpec` to completion.

libchild.engine
~~~~~~~~~~~~~~~

Every piped stream gets its own worker thread: one per captured output
stream, one writing the stdin payload. A single thread reading stdout while
the child blocks on a full stderr pipe (or on stdin) would hang forever.
"""

from __future__ import annotations

import logging
import shlex
import threading
import typing as t

from libchild import exc
from libchild._internal import trace
from libchild.constants import LOG_ALL_COMMANDS, READ_CHUNK_SIZE, STDERR, STDOUT
from libchild.record import ExecutionRecord, ExitStatus

if t.TYPE_CHECKING:
    import sys
    from collections.abc import Iterable

    from libchild.args import CommandSpec
    from libchild.contexts.base import Context, ProcessHandle
    from libchild.output import OutputRequest

    if sys.version_info >= (3, 11):
        from typing import Self
    else:
        from typing_extensions import Self

logger = logging.getLogger(__name__)

_NEEDS_QUOTES = frozenset(" \t\n\r\x0b\x0c'\"\\")


def quote_token(token: str) -> str:
    """Quote ``token`` for the command log if it would not survive splitting.

    Tokens that are empty or contain whitespace, quotes or backslashes are
    quoted with :func:`shlex.quote`; everything else is written verbatim.

    >>> quote_token('foo')
    'foo'
    >>> quote_token('foo bar')
    "'foo bar'"
    >>> quote_token('')
    "''"
    """
    if not token or any(c in _NEEDS_QUOTES for c in token):
        return shlex.quote(token)
    return token


def format_command_line(tokens: Iterable[str]) -> str:
    """Join ``tokens`` into the line written to the command log.

    :func:`shlex.split` recovers the tokens from the result.

    >>> format_command_line(['echo', 'foo bar', ''])
    "echo 'foo bar' ''"
    >>> shlex.split(format_command_line(['echo', "a 'b' c"]))
    ['echo', "a 'b' c"]
    """
    return " ".join(quote_token(token) for token in tokens)


class _Arrivals:
    """Arrival order of chunks across the drain threads.

    Chunks tagged with the writer's sequence number are ordered by it;
    untagged chunks keep the order in which the drains read them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[tuple[int, str, int]] = []

    def add(self, stream: str, length: int, sequence: int | None = None) -> None:
        with self._lock:
            if sequence is None:
                sequence = len(self._entries)
            self._entries.append((sequence, stream, length))

    def ordered(self) -> tuple[tuple[str, int], ...]:
        with self._lock:
            entries = sorted(self._entries, key=lambda entry: entry[0])
        return tuple((stream, length) for _, stream, length in entries)


class _Drain(threading.Thread):
    """Read one child stream to end of file into a private buffer.

    Sources offering ``read_sequenced()`` report the sequence number of each
    chunk along with it.
    """

    def __init__(self, name: str, source: t.IO[bytes], arrivals: _Arrivals) -> None:
        super().__init__(name=f"libchild-drain-{name}", daemon=True)
        self.stream = name
        self.source = source
        self.arrivals = arrivals
        self.buffer = bytearray()
        self.error: OSError | None = None

    def run(self) -> None:
        read_sequenced = getattr(self.source, "read_sequenced", None)
        read = getattr(self.source, "read1", self.source.read)
        try:
            while True:
                if read_sequenced is not None:
                    sequence, chunk = read_sequenced(READ_CHUNK_SIZE)
                else:
                    sequence, chunk = None, read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                self.buffer += chunk
                self.arrivals.add(self.stream, len(chunk), sequence)
        except (OSError, ValueError) as e:
            logger.debug("reading %s failed: %s", self.stream, e)
            self.error = e if isinstance(e, OSError) else OSError(str(e))


class _Feed(threading.Thread):
    """Write the whole stdin payload, then close the pipe."""

    def __init__(self, sink: t.IO[bytes], payload: bytes) -> None:
        super().__init__(name="libchild-feed-stdin", daemon=True)
        self.sink = sink
        self.payload = payload
        self.error: OSError | None = None

    def run(self) -> None:
        try:
            self.sink.write(self.payload)
            self.sink.flush()
        except OSError as e:
            logger.debug("writing stdin failed: %s", e)
            self.error = e
        finally:
            try:
                self.sink.close()
            except OSError as e:
                if self.error is None:
                    self.error = e


class Invocation:
    """One execution of a :class:`~libchild.args.CommandSpec`.

    :meth:`start` spawns the child; :attr:`process` and :meth:`kill` are
    available until :meth:`wait` turns the run into an
    :class:`~libchild.record.ExecutionRecord`. Callers that need a timeout
    race :meth:`wait` against their own timer and call :meth:`kill`.

    Parameters
    ----------
    spec : :class:`~libchild.args.CommandSpec`
        what to run
    request : :class:`~libchild.output.OutputRequest`
        decides which output streams are piped
    context : :class:`~libchild.contexts.Context`
        capabilities to run with
    """

    def __init__(
        self,
        spec: CommandSpec,
        request: OutputRequest,
        context: Context,
    ) -> None:
        self.spec = spec
        self.request = request
        self.context = context
        self.command_line = format_command_line(spec.tokens)
        self._handle: ProcessHandle | None = None
        self._arrivals = _Arrivals()
        self._drains: dict[str, _Drain] = {}
        self._feed: _Feed | None = None
        self._record: ExecutionRecord | None = None
        self._killed = False

    @property
    def process(self) -> ProcessHandle:
        """The live process handle."""
        if self._handle is None:
            msg = "Invocation has not been started"
            raise RuntimeError(msg)
        return self._handle

    def start(self) -> Self:
        """Log, resolve and spawn the child, then start the stream workers.

        Raises
        ------
        :exc:`exc.SpawnError`
            if the executable cannot be resolved or started
        :exc:`exc.IoError`
            if the command line cannot be written to the log sink
        """
        spec, context = self.spec, self.context
        if spec.log_command or LOG_ALL_COMMANDS:
            try:
                context.write_log(self.command_line)
            except OSError as e:
                raise exc.IoError(self.command_line, str(e)) from e

        env = context.child_environment(spec.env)
        cwd = context.resolve_cwd(spec.cwd)
        executable = context.which(spec.executable, env, cwd)
        if executable is None:
            raise exc.ExecutableNotFound(spec.executable)

        with trace.span("engine.spawn", executable=executable):
            try:
                handle = context.spawn(
                    executable,
                    spec.tokens,
                    cwd,
                    env,
                    pipe_stdin=spec.stdin is not None,
                    pipe_stdout=self.request.capture_stdout,
                    pipe_stderr=self.request.capture_stderr,
                )
            except FileNotFoundError as e:
                if e.filename == cwd:
                    msg = f"working directory does not exist: {cwd}"
                    raise exc.SpawnError(self.command_line, msg) from e
                raise exc.ExecutableNotFound(spec.executable) from e
            except OSError as e:
                raise exc.SpawnError(self.command_line, str(e)) from e
            except Exception:
                logger.exception(f"Exception for {self.command_line}")
                raise
        self._handle = handle

        try:
            if handle.stdout is not None:
                self._drains[STDOUT] = _Drain(STDOUT, handle.stdout, self._arrivals)
            if handle.stderr is not None:
                self._drains[STDERR] = _Drain(STDERR, handle.stderr, self._arrivals)
            if handle.stdin is not None and spec.stdin is not None:
                self._feed = _Feed(handle.stdin, spec.stdin)
            for worker in self._workers():
                worker.start()
        except BaseException:
            self.kill()
            self._finish()
            raise
        return self

    def _workers(self) -> list[threading.Thread]:
        workers: list[threading.Thread] = list(self._drains.values())
        if self._feed is not None:
            workers.append(self._feed)
        return workers

    def kill(self) -> None:
        """Kill the child if it is still running."""
        if self._handle is not None and self._handle.poll() is None:
            logger.debug("killing %s (pid %s)", self.command_line, self._handle.pid)
            self._killed = True
            self._handle.kill()

    def _finish(self) -> int:
        handle = self.process
        try:
            with trace.span("engine.wait", pid=handle.pid):
                returncode = handle.wait()
                for worker in self._workers():
                    if worker.is_alive():
                        worker.join()
        finally:
            for stream in (handle.stdin, handle.stdout, handle.stderr):
                if stream is not None:
                    try:
                        stream.close()
                    except OSError:
                        logger.debug("closing pipe failed", exc_info=True)
            self.context.release(handle)
        return returncode

    def wait(self) -> ExecutionRecord:
        """Wait for the child and the stream workers; build the record.

        Raises
        ------
        :exc:`exc.IoError`
            if a pipe failed mid-flight; carries the partial output
        """
        if self._record is not None:
            return self._record
        returncode = self._finish()

        stdout = bytes(self._drains[STDOUT].buffer) if STDOUT in self._drains else b""
        stderr = bytes(self._drains[STDERR].buffer) if STDERR in self._drains else b""

        for worker in self._workers():
            error = getattr(worker, "error", None)
            if error is not None and not self._killed:
                raise exc.IoError(
                    self.command_line,
                    str(error),
                    stdout=stdout,
                    stderr=stderr,
                ) from error

        status = ExitStatus.from_returncode(returncode)
        logger.debug("%s finished with %s", self.command_line, status)
        self._record = ExecutionRecord(
            argv=self.spec.tokens,
            stdout=stdout,
            stderr=stderr,
            status=status,
            arrivals=self._arrivals.ordered(),
        )
        return self._record


def execute(
    spec: CommandSpec,
    request: OutputRequest,
    context: Context,
) -> ExecutionRecord:
    """Run ``spec`` and block until it finished."""
    return Invocation(spec, request, context).start().wait()

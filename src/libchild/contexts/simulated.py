"""In-memory context for hermetic tests.

Programs are plain Python callables registered under absolute paths. They
run on a thread, talk to the caller through in-memory pipes, and never touch
the real filesystem, environment or process table.

>>> def greet(proc):
...     proc.stdout.write(b'hello ' + proc.argv[1].encode() + b'\\n')
...     return 0

>>> ctx = SimulatedContext()
>>> ctx.register('greet', greet)
'/usr/bin/greet'
>>> ctx.which('greet', ctx.environ, ctx.cwd)
'/usr/bin/greet'
"""

from __future__ import annotations

import collections
import errno
import io
import itertools
import logging
import posixpath
import signal
import threading
import typing as t

from libchild.constants import SIMULATED_BIN_DIR, SIMULATED_PATH
from libchild.contexts.base import Context

if t.TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from libchild._internal.types import ReturnCode, StrPath

    #: A simulated executable: receives the process, returns an exit code
    SimulatedProgram = Callable[["SimulatedProcess"], "int | None"]

logger = logging.getLogger(__name__)

_pids = itertools.count(1000)


class WriteSequence:
    """Counter shared by the output pipes of one simulated process.

    Every write takes the next number, so readers of different pipes can
    restore the order in which the program wrote.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)


class MemoryPipe:
    """Unbounded, thread-safe byte pipe.

    Reads block until data arrives or the write end is closed. Writes after
    the read end is closed raise :exc:`BrokenPipeError`. Each write keeps its
    number from ``sequence``; :meth:`read_sequenced` hands it back.

    >>> pipe = MemoryPipe()
    >>> pipe.writer.write(b'abc')
    3
    >>> pipe.writer.close()
    >>> pipe.reader.read(2), pipe.reader.read(), pipe.reader.read()
    (b'ab', b'c', b'')
    """

    def __init__(self, sequence: WriteSequence | None = None) -> None:
        self._chunks: collections.deque[tuple[int, bytes]] = collections.deque()
        self._cond = threading.Condition()
        self._sequence = sequence or WriteSequence()
        self.write_closed = False
        self.read_closed = False
        self.reader = _PipeReader(self)
        self.writer = _PipeWriter(self)

    def write(self, data: bytes) -> int:
        with self._cond:
            if self.read_closed:
                raise BrokenPipeError(errno.EPIPE, "Broken pipe")
            if self.write_closed:
                msg = "write to closed pipe"
                raise ValueError(msg)
            if data:
                self._chunks.append((self._sequence.next(), data))
                self._cond.notify_all()
        return len(data)

    def _wait_readable(self) -> None:
        while not self._chunks and not self.write_closed and not self.read_closed:
            self._cond.wait()

    def _take(self, size: int) -> tuple[int, bytes]:
        sequence, data = self._chunks[0]
        if len(data) <= size:
            self._chunks.popleft()
            return sequence, data
        self._chunks[0] = (sequence, data[size:])
        return sequence, data[:size]

    def read(self, size: int = -1) -> bytes:
        with self._cond:
            self._wait_readable()
            if size is None or size < 0:
                size = sum(len(data) for _, data in self._chunks)
            out = bytearray()
            while self._chunks and len(out) < size:
                out += self._take(size - len(out))[1]
            return bytes(out)

    def read_sequenced(self, size: int = -1) -> tuple[int | None, bytes]:
        """Read from the oldest pending write only, with its number.

        Returns ``(None, b'')`` at end of file.
        """
        with self._cond:
            self._wait_readable()
            if not self._chunks:
                return None, b""
            if size is None or size < 0:
                size = len(self._chunks[0][1])
            return self._take(size)

    def close_write(self) -> None:
        with self._cond:
            self.write_closed = True
            self._cond.notify_all()

    def close_read(self) -> None:
        with self._cond:
            self.read_closed = True
            self._chunks.clear()
            self._cond.notify_all()


class _PipeReader(io.RawIOBase):
    def __init__(self, pipe: MemoryPipe) -> None:
        super().__init__()
        self._pipe = pipe

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            chunks = []
            while True:
                chunk = self._pipe.read()
                if not chunk:
                    return b"".join(chunks)
                chunks.append(chunk)
        return self._pipe.read(size)

    def read1(self, size: int = -1) -> bytes:
        return self._pipe.read(size)

    def read_sequenced(self, size: int = -1) -> tuple[int | None, bytes]:
        return self._pipe.read_sequenced(size)

    def readinto(self, buffer: t.Any) -> int:
        data = self._pipe.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def close(self) -> None:
        self._pipe.close_read()
        super().close()


class _PipeWriter(io.RawIOBase):
    def __init__(self, pipe: MemoryPipe) -> None:
        super().__init__()
        self._pipe = pipe

    def writable(self) -> bool:
        return True

    def write(self, data: t.Any) -> int:
        return self._pipe.write(bytes(data))

    def close(self) -> None:
        self._pipe.close_write()
        super().close()


class _SinkWriter(io.RawIOBase):
    """Write end connected to a context sink; closing it leaves the sink open."""

    def __init__(self, sink: t.BinaryIO) -> None:
        super().__init__()
        self._sink = sink

    def writable(self) -> bool:
        return True

    def write(self, data: t.Any) -> int:
        return self._sink.write(bytes(data))


class SimulatedProcess:
    """What a simulated program sees of itself.

    Attributes
    ----------
    argv : list[str]
        arguments, ``argv[0]`` as the caller wrote it
    executable : str
        resolved path of the program
    env : dict[str, str]
        environment block
    cwd : str
        working directory
    stdin : binary stream
        readable; piped payload or the context's stdin
    stdout, stderr : binary stream
        writable; pipes or the context's sinks
    """

    def __init__(
        self,
        context: SimulatedContext,
        executable: str,
        argv: list[str],
        env: dict[str, str],
        cwd: str,
        stdin: t.BinaryIO,
        stdout: t.BinaryIO,
        stderr: t.BinaryIO,
    ) -> None:
        self.context = context
        self.executable = executable
        self.argv = argv
        self.env = env
        self.cwd = cwd
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        #: Set when the process is killed; long-running programs poll it
        self.killed = threading.Event()

    def print(self, text: str, stream: str = "stdout") -> None:
        """Write ``text`` plus a newline, UTF-8 encoded."""
        target = self.stderr if stream == "stderr" else self.stdout
        target.write(text.encode("utf-8") + b"\n")


class SimulatedHandle:
    """Handle of a simulated process running on its own thread."""

    def __init__(
        self,
        program: SimulatedProgram,
        process: SimulatedProcess,
        pipes: list[MemoryPipe],
        stdin: t.IO[bytes] | None,
        stdout: t.IO[bytes] | None,
        stderr: t.IO[bytes] | None,
    ) -> None:
        self.pid = next(_pids)
        self.process = process
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self._program = program
        self._pipes = pipes
        self._returncode: ReturnCode | None = None
        self._error: BaseException | None = None
        self._killed = False
        self._thread = threading.Thread(
            target=self._main,
            name=f"simulated-{posixpath.basename(process.executable)}-{self.pid}",
            daemon=True,
        )
        self._thread.start()

    def _main(self) -> None:
        returncode: ReturnCode = 0
        try:
            result = self._program(self.process)
            returncode = 0 if result is None else int(result)
        except SystemExit as e:
            if e.code is None or isinstance(e.code, int):
                returncode = e.code or 0
            else:
                self.process.stderr.write(f"{e.code}\n".encode())
                returncode = 1
        except BaseException as e:
            if not self._killed:
                self._error = e
            returncode = 1
        finally:
            self.process.stdout.close()
            self.process.stderr.close()
        self._returncode = -signal.SIGKILL if self._killed else returncode

    def poll(self) -> ReturnCode | None:
        """Return the return code if the program has finished."""
        if self._thread.is_alive():
            return None
        return self._returncode

    def wait(self) -> ReturnCode:
        """Join the program thread.

        Exceptions raised by the program are re-raised here.
        """
        self._thread.join()
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        assert self._returncode is not None
        return self._returncode

    def kill(self) -> None:
        """Unblock the program by closing all of its pipes."""
        self._killed = True
        self.process.killed.set()
        for pipe in self._pipes:
            pipe.close_write()
            pipe.close_read()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(pid={self.pid})"


class SimulatedContext(Context):
    """Redirect every capability to in-memory state.

    Parameters
    ----------
    programs : Mapping[str, SimulatedProgram], optional
        programs to :meth:`register` up front
    environ : Mapping[str, str], optional
        fake environment, ``PATH`` defaults to
        :data:`~libchild.constants.SIMULATED_PATH`
    cwd : str
        fake working directory, created in the fake filesystem
    stdin : bytes
        contents of the passthrough stdin
    directories : iterable of str, optional
        additional directories that exist in the fake filesystem

    Attributes
    ----------
    stdout, stderr : :class:`io.BytesIO`
        everything children wrote to non-piped streams
    log : :class:`io.StringIO`
        logged command lines
    """

    def __init__(
        self,
        programs: Mapping[str, SimulatedProgram] | None = None,
        environ: Mapping[str, str] | None = None,
        cwd: str = "/home/user",
        stdin: bytes = b"",
        directories: t.Iterable[str] = (),
    ) -> None:
        env = {"PATH": SIMULATED_PATH, "HOME": "/home/user"}
        env.update(environ or {})
        super().__init__(
            cwd=cwd,
            environ=env,
            stdin=io.BytesIO(stdin),
            stdout=io.BytesIO(),
            stderr=io.BytesIO(),
            log=io.StringIO(),
        )
        self.programs: dict[str, SimulatedProgram] = {}
        self.directories: set[str] = {"/"}
        self.add_directory("/tmp")
        self.add_directory(cwd)
        for path in SIMULATED_PATH.split(":"):
            self.add_directory(path)
        for path in directories:
            self.add_directory(path)
        for name, program in (programs or {}).items():
            self.register(name, program)

    def add_directory(self, path: str) -> None:
        """Create ``path`` and its parents in the fake filesystem."""
        path = posixpath.normpath(posixpath.join(self.cwd, path))
        while path not in self.directories:
            self.directories.add(path)
            path = posixpath.dirname(path)

    def register(self, name: str, program: SimulatedProgram) -> str:
        """Install ``program`` as an executable and return its path.

        Bare names are installed in :data:`~libchild.constants.SIMULATED_BIN_DIR`.
        """
        if "/" in name:
            path = posixpath.normpath(posixpath.join(self.cwd, name))
        else:
            path = posixpath.join(SIMULATED_BIN_DIR, name)
        self.add_directory(posixpath.dirname(path))
        self.programs[path] = program
        return path

    def which(
        self,
        executable: str,
        environ: Mapping[str, str],
        cwd: str,
    ) -> str | None:
        """Search the fake ``PATH`` of ``environ`` for ``executable``."""
        if not executable:
            return None
        if "/" in executable:
            candidate = posixpath.normpath(posixpath.join(cwd, executable))
            return candidate if candidate in self.programs else None
        for directory in environ.get("PATH", "").split(":"):
            candidate = posixpath.join(directory or cwd, executable)
            if candidate in self.programs:
                return candidate
        return None

    def resolve_cwd(self, override: StrPath | None) -> str:
        """Return the child's working directory in the fake filesystem."""
        if override is None:
            return self.cwd
        return posixpath.normpath(posixpath.join(self.cwd, str(override)))

    def _spawn(
        self,
        executable: str,
        argv: t.Sequence[str],
        cwd: str,
        environ: Mapping[str, str],
        pipe_stdin: bool,
        pipe_stdout: bool,
        pipe_stderr: bool,
    ) -> SimulatedHandle:
        if cwd not in self.directories:
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", cwd)
        program = self.programs.get(executable)
        if program is None:
            raise FileNotFoundError(
                errno.ENOENT,
                "No such file or directory",
                executable,
            )

        pipes: list[MemoryPipe] = []
        sequence = WriteSequence()

        def pipe() -> MemoryPipe:
            p = MemoryPipe(sequence)
            pipes.append(p)
            return p

        stdin_pipe = pipe() if pipe_stdin else None
        stdout_pipe = pipe() if pipe_stdout else None
        stderr_pipe = pipe() if pipe_stderr else None

        process = SimulatedProcess(
            context=self,
            executable=executable,
            argv=list(argv),
            env=dict(environ),
            cwd=cwd,
            stdin=t.cast(
                "t.BinaryIO",
                stdin_pipe.reader if stdin_pipe else _PassthroughReader(self.stdin),
            ),
            stdout=t.cast(
                "t.BinaryIO",
                stdout_pipe.writer if stdout_pipe else _SinkWriter(self.stdout),
            ),
            stderr=t.cast(
                "t.BinaryIO",
                stderr_pipe.writer if stderr_pipe else _SinkWriter(self.stderr),
            ),
        )
        logger.debug("simulating %s %s", executable, list(argv[1:]))
        return SimulatedHandle(
            program,
            process,
            pipes,
            stdin=stdin_pipe.writer if stdin_pipe else None,
            stdout=stdout_pipe.reader if stdout_pipe else None,
            stderr=stderr_pipe.reader if stderr_pipe else None,
        )

    @property
    def stdout_bytes(self) -> bytes:
        """Bytes children wrote to the passthrough stdout."""
        return t.cast("io.BytesIO", self.stdout).getvalue()

    @property
    def stderr_bytes(self) -> bytes:
        """Bytes children wrote to the passthrough stderr."""
        return t.cast("io.BytesIO", self.stderr).getvalue()

    @property
    def log_text(self) -> str:
        """Logged command lines."""
        return t.cast("io.StringIO", self.log).getvalue()


class _PassthroughReader(io.RawIOBase):
    """Read end connected to the context's stdin; closing leaves it open."""

    def __init__(self, source: t.BinaryIO) -> None:
        super().__init__()
        self._source = source

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        return self._source.read(size)

    def read1(self, size: int = -1) -> bytes:
        return self._source.read(size)

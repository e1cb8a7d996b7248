"""Decide whether a finished command counts as an error.

libchild.policy
~~~~~~~~~~~~~~~

"""

from __future__ import annotations

import logging
import typing as t

from libchild import exc

if t.TYPE_CHECKING:
    from libchild.output import OutputRequest
    from libchild.record import ExecutionRecord

logger = logging.getLogger(__name__)


def check_status(
    record: ExecutionRecord,
    request: OutputRequest,
    command_line: str,
) -> None:
    """Raise :exc:`~libchild.exc.StatusError` for an unrequested failure.

    Requesting any status facet (:attr:`~libchild.output.Facet.STATUS`,
    :attr:`~libchild.output.Facet.EXIT_CODE` or
    :attr:`~libchild.output.Facet.SUCCESS`) hands interpretation of the
    status to the caller, whatever else was requested.

    Examples
    --------
    >>> from libchild.output import Facet, OutputRequest
    >>> from libchild.record import ExecutionRecord, ExitStatus
    >>> failed = ExecutionRecord(
    ...     argv=('false',), stdout=b'', stderr=b'', status=ExitStatus(code=1),
    ... )

    >>> check_status(failed, OutputRequest(Facet.SUCCESS), 'false')

    >>> check_status(failed, OutputRequest(Facet.STDOUT), 'false')
    Traceback (most recent call last):
        ...
    libchild.exc.StatusError: false:
      exited with exit code: 1
    """
    if record.status.success() or request.wants_status:
        return
    stderr: str | None = None
    if request.capture_stderr:
        stderr = record.stderr.decode("utf-8", errors="backslashreplace")
    logger.debug("%s failed with %s", command_line, record.status)
    raise exc.StatusError(command_line, record.status, stderr=stderr)

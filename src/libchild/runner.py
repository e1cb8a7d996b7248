"""Entry points: collect, execute, check and extract in one call.

libchild.runner
~~~~~~~~~~~~~~~

>>> from libchild.contexts import SimulatedContext
>>> from libchild.test.programs import install_builtin_programs
>>> ctx = install_builtin_programs(SimulatedContext())
>>> run('echo', 'hello', output=Facet.STDOUT_TRIMMED, context=ctx).value
'hello'
"""

from __future__ import annotations

import logging
import typing as t

from libchild import policy
from libchild.args import collect
from libchild.contexts.production import ProductionContext
from libchild.engine import Invocation
from libchild.output import Facet, OutputRequest, extract

if t.TYPE_CHECKING:
    from collections.abc import Iterable

    from libchild.contexts.base import Context
    from libchild.output import CommandOutput

    OutputArg = t.Union[OutputRequest, Facet, Iterable[Facet], None]

logger = logging.getLogger(__name__)

__all__ = ["Facet", "run", "start"]


def start(
    *contributions: t.Any,
    output: OutputArg = None,
    context: Context | None = None,
) -> Invocation:
    """Spawn the command without waiting for it.

    Returns the started :class:`~libchild.engine.Invocation`; call its
    :meth:`~libchild.engine.Invocation.wait` for the
    :class:`~libchild.record.ExecutionRecord`. No status check or facet
    extraction happens on this path. A default
    :class:`~libchild.contexts.ProductionContext` stays open; close it through
    ``invocation.context`` once done.
    """
    spec = collect(*contributions)
    request = OutputRequest.coerce(output)
    if context is None:
        context = ProductionContext()
    return Invocation(spec, request, context).start()


def run(
    *contributions: t.Any,
    output: OutputArg = None,
    context: Context | None = None,
) -> CommandOutput:
    """Run a child process to completion and return the requested facets.

    Parameters
    ----------
    *contributions
        executable and arguments, plus any of :class:`~libchild.Split`,
        :class:`~libchild.CurrentDir`, :class:`~libchild.Env`,
        :class:`~libchild.Stdin`, :class:`~libchild.LogCommand`,
        :class:`~libchild.CommandSpec`, or lists and tuples of them
    output : :class:`~libchild.output.OutputRequest`, :class:`Facet` or iterable
        facets to return. ``None`` discards all output: nothing is captured
        and streams pass through to the context's sinks.
    context : :class:`~libchild.contexts.Context`, optional
        defaults to a fresh :class:`~libchild.contexts.ProductionContext`,
        closed before returning

    Returns
    -------
    :class:`~libchild.output.CommandOutput`

    Raises
    ------
    :exc:`exc.ConfigurationError`
        contributions did not fold into a command
    :exc:`exc.SpawnError`
        the child could not be started
    :exc:`exc.IoError`
        a pipe failed while the child ran
    :exc:`exc.StatusError`
        the child failed and no status facet was requested
    :exc:`exc.EncodingError`
        a text facet was requested for output that is not valid UTF-8
    """
    if context is None:
        with ProductionContext() as context:
            return run(*contributions, output=output, context=context)
    invocation = start(*contributions, output=output, context=context)
    record = invocation.wait()
    policy.check_status(record, invocation.request, invocation.command_line)
    return extract(record, invocation.request, invocation.command_line)

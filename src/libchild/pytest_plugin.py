"""libchild pytest plugin.

Registered through the ``pytest11`` entry point, so the fixtures below are
available to any project that has libchild installed.
"""

from __future__ import annotations

import io
import logging
import typing as t

import pytest

from libchild.contexts.production import ProductionContext
from libchild.contexts.simulated import SimulatedContext
from libchild.test.programs import BUILTIN_PROGRAMS

if t.TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterator

    from libchild.contexts.simulated import SimulatedProgram

logger = logging.getLogger(__name__)


@pytest.fixture
def child_programs() -> dict[str, SimulatedProgram]:
    """Programs installed into :func:`simulated_context`.

    Override to add or replace programs:

    >>> import pytest

    >>> @pytest.fixture
    ... def child_programs(child_programs):
    ...     return {**child_programs, 'hello': lambda proc: proc.print('hi')}
    """
    return dict(BUILTIN_PROGRAMS)


@pytest.fixture
def simulated_context(
    child_programs: dict[str, SimulatedProgram],
) -> Iterator[SimulatedContext]:
    """Return a fresh :class:`~libchild.contexts.SimulatedContext`.

    Every program from :func:`child_programs` is registered. The context is
    closed after the test, which fails the test if a child was leaked.

    >>> from libchild import Facet, run

    >>> def test_example(simulated_context) -> None:
    ...     out = run('echo', 'hi', output=Facet.STDOUT, context=simulated_context)
    ...     assert out.stdout == 'hi\\n'
    """
    with SimulatedContext(programs=child_programs) as ctx:
        yield ctx


@pytest.fixture
def production_context(tmp_path: pathlib.Path) -> Iterator[ProductionContext]:
    """Return a :class:`~libchild.contexts.ProductionContext` in ``tmp_path``.

    Logged command lines go to an :class:`io.StringIO` available as
    ``production_context.log``.
    """
    with ProductionContext(cwd=str(tmp_path), log=io.StringIO()) as ctx:
        yield ctx

""":mod:`dataclasses` utilities.

Note
----
This is an internal API not covered by versioning policy.
"""

from __future__ import annotations

import dataclasses
import typing as t
from operator import attrgetter

if t.TYPE_CHECKING:
    from _typeshed import DataclassInstance


class SkipDefaultFieldsReprMixin:
    r"""Skip default fields in :func:`~dataclasses.dataclass` object representation.

    Command descriptions mostly leave their optional fields empty; showing only
    what was set keeps ``repr()`` output, log records and test failures short.

    Notes
    -----
    Credit: Pietro Oldrati, 2022-05-08, Unilicense

    https://stackoverflow.com/a/72161437/1396928

    Examples
    --------
    >>> @dataclasses.dataclass(frozen=True, repr=False)
    ... class Invocation(SkipDefaultFieldsReprMixin):
    ...     argv: tuple
    ...     cwd: t.Optional[str] = None
    ...     log_command: bool = False

    >>> Invocation(('echo', 'hi'))
    Invocation(argv=('echo', 'hi'))

    >>> Invocation(('pwd',), cwd='/tmp')
    Invocation(argv=('pwd',), cwd='/tmp')

    Fields with a ``default_factory`` are shown once they are non-empty:

    >>> @dataclasses.dataclass(frozen=True, repr=False)
    ... class WithEnv(SkipDefaultFieldsReprMixin):
    ...     argv: tuple
    ...     env: dict = dataclasses.field(default_factory=dict)

    >>> WithEnv(('env',))
    WithEnv(argv=('env',))

    >>> WithEnv(('env',), env={'FOO': 'bar'})
    WithEnv(argv=('env',), env={'FOO': 'bar'})
    """

    def __repr__(self: DataclassInstance) -> str:
        """Omit default fields in object representation."""
        nodef_f_vals = (
            (f.name, attrgetter(f.name)(self))
            for f in dataclasses.fields(self)
            if not _is_default(f, attrgetter(f.name)(self))
        )

        nodef_f_repr = ", ".join(f"{name}={value!r}" for name, value in nodef_f_vals)
        return f"{self.__class__.__name__}({nodef_f_repr})"


def _is_default(field: dataclasses.Field[t.Any], value: t.Any) -> bool:
    if field.default is not dataclasses.MISSING:
        return bool(value == field.default)
    if field.default_factory is not dataclasses.MISSING:
        return bool(value == field.default_factory())
    return False

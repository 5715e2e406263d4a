"""
tally.services.result — Operation Boundary
===========================================

Public operations never raise a domain error at their caller.  They
return ``OpResult(data, error)``: exactly one of the two is set.

:func:`as_result` wraps a service function that raises
:class:`~tally.errors.TallyError` internally and converts the error into
a value.  Logging follows the error kind:

* ``state_conflict`` — expected (a double tap), DEBUG only.
* ``backend_unavailable`` — WARNING, so outages are visible.
* everything else — INFO.

Programming errors (``TypeError``, ``KeyError`` …) are not domain errors
and propagate unchanged.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Generic, NamedTuple, ParamSpec, TypeVar

from tally.errors import BackendUnavailable, StateConflict, TallyError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class OpResult(NamedTuple, Generic[T]):
    data: T | None
    error: TallyError | None

    @property
    def ok(self) -> bool:
        return self.error is None


def as_result(func: Callable[P, T]) -> Callable[P, OpResult[T]]:
    """Decorate *func* so domain errors come back as ``OpResult(None, err)``."""

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> OpResult[T]:
        try:
            return OpResult(func(*args, **kwargs), None)
        except StateConflict as exc:
            logger.debug("%s → %s", func.__name__, exc.code)
            return OpResult(None, exc)
        except BackendUnavailable as exc:
            logger.warning("%s → backend unavailable", func.__name__, exc_info=exc)
            return OpResult(None, exc)
        except TallyError as exc:
            logger.info("%s → %s (%s)", func.__name__, exc.code, exc.kind)
            return OpResult(None, exc)

    return wrapper


def unwrap(result: OpResult[T]) -> T:
    """Return ``result.data`` or raise ``result.error`` (internal composition)."""
    if result.error is not None:
        raise result.error
    return result.data  # type: ignore[return-value]

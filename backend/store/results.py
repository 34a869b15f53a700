"""Single-result envelope and the one-shot handle that delivers it."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from store.errors import ErrorKind, PersistenceError, StoreError

if TYPE_CHECKING:
    from collections.abc import Coroutine, Generator

logger = structlog.get_logger()

# Strong references to in-flight operations so a discarded handle cannot
# let the event loop garbage-collect a write before it completes.
_in_flight: set[asyncio.Task[StoreResult]] = set()

_EXPECTED_KINDS = {ErrorKind.VALIDATION, ErrorKind.EMAIL_EXISTS, ErrorKind.USERNAME_EXISTS, ErrorKind.NOT_FOUND}


@dataclass(frozen=True)
class StoreResult:
    """Outcome of one store operation: data or exactly one error, never both."""

    data: Any = None
    err: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.err is None

    def unwrap(self) -> Any:  # noqa: ANN401
        """Return the data, or raise the error."""
        if self.err is not None:
            raise self.err
        return self.data


class StoreChannel:
    """One-shot completion handle for a store operation.

    The operation is already running when the handle is returned. Awaiting
    the handle yields its single StoreResult; awaiting again yields the same
    result. Cancelling the awaiting caller (e.g. via asyncio.wait_for) does
    not cancel the operation itself.
    """

    __slots__ = ("_task",)

    def __init__(self, task: asyncio.Task[StoreResult]) -> None:
        self._task = task

    @classmethod
    def spawn(cls, where: str, work: Coroutine[Any, Any, Any]) -> StoreChannel:
        """Schedule work on its own task. Must be called with a running event loop."""
        task = asyncio.create_task(_resolve(where, work), name=where)
        _in_flight.add(task)
        task.add_done_callback(_in_flight.discard)
        return cls(task)

    def __await__(self) -> Generator[Any, None, StoreResult]:
        return asyncio.shield(self._task).__await__()

    def done(self) -> bool:
        return self._task.done()

    def result(self) -> StoreResult:
        """Return the result of a completed operation. Raises asyncio.InvalidStateError if still running."""
        return self._task.result()


async def must(channel: StoreChannel) -> Any:  # noqa: ANN401
    """Await a store operation and return its data, raising its error if it failed."""
    return (await channel).unwrap()


async def _resolve(where: str, work: Coroutine[Any, Any, Any]) -> StoreResult:
    try:
        data = await work
    except StoreError as err:
        _log_failure(err)
        return StoreResult(err=err)
    except Exception as exc:
        logger.exception("unexpected store failure", where=where)
        return StoreResult(err=PersistenceError(where, "Unexpected store error", detail=repr(exc)))
    return StoreResult(data=data)


def _log_failure(err: StoreError) -> None:
    if err.kind in _EXPECTED_KINDS:
        logger.debug("store operation rejected", where=err.where, kind=err.kind, detail=err.detail)
    elif err.kind == ErrorKind.CONSISTENCY:
        logger.error("store consistency error", where=err.where, detail=err.detail)
    else:
        logger.warning("store persistence error", where=err.where, detail=err.detail)

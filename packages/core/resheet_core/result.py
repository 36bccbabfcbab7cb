"""Results of evaluating code, possibly still pending.

An evaluator may return a value that settles later (a
``concurrent.futures.Future`` or ``asyncio.Future``). Such values are wrapped
in a PromiseResult that starts ``pending`` and reports its settled value
through a callback, which blocks route into ``dispatch``.

Recomputing a block with a pending result must cancel it first, so that a
stale computation never overwrites a newer one: last recompute wins, not
last settled.
"""

import asyncio
import concurrent.futures
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Union


class _Pending:
    """Sentinel exposed as the value of a pending computation."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PENDING"


PENDING = _Pending()


class Cancellation:
    """Shared cancellation flag of one pending computation."""

    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass(frozen=True)
class ImmediateResult:
    value: Any
    type: Literal["immediate"] = "immediate"


@dataclass(frozen=True)
class PromiseResult:
    """Result of a computation that settles asynchronously.

    Attributes:
        state: 'pending', 'finished' or 'failed'
        cancellation: Flag shared by every PromiseResult of this computation
        value: Settled value (finished)
        error: Rejection (failed)
    """

    state: Literal["pending", "finished", "failed"]
    cancellation: Cancellation = field(compare=False)
    value: Any = None
    error: Any = None
    type: Literal["promise"] = "promise"

    def cancel(self) -> None:
        self.cancellation.cancel()


Result = Union[ImmediateResult, PromiseResult]

EMPTY_RESULT: Result = ImmediateResult(None)


def get_result_value(result: Result) -> Any:
    """Value a result exposes: the value, PENDING, or the rejection error."""
    if isinstance(result, ImmediateResult):
        return result.value
    if result.state == "pending":
        return PENDING
    if result.state == "failed":
        return result.error
    return result.value


def is_pending_value(value: Any) -> bool:
    return isinstance(value, (concurrent.futures.Future, asyncio.Future))


def _settled(future: Any, cancellation: Cancellation) -> PromiseResult:
    if future.cancelled():
        return PromiseResult("failed", cancellation, error=concurrent.futures.CancelledError())
    error = future.exception()
    if error is not None:
        return PromiseResult("failed", cancellation, error=error)
    return PromiseResult("finished", cancellation, value=future.result())


def promise_result(future: Any, on_settled: Callable[[Result], None]) -> PromiseResult:
    """Wrap a future; ``on_settled`` fires once unless cancelled first."""
    cancellation = Cancellation()
    if future.done():
        return _settled(future, cancellation)

    def done(settled_future: Any) -> None:
        if cancellation.cancelled:
            return
        on_settled(_settled(settled_future, cancellation))

    future.add_done_callback(done)
    return PromiseResult("pending", cancellation)


def result_from(value: Any, on_settled: Callable[[Result], None]) -> Result:
    """Wrap an evaluated value as an ImmediateResult or PromiseResult."""
    if is_pending_value(value):
        return promise_result(value, on_settled)
    return ImmediateResult(value)


def cancel_result(result: Result) -> None:
    """Cancel ``result`` if it is a computation that may still settle."""
    if isinstance(result, PromiseResult):
        result.cancel()

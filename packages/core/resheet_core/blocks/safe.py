"""Error containment around Blocks.

SafeBlock wraps any Block so that loading, saving, recomputing, reading
results and applying actions never raise past it:

    load fails          → the block's ``init`` state
    save fails          → None
    get_result fails    → the exception itself is the result
    recompute fails     → state unchanged, ``invalidated=False``
    an action fails     → state unchanged

Every contained failure is reported to the block's ErrorSink as a
BlockError(reason, error). A sink with no subscriber keeps the latest
failure as its *lost error* and hands it to the first subscriber that
claims it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher
from ..environment import Environment
from .base import Block, ChangedVars, Recomputed

logger = logging.getLogger(__name__)

LOAD_FAILED = "Block: Could not load JSON"
SAVE_FAILED = "Block: Could not convert to JSON"
RESULT_FAILED = "Block: Could not get result"
RECOMPUTE_FAILED = "Block: Could not recompute block"
ACTION_FAILED = "Block: Last action failed"
UPDATE_AFTER_RECOMPUTE_FAILED = "Block: Could not update after recompute"
UPDATE_AFTER_LOAD_FAILED = "Block: Could not update after fromJSON"


@dataclass(frozen=True)
class BlockError:
    """A failure contained by SafeBlock."""

    reason: str
    error: BaseException


class ErrorSink:
    """Where a SafeBlock reports contained failures.

    Example:
        sink = ErrorSink()
        unsubscribe = sink.claim(errors.append)
        ...
        unsubscribe()
    """

    def __init__(self):
        self.lost_error: Optional[BlockError] = None
        self._listener: Optional[Callable[[BlockError], None]] = None

    @property
    def claimed(self) -> bool:
        return self._listener is not None

    def claim(self, listener: Callable[[BlockError], None]) -> Callable[[], None]:
        """Subscribe ``listener``; a buffered lost error is delivered at once.

        Returns:
            Function releasing the claim
        """
        self._listener = listener
        lost_error, self.lost_error = self.lost_error, None
        if lost_error is not None:
            listener(lost_error)

        def release() -> None:
            if self._listener is listener:
                self._listener = None
        return release

    def report(self, reason: str, error: BaseException) -> None:
        block_error = BlockError(reason, error)
        if self._listener is None:
            logger.warning("%s: %r", reason, error, exc_info=error)
            self.lost_error = block_error
        else:
            logger.debug("%s: %r", reason, error)
            self._listener(block_error)


class SafeBlock(Block[Any]):
    """A Block whose failures are reported instead of raised.

    Args:
        block: Block to wrap (an already safe block is unwrapped first)
        sink: ErrorSink receiving failures (default: a fresh sink)
    """

    def __init__(self, block: Block, sink: Optional[ErrorSink] = None):
        if isinstance(block, SafeBlock):
            sink = sink or block.sink
            block = block.unsafe_block
        self.unsafe_block = block
        self.sink = sink or ErrorSink()

    @property
    def init(self) -> Any:
        return self.unsafe_block.init

    def safe_dispatch(self, dispatch: Dispatcher, reason: str) -> Dispatcher:
        """Wrap ``dispatch`` so that failing actions leave the state unchanged."""
        def dispatch_safely(action: Action) -> None:
            def guarded(state: Any, context: ActionContext) -> ActionOutput:
                try:
                    return action(state, context)
                except Exception as e:
                    self.sink.report(reason, e)
                    return ActionOutput(state)
            dispatch(guarded)
        return dispatch_safely

    def view(self, state: Any, dispatch: Dispatcher, env: Environment) -> Any:
        return self.unsafe_block.view(state, self.safe_dispatch(dispatch, ACTION_FAILED), env)

    def recompute(
        self,
        state: Any,
        dispatch: Dispatcher,
        env: Environment,
        changed: ChangedVars = None,
    ) -> Recomputed[Any]:
        safe_dispatch = self.safe_dispatch(dispatch, UPDATE_AFTER_RECOMPUTE_FAILED)
        try:
            return self.unsafe_block.recompute(state, safe_dispatch, env, changed)
        except Exception as e:
            self.sink.report(RECOMPUTE_FAILED, e)
            return Recomputed(state, invalidated=False)

    def get_result(self, state: Any) -> Any:
        try:
            return self.unsafe_block.get_result(state)
        except Exception as e:
            self.sink.report(RESULT_FAILED, e)
            return e

    def from_json(self, json: Any, dispatch: Dispatcher, env: Environment) -> Any:
        safe_dispatch = self.safe_dispatch(dispatch, UPDATE_AFTER_LOAD_FAILED)
        try:
            return self.unsafe_block.from_json(json, safe_dispatch, env)
        except Exception as e:
            self.sink.report(LOAD_FAILED, e)
            return self.unsafe_block.init

    def to_json(self, state: Any) -> Any:
        try:
            return self.unsafe_block.to_json(state)
        except Exception as e:
            self.sink.report(SAVE_FAILED, e)
            return None

    def _key(self):
        return (self.unsafe_block,)


def safe_block(block: Block, sink: Optional[ErrorSink] = None) -> SafeBlock:
    """Wrap ``block`` in a SafeBlock unless it already is one."""
    if isinstance(block, SafeBlock) and sink is None:
        return block
    return SafeBlock(block, sink)


def is_safe_block(value: Any) -> bool:
    return isinstance(value, SafeBlock)

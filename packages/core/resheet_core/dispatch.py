"""Actions and dispatchers.

All mutation is expressed as an *action*: a pure function from the old state
(plus an ActionContext carrying the Environment the state lives in) to an
ActionOutput holding the new state and an optional description. A
*dispatcher* accepts an action and arranges for it to be applied later by
whoever owns the state.

Dispatchers compose: a parent hands each child a dispatcher that lifts the
child's actions into actions on the parent's state (see field_dispatcher and
the entry/page engines). At the top sits a single serial reducer, BlockStore.
"""

import dataclasses
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Optional, TypeVar

from .environment import EMPTY_ENV, Environment

State = TypeVar("State")
Inner = TypeVar("Inner")


@dataclass(frozen=True)
class ActionContext:
    """Context an action is applied in."""

    env: Environment = dataclasses.field(default_factory=lambda: EMPTY_ENV)


@dataclass(frozen=True)
class ActionOutput:
    """Result of applying an action.

    Attributes:
        state: The new state
        description: Human-readable summary (surfaces in history and undo UIs)
    """

    state: Any
    description: Optional[str] = None


Action = Callable[[Any, ActionContext], ActionOutput]
Dispatcher = Callable[[Action], None]


def pure_action(update: Callable[[Any], Any], description: Optional[str] = None) -> Action:
    """Lift a plain ``state -> state`` function into an Action."""
    def action(state: Any, context: ActionContext) -> ActionOutput:
        return ActionOutput(update(state), description)
    return action


def set_field(obj: Any, field: str, value: Any) -> Any:
    """Copy ``obj`` with one field replaced (dataclasses and dicts)."""
    if dataclasses.is_dataclass(obj):
        return dataclasses.replace(obj, **{field: value})
    if isinstance(obj, dict):
        return {**obj, field: value}
    raise TypeError(f"Cannot set field '{field}' on {type(obj).__name__}")


def get_field(obj: Any, field: str) -> Any:
    if isinstance(obj, dict):
        return obj[field]
    return getattr(obj, field)


# =============================================================================
# Dispatcher Combinators
# =============================================================================

def map_dispatcher(
    map_incoming: Callable[[Any], Any],
    map_outgoing: Callable[[Any, Any], Any],
    dispatch: Dispatcher,
) -> Dispatcher:
    """Adapt a dispatcher of outer state into a dispatcher of inner state.

    Args:
        map_incoming: Extracts the inner state from the outer state
        map_outgoing: ``(new_inner, old_outer) -> new_outer``
        dispatch: Dispatcher of the outer state

    Returns:
        Dispatcher accepting actions on the inner state
    """
    def mapped_dispatch(action: Action) -> None:
        def outer_action(outer: Any, context: ActionContext) -> ActionOutput:
            output = action(map_incoming(outer), context)
            return ActionOutput(map_outgoing(output.state, outer), output.description)
        dispatch(outer_action)
    return mapped_dispatch


def field_dispatcher(field: str, dispatch: Dispatcher) -> Dispatcher:
    """Dispatcher for one field of a dataclass/dict state."""
    return map_dispatcher(
        lambda outer: get_field(outer, field),
        lambda inner, outer: set_field(outer, field, inner),
        dispatch,
    )


def dispatcher_to_setter(dispatch: Dispatcher) -> Callable[[Any], None]:
    """Turn a dispatcher into a function that overwrites the state."""
    def set_state(new_state: Any) -> None:
        dispatch(lambda state, context: ActionOutput(new_state))
    return set_state


def dispatch_when(predicate: Callable[[Any], bool], dispatch: Dispatcher) -> Dispatcher:
    """Dispatcher whose actions only apply while ``predicate(state)`` holds.

    Used for states that are tagged unions: an action dispatched for one
    variant must not be applied after the state switched to another.
    """
    def dispatch_match(action: Action) -> None:
        def guarded(state: Any, context: ActionContext) -> ActionOutput:
            if predicate(state):
                return action(state, context)
            return ActionOutput(state)
        dispatch(guarded)
    return dispatch_match


def dispatch_case_field(predicate: Callable[[Any], bool], field: str, dispatch: Dispatcher) -> Dispatcher:
    """field_dispatcher restricted to states matching ``predicate``."""
    return field_dispatcher(field, dispatch_when(predicate, dispatch))


def extract_action_description(
    action: Action,
    apply: Callable[[Callable[[Any, ActionContext], Any]], Any],
) -> ActionOutput:
    """Run ``apply`` with a plain state function and keep the description.

    The entry and page engines need ``(state, context) -> state`` functions
    to splice an action deep into a tree; this unwraps the action for them
    and carries its description out to the enclosing ActionOutput.
    """
    descriptions = []

    def pure(state: Any, context: ActionContext) -> Any:
        output = action(state, context)
        descriptions.append(output.description)
        return output.state

    outer_state = apply(pure)
    description = next((d for d in reversed(descriptions) if d is not None), None)
    return ActionOutput(outer_state, description)


# =============================================================================
# Store
# =============================================================================

Listener = Callable[[ActionOutput, Any, Any], None]


class BlockStore:
    """Serial reducer holding the state of one top-level Block.

    Actions are applied one at a time in dispatch order. An action dispatched
    while another is being applied (from inside an action, a listener, or a
    future settling on another thread) is queued, never nested.

    Args:
        block: The top-level Block
        env: Environment the block lives in
        state: Initial state (default: ``block.init``), recomputed on creation
        on_error: Receives contained BlockErrors if ``block`` is a SafeBlock

    Example:
        store = BlockStore(SheetBlock(ExprBlock()))
        unsubscribe = store.subscribe(lambda output, old, new: print(output.description))
        store.block.actions(store.dispatch).insert_end()
    """

    def __init__(
        self,
        block: Any,
        env: Environment = EMPTY_ENV,
        state: Any = None,
        on_error: Optional[Callable[[Any], None]] = None,
    ):
        self.block = block
        self.env = env
        self.state = block.init if state is None else state
        self._queue: Deque[Action] = deque()
        self._applying = False
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._release_sink: Optional[Callable[[], None]] = None

        sink = getattr(block, "sink", None)
        if on_error is not None and sink is not None:
            self._release_sink = sink.claim(on_error)

        self.set_env(env)

    @property
    def result(self) -> Any:
        return self.block.get_result(self.state)

    def dispatch(self, action: Action) -> None:
        with self._lock:
            self._queue.append(action)
            if self._applying:
                return
            self._applying = True

        while True:
            with self._lock:
                if not self._queue:
                    self._applying = False
                    return
                action = self._queue.popleft()
            try:
                self._apply(action)
            except BaseException:
                with self._lock:
                    self._applying = False
                raise

    def _apply(self, action: Action) -> None:
        old_state = self.state
        output = action(old_state, ActionContext(self.env))
        self.state = output.state
        for listener in list(self._listeners):
            listener(output, old_state, output.state)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(output, old_state, new_state)`` after every action.

        Returns:
            Function removing the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def set_env(self, env: Environment) -> None:
        """Replace the Environment and recompute everything."""
        self.env = env

        def recompute(state: Any, context: ActionContext) -> ActionOutput:
            return ActionOutput(self.block.recompute(state, self.dispatch, context.env, None).state)
        self.dispatch(recompute)

    def load_json(self, json: Any) -> None:
        """Replace the state with one loaded from ``json``.

        Raises:
            ValidationError: If ``json`` matches no revision and the block is not a SafeBlock
        """
        def load(state: Any, context: ActionContext) -> ActionOutput:
            return ActionOutput(self.block.from_json(json, self.dispatch, context.env), "Loaded from JSON")
        self.dispatch(load)

    def to_json(self) -> Any:
        return self.block.to_json(self.state)

    def close(self) -> None:
        """Drop listeners and release the claimed error sink."""
        self._listeners.clear()
        if self._release_sink is not None:
            self._release_sink()
            self._release_sink = None

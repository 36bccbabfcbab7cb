"""Base classes for Blocks.

This module provides the contract every Block satisfies:
- Block abstract base class (init, view, recompute, get_result, from_json, to_json)
- Recomputed, the result of recomputing a state
- BlockView, the headless view returned by the default ``view``
- map_with_env for threading an Environment through a sequence

Blocks are values. A Block holds configuration (e.g. the inner Block of a
sheet) but never state; state is passed in and returned. Two Blocks built
from the same configuration compare equal and are interchangeable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Generic, Hashable, List, Optional, Tuple, TypeVar

from ..dispatch import Dispatcher
from ..environment import EMPTY_ENV, Environment, merge_env

State = TypeVar("State")
Item = TypeVar("Item")
Out = TypeVar("Out")

ChangedVars = Optional[FrozenSet[str]]


# =============================================================================
# Recompute Result
# =============================================================================

@dataclass(frozen=True)
class Recomputed(Generic[State]):
    """Outcome of Block.recompute.

    Attributes:
        state: The up-to-date state
        invalidated: Whether the block's exposed result may have changed.
            Dependents use this to decide whether to redo their own work.
    """

    state: State
    invalidated: bool


@dataclass(frozen=True)
class BlockView:
    """Headless rendering of a block.

    Rendering proper belongs to the UI layer; the default ``Block.view``
    returns this description so that hosts without a UI can still inspect
    what a block would show.
    """

    block: str
    state: Any
    result: Any
    children: Tuple["BlockView", ...] = field(default=())


# =============================================================================
# Block Base Class
# =============================================================================

class Block(ABC, Generic[State]):
    """Abstract base class for Blocks.

    A Block is a unit of state, computation and rendering that:
    1. Provides an initial state (``init``)
    2. Brings a possibly stale state up to date given an Environment (``recompute``)
    3. Exposes a result to its siblings (``get_result``)
    4. Loads and saves its state (``from_json`` / ``to_json``)

    ``recompute`` and ``from_json`` receive a live ``dispatch``: computations
    that settle later (pending futures) commit their value through it.

    ``changed`` is the set of names whose values changed since the last
    recompute, or None when everything must be assumed changed. A block whose
    inputs are disjoint from ``changed`` may return its state untouched with
    ``invalidated=False``.

    Subclass example:
        class ConstantBlock(Block[int]):
            @property
            def init(self) -> int:
                return 0

            def recompute(self, state, dispatch, env, changed=None):
                return Recomputed(state, invalidated=False)

            def get_result(self, state):
                return state

            def from_json(self, json, dispatch, env):
                return int(json)

            def to_json(self, state):
                return state
    """

    @property
    @abstractmethod
    def init(self) -> State:
        """Initial state of a freshly created block."""
        pass

    def view(self, state: State, dispatch: Dispatcher, env: Environment) -> Any:
        """Render ``state``.

        Args:
            state: Current state
            dispatch: Dispatcher for actions on ``state``
            env: Environment the block lives in

        Returns:
            A view handle; BlockView unless overridden by a UI layer
        """
        return BlockView(block=type(self).__name__, state=state, result=self.get_result(state))

    @abstractmethod
    def recompute(
        self,
        state: State,
        dispatch: Dispatcher,
        env: Environment,
        changed: ChangedVars = None,
    ) -> Recomputed[State]:
        """Bring ``state`` up to date with ``env``.

        Args:
            state: Possibly stale state
            dispatch: Dispatcher for late results
            env: Environment the block lives in
            changed: Names whose values changed, None for "anything may have changed"

        Returns:
            Recomputed state and whether the exposed result may have changed
        """
        pass

    @abstractmethod
    def get_result(self, state: State) -> Any:
        """Value exposed to sibling and parent environments."""
        pass

    @abstractmethod
    def from_json(self, json: Any, dispatch: Dispatcher, env: Environment) -> State:
        """Load a state from its persisted JSON.

        Raises:
            ValidationError: If ``json`` matches no known revision
        """
        pass

    @abstractmethod
    def to_json(self, state: State) -> Any:
        """Save ``state`` in the newest revision's JSON shape."""
        pass

    def _key(self) -> Tuple[Hashable, ...]:
        """Configuration identifying this block's behavior."""
        return ()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Block):
            return NotImplemented
        return type(self) is type(other) and self._key() == other._key()

    def __hash__(self) -> int:
        return hash((type(self), self._key()))

    def __repr__(self) -> str:
        args = ", ".join(repr(part) for part in self._key())
        return f"{self.__class__.__name__}({args})"


def is_block(value: Any) -> bool:
    return isinstance(value, Block)


# =============================================================================
# Environment Threading
# =============================================================================

def map_with_env(
    items: List[Item],
    fn: Callable[[Item, Environment], Tuple[Out, Environment]],
    start_env: Environment = EMPTY_ENV,
) -> List[Out]:
    """Map over ``items`` while accumulating an Environment.

    ``fn`` receives each item with the environment accumulated so far and
    returns its output plus the bindings it contributes to later items.

    Example:
        map_with_env([1, 2], lambda x, env: (x + len(env), {f"v{x}": x}))
        → [1, 3]
    """
    result: List[Out] = []
    current_env: Environment = start_env
    for item in items:
        out, env = fn(item, current_env)
        result.append(out)
        current_env = merge_env(current_env, env)
    return result

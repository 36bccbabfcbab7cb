"""Time travel over a state: snapshots, a viewing mode and compaction.

A HistoryWrapper holds the current (``inner``) state, a chronological list
of snapshots and a mode:

    current              edits apply to ``inner`` and append a snapshot
    history @ position   read-only view of snapshot ``position``

Transitions:

    open_history        current → history at the last snapshot
    go_back/go_forward  move the viewed position, clamped to the snapshots
    close_history       history → current, ``inner`` untouched
    use_this_state      history → current, the viewed snapshot becomes
                        ``inner`` and is appended as a new snapshot

An edit made while viewing history applies to the viewed snapshot and
returns to ``current``. Restoring never truncates: the snapshots after the
restored one stay in the log.

Compaction (reduce_history) runs after every append and keeps snapshot i iff

    (time[i+1] - time[i]) / decay_ms > (len - i) ** 2

so snapshots thin out the older they are; the newest one is always kept.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

from ..config import DEFAULT_CONFIG, EngineCFG
from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher, extract_action_description
from ..environment import Environment
from ..schemas.history import HistoryJSON
from ..schemas.versioned import add_validator

logger = logging.getLogger(__name__)

State = TypeVar("State")

Clock = Callable[[], datetime]
FromJSON = Callable[[Any, Environment], Any]

parse_history = add_validator(HistoryJSON, lambda shape: shape, name="history")


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class CurrentMode:
    type: str = "current"


@dataclass(frozen=True)
class HistoryMode:
    position: int
    type: str = "history"


Mode = Union[CurrentMode, HistoryMode]

CURRENT = CurrentMode()


@dataclass(frozen=True)
class StateEntry(Generic[State]):
    """Snapshot held in memory."""

    time: datetime
    state: State
    type: str = "state"


@dataclass(frozen=True)
class JSONEntry:
    """Snapshot restored from disk, loaded only when viewed."""

    time: datetime
    state_json: Any
    type: str = "json"


HistoryEntry = Union[StateEntry, JSONEntry]


@dataclass(frozen=True)
class HistoryWrapper(Generic[State]):
    mode: Mode
    history: List[HistoryEntry] = field(default_factory=list)
    inner: Any = None


def init_history(inner: State) -> HistoryWrapper[State]:
    return HistoryWrapper(mode=CURRENT, history=[], inner=inner)


def to_epoch_ms(time: datetime) -> float:
    return time.timestamp() * 1000


def from_epoch_ms(ms: float) -> datetime:
    return datetime.fromtimestamp(ms / 1000)


# =============================================================================
# Reading
# =============================================================================

def get_history_state(entry: HistoryEntry, env: Environment, from_json: FromJSON) -> Any:
    if isinstance(entry, JSONEntry):
        return from_json(entry.state_json, env)
    return entry.state


def get_viewed_state(wrapper: HistoryWrapper, env: Environment, from_json: FromJSON) -> Any:
    """The state on screen: ``inner`` or the viewed snapshot."""
    if isinstance(wrapper.mode, HistoryMode):
        if 0 <= wrapper.mode.position < len(wrapper.history):
            return get_history_state(wrapper.history[wrapper.mode.position], env, from_json)
    return wrapper.inner


# =============================================================================
# Updates
# =============================================================================

def reduce_history(history: List[HistoryEntry], decay_ms: float = DEFAULT_CONFIG.history_decay_ms) -> List[HistoryEntry]:
    """Drop snapshots that are too close to their successor for their age."""
    length = len(history)
    kept = []
    for index, entry in enumerate(history):
        if index + 1 < length:
            difference_ms = to_epoch_ms(history[index + 1].time) - to_epoch_ms(entry.time)
        else:
            difference_ms = math.inf
        if difference_ms / decay_ms > (length - index) ** 2:
            kept.append(entry)

    if len(kept) < length:
        logger.debug("Compacted history from %d to %d entries", length, len(kept))
    return kept


def _append(
    wrapper: HistoryWrapper,
    inner: Any,
    config: EngineCFG,
    clock: Clock,
) -> HistoryWrapper:
    if not config.history_enabled:
        return HistoryWrapper(mode=CURRENT, history=wrapper.history, inner=inner)
    history = reduce_history([*wrapper.history, StateEntry(clock(), inner)], config.history_decay_ms)
    return HistoryWrapper(mode=CURRENT, history=history, inner=inner)


def update_history_inner(
    wrapper: HistoryWrapper[State],
    update: Callable[[State], State],
    env: Environment,
    from_json: FromJSON,
    config: EngineCFG = DEFAULT_CONFIG,
    clock: Clock = datetime.now,
) -> HistoryWrapper[State]:
    """Apply a user edit and record it.

    In history mode the edit applies to the viewed snapshot, which becomes
    the new current state.
    """
    base = get_viewed_state(wrapper, env, from_json)
    return _append(wrapper, update(base), config, clock)


def update_history_current(
    wrapper: HistoryWrapper[State],
    update: Callable[[State], State],
) -> HistoryWrapper[State]:
    """Update ``inner`` without recording a new snapshot.

    Used for recomputation and late results. The newest snapshot mirrors
    ``inner`` in current mode, so it is replaced too.
    """
    new_inner = update(wrapper.inner)
    history = wrapper.history
    if isinstance(wrapper.mode, CurrentMode) and history and isinstance(history[-1], StateEntry):
        history = [*history[:-1], dataclasses.replace(history[-1], state=new_inner)]
    return dataclasses.replace(wrapper, history=history, inner=new_inner)


def history_inner_dispatcher(dispatch: Dispatcher) -> Dispatcher:
    """Dispatcher for ``inner`` whose actions do not record snapshots."""
    def dispatch_inner(action: Action) -> None:
        def wrapper_action(wrapper: HistoryWrapper, context: ActionContext) -> ActionOutput:
            return extract_action_description(
                action,
                lambda pure_action: update_history_current(
                    wrapper, lambda inner: pure_action(inner, context),
                ),
            )
        dispatch(wrapper_action)
    return dispatch_inner


def open_history(wrapper: HistoryWrapper[State]) -> HistoryWrapper[State]:
    if len(wrapper.history) == 0:
        return wrapper
    return dataclasses.replace(wrapper, mode=HistoryMode(position=len(wrapper.history) - 1))


def close_history(wrapper: HistoryWrapper[State]) -> HistoryWrapper[State]:
    return dataclasses.replace(wrapper, mode=CURRENT)


def move_in_history(steps: int, wrapper: HistoryWrapper[State]) -> HistoryWrapper[State]:
    if not isinstance(wrapper.mode, HistoryMode):
        return wrapper
    position = max(0, min(wrapper.mode.position + steps, len(wrapper.history) - 1))
    return dataclasses.replace(wrapper, mode=HistoryMode(position=position))


def go_back(wrapper: HistoryWrapper[State]) -> HistoryWrapper[State]:
    return move_in_history(-1, wrapper)


def go_forward(wrapper: HistoryWrapper[State]) -> HistoryWrapper[State]:
    return move_in_history(1, wrapper)


def use_this_state(
    wrapper: HistoryWrapper[State],
    env: Environment,
    from_json: FromJSON,
    config: EngineCFG = DEFAULT_CONFIG,
    clock: Clock = datetime.now,
) -> HistoryWrapper[State]:
    """Make the viewed snapshot the current state, appending it anew."""
    if not isinstance(wrapper.mode, HistoryMode):
        return wrapper
    return _append(wrapper, get_viewed_state(wrapper, env, from_json), config, clock)


# =============================================================================
# JSON
# =============================================================================

def history_to_json(wrapper: HistoryWrapper, to_json: Callable[[Any], Any]) -> Dict[str, Any]:
    """Save snapshots and ``inner``; unloaded snapshots keep their JSON."""
    history = []
    for entry in wrapper.history:
        if isinstance(entry, JSONEntry):
            state = entry.state_json
        else:
            state = to_json(entry.state)
        history.append({"time": to_epoch_ms(entry.time), "state": state})
    return {"history": history, "inner": to_json(wrapper.inner)}


def history_from_json(
    json: Dict[str, Any],
    env: Environment,
    from_json: FromJSON,
) -> HistoryWrapper:
    """Load ``inner`` now and the snapshots lazily, in current mode."""
    shape = parse_history(json)
    history: List[HistoryEntry] = [
        JSONEntry(time=from_epoch_ms(entry.time), state_json=entry.state)
        for entry in sorted(shape.history, key=lambda entry: entry.time)
    ]
    return HistoryWrapper(mode=CURRENT, history=history, inner=from_json(shape.inner, env))


def viewed_position(wrapper: HistoryWrapper) -> Optional[int]:
    if isinstance(wrapper.mode, HistoryMode):
        return wrapper.mode.position
    return None

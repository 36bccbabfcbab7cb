"""Ordered lists of named Block instances.

An entry list is recomputed left to right: every entry sees the results of
the entries before it, keyed by name (or ``$<id>`` when unnamed). Later
entries may read earlier ones, never the reverse, so an edit at index ``i``
only recomputes entries from ``i`` onward and leaves the prefix untouched.

Each entry's local Environment is

    {**env, **siblings_before, "$before": siblings_before}

Dispatchers handed to an entry re-enter ``update_entry_state`` with the
entry's id, so late results (settled futures) land in the right entry even
after the list was reordered. An id that no longer exists is a no-op.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, TypeVar

from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher, extract_action_description
from ..environment import BEFORE_KEY, Environment, local_env, merge_env
from .base import Block, ChangedVars, Recomputed

logger = logging.getLogger(__name__)

Entry = TypeVar("Entry", bound="BlockEntry")

StateAction = Callable[[Any, ActionContext], Any]


@dataclass(frozen=True)
class BlockEntry:
    """A named Block state among its siblings.

    Attributes:
        id: Unique among siblings, never reused while the list exists
        name: User label; empty means the default ``$<id>``
        state: State of the inner Block
    """

    id: int
    name: str
    state: Any


# =============================================================================
# Names & Environments
# =============================================================================

def entry_default_name(entry: BlockEntry) -> str:
    return f"${entry.id}"


def entry_name(entry: BlockEntry) -> str:
    return entry.name or entry_default_name(entry)


def find_entry_index(entries: Sequence[BlockEntry], id: int) -> int:
    """Index of the entry with ``id``, -1 if there is none."""
    for index, entry in enumerate(entries):
        if entry.id == id:
            return index
    return -1


def get_entries_until(entries: Sequence[Entry], id: int) -> List[Entry]:
    """Entries up to and including ``id`` (none if ``id`` is unknown)."""
    index = find_entry_index(entries, id)
    return list(entries[:index + 1])


def get_last_result(entries: Sequence[BlockEntry], inner: Block) -> Any:
    if not entries:
        return None
    return inner.get_result(entries[-1].state)


def entry_to_env(entry: BlockEntry, inner: Block) -> Dict[str, Any]:
    return {entry_name(entry): inner.get_result(entry.state)}


def entries_to_env(entries: Sequence[BlockEntry], inner: Block) -> Dict[str, Any]:
    """Names → results of ``entries``; later entries shadow earlier ones."""
    env: Dict[str, Any] = {}
    for entry in entries:
        env.update(entry_to_env(entry, inner))
    return env


def get_result_env(entries: Sequence[BlockEntry], inner: Block) -> Dict[str, Any]:
    """Environment a list exposes to its parent."""
    return entries_to_env(entries, inner)


# =============================================================================
# Structural Helpers
# =============================================================================

def next_free_id(entries: Sequence[BlockEntry]) -> int:
    """1 + the highest id in use, 0 for an empty list."""
    return 1 + max((entry.id for entry in entries), default=-1)


def update_entry_with_id(
    entries: Sequence[Entry],
    id: int,
    update: Callable[[Entry], Entry],
) -> List[Entry]:
    return [update(entry) if entry.id == id else entry for entry in entries]


def insert_entry_before(entries: Sequence[Entry], id: int, *new_entries: Entry) -> List[Entry]:
    result: List[Entry] = []
    for entry in entries:
        if entry.id == id:
            result.extend(new_entries)
        result.append(entry)
    return result


def insert_entry_after(entries: Sequence[Entry], id: int, *new_entries: Entry) -> List[Entry]:
    result: List[Entry] = []
    for entry in entries:
        result.append(entry)
        if entry.id == id:
            result.extend(new_entries)
    return result


# =============================================================================
# Recomputation
# =============================================================================

def local_changed_vars(changed_vars: ChangedVars) -> ChangedVars:
    """Changed names as seen from inside a local Environment.

    ``$before`` is rebuilt from the preceding siblings, so it changes
    whenever anything does.
    """
    if not changed_vars:
        return changed_vars
    return changed_vars | {BEFORE_KEY}


def entry_dispatcher(entry_id: int, inner: Block, dispatch: Dispatcher) -> Dispatcher:
    """Dispatcher for the state of entry ``entry_id`` in a list owned by ``dispatch``."""
    def local_dispatch(local_action: Action) -> None:
        def list_action(entries: List[BlockEntry], context: ActionContext) -> ActionOutput:
            return extract_action_description(
                local_action,
                lambda pure_action: update_entry_state(
                    entries, entry_id, pure_action, context.env, inner, dispatch,
                ),
            )
        dispatch(list_action)
    return local_dispatch


def recompute_from(
    entries: Sequence[Entry],
    id: Optional[int],
    env: Environment,
    changed_vars: ChangedVars,
    inner: Block,
    dispatch: Dispatcher,
    offset: int = 0,
) -> Recomputed[List[Entry]]:
    """Recompute ``entries`` from entry ``id`` (plus ``offset``) onward.

    Args:
        entries: Sibling list
        id: First entry to recompute, None to recompute all of them
        env: Environment of the list's owner
        changed_vars: Names known to have changed, None for "anything"
        inner: Block of every entry
        dispatch: Dispatcher of the whole list
        offset: 1 to start right after ``id`` (the entry itself is current)

    Returns:
        Recomputed list; ``invalidated`` if any recomputed entry was
    """
    index = 0 if id is None else find_entry_index(entries, id)
    if index < 0:
        logger.debug("recompute_from: no entry with id %s", id)
        return Recomputed(list(entries), invalidated=False)

    start = max(0, index + offset)
    prefix = list(entries[:start])
    siblings_env = entries_to_env(prefix, inner)

    recomputed: List[Entry] = []
    any_invalidated = False
    for entry in entries[start:]:
        local_dispatch = entry_dispatcher(entry.id, inner, dispatch)
        result = inner.recompute(
            entry.state, local_dispatch, local_env(env, siblings_env), local_changed_vars(changed_vars),
        )
        new_entry = dataclasses.replace(entry, state=result.state)
        name = entry_name(entry)
        if changed_vars is not None:
            changed_vars = changed_vars | {name} if result.invalidated else changed_vars - {name}
        siblings_env = merge_env(siblings_env, entry_to_env(new_entry, inner))
        recomputed.append(new_entry)
        any_invalidated = any_invalidated or result.invalidated

    return Recomputed(prefix + recomputed, invalidated=any_invalidated)


def recompute(
    entries: Sequence[Entry],
    dispatch: Dispatcher,
    env: Environment,
    changed_vars: ChangedVars,
    inner: Block,
) -> Recomputed[List[Entry]]:
    """Recompute the whole list."""
    return recompute_from(entries, None, env, changed_vars, inner, dispatch)


def update_entry_state(
    entries: Sequence[Entry],
    id: int,
    action: StateAction,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> List[Entry]:
    """Apply ``action`` to entry ``id``, then recompute the entries after it.

    ``action`` is a plain ``(state, context) -> state`` function; the context
    carries the entry's local Environment.
    """
    index = find_entry_index(entries, id)
    if index < 0:
        logger.debug("update_entry_state: no entry with id %s", id)
        return list(entries)

    entry = entries[index]
    siblings_env = entries_to_env(entries[:index], inner)
    new_state = action(entry.state, ActionContext(env=local_env(env, siblings_env)))

    updated = list(entries)
    updated[index] = dataclasses.replace(entry, state=new_state)
    changed: FrozenSet[str] = frozenset({entry_name(entry)})
    return recompute_from(updated, id, env, changed, inner, dispatch, offset=1).state


# =============================================================================
# Loading
# =============================================================================

def entries_from_json(
    json_entries: Sequence[Dict[str, Any]],
    dispatch: Dispatcher,
    env: Environment,
    inner: Block,
    parse_entry_rest: Callable[[BlockEntry, Dict[str, Any], Environment], Entry],
) -> List[Entry]:
    """Load a sibling list, each entry seeing the entries loaded before it.

    Args:
        json_entries: Dicts with ``id``, ``name``, ``state`` and extra fields
        dispatch: Dispatcher of the whole list
        env: Environment of the list's owner
        inner: Block of every entry
        parse_entry_rest: Builds the full entry from the base entry, the
            remaining JSON fields and the entry's local Environment
    """
    loaded: List[Entry] = []
    siblings_env: Dict[str, Any] = {}
    for json_entry in json_entries:
        rest = {key: value for key, value in json_entry.items() if key not in ("id", "name", "state")}
        entry_id = json_entry["id"]
        entry_env = local_env(env, siblings_env)
        state = inner.from_json(json_entry["state"], entry_dispatcher(entry_id, inner, dispatch), entry_env)
        entry = parse_entry_rest(BlockEntry(entry_id, json_entry["name"], state), rest, entry_env)
        loaded.append(entry)
        siblings_env = merge_env(siblings_env, entry_to_env(entry, inner))
    return loaded

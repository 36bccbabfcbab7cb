"""Sheet block: a vertical list of lines, each holding an inner Block.

A line sees every line above it by name (``$<id>`` when unnamed), and the
sheet's result is the result of its last line. Lines are entries of the
Entry engine (see multiple.py), which handles incremental recomputation.

Line presentation is part of the state and persisted:
    visibility: "block" (show the inner block) or "result" (only its value)
    width:      "narrow", "wide" or "full"
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher, extract_action_description, field_dispatcher
from ..environment import Environment
from ..schemas.sheet import (
    VISIBILITY_STATES,
    WIDTH_STATES,
    SheetV0,
    SheetV1,
    SheetV2,
    SheetVPre,
)
from ..schemas.versioned import add_revision, add_validator, identity_upgrade, typed
from . import multiple as Multiple
from .base import Block, ChangedVars, Recomputed
from .multiple import BlockEntry, entry_name, next_free_id
from .safe import safe_block

logger = logging.getLogger(__name__)

SHEET_TAG = "resheet.sheet"
SHEET_REVISION = 2

DEFAULT_VISIBILITY = "block"
DEFAULT_WIDTH = "narrow"


@dataclass(frozen=True)
class SheetLine(BlockEntry):
    visibility: str = DEFAULT_VISIBILITY
    width: str = DEFAULT_WIDTH


@dataclass(frozen=True)
class SheetState:
    lines: List[SheetLine] = field(default_factory=list)


def init_sheet(inner_init: Any) -> SheetState:
    return SheetState(lines=[SheetLine(id=0, name="", state=inner_init)])


def lines_dispatcher(dispatch: Dispatcher) -> Dispatcher:
    return field_dispatcher("lines", dispatch)


def _with_lines(state: SheetState, lines: List[SheetLine]) -> SheetState:
    return dataclasses.replace(state, lines=lines)


# =============================================================================
# Operations
# =============================================================================

def recompute_sheet(
    state: SheetState,
    dispatch: Dispatcher,
    env: Environment,
    changed: ChangedVars,
    inner: Block,
) -> Recomputed[SheetState]:
    result = Multiple.recompute(state.lines, lines_dispatcher(dispatch), env, changed, inner)
    return Recomputed(_with_lines(state, result.state), result.invalidated)


def update_line_block(
    state: SheetState,
    id: int,
    action: Any,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> SheetState:
    """Apply a ``(state, context) -> state`` function to line ``id``'s block."""
    lines = Multiple.update_entry_state(state.lines, id, action, env, inner, lines_dispatcher(dispatch))
    return _with_lines(state, lines)


def _insert_line(
    state: SheetState,
    insert: Any,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> SheetState:
    new_line = SheetLine(id=next_free_id(state.lines), name="", state=inner.init)
    lines = insert(state.lines, new_line)
    recomputed = Multiple.recompute_from(lines, new_line.id, env, None, inner, lines_dispatcher(dispatch))
    return _with_lines(state, recomputed.state)


def insert_line_before(state: SheetState, id: int, env: Environment, inner: Block, dispatch: Dispatcher) -> SheetState:
    return _insert_line(state, lambda lines, line: Multiple.insert_entry_before(lines, id, line), env, inner, dispatch)


def insert_line_after(state: SheetState, id: int, env: Environment, inner: Block, dispatch: Dispatcher) -> SheetState:
    return _insert_line(state, lambda lines, line: Multiple.insert_entry_after(lines, id, line), env, inner, dispatch)


def insert_line_end(state: SheetState, env: Environment, inner: Block, dispatch: Dispatcher) -> SheetState:
    return _insert_line(state, lambda lines, line: [*lines, line], env, inner, dispatch)


def delete_lines(
    state: SheetState,
    ids: Iterable[int],
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> SheetState:
    """Delete lines and recompute the lines that could read them."""
    ids = frozenset(ids)
    deleted = [line for line in state.lines if line.id in ids]
    if not deleted:
        logger.debug("delete_lines: no lines with ids %s", sorted(ids))
        return state

    first_index = state.lines.index(deleted[0])
    following = [line for line in state.lines[first_index:] if line.id not in ids]
    lines = [line for line in state.lines if line.id not in ids]
    if not following:
        return _with_lines(state, lines)

    changed: FrozenSet[str] = frozenset(entry_name(line) for line in deleted)
    recomputed = Multiple.recompute_from(lines, following[0].id, env, changed, inner, lines_dispatcher(dispatch))
    return _with_lines(state, recomputed.state)


def rename_line(
    state: SheetState,
    id: int,
    name: str,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> SheetState:
    """Rename line ``id``; lines below it reading either name recompute."""
    index = Multiple.find_entry_index(state.lines, id)
    if index < 0:
        return state

    line = state.lines[index]
    renamed = dataclasses.replace(line, name=name)
    lines = [*state.lines[:index], renamed, *state.lines[index + 1:]]
    changed = frozenset({entry_name(line), entry_name(renamed)})
    recomputed = Multiple.recompute_from(lines, id, env, changed, inner, lines_dispatcher(dispatch), offset=1)
    return _with_lines(state, recomputed.state)


def set_line_visibility(state: SheetState, id: int, visibility: str) -> SheetState:
    if visibility not in VISIBILITY_STATES:
        raise ValueError(f"Unknown line visibility '{visibility}', expected one of {VISIBILITY_STATES}")
    return _with_lines(
        state, Multiple.update_entry_with_id(state.lines, id, lambda line: dataclasses.replace(line, visibility=visibility)),
    )


def set_line_width(state: SheetState, id: int, width: str) -> SheetState:
    if width not in WIDTH_STATES:
        raise ValueError(f"Unknown line width '{width}', expected one of {WIDTH_STATES}")
    return _with_lines(
        state, Multiple.update_entry_with_id(state.lines, id, lambda line: dataclasses.replace(line, width=width)),
    )


# =============================================================================
# JSON
# =============================================================================

def _parse_lines(json_lines: List[Dict[str, Any]]):
    def materialize(dispatch: Dispatcher, env: Environment, inner: Block) -> SheetState:
        def parse_line_rest(entry: BlockEntry, rest: Dict[str, Any], line_env: Environment) -> SheetLine:
            return SheetLine(
                id=entry.id,
                name=entry.name,
                state=entry.state,
                visibility=rest["visibility"],
                width=rest.get("width", DEFAULT_WIDTH),
            )

        lines = Multiple.entries_from_json(json_lines, lines_dispatcher(dispatch), env, inner, parse_line_rest)
        return SheetState(lines=lines)
    return materialize


def _upgrade_widths(before):
    def materialize(dispatch: Dispatcher, env: Environment, inner: Block) -> SheetState:
        state = before(dispatch, env, inner)
        return _with_lines(state, [dataclasses.replace(line, width=DEFAULT_WIDTH) for line in state.lines])
    return materialize


sheet_v_pre = add_validator(
    SheetVPre,
    lambda lines: _parse_lines([line.to_wire() for line in lines]),
    name="SheetVPre",
)

sheet_v0 = add_revision(
    sheet_v_pre,
    schema=SheetV0,
    parse=lambda shape: _parse_lines([line.to_wire() for line in shape.lines]),
    upgrade=identity_upgrade,
)

sheet_v1 = add_revision(
    sheet_v0,
    schema=SheetV1,
    parse=lambda shape: _parse_lines([line.to_wire() for line in shape.lines]),
    upgrade=identity_upgrade,
)

sheet_v2 = add_revision(
    sheet_v1,
    schema=SheetV2,
    parse=lambda shape: _parse_lines([line.to_wire() for line in shape.lines]),
    upgrade=_upgrade_widths,
)


def sheet_to_json(state: SheetState, inner: Block) -> Dict[str, Any]:
    return typed(SHEET_TAG, SHEET_REVISION, {
        "lines": [
            {
                "id": line.id,
                "name": line.name,
                "visibility": line.visibility,
                "width": line.width,
                "state": inner.to_json(line.state),
            }
            for line in state.lines
        ],
    })


# =============================================================================
# Block
# =============================================================================

class SheetBlock(Block[SheetState]):
    """A sheet of ``inner`` lines; its result is the last line's result.

    Args:
        inner: Block of every line (wrapped in a SafeBlock)
    """

    def __init__(self, inner: Block):
        self.inner = safe_block(inner)

    @property
    def init(self) -> SheetState:
        return init_sheet(self.inner.init)

    def recompute(
        self,
        state: SheetState,
        dispatch: Dispatcher,
        env: Environment,
        changed: ChangedVars = None,
    ) -> Recomputed[SheetState]:
        return recompute_sheet(state, dispatch, env, changed, self.inner)

    def get_result(self, state: SheetState) -> Any:
        return Multiple.get_last_result(state.lines, self.inner)

    def from_json(self, json: Any, dispatch: Dispatcher, env: Environment) -> SheetState:
        return sheet_v2(json)(dispatch, env, self.inner)

    def to_json(self, state: SheetState) -> Dict[str, Any]:
        return sheet_to_json(state, self.inner)

    def actions(self, dispatch: Dispatcher) -> "SheetActions":
        return SheetActions(self, dispatch)

    def _key(self):
        return (self.inner,)


class SheetActions:
    """Operations on a SheetBlock's state, dispatched through ``dispatch``."""

    def __init__(self, block: SheetBlock, dispatch: Dispatcher):
        self.block = block
        self.dispatch = dispatch

    def _apply(self, update: Any, description: Optional[str] = None) -> None:
        inner = self.block.inner
        self.dispatch(
            lambda state, context: ActionOutput(update(state, context.env, inner, self.dispatch), description)
        )

    def line_dispatcher(self, id: int) -> Dispatcher:
        """Dispatcher for the inner state of line ``id``."""
        return Multiple.entry_dispatcher(id, self.block.inner, lines_dispatcher(self.dispatch))

    def update_line(self, id: int, line_action: Action) -> None:
        """Apply ``line_action`` to the inner state of line ``id``."""
        inner = self.block.inner

        def action(state: SheetState, context: ActionContext) -> ActionOutput:
            return extract_action_description(
                line_action,
                lambda pure_action: update_line_block(state, id, pure_action, context.env, inner, self.dispatch),
            )
        self.dispatch(action)

    def insert_before(self, id: int) -> None:
        self._apply(lambda state, env, inner, dispatch: insert_line_before(state, id, env, inner, dispatch), "Inserted line")

    def insert_after(self, id: int) -> None:
        self._apply(lambda state, env, inner, dispatch: insert_line_after(state, id, env, inner, dispatch), "Inserted line")

    def insert_end(self) -> None:
        self._apply(lambda state, env, inner, dispatch: insert_line_end(state, env, inner, dispatch), "Inserted line")

    def delete_lines(self, ids: Iterable[int]) -> None:
        ids = frozenset(ids)
        self._apply(lambda state, env, inner, dispatch: delete_lines(state, ids, env, inner, dispatch), "Deleted lines")

    def rename_line(self, id: int, name: str) -> None:
        self._apply(lambda state, env, inner, dispatch: rename_line(state, id, name, env, inner, dispatch), "Renamed line")

    def set_visibility(self, id: int, visibility: str) -> None:
        self.dispatch(lambda state, context: ActionOutput(set_line_visibility(state, id, visibility)))

    def set_width(self, id: int, width: str) -> None:
        self.dispatch(lambda state, context: ActionOutput(set_line_width(state, id, width)))

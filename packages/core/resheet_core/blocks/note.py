"""Note block: one line of text, interpreted by its prefix.

    "= 1 + 2"        expr      the value of an expression
    "/ SheetBlock"   block     a Block chosen by an expression, which can
                               then be instantiated in place
    "## Title"       text      heading h1..h6
    "- item"         text      list item ("*" works too)
    "[x] done"       checkbox  "[ ]" unchecked, "[x]" checked
    anything else    text      paragraph

Notes carry an indentation ``level``. An expression or block note recomputes
only when one of the names its code reads changed.
"""

import dataclasses
import json as jsonlib
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Union

import pydantic

from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher, dispatch_case_field, dispatcher_to_setter, field_dispatcher
from ..environment import Environment
from ..evaluator import DEFAULT_EVALUATOR, Compiled, Evaluator
from ..result import EMPTY_RESULT, Result, cancel_result, get_result_value, result_from
from ..schemas.note import (
    BlockNoteJSON,
    CheckboxNoteJSON,
    ExprNoteJSON,
    InstantiatedBlockNoteJSON,
    NoteV0,
    NoteV1,
    NoteVPre0,
    NoteVPre1,
    NoteVPre2,
    TextNoteJSON,
)
from ..schemas.versioned import add_revision, add_validator, identity_upgrade, typed
from .base import Block, ChangedVars, Recomputed, is_block
from .expr import depends_on
from .safe import SafeBlock, safe_block

logger = logging.getLogger(__name__)

NOTE_TAG = "resheet.note"
NOTE_REVISION = 1

EXPR_REGEX = re.compile(r"^\s*=")
BLOCK_REGEX = re.compile(r"^\s*/")
HEADING_REGEX = re.compile(r"^(#{1,6})\s*")
LIST_REGEX = re.compile(r"^[-*]\s+")
CHECKBOX_REGEX = re.compile(r"^\[[ xX]?\]\s+")
CHECKED_REGEX = re.compile(r"^\[[xX]\]")


# =============================================================================
# Note Types
# =============================================================================

@dataclass(frozen=True)
class ExprNote:
    code: str
    compiled: Compiled
    result: Result = EMPTY_RESULT
    type: str = "expr"


@dataclass(frozen=True)
class BlockNote:
    """A block note whose Block is not instantiated yet.

    ``loading`` holds saved Block state waiting for the code to yield a Block;
    ``last_state`` holds the state of a Block that was reset.
    """

    code: str
    compiled: Compiled
    result: Result = EMPTY_RESULT
    last_state: Any = None
    loading: Any = None
    type: str = "block"
    is_instantiated: bool = False


@dataclass(frozen=True)
class InstantiatedNote:
    code: str
    compiled: Compiled
    block: SafeBlock
    state: Any
    type: str = "block"
    is_instantiated: bool = True


@dataclass(frozen=True)
class TextNote:
    tag: str
    text: str
    type: str = "text"


@dataclass(frozen=True)
class CheckboxNote:
    checked: bool
    text: str
    type: str = "checkbox"


Note = Union[ExprNote, BlockNote, InstantiatedNote, TextNote, CheckboxNote]


@dataclass(frozen=True)
class NoteState:
    level: int
    input: str
    note: Note


# =============================================================================
# Parsing & Evaluation
# =============================================================================

def parse_note(input: str, evaluator: Evaluator = DEFAULT_EVALUATOR) -> Note:
    """Interpret ``input`` without evaluating any code."""
    match = EXPR_REGEX.match(input)
    if match:
        code = input[match.end():]
        return ExprNote(code=code, compiled=evaluator.compile(code))

    match = BLOCK_REGEX.match(input)
    if match:
        code = input[match.end():]
        return BlockNote(code=code, compiled=evaluator.compile(code))

    match = HEADING_REGEX.match(input)
    if match:
        return TextNote(tag=f"h{len(match.group(1))}", text=input[match.end():])

    match = LIST_REGEX.match(input)
    if match:
        return TextNote(tag="li", text=input[match.end():])

    match = CHECKBOX_REGEX.match(input)
    if match:
        return CheckboxNote(checked=CHECKED_REGEX.match(input) is not None, text=input[match.end():])

    return TextNote(tag="p", text=input)


def _load_pending_block(note: BlockNote, dispatch_note: Dispatcher, env: Environment) -> Note:
    """Instantiate the Block of ``note`` if saved state waits for it."""
    value = get_result_value(note.result)
    if note.loading is None or not is_block(value):
        return note
    chosen = safe_block(value)
    state = chosen.from_json(note.loading, instantiated_state_dispatcher(dispatch_note), env)
    return InstantiatedNote(code=note.code, compiled=note.compiled, block=chosen, state=state)


def block_result_setter(dispatch_note: Dispatcher, env: Environment) -> Callable[[Result], None]:
    def set_result(result: Result) -> None:
        def action(note: Note, context: ActionContext) -> ActionOutput:
            if not isinstance(note, BlockNote):
                return ActionOutput(note)
            return ActionOutput(_load_pending_block(dataclasses.replace(note, result=result), dispatch_note, env))
        dispatch_note(action)
    return set_result


def instantiated_state_dispatcher(dispatch_note: Dispatcher) -> Dispatcher:
    return dispatch_case_field(lambda note: isinstance(note, InstantiatedNote), "state", dispatch_note)


def evaluate_note(note: Note, env: Environment, dispatch_note: Dispatcher) -> Note:
    """Run the code of an expression or block note."""
    if isinstance(note, ExprNote):
        cancel_result(note.result)
        set_result = dispatcher_to_setter(
            dispatch_case_field(lambda current: isinstance(current, ExprNote), "result", dispatch_note)
        )
        return dataclasses.replace(note, result=result_from(note.compiled.run(env), set_result))

    if isinstance(note, BlockNote):
        cancel_result(note.result)
        result = result_from(note.compiled.run(env), block_result_setter(dispatch_note, env))
        return _load_pending_block(dataclasses.replace(note, result=result), dispatch_note, env)

    return note


def recompute_note(
    note: Note,
    dispatch_note: Dispatcher,
    env: Environment,
    changed: ChangedVars,
) -> Recomputed[Note]:
    if isinstance(note, InstantiatedNote):
        state_dispatch = instantiated_state_dispatcher(dispatch_note)
        if depends_on(note.compiled, changed):
            value = note.compiled.run(env)
            if is_block(value) and safe_block(value) != note.block:
                new_block = safe_block(value)
                new_state = new_block.from_json(note.block.to_json(note.state), state_dispatch, env)
                return Recomputed(dataclasses.replace(note, block=new_block, state=new_state), invalidated=True)
        result = note.block.recompute(note.state, state_dispatch, env, changed)
        return Recomputed(dataclasses.replace(note, state=result.state), result.invalidated)

    if isinstance(note, (ExprNote, BlockNote)):
        if not depends_on(note.compiled, changed):
            return Recomputed(note, invalidated=False)
        return Recomputed(evaluate_note(note, env, dispatch_note), invalidated=True)

    return Recomputed(note, invalidated=False)


def note_dispatcher(dispatch: Dispatcher) -> Dispatcher:
    return field_dispatcher("note", dispatch)


# =============================================================================
# Operations
# =============================================================================

def set_input(
    state: NoteState,
    input: str,
    env: Environment,
    dispatch: Dispatcher,
    evaluator: Evaluator = DEFAULT_EVALUATOR,
) -> NoteState:
    if isinstance(state.note, (ExprNote, BlockNote)):
        cancel_result(state.note.result)
    note = parse_note(input, evaluator)
    if isinstance(note, BlockNote) and isinstance(state.note, BlockNote):
        note = dataclasses.replace(note, last_state=state.note.last_state)
    note = evaluate_note(note, env, note_dispatcher(dispatch))
    return dataclasses.replace(state, input=input, note=note)


def toggle_checkbox(state: NoteState) -> NoteState:
    """Flip a checkbox note, rewriting its input to match."""
    if not isinstance(state.note, CheckboxNote):
        return state
    checked = not state.note.checked
    input = CHECKBOX_REGEX.sub("[x] " if checked else "[ ] ", state.input, count=1)
    return dataclasses.replace(state, input=input, note=dataclasses.replace(state.note, checked=checked))


def instantiate_block(state: NoteState, env: Environment, dispatch: Dispatcher) -> NoteState:
    """Use the Block a block note's code yields, restoring its last state."""
    note = state.note
    if not isinstance(note, BlockNote):
        return state
    value = get_result_value(note.result)
    if not is_block(value):
        return state

    chosen = safe_block(value)
    state_dispatch = instantiated_state_dispatcher(note_dispatcher(dispatch))
    if note.last_state is None:
        block_state = chosen.init
    else:
        block_state = chosen.from_json(note.last_state, state_dispatch, env)
    instantiated = InstantiatedNote(code=note.code, compiled=note.compiled, block=chosen, state=block_state)
    return dataclasses.replace(state, note=instantiated)


def reset_block(state: NoteState, env: Environment, dispatch: Dispatcher) -> NoteState:
    """Return to editing the code of an instantiated block note."""
    note = state.note
    if not isinstance(note, InstantiatedNote):
        return state
    block_note = BlockNote(code=note.code, compiled=note.compiled, last_state=note.block.to_json(note.state))
    return dataclasses.replace(state, note=evaluate_note(block_note, env, note_dispatcher(dispatch)))


def set_level(state: NoteState, level: int) -> NoteState:
    return dataclasses.replace(state, level=max(0, level))


# =============================================================================
# JSON
# =============================================================================

def _could_not_load(json: Any) -> TextNote:
    dumped = jsonlib.dumps(json, indent=2, default=repr)
    return TextNote(tag="p", text="\n".join(["Could not load note from JSON:", "```", dumped, "```"]))


def note_from_json(json: Any, dispatch_note: Dispatcher, env: Environment, evaluator: Evaluator) -> Note:
    """Load a note; JSON matching no note type becomes a text note describing it."""
    for shape_type in (ExprNoteJSON, InstantiatedBlockNoteJSON, BlockNoteJSON, TextNoteJSON, CheckboxNoteJSON):
        try:
            shape = shape_type.model_validate(json)
        except pydantic.ValidationError:
            continue

        if isinstance(shape, ExprNoteJSON):
            return evaluate_note(ExprNote(code=shape.code, compiled=evaluator.compile(shape.code)), env, dispatch_note)
        if isinstance(shape, InstantiatedBlockNoteJSON):
            pending = BlockNote(code=shape.code, compiled=evaluator.compile(shape.code), loading=shape.state)
            return evaluate_note(pending, env, dispatch_note)
        if isinstance(shape, BlockNoteJSON):
            return evaluate_note(BlockNote(code=shape.code, compiled=evaluator.compile(shape.code)), env, dispatch_note)
        if isinstance(shape, TextNoteJSON):
            return TextNote(tag=shape.tag, text=shape.text)
        return CheckboxNote(checked=shape.checked, text=shape.text)

    logger.debug("Note JSON matches no note type: %r", json)
    return _could_not_load(json)


def note_to_json(note: Note) -> Dict[str, Any]:
    if isinstance(note, ExprNote):
        return {"type": "expr", "code": note.code}
    if isinstance(note, InstantiatedNote):
        return {"type": "block", "isInstantiated": True, "code": note.code, "state": note.block.to_json(note.state)}
    if isinstance(note, BlockNote):
        if note.loading is not None:
            return {"type": "block", "isInstantiated": True, "code": note.code, "state": note.loading}
        return {"type": "block", "isInstantiated": False, "code": note.code}
    if isinstance(note, TextNote):
        return {"type": "text", "tag": note.tag, "text": note.text}
    return {"type": "checkbox", "checked": note.checked, "text": note.text}


def _parse_from_input(shape: NoteVPre0):
    def materialize(dispatch: Dispatcher, env: Environment, block: "NoteBlock") -> NoteState:
        return set_input(NoteState(level=shape.level, input="", note=TextNote("p", "")), shape.input, env, dispatch, block.evaluator)
    return materialize


def _parse_interpreted(level: int, input: str, note_json: Any):
    def materialize(dispatch: Dispatcher, env: Environment, block: "NoteBlock") -> NoteState:
        note = note_from_json(note_json, note_dispatcher(dispatch), env, block.evaluator)
        return NoteState(level=level, input=input, note=note)
    return materialize


note_v_pre0 = add_validator(NoteVPre0, _parse_from_input)

note_v_pre1 = add_revision(
    note_v_pre0,
    schema=NoteVPre1,
    parse=lambda shape: _parse_interpreted(shape.level, shape.input, shape.interpreted),
    upgrade=identity_upgrade,
)

note_v_pre2 = add_revision(
    note_v_pre1,
    schema=NoteVPre2,
    parse=lambda shape: _parse_interpreted(shape.level, shape.input, shape.note),
    upgrade=identity_upgrade,
)

note_v0 = add_revision(
    note_v_pre2,
    schema=NoteV0,
    parse=lambda shape: _parse_interpreted(shape.level, shape.input, shape.note),
    upgrade=identity_upgrade,
)

note_v1 = add_revision(
    note_v0,
    schema=NoteV1,
    parse=lambda shape: _parse_interpreted(shape.level, shape.input, shape.note),
    upgrade=identity_upgrade,
)


# =============================================================================
# Block
# =============================================================================

class NoteBlock(Block[NoteState]):
    """A line of text, an expression, or an embedded Block."""

    def __init__(self, evaluator: Evaluator = DEFAULT_EVALUATOR):
        self.evaluator = evaluator

    @property
    def init(self) -> NoteState:
        return NoteState(level=0, input="", note=TextNote(tag="p", text=""))

    def recompute(
        self,
        state: NoteState,
        dispatch: Dispatcher,
        env: Environment,
        changed: ChangedVars = None,
    ) -> Recomputed[NoteState]:
        result = recompute_note(state.note, note_dispatcher(dispatch), env, changed)
        return Recomputed(dataclasses.replace(state, note=result.state), result.invalidated)

    def get_result(self, state: NoteState) -> Any:
        note = state.note
        if isinstance(note, ExprNote):
            return get_result_value(note.result)
        if isinstance(note, InstantiatedNote):
            return note.block.get_result(note.state)
        if isinstance(note, BlockNote):
            return None
        return note

    def from_json(self, json: Any, dispatch: Dispatcher, env: Environment) -> NoteState:
        return note_v1(json)(dispatch, env, self)

    def to_json(self, state: NoteState) -> Dict[str, Any]:
        return typed(NOTE_TAG, NOTE_REVISION, {
            "level": state.level,
            "input": state.input,
            "note": note_to_json(state.note),
        })

    def actions(self, dispatch: Dispatcher) -> "NoteActions":
        return NoteActions(self, dispatch)

    def _key(self):
        return (self.evaluator,)


class NoteActions:
    """Operations on a NoteBlock's state, dispatched through ``dispatch``."""

    def __init__(self, block: NoteBlock, dispatch: Dispatcher):
        self.block = block
        self.dispatch = dispatch

    def set_input(self, input: str) -> None:
        self.dispatch(lambda state, context: ActionOutput(
            set_input(state, input, context.env, self.dispatch, self.block.evaluator)
        ))

    def toggle_checkbox(self) -> None:
        self.dispatch(lambda state, context: ActionOutput(toggle_checkbox(state), "Toggled checkbox"))

    def instantiate_block(self) -> None:
        self.dispatch(lambda state, context: ActionOutput(instantiate_block(state, context.env, self.dispatch)))

    def reset_block(self) -> None:
        self.dispatch(lambda state, context: ActionOutput(reset_block(state, context.env, self.dispatch)))

    def indent(self) -> None:
        self.dispatch(lambda state, context: ActionOutput(set_level(state, state.level + 1)))

    def outdent(self) -> None:
        self.dispatch(lambda state, context: ActionOutput(set_level(state, state.level - 1)))

    def update_block(self, block_action: Action) -> None:
        """Apply ``block_action`` to the state of an instantiated Block."""
        instantiated_state_dispatcher(note_dispatcher(self.dispatch))(block_action)

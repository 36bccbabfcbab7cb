"""Tests for NoteBlock.

Tests cover:
- Interpreting input by prefix (expr, block, headings, lists, checkboxes)
- Results of each note type
- Checkboxes rewriting their input
- Instantiating and resetting block notes
- Indentation levels
- Loading every note revision, including unreadable notes
"""

import pytest

from resheet_core import BlockStore, ExprBlock, NoteBlock
from resheet_core.blocks import note as Note
from resheet_core.blocks.expr import set_code
from resheet_core.blocks.note import BlockNote, CheckboxNote, ExprNote, InstantiatedNote, TextNote
from resheet_core.dispatch import ActionOutput
from resheet_core.errors import ValidationError


@pytest.fixture
def env(evaluator):
    return {"x": 1, "Answer": ExprBlock(evaluator, code="41 + 1")}


@pytest.fixture
def store(evaluator, env):
    return BlockStore(NoteBlock(evaluator), env=env)


@pytest.fixture
def actions(store):
    return store.block.actions(store.dispatch)


def _expr_json(code):
    return {"t": "resheet.expr", "v": 1, "code": code}


# =============================================================================
# Parsing
# =============================================================================

@pytest.mark.parametrize("input,expected", [
    ("# Title", TextNote("h1", "Title")),
    ("### Section", TextNote("h3", "Section")),
    ("- item", TextNote("li", "item")),
    ("* item", TextNote("li", "item")),
    ("[x] done", CheckboxNote(True, "done")),
    ("[X] done", CheckboxNote(True, "done")),
    ("[ ] todo", CheckboxNote(False, "todo")),
    ("[] todo", CheckboxNote(False, "todo")),
    ("just text", TextNote("p", "just text")),
    ("", TextNote("p", "")),
])
def test_parse_text_notes(evaluator, input, expected):
    assert Note.parse_note(input, evaluator) == expected


def test_parse_code_notes(evaluator):
    expr = Note.parse_note("= x + 1", evaluator)
    assert isinstance(expr, ExprNote)
    assert expr.code == " x + 1"
    assert expr.compiled.deps == frozenset({"x"})

    block = Note.parse_note("  / Answer", evaluator)
    assert isinstance(block, BlockNote)
    assert block.code == " Answer"
    assert not block.is_instantiated


# =============================================================================
# Results
# =============================================================================

def test_initial_note_is_empty_paragraph(store):
    assert store.state.level == 0
    assert store.result == TextNote("p", "")


def test_expr_note_result(store, actions):
    actions.set_input("= x + 1")
    assert store.state.input == "= x + 1"
    assert store.result == 2

    store.set_env({"x": 10})
    assert store.result == 11


def test_expr_note_skips_unrelated_changes(store, actions):
    actions.set_input("= x")
    recomputed = store.block.recompute(store.state, store.dispatch, {"x": 5}, frozenset({"y"}))
    assert not recomputed.invalidated
    assert store.block.get_result(recomputed.state) == 1


def test_text_note_result_is_the_note(store, actions):
    actions.set_input("## Notes")
    assert store.result == TextNote("h2", "Notes")


def test_uninstantiated_block_note_has_no_result(store, actions):
    actions.set_input("/ Answer")
    assert isinstance(store.state.note, BlockNote)
    assert store.result is None


# =============================================================================
# Checkboxes
# =============================================================================

def test_toggle_checkbox_rewrites_input(store, actions):
    actions.set_input("[ ] buy milk")
    actions.toggle_checkbox()
    assert store.state.input == "[x] buy milk"
    assert store.state.note == CheckboxNote(True, "buy milk")

    actions.toggle_checkbox()
    assert store.state.input == "[ ] buy milk"
    assert not store.state.note.checked


def test_toggle_empty_brackets(store, actions):
    actions.set_input("[] call back")
    actions.toggle_checkbox()
    assert store.state.input == "[x] call back"


def test_toggle_other_notes_is_a_no_op(store, actions):
    actions.set_input("- item")
    before = store.state
    actions.toggle_checkbox()
    assert store.state == before


# =============================================================================
# Block Notes
# =============================================================================

def test_instantiate_block(store, actions):
    actions.set_input("/ Answer")
    actions.instantiate_block()
    note = store.state.note
    assert isinstance(note, InstantiatedNote)
    assert note.is_instantiated

    store.set_env(store.env)
    assert store.result == 42


def test_instantiate_non_block_is_a_no_op(store, actions):
    actions.set_input("/ 1 + 1")
    before = store.state
    actions.instantiate_block()
    assert store.state == before


def test_reset_keeps_last_state(store, actions, evaluator):
    actions.set_input("/ Answer")
    actions.instantiate_block()

    def edit(state, context):
        return ActionOutput(set_code(state, "'edited'", context.env, lambda action: None, evaluator))

    actions.update_block(edit)
    assert store.result == "edited"

    actions.reset_block()
    note = store.state.note
    assert isinstance(note, BlockNote)
    assert note.last_state == _expr_json("'edited'")

    # Editing the code keeps the last state around
    actions.set_input("/  Answer")
    actions.instantiate_block()
    assert store.result == "edited"


def test_update_block_ignored_unless_instantiated(store, actions):
    actions.set_input("/ Answer")
    before = store.state
    actions.update_block(lambda state, context: ActionOutput("broken"))
    assert store.state == before


# =============================================================================
# Levels
# =============================================================================

def test_indent_and_outdent(store, actions):
    actions.indent()
    actions.indent()
    assert store.state.level == 2
    for _ in range(3):
        actions.outdent()
    assert store.state.level == 0


# =============================================================================
# JSON
# =============================================================================

def test_to_json(store, actions):
    actions.set_input("[x] done")
    assert store.to_json() == {
        "t": "resheet.note",
        "v": 1,
        "level": 0,
        "input": "[x] done",
        "note": {"type": "checkbox", "checked": True, "text": "done"},
    }


def test_instantiated_block_round_trip(store, actions, evaluator, env):
    actions.set_input("/ Answer")
    actions.instantiate_block()
    store.set_env(env)
    json = store.to_json()
    assert json["note"] == {"type": "block", "isInstantiated": True, "code": " Answer", "state": _expr_json("41 + 1")}

    loaded = BlockStore(NoteBlock(evaluator), env=env)
    loaded.load_json(json)
    assert isinstance(loaded.state.note, InstantiatedNote)
    assert loaded.result == 42


def test_saved_block_state_survives_until_block_exists(evaluator, env):
    saved = {
        "t": "resheet.note",
        "v": 1,
        "level": 0,
        "input": "/ Answer",
        "note": {"type": "block", "isInstantiated": True, "code": " Answer", "state": _expr_json("'saved work'")},
    }
    waiting = BlockStore(NoteBlock(evaluator), env={"x": 1})
    waiting.load_json(saved)
    assert isinstance(waiting.state.note, BlockNote)
    assert waiting.to_json() == saved

    loaded = BlockStore(NoteBlock(evaluator), env=env)
    loaded.load_json(waiting.to_json())
    assert isinstance(loaded.state.note, InstantiatedNote)
    assert loaded.result == "saved work"


@pytest.mark.parametrize("json", [
    {"level": 1, "input": "= x + 1"},
    {"level": 1, "input": "= x + 1", "interpreted": {"type": "expr", "code": " x + 1"}},
    {"v": 0, "level": 1, "input": "= x + 1", "note": {"type": "expr", "code": " x + 1"}},
    {"t": "tables.note", "v": 0, "level": 1, "input": "= x + 1", "note": {"type": "expr", "code": " x + 1"}},
    {"t": "resheet.note", "v": 1, "level": 1, "input": "= x + 1", "note": {"type": "expr", "code": " x + 1"}},
])
def test_every_revision_loads(store, json):
    store.load_json(json)
    assert store.state.level == 1
    assert store.state.input == "= x + 1"
    assert store.result == 2


def test_unreadable_note_becomes_text(store):
    store.load_json({"t": "resheet.note", "v": 1, "level": 0, "input": "?", "note": {"type": "drawing"}})
    note = store.state.note
    assert isinstance(note, TextNote)
    assert note.text.startswith("Could not load note from JSON:\n```")
    assert '"drawing"' in note.text


def test_unknown_json_raises(store):
    with pytest.raises(ValidationError):
        store.load_json({"input": "no level"})

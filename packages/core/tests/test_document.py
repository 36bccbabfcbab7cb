"""Tests for page-tree documents driven through a BlockStore.

Tests cover:
- Adding, deleting, renaming and moving pages (open page follows)
- Cross-page references ("Hi World")
- History recording, time travel and restoring
- View changes that are not recorded
- Loading current and legacy document JSON
"""

import pytest

from resheet_core import BlockStore, DocumentBlock, EngineCFG
from resheet_core.blocks import document as Document
from resheet_core.blocks.history import CURRENT, HistoryMode
from resheet_core.errors import ValidationError


@pytest.fixture
def actions(document_store):
    return document_store.block.actions(document_store.dispatch)


def document(store):
    return store.state.inner


def set_code(actions, expr_block, path, code):
    expr_block.actions(actions.page_dispatcher(path)).set_code(code)


def add_pages(actions, count, path=()):
    for _ in range(count):
        actions.add_page(path)


# =============================================================================
# Pages
# =============================================================================

def test_new_document_is_empty(document_store):
    doc = document(document_store)
    assert doc.pages == []
    assert doc.view_state.open_page == ()
    assert doc.view_state.sidebar_open
    assert document_store.state.history == []
    assert document_store.result == {}


def test_add_page_opens_it(document_store, actions):
    descriptions = []
    document_store.subscribe(lambda output, old, new: descriptions.append(output.description))

    add_pages(actions, 2)
    doc = document(document_store)
    assert [page.id for page in doc.pages] == [0, 1]
    assert doc.view_state.open_page == (1,)
    assert descriptions == ["Added page", "Added page"]
    assert len(document_store.state.history) == 2


def test_add_child_page(document_store, actions):
    add_pages(actions, 1)
    actions.add_page((0,))
    doc = document(document_store)
    assert [page.id for page in doc.pages[0].children] == [0]
    assert doc.view_state.open_page == (0, 0)


def test_add_page_under_missing_parent_is_a_no_op(document_store, actions):
    add_pages(actions, 1)
    before = document(document_store)
    actions.add_page((5,))
    assert document(document_store) == before


def test_hi_world(document_store, actions, expr_block):
    """Editing $0 updates $1, which reads it."""
    add_pages(actions, 2)
    set_code(actions, expr_block, (0,), "'Hi'")
    set_code(actions, expr_block, (1,), "$0 + ' World'")
    assert document_store.result == {"$0": "Hi", "$1": "Hi World"}

    set_code(actions, expr_block, (0,), "'Hello'")
    assert document_store.result == {"$0": "Hello", "$1": "Hello World"}


def test_rename_page(document_store, actions, expr_block):
    add_pages(actions, 2)
    set_code(actions, expr_block, (0,), "21")
    set_code(actions, expr_block, (1,), "answer * 2")
    assert isinstance(document_store.result["$1"], NameError)

    actions.rename_page((0,), "answer")
    assert document_store.result == {"answer": 21, "$1": 42}


def test_delete_page_opens_next(document_store, actions):
    add_pages(actions, 5)
    actions.open_page((3,))
    actions.delete_page((3,))
    doc = document(document_store)
    assert [page.id for page in doc.pages] == [0, 1, 2, 4]
    assert doc.view_state.open_page == (4,)


def test_delete_last_page_opens_previous(document_store, actions):
    add_pages(actions, 3)
    actions.delete_page((2,))
    assert document(document_store).view_state.open_page == (1,)


def test_delete_only_child_opens_parent(document_store, actions):
    add_pages(actions, 1)
    actions.add_page((0,))
    actions.delete_page((0, 0))
    doc = document(document_store)
    assert doc.pages[0].children == []
    assert doc.view_state.open_page == (0,)


def test_delete_recomputes_dependents(document_store, actions, expr_block):
    add_pages(actions, 3)
    set_code(actions, expr_block, (0,), "1")
    set_code(actions, expr_block, (1,), "$0 + 1")
    set_code(actions, expr_block, (2,), "$1 * 2")
    assert document_store.result["$2"] == 4

    actions.delete_page((1,))
    assert isinstance(document_store.result["$2"], NameError)


def test_delete_missing_page_is_a_no_op(document_store, actions):
    add_pages(actions, 1)
    before = document(document_store)
    actions.delete_page((9,))
    assert document(document_store) == before


def test_ids_are_never_reused_among_siblings(document_store, actions):
    add_pages(actions, 3)
    actions.delete_page((1,))
    actions.add_page()
    ids = [page.id for page in document(document_store).pages]
    assert ids == [0, 2, 3]


def test_nest_page_and_open_page_follows(document_store, actions, expr_block):
    add_pages(actions, 3)
    set_code(actions, expr_block, (1,), "'parent'")
    set_code(actions, expr_block, (2,), "$before['$1'] + '!'")
    actions.open_page((2,))

    actions.nest_page((2,))
    doc = document(document_store)
    assert [page.id for page in doc.pages] == [0, 1]
    assert [page.id for page in doc.pages[1].children] == [0]
    assert doc.view_state.open_page == (1, 0)

    actions.unnest_page((1, 0))
    doc = document(document_store)
    assert [page.id for page in doc.pages] == [0, 1, 2]
    assert doc.view_state.open_page == (2,)
    assert document_store.result["$2"] == "parent!"


def test_move_page(document_store, actions):
    add_pages(actions, 3)
    actions.move_page((2,), (), 0)
    assert [page.id for page in document(document_store).pages] == [2, 0, 1]


def test_move_page_into_itself_is_a_no_op(document_store, actions):
    add_pages(actions, 1)
    actions.add_page((0,))
    before = document(document_store)
    actions.move_page((0,), (0, 0), 0)
    assert document(document_store) == before


def test_open_page_env(document_store, actions, expr_block):
    add_pages(actions, 2)
    set_code(actions, expr_block, (0,), "'first'")
    doc = document(document_store)
    env = Document.get_open_page_env(doc, {}, document_store.block.inner)
    assert env["$0"] == "first"
    assert Document.get_open_page(doc).id == 1


# =============================================================================
# View State
# =============================================================================

def test_view_changes_are_not_recorded(document_store, actions):
    add_pages(actions, 2)
    actions.open_page((0,))
    actions.set_sidebar_open(False)
    actions.toggle_collapsed((0,))

    state = document_store.state
    doc = state.inner
    assert len(state.history) == 2
    assert doc.view_state.open_page == (0,)
    assert not doc.view_state.sidebar_open
    assert doc.pages[0].is_collapsed
    # The newest snapshot mirrors the current document
    assert state.history[-1].state == doc


# =============================================================================
# History
# =============================================================================

def test_use_this_state_after_three_edits(document_store, actions):
    add_pages(actions, 3)
    actions.open_history()
    assert document_store.state.mode == HistoryMode(position=2)

    actions.go_back()
    actions.use_this_state()

    state = document_store.state
    assert state.mode == CURRENT
    assert len(state.history) == 4
    assert state.history[3].state == state.history[1].state
    assert state.inner == state.history[1].state
    assert [page.id for page in state.inner.pages] == [0, 1]


def test_close_history_keeps_current(document_store, actions):
    add_pages(actions, 3)
    actions.open_history()
    actions.go_back()
    actions.close_history()
    assert len(document(document_store).pages) == 3
    assert len(document_store.state.history) == 3


def test_edit_in_history_mode_branches_from_viewed_state(document_store, actions):
    add_pages(actions, 3)
    actions.open_history()
    actions.go_back()
    actions.go_back()
    actions.add_page()

    state = document_store.state
    assert state.mode == CURRENT
    assert [page.id for page in state.inner.pages] == [0, 1]
    assert len(state.history) == 4


def test_history_can_be_disabled(expr_block, clock):
    store = BlockStore(DocumentBlock(expr_block, config=EngineCFG(history_enabled=False), clock=clock))
    actions = store.block.actions(store.dispatch)
    add_pages(actions, 2)
    assert store.state.history == []
    actions.open_history()
    assert store.state.mode == CURRENT


# =============================================================================
# JSON
# =============================================================================

def test_document_json_round_trip(document_store, actions, expr_block, document_block):
    add_pages(actions, 2)
    set_code(actions, expr_block, (0,), "'Hi'")
    set_code(actions, expr_block, (1,), "$0 + ' World'")

    json = document_store.to_json()
    assert json["inner"]["t"] == "resheet.document"
    assert json["inner"]["v"] == 1
    assert json["inner"]["viewState"] == {"sidebarOpen": True, "openPage": [1]}
    assert len(json["history"]) == 4

    loaded = BlockStore(document_block)
    loaded.load_json(json)
    assert loaded.result == {"$0": "Hi", "$1": "Hi World"}
    assert document(loaded).view_state.open_page == (1,)
    assert len(loaded.state.history) == 4

    # Restoring a snapshot loads it from its JSON
    loaded_actions = document_block.actions(loaded.dispatch)
    loaded_actions.open_history()
    loaded_actions.go_back()
    loaded_actions.use_this_state()
    # The snapshot before page $1 got its code
    assert loaded.result == {"$0": "Hi", "$1": None}


def _legacy_page(id, code):
    return {"id": id, "name": "", "state": code, "children": []}


@pytest.mark.parametrize("tag", [None, "tables.document"])
def test_legacy_documents_load(document_block, tag):
    inner = {
        "pages": [_legacy_page(0, "'Hi'"), _legacy_page(1, "$0 + ' World'")],
        "viewState": {"sidebarOpen": False, "openPage": [0]},
        "template": _legacy_page(-1, ""),
    }
    if tag is not None:
        inner = {"t": tag, "v": 0, **inner}

    store = BlockStore(document_block)
    store.load_json({"history": [], "inner": inner})
    doc = document(store)
    assert store.result == {"$0": "Hi", "$1": "Hi World"}
    assert not doc.view_state.sidebar_open
    # Pages saved without isCollapsed come back collapsed
    assert all(page.is_collapsed for page in doc.pages)


def test_unknown_document_json_raises(document_block):
    store = BlockStore(document_block)
    with pytest.raises(ValidationError):
        store.load_json({"history": [], "inner": {"t": "resheet.document", "v": 99}})

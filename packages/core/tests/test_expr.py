"""Tests for ExprBlock.

Tests cover:
- Setting code and reading the result
- Recompute skipping code that reads none of the changed names
- Futures settling through the store, and cancellation on rerun
- Loading every expression revision
"""

from concurrent.futures import Future

import pytest

from resheet_core import BlockStore, ExprBlock
from resheet_core.blocks.expr import ExprState, depends_on
from resheet_core.errors import ValidationError
from resheet_core.result import PENDING, ImmediateResult, PromiseResult


@pytest.fixture
def store(expr_block):
    return BlockStore(expr_block, env={"x": 2})


@pytest.fixture
def actions(store):
    return store.block.actions(store.dispatch)


# =============================================================================
# Code
# =============================================================================

def test_initial_state(expr_block):
    state = expr_block.init
    assert state.code == ""
    assert state.result == ImmediateResult(None)
    assert expr_block.get_result(state) is None


def test_initial_code_runs_on_store_creation(evaluator):
    store = BlockStore(ExprBlock(evaluator, code="x * 3"), env={"x": 2})
    assert store.result == 6


def test_set_code(store, actions):
    actions.set_code("x + 40", description="Set answer")
    assert store.state.code == "x + 40"
    assert store.result == 42


def test_errors_become_the_result(store, actions):
    actions.set_code("1 / 0")
    assert isinstance(store.result, ZeroDivisionError)
    actions.set_code("1 +")
    assert isinstance(store.result, SyntaxError)


def test_set_env_reruns(store, actions):
    actions.set_code("x * 10")
    store.set_env({"x": 5})
    assert store.result == 50


def test_rerun_reads_current_env(evaluator):
    calls = []
    store = BlockStore(ExprBlock(evaluator, code="tick()"), env={"tick": lambda: calls.append(1) or len(calls)})
    store.block.actions(store.dispatch).rerun()
    assert store.result == 2


# =============================================================================
# Recompute
# =============================================================================

def test_depends_on(evaluator):
    compiled = evaluator.compile("a + b")
    assert depends_on(compiled, None)
    assert depends_on(compiled, frozenset({"b"}))
    assert not depends_on(compiled, frozenset({"c"}))


def test_recompute_skips_unrelated_changes(expr_block, evaluator):
    state = ExprState("a + 1", evaluator.compile("a + 1"), ImmediateResult(2))
    skipped = expr_block.recompute(state, lambda action: None, {"a": 10}, frozenset({"b"}))
    assert skipped.state is state
    assert not skipped.invalidated

    rerun = expr_block.recompute(state, lambda action: None, {"a": 10}, frozenset({"a"}))
    assert rerun.invalidated
    assert expr_block.get_result(rerun.state) == 11


# =============================================================================
# Pending Results
# =============================================================================

def test_future_settles_through_store(store, actions):
    future = Future()
    store.set_env({"job": future})
    actions.set_code("job")
    assert isinstance(store.state.result, PromiseResult)
    assert store.result is PENDING

    future.set_result(7)
    assert store.state.result.state == "finished"
    assert store.result == 7


def test_failed_future_exposes_error(store, actions):
    future = Future()
    store.set_env({"job": future})
    actions.set_code("job")
    future.set_exception(RuntimeError("boom"))
    assert store.state.result.state == "failed"
    assert isinstance(store.result, RuntimeError)


def test_done_future_settles_immediately(store, actions):
    future = Future()
    future.set_result("ready")
    store.set_env({"job": future})
    actions.set_code("job")
    assert store.result == "ready"


def test_rerun_cancels_pending_result(store, actions):
    """The most recent recompute wins, not the last future to settle."""
    first = Future()
    store.set_env({"job": first, "other": 1})
    actions.set_code("job")
    actions.set_code("other")
    assert store.result == 1

    first.set_result("stale")
    assert store.result == 1


# =============================================================================
# JSON
# =============================================================================

def test_to_json(store, actions):
    actions.set_code("x")
    assert store.to_json() == {"t": "resheet.expr", "v": 1, "code": "x"}


@pytest.mark.parametrize("json", [
    "x + 1",
    {"t": "tables.expr", "v": 0, "code": "x + 1"},
    {"t": "resheet.expr", "v": 1, "code": "x + 1"},
])
def test_every_revision_loads(store, json):
    store.load_json(json)
    assert store.state.code == "x + 1"
    assert store.result == 3


@pytest.mark.parametrize("json", [
    42,
    {"t": "resheet.expr", "v": 2, "code": "x"},
    {"t": "tables.expr", "v": 0},
])
def test_unknown_json_raises(store, json):
    with pytest.raises(ValidationError):
        store.load_json(json)

"""Tests for BlockStore, the serial reducer at the top of a block tree.

Tests cover:
- Recompute on creation and on set_env
- Actions dispatched while applying are queued, never nested
- Listeners and unsubscribing
- A failing action leaves the store usable
- Dispatching from several threads
- Loading and saving through the store
"""

import threading

import pytest

from resheet_core.blocks.base import Block, Recomputed
from resheet_core.dispatch import ActionContext, ActionOutput, BlockStore


class TotalBlock(Block):
    """Integer state, reset to env["start"] when it is set."""

    @property
    def init(self):
        return 0

    def recompute(self, state, dispatch, env, changed=None):
        if "start" not in env:
            return Recomputed(state, invalidated=False)
        return Recomputed(env["start"], invalidated=True)

    def get_result(self, state):
        return state

    def from_json(self, json, dispatch, env):
        return int(json)

    def to_json(self, state):
        return state


def add(amount, description=None):
    return lambda state, context: ActionOutput(state + amount, description)


@pytest.fixture
def store():
    return BlockStore(TotalBlock())


# =============================================================================
# Recompute
# =============================================================================

def test_recomputes_on_creation():
    assert BlockStore(TotalBlock(), env={"start": 5}).state == 5


def test_initial_state():
    assert BlockStore(TotalBlock(), state=3).state == 3


def test_set_env_recomputes(store):
    store.set_env({"start": 10})
    assert store.env == {"start": 10}
    assert store.result == 10


def test_actions_see_env():
    store = BlockStore(TotalBlock(), env={"start": 1, "bonus": 4})
    store.dispatch(lambda state, context: ActionOutput(state + context.env["bonus"]))
    assert store.state == 5


def test_default_action_context_is_empty():
    assert ActionContext().env == {}
    assert ActionContext().env is ActionContext().env


# =============================================================================
# Dispatch
# =============================================================================

def test_nested_dispatch_is_queued(store):
    log = []

    def times_ten(state, context):
        log.append("inner")
        return ActionOutput(state * 10)

    def outer(state, context):
        log.append("outer start")
        store.dispatch(times_ten)
        log.append("outer end")
        return ActionOutput(state + 1)

    store.dispatch(outer)
    assert log == ["outer start", "outer end", "inner"]
    assert store.state == 10


def test_listeners(store):
    calls = []
    unsubscribe = store.subscribe(lambda output, old, new: calls.append((output.description, old, new)))

    store.dispatch(add(2, "Added two"))
    store.dispatch(add(3))
    assert calls == [("Added two", 0, 2), (None, 2, 5)]

    unsubscribe()
    store.dispatch(add(1))
    assert len(calls) == 2
    # Unsubscribing twice is harmless
    unsubscribe()


def test_listener_dispatch_is_queued(store):
    seen = []

    def listener(output, old, new):
        seen.append(new)
        if new == 1:
            store.dispatch(add(10))

    store.subscribe(listener)
    store.dispatch(add(1))
    assert seen == [1, 11]


def test_failing_action_leaves_store_usable(store):
    def explode(state, context):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        store.dispatch(explode)
    assert store.state == 0

    store.dispatch(add(1))
    assert store.state == 1


def test_dispatch_from_threads(store):
    def work():
        for _ in range(200):
            store.dispatch(add(1))

    threads = [threading.Thread(target=work) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert store.state == 800


def test_close_drops_listeners(store):
    calls = []
    store.subscribe(lambda output, old, new: calls.append(new))
    store.close()
    store.dispatch(add(1))
    assert calls == []


# =============================================================================
# JSON
# =============================================================================

def test_load_and_save(store):
    descriptions = []
    store.subscribe(lambda output, old, new: descriptions.append(output.description))
    store.load_json("7")
    assert store.state == 7
    assert store.to_json() == 7
    assert descriptions == ["Loaded from JSON"]

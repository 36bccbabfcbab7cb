"""Tests for SafeBlock error containment.

Tests cover:
- Every Block operation contained and reported with its reason
- Lost errors buffered until a subscriber claims the sink
- Failing actions leave the state unchanged
- Nested wrapping and equality
"""

import logging

import pytest

from resheet_core.blocks.base import Block, Recomputed
from resheet_core.blocks.safe import (
    ACTION_FAILED,
    LOAD_FAILED,
    RECOMPUTE_FAILED,
    RESULT_FAILED,
    SAVE_FAILED,
    ErrorSink,
    SafeBlock,
    is_safe_block,
    safe_block,
)
from resheet_core.dispatch import ActionOutput, BlockStore


class BrokenBlock(Block):
    """Block whose every operation fails."""

    @property
    def init(self):
        return "init"

    def recompute(self, state, dispatch, env, changed=None):
        raise RuntimeError("recompute")

    def get_result(self, state):
        raise RuntimeError("result")

    def from_json(self, json, dispatch, env):
        raise RuntimeError("load")

    def to_json(self, state):
        raise RuntimeError("save")


class CounterBlock(Block):
    @property
    def init(self):
        return 0

    def recompute(self, state, dispatch, env, changed=None):
        return Recomputed(state, invalidated=False)

    def get_result(self, state):
        return state

    def from_json(self, json, dispatch, env):
        return int(json)

    def to_json(self, state):
        return state


@pytest.fixture
def sink():
    return ErrorSink()


@pytest.fixture
def errors(sink):
    collected = []
    sink.claim(collected.append)
    return collected


# =============================================================================
# Containment
# =============================================================================

def test_load_failure_returns_init(sink, errors):
    block = SafeBlock(BrokenBlock(), sink)
    assert block.from_json({"any": "thing"}, lambda action: None, {}) == "init"
    assert errors[-1].reason == LOAD_FAILED


def test_save_failure_returns_none(sink, errors):
    block = SafeBlock(BrokenBlock(), sink)
    assert block.to_json("init") is None
    assert errors[-1].reason == SAVE_FAILED


def test_result_failure_is_the_result(sink, errors):
    block = SafeBlock(BrokenBlock(), sink)
    result = block.get_result("init")
    assert isinstance(result, RuntimeError)
    assert errors[-1].reason == RESULT_FAILED
    assert errors[-1].error is result


def test_recompute_failure_keeps_state(sink, errors):
    block = SafeBlock(BrokenBlock(), sink)
    recomputed = block.recompute("stale", lambda action: None, {})
    assert recomputed == Recomputed("stale", invalidated=False)
    assert errors[-1].reason == RECOMPUTE_FAILED


def test_failing_action_leaves_state_unchanged(sink, errors):
    block = SafeBlock(CounterBlock(), sink)
    store = BlockStore(block)

    def explode(state, context):
        raise ValueError("boom")

    block.safe_dispatch(store.dispatch, ACTION_FAILED)(explode)
    block.safe_dispatch(store.dispatch, ACTION_FAILED)(lambda state, context: ActionOutput(state + 1))

    assert store.state == 1
    assert errors[-1].reason == ACTION_FAILED
    assert isinstance(errors[-1].error, ValueError)


# =============================================================================
# Error Sink
# =============================================================================

def test_lost_error_is_logged_and_delivered_on_claim(caplog):
    sink = ErrorSink()
    block = SafeBlock(BrokenBlock(), sink)

    with caplog.at_level(logging.WARNING, logger="resheet_core.blocks.safe"):
        block.to_json("init")
    assert SAVE_FAILED in caplog.text
    assert sink.lost_error.reason == SAVE_FAILED

    delivered = []
    sink.claim(delivered.append)
    assert [error.reason for error in delivered] == [SAVE_FAILED]
    assert sink.lost_error is None


def test_release_returns_to_buffering():
    sink = ErrorSink()
    delivered = []
    release = sink.claim(delivered.append)
    assert sink.claimed
    release()
    assert not sink.claimed

    sink.report(RESULT_FAILED, RuntimeError("late"))
    assert delivered == []
    assert sink.lost_error.reason == RESULT_FAILED


def test_store_claims_the_sink():
    delivered = []
    store = BlockStore(safe_block(BrokenBlock()), on_error=delivered.append)
    # The initial recompute already failed
    assert [error.reason for error in delivered] == [RECOMPUTE_FAILED]
    store.close()
    assert not store.block.sink.claimed


# =============================================================================
# Wrapping
# =============================================================================

def test_wrapping_is_idempotent():
    inner = CounterBlock()
    wrapped = safe_block(inner)
    assert safe_block(wrapped) is wrapped
    assert SafeBlock(wrapped).unsafe_block is inner
    assert is_safe_block(wrapped)
    assert not is_safe_block(inner)


def test_safe_blocks_compare_by_inner_block():
    assert safe_block(CounterBlock()) == safe_block(CounterBlock())
    assert safe_block(CounterBlock()) != safe_block(BrokenBlock())


def test_working_block_passes_through(sink, errors):
    block = SafeBlock(CounterBlock(), sink)
    assert block.from_json(5, lambda action: None, {}) == 5
    assert block.to_json(5) == 5
    assert block.get_result(5) == 5
    assert errors == []

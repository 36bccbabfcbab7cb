"""Shared fixtures: a deterministic clock, the evaluator and common blocks."""

from datetime import datetime, timedelta

import pytest

from resheet_core import BlockStore, DocumentBlock, ExprBlock, PythonEvaluator, SheetBlock


class FakeClock:
    """Clock advancing by ``step`` on every call."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0), step=timedelta(hours=1)):
        self.now = start
        self.step = step

    def __call__(self):
        now = self.now
        self.now = self.now + self.step
        return now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def evaluator():
    return PythonEvaluator()


@pytest.fixture
def expr_block(evaluator):
    return ExprBlock(evaluator)


@pytest.fixture
def sheet_block(expr_block):
    return SheetBlock(expr_block)


@pytest.fixture
def document_block(expr_block, clock):
    return DocumentBlock(expr_block, clock=clock)


@pytest.fixture
def sheet_store(sheet_block):
    return BlockStore(sheet_block)


@pytest.fixture
def document_store(document_block):
    return BlockStore(document_block)

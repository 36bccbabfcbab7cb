"""resheet_core: reactive recomputation and persistence engine for Block documents.

A document is a tree of Blocks. Each Block owns a piece of state, computes a
result from an Environment of named sibling results, and saves/loads its
state as versioned JSON.

Architecture:
    Actions → BlockStore → Block.recompute → results → Environments

Key concepts:
- Blocks are values holding configuration, never state
- Recomputation is incremental: only names that changed propagate
- Every JSON shape is a chain of revisions; old files load forever
- Failures inside a Block are contained by SafeBlock and reported as data

Usage:
    from resheet_core import BlockStore, DocumentBlock, SheetBlock, ExprBlock

    store = BlockStore(DocumentBlock(SheetBlock(ExprBlock())))
    actions = store.block.actions(store.dispatch)
    actions.add_page()
    store.to_json()
"""

from .config import DEFAULT_CONFIG, EngineCFG
from .dispatch import (
    Action,
    ActionContext,
    ActionOutput,
    BlockStore,
    Dispatcher,
)
from .environment import BEFORE_KEY, EMPTY_ENV, Environment
from .errors import ResheetError, ValidationError
from .evaluator import DEFAULT_EVALUATOR, SAFE_BUILTINS, Compiled, Evaluator, PythonEvaluator
from .result import PENDING, ImmediateResult, PromiseResult, Result
from .blocks import (
    Block,
    BlockError,
    BlockSelector,
    DocumentBlock,
    ErrorSink,
    ExprBlock,
    NoteBlock,
    Recomputed,
    SafeBlock,
    SheetBlock,
)

__all__ = [
    # Configuration
    "EngineCFG",
    "DEFAULT_CONFIG",
    # Actions
    "Action",
    "ActionContext",
    "ActionOutput",
    "Dispatcher",
    "BlockStore",
    # Environments
    "Environment",
    "EMPTY_ENV",
    "BEFORE_KEY",
    # Errors
    "ResheetError",
    "ValidationError",
    # Evaluation
    "Evaluator",
    "PythonEvaluator",
    "Compiled",
    "DEFAULT_EVALUATOR",
    "SAFE_BUILTINS",
    "Result",
    "ImmediateResult",
    "PromiseResult",
    "PENDING",
    # Blocks
    "Block",
    "Recomputed",
    "SafeBlock",
    "ErrorSink",
    "BlockError",
    "DocumentBlock",
    "SheetBlock",
    "ExprBlock",
    "BlockSelector",
    "NoteBlock",
]

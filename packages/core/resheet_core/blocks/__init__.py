"""Blocks and the engines that compose them.

Architecture:
    Block contract (base, safe) → collection engines (multiple, pages)
    → containers (sheet, document + history) → leaf blocks (expr, selector, note)

Available blocks:
- SafeBlock: Contains the failures of any Block
- SheetBlock: Vertical list of named lines
- DocumentBlock: Tree of named pages with history
- ExprBlock: Value of a single expression
- BlockSelector: Block chosen by an expression
- NoteBlock: Line of text, expression or embedded Block
"""

from .base import Block, BlockView, ChangedVars, Recomputed, is_block, map_with_env
from .safe import BlockError, ErrorSink, SafeBlock, is_safe_block, safe_block
from .multiple import BlockEntry
from .pages import PageState
from .history import HistoryWrapper
from .document import Document, DocumentBlock, ViewState
from .sheet import SheetBlock, SheetLine, SheetState
from .expr import ExprBlock, ExprState
from .selector import BlockSelector, SelectorState
from .note import NoteBlock, NoteState

__all__ = [
    "Block",
    "BlockView",
    "ChangedVars",
    "Recomputed",
    "is_block",
    "map_with_env",
    "BlockError",
    "ErrorSink",
    "SafeBlock",
    "is_safe_block",
    "safe_block",
    "BlockEntry",
    "PageState",
    "HistoryWrapper",
    "Document",
    "DocumentBlock",
    "ViewState",
    "SheetBlock",
    "SheetLine",
    "SheetState",
    "ExprBlock",
    "ExprState",
    "BlockSelector",
    "SelectorState",
    "NoteBlock",
    "NoteState",
]

"""Tabular views of engine state as pandas DataFrames.

These are read-only inspection helpers for notebooks, debugging and
downstream reporting; nothing in the engine depends on them.

Usage:
    from resheet_core.export import sheet_to_frame, pages_to_frame

    lines_df = sheet_to_frame(store.state, store.block.inner)
    pages_df = pages_to_frame(document.pages, inner)
"""

from typing import Sequence

import pandas as pd

from .blocks.base import Block
from .blocks.history import HistoryWrapper, JSONEntry, viewed_position
from .blocks.multiple import entry_name
from .blocks.pages import PageId, PageState
from .blocks.sheet import SheetState

SHEET_COLUMNS = ["id", "name", "visibility", "width", "result"]
PAGE_COLUMNS = ["path", "depth", "id", "name", "is_collapsed", "result"]
HISTORY_COLUMNS = ["position", "time", "kind", "is_current"]


def sheet_to_frame(state: SheetState, inner: Block) -> pd.DataFrame:
    """One row per line, in sheet order.

    Args:
        state: Sheet state
        inner: Block of every line

    Returns:
        DataFrame with columns: id, name (``$<id>`` when unnamed),
        visibility, width, result
    """
    if not state.lines:
        return pd.DataFrame(columns=SHEET_COLUMNS)

    rows = []
    for line in state.lines:
        rows.append({
            "id": line.id,
            "name": entry_name(line),
            "visibility": line.visibility,
            "width": line.width,
            "result": inner.get_result(line.state),
        })
    return pd.DataFrame(rows, columns=SHEET_COLUMNS)


def _page_rows(pages: Sequence[PageState], inner: Block, parent_path: Sequence[PageId]):
    for page in pages:
        path = (*parent_path, page.id)
        yield {
            "path": path,
            "depth": len(path) - 1,
            "id": page.id,
            "name": entry_name(page),
            "is_collapsed": page.is_collapsed,
            "result": inner.get_result(page.state),
        }
        yield from _page_rows(page.children, inner, path)


def pages_to_frame(pages: Sequence[PageState], inner: Block) -> pd.DataFrame:
    """Page forest flattened depth-first (parents before their children).

    Returns:
        DataFrame with columns: path (tuple of ids), depth (0 for roots),
        id, name, is_collapsed, result
    """
    rows = list(_page_rows(pages, inner, ()))
    if not rows:
        return pd.DataFrame(columns=PAGE_COLUMNS)
    return pd.DataFrame(rows, columns=PAGE_COLUMNS)


def history_to_frame(wrapper: HistoryWrapper) -> pd.DataFrame:
    """One row per snapshot, oldest first.

    ``kind`` is "state" for snapshots in memory and "json" for snapshots not
    loaded yet. ``is_current`` marks the viewed snapshot in history mode and
    the newest snapshot otherwise.
    """
    if not wrapper.history:
        return pd.DataFrame(columns=HISTORY_COLUMNS)

    position = viewed_position(wrapper)
    current = len(wrapper.history) - 1 if position is None else position
    rows = [
        {
            "position": index,
            "time": pd.Timestamp(entry.time),
            "kind": "json" if isinstance(entry, JSONEntry) else "state",
            "is_current": index == current,
        }
        for index, entry in enumerate(wrapper.history)
    ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)

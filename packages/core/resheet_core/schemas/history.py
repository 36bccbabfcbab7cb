"""JSON shape of the history wrapper.

    {"history": [{"time": <epoch ms>, "state": <inner JSON>}, ...], "inner": <inner JSON>}

Snapshot states are kept as raw JSON and loaded only when viewed.
"""

from typing import Any, List

from pydantic import Field

from .base import EpochMillis, JSONShape


class HistoryEntryJSON(JSONShape):
    """One snapshot."""

    time: EpochMillis
    state: Any = None


class HistoryJSON(JSONShape):
    """A history wrapper: snapshots and the current state."""

    history: List[HistoryEntryJSON] = Field(default_factory=list)
    inner: Any

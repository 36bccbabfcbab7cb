"""Revisions of the sheet block's JSON.

    vPre: [line, ...]                                     (bare list)
    v0:   {"t": "tables.sheet", "v": 0, "lines": [line, ...]}
    v1:   {"t": "resheet.sheet", "v": 1, "lines": [line, ...]}
    v2:   {"t": "resheet.sheet", "v": 2, "lines": [line with width, ...]}

Lines are strict: a line written by v2 (with ``width``) must not validate
as an older line, and vice versa.
"""

from typing import Any, List, Literal

from pydantic import TypeAdapter

from .base import EntryId, EntryName, JSONShape, StrictShape

LineVisibility = Literal["block", "result"]
LineWidth = Literal["narrow", "wide", "full"]

VISIBILITY_STATES = ("block", "result")
WIDTH_STATES = ("narrow", "wide", "full")


class SheetLineV0(StrictShape):
    """A line up to revision 1."""

    id: EntryId
    name: EntryName
    visibility: LineVisibility
    state: Any


class SheetLineV2(StrictShape):
    """A line from revision 2 on."""

    id: EntryId
    name: EntryName
    visibility: LineVisibility
    width: LineWidth
    state: Any


# Untagged sheet: the bare list of lines
SheetVPre = TypeAdapter(List[SheetLineV0])


class SheetV0(JSONShape):
    t: Literal["tables.sheet"]
    v: Literal[0]
    lines: List[SheetLineV0]


class SheetV1(JSONShape):
    t: Literal["resheet.sheet"]
    v: Literal[1]
    lines: List[SheetLineV0]


class SheetV2(JSONShape):
    t: Literal["resheet.sheet"]
    v: Literal[2]
    lines: List[SheetLineV2]

"""Revisions of the note block's JSON.

    vPre0: {"level": 0, "input": "..."}
    vPre1: {"level": 0, "input": "...", "interpreted": <note>}
    vPre2: {"v": 0, "level": 0, "input": "...", "note": <note>}
    v0:    {"t": "tables.note", "v": 0, "level": 0, "input": "...", "note": <note>}
    v1:    {"t": "resheet.note", "v": 1, "level": 0, "input": "...", "note": <note>}

vPre0 carries no interpretation; the note is re-derived from ``input``.
"""

from typing import Any, Literal

from pydantic import Field, StrictInt, StrictStr

from .base import Flag, JSONShape


# =============================================================================
# Note Variants
# =============================================================================

class ExprNoteJSON(JSONShape):
    type: Literal["expr"]
    code: StrictStr


class InstantiatedBlockNoteJSON(JSONShape):
    type: Literal["block"]
    is_instantiated: Literal[True] = Field(alias="isInstantiated")
    code: StrictStr
    state: Any = None


class BlockNoteJSON(JSONShape):
    type: Literal["block"]
    is_instantiated: Literal[False] = Field(alias="isInstantiated")
    code: StrictStr


class TextNoteJSON(JSONShape):
    type: Literal["text"]
    tag: StrictStr
    text: StrictStr


class CheckboxNoteJSON(JSONShape):
    type: Literal["checkbox"]
    checked: Flag
    text: StrictStr


# =============================================================================
# Revisions
# =============================================================================

class NoteVPre0(JSONShape):
    level: StrictInt
    input: StrictStr


class NoteVPre1(NoteVPre0):
    interpreted: Any


class NoteVPre2(NoteVPre0):
    v: Literal[0]
    note: Any


class NoteV0(NoteVPre0):
    t: Literal["tables.note"]
    v: Literal[0]
    note: Any


class NoteV1(NoteVPre0):
    t: Literal["resheet.note"]
    v: Literal[1]
    note: Any

"""Revisions of the block selector's JSON.

    vPre: {"mode": "run" | "choose", "expr": "<code>", "inner": <inner JSON>}
    v0:   {"t": "tables.selector", "v": 0, ...same fields}
    v1:   {"t": "resheet.selector", "v": 1, ...same fields}

A selector that was still loading saves the mode it will switch to and the
JSON it has not loaded yet, so the file never mentions ``loading``.
"""

from typing import Any, Literal

from pydantic import StrictStr

from .base import JSONShape

LoadedMode = Literal["run", "choose"]


class SelectorVPre(JSONShape):
    mode: LoadedMode
    expr: StrictStr
    inner: Any = None


class SelectorV0(SelectorVPre):
    t: Literal["tables.selector"]
    v: Literal[0]


class SelectorV1(SelectorVPre):
    t: Literal["resheet.selector"]
    v: Literal[1]

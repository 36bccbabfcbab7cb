"""Revisions of the expression block's JSON.

    vPre: "<code>"                                   (bare string)
    v0:   {"t": "tables.expr", "v": 0, "code": "<code>"}
    v1:   {"t": "resheet.expr", "v": 1, "code": "<code>"}
"""

from typing import Literal

from pydantic import StrictStr, TypeAdapter

from .base import JSONShape

ExprVPre = TypeAdapter(StrictStr)


class ExprV0(JSONShape):
    t: Literal["tables.expr"]
    v: Literal[0]
    code: StrictStr


class ExprV1(JSONShape):
    t: Literal["resheet.expr"]
    v: Literal[1]
    code: StrictStr

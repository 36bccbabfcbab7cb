"""Revisions of the page-tree document's JSON.

    vPre: {"pages": [page, ...], "viewState": {...}, "template": page}
    v0:   {"t": "tables.document", "v": 0, ...same fields}
    v1:   {"t": "resheet.document", "v": 1, ...same fields}

where a page is, recursively,

    {"id": 0, "name": "", "state": <inner JSON>, "isCollapsed": false, "children": [page, ...]}
"""

from typing import Any, List, Literal

from pydantic import Field

from .base import EntryName, Flag, JSONShape, PageId


class PageJSON(JSONShape):
    """A page and its subtree."""

    id: PageId
    name: EntryName
    state: Any = None
    is_collapsed: Flag = Field(default=True, alias="isCollapsed")
    children: List["PageJSON"] = Field(default_factory=list)


PageJSON.model_rebuild()


class ViewStateJSON(JSONShape):
    sidebar_open: Flag = Field(alias="sidebarOpen")
    open_page: List[PageId] = Field(alias="openPage")


class DocumentVPre(JSONShape):
    """Untagged document."""

    pages: List[PageJSON]
    view_state: ViewStateJSON = Field(alias="viewState")
    template: PageJSON


class DocumentV0(DocumentVPre):
    t: Literal["tables.document"]
    v: Literal[0]


class DocumentV1(DocumentVPre):
    t: Literal["resheet.document"]
    v: Literal[1]

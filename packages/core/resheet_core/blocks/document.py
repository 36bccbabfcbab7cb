"""Page-tree documents with history.

A Document is a forest of pages (see pages.py) plus what the user is looking
at and a template for new pages:

    Document(
        view_state=ViewState(sidebar_open=True, open_page=(0, 2)),
        template=PageState(id=-1, ...),
        pages=[PageState(id=0, children=[...]), ...],
    )

Document operations are plain functions ``(..., document, env, inner,
dispatch) -> document``; ``dispatch`` is the dispatcher of the root page
list, handed to pages so late results find their way back.

DocumentBlock wraps a Document in a HistoryWrapper. Edits made through
DocumentActions record snapshots; recomputation and late results do not.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import DEFAULT_CONFIG, EngineCFG
from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher, extract_action_description, field_dispatcher
from ..environment import Environment
from ..schemas.document import DocumentV0, DocumentV1, DocumentVPre
from ..schemas.versioned import add_revision, add_validator, identity_upgrade, typed
from . import history as History
from . import pages as Pages
from .base import Block, ChangedVars, Recomputed
from .history import HistoryWrapper
from .multiple import get_result_env, next_free_id
from .pages import PagePath, PageState
from .safe import safe_block

logger = logging.getLogger(__name__)

DOCUMENT_TAG = "resheet.document"
LEGACY_DOCUMENT_TAG = "tables.document"
DOCUMENT_REVISION = 1

DocumentOperation = Callable[["Document", Environment, Dispatcher], "Document"]


# =============================================================================
# Model
# =============================================================================

@dataclass(frozen=True)
class ViewState:
    sidebar_open: bool = True
    open_page: PagePath = ()


@dataclass(frozen=True)
class Document:
    """A page forest with its view state and new-page template."""

    view_state: ViewState
    template: PageState
    pages: List[PageState] = field(default_factory=list)


def init_document(inner_init: Any) -> Document:
    return Document(
        view_state=ViewState(sidebar_open=True, open_page=()),
        template=Pages.init_page(Pages.TEMPLATE_ID, inner_init),
        pages=[],
    )


def pages_dispatcher(document_dispatch: Dispatcher) -> Dispatcher:
    return field_dispatcher("pages", document_dispatch)


def get_document_result(document: Document, inner: Block) -> Dict[str, Any]:
    """Root pages' results by name."""
    return get_result_env(document.pages, inner)


def recompute_document(
    document: Document,
    dispatch: Dispatcher,
    env: Environment,
    changed: ChangedVars,
    inner: Block,
) -> Recomputed[Document]:
    """Recompute every page; ``dispatch`` is the Document's dispatcher."""
    result = Pages.recompute_pages_from(None, document.pages, env, changed, inner, pages_dispatcher(dispatch))
    return Recomputed(dataclasses.replace(document, pages=result.state), result.invalidated)


# =============================================================================
# View State
# =============================================================================

def get_open_page(document: Document) -> Optional[PageState]:
    return Pages.get_page_at(document.view_state.open_page, document.pages)


def get_open_page_env(document: Document, env: Environment, inner: Block) -> Dict[str, Any]:
    return Pages.get_page_env_at(document.view_state.open_page, document.pages, env, inner)


def change_open_page(path: Sequence[int], document: Document) -> Document:
    view_state = dataclasses.replace(document.view_state, open_page=tuple(path))
    return dataclasses.replace(document, view_state=view_state)


def set_sidebar_open(sidebar_open: bool, document: Document) -> Document:
    view_state = dataclasses.replace(document.view_state, sidebar_open=sidebar_open)
    return dataclasses.replace(document, view_state=view_state)


def toggle_page_collapsed(path: Sequence[int], document: Document) -> Document:
    return dataclasses.replace(document, pages=Pages.toggle_collapsed(path, document.pages))


# =============================================================================
# Page Operations
# =============================================================================

def update_page_state(
    path: Sequence[int],
    action: Callable[[Any, ActionContext], Any],
    document: Document,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Document:
    pages = Pages.update_page_state_at(path, document.pages, action, env, inner, dispatch)
    return dataclasses.replace(document, pages=pages)


def rename_page(
    path: Sequence[int],
    name: str,
    document: Document,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Document:
    pages = Pages.rename_page_at(path, name, document.pages, env, inner, dispatch)
    return dataclasses.replace(document, pages=pages)


def add_page_at(
    path: Sequence[int],
    document: Document,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Document:
    """Append a copy of the template under the page at ``path`` and open it."""
    siblings = Pages.get_children_at(path, document.pages)
    if siblings is None:
        logger.debug("add_page_at: no page at %s", list(path))
        return document

    new_page = dataclasses.replace(document.template, id=next_free_id(siblings), name="")
    new_path = (*path, new_page.id)
    pages = Pages.update_page_siblings_at(path, document.pages, lambda siblings: [*siblings, new_page])
    pages = Pages.recompute_anchor(new_path, pages, env, inner, dispatch)
    return dataclasses.replace(
        document,
        pages=pages,
        view_state=dataclasses.replace(document.view_state, open_page=new_path),
    )


def delete_page_at(
    path: Sequence[int],
    document: Document,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Document:
    """Delete the page at ``path`` with its subtree.

    The neighbouring page (next, else previous, else parent) is opened.
    """
    path = tuple(path)
    if Pages.get_page_at(path, document.pages) is None:
        logger.debug("delete_page_at: no page at %s", list(path))
        return document

    anchor = Pages.get_next_dependent_path(path, document.pages)
    open_page = Pages.get_next_or_prev_path(path, document.pages)
    pages = Pages.update_page_siblings_at(
        path[:-1],
        document.pages,
        lambda siblings: [sibling for sibling in siblings if sibling.id != path[-1]],
    )
    pages = Pages.recompute_anchor(anchor, pages, env, inner, dispatch)
    return dataclasses.replace(
        document,
        pages=pages,
        view_state=dataclasses.replace(document.view_state, open_page=open_page),
    )


def _follow_move(document: Document, old_path: PagePath, new_path: PagePath, pages: List[PageState]) -> Document:
    open_page = document.view_state.open_page
    if old_path != new_path and Pages.is_path_prefix(old_path, open_page):
        open_page = (*new_path, *open_page[len(old_path):])
    return dataclasses.replace(
        document,
        pages=pages,
        view_state=dataclasses.replace(document.view_state, open_page=open_page),
    )


def move_page(
    path: Sequence[int],
    target_parent_path: Sequence[int],
    target_index: int,
    document: Document,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Document:
    """Move a page; the open page follows it if it was inside."""
    pages, new_path = Pages.move_page(path, target_parent_path, target_index, document.pages, env, inner, dispatch)
    return _follow_move(document, tuple(path), new_path, pages)


def nest_page(
    path: Sequence[int],
    document: Document,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Document:
    pages, new_path = Pages.nest_page(path, document.pages, env, inner, dispatch)
    return _follow_move(document, tuple(path), new_path, pages)


def unnest_page(
    path: Sequence[int],
    document: Document,
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Document:
    pages, new_path = Pages.unnest_page(path, document.pages, env, inner, dispatch)
    return _follow_move(document, tuple(path), new_path, pages)


# =============================================================================
# JSON
# =============================================================================

def _parse_document(shape: DocumentVPre):
    def materialize(dispatch: Dispatcher, env: Environment, inner: Block) -> Document:
        [template] = Pages.pages_from_json([shape.template.to_wire()], lambda action: None, env, inner)
        pages = Pages.pages_from_json(
            [page.to_wire() for page in shape.pages], pages_dispatcher(dispatch), env, inner,
        )
        view_state = ViewState(
            sidebar_open=shape.view_state.sidebar_open,
            open_page=tuple(shape.view_state.open_page),
        )
        return Document(view_state=view_state, template=template, pages=pages)
    return materialize


document_v_pre = add_validator(DocumentVPre, _parse_document)

document_v0 = add_revision(
    document_v_pre,
    schema=DocumentV0,
    parse=_parse_document,
    upgrade=identity_upgrade,
)

document_v1 = add_revision(
    document_v0,
    schema=DocumentV1,
    parse=_parse_document,
    upgrade=identity_upgrade,
)


def document_from_json(json: Any, dispatch: Dispatcher, env: Environment, inner: Block) -> Document:
    """Load any revision of a Document; ``dispatch`` is the Document's dispatcher.

    Raises:
        ValidationError: If ``json`` matches no revision
    """
    return document_v1(json)(dispatch, env, inner)


def document_to_json(document: Document, inner: Block) -> Dict[str, Any]:
    [template] = Pages.pages_to_json([document.template], inner)
    return typed(DOCUMENT_TAG, DOCUMENT_REVISION, {
        "pages": Pages.pages_to_json(document.pages, inner),
        "viewState": {
            "sidebarOpen": document.view_state.sidebar_open,
            "openPage": list(document.view_state.open_page),
        },
        "template": template,
    })


# =============================================================================
# Block
# =============================================================================

class DocumentBlock(Block[HistoryWrapper]):
    """A page-tree document of ``inner`` pages, with undo history.

    Args:
        inner: Block of every page (wrapped in a SafeBlock)
        config: History configuration
        clock: Time source for snapshots
    """

    def __init__(
        self,
        inner: Block,
        config: EngineCFG = DEFAULT_CONFIG,
        clock: History.Clock = datetime.now,
    ):
        self.inner = safe_block(inner)
        self.config = config
        self.clock = clock

    @property
    def init(self) -> HistoryWrapper:
        return History.init_history(init_document(self.inner.init))

    def document_loader(self, dispatch: Dispatcher) -> History.FromJSON:
        """``(json, env) -> Document`` for snapshots, dispatching through history."""
        document_dispatch = History.history_inner_dispatcher(dispatch)

        def load(json: Any, env: Environment) -> Document:
            return document_from_json(json, document_dispatch, env, self.inner)
        return load

    def recompute(
        self,
        state: HistoryWrapper,
        dispatch: Dispatcher,
        env: Environment,
        changed: ChangedVars = None,
    ) -> Recomputed[HistoryWrapper]:
        document_dispatch = History.history_inner_dispatcher(dispatch)
        result = recompute_document(state.inner, document_dispatch, env, changed, self.inner)
        return Recomputed(History.update_history_current(state, lambda _: result.state), result.invalidated)

    def get_result(self, state: HistoryWrapper) -> Dict[str, Any]:
        return get_document_result(state.inner, self.inner)

    def from_json(self, json: Any, dispatch: Dispatcher, env: Environment) -> HistoryWrapper:
        return History.history_from_json(json, env, self.document_loader(dispatch))

    def to_json(self, state: HistoryWrapper) -> Dict[str, Any]:
        return History.history_to_json(state, lambda document: document_to_json(document, self.inner))

    def actions(self, dispatch: Dispatcher) -> "DocumentActions":
        return DocumentActions(self, dispatch)

    def _key(self):
        return (self.inner, self.config)


class DocumentActions:
    """User-facing operations on a DocumentBlock's state.

    Every method dispatches one action through ``dispatch``, the dispatcher
    of the HistoryWrapper.

    Example:
        actions = block.actions(store.dispatch)
        actions.add_page(())
        actions.rename_page((0,), "prices")
    """

    def __init__(self, block: DocumentBlock, dispatch: Dispatcher):
        self.block = block
        self.dispatch = dispatch
        self.pages_dispatch = pages_dispatcher(History.history_inner_dispatcher(dispatch))
        self.load = block.document_loader(dispatch)

    def _record(self, operation: DocumentOperation, description: Optional[str] = None) -> None:
        """Apply ``operation`` as an edit recorded in history."""
        def action(wrapper: HistoryWrapper, context: ActionContext) -> ActionOutput:
            new_wrapper = History.update_history_inner(
                wrapper,
                lambda document: operation(document, context.env, self.pages_dispatch),
                context.env,
                self.load,
                config=self.block.config,
                clock=self.block.clock,
            )
            return ActionOutput(new_wrapper, description)
        self.dispatch(action)

    def _view(self, update: Callable[[Document], Document]) -> None:
        """Change what is shown without recording a snapshot."""
        self.dispatch(lambda wrapper, context: ActionOutput(History.update_history_current(wrapper, update)))

    def _history(self, update: Callable[[HistoryWrapper, Environment], HistoryWrapper], description: Optional[str] = None) -> None:
        self.dispatch(lambda wrapper, context: ActionOutput(update(wrapper, context.env), description))

    # Pages

    def update_page(self, path: Sequence[int], page_action: Action) -> None:
        """Apply ``page_action`` to the state of the page at ``path``."""
        inner = self.block.inner

        def action(wrapper: HistoryWrapper, context: ActionContext) -> ActionOutput:
            return extract_action_description(
                page_action,
                lambda pure_action: History.update_history_inner(
                    wrapper,
                    lambda document: update_page_state(
                        path, pure_action, document, context.env, inner, self.pages_dispatch,
                    ),
                    context.env,
                    self.load,
                    config=self.block.config,
                    clock=self.block.clock,
                ),
            )
        self.dispatch(action)

    def page_dispatcher(self, path: Sequence[int]) -> Dispatcher:
        """Dispatcher for the state of the page at ``path``; its actions are recorded."""
        return lambda page_action: self.update_page(path, page_action)

    def add_page(self, path: Sequence[int] = ()) -> None:
        inner = self.block.inner
        self._record(lambda doc, env, dispatch: add_page_at(path, doc, env, inner, dispatch), "Added page")

    def delete_page(self, path: Sequence[int]) -> None:
        inner = self.block.inner
        self._record(lambda doc, env, dispatch: delete_page_at(path, doc, env, inner, dispatch), "Deleted page")

    def move_page(self, path: Sequence[int], target_parent_path: Sequence[int], target_index: int) -> None:
        inner = self.block.inner
        self._record(
            lambda doc, env, dispatch: move_page(path, target_parent_path, target_index, doc, env, inner, dispatch),
            "Moved page",
        )

    def nest_page(self, path: Sequence[int]) -> None:
        inner = self.block.inner
        self._record(lambda doc, env, dispatch: nest_page(path, doc, env, inner, dispatch), "Nested page")

    def unnest_page(self, path: Sequence[int]) -> None:
        inner = self.block.inner
        self._record(lambda doc, env, dispatch: unnest_page(path, doc, env, inner, dispatch), "Unnested page")

    def rename_page(self, path: Sequence[int], name: str) -> None:
        inner = self.block.inner
        self._record(lambda doc, env, dispatch: rename_page(path, name, doc, env, inner, dispatch), "Renamed page")

    # View

    def open_page(self, path: Sequence[int]) -> None:
        self._view(lambda doc: change_open_page(path, doc))

    def set_sidebar_open(self, sidebar_open: bool) -> None:
        self._view(lambda doc: set_sidebar_open(sidebar_open, doc))

    def toggle_collapsed(self, path: Sequence[int]) -> None:
        self._view(lambda doc: toggle_page_collapsed(path, doc))

    # History

    def open_history(self) -> None:
        self._history(lambda wrapper, env: History.open_history(wrapper))

    def close_history(self) -> None:
        self._history(lambda wrapper, env: History.close_history(wrapper))

    def go_back(self) -> None:
        self._history(lambda wrapper, env: History.go_back(wrapper))

    def go_forward(self) -> None:
        self._history(lambda wrapper, env: History.go_forward(wrapper))

    def use_this_state(self) -> None:
        self._history(
            lambda wrapper, env: History.use_this_state(
                wrapper, env, self.load, config=self.block.config, clock=self.block.clock,
            ),
            "Restored from history",
        )

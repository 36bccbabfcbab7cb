"""A forest of named pages, addressed by paths of ids.

Pages generalize entry lists (see multiple.py) to a tree. A path is the
sequence of ids from a root page down to a page; ``[]`` addresses the roots'
(virtual) parent.

Scoping: a page sees its parent's scope, the results of its preceding
siblings, ``$before`` (the preceding siblings only) and the results of its
own children:

    children env = {**parent_scope, **siblings_before, "$before": siblings_before}
    page env     = {**children env, **children_results}

Recomputation after an edit walks down the path to the edited page and back
up: at every level the pages *after* the path are recomputed (their inputs
may have changed), and every ancestor of the edited page is recomputed with
the names that changed below it.

Structural operations edit a sibling list with ``update_page_siblings_at``
and then recompute from an *anchor*: the page after the edited position, or
its parent when there is none. The anchor is recomputed inclusively because
its own input environment changed.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher, extract_action_description
from ..environment import Environment, local_env, merge_env
from .base import Block, ChangedVars
from .multiple import (
    BlockEntry,
    entries_to_env,
    entry_name,
    entry_to_env,
    find_entry_index,
    local_changed_vars,
    next_free_id,
)

logger = logging.getLogger(__name__)

PageId = int
PagePath = Tuple[PageId, ...]

TEMPLATE_ID = -1


@dataclass(frozen=True)
class PageState(BlockEntry):
    """A page: a BlockEntry with child pages.

    Attributes:
        is_collapsed: Whether the children are hidden in the page tree
        children: Child pages, in order
    """

    is_collapsed: bool = False
    children: List["PageState"] = field(default_factory=list)


@dataclass(frozen=True)
class PagesRecomputed:
    """Outcome of recomputing (part of) a sibling list.

    Attributes:
        state: The recomputed siblings
        invalidated: Whether any recomputed page's result may have changed
        changed_vars: Names changed at or below this level (None: anything)
    """

    state: List[PageState]
    invalidated: bool
    changed_vars: ChangedVars


def init_page(id: PageId, state: Any) -> PageState:
    return PageState(id=id, name="", state=state, is_collapsed=False, children=[])


# =============================================================================
# Queries
# =============================================================================

def get_page_at(path: Sequence[PageId], pages: Sequence[PageState]) -> Optional[PageState]:
    """Page addressed by ``path``, None if the path is empty or invalid."""
    if len(path) == 0:
        return None
    index = find_entry_index(pages, path[0])
    if index < 0:
        return None
    page = pages[index]
    if len(path) == 1:
        return page
    return get_page_at(path[1:], page.children)


def get_children_at(path: Sequence[PageId], pages: Sequence[PageState]) -> Optional[List[PageState]]:
    """Children of the page at ``path``; the roots for ``[]``."""
    if len(path) == 0:
        return list(pages)
    page = get_page_at(path, pages)
    return None if page is None else page.children


def get_expanded_paths(pages: Sequence[PageState], current_path: Sequence[PageId] = ()) -> List[PagePath]:
    """Paths of all pages visible in the page tree.

    Children of collapsed pages are hidden, except along ``current_path``.
    """
    paths: List[PagePath] = []
    for page in pages:
        is_in_path = len(current_path) > 0 and page.id == current_path[0]
        child_path = current_path[1:] if is_in_path else ()
        paths.append((page.id,))
        if not page.is_collapsed or len(child_path) > 0:
            paths.extend((page.id, *path) for path in get_expanded_paths(page.children, child_path))
    return paths


def get_siblings_of(
    path: Sequence[PageId],
    pages: Sequence[PageState],
) -> Tuple[List[PageState], List[PageState]]:
    """Siblings before and after the page at ``path``."""
    siblings = get_children_at(path[:-1], pages) or []
    index = find_entry_index(siblings, path[-1]) if len(path) > 0 else -1
    if index < 0:
        return list(siblings), []
    return list(siblings[:index]), list(siblings[index + 1:])


def page_env(scope: Environment, page: PageState, inner: Block) -> Dict[str, Any]:
    """Environment of ``page`` given its children's scope."""
    return merge_env(scope, entries_to_env(page.children, inner))


def get_page_env_at(
    path: Sequence[PageId],
    pages: Sequence[PageState],
    env: Environment,
    inner: Block,
) -> Dict[str, Any]:
    """Environment the page at ``path`` is computed in."""
    scope: Dict[str, Any] = dict(env)
    siblings: Sequence[PageState] = pages
    page: Optional[PageState] = None
    for id in path:
        index = find_entry_index(siblings, id)
        if index < 0:
            return scope
        scope = local_env(scope, entries_to_env(siblings[:index], inner))
        page = siblings[index]
        siblings = page.children
    if page is None:
        return scope
    return page_env(scope, page, inner)


def get_next_dependent_path(path: Sequence[PageId], pages: Sequence[PageState]) -> PagePath:
    """First page whose inputs depend on the page at ``path``.

    The following sibling if there is one, else the parent.
    """
    _, after = get_siblings_of(path, pages)
    if after:
        return (*path[:-1], after[0].id)
    return tuple(path[:-1])


def get_next_or_prev_path(path: Sequence[PageId], pages: Sequence[PageState]) -> PagePath:
    """Page to show instead of the page at ``path``.

    The following sibling, else the preceding sibling, else the parent.
    """
    before, after = get_siblings_of(path, pages)
    if after:
        return (*path[:-1], after[0].id)
    if before:
        return (*path[:-1], before[-1].id)
    return tuple(path[:-1])


# =============================================================================
# Structural Updates
# =============================================================================

def update_page_siblings_at(
    path: Sequence[PageId],
    pages: Sequence[PageState],
    update: Callable[[List[PageState]], List[PageState]],
) -> List[PageState]:
    """Replace the children of the page at ``path`` (the roots for ``[]``).

    An invalid path leaves ``pages`` unchanged.
    """
    if len(path) == 0:
        return update(list(pages))
    index = find_entry_index(pages, path[0])
    if index < 0:
        logger.debug("update_page_siblings_at: no page with id %s", path[0])
        return list(pages)
    page = pages[index]
    updated = list(pages)
    updated[index] = dataclasses.replace(
        page, children=update_page_siblings_at(path[1:], page.children, update),
    )
    return updated


def update_page_at(
    path: Sequence[PageId],
    pages: Sequence[PageState],
    update: Callable[[PageState], PageState],
) -> List[PageState]:
    """Replace the page at ``path``, without recomputing anything."""
    if len(path) == 0:
        return list(pages)

    def update_sibling(siblings: List[PageState]) -> List[PageState]:
        return [update(page) if page.id == path[-1] else page for page in siblings]

    return update_page_siblings_at(path[:-1], pages, update_sibling)


def toggle_collapsed(path: Sequence[PageId], pages: Sequence[PageState]) -> List[PageState]:
    return update_page_at(path, pages, lambda page: dataclasses.replace(page, is_collapsed=not page.is_collapsed))


def is_path_prefix(prefix: Sequence[PageId], path: Sequence[PageId]) -> bool:
    return len(prefix) <= len(path) and tuple(path[:len(prefix)]) == tuple(prefix)


# =============================================================================
# Recomputation
# =============================================================================

def page_dispatcher(path: Sequence[PageId], inner: Block, dispatch: Dispatcher) -> Dispatcher:
    """Dispatcher for the state of the page at ``path`` in roots owned by ``dispatch``."""
    path = tuple(path)

    def local_dispatch(local_action: Action) -> None:
        def pages_action(pages: List[PageState], context: ActionContext) -> ActionOutput:
            return extract_action_description(
                local_action,
                lambda pure_action: update_page_state_at(
                    path, pages, pure_action, context.env, inner, dispatch,
                ),
            )
        dispatch(pages_action)
    return local_dispatch


def _mark(changed_vars: ChangedVars, name: str, invalidated: bool) -> ChangedVars:
    if changed_vars is None:
        return None
    return changed_vars | {name} if invalidated else changed_vars - {name}


def _recompute_page(
    page: PageState,
    scope: Environment,
    changed_vars: ChangedVars,
    inner: Block,
    dispatch: Dispatcher,
    path: PagePath,
) -> Tuple[PageState, bool, ChangedVars]:
    """Recompute a page after recomputing all of its descendants."""
    children = _recompute_siblings(page.children, 0, scope, changed_vars, inner, dispatch, path)
    page = dataclasses.replace(page, children=children.state)
    result = inner.recompute(
        page.state,
        page_dispatcher(path, inner, dispatch),
        page_env(scope, page, inner),
        local_changed_vars(children.changed_vars),
    )
    # Children are scoped inside the page; siblings only see the page itself
    changed = _mark(changed_vars, entry_name(page), result.invalidated)
    return dataclasses.replace(page, state=result.state), result.invalidated, changed


def _recompute_siblings(
    pages: Sequence[PageState],
    start: int,
    env: Environment,
    changed_vars: ChangedVars,
    inner: Block,
    dispatch: Dispatcher,
    current_path: PagePath,
) -> PagesRecomputed:
    """Recompute ``pages[start:]`` with their full subtrees."""
    prefix = list(pages[:start])
    siblings_env = entries_to_env(prefix, inner)
    recomputed: List[PageState] = []
    any_invalidated = False
    for page in pages[start:]:
        scope = local_env(env, siblings_env)
        new_page, invalidated, changed_vars = _recompute_page(
            page, scope, changed_vars, inner, dispatch, (*current_path, page.id),
        )
        siblings_env = merge_env(siblings_env, entry_to_env(new_page, inner))
        recomputed.append(new_page)
        any_invalidated = any_invalidated or invalidated
    return PagesRecomputed(prefix + recomputed, any_invalidated, changed_vars)


def recompute_pages_from(
    path_with_changes: Optional[Sequence[PageId]],
    pages: Sequence[PageState],
    env: Environment,
    changed_vars: ChangedVars,
    inner: Block,
    dispatch: Dispatcher,
    current_path: Sequence[PageId] = (),
    include_target: bool = False,
) -> PagesRecomputed:
    """Recompute the pages depending on the page at ``path_with_changes``.

    Args:
        path_with_changes: Path, relative to this level, of the changed page.
            None recomputes every page at this level with its subtree; ``[]``
            means the changed page is this level's parent and nothing here
            depends on it.
        pages: Siblings at this level
        env: Scope of this level
        changed_vars: Names known to have changed, None for "anything"
        inner: Block of every page
        dispatch: Dispatcher of the root pages
        current_path: Path from the roots to this level
        include_target: Recompute the changed page itself (and its subtree),
            used when its input environment changed rather than its content

    Returns:
        Recomputed siblings and the names changed at or below this level
    """
    current_path = tuple(current_path)
    if path_with_changes is None:
        return _recompute_siblings(pages, 0, env, changed_vars, inner, dispatch, current_path)
    if len(path_with_changes) == 0:
        return PagesRecomputed(list(pages), invalidated=False, changed_vars=changed_vars)

    index = find_entry_index(pages, path_with_changes[0])
    if index < 0:
        logger.debug("recompute_pages_from: no page with id %s", path_with_changes[0])
        return PagesRecomputed(list(pages), invalidated=False, changed_vars=changed_vars)

    if len(path_with_changes) == 1:
        if include_target:
            return _recompute_siblings(pages, index, env, changed_vars, inner, dispatch, current_path)
        changed_vars = _mark(changed_vars, entry_name(pages[index]), True)
        after = _recompute_siblings(pages, index + 1, env, changed_vars, inner, dispatch, current_path)
        return PagesRecomputed(after.state, invalidated=True, changed_vars=after.changed_vars)

    page = pages[index]
    page_path = (*current_path, page.id)
    scope = local_env(env, entries_to_env(pages[:index], inner))
    children = recompute_pages_from(
        path_with_changes[1:], page.children, scope, changed_vars, inner, dispatch,
        page_path, include_target,
    )
    page = dataclasses.replace(page, children=children.state)
    result = inner.recompute(
        page.state,
        page_dispatcher(page_path, inner, dispatch),
        page_env(scope, page, inner),
        local_changed_vars(children.changed_vars),
    )
    updated = list(pages)
    updated[index] = dataclasses.replace(page, state=result.state)
    changed_vars = _mark(changed_vars, entry_name(page), result.invalidated)

    after = _recompute_siblings(updated, index + 1, env, changed_vars, inner, dispatch, current_path)
    return PagesRecomputed(
        after.state,
        invalidated=children.invalidated or result.invalidated or after.invalidated,
        changed_vars=after.changed_vars,
    )


def update_page_state_at(
    path: Sequence[PageId],
    pages: Sequence[PageState],
    action: Callable[[Any, ActionContext], Any],
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> List[PageState]:
    """Apply ``action`` to the state of the page at ``path`` and propagate."""
    page = get_page_at(path, pages)
    if page is None:
        logger.debug("update_page_state_at: no page at %s", list(path))
        return list(pages)

    new_state = action(page.state, ActionContext(env=get_page_env_at(path, pages, env, inner)))
    updated = update_page_at(path, pages, lambda page: dataclasses.replace(page, state=new_state))
    return recompute_pages_from(path, updated, env, frozenset(), inner, dispatch).state


def rename_page_at(
    path: Sequence[PageId],
    name: str,
    pages: Sequence[PageState],
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> List[PageState]:
    """Rename the page at ``path``.

    A rename changes what later siblings and ancestors see under both the
    old and the new name, but not the page's own inputs.
    """
    page = get_page_at(path, pages)
    if page is None:
        return list(pages)

    old_name = entry_name(page)
    renamed = dataclasses.replace(page, name=name)
    updated = update_page_at(path, pages, lambda _: renamed)
    changed = frozenset({old_name, entry_name(renamed)})
    return recompute_pages_from(path, updated, env, changed, inner, dispatch).state


def recompute_anchor(
    anchor: Sequence[PageId],
    pages: Sequence[PageState],
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> List[PageState]:
    """Recompute after a structural edit whose first dependent is ``anchor``."""
    return recompute_pages_from(anchor, pages, env, None, inner, dispatch, include_target=True).state


def move_page(
    path: Sequence[PageId],
    target_parent_path: Sequence[PageId],
    target_index: int,
    pages: Sequence[PageState],
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Tuple[List[PageState], PagePath]:
    """Move the page at ``path`` to position ``target_index`` under a new parent.

    The page gets a fresh id when it changes parents, so that it does not
    collide with its new siblings.

    Returns:
        New pages and the moved page's new path; the input unchanged (with
        ``path``) when the page does not exist, the target parent does not
        exist or lies inside the moved page.
    """
    path = tuple(path)
    target_parent_path = tuple(target_parent_path)
    page = get_page_at(path, pages)
    if page is None or is_path_prefix(path, target_parent_path):
        return list(pages), path
    if get_children_at(target_parent_path, pages) is None:
        return list(pages), path

    old_anchor = get_next_dependent_path(path, pages)
    without = update_page_siblings_at(
        path[:-1], pages, lambda siblings: [sibling for sibling in siblings if sibling.id != page.id],
    )

    same_parent = target_parent_path == path[:-1]
    target_siblings = get_children_at(target_parent_path, without) or []
    new_id = page.id if same_parent else next_free_id(target_siblings)
    moved = dataclasses.replace(page, id=new_id)
    index = max(0, min(target_index, len(target_siblings)))

    def insert(siblings: List[PageState]) -> List[PageState]:
        return [*siblings[:index], moved, *siblings[index:]]

    moved_pages = update_page_siblings_at(target_parent_path, without, insert)
    new_path = (*target_parent_path, new_id)

    moved_pages = recompute_anchor(old_anchor, moved_pages, env, inner, dispatch)
    moved_pages = recompute_anchor(new_path, moved_pages, env, inner, dispatch)
    return moved_pages, new_path


def nest_page(
    path: Sequence[PageId],
    pages: Sequence[PageState],
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Tuple[List[PageState], PagePath]:
    """Make the page at ``path`` the last child of its preceding sibling."""
    path = tuple(path)
    if len(path) == 0:
        return list(pages), path
    before, _ = get_siblings_of(path, pages)
    if not before or get_page_at(path, pages) is None:
        return list(pages), path
    new_parent = before[-1]
    return move_page(
        path, (*path[:-1], new_parent.id), len(new_parent.children), pages, env, inner, dispatch,
    )


def unnest_page(
    path: Sequence[PageId],
    pages: Sequence[PageState],
    env: Environment,
    inner: Block,
    dispatch: Dispatcher,
) -> Tuple[List[PageState], PagePath]:
    """Move the page at ``path`` right after its parent."""
    path = tuple(path)
    if len(path) < 2 or get_page_at(path, pages) is None:
        return list(pages), path
    grandparent_path = path[:-2]
    grandparent_children = get_children_at(grandparent_path, pages) or []
    parent_index = find_entry_index(grandparent_children, path[-2])
    return move_page(path, grandparent_path, parent_index + 1, pages, env, inner, dispatch)


# =============================================================================
# JSON
# =============================================================================

def pages_to_json(pages: Sequence[PageState], inner: Block) -> List[Dict[str, Any]]:
    return [
        {
            "id": page.id,
            "name": page.name,
            "state": inner.to_json(page.state),
            "isCollapsed": page.is_collapsed,
            "children": pages_to_json(page.children, inner),
        }
        for page in pages
    ]


def pages_from_json(
    json_pages: Sequence[Dict[str, Any]],
    dispatch: Dispatcher,
    env: Environment,
    inner: Block,
    path: Sequence[PageId] = (),
) -> List[PageState]:
    """Load pages; children load first so their parent can read them.

    Args:
        json_pages: Dicts with ``id``, ``name``, ``state``, ``children`` and
            optionally ``isCollapsed`` (default True)
        dispatch: Dispatcher of the root pages
        env: Scope of this level
        inner: Block of every page
        path: Path from the roots to this level
    """
    loaded: List[PageState] = []
    siblings_env: Dict[str, Any] = {}
    for json_page in json_pages:
        page_path = (*path, json_page["id"])
        scope = local_env(env, siblings_env)
        children = pages_from_json(json_page.get("children", []), dispatch, scope, inner, page_path)
        page = PageState(
            id=json_page["id"],
            name=json_page["name"],
            state=inner.init,
            is_collapsed=json_page.get("isCollapsed", True),
            children=children,
        )
        state = inner.from_json(
            json_page["state"],
            page_dispatcher(page_path, inner, dispatch),
            page_env(scope, page, inner),
        )
        page = dataclasses.replace(page, state=state)
        loaded.append(page)
        siblings_env = merge_env(siblings_env, entry_to_env(page, inner))
    return loaded

"""Block selector: a Block chosen by evaluating an expression.

The expression runs against ``block_library`` plus the Environment; when it
yields a Block, that Block is instantiated and the selector behaves like it.

Modes:
    choose   the user is editing the expression (a Block may already be chosen)
    run      the chosen Block is in use
    loading  the expression did not yield a Block while loading; the saved
             inner JSON waits until a recompute makes the Block available

When the expression starts yielding a different Block, the inner state is
carried over through the old Block's ``to_json`` and the new one's
``from_json``.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..dispatch import Action, ActionContext, ActionOutput, Dispatcher, dispatch_when, extract_action_description, field_dispatcher
from ..environment import Environment, merge_env
from ..evaluator import DEFAULT_EVALUATOR, Evaluator
from ..schemas.selector import SelectorV0, SelectorV1, SelectorVPre
from ..schemas.versioned import add_revision, add_validator, identity_upgrade, typed
from .base import Block, ChangedVars, Recomputed, is_block
from .safe import SafeBlock, safe_block

logger = logging.getLogger(__name__)

SELECTOR_TAG = "resheet.selector"
SELECTOR_REVISION = 1

MODES = ("run", "choose", "loading")


@dataclass(frozen=True)
class SelectorState:
    """State of a BlockSelector.

    Attributes:
        mode: 'run', 'choose' or 'loading'
        expr: Expression choosing the Block
        block: The chosen Block (None while loading or before choosing)
        state: The chosen Block's state
        mode_after: Mode to enter once loading completes
        json_to_load: Inner JSON still to be loaded
    """

    mode: str
    expr: str
    block: Optional[SafeBlock] = None
    state: Any = None
    mode_after: Optional[str] = None
    json_to_load: Any = None


def init_selector(expr: str = "", block: Optional[Block] = None) -> SelectorState:
    if block is None:
        return SelectorState(mode="choose", expr=expr)
    chosen = safe_block(block)
    return SelectorState(mode="run", expr=expr, block=chosen, state=chosen.init)


def inner_dispatcher(dispatch: Dispatcher) -> Dispatcher:
    """Dispatcher for the chosen Block's state; ignored while loading."""
    return field_dispatcher("state", dispatch_when(lambda state: state.mode != "loading", dispatch))


def evaluate_choice(expr: str, env: Environment, library: Mapping[str, Any], evaluator: Evaluator) -> Any:
    return evaluator.exec(expr, merge_env(library, env))


def choose_block(
    state: SelectorState,
    expr: str,
    env: Environment,
    library: Mapping[str, Any],
    evaluator: Evaluator = DEFAULT_EVALUATOR,
) -> SelectorState:
    """Run the chosen Block if ``expr`` yields one, else leave ``state`` as is."""
    value = evaluate_choice(expr, env, library, evaluator)
    if not is_block(value):
        logger.debug("Selector expression %r did not yield a Block", expr)
        return state
    chosen = safe_block(value)
    return SelectorState(mode="run", expr=expr, block=chosen, state=chosen.init)


def set_mode(state: SelectorState, mode: str) -> SelectorState:
    """Switch between 'choose' and 'run'; running needs a chosen Block."""
    if state.mode == "loading" or mode not in ("run", "choose"):
        return state
    if mode == "run" and state.block is None:
        return state
    return dataclasses.replace(state, mode=mode)


def recompute_selector(
    state: SelectorState,
    dispatch: Dispatcher,
    env: Environment,
    changed: ChangedVars,
    library: Mapping[str, Any],
    evaluator: Evaluator,
) -> Recomputed[SelectorState]:
    local_dispatch = inner_dispatcher(dispatch)
    compiled = evaluator.compile(state.expr)
    expr_changed = changed is None or not compiled.deps.isdisjoint(changed)

    if state.mode == "loading" or expr_changed:
        value = compiled.run(merge_env(library, env))
        if is_block(value):
            new_block = safe_block(value)
            if state.mode == "loading":
                inner_state = new_block.from_json(state.json_to_load, local_dispatch, env)
                loaded = SelectorState(mode=state.mode_after or "run", expr=state.expr, block=new_block, state=inner_state)
                return Recomputed(loaded, invalidated=True)
            if state.block is not None and new_block != state.block:
                inner_state = new_block.from_json(state.block.to_json(state.state), local_dispatch, env)
                swapped = dataclasses.replace(state, block=new_block, state=inner_state)
                return Recomputed(swapped, invalidated=True)

    if state.mode == "loading" or state.block is None:
        return Recomputed(state, invalidated=False)

    result = state.block.recompute(state.state, local_dispatch, env, changed)
    return Recomputed(dataclasses.replace(state, state=result.state), result.invalidated)


# =============================================================================
# JSON
# =============================================================================

def _parse_selector(shape: SelectorVPre):
    def materialize(dispatch: Dispatcher, env: Environment, selector: "BlockSelector") -> SelectorState:
        value = evaluate_choice(shape.expr, env, selector.block_library, selector.evaluator)
        if not is_block(value):
            if shape.mode == "choose" and shape.inner is None:
                return SelectorState(mode="choose", expr=shape.expr)
            return SelectorState(mode="loading", expr=shape.expr, mode_after=shape.mode, json_to_load=shape.inner)

        chosen = safe_block(value)
        inner_state = chosen.from_json(shape.inner, inner_dispatcher(dispatch), env)
        return SelectorState(mode=shape.mode, expr=shape.expr, block=chosen, state=inner_state)
    return materialize


selector_v_pre = add_validator(SelectorVPre, _parse_selector)

selector_v0 = add_revision(
    selector_v_pre,
    schema=SelectorV0,
    parse=_parse_selector,
    upgrade=identity_upgrade,
)

selector_v1 = add_revision(
    selector_v0,
    schema=SelectorV1,
    parse=_parse_selector,
    upgrade=identity_upgrade,
)


def selector_to_json(state: SelectorState) -> Dict[str, Any]:
    if state.mode == "loading":
        return typed(SELECTOR_TAG, SELECTOR_REVISION, {
            "mode": state.mode_after,
            "expr": state.expr,
            "inner": state.json_to_load,
        })
    return typed(SELECTOR_TAG, SELECTOR_REVISION, {
        "mode": state.mode,
        "expr": state.expr,
        "inner": None if state.block is None else state.block.to_json(state.state),
    })


# =============================================================================
# Block
# =============================================================================

class BlockSelector(Block[SelectorState]):
    """Block that becomes whichever Block its expression yields.

    Args:
        block_library: Names visible to the expression besides the Environment
        evaluator: Runs the expression
        expr: Initial expression
        block: Initially chosen Block
    """

    def __init__(
        self,
        block_library: Optional[Mapping[str, Any]] = None,
        evaluator: Evaluator = DEFAULT_EVALUATOR,
        expr: str = "",
        block: Optional[Block] = None,
    ):
        self.block_library = dict(block_library or {})
        self.evaluator = evaluator
        self.expr = expr
        self.block = block

    @property
    def init(self) -> SelectorState:
        return init_selector(self.expr, self.block)

    def recompute(
        self,
        state: SelectorState,
        dispatch: Dispatcher,
        env: Environment,
        changed: ChangedVars = None,
    ) -> Recomputed[SelectorState]:
        return recompute_selector(state, dispatch, env, changed, self.block_library, self.evaluator)

    def get_result(self, state: SelectorState) -> Any:
        if state.block is None:
            return None
        return state.block.get_result(state.state)

    def from_json(self, json: Any, dispatch: Dispatcher, env: Environment) -> SelectorState:
        return selector_v1(json)(dispatch, env, self)

    def to_json(self, state: SelectorState) -> Dict[str, Any]:
        return selector_to_json(state)

    def actions(self, dispatch: Dispatcher) -> "SelectorActions":
        return SelectorActions(self, dispatch)

    def _key(self):
        return (tuple(sorted(self.block_library.items(), key=lambda item: item[0])), self.evaluator, self.expr, self.block)


class SelectorActions:
    """Operations on a BlockSelector's state, dispatched through ``dispatch``."""

    def __init__(self, block: BlockSelector, dispatch: Dispatcher):
        self.block = block
        self.dispatch = dispatch

    def choose_block(self, expr: str) -> None:
        def action(state: SelectorState, context: ActionContext) -> ActionOutput:
            new_state = choose_block(state, expr, context.env, self.block.block_library, self.block.evaluator)
            return ActionOutput(new_state, f"Chose block {expr}")
        self.dispatch(action)

    def set_mode(self, mode: str) -> None:
        self.dispatch(lambda state, context: ActionOutput(set_mode(state, mode)))

    def update_inner(self, inner_action: Action) -> None:
        """Apply ``inner_action`` to the chosen Block's state."""
        inner_dispatcher(self.dispatch)(inner_action)

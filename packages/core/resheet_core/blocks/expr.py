"""Expression block: code evaluated against the Environment.

The block's result is the value of its code. Values that settle later
(futures) are wrapped in a PromiseResult; the settled value is committed
through ``dispatch`` unless the block was recomputed in the meantime.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..dispatch import ActionContext, ActionOutput, Dispatcher, dispatcher_to_setter, field_dispatcher
from ..environment import Environment
from ..evaluator import DEFAULT_EVALUATOR, Compiled, Evaluator
from ..result import EMPTY_RESULT, Result, cancel_result, get_result_value, result_from
from ..schemas.expr import ExprV0, ExprV1, ExprVPre
from ..schemas.versioned import add_revision, add_validator, identity_upgrade, typed
from .base import Block, ChangedVars, Recomputed

EXPR_TAG = "resheet.expr"
EXPR_REVISION = 1


@dataclass(frozen=True)
class ExprState:
    code: str
    compiled: Compiled
    result: Result = EMPTY_RESULT


def depends_on(compiled: Compiled, changed: ChangedVars) -> bool:
    """Whether code reading ``compiled.deps`` must rerun after ``changed``."""
    return changed is None or not compiled.deps.isdisjoint(changed)


def run_expr(state: ExprState, env: Environment, dispatch: Dispatcher) -> ExprState:
    """Evaluate ``state.compiled``, cancelling a still pending previous run."""
    cancel_result(state.result)
    set_result = dispatcher_to_setter(field_dispatcher("result", dispatch))
    result = result_from(state.compiled.run(env), set_result)
    return dataclasses.replace(state, result=result)


def set_code(
    state: ExprState,
    code: str,
    env: Environment,
    dispatch: Dispatcher,
    evaluator: Evaluator = DEFAULT_EVALUATOR,
) -> ExprState:
    compiled = evaluator.compile(code)
    return run_expr(dataclasses.replace(state, code=code, compiled=compiled), env, dispatch)


def _parse_code(code: str):
    def materialize(dispatch: Dispatcher, env: Environment, block: "ExprBlock") -> ExprState:
        return set_code(block.init, code, env, dispatch, block.evaluator)
    return materialize


expr_v_pre = add_validator(ExprVPre, _parse_code, name="ExprVPre")

expr_v0 = add_revision(
    expr_v_pre,
    schema=ExprV0,
    parse=lambda shape: _parse_code(shape.code),
    upgrade=identity_upgrade,
)

expr_v1 = add_revision(
    expr_v0,
    schema=ExprV1,
    parse=lambda shape: _parse_code(shape.code),
    upgrade=identity_upgrade,
)


class ExprBlock(Block[ExprState]):
    """Block whose result is the value of a single expression.

    Args:
        evaluator: Compiles and runs the code (default: Python expressions)
        code: Initial code
    """

    def __init__(self, evaluator: Evaluator = DEFAULT_EVALUATOR, code: str = ""):
        self.evaluator = evaluator
        self.code = code

    @property
    def init(self) -> ExprState:
        return ExprState(code=self.code, compiled=self.evaluator.compile(self.code), result=EMPTY_RESULT)

    def recompute(
        self,
        state: ExprState,
        dispatch: Dispatcher,
        env: Environment,
        changed: ChangedVars = None,
    ) -> Recomputed[ExprState]:
        if not depends_on(state.compiled, changed):
            return Recomputed(state, invalidated=False)
        return Recomputed(run_expr(state, env, dispatch), invalidated=True)

    def get_result(self, state: ExprState) -> Any:
        return get_result_value(state.result)

    def from_json(self, json: Any, dispatch: Dispatcher, env: Environment) -> ExprState:
        return expr_v1(json)(dispatch, env, self)

    def to_json(self, state: ExprState) -> Dict[str, Any]:
        return typed(EXPR_TAG, EXPR_REVISION, {"code": state.code})

    def actions(self, dispatch: Dispatcher) -> "ExprActions":
        return ExprActions(self, dispatch)

    def _key(self):
        return (self.evaluator, self.code)


class ExprActions:
    """Operations on an ExprBlock's state, dispatched through ``dispatch``."""

    def __init__(self, block: ExprBlock, dispatch: Dispatcher):
        self.block = block
        self.dispatch = dispatch

    def set_code(self, code: str, description: Optional[str] = None) -> None:
        def action(state: ExprState, context: ActionContext) -> ActionOutput:
            new_state = set_code(state, code, context.env, self.dispatch, self.block.evaluator)
            return ActionOutput(new_state, description)
        self.dispatch(action)

    def rerun(self) -> None:
        self.dispatch(lambda state, context: ActionOutput(run_expr(state, context.env, self.dispatch)))

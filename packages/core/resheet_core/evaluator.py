"""Expression evaluation consumed by code-carrying blocks.

Blocks never evaluate code themselves; they go through an Evaluator:

    compiled = evaluator.compile("$0 + ' World'")
    compiled.deps         → frozenset({"$0"})
    compiled.run(env)     → value, a pending future, or the raised exception

Evaluation failures (syntax or runtime) are returned as values, never
raised, so a broken expression shows up as its block's result instead of
aborting recomputation of the whole document.

PythonEvaluator evaluates Python expressions. Sibling results are bound
under names like ``$0`` or ``$before``, which are not Python identifiers, so
``$name`` tokens outside string literals are rewritten before parsing.

Expressions are not sandboxed. By default they see all of Python's builtins,
including ``__import__`` and ``open``, so only evaluate trusted documents.
Pass ``builtins_env=SAFE_BUILTINS`` to limit them to pure helpers.
"""

import ast
import builtins
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .environment import Environment

DOLLAR_PREFIX = "__dollar__"

_IDENT_CHAR = re.compile(r"[A-Za-z0-9_]")

SAFE_BUILTINS: Mapping[str, Any] = {
    name: getattr(builtins, name)
    for name in (
        "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter", "float",
        "int", "isinstance", "len", "list", "map", "max", "min", "pow", "range",
        "reversed", "round", "set", "sorted", "str", "sum", "tuple", "zip",
    )
}


# =============================================================================
# Compiled Code
# =============================================================================

@dataclass(frozen=True)
class Compiled:
    """Compiled code and the free names it reads.

    Attributes:
        code: Source as written by the user
        deps: Environment names the code may read
        program: Compiled code object, None for empty code or a syntax error
        error: SyntaxError raised while compiling, if any
    """

    code: str
    deps: FrozenSet[str] = frozenset()
    program: Any = field(default=None, compare=False, repr=False)
    error: Optional[BaseException] = field(default=None, compare=False)
    builtins: Mapping[str, Any] = field(default_factory=lambda: vars(builtins), compare=False, repr=False)

    def run(self, env: Environment) -> Any:
        """Evaluate against ``env``; exceptions are returned, not raised."""
        if self.error is not None:
            return self.error
        if self.program is None:
            return None

        namespace: Dict[str, Any] = {"__builtins__": self.builtins}
        for name, value in env.items():
            namespace[mangle_name(name)] = value
        try:
            return eval(self.program, namespace)
        except Exception as e:
            return e


class Evaluator(ABC):
    """Compiles code for blocks to run against their Environment."""

    @abstractmethod
    def compile(self, code: str) -> Compiled:
        pass

    def exec(self, code: str, env: Environment) -> Any:
        return self.compile(code).run(env)


# =============================================================================
# Python Expressions
# =============================================================================

def mangle_name(name: str) -> str:
    """Environment name → Python identifier (``$0`` → ``__dollar__0``)."""
    if name.startswith("$"):
        return DOLLAR_PREFIX + name[1:]
    return name


def unmangle_name(name: str) -> str:
    if name.startswith(DOLLAR_PREFIX):
        return "$" + name[len(DOLLAR_PREFIX):]
    return name


def rewrite_dollar_names(code: str) -> str:
    """Rewrite ``$name`` tokens outside string literals and comments."""
    out = []
    i = 0
    n = len(code)
    while i < n:
        char = code[i]
        if char in "\"'":
            quote = code[i:i + 3] if code[i:i + 3] in ('"""', "'''") else char
            end = i + len(quote)
            while end < n and not code.startswith(quote, end):
                end += 2 if code[end] == "\\" else 1
            end = min(n, end + len(quote))
            out.append(code[i:end])
            i = end
        elif char == "#":
            end = code.find("\n", i)
            end = n if end < 0 else end
            out.append(code[i:end])
            i = end
        elif char == "$" and i + 1 < n and _IDENT_CHAR.match(code[i + 1]):
            out.append(DOLLAR_PREFIX)
            i += 1
        else:
            out.append(char)
            i += 1
    return "".join(out)


def free_names(tree: ast.AST) -> FrozenSet[str]:
    """Names read by an expression, over-approximated (bound names included)."""
    return frozenset(
        unmangle_name(node.id)
        for node in ast.walk(tree)
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load)
    )


class PythonEvaluator(Evaluator):
    """Evaluates single Python expressions.

    Args:
        builtins_env: Builtins visible to expressions (default: Python's builtins)
    """

    def __init__(self, builtins_env: Optional[Mapping[str, Any]] = None):
        self.builtins_env = dict(vars(builtins) if builtins_env is None else builtins_env)

    def compile(self, code: str) -> Compiled:
        if code.strip() == "":
            return Compiled(code, builtins=self.builtins_env)

        source = rewrite_dollar_names(code.strip())
        try:
            tree = ast.parse(source, mode="eval")
            program = compile(tree, "<expr>", "eval")
        except SyntaxError as e:
            return Compiled(code, error=e, builtins=self.builtins_env)

        deps = free_names(tree) - frozenset(self.builtins_env)
        return Compiled(code, deps=deps, program=program, builtins=self.builtins_env)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


DEFAULT_EVALUATOR = PythonEvaluator()

"""Tests for the Python expression evaluator.

Tests cover:
- $name identifiers outside string literals and comments
- Dependency extraction (builtins excluded)
- Syntax and runtime errors returned as values
- Empty code
- Builtins visible to expressions
"""

import pytest

from resheet_core.environment import local_env
from resheet_core.evaluator import (
    DOLLAR_PREFIX,
    SAFE_BUILTINS,
    PythonEvaluator,
    mangle_name,
    rewrite_dollar_names,
    unmangle_name,
)


# =============================================================================
# Name Rewriting
# =============================================================================

def test_mangle_round_trip():
    assert mangle_name("$0") == DOLLAR_PREFIX + "0"
    assert unmangle_name(mangle_name("$before")) == "$before"
    assert mangle_name("price") == "price"


def test_rewrite_skips_strings_and_comments():
    code = "$0 + '$1' + \"$2\" # $3"
    rewritten = rewrite_dollar_names(code)
    assert rewritten == f"{DOLLAR_PREFIX}0 + '$1' + \"$2\" # $3"


def test_rewrite_skips_triple_quoted_strings():
    code = "'''it's $0''' + $1"
    assert rewrite_dollar_names(code) == f"'''it's $0''' + {DOLLAR_PREFIX}1"


def test_lone_dollar_is_left_alone():
    assert rewrite_dollar_names("'a' if $ else 'b'") == "'a' if $ else 'b'"


# =============================================================================
# Compile & Run
# =============================================================================

def test_hi_world(evaluator):
    """A line reading the line above it."""
    compiled = evaluator.compile("$0 + ' World'")
    assert compiled.deps == frozenset({"$0"})
    assert compiled.run({"$0": "Hi"}) == "Hi World"


def test_string_literal_is_not_a_dependency(evaluator):
    compiled = evaluator.compile("'$0'")
    assert compiled.deps == frozenset()
    assert compiled.run({}) == "$0"


def test_builtins_are_not_dependencies(evaluator):
    compiled = evaluator.compile("len(items) + max(1, offset)")
    assert compiled.deps == frozenset({"items", "offset"})
    assert compiled.run({"items": [1, 2], "offset": 3}) == 5


def test_before_binding(evaluator):
    """``$before`` reads the siblings-only scope, past shadowing."""
    env = local_env({"x": "global"}, {"x": "sibling"})
    assert evaluator.exec("x", env) == "sibling"
    assert evaluator.exec("$before['x']", env) == "sibling"
    assert evaluator.compile("$before['x']").deps == frozenset({"$before"})


def test_empty_code(evaluator):
    compiled = evaluator.compile("   ")
    assert compiled.deps == frozenset()
    assert compiled.run({"x": 1}) is None


def test_syntax_error_is_returned(evaluator):
    compiled = evaluator.compile("1 +")
    assert isinstance(compiled.error, SyntaxError)
    assert isinstance(compiled.run({}), SyntaxError)


@pytest.mark.parametrize("code,error_type", [
    ("1 / 0", ZeroDivisionError),
    ("missing + 1", NameError),
    ("$0.upper()", NameError),
])
def test_runtime_error_is_returned(evaluator, code, error_type):
    assert isinstance(evaluator.exec(code, {}), error_type)


def test_restricted_builtins():
    evaluator = PythonEvaluator(builtins_env={"len": len})
    assert evaluator.exec("len('abc')", {}) == 3
    assert isinstance(evaluator.exec("max(1, 2)", {}), NameError)
    assert evaluator.compile("max(a)").deps == frozenset({"max", "a"})


def test_safe_builtins_hide_imports_and_files():
    evaluator = PythonEvaluator(builtins_env=SAFE_BUILTINS)
    assert evaluator.exec("sum(range(4))", {}) == 6
    assert isinstance(evaluator.exec("__import__('os')", {}), NameError)
    assert isinstance(evaluator.exec("open('notes.txt')", {}), NameError)

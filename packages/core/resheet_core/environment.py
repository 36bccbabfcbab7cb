"""Environments: name -> computed value mappings seen by a Block.

An Environment is treated as immutable. It is composed by merging, later
mappings shadowing earlier ones:

    global bindings  <  preceding siblings' results  <  {"$before": siblings}

``$before`` holds the siblings-only map, so a block named ``x`` can still read
the ``x`` that was in scope before it.
"""

from types import MappingProxyType
from typing import Any, Dict, Mapping

Environment = Mapping[str, Any]

EMPTY_ENV: Environment = MappingProxyType({})

BEFORE_KEY = "$before"


def merge_env(*envs: Environment) -> Dict[str, Any]:
    """Merge environments left to right into a new dict."""
    merged: Dict[str, Any] = {}
    for env in envs:
        merged.update(env)
    return merged


def local_env(env: Environment, siblings_env: Environment) -> Dict[str, Any]:
    """Environment of an entry given its parent env and preceding siblings."""
    merged = merge_env(env, siblings_env)
    merged[BEFORE_KEY] = dict(siblings_env)
    return merged

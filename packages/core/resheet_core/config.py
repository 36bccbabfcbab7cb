"""Engine configuration.

EngineCFG collects the knobs of the history layer. Functions that need
configuration accept an optional ``config`` and fall back to DEFAULT_CONFIG.

Example:
    # Keep snapshots ten times longer before compacting them away
    config = EngineCFG(history_decay_ms=10)
    wrapper = update_history_inner(wrapper, action, env, from_json, config=config)
"""

from pydantic import BaseModel, ConfigDict, Field


class EngineCFG(BaseModel):
    """Configuration for the recomputation and persistence engine."""

    model_config = ConfigDict(frozen=True)

    history_decay_ms: float = Field(
        default=100,
        gt=0,
        description=(
            "Divisor of the compaction rule: entry i survives iff "
            "(time[i+1] - time[i]) / history_decay_ms > (len - i) ** 2"
        )
    )

    history_enabled: bool = Field(
        default=True,
        description="Whether document edits are recorded as history snapshots"
    )


DEFAULT_CONFIG = EngineCFG()

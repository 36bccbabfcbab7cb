"""Exception types shared across the engine.

Only loading can fail loudly: a persisted document whose JSON matches none of
the known revisions raises ValidationError. Everything else a Block does is
contained by SafeBlock (see blocks/safe.py) and reported as data.
"""

from typing import Any, List, Optional


class ResheetError(Exception):
    """Base class for errors raised by resheet_core."""
    pass


class ValidationError(ResheetError, ValueError):
    """Raised when persisted JSON matches no known revision of a type.

    Attributes:
        schema_name: Name of the revision chain that rejected the input
        input: The JSON value that could not be loaded
        failures: One message per revision that was tried, newest first
    """

    def __init__(self, schema_name: str, input: Any, failures: Optional[List[str]] = None):
        self.schema_name = schema_name
        self.input = input
        self.failures = list(failures or [])
        super().__init__(self._format())

    def _format(self) -> str:
        lines = [f"Could not deserialize {self.schema_name}: no revision matched"]
        for failure in self.failures:
            lines.extend("  " + line for line in failure.splitlines())
        return "\n".join(lines)

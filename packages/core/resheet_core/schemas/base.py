"""Base classes and type aliases for persisted JSON shapes.

Every persisted Block type describes each of its revisions as a pydantic
model. Validating incoming JSON against these models is the first, pure phase
of loading; the second phase (materializing live state, which needs dispatch
and an Environment) lives next to each Block.
"""

from typing import Annotated, Any, Dict

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr

# =============================================================================
# Base Model
# =============================================================================

class JSONShape(BaseModel):
    """Base class for all persisted JSON shapes.

    - Frozen: a validated shape is a value, it is never edited in place
    - Extra keys are ignored (the `t`/`v` tags of older files, UI-only fields)
    - Fields may be populated by their camelCase wire alias or by name
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump to the JSON wire format (camelCase aliases)."""
        return self.model_dump(by_alias=True, mode="python")


class StrictShape(JSONShape):
    """A JSON shape that rejects unknown keys.

    Used where the previous format was matched structurally (sheet lines), so
    that an older line shape does not silently validate as a newer one.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


# =============================================================================
# Type Aliases
# =============================================================================

EntryId = Annotated[
    StrictInt,
    Field(description="Id of an entry, unique among its siblings")
]

PageId = Annotated[
    StrictInt,
    Field(description="Id of a page, unique among its siblings (-1 for the template)")
]

EntryName = Annotated[
    StrictStr,
    Field(description="User label of an entry; empty means the default '$<id>'")
]

EpochMillis = Annotated[
    float,
    Field(ge=0, description="Milliseconds since the Unix epoch")
]

Flag = Annotated[
    StrictBool,
    Field(description="A JSON boolean")
]

Revision = Annotated[
    StrictInt,
    Field(ge=0, description="Revision number of a typed JSON shape")
]


# =============================================================================
# Tag Conventions
# =============================================================================
#
# Typed revisions carry two extra keys:
#   - "t": "<namespace>.<blocktype>", e.g. "resheet.sheet", "tables.note"
#   - "v": revision number within that namespace
#
# Namespaces:
#   - "tables"  - revision 0 of every type (files written before the rename)
#   - "resheet" - every later revision
#
# Untagged ("vPre") shapes predate both and are matched structurally.
#
# =============================================================================

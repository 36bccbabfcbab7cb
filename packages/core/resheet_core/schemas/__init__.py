"""Persisted JSON shapes and the revision chains that load them.

Each module describes the revisions of one Block type's JSON as pydantic
models. The loaders built on them live next to each Block.
"""

from .base import EntryId, EntryName, EpochMillis, Flag, JSONShape, PageId, Revision, StrictShape
from .versioned import Parser, ValidationError, add_revision, add_validator, identity_upgrade, typed

__all__ = [
    "JSONShape",
    "StrictShape",
    "EntryId",
    "EntryName",
    "PageId",
    "EpochMillis",
    "Flag",
    "Revision",
    "Parser",
    "ValidationError",
    "add_validator",
    "add_revision",
    "identity_upgrade",
    "typed",
]

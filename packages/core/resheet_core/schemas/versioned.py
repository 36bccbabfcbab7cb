"""Revision-chained JSON loading.

Each persisted type declares its revisions oldest first:

    v_pre = add_validator(SheetVPre, parse_v0)
    v0 = add_revision(v_pre, schema=SheetV0, parse=..., upgrade=...)
    v1 = add_revision(v0, schema=SheetV1, parse=..., upgrade=...)

Loading tries the newest schema first. If the JSON validates, that revision's
``parse`` runs. Otherwise the previous revision loads it (recursively, down
to the untagged ``vPre`` shape) and ``upgrade`` lifts the result forward.

Loading is two-phase: ``parse`` receives the validated pydantic shape and
returns a *materializer*, a function that still needs live context
(dispatch, env, inner block) to produce state. A Block chosen by evaluating
an expression cannot be loaded without evaluating that expression first, so
the context is supplied late by the caller:

    state = v1(json)(dispatch, env, inner_block)

Saving always writes the newest revision; use ``typed`` to tag it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import pydantic
from pydantic import BaseModel, TypeAdapter

from ..errors import ValidationError

logger = logging.getLogger(__name__)

Parsed = TypeVar("Parsed")
Before = TypeVar("Before")

Schema = Union[type, TypeAdapter]


# =============================================================================
# Tagging
# =============================================================================

def typed(tag: str, revision: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Tag a JSON object with its type and revision.

    Args:
        tag: Full type tag, e.g. "resheet.sheet"
        revision: Revision number
        fields: Payload fields

    Returns:
        New dict ``{"t": tag, "v": revision, **fields}``
    """
    return {"t": tag, "v": revision, **fields}


def _as_adapter(schema: Schema) -> TypeAdapter:
    if isinstance(schema, TypeAdapter):
        return schema
    return TypeAdapter(schema)


def _schema_name(schema: Schema) -> str:
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.__name__
    return repr(schema)


# =============================================================================
# Parsers
# =============================================================================

class Parser(ABC, Generic[Parsed]):
    """Base class for revision parsers: callable on raw JSON."""

    name: str

    @abstractmethod
    def validate(self, input: Any) -> Any:
        """Validate ``input`` against this revision's own schema only."""
        pass

    @abstractmethod
    def __call__(self, input: Any) -> Parsed:
        pass

    def matches(self, input: Any) -> bool:
        """True if ``input`` can be loaded by this revision or an older one."""
        try:
            self(input)
        except ValidationError:
            return False
        return True


class ValidatedParser(Parser[Parsed]):
    """The oldest revision of a chain: a schema and a parse function."""

    def __init__(self, schema: Schema, parse: Callable[[Any], Parsed], name: Optional[str] = None):
        self.schema = schema
        self.parse = parse
        self.name = name or _schema_name(schema)
        self._adapter = _as_adapter(schema)

    def validate(self, input: Any) -> Any:
        return self._adapter.validate_python(input)

    def __call__(self, input: Any) -> Parsed:
        try:
            shape = self.validate(input)
        except pydantic.ValidationError as e:
            raise ValidationError(self.name, input, [f"{self.name}: {e}"]) from e
        return self.parse(shape)

    def __repr__(self) -> str:
        return f"add_validator({self.name})"


class RevisionParser(Parser[Parsed], Generic[Parsed, Before]):
    """A revision layered on top of an older parser."""

    def __init__(
        self,
        before: Parser[Before],
        schema: Schema,
        parse: Callable[[Any], Parsed],
        upgrade: Callable[[Before], Parsed],
        name: Optional[str] = None,
    ):
        self.before = before
        self.schema = schema
        self.parse = parse
        self.upgrade = upgrade
        self.name = name or _schema_name(schema)
        self._adapter = _as_adapter(schema)

    def validate(self, input: Any) -> Any:
        return self._adapter.validate_python(input)

    def __call__(self, input: Any) -> Parsed:
        try:
            shape = self.validate(input)
        except pydantic.ValidationError as current_error:
            try:
                before = self.before(input)
            except ValidationError as before_error:
                raise ValidationError(
                    self.name,
                    input,
                    [f"{self.name}: {current_error}", *before_error.failures],
                ) from before_error
            logger.debug("Upgrading %s to %s", self.before.name, self.name)
            return self.upgrade(before)
        return self.parse(shape)

    def chain(self) -> List[Parser]:
        """All parsers of this chain, newest first."""
        parsers: List[Parser] = [self]
        before = self.before
        while isinstance(before, RevisionParser):
            parsers.append(before)
            before = before.before
        parsers.append(before)
        return parsers

    def __repr__(self) -> str:
        return f"add_revision({self.before!r}, {self.name})"


def add_validator(schema: Schema, parse: Callable[[Any], Parsed], name: Optional[str] = None) -> ValidatedParser[Parsed]:
    """Start a revision chain.

    Args:
        schema: pydantic model (or type / TypeAdapter) describing the shape
        parse: Function from the validated shape to the parsed value
        name: Name used in error messages (defaults to the model name)

    Returns:
        Parser that raises ValidationError when the input does not match
    """
    return ValidatedParser(schema, parse, name)


def add_revision(
    before: Parser[Before],
    *,
    schema: Schema,
    parse: Callable[[Any], Parsed],
    upgrade: Callable[[Before], Parsed],
    name: Optional[str] = None,
) -> RevisionParser[Parsed, Before]:
    """Add a newer revision on top of ``before``.

    Args:
        before: Parser of the previous revision
        schema: Shape of the new revision
        parse: Function from the validated new shape to the parsed value
        upgrade: Lifts a value parsed by ``before`` to the new revision

    Returns:
        Parser trying the new schema first, then ``before`` + ``upgrade``
    """
    return RevisionParser(before, schema, parse, upgrade, name)


def identity_upgrade(before: Any) -> Any:
    """Upgrade for revisions that only changed the tag."""
    return before

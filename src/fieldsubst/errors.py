"""Exceptions raised by field-subst."""

from typing import Any


class FieldSubstError(Exception):
    """Base class for all field-subst errors."""


class InvalidPatternError(FieldSubstError, ValueError):
    """A rule's regular expression does not compile."""

    def __init__(self, field_id: Any, pattern: str, reason: str) -> None:
        self.field_id = field_id
        self.pattern = pattern
        super().__init__(f"Invalid pattern for field {field_id!r}: {reason}")


class BuilderFinalizedError(FieldSubstError, RuntimeError):
    """A builder was used after build() was called."""

    def __init__(self) -> None:
        super().__init__("Already called build()")


class FieldNotFoundError(FieldSubstError, LookupError):
    """A field referenced by a rule has no value."""

    def __init__(self, field_id: Any) -> None:
        self.field_id = field_id
        super().__init__(f"No value for field {field_id!r}")


class SubstitutionError(FieldSubstError, ValueError):
    """A replacement template cannot be expanded against a match."""


class MalformedRuleSetError(FieldSubstError, ValueError):
    """Serialized rule set input is not a valid rule set."""

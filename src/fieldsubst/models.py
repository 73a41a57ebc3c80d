"""Data models for field-subst."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable


class BuilderState(str, Enum):
    """Lifecycle state of a rule builder."""

    UNBUILT = "unbuilt"
    BUILT = "built"


@dataclass(frozen=True)
class Rule:
    """One field's compiled pattern and replacement template."""

    field_id: Hashable
    pattern: Any  # re2._Regexp
    template: str

    @property
    def source(self) -> str:
        """Return the pattern source string."""
        return self.pattern.pattern


@dataclass
class FieldFailure:
    """A rule that contributed nothing because its substitution failed."""

    field_id: Any
    pattern: str
    template: str
    reason: str


@dataclass
class TransformResult:
    """Result from applying an engine."""

    text: str
    failures: list[FieldFailure] = field(default_factory=list)
    fields_applied: int = 0

    @property
    def ok(self) -> bool:
        """Return True if every rule contributed."""
        return len(self.failures) == 0

    @property
    def failure_count(self) -> int:
        """Return number of skipped rules."""
        return len(self.failures)


@dataclass(frozen=True)
class RuleRecord:
    """Flat serialized form of a rule set: three parallel sequences."""

    field_ids: tuple[Any, ...]
    patterns: tuple[str, ...]
    templates: tuple[str, ...]

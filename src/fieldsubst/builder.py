"""Builder for substitution engines."""

import logging
from typing import Hashable, Optional

import re2

from fieldsubst.engine import DEFAULT_MAX_VALUE_LENGTH, Engine
from fieldsubst.errors import BuilderFinalizedError, InvalidPatternError
from fieldsubst.models import BuilderState, Rule

logger = logging.getLogger(__name__)


class Builder:
    """
    Accumulates field rules and freezes them into an Engine.

    Every pattern is compiled when it is added, so an invalid regex fails
    here and never at apply time. A builder can be built only once and is
    not safe to share between threads.

    Example:
        engine = (
            Builder("exp_month", r"^(\\d\\d)$", "Exp: $1")
            .add_field("exp_year", r"^(\\d\\d\\d\\d)$", " / $1")
            .build()
        )
    """

    def __init__(self, field_id: Hashable, pattern: str, template: str) -> None:
        """
        Create a builder seeded with the first field rule.

        Args:
            field_id: Identifier of the field whose value is transformed
            pattern: RE2 regular expression, compiled without flags; its
                groups are referenced from the template. RE2 matches in
                linear time and rejects backreferences and lookaround.
            template: Replacement text using ``$1``, ``$2``, ... for groups

        Raises:
            InvalidPatternError: If pattern does not compile
        """
        self._rules: dict[Hashable, Rule] = {}
        self._state = BuilderState.UNBUILT
        self.add_field(field_id, pattern, template)

    @property
    def state(self) -> BuilderState:
        return self._state

    def add_field(self, field_id: Hashable, pattern: str, template: str) -> "Builder":
        """
        Add another field rule.

        Adding a field id twice replaces the earlier rule in its original
        position.

        Returns:
            This builder

        Raises:
            BuilderFinalizedError: If build() was already called
            InvalidPatternError: If pattern does not compile
        """
        self._check_unbuilt()
        if field_id is None:
            raise TypeError("field_id must not be None")
        if pattern is None:
            raise TypeError("pattern must not be None")
        if template is None:
            raise TypeError("template must not be None")

        try:
            compiled = re2.compile(pattern)
        except re2.error as e:
            raise InvalidPatternError(field_id, pattern, str(e)) from e

        if field_id in self._rules:
            logger.warning(f"Rule for field {field_id!r} already exists, overwriting")

        self._rules[field_id] = Rule(field_id=field_id, pattern=compiled, template=template)
        return self

    def build(self, max_value_length: Optional[int] = DEFAULT_MAX_VALUE_LENGTH) -> Engine:
        """
        Create the engine and finalize this builder.

        Args:
            max_value_length: Passed through to the Engine

        Raises:
            BuilderFinalizedError: If build() was already called
        """
        self._check_unbuilt()
        self._state = BuilderState.BUILT
        return Engine(self._rules.values(), max_value_length=max_value_length)

    def _check_unbuilt(self) -> None:
        if self._state is BuilderState.BUILT:
            raise BuilderFinalizedError()

    def __len__(self) -> int:
        return len(self._rules)

"""Core substitution engine."""

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Callable, Hashable, Iterable, Iterator, Optional, Union

from fieldsubst.errors import FieldNotFoundError, SubstitutionError
from fieldsubst.models import FieldFailure, Rule, TransformResult
from fieldsubst.template import substitute

logger = logging.getLogger(__name__)

# Longest field value a rule is applied to. Patterns are RE2, so matching time
# is already linear in the value length; this caps the size of each field.
DEFAULT_MAX_VALUE_LENGTH = 10_000

ValueLookup = Callable[[Any], Optional[str]]


def mapping_lookup(values: Mapping) -> ValueLookup:
    """
    Turn a mapping of field values into a value lookup.

    Keys are tried as-is first and then as strings, so rules whose ids were
    loaded as integers still resolve against string keys from JSON bodies.
    """

    def find(field_id: Any) -> Optional[str]:
        if field_id in values:
            return values[field_id]
        return values.get(str(field_id))

    return find


class Engine:
    """
    Immutable set of substitution rules applied together.

    Engines are created by ``Builder.build()`` and never change afterwards,
    so one engine can be applied from several threads at once.
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        max_value_length: Optional[int] = DEFAULT_MAX_VALUE_LENGTH,
    ) -> None:
        """
        Initialize engine with rules.

        Args:
            rules: Rules in output order
            max_value_length: Values longer than this are skipped as a
                per-field failure. None disables the limit.
        """
        self._rules: tuple[Rule, ...] = tuple(rules)
        self._index = MappingProxyType({rule.field_id: rule for rule in self._rules})
        self._max_value_length = max_value_length

    @property
    def rules(self) -> tuple[Rule, ...]:
        """Rules in output order."""
        return self._rules

    @property
    def field_ids(self) -> list[Hashable]:
        """Field identifiers in output order."""
        return [rule.field_id for rule in self._rules]

    @property
    def max_value_length(self) -> Optional[int]:
        return self._max_value_length

    def get_rule(self, field_id: Hashable) -> Optional[Rule]:
        """Get rule by field identifier."""
        return self._index.get(field_id)

    def apply(self, lookup: Union[ValueLookup, Mapping]) -> str:
        """
        Apply every rule and concatenate the results.

        Args:
            lookup: Callable resolving a field id to its value (None when
                absent), or a mapping of field values

        Returns:
            Concatenated substitution output in rule order

        Raises:
            FieldNotFoundError: If any field has no value. No partial output
                is returned in that case.
        """
        return self.apply_detailed(lookup).text

    def apply_detailed(self, lookup: Union[ValueLookup, Mapping]) -> TransformResult:
        """
        Apply every rule, reporting skipped fields.

        Rules whose substitution fails contribute nothing and are listed in
        ``TransformResult.failures``.

        Raises:
            FieldNotFoundError: If any field has no value
        """
        find = mapping_lookup(lookup) if isinstance(lookup, Mapping) else lookup

        logger.debug(f"Applying {len(self._rules)} field rules")

        parts: list[str] = []
        failures: list[FieldFailure] = []

        for rule in self._rules:
            value = find(rule.field_id)
            if value is None:
                logger.warning(f"No value for field {rule.field_id!r}")
                raise FieldNotFoundError(rule.field_id)

            try:
                parts.append(self._substitute(rule, value))
            except SubstitutionError as e:
                # The value is left out of the log on purpose
                logger.warning(
                    f"Cannot apply {rule.source} -> {rule.template} to field "
                    f"{rule.field_id!r}: {e}"
                )
                failures.append(
                    FieldFailure(
                        field_id=rule.field_id,
                        pattern=rule.source,
                        template=rule.template,
                        reason=str(e),
                    )
                )

        return TransformResult(
            text="".join(parts),
            failures=failures,
            fields_applied=len(parts),
        )

    def _substitute(self, rule: Rule, value: str) -> str:
        """Run one rule against its field value."""
        if self._max_value_length is not None and len(value) > self._max_value_length:
            raise SubstitutionError(
                f"Value length {len(value)} exceeds limit of {self._max_value_length}"
            )
        return substitute(rule.pattern, rule.template, value)

    def __len__(self) -> int:
        """Return number of rules."""
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._index

    def __repr__(self) -> str:
        """String representation."""
        fields = ", ".join(
            f"{rule.field_id!r}: {rule.source!r} -> {rule.template!r}" for rule in self._rules
        )
        return f"Engine(fields={{{fields}}})"

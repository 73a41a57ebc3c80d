"""
field-subst: A declarative multi-field pattern-substitution engine.

This package composes one output string from several field values, each
rewritten by its own regular expression and replacement template.
"""

__version__ = "0.1.0"

from fieldsubst.builder import Builder
from fieldsubst.engine import Engine, mapping_lookup
from fieldsubst.errors import (
    FieldSubstError,
    InvalidPatternError,
    BuilderFinalizedError,
    FieldNotFoundError,
    SubstitutionError,
    MalformedRuleSetError,
)
from fieldsubst.models import Rule, RuleRecord, TransformResult, FieldFailure
from fieldsubst.serialization import to_record, from_record, load_ruleset, dump_ruleset

__all__ = [
    "Builder",
    "Engine",
    "mapping_lookup",
    "FieldSubstError",
    "InvalidPatternError",
    "BuilderFinalizedError",
    "FieldNotFoundError",
    "SubstitutionError",
    "MalformedRuleSetError",
    "Rule",
    "RuleRecord",
    "TransformResult",
    "FieldFailure",
    "to_record",
    "from_record",
    "load_ruleset",
    "dump_ruleset",
]

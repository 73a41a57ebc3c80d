"""Flat record serialization of rule sets."""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

import jsonschema
import yaml

from fieldsubst.builder import Builder
from fieldsubst.engine import Engine
from fieldsubst.errors import MalformedRuleSetError
from fieldsubst.models import RuleRecord

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schemas" / "ruleset-schema.json"

_SUFFIX_FORMATS = {".json": "json", ".yml": "yaml", ".yaml": "yaml"}

_schema: Optional[dict[str, Any]] = None


def to_record(engine: Engine) -> RuleRecord:
    """Flatten an engine's rules into three parallel sequences."""
    return RuleRecord(
        field_ids=tuple(rule.field_id for rule in engine.rules),
        patterns=tuple(rule.source for rule in engine.rules),
        templates=tuple(rule.template for rule in engine.rules),
    )


def from_record(record: RuleRecord, **build_options: Any) -> Engine:
    """
    Rebuild an engine from a flat record.

    The rules always go through Builder, so patterns are compile-checked
    exactly as they are when an engine is built by hand.

    Args:
        record: Flat rule record
        **build_options: Passed to Builder.build()

    Returns:
        Engine with the record's rules in order

    Raises:
        MalformedRuleSetError: If the sequences differ in length or are empty
        InvalidPatternError: If a pattern does not compile
    """
    size = len(record.field_ids)
    if len(record.patterns) != size or len(record.templates) != size:
        raise MalformedRuleSetError(
            f"Mismatched rule set lengths: {size} ids, {len(record.patterns)} patterns, "
            f"{len(record.templates)} templates"
        )
    if size == 0:
        raise MalformedRuleSetError("Rule set must contain at least one rule")

    builder = Builder(record.field_ids[0], record.patterns[0], record.templates[0])
    for i in range(1, size):
        builder.add_field(record.field_ids[i], record.patterns[i], record.templates[i])
    return builder.build(**build_options)


def record_to_dict(record: RuleRecord) -> dict[str, list[Any]]:
    """Return a JSON/YAML-serializable mapping."""
    return {
        "ids": list(record.field_ids),
        "patterns": list(record.patterns),
        "templates": list(record.templates),
    }


def record_from_dict(data: Any) -> RuleRecord:
    """
    Parse a mapping into a flat record.

    Accepts the flat form ``{"ids": [...], "patterns": [...], "templates": [...]}``
    and the list form ``{"rules": [{"field": ..., "pattern": ..., "template": ...}]}``.

    Raises:
        MalformedRuleSetError: If data does not match the rule set schema
    """
    _validate_schema(data)

    if "rules" in data:
        rules = data["rules"]
        return RuleRecord(
            field_ids=tuple(r["field"] for r in rules),
            patterns=tuple(r["pattern"] for r in rules),
            templates=tuple(r["template"] for r in rules),
        )

    return RuleRecord(
        field_ids=tuple(data["ids"]),
        patterns=tuple(data["patterns"]),
        templates=tuple(data["templates"]),
    )


def dumps(engine: Engine, fmt: str = "yaml") -> str:
    """
    Serialize an engine's rules.

    Args:
        engine: Engine to serialize
        fmt: "yaml" or "json"
    """
    data = record_to_dict(to_record(engine))
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported format: {fmt}")


def loads(text: str, **build_options: Any) -> Engine:
    """
    Parse serialized rules (YAML or JSON) into an engine.

    Raises:
        MalformedRuleSetError: If text is not a valid rule set
        InvalidPatternError: If a pattern does not compile
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MalformedRuleSetError(f"Cannot parse rule set: {e}") from e

    return from_record(record_from_dict(data), **build_options)


def load_ruleset(path: Union[str, Path], **build_options: Any) -> Engine:
    """
    Load a rule file into an engine.

    Raises:
        FileNotFoundError: If the file does not exist
        MalformedRuleSetError: If the file is not a valid rule set
        InvalidPatternError: If a pattern does not compile
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Rule file not found: {path}")

    logger.info(f"Loading rules from {path}")
    with open(path, "r", encoding="utf-8") as f:
        engine = loads(f.read(), **build_options)

    logger.info(f"Loaded {len(engine)} rules from {path}")
    return engine


def dump_ruleset(engine: Engine, path: Union[str, Path], fmt: Optional[str] = None) -> None:
    """Write an engine's rules to a file, inferring the format from its suffix."""
    path = Path(path)
    if fmt is None:
        fmt = _SUFFIX_FORMATS.get(path.suffix.lower(), "yaml")

    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(engine, fmt=fmt))


def _load_schema() -> dict[str, Any]:
    """Load the packaged rule set schema once."""
    global _schema
    if _schema is None:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            _schema = json.load(f)
    return _schema


def _validate_schema(data: Any) -> None:
    """Validate rule set data against JSON schema."""
    try:
        jsonschema.validate(data, _load_schema())
    except jsonschema.ValidationError as e:
        raise MalformedRuleSetError(f"Rule set schema validation failed: {e.message}") from e

"""Command-line interface for field-subst."""

import json
import os
import sys
import logging
from pathlib import Path
from typing import Any, Optional

import click
import yaml

from fieldsubst import __version__
from fieldsubst.engine import Engine
from fieldsubst.errors import FieldNotFoundError, FieldSubstError
from fieldsubst.serialization import dumps, load_ruleset


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load_engine(rules: Path) -> Engine:
    """Load a rule file, exiting with status 2 if it is invalid."""
    try:
        return load_ruleset(rules)
    except FieldSubstError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


def _parse_values(values: tuple[str, ...], values_file: Optional[Path]) -> dict[str, str]:
    """Collect field values from --values file and --value options."""
    collected: dict[str, str] = {}

    if values_file:
        # BaseLoader keeps every scalar as text, so 07 stays "07"
        with open(values_file, "r", encoding="utf-8") as f:
            data = yaml.load(f, Loader=yaml.BaseLoader) or {}
        if not isinstance(data, dict):
            raise click.BadParameter("values file must contain a mapping", param_hint="--values")
        for field_id, value in data.items():
            if not isinstance(value, str):
                raise click.BadParameter(
                    f"value for '{field_id}' must be a scalar", param_hint="--values"
                )
            collected[field_id] = value

    for item in values:
        field_id, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected ID=VALUE, got '{item}'", param_hint="--value")
        collected[field_id] = value

    return collected


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """field-subst: Compose text from regex-substituted field values."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@main.command()
@click.option(
    "--rules",
    "-r",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Rule file (YAML or JSON)",
)
@click.option(
    "--value",
    "values",
    multiple=True,
    help="Field value as ID=VALUE (can be used multiple times)",
)
@click.option(
    "--values",
    "values_file",
    type=click.Path(exists=True, path_type=Path),
    help="YAML or JSON file mapping field ids to values",
)
@click.option(
    "--output",
    "-o",
    type=click.Choice(["json", "text"]),
    default="text",
    help="Output format",
)
@click.pass_context
def apply(
    ctx: click.Context,
    rules: Path,
    values: tuple[str, ...],
    values_file: Optional[Path],
    output: str,
) -> None:
    """Apply rules to field values and print the result."""
    engine = _load_engine(rules)
    field_values = _parse_values(values, values_file)

    try:
        result = engine.apply_detailed(field_values)
    except FieldNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output == "json":
        click.echo(
            json.dumps(
                {
                    "text": result.text,
                    "fields_applied": result.fields_applied,
                    "failures": [
                        {
                            "field": f.field_id,
                            "pattern": f.pattern,
                            "template": f.template,
                            "reason": f.reason,
                        }
                        for f in result.failures
                    ],
                },
                indent=2,
                ensure_ascii=False,
            )
        )
    else:
        click.echo(result.text)
        for failure in result.failures:
            click.echo(f"Skipped field {failure.field_id}: {failure.reason}", err=True)


@main.command()
@click.option(
    "--rules",
    "-r",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Rule file to check",
)
def check(rules: Path) -> None:
    """Check that a rule file is valid."""
    engine = _load_engine(rules)
    click.echo(f"✓ {rules}: {len(engine)} rules")


@main.command()
@click.option(
    "--rules",
    "-r",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Rule file to list",
)
def show(rules: Path) -> None:
    """List rules in application order."""
    engine = _load_engine(rules)

    click.echo(f"Loaded {len(engine)} rules\n")
    for rule in engine.rules:
        click.echo(f"  {str(rule.field_id):<20} {rule.source:<30} {rule.template}")


@main.command()
@click.option(
    "--rules",
    "-r",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Rule file to convert",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format",
)
@click.option(
    "--out",
    "output_file",
    type=click.Path(path_type=Path),
    help="Output file (prints to stdout if not specified)",
)
def convert(rules: Path, fmt: str, output_file: Optional[Path]) -> None:
    """Re-serialize a rule file as flat YAML or JSON."""
    engine = _load_engine(rules)
    text = dumps(engine, fmt=fmt)

    if output_file:
        output_file.write_text(text, encoding="utf-8")
        click.echo(f"Wrote {len(engine)} rules to {output_file}")
    else:
        click.echo(text, nl=False)


@main.command()
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to listen on [default: 8080]",
)
@click.option(
    "--host",
    "-h",
    default=None,
    help="Host to bind to [default: 0.0.0.0]",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file",
)
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload (development only)",
)
@click.pass_context
def serve(
    ctx: click.Context,
    port: Optional[int],
    host: Optional[str],
    config: Optional[Path],
    reload: bool,
) -> None:
    """Start HTTP server."""
    try:
        import uvicorn
        from fieldsubst.server import CONFIG_ENV
    except ImportError:
        click.echo(
            "Error: Server dependencies not installed. Install with: pip install field-subst[server]",
            err=True,
        )
        sys.exit(1)

    # Load config
    config_data: dict[str, Any] = {}
    if config:
        with open(config, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

    # CLI options override the config file
    server_config = config_data.get("server", {})
    port = port or server_config.get("port", 8080)
    host = host or server_config.get("host", "0.0.0.0")

    click.echo(f"Starting server on {host}:{port}")

    # The app is built by an importable factory so uvicorn can reload it
    if config:
        os.environ[CONFIG_ENV] = str(config.resolve())

    uvicorn.run(
        "fieldsubst.server:create_app_from_env",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info" if ctx.obj.get("verbose") else "warning",
    )


if __name__ == "__main__":
    main()

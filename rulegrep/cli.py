"""CLI entrypoint for rulegrep."""

import logging
import sys
from pathlib import Path

import click

from . import __version__
from .config import ScanConfig
from .rules.schema import Severity

_SEVERITY_CHOICES = [s.value for s in Severity]


@click.group()
@click.version_option(__version__, prog_name="rulegrep")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (defaults to auto-detected .rulegrep.toml or [tool.rulegrep] in pyproject.toml)",
)
@click.option("--verbose", "-V", is_flag=True, help="Log pipeline progress to stderr")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """rulegrep - Rule-driven structural code search.

    Rules group ast-grep patterns with regex constraints on their captures.
    """
    ctx.ensure_object(dict)

    if verbose:
        from rich.console import Console
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )

    try:
        ctx.obj["config"] = ScanConfig.from_file(config_path)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Cannot read config: {e}")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--rules",
    "-r",
    "rule_paths",
    multiple=True,
    type=click.Path(exists=True, path_type=Path),
    help="Rule file or directory (repeatable; overrides config)",
)
@click.option("--tag", "tags", multiple=True, help="Only run rules with this tag (repeatable)")
@click.option("--workers", "-j", type=int, default=None, help="Checkers evaluated concurrently")
@click.option("--best-effort", is_flag=True, default=None, help="Report failed checkers and keep going")
@click.option("--timeout", type=float, default=None, help="Cancel the scan after this many seconds")
@click.option("--ignore-rule-errors", is_flag=True, default=None, help="Skip rule files that fail to load")
@click.option("--language", type=str, default=None, help="ast-grep language (default: inferred from file suffix)")
@click.option(
    "--fail-on",
    type=click.Choice(_SEVERITY_CHOICES),
    default=None,
    help="Exit with error if a match of this severity or higher is found",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def scan(
    ctx: click.Context,
    files: tuple[Path, ...],
    rule_paths: tuple[Path, ...],
    tags: tuple[str, ...],
    workers: int | None,
    best_effort: bool | None,
    timeout: float | None,
    ignore_rule_errors: bool | None,
    language: str | None,
    fail_on: str | None,
    output_json: bool,
) -> None:
    """Scan FILES with the loaded rules.

    Only the files given are scanned; directories are not walked.
    """
    from .commands.scan import run_scan

    config: ScanConfig = ctx.obj["config"]
    if rule_paths:
        config.rule_paths = list(rule_paths)
    if tags:
        config.tags = set(tags)
    if workers is not None:
        if workers < 1:
            raise click.BadParameter("must be a positive integer", param_hint="--workers / -j")
        config.workers = workers
    if best_effort:
        config.best_effort = True
    if timeout is not None:
        config.timeout = timeout
    if ignore_rule_errors:
        config.ignore_rule_errors = True
    if language:
        config.language = language
    if fail_on:
        config.fail_on = Severity.parse(fail_on)
    if output_json:
        config.output_format = "json"

    exit_code = run_scan(list(files), config)
    sys.exit(exit_code)


@cli.group()
def rules() -> None:
    """Inspect and validate rule files."""


def _resolve_rule_paths(ctx: click.Context, rule_paths: tuple[Path, ...]) -> list[Path]:
    if rule_paths:
        return list(rule_paths)
    configured = ctx.obj["config"].rule_paths
    if not configured:
        raise click.UsageError("No rules given. Pass --rules or set [rules] paths in .rulegrep.toml")
    return list(configured)


@rules.command("list")
@click.option("--rules", "-r", "rule_paths", multiple=True, type=click.Path(exists=True, path_type=Path))
@click.option("--json", "output_json", is_flag=True, help="Output rules as JSON")
@click.pass_context
def rules_list(ctx: click.Context, rule_paths: tuple[Path, ...], output_json: bool) -> None:
    """List loaded rules."""
    from .commands.rules import run_rules_list

    sys.exit(run_rules_list(_resolve_rule_paths(ctx, rule_paths), output_json))


@rules.command("check")
@click.option("--rules", "-r", "rule_paths", multiple=True, type=click.Path(exists=True, path_type=Path))
@click.pass_context
def rules_check(ctx: click.Context, rule_paths: tuple[Path, ...]) -> None:
    """Validate rule files (constraints compile, checks are well formed)."""
    from .commands.rules import run_rules_check

    sys.exit(run_rules_check(_resolve_rule_paths(ctx, rule_paths)))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()

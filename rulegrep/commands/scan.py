"""Scan command implementation."""

import json
from collections import defaultdict
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import ScanConfig
from ..errors import CheckerFailed, PipelineCancelled, RuleError
from ..matcher import AstGrepMatcher, StructuralMatcher
from ..pipeline import CancelToken, MatchPipeline, ValidatedMatch
from ..report import error_to_dict, match_to_dict
from ..rules.load import load_rulesets
from ..rules.schema import RuleSet, Severity


def run_scan(
    files: list[Path],
    config: ScanConfig,
    matcher: StructuralMatcher | None = None,
) -> int:
    """Run every loaded rule against the given files.

    Args:
        files: Corpus files, scanned in the order given
        config: Scan settings (rule paths, tags, workers, ...)
        matcher: Structural matcher (defaults to ast-grep)

    Returns:
        Exit code (0 = clean, 1 = checker failure or --fail-on threshold hit, 2 = bad rules)
    """
    console = Console(stderr=True)

    if not config.rule_paths:
        console.print("No rules given. Pass --rules or set \\[rules] paths in .rulegrep.toml", style="bold red")
        return 2

    try:
        ruleset = load_rulesets(config.rule_paths, ignore_errors=config.ignore_rule_errors)
    except RuleError as e:
        console.print(f"✗ {escape(str(e))}", style="bold red")
        return 2

    ruleset = ruleset.with_tags(config.tags)
    if not len(ruleset):
        console.print("No rules selected.", style="yellow")

    console.print(f"Scanning {len(files)} file(s) with {len(ruleset)} rule(s)...", style="dim")

    pipeline = MatchPipeline(
        ruleset,
        matcher or AstGrepMatcher(language=config.language),
        workers=config.workers,
        best_effort=config.best_effort,
        cancel=CancelToken(timeout=config.timeout),
    )

    matches: list[ValidatedMatch] = []
    failure: CheckerFailed | None = None
    try:
        for m in pipeline.run(files):
            matches.append(m)
    except CheckerFailed as e:
        failure = e
    except PipelineCancelled as e:
        console.print(f"✗ Scan cancelled: {escape(str(e))}", style="bold red")
        return 1

    errors = list(pipeline.errors)
    if failure is not None:
        errors.append(failure)

    if config.output_format == "json":
        _output_json(matches, errors, ruleset)
    else:
        _print_human_output(console, matches, errors)

    if errors:
        return 1
    if config.fail_on is not None and any(m.severity.rank >= config.fail_on.rank for m in matches):
        return 1
    return 0


def _output_json(matches: list[ValidatedMatch], errors: list[CheckerFailed], ruleset: RuleSet) -> None:
    # rule ids may repeat; rule_index is the position in the scanned set
    rules = ruleset.rules
    output = {
        "matches": [match_to_dict(m, rules[m.rule_index]) for m in matches],
        "errors": [error_to_dict(e) for e in errors],
        "summary": {
            "rules": len(ruleset),
            "matches": len(matches),
            "errors": len(errors),
        },
    }
    print(json.dumps(output, indent=2, default=str))


_SEVERITY_STYLE = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
    Severity.NONE: "dim",
}


def _print_human_output(console: Console, matches: list[ValidatedMatch], errors: list[CheckerFailed]) -> None:
    by_rule: dict[str, list[ValidatedMatch]] = defaultdict(list)
    for m in matches:
        by_rule[m.rule_name].append(m)

    # insertion order is match order
    for rule_name, rule_matches in by_rule.items():
        severity = rule_matches[0].severity
        console.print()
        console.print(f"Rule: {escape(rule_name)} \\[{severity.value}]", style=_SEVERITY_STYLE[severity])
        if rule_matches[0].tags:
            console.print(escape(f"  tags: {', '.join(sorted(rule_matches[0].tags))}"), style="dim")

        table = Table(show_header=True, header_style="bold")
        table.add_column("Location")
        table.add_column("Checker")
        table.add_column("Bindings")
        for m in rule_matches:
            bindings = ", ".join(f"{k}={v}" for k, v in m.bindings.items())
            table.add_row(escape(str(m.location)), escape(m.checker_name), escape(bindings))
        console.print(table)

    for e in errors:
        console.print(f"✗ {escape(str(e))}", style="bold red")

    console.print()
    if matches:
        console.print(f"{len(matches)} match(es) in {len(by_rule)} rule(s)", style="bold")
    else:
        console.print("✓ No matches", style="bold green")

"""Rule listing and validation commands."""

import json
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..errors import RuleError
from ..report import rule_to_dict
from ..rules.load import RULE_SUFFIXES, load_rule_file, load_rulesets


def run_rules_list(rule_paths: list[Path], output_json: bool = False) -> int:
    console = Console(stderr=True)

    try:
        ruleset = load_rulesets(rule_paths)
    except RuleError as e:
        console.print(f"✗ {escape(str(e))}", style="bold red")
        return 2

    if output_json:
        print(json.dumps([rule_to_dict(rule, source) for source, rule in ruleset.entries], indent=2))
        return 0

    table = Table(show_header=True, header_style="bold")
    table.add_column("Rule")
    table.add_column("Severity")
    table.add_column("Tags")
    table.add_column("Checks", justify="right")
    for rule in ruleset:
        table.add_row(escape(rule.id), rule.severity.value, escape(", ".join(sorted(rule.tags))), str(len(rule.checkers)))
    console.print(table)
    return 0


def run_rules_check(rule_paths: list[Path]) -> int:
    """Validate every rule file and report each failure, not just the first."""
    console = Console(stderr=True)

    files: list[Path] = []
    for p in rule_paths:
        if p.is_dir():
            files.extend(sorted(f for f in p.rglob("*") if f.is_file() and f.suffix.lower() in RULE_SUFFIXES))
        else:
            files.append(p)

    failures = 0
    for f in files:
        try:
            rule = load_rule_file(f)
        except RuleError as e:
            failures += 1
            console.print(f"✗ {escape(str(e))}", style="bold red")
            continue
        console.print(f"✓ {escape(str(f))} ({escape(rule.id)}, {len(rule.checkers)} check(s))", style="green")

    console.print()
    if failures:
        console.print(f"{failures} of {len(files)} rule file(s) failed to load", style="bold red")
        return 1
    console.print(f"{len(files)} rule file(s) OK", style="bold green")
    return 0

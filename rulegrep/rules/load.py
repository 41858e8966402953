from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..errors import RuleError
from .schema import DEFAULT_CHECKER_NAME, Checker, Constraint, Rule, RuleSet, Severity

logger = logging.getLogger(__name__)

RULE_SUFFIXES = {".yml", ".yaml", ".toml"}

_CHECKS_KEYS = ("check patterns", "check-patterns", "check pattern", "check-pattern")
_REGEX_KEYS = ("regexes", "regex")


def _one_or_many(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _parse_tags(value: Any) -> frozenset[str]:
    return frozenset(str(t).strip() for t in _one_or_many(value) if t is not None and str(t).strip())


def _parse_checker(raw: Any) -> Checker:
    if not isinstance(raw, dict):
        raise RuleError("check pattern must be a mapping")

    name = raw.get("name", DEFAULT_CHECKER_NAME)
    name = str(name) if name is not None else ""

    pattern = raw.get("pattern")
    if not isinstance(pattern, str):
        raise RuleError(f"check {name!r} has no pattern")

    regexes: list[Any] = []
    for key in _REGEX_KEYS:
        if key in raw:
            regexes.extend(_one_or_many(raw[key]))
    constraints = tuple(Constraint.parse(str(r)) for r in regexes)

    return Checker(
        name=name,
        pattern=pattern,
        constraints=constraints,
        language=_optional_str(raw.get("language")),
        unique=bool(raw.get("unique", False)),
    )


def parse_rule(data: Any) -> Rule:
    """Build a validated Rule from a decoded rule document."""
    if not isinstance(data, dict):
        raise RuleError("rule document must be a mapping")

    rule_id = str(data.get("id", "") or "").strip()
    if not rule_id:
        raise RuleError("rule has no identifier")
    name = _optional_str(data.get("name")) or rule_id

    checks_raw = None
    for key in _CHECKS_KEYS:
        if key in data:
            checks_raw = data[key]
            break
    checkers = tuple(_parse_checker(c) for c in _one_or_many(checks_raw))

    return Rule(
        name=name,
        id=rule_id,
        checkers=checkers,
        tags=_parse_tags(data.get("tags")),
        severity=Severity.parse(data.get("severity")),
        description=_optional_str(data.get("description")),
        author=_optional_str(data.get("author")),
    )


def load_rule_text(text: str, fmt: str = "yaml") -> Rule:
    """Parse a single rule from YAML (default) or TOML text."""
    if fmt == "toml":
        import tomllib

        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise RuleError(f"cannot parse rule: {e}") from e
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise RuleError(f"cannot parse rule: {e}") from e
    return parse_rule(data)


def load_rule_file(path: Path) -> Rule:
    fmt = "toml" if path.suffix.lower() == ".toml" else "yaml"
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RuleError(str(e), path=path) from e

    try:
        return load_rule_text(text, fmt=fmt)
    except RuleError as e:
        e.with_path(path)
        raise


def load_ruleset(path: Path, *, ignore_errors: bool = False) -> RuleSet:
    """
    Load rules from a single file or a directory tree.

    Directory entries are visited in sorted path order so the resulting rule
    order (and therefore match order) does not depend on the filesystem.
    A bad file rejects the whole set unless `ignore_errors` is set, in which
    case it is skipped with a warning.
    """
    if path.is_file():
        return RuleSet(entries=((str(path), load_rule_file(path)),))

    if not path.is_dir():
        raise RuleError("no such rule file or directory", path=path)

    entries: list[tuple[str, Rule]] = []
    for file in sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in RULE_SUFFIXES):
        try:
            rule = load_rule_file(file)
        except RuleError as e:
            if not ignore_errors:
                raise
            logger.warning(f"Skipping rule file: {e}")
            continue
        entries.append((str(file), rule))

    logger.debug(f"Loaded {len(entries)} rules from {path}")
    return RuleSet(entries=tuple(entries))


def load_rulesets(paths: list[Path], *, ignore_errors: bool = False) -> RuleSet:
    entries: list[tuple[str, Rule]] = []
    for p in paths:
        entries.extend(load_ruleset(p, ignore_errors=ignore_errors).entries)
    return RuleSet(entries=tuple(entries))

"""Serialisable report records for validated matches."""

from __future__ import annotations

from typing import Any

from .errors import CheckerFailed
from .pipeline import ValidatedMatch
from .rules.schema import Rule


def _location_to_dict(location: Any) -> Any:
    if location is None:
        return None
    to_dict = getattr(location, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return str(location)


def match_to_dict(match: ValidatedMatch, rule: Rule | None = None) -> dict[str, Any]:
    """Convert a ValidatedMatch to a JSON-serialisable dict.

    Empty descriptions and tag sets are omitted. Tags are sorted so reports
    diff cleanly between runs.
    """
    data: dict[str, Any] = {
        "rule": match.rule_name,
        "rule_id": match.rule_id,
        "checker": match.checker_name,
    }
    if rule is not None and rule.description:
        data["description"] = rule.description
    if match.tags:
        data["tags"] = sorted(match.tags)
    data["severity"] = match.severity.value
    data["bindings"] = dict(match.bindings)
    data["location"] = _location_to_dict(match.location)
    if match.raw_match.text is not None:
        data["match"] = match.raw_match.text
    return data


def error_to_dict(error: CheckerFailed) -> dict[str, Any]:
    return {
        "rule": error.rule_name,
        "checker": error.checker_name,
        "error_type": type(error.cause).__name__,
        "message": str(error.cause),
    }


def rule_to_dict(rule: Rule, source: str | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": rule.id,
        "name": rule.name,
        "severity": rule.severity.value,
        "tags": sorted(rule.tags),
        "checks": [
            {
                "name": c.name,
                "pattern": c.pattern,
                "constraints": [str(k) for k in c.constraints],
                "language": c.language,
                "unique": c.unique,
            }
            for c in rule.checkers
        ],
    }
    if rule.description:
        data["description"] = rule.description
    if rule.author:
        data["author"] = rule.author
    if source is not None:
        data["source"] = source
    return data

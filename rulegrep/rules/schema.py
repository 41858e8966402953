from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Iterator

from ..errors import InvalidConstraint, RuleError

if TYPE_CHECKING:
    from ..matcher import RawMatch
    from .predicates import PredicateEvaluator


DEFAULT_CHECKER_NAME = "default"


class Severity(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: object) -> "Severity":
        if isinstance(value, Severity):
            return value
        if value is None:
            return cls.NONE
        text = str(value).strip().lower()
        if not text:
            return cls.NONE
        try:
            return cls(text)
        except ValueError:
            raise RuleError(f"unknown severity {value!r}") from None


_SEVERITY_ORDER = [Severity.NONE, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


@dataclass(frozen=True)
class Constraint:
    """A capture variable that must (or, when negative, must not) match a regex.

    The regex is compiled on construction so a bad expression is reported
    while the rule is being loaded, not while the corpus is being scanned.
    """

    variable: str
    pattern: str
    negative: bool = False

    def __post_init__(self) -> None:
        variable = self.variable.strip().lstrip("$")
        if not variable:
            raise RuleError(f"constraint on {self.pattern!r} has no variable")
        object.__setattr__(self, "variable", variable)
        try:
            re.compile(self.pattern)
        except re.error as e:
            raise InvalidConstraint(variable, self.pattern, str(e)) from e

    @classmethod
    def parse(cls, raw: str) -> "Constraint":
        """Parse `var=regex` or `var!=regex` (the variable may carry a leading `$`)."""
        var, sep, regex = str(raw).partition("=")
        if not sep:
            raise RuleError(f"`{raw}` is not in the format `var=regex`")

        var = var.strip()
        negative = var.endswith("!")
        if negative:
            var = var[:-1]
        return cls(variable=var, pattern=regex.strip(), negative=negative)

    def __str__(self) -> str:
        op = "!=" if self.negative else "="
        return f"{self.variable}{op}{self.pattern}"


@dataclass(frozen=True)
class Checker:
    """One structural query plus the constraints its captures must satisfy."""

    pattern: str
    name: str = DEFAULT_CHECKER_NAME
    constraints: tuple[Constraint, ...] = ()
    language: str | None = None
    unique: bool = False

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise RuleError("check has no name")
        if not self.pattern or not self.pattern.strip():
            raise RuleError(f"check {self.name!r} has no pattern")
        object.__setattr__(self, "constraints", tuple(self.constraints))

    @property
    def constraint(self) -> Constraint | None:
        return self.constraints[0] if self.constraints else None

    def evaluate(self, raw_match: "RawMatch", evaluator: "PredicateEvaluator | None" = None) -> bool:
        """Return True if the raw match passes this checker's validation."""
        if self.constraints:
            if evaluator is None:
                from .predicates import PredicateEvaluator

                evaluator = PredicateEvaluator()
            if not evaluator.evaluate_all(self.constraints, raw_match.bindings):
                return False

        if self.unique:
            values = list(raw_match.bindings.values())
            if len(set(values)) != len(values):
                return False

        return True


@dataclass(frozen=True)
class Rule:
    name: str
    checkers: tuple[Checker, ...]
    id: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)
    severity: Severity = Severity.NONE
    description: str | None = None
    author: str | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise RuleError("rule has no name")
        checkers = tuple(self.checkers)
        if not checkers:
            raise RuleError(f"rule {self.name!r} has no checks")

        seen: set[str] = set()
        for checker in checkers:
            if checker.name in seen:
                raise RuleError(f"rule {self.name!r} has multiple checks named {checker.name!r}")
            seen.add(checker.name)

        object.__setattr__(self, "checkers", checkers)
        object.__setattr__(self, "tags", frozenset(self.tags))
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        if not self.id:
            object.__setattr__(self, "id", self.name)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass(frozen=True)
class RuleSet:
    """Validated rules in load order, each keyed by where it came from."""

    entries: tuple[tuple[str, Rule], ...] = ()

    @classmethod
    def of(cls, rules: Iterable[Rule], source: str = "default") -> "RuleSet":
        return cls(entries=tuple((source, r) for r in rules))

    @property
    def rules(self) -> list[Rule]:
        return [r for _, r in self.entries]

    def with_tags(self, tags: Iterable[str]) -> "RuleSet":
        """Keep only rules carrying at least one of `tags` (no tags keeps everything)."""
        wanted = {t for t in tags if t}
        if not wanted:
            return self
        return RuleSet(entries=tuple((s, r) for s, r in self.entries if r.tags & wanted))

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.entries)

"""Exception types raised while loading rules and running the match pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


class RuleError(ValueError):
    """A rule document is malformed."""

    def __init__(self, message: str, *, path: Path | None = None):
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.path is not None:
            return f"cannot parse rule file {self.path}: {msg}"
        return msg

    def with_path(self, path: Path) -> "RuleError":
        if self.path is None:
            self.path = path
        return self


class InvalidConstraint(RuleError):
    """A constraint regex does not compile."""

    def __init__(self, variable: str, pattern: str, reason: str, *, path: Path | None = None):
        self.variable = variable
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"invalid regex for `{variable}`: {pattern!r} ({reason})", path=path)


class MissingBinding(RuntimeError):
    """A constraint names a capture variable the raw match did not bind."""

    def __init__(self, variable: str, available: Iterable[str] = ()):
        self.variable = variable
        self.available = tuple(sorted(available))
        bound = ", ".join(self.available) or "none"
        super().__init__(f"constraint variable `{variable}` is not bound by the pattern (bound: {bound})")


class CheckerFailed(RuntimeError):
    """A checker could not complete: the matcher failed or a binding was missing."""

    def __init__(self, rule_name: str, checker_name: str, cause: BaseException):
        self.rule_name = rule_name
        self.checker_name = checker_name
        self.cause = cause
        super().__init__(f"checker {checker_name!r} of rule {rule_name!r} failed: {cause}")


class PipelineCancelled(RuntimeError):
    """The run was cancelled or its deadline passed."""

from __future__ import annotations

import re
import threading
from typing import Iterable, Mapping

from ..errors import MissingBinding
from .schema import Constraint


class RegexCache:
    """Compiled regexes keyed by pattern source.

    Lookups do not take the lock. Compilation does, so each pattern is
    compiled at most once even when many workers ask for it together.
    """

    def __init__(self) -> None:
        self._compiled: dict[str, re.Pattern[str]] = {}
        self._lock = threading.Lock()

    def get(self, pattern: str) -> re.Pattern[str]:
        compiled = self._compiled.get(pattern)
        if compiled is not None:
            return compiled

        with self._lock:
            compiled = self._compiled.get(pattern)
            if compiled is None:
                compiled = re.compile(pattern)
                self._compiled[pattern] = compiled
            return compiled

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._compiled

    def __len__(self) -> int:
        return len(self._compiled)


class PredicateEvaluator:
    """Decide whether captured bindings satisfy a checker's constraints."""

    def __init__(self, cache: RegexCache | None = None):
        self.cache = cache if cache is not None else RegexCache()

    def evaluate(self, constraint: Constraint, bindings: Mapping[str, str]) -> bool:
        if constraint.variable not in bindings:
            raise MissingBinding(constraint.variable, bindings.keys())

        regex = self.cache.get(constraint.pattern)
        found = regex.search(bindings[constraint.variable]) is not None
        return not found if constraint.negative else found

    def evaluate_all(self, constraints: Iterable[Constraint], bindings: Mapping[str, str]) -> bool:
        constraints = list(constraints)
        for c in constraints:
            if c.variable not in bindings:
                raise MissingBinding(c.variable, bindings.keys())
        return all(self.evaluate(c, bindings) for c in constraints)

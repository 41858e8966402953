"""
Match pipeline: rules -> checkers -> structural matcher -> constraints -> results.

Ordering contract: matches come out ordered by (rule index, checker index,
matcher-yield index). Running checkers on a worker pool does not change that
order, nor the point at which a fail-fast error surfaces.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Iterable, Iterator, Mapping

from .errors import CheckerFailed, MissingBinding, PipelineCancelled
from .matcher import RawMatch, StructuralMatcher
from .rules.predicates import PredicateEvaluator, RegexCache
from .rules.schema import Checker, Rule, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedMatch:
    """A raw match that passed its checker, tagged with rule and checker identity."""

    rule_name: str
    rule_id: str
    checker_name: str
    tags: frozenset[str]
    severity: Severity
    raw_match: RawMatch
    rule_index: int = 0
    checker_index: int = 0
    match_index: int = 0

    @property
    def bindings(self) -> Mapping[str, str]:
        return self.raw_match.bindings

    @property
    def location(self) -> Any:
        return self.raw_match.location

    @property
    def order_key(self) -> tuple[int, int, int]:
        return (self.rule_index, self.checker_index, self.match_index)


@dataclass
class RunResult:
    matches: list[ValidatedMatch] = field(default_factory=list)
    errors: list[CheckerFailed] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class CancelToken:
    """External abort signal, optionally with a deadline.

    The pipeline polls it before each checker and between raw matches.
    """

    def __init__(self, timeout: float | None = None, deadline: float | None = None):
        if timeout is not None:
            deadline = time.monotonic() + timeout
        self.deadline = deadline
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self) -> None:
        if self._event.is_set():
            raise PipelineCancelled("run cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise PipelineCancelled("run deadline exceeded")


@dataclass(frozen=True)
class _Task:
    rule_index: int
    rule: Rule
    checker_index: int
    checker: Checker


class MatchPipeline:
    """
    Drive every checker of every rule against a corpus.

    Args:
        rules: Validated rules (a RuleSet or any ordered iterable of Rule)
        matcher: Structural matcher used for every checker
        workers: Max checkers evaluated concurrently (1 = lazy, single-threaded)
        best_effort: Record failed checkers in `errors` and keep going instead of raising
        cancel: Optional cancellation token / deadline
        cache: Compiled-regex cache; a fresh one per pipeline when omitted
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        matcher: StructuralMatcher,
        *,
        workers: int = 1,
        best_effort: bool = False,
        cancel: CancelToken | None = None,
        cache: RegexCache | None = None,
    ):
        if workers < 1:
            raise ValueError("workers must be a positive integer")
        self.rules = list(rules)
        self.matcher = matcher
        self.workers = workers
        self.best_effort = best_effort
        self.cancel = cancel or CancelToken()
        self.evaluator = PredicateEvaluator(cache if cache is not None else RegexCache())
        self.errors: list[CheckerFailed] = []

    def _tasks(self) -> list[_Task]:
        return [
            _Task(rule_index=ri, rule=rule, checker_index=ci, checker=checker)
            for ri, rule in enumerate(self.rules)
            for ci, checker in enumerate(rule.checkers)
        ]

    def run(self, corpus: Any) -> Iterator[ValidatedMatch]:
        """Yield validated matches in canonical order. Resets `errors`."""
        self.errors = []
        tasks = self._tasks()
        if self.workers == 1 or len(tasks) <= 1:
            return self._run_sequential(tasks, corpus)
        return self._run_concurrent(tasks, corpus)

    def collect(self, corpus: Any) -> RunResult:
        matches = list(self.run(corpus))
        return RunResult(matches=matches, errors=list(self.errors))

    def _failed(self, error: CheckerFailed) -> None:
        if not self.best_effort:
            raise error
        logger.warning(f"{error} (continuing: best-effort mode)")
        self.errors.append(error)

    def _run_sequential(self, tasks: list[_Task], corpus: Any) -> Iterator[ValidatedMatch]:
        for task in tasks:
            try:
                yield from self._check(task, corpus)
            except CheckerFailed as e:
                self._failed(e)

    def _run_concurrent(self, tasks: list[_Task], corpus: Any) -> Iterator[ValidatedMatch]:
        stop = threading.Event()
        pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="rulegrep")
        todo = iter(tasks)
        pending: deque[Future] = deque()
        try:
            # at most two tasks per worker are running or buffered at once
            for t in islice(todo, self.workers * 2):
                pending.append(pool.submit(self._collect_task, t, corpus, stop))
            while pending:
                matches, error = pending.popleft().result()
                for t in islice(todo, 1):
                    pending.append(pool.submit(self._collect_task, t, corpus, stop))
                yield from matches
                if error is not None:
                    self._failed(error)
        finally:
            stop.set()
            pool.shutdown(wait=True, cancel_futures=True)

    def _collect_task(
        self, task: _Task, corpus: Any, stop: threading.Event
    ) -> tuple[list[ValidatedMatch], CheckerFailed | None]:
        out: list[ValidatedMatch] = []
        try:
            for m in self._check(task, corpus, stop):
                out.append(m)
        except CheckerFailed as e:
            return out, e
        return out, None

    def _poll(self, stop: threading.Event | None) -> None:
        self.cancel.check()
        if stop is not None and stop.is_set():
            raise PipelineCancelled("run abandoned")

    def _check(self, task: _Task, corpus: Any, stop: threading.Event | None = None) -> Iterator[ValidatedMatch]:
        rule, checker = task.rule, task.checker
        self._poll(stop)

        try:
            raw_matches = iter(self.matcher.search(checker.pattern, corpus, language=checker.language))
        except PipelineCancelled:
            raise
        except Exception as e:
            raise CheckerFailed(rule.name, checker.name, e) from e

        index = 0
        accepted = 0
        while True:
            self._poll(stop)
            try:
                raw = next(raw_matches)
            except StopIteration:
                break
            except PipelineCancelled:
                raise
            except Exception as e:
                raise CheckerFailed(rule.name, checker.name, e) from e

            try:
                ok = checker.evaluate(raw, self.evaluator)
            except MissingBinding as e:
                raise CheckerFailed(rule.name, checker.name, e) from e

            if ok:
                accepted += 1
                yield ValidatedMatch(
                    rule_name=rule.name,
                    rule_id=rule.id,
                    checker_name=checker.name,
                    tags=rule.tags,
                    severity=rule.severity,
                    raw_match=raw,
                    rule_index=task.rule_index,
                    checker_index=task.checker_index,
                    match_index=index,
                )
            index += 1

        logger.debug(f"{rule.name}/{checker.name}: {index} structural matches, {accepted} validated")


def run(
    rules: Iterable[Rule],
    corpus: Any,
    matcher: StructuralMatcher,
    *,
    workers: int = 1,
    cancel: CancelToken | None = None,
    cache: RegexCache | None = None,
) -> Iterator[ValidatedMatch]:
    """Fail-fast run: the first CheckerFailed propagates to the caller."""
    pipeline = MatchPipeline(rules, matcher, workers=workers, cancel=cancel, cache=cache)
    return pipeline.run(corpus)


def run_collect(
    rules: Iterable[Rule],
    corpus: Any,
    matcher: StructuralMatcher,
    *,
    workers: int = 1,
    best_effort: bool = False,
    cancel: CancelToken | None = None,
    cache: RegexCache | None = None,
) -> RunResult:
    """Materialise a run; with best_effort=True failed checkers land in `errors`."""
    pipeline = MatchPipeline(
        rules, matcher, workers=workers, best_effort=best_effort, cancel=cancel, cache=cache
    )
    return pipeline.collect(corpus)

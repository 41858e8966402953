"""Tests for constraint evaluation and the compiled-regex cache."""

from __future__ import annotations

import threading

import pytest

from rulegrep.errors import InvalidConstraint, MissingBinding, RuleError
from rulegrep.matcher import RawMatch
from rulegrep.rules.predicates import PredicateEvaluator, RegexCache
from rulegrep.rules.schema import Checker, Constraint


def test_anchored_regex_rejects_substring_hit() -> None:
    evaluator = PredicateEvaluator()
    c = Constraint("func", "^gets$")

    assert evaluator.evaluate(c, {"func": "gets"}) is True
    assert evaluator.evaluate(c, {"func": "fgets"}) is False


def test_unanchored_regex_uses_search_semantics() -> None:
    evaluator = PredicateEvaluator()

    assert evaluator.evaluate(Constraint("func", "cpy$"), {"func": "strcpy"}) is True
    assert evaluator.evaluate(Constraint("func", "str"), {"func": "my_strlen"}) is True
    assert evaluator.evaluate(Constraint("func", "cpy$"), {"func": "strcpy_s"}) is False


def test_negative_constraint_inverts_result() -> None:
    evaluator = PredicateEvaluator()
    c = Constraint.parse("func!=^safe_")

    assert c.negative
    assert evaluator.evaluate(c, {"func": "strcpy"}) is True
    assert evaluator.evaluate(c, {"func": "safe_strcpy"}) is False


def test_missing_binding_raises() -> None:
    evaluator = PredicateEvaluator()

    with pytest.raises(MissingBinding) as exc:
        evaluator.evaluate(Constraint("func", "gets"), {"callee": "gets"})
    assert exc.value.variable == "func"
    assert exc.value.available == ("callee",)


def test_missing_binding_not_masked_by_earlier_failing_constraint() -> None:
    evaluator = PredicateEvaluator()
    constraints = [Constraint("func", "^gets$"), Constraint("dst", ".")]

    with pytest.raises(MissingBinding):
        evaluator.evaluate_all(constraints, {"func": "memcpy"})


def test_evaluate_all_is_a_conjunction() -> None:
    evaluator = PredicateEvaluator()
    constraints = [Constraint("func", "cpy$"), Constraint("dst", "^buf")]

    assert evaluator.evaluate_all(constraints, {"func": "strcpy", "dst": "buf2"}) is True
    assert evaluator.evaluate_all(constraints, {"func": "strcpy", "dst": "out"}) is False
    assert evaluator.evaluate_all([], {}) is True


def test_invalid_regex_fails_at_construction() -> None:
    with pytest.raises(InvalidConstraint) as exc:
        Constraint("func", "st(r|p")
    assert exc.value.variable == "func"
    assert isinstance(exc.value, RuleError)


def test_constraint_parse_formats() -> None:
    c = Constraint.parse("$func = ^gets$")
    assert c.variable == "func"
    assert c.pattern == "^gets$"
    assert not c.negative
    assert str(c) == "func=^gets$"

    with pytest.raises(RuleError, match="var=regex"):
        Constraint.parse("func ^gets$")


def test_regex_cache_compiles_once() -> None:
    cache = RegexCache()
    evaluator = PredicateEvaluator(cache)
    c = Constraint("func", "cpy$")

    for name in ("strcpy", "wcscpy", "memcpy", "strlen"):
        evaluator.evaluate(c, {"func": name})

    assert len(cache) == 1
    assert "cpy$" in cache
    assert cache.get("cpy$") is cache.get("cpy$")


def test_regex_cache_concurrent_lookups_share_one_pattern() -> None:
    cache = RegexCache()
    seen = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        seen.append(cache.get("^str(n)?cpy$"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 8
    assert all(p is seen[0] for p in seen)
    assert len(cache) == 1


def test_checker_without_constraints_accepts_everything() -> None:
    checker = Checker(pattern="{$func();}")

    assert checker.constraint is None
    assert checker.evaluate(RawMatch(bindings={})) is True
    assert checker.evaluate(RawMatch(bindings={"func": "anything"})) is True


def test_checker_unique_requires_distinct_bindings() -> None:
    checker = Checker(pattern="$a = $b;", unique=True)

    assert checker.evaluate(RawMatch(bindings={"a": "x", "b": "y"})) is True
    assert checker.evaluate(RawMatch(bindings={"a": "x", "b": "x"})) is False

"""Rule model, loading, and constraint evaluation (rules as data, predicates as code)."""

from .load import load_rule_file, load_rule_text, load_ruleset, load_rulesets
from .predicates import PredicateEvaluator, RegexCache
from .schema import Checker, Constraint, Rule, RuleSet, Severity

__all__ = [
    "Checker",
    "Constraint",
    "PredicateEvaluator",
    "RegexCache",
    "Rule",
    "RuleSet",
    "Severity",
    "load_rule_file",
    "load_rule_text",
    "load_ruleset",
    "load_rulesets",
]

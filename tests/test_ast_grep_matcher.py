"""Tests for the ast-grep backed structural matcher."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import UNBOUNDED_COPY_YAML
from rulegrep.commands.scan import run_scan
from rulegrep.config import ScanConfig
from rulegrep.matcher import AstGrepMatcher, Location, StructuralMatcher, language_for_path, pattern_variables
from rulegrep.pipeline import run
from rulegrep.rules.schema import Checker, Constraint, Rule

SOURCE = """\
import os

def copy(dst, src):
    strcpy(dst, src)
    gets(dst)
    memcpy(dst, src, 4)
"""


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    path = tmp_path / "copy.py"
    path.write_text(SOURCE, encoding="utf-8")
    return path


def test_pattern_variables_skip_multi_and_anonymous() -> None:
    assert pattern_variables("$FUNC($$$ARGS)") == ["FUNC"]
    assert pattern_variables("$A = $B + $A; $_") == ["A", "B"]
    assert pattern_variables("no captures") == []


def test_language_for_path() -> None:
    assert language_for_path(Path("x.c")) == "c"
    assert language_for_path(Path("x.HPP")) == "cpp"
    assert language_for_path(Path("x.unknown")) is None


def test_matcher_satisfies_protocol() -> None:
    assert isinstance(AstGrepMatcher(), StructuralMatcher)


def test_search_yields_bindings_and_locations(corpus: Path) -> None:
    matches = list(AstGrepMatcher().search("$FUNC($$$ARGS)", corpus))

    assert [m.bindings["FUNC"] for m in matches] == ["strcpy", "gets", "memcpy"]
    first = matches[0]
    assert isinstance(first.location, Location)
    assert first.location.path == str(corpus)
    assert first.location.start_line == 4
    assert first.location.start_column == 4
    assert first.text == "strcpy(dst, src)"
    assert SOURCE[first.location.start_offset:first.location.end_offset] == "strcpy(dst, src)"


def test_unknown_suffix_skipped_unless_language_forced(tmp_path: Path) -> None:
    path = tmp_path / "copy.txt"
    path.write_text(SOURCE, encoding="utf-8")

    assert list(AstGrepMatcher().search("$FUNC($$$ARGS)", [path])) == []
    assert len(list(AstGrepMatcher().search("$FUNC($$$ARGS)", [path], language="python"))) == 3
    assert len(list(AstGrepMatcher(language="python").search("$FUNC($$$ARGS)", [path]))) == 3


def test_pipeline_over_ast_grep(corpus: Path) -> None:
    rule = Rule(
        name="unbounded copy",
        checkers=(
            Checker(name="gets", pattern="$FUNC($$$ARGS)", constraints=(Constraint("FUNC", "^gets$"),)),
            Checker(name="cpy", pattern="$FUNC($$$ARGS)", constraints=(Constraint("$FUNC", "cpy$"),)),
        ),
    )

    matches = list(run([rule], [corpus], AstGrepMatcher()))

    assert [(m.checker_name, m.bindings["FUNC"]) for m in matches] == [
        ("gets", "gets"),
        ("cpy", "strcpy"),
        ("cpy", "memcpy"),
    ]


# -----------------------------------------------------------------------------
# C sources and rule files
# -----------------------------------------------------------------------------

C_SOURCE = """\
#include <stdio.h>
#include <string.h>

void copy(char *dst, char *src) {
    gets(dst);
    strcpy(dst, src);
    memcpy(dst, src, 4);
}
"""

C_COPY_RULE = """
id: call-to-unbounded-copy-functions
description: call to unbounded copy functions
severity: medium
tags: [CWE-120, CWE-242]
check-patterns:
- name: gets
  regex: FUNC=^gets$
  pattern: '$FUNC($$$ARGS);'
- name: st(r|p)(cpy|cat)
  regex: FUNC=st(r|p)(cpy|cat)$
  pattern: '$FUNC($$$ARGS);'
"""


@pytest.fixture
def c_corpus(tmp_path: Path) -> Path:
    path = tmp_path / "copy.c"
    path.write_text(C_SOURCE, encoding="utf-8")
    return path


def test_search_c_call_statements(c_corpus: Path) -> None:
    matches = list(AstGrepMatcher().search("$FUNC($$$ARGS);", [c_corpus]))

    assert [m.bindings["FUNC"] for m in matches] == ["gets", "strcpy", "memcpy"]
    assert matches[0].location.start_line == 5


@pytest.mark.parametrize("pattern", ["{$func();}", "{ $func(); }\n", "$FUNC($$$args);"])
def test_lowercase_placeholders_are_rejected(c_corpus: Path, pattern: str) -> None:
    with pytest.raises(ValueError, match="is not an ast-grep metavariable"):
        list(AstGrepMatcher().search(pattern, [c_corpus]))


def test_scan_c_file_with_rule_file(tmp_path: Path, c_corpus: Path, write_file, capsys) -> None:
    write_file(tmp_path / "rules" / "copy.yml", C_COPY_RULE)
    config = ScanConfig(rule_paths=[tmp_path / "rules"], output_format="json")

    assert run_scan([c_corpus], config) == 0

    output = json.loads(capsys.readouterr().out)
    assert [(m["checker"], m["bindings"]["FUNC"]) for m in output["matches"]] == [
        ("gets", "gets"),
        ("st(r|p)(cpy|cat)", "strcpy"),
    ]
    assert output["matches"][0]["location"]["path"] == str(c_corpus)


def test_scan_weggli_style_rule_fails_instead_of_finding_nothing(
    tmp_path: Path, c_corpus: Path, write_file, capsys
) -> None:
    write_file(tmp_path / "rules" / "unbounded-copy.yml", UNBOUNDED_COPY_YAML)
    config = ScanConfig(rule_paths=[tmp_path / "rules"], output_format="json")

    assert run_scan([c_corpus], config) == 1

    output = json.loads(capsys.readouterr().out)
    assert output["matches"] == []
    [error] = output["errors"]
    assert error["checker"] == "gets"
    assert error["error_type"] == "ValueError"
    assert "$func" in error["message"]

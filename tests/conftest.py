"""Pytest configuration and fixtures."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Iterable, Iterator

import pytest

from rulegrep.matcher import RawMatch
from rulegrep.rules.schema import Checker, Constraint, Rule


class ScriptedMatcher:
    """Structural matcher stand-in that answers search() from a script.

    `script` maps a pattern to a queue of responses, one consumed per call,
    so the same pattern can answer differently for successive checkers. A
    response is a list of binding dicts / RawMatch objects; an exception,
    either as the response or as a list item, is raised at that point.
    """

    def __init__(self, script: dict[str, list[Any]]):
        self.script = {pattern: list(responses) for pattern, responses in script.items()}
        self.calls: list[tuple[str, Any, str | None]] = []
        self.pulled = 0
        self._lock = threading.Lock()

    def search(self, pattern: str, corpus: Any, language: str | None = None) -> Iterator[RawMatch]:
        with self._lock:
            self.calls.append((pattern, corpus, language))
            queue = self.script.get(pattern)
            response = queue.pop(0) if queue else []

        if isinstance(response, BaseException):
            raise response
        return self._stream(response, pattern, corpus)

    def _stream(self, response: Iterable[Any], pattern: str, corpus: Any) -> Iterator[RawMatch]:
        for item in response:
            if isinstance(item, BaseException):
                raise item
            with self._lock:
                self.pulled += 1
            if isinstance(item, RawMatch):
                yield item
            else:
                yield RawMatch(bindings=dict(item), location=f"{corpus}:{pattern}")


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


UNBOUNDED_COPY_YAML = """
id: call-to-unbounded-copy-functions
description: call to unbounded copy functions
severity: medium
tags:
- CWE-120
- CWE-242
- CWE-676
check-patterns:
- name: gets
  regex: func=^gets$
  pattern: |
    { $func(); }

- name: st(r|p)(cpy|cat)
  regex: func=st(r|p)(cpy|cat)$
  pattern: '{$func();}'

- name: wc(r|p)(cpy|cat)
  regex: func=wc(r|p)(cpy|cat)$
  pattern: '{$func();}'

- name: sprintf
  regex: func=sprintf$
  pattern: '{$func();}'

- name: scanf
  regex: func=scanf$
  pattern: '{$func();}'
"""


@pytest.fixture
def write_file():
    return _write


@pytest.fixture
def unbounded_copy_rule() -> Rule:
    """The two-checker rule used by the end-to-end scenario."""
    return Rule(
        name="unbounded copy",
        tags=frozenset({"CWE-120", "CWE-676"}),
        checkers=(
            Checker(name="gets", pattern="{$func();}", constraints=(Constraint("func", "^gets$"),)),
            Checker(name="strcpy", pattern="{$func();}", constraints=(Constraint("func", "st(r|p)(cpy|cat)$"),)),
        ),
    )

"""Structural matcher boundary and the ast-grep backed implementation.

The pipeline only depends on `StructuralMatcher`: give it a pattern and a
corpus, get back raw matches whose bindings map capture names to the exact
source text they bound. Patterns are never interpreted here beyond what the
backend itself needs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping, Protocol, runtime_checkable

from ast_grep_py import SgRoot

if TYPE_CHECKING:
    from ast_grep_py import SgNode

logger = logging.getLogger(__name__)

_METAVAR_RE = re.compile(r"(?<!\$)\$([A-Z_][A-Z0-9_]*)")
# lowercase placeholders (`$func`) are plain text to ast-grep
_LOWERCASE_VAR_RE = re.compile(r"(?<![\$\w])\$+([a-z][A-Za-z0-9_]*)")

_LANGUAGE_BY_SUFFIX = {
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".hh": "cpp",
    ".hpp": "cpp",
    ".py": "python",
    ".rs": "rust",
    ".go": "go",
    ".java": "java",
    ".js": "javascript",
    ".ts": "typescript",
}


@dataclass(frozen=True)
class Location:
    path: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    start_offset: int
    end_offset: int

    def __str__(self) -> str:
        return f"{self.path}:{self.start_line}:{self.start_column}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "start_line": self.start_line,
            "start_column": self.start_column,
            "end_line": self.end_line,
            "end_column": self.end_column,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
        }


@dataclass(frozen=True)
class RawMatch:
    """A structural hit as reported by the matcher; location is passed through untouched."""

    bindings: Mapping[str, str] = field(default_factory=dict)
    location: Any = None
    text: str | None = None


@runtime_checkable
class StructuralMatcher(Protocol):
    def search(self, pattern: str, corpus: Any, language: str | None = None) -> Iterable[RawMatch]:
        ...


def pattern_variables(pattern: str) -> list[str]:
    """Return single-node metavariable names (`$NAME`) in first-seen order.

    Multi-node captures (`$$$ARGS`) and anonymous `$_` holes are skipped.
    """
    seen: list[str] = []
    for name in _METAVAR_RE.findall(pattern):
        if name == "_" or name in seen:
            continue
        seen.append(name)
    return seen


def language_for_path(path: Path) -> str | None:
    return _LANGUAGE_BY_SUFFIX.get(path.suffix.lower())


class AstGrepMatcher:
    """Run ast-grep patterns over an explicit list of files.

    The corpus is a path or an iterable of paths. Files are scanned in the
    order given and matches within a file in ast-grep's order, so output is
    reproducible for identical inputs.
    """

    def __init__(self, language: str | None = None, encoding: str = "utf-8"):
        self.language = language
        self.encoding = encoding

    def search(self, pattern: str, corpus: Any, language: str | None = None) -> Iterator[RawMatch]:
        """Yield raw matches for an ast-grep pattern.

        Raises:
            ValueError: the pattern uses a lowercase `$name` placeholder, which
                ast-grep would match literally instead of capturing
        """
        lowercase = _LOWERCASE_VAR_RE.search(pattern)
        if lowercase is not None:
            name = lowercase.group(1)
            raise ValueError(
                f"pattern {pattern.strip()!r}: ${name} is not an ast-grep metavariable "
                f"(metavariables are uppercase, e.g. ${name.upper()})"
            )

        names = pattern_variables(pattern)
        for path in _corpus_paths(corpus):
            lang = language or self.language or language_for_path(path)
            if lang is None:
                logger.debug(f"Skipping {path}: no language for suffix {path.suffix!r}")
                continue

            source = path.read_text(encoding=self.encoding)
            root = SgRoot(source, lang).root()
            for node in root.find_all(pattern=pattern):
                yield _raw_match(node, names, str(path))


def _corpus_paths(corpus: Any) -> list[Path]:
    if isinstance(corpus, (str, Path)):
        return [Path(corpus)]
    return [Path(p) for p in corpus]


def _raw_match(node: "SgNode", names: list[str], path: str) -> RawMatch:
    bindings: dict[str, str] = {}
    for name in names:
        captured = node.get_match(name)
        if captured is not None:
            bindings[name] = captured.text()

    r = node.range()
    location = Location(
        path=path,
        start_line=r.start.line + 1,
        start_column=r.start.column,
        end_line=r.end.line + 1,
        end_column=r.end.column,
        start_offset=r.start.index,
        end_offset=r.end.index,
    )
    return RawMatch(bindings=bindings, location=location, text=node.text())

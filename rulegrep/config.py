"""Configuration for rulegrep scans."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .rules.schema import Severity

CONFIG_FILENAME = ".rulegrep.toml"


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data[name]
    if not isinstance(value, dict):
        raise ValueError(f"[{name}] must be a table, got {type(value).__name__}")
    return value


def _number(section: dict[str, Any], key: str, kind: type) -> Any:
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"pipeline.{key} must be a number, got {value!r}")
    return kind(value)


@dataclass
class ScanConfig:
    """
    Settings for a scan, read from `.rulegrep.toml` or `[tool.rulegrep]`.

    Attributes:
        rule_paths: Rule files or directories to load
        tags: Only run rules carrying one of these tags (empty = all)
        workers: Max checkers evaluated concurrently
        best_effort: Collect checker failures instead of stopping at the first
        timeout: Seconds before the run is cancelled (None = no deadline)
        ignore_rule_errors: Skip unloadable rule files instead of rejecting the set
        fail_on: Exit non-zero if a match at or above this severity is found
        language: Force an ast-grep language instead of inferring from suffix
        output_format: "text" or "json"
    """

    rule_paths: list[Path] = field(default_factory=list)
    tags: set[str] = field(default_factory=set)
    workers: int = 1
    best_effort: bool = False
    timeout: float | None = None
    ignore_rule_errors: bool = False
    fail_on: Severity | None = None
    language: str | None = None
    output_format: str = "text"

    @classmethod
    def from_file(cls, config_path: Path | None = None) -> "ScanConfig":
        """
        Load configuration from a TOML file.

        If config_path is None, searches the current directory and its parents
        for `.rulegrep.toml`, falling back to a `pyproject.toml` that has a
        `[tool.rulegrep]` table.
        """
        if config_path is None:
            config_path = cls._find_config_file()

        if config_path is None or not config_path.exists():
            return cls()

        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        if config_path.name == "pyproject.toml":
            data = _coerce_dict(_coerce_dict(data.get("tool")).get("rulegrep"))

        return cls._from_dict(data, base=config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], base: Path | None = None) -> "ScanConfig":
        config = cls()

        if "rules" in data:
            rules = _section(data, "rules")
            paths = rules.get("paths", [])
            if isinstance(paths, str):
                paths = [paths]
            if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
                raise ValueError("rules.paths must be a path or a list of paths")
            config.rule_paths = [(base / p) if base is not None else Path(p) for p in paths]
            tags = rules.get("tags", [])
            config.tags = {str(t) for t in tags} if isinstance(tags, list) else set()
            if "ignore_errors" in rules:
                config.ignore_rule_errors = bool(rules["ignore_errors"])

        if "pipeline" in data:
            pipeline = _section(data, "pipeline")
            if "workers" in pipeline:
                config.workers = _number(pipeline, "workers", int)
            if "best_effort" in pipeline:
                config.best_effort = bool(pipeline["best_effort"])
            if "timeout" in pipeline:
                config.timeout = _number(pipeline, "timeout", float)
            if "language" in pipeline:
                config.language = str(pipeline["language"])

        if "output" in data:
            output = _section(data, "output")
            if "format" in output:
                config.output_format = str(output["format"])
            if "fail_on" in output:
                config.fail_on = Severity.parse(output["fail_on"])

        if config.workers < 1:
            raise ValueError("pipeline.workers must be a positive integer")

        return config

    @staticmethod
    def _find_config_file() -> Path | None:
        current = Path.cwd()

        while True:
            config_path = current / CONFIG_FILENAME
            if config_path.exists():
                return config_path

            pyproject = current / "pyproject.toml"
            if pyproject.exists():
                data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
                if "rulegrep" in _coerce_dict(data.get("tool")):
                    return pyproject

            parent = current.parent
            if parent == current:
                break
            current = parent

        return None

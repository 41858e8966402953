"""rulegrep - rule orchestration for structural source-code search."""

__version__ = "0.1.0"

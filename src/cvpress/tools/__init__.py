"""Deterministic tools: substitution, toolchain discovery/installation, compilation."""

from .compiler import run_compile
from .packages import detect_missing
from .substitution import escape_latex, strip_unresolved, substitute

__all__ = [
    "detect_missing",
    "escape_latex",
    "run_compile",
    "strip_unresolved",
    "substitute",
]

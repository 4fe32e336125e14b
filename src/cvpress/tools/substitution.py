"""Placeholder substitution for LaTeX templates.

Values are escaped for LaTeX before insertion.  Four placeholder
spellings are recognised for every key::

    {key}    {{key}}    \\{key\\}    [[key]]

Keys made only of alphanumeric characters are additionally replaced
wherever they appear as a whole word, so templates can reference
variables without any bracket syntax.

Every spelling of every key is matched by a single compiled pattern and
replaced in one ``re.sub`` pass.  Inserted text is never scanned again,
which keeps substitution idempotent and stops one value from being
substituted into another.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------

_LATEX_ESCAPES = {
    "\\": r"\textbackslash{}",
    "&": r"\&",
    "%": r"\%",
    "$": r"\$",
    "#": r"\#",
    "_": r"\_",
    "{": r"\{",
    "}": r"\}",
    "~": r"\textasciitilde{}",
    "^": r"\textasciicircum{}",
}

_ESCAPE_RE = re.compile(r"[\\&%$#_{}~^]")


def escape_latex(value: Any) -> str:
    """Escape LaTeX control characters in ``str(value)``.

    Single pass: the braces emitted for ``\\textbackslash{}`` are not
    escaped a second time.
    """
    return _ESCAPE_RE.sub(lambda m: _LATEX_ESCAPES[m.group(0)], str(value))


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------


def _alternation(keys: Iterable[str]) -> str:
    # Longest first so "name" never shadows "nameFull" inside an alternation
    return "|".join(re.escape(k) for k in sorted(keys, key=len, reverse=True))


def _build_pattern(keys: list[str]) -> re.Pattern[str]:
    alt = _alternation(keys)
    branches = [
        rf"\\\{{({alt})\\\}}",   # \{key\}
        rf"\{{\{{({alt})\}}\}}",  # {{key}}
        rf"\[\[({alt})\]\]",      # [[key]]
        rf"\{{({alt})\}}",        # {key}
    ]
    words = [k for k in keys if k.isalnum()]
    if words:
        branches.append(rf"\b({_alternation(words)})\b")
    return re.compile("|".join(branches))


def substitute(template: str, data: Mapping[str, Any]) -> str:
    """Return *template* with every known placeholder replaced by its escaped value.

    Keys whose value is ``None`` are skipped; their placeholders stay as
    literal text.  Never raises for unknown or missing keys.
    """
    values = {
        str(key): escape_latex(value)
        for key, value in data.items()
        if value is not None and str(key)
    }
    if not values:
        return template

    pattern = _build_pattern(list(values))

    def _replace(m: re.Match[str]) -> str:
        key = next(g for g in m.groups() if g is not None)
        return values[key]

    return pattern.sub(_replace, template)


# ---------------------------------------------------------------------------
# Unresolved placeholder cleanup (fallback stage only)
# ---------------------------------------------------------------------------

_LEFTOVER_RE = re.compile(r"\\\{\w+\\\}|\{\{\s*\w+\s*\}\}|\[\[\w+\]\]")


def strip_unresolved(text: str, names: Iterable[str] = ()) -> str:
    """Remove placeholder tokens that survived substitution.

    Doubled, bracket and backslash spellings are always removed.  The
    bare ``{name}`` spelling is only removed for the given *names*: a
    generic ``{identifier}`` sweep would also delete ordinary LaTeX
    arguments such as ``\\color{accent}``.
    """
    text = _LEFTOVER_RE.sub("", text)
    names = [n for n in names if n]
    if names:
        text = re.sub(rf"\{{(?:{_alternation(names)})\}}", "", text)
    return text

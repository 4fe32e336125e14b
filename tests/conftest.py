"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from cvpress.models import EngineConfig

MISSING_PACKAGE_LOG = """This is pdfTeX, Version 3.141592653-2.6-1.40.26 (TeX Live 2025) (preloaded format=pdflatex)
(./document.tex
LaTeX2e <2024-11-01>
(/usr/share/texlive/texmf-dist/tex/latex/base/article.cls
Document Class: article 2024/06/29 v1.4n Standard LaTeX document class
)

! LaTeX Error: File `foo.sty' not found.

Type X to quit or <RETURN> to proceed,
or enter new name. (Default extension: sty)

Enter file name:
! Emergency stop.
<read *>

l.3 \\usepackage
                {bar}^^M
! LaTeX Error: File `bar.sty' not found.
! LaTeX Error: File `foo.sty' not found.
No pages of output.
"""

SUCCESS_LOG = """This is pdfTeX, Version 3.141592653-2.6-1.40.26 (TeX Live 2025)
(./document.tex
LaTeX2e <2024-11-01>
[1{/usr/share/texlive/texmf-dist/fonts/map/pdftex/updmap/pdftex.map}]
Output written on document.pdf (1 page, 24012 bytes).
"""


@pytest.fixture
def missing_package_log() -> str:
    return MISSING_PACKAGE_LOG


@pytest.fixture
def success_log() -> str:
    return SUCCESS_LOG


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    """Config pointing every path into tmp_path, with an explicit fake binary."""
    return EngineConfig(
        install_dir=str(tmp_path / "tinytex"),
        work_dir=str(tmp_path / "work"),
        latex_binary="/fake/bin/pdflatex",
        common_packages=["geometry", "xcolor"],
    )


def _output_dir(cmd: list[str]) -> Path:
    for arg in cmd:
        if arg.startswith("-output-directory="):
            return Path(arg.split("=", 1)[1])
    raise AssertionError(f"no -output-directory in {cmd}")


@pytest.fixture
def fake_pdflatex() -> Callable[..., tuple[Callable, list[list[str]]]]:
    """Factory for a ``subprocess.run`` replacement that behaves like pdflatex.

    ``succeed_if(source_text)`` decides whether a PDF is written.  The log
    written next to the source is ``log_for(source_text)`` (default: a
    short success or error log).  Returns ``(side_effect, calls)``.
    """

    def factory(
        succeed_if: Callable[[str], bool],
        *,
        pdf_bytes: int = 5000,
        returncode: int = 1,
        log_for: Callable[[str], str] | None = None,
    ) -> tuple[Callable, list[list[str]]]:
        calls: list[list[str]] = []

        def side_effect(cmd, **kwargs):
            calls.append(list(cmd))
            source = Path(cmd[-1])
            out = _output_dir(cmd)
            text = source.read_text(encoding="utf-8")
            ok = succeed_if(text)
            if log_for is not None:
                log = log_for(text)
            else:
                log = SUCCESS_LOG if ok else "! LaTeX Error: Missing \\begin{document}.\n"
            (out / f"{source.stem}.log").write_text(log, encoding="utf-8")
            if ok:
                (out / f"{source.stem}.pdf").write_bytes(b"%PDF-1.5\n" + b"0" * pdf_bytes)
            return MagicMock(returncode=returncode, stdout=log)

        return side_effect, calls

    return factory

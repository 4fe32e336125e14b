"""Two-pass ``pdflatex`` runner with filesystem-based success detection.

The engine is called twice against the same source so that the second
pass can resolve cross-references written by the first.  pdflatex is
known to exit non-zero even when it writes a usable PDF, so success is
decided by looking for the output file (and a minimum size), never by
the exit code.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from ..models import CompilationResult

logger = logging.getLogger(__name__)

DEFAULT_PASSES = 2

# ---------------------------------------------------------------------------
# Log helpers
# ---------------------------------------------------------------------------

_ERROR_RE = re.compile(r"^!\s*(.*)", re.MULTILINE)


def read_log(log_path: str | Path) -> str:
    """Return the log text, or an empty string when no log was written."""
    log = Path(log_path)
    if not log.exists():
        return ""
    return log.read_text(encoding="utf-8", errors="replace")


def extract_errors(log_text: str) -> list[str]:
    """Return the ``! ...`` error lines of a LaTeX log, in order."""
    return [m.group(1).strip() for m in _ERROR_RE.finditer(log_text) if m.group(1).strip()]


def log_excerpt(log_text: str, limit: int = 1500) -> str:
    """Tail of *log_text*, starting at the first error line when there is one."""
    if not log_text:
        return ""
    m = _ERROR_RE.search(log_text)
    text = log_text[m.start():] if m else log_text
    return text[-limit:]


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _pdf_ok(pdf_path: Path, min_bytes: int) -> bool:
    try:
        return pdf_path.is_file() and pdf_path.stat().st_size >= min_bytes
    except OSError:
        return False


def run_compile(
    source: str | Path,
    work_dir: str | Path,
    binary: str,
    *,
    timeout: int = 30,
    min_pdf_bytes: int = 100,
    passes: int = DEFAULT_PASSES,
) -> CompilationResult:
    """Compile *source* into *work_dir* and return structured results.

    Parameters
    ----------
    source : str | Path
        The ``.tex`` file to compile.
    work_dir : str | Path
        Attempt directory receiving the log, aux files and the PDF.
    binary : str
        pdflatex path (or bare command name).
    timeout : int
        Wall-clock limit per pass; the process is killed when it expires.
    min_pdf_bytes : int
        Smallest PDF accepted as real output.
    passes : int
        Number of sequential passes.
    """
    src = Path(source)
    out = Path(work_dir)
    if not src.exists():
        return CompilationResult(success=False, log=f"{src.name} not found in {out}")

    pdf_path = out / f"{src.stem}.pdf"
    cmd = [
        binary,
        "-interaction=nonstopmode",
        "-halt-on-error",
        f"-output-directory={out}",
        str(src),
    ]

    output = ""
    returncode: int | None = None
    passes_run = 0
    for pass_num in range(1, passes + 1):
        logger.info("Compile pass %d/%d: %s", pass_num, passes, " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(out),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Compile pass %d timed out after %ds", pass_num, timeout)
            return CompilationResult(
                success=False,
                log=f"Compilation timed out after {timeout}s (pass {pass_num})",
                passes_run=pass_num,
                timed_out=True,
            )
        except OSError as exc:
            # The binary could not be started at all: a second pass cannot help
            logger.error("Could not start %s: %s", binary, exc)
            return CompilationResult(
                success=False,
                log=f"Could not start {binary}: {exc}",
                passes_run=passes_run,
            )
        passes_run = pass_num
        returncode = proc.returncode
        output = proc.stdout or ""
        if returncode != 0:
            logger.debug("Pass %d exited %d; continuing", pass_num, returncode)

    log_text = read_log(out / f"{src.stem}.log") or output
    success = _pdf_ok(pdf_path, min_pdf_bytes)

    logger.info(
        "pdflatex finished: returncode=%s, pdf_exists=%s, success=%s, cwd=%s",
        returncode, pdf_path.exists(), success, out,
    )
    if not success and output:
        logger.debug("pdflatex output (last 1000 chars):\n%s", output[-1000:])

    return CompilationResult(
        success=success,
        pdf_path=str(pdf_path) if success else None,
        log=log_text,
        returncode=returncode,
        passes_run=passes_run,
        errors=extract_errors(log_text),
    )

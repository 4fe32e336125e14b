"""Exception hierarchy for toolchain installation and document compilation."""

from __future__ import annotations

from .models import StageAttempt


class CvpressError(Exception):
    """Base class for all cvpress errors."""


# ---------------------------------------------------------------------------
# Installation
# ---------------------------------------------------------------------------

class ToolchainInstallError(CvpressError):
    """The installer could not produce a usable toolchain."""


class DownloadError(ToolchainInstallError):
    """Network failure, non-2xx response or redirect loop."""


class ExtractionError(ToolchainInstallError):
    """Archive is corrupt, or extraction produced no files."""


class BinaryNotFoundError(ToolchainInstallError):
    """The toolchain binary is absent after installation."""


class PackageInstallError(CvpressError):
    """A single tlmgr package could not be installed. Always recovered locally."""


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

class CompilationError(CvpressError):
    """Base for compile failures.

    A single stage that yields no PDF is reported as a failed
    ``CompilationResult``, not raised; only the chain as a whole raises.
    """


class TerminalCompilationError(CompilationError):
    """Every stage of the degradation chain failed."""

    def __init__(self, message: str, attempts: list[StageAttempt] | None = None) -> None:
        self.attempts = list(attempts or [])
        super().__init__(message)

    def __str__(self) -> str:
        lines = [self.args[0] if self.args else "Compilation failed"]
        for attempt in self.attempts:
            status = "ok" if attempt.success else "failed"
            detail = f": {attempt.message}" if attempt.message else ""
            lines.append(f"  - {attempt.stage.value} {status}{detail}")
        last_log = next((a.log_excerpt for a in reversed(self.attempts) if a.log_excerpt), "")
        if last_log:
            lines.append("Last log excerpt:")
            lines.append(last_log)
        return "\n".join(lines)

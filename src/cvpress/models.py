"""Pydantic models for the cvpress compilation engine."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Stage(str, Enum):
    USER_TEMPLATE = "user_template"
    DEPENDENCY_REPAIR = "dependency_repair"
    FALLBACK_TEMPLATE = "fallback_template"
    ERROR_TEMPLATE = "error_template"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class Template(BaseModel):
    """A user-authored LaTeX template as supplied by the calling layer."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Template identifier")
    body: str = Field(..., description="Markup body containing placeholder tokens")
    name: str | None = Field(default=None, description="Display name")


# ---------------------------------------------------------------------------
# Progress and status reporting
# ---------------------------------------------------------------------------

class ProgressReport(BaseModel):
    """A single progress tick: -1 marks a terminal failure."""
    status: str = Field(..., description="Human-readable status message")
    progress: int = Field(..., ge=-1, le=100, description="0-100, or -1 for failure")


class InstallStatus(BaseModel):
    """Snapshot of the toolchain installation tracker."""
    is_installing: bool = Field(default=False)
    status: str = Field(default="Not started")
    progress: int = Field(default=0, ge=-1, le=100)
    error: str | None = Field(default=None)


class ToolchainStatus(BaseModel):
    """Result of the package-manager status query."""
    installed: bool = Field(..., description="Whether any usable toolchain exists")
    system_path: str | None = Field(default=None, description="System pdflatex, if found")
    bundled_path: str | None = Field(default=None, description="Bundled pdflatex, if found")


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

class CompilationResult(BaseModel):
    """Result of running the toolchain (both passes) in one attempt directory."""
    success: bool = Field(..., description="Output PDF exists and passes the size check")
    pdf_path: str | None = Field(default=None, description="Path to generated PDF")
    log: str = Field(default="", description="Compiler log text (diagnostic only)")
    returncode: int | None = Field(default=None, description="Exit code of the last pass")
    passes_run: int = Field(default=0, description="Number of passes that started")
    timed_out: bool = Field(default=False)
    errors: list[str] = Field(default_factory=list, description="'!' lines from the log")


class StageAttempt(BaseModel):
    """Diagnostics for one stage of the degradation chain."""
    stage: Stage
    success: bool = Field(default=False)
    work_dir: str = Field(default="", description="Attempt directory used by this stage")
    log_excerpt: str = Field(default="", description="Tail of the compiler log")
    missing_packages: list[str] = Field(default_factory=list)
    message: str = Field(default="")


class CompileOutcome(BaseModel):
    """Successful result of a compile request, possibly degraded."""
    output_path: str = Field(..., description="Where the PDF was copied")
    stage: Stage = Field(..., description="Stage that produced the artifact")
    attempts: list[StageAttempt] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.stage is not Stage.USER_TEMPLATE


# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------

DEFAULT_COMMON_PACKAGES = [
    "geometry",
    "xcolor",
    "titlesec",
    "enumitem",
    "hyperref",
    "fancyhdr",
    "parskip",
    "tabularx",
    "ragged2e",
    "fontawesome5",
    "multirow",
    "babel-english",
]


class EngineConfig(BaseModel):
    """Explicit configuration for a ``DocumentEngine`` instance."""
    install_dir: str = Field(default="", description="Application-owned toolchain directory")
    work_dir: str = Field(default="", description="Root for per-attempt working directories")
    binary_name: str = Field(default="pdflatex", description="Toolchain executable name")
    latex_binary: str | None = Field(default=None, description="Explicit toolchain path override")

    # Timeouts (seconds)
    compile_timeout: int = Field(default=30, description="Per compilation pass")
    package_timeout: int = Field(default=120, description="Per package install")
    probe_timeout: int = Field(default=30, description="tlmgr initialisation probes")
    download_timeout: int = Field(default=60, description="Network read timeout")
    extract_timeout: int = Field(default=600, description="Archive extraction")

    # Distribution
    release_index_url: str = Field(
        default="https://api.github.com/repos/rstudio/tinytex-releases/releases/latest",
    )
    download_base_url: str = Field(
        default="https://github.com/rstudio/tinytex-releases/releases/download",
    )
    fallback_version: str = Field(default="v2025.03.10", description="Used when the index lookup fails")
    distribution: str = Field(default="TinyTeX-1", description="Archive name prefix")
    user_agent: str = Field(default="cvpress")

    # Verification thresholds (bytes)
    min_archive_bytes: int = Field(default=1_000_000, description="Reject truncated downloads")
    min_pdf_bytes: int = Field(default=100, description="Reject zero-byte placeholder PDFs")

    # Dependency repair
    common_packages: list[str] = Field(default_factory=lambda: list(DEFAULT_COMMON_PACKAGES))
    package_repository: str | None = Field(default=None, description="tlmgr repository, e.g. 'ctan'")

    auto_install: bool = Field(default=False, description="Bootstrap TinyTeX when no toolchain is found")
    keep_attempts: bool = Field(default=False, description="Keep attempt directories for debugging")

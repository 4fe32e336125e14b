"""cvpress: compile CV and cover letter templates to PDF through TinyTeX."""

from .engine import DocumentEngine
from .errors import (
    BinaryNotFoundError,
    CompilationError,
    CvpressError,
    DownloadError,
    ExtractionError,
    PackageInstallError,
    TerminalCompilationError,
    ToolchainInstallError,
)
from .models import CompileOutcome, EngineConfig, Stage, Template, ToolchainStatus

__version__ = "0.1.0"

__all__ = [
    "BinaryNotFoundError",
    "CompilationError",
    "CompileOutcome",
    "CvpressError",
    "DocumentEngine",
    "DownloadError",
    "EngineConfig",
    "ExtractionError",
    "PackageInstallError",
    "Stage",
    "Template",
    "TerminalCompilationError",
    "ToolchainInstallError",
    "ToolchainStatus",
]

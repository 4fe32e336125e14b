"""DocumentEngine: template -> PDF with automatic degradation.

A compile request walks an ordered list of stages and stops at the first
one whose output PDF is verified on disk:

USER_TEMPLATE: the caller's template with data substituted
DEPENDENCY_REPAIR: install common + detected packages, retry the same source
FALLBACK_TEMPLATE: built-in minimal CV with the same data
ERROR_TEMPLATE: built-in, data-free "template error" notice

Each stage runs in its own fresh attempt directory.  Only when all four
fail does ``compile`` raise ``TerminalCompilationError``.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from .config import apply_env_fallbacks
from .errors import TerminalCompilationError
from .logging_config import EngineCallbacks, NullCallbacks
from .models import (
    CompilationResult,
    CompileOutcome,
    EngineConfig,
    InstallStatus,
    Stage,
    StageAttempt,
    Template,
    ToolchainStatus,
)
from .templates import ERROR_TEMPLATE, FALLBACK_PLACEHOLDERS, FALLBACK_TEMPLATE, wrap_snippet
from .tools.compiler import log_excerpt, run_compile
from .tools.installer import ProgressCallback, ToolchainInstaller
from .tools.locator import ToolchainLocator
from .tools.packages import PackageManager, detect_missing
from .tools.substitution import strip_unresolved, substitute

logger = logging.getLogger(__name__)

SOURCE_NAME = "document.tex"

_STAGE_DESCRIPTIONS = {
    Stage.USER_TEMPLATE: "Compiling user template",
    Stage.DEPENDENCY_REPAIR: "Installing missing packages and retrying",
    Stage.FALLBACK_TEMPLATE: "Compiling minimal fallback template",
    Stage.ERROR_TEMPLATE: "Compiling template error notice",
}

# ---------------------------------------------------------------------------
# Install locks (one per install directory, shared by every engine in the process)
# ---------------------------------------------------------------------------

_INSTALL_LOCKS: dict[str, threading.Lock] = {}
_INSTALL_LOCKS_GUARD = threading.Lock()


def _install_lock(install_dir: str | Path) -> threading.Lock:
    key = str(Path(install_dir).resolve())
    with _INSTALL_LOCKS_GUARD:
        return _INSTALL_LOCKS.setdefault(key, threading.Lock())


@dataclass
class _Request:
    """Per-request state threaded through the stage handlers."""
    body: str
    data: Mapping[str, Any]
    binary: str
    processed: str = ""
    last_log: str = ""
    notes: dict[Stage, str] = field(default_factory=dict)


StageHandler = Callable[[_Request, Path], CompilationResult]


class DocumentEngine:
    """Compile LaTeX templates to PDF, bootstrapping TinyTeX when needed.

    Parameters
    ----------
    config : EngineConfig | None
        Engine settings; empty paths are resolved from the environment once.
    callbacks : EngineCallbacks | None
        Receives stage transitions and installation progress.
    transport : httpx.BaseTransport | None
        HTTP transport for the installer (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        callbacks: EngineCallbacks | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = apply_env_fallbacks(config.model_copy(deep=True) if config else EngineConfig())
        self.callbacks: EngineCallbacks = callbacks or NullCallbacks()
        self.locator = ToolchainLocator(self.config.install_dir, self.config.binary_name)
        self.installer = ToolchainInstaller(self.config, self.locator, transport=transport)
        self._lock = _install_lock(self.config.install_dir)
        self._status = InstallStatus()
        self._status_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Toolchain status / installation
    # ------------------------------------------------------------------

    def status(self) -> ToolchainStatus:
        return self.locator.status()

    def install_status(self) -> InstallStatus:
        with self._status_guard:
            return self._status.model_copy()

    def _set_status(self, **changes: Any) -> None:
        with self._status_guard:
            self._status = self._status.model_copy(update=changes)

    def _run_install(self, on_progress: ProgressCallback | None) -> bool:
        """Run the installer and keep the status tracker current. Lock must be held."""
        self._set_status(is_installing=True, status="Starting installation...", progress=0, error=None)

        def report(status: str, progress: int) -> None:
            changes: dict[str, Any] = {"status": status, "progress": progress}
            if progress < 0:
                changes["error"] = status
            self._set_status(**changes)
            self.callbacks.on_progress(status, progress)
            if on_progress is not None:
                on_progress(status, progress)

        try:
            ok = self.installer.install(report)
        finally:
            self._set_status(is_installing=False)
        if ok:
            self._set_status(status="Installation complete!", progress=100, error=None)
        else:
            self._set_status(progress=-1, error=self.install_status().error or "Installation process failed")
        return ok

    def install(self, on_progress: ProgressCallback | None = None) -> bool:
        """Install TinyTeX. Returns ``False`` at once if another install holds the lock."""
        if not self._lock.acquire(blocking=False):
            logger.info("LaTeX installation already in progress")
            return False
        try:
            return self._run_install(on_progress)
        finally:
            self._lock.release()

    def _auto_install(self) -> str | None:
        with self._lock:
            # Another request may have finished installing while we waited
            found = self.locator.find()
            if found:
                return found
            logger.info("No LaTeX toolchain found; installing TinyTeX into %s", self.config.install_dir)
            if not self._run_install(None):
                self.callbacks.on_warning("TinyTeX installation failed; trying system toolchain")
                return None
            return self.locator.find()

    def resolve_binary(self) -> str:
        """Pick the pdflatex to use: override, bundled, system, auto-install, bare name."""
        if self.config.latex_binary:
            return self.config.latex_binary
        found = self.locator.find()
        if found:
            return found
        if self.config.auto_install:
            found = self._auto_install()
            if found:
                return found
        logger.warning("No LaTeX toolchain located; falling back to %r on PATH", self.config.binary_name)
        return self.config.binary_name

    def package_manager(self, binary: str | None = None) -> PackageManager | None:
        """Return a ``PackageManager`` for the tlmgr next to *binary*, if any."""
        binary = binary or self.resolve_binary()
        tlmgr = self.locator.find_companion("tlmgr", binary)
        if tlmgr is None:
            return None
        bundled_root = str(self.locator.tinytex_root)
        return PackageManager(
            tlmgr,
            timeout=self.config.package_timeout,
            probe_timeout=self.config.probe_timeout,
            repository=self.config.package_repository,
            usermode=not tlmgr.startswith(bundled_root),
        )

    def install_packages(self, names: list[str], binary: str | None = None) -> dict[str, bool]:
        """Install *names* through tlmgr under the install lock. Never raises."""
        names = list(dict.fromkeys(names))
        if not names:
            return {}
        manager = self.package_manager(binary)
        if manager is None:
            logger.warning("tlmgr not found; cannot install %s", ", ".join(names))
            return {name: False for name in names}
        with self._lock:
            return manager.install_many(names)

    # ------------------------------------------------------------------
    # Stage handlers
    # ------------------------------------------------------------------

    def _stages(self) -> list[tuple[Stage, StageHandler]]:
        return [
            (Stage.USER_TEMPLATE, self._compile_user_template),
            (Stage.DEPENDENCY_REPAIR, self._repair_dependencies),
            (Stage.FALLBACK_TEMPLATE, self._compile_fallback),
            (Stage.ERROR_TEMPLATE, self._compile_error_notice),
        ]

    def _compile_source(self, source_text: str, work_dir: Path, binary: str) -> CompilationResult:
        source = work_dir / SOURCE_NAME
        source.write_text(source_text, encoding="utf-8")
        return run_compile(
            source,
            work_dir,
            binary,
            timeout=self.config.compile_timeout,
            min_pdf_bytes=self.config.min_pdf_bytes,
        )

    def _compile_user_template(self, req: _Request, work_dir: Path) -> CompilationResult:
        req.processed = substitute(req.body, req.data)
        return self._compile_source(req.processed, work_dir, req.binary)

    def _repair_dependencies(self, req: _Request, work_dir: Path) -> CompilationResult:
        detected = detect_missing(req.last_log)
        if detected:
            logger.info("Missing packages detected in log: %s", ", ".join(detected))
        results = self.install_packages([*self.config.common_packages, *detected], req.binary)
        installed = sum(results.values())
        req.notes[Stage.DEPENDENCY_REPAIR] = f"installed {installed}/{len(results)} packages"
        return self._compile_source(req.processed, work_dir, req.binary)

    def _compile_fallback(self, req: _Request, work_dir: Path) -> CompilationResult:
        text = strip_unresolved(substitute(FALLBACK_TEMPLATE, req.data), FALLBACK_PLACEHOLDERS)
        return self._compile_source(text, work_dir, req.binary)

    def _compile_error_notice(self, req: _Request, work_dir: Path) -> CompilationResult:
        return self._compile_source(ERROR_TEMPLATE, work_dir, req.binary)

    # ------------------------------------------------------------------
    # Attempt directories
    # ------------------------------------------------------------------

    def _new_attempt_dir(self, stage: Stage) -> Path:
        root = Path(self.config.work_dir)
        root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{time.time_ns()}-{stage.value}-", dir=root))

    def _discard_attempt_dir(self, work_dir: Path) -> None:
        if self.config.keep_attempts:
            logger.debug("Keeping attempt directory %s", work_dir)
            return
        shutil.rmtree(work_dir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Compile
    # ------------------------------------------------------------------

    def compile(
        self,
        template_body: str,
        data: Mapping[str, Any] | None,
        output_path: str | Path,
    ) -> CompileOutcome:
        """Compile *template_body* with *data* into *output_path*.

        Returns a ``CompileOutcome`` whose ``degraded`` flag tells the
        caller whether a built-in template produced the PDF.  Raises
        ``TerminalCompilationError`` only when every stage failed.
        """
        output = Path(output_path)
        req = _Request(body=template_body, data=dict(data or {}), binary=self.resolve_binary())
        attempts: list[StageAttempt] = []

        for stage, handler in self._stages():
            self.callbacks.on_stage_start(stage.value, _STAGE_DESCRIPTIONS[stage])
            attempt = StageAttempt(stage=stage)
            work_dir: Path | None = None
            try:
                work_dir = self._new_attempt_dir(stage)
                attempt.work_dir = str(work_dir)
                result = handler(req, work_dir)
                req.last_log = result.log
                attempt.log_excerpt = log_excerpt(result.log)
                attempt.missing_packages = detect_missing(result.log)
                attempt.message = req.notes.get(stage, "")
                if result.success and result.pdf_path:
                    output.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copyfile(result.pdf_path, output)
                    attempt.success = True
                elif not attempt.message:
                    attempt.message = result.errors[0] if result.errors else "no PDF produced"
            except (OSError, UnicodeError) as exc:
                # Unwritable work root, or data the source file cannot encode
                logger.error("Stage %s failed: %s", stage.value, exc)
                attempt.message = str(exc)
            finally:
                if work_dir is not None:
                    self._discard_attempt_dir(work_dir)

            attempts.append(attempt)
            self.callbacks.on_stage_end(stage.value, attempt.success)
            if attempt.success:
                if stage is not Stage.USER_TEMPLATE:
                    self.callbacks.on_warning(f"Output produced by degraded stage {stage.value}")
                logger.info("Generated PDF at %s (stage %s)", output, stage.value)
                return CompileOutcome(output_path=str(output), stage=stage, attempts=attempts)
            logger.warning("Stage %s failed: %s", stage.value, attempt.message)

        self.callbacks.on_error("Every compile stage failed")
        raise TerminalCompilationError(
            "Failed to generate PDF. Check your LaTeX installation.",
            attempts,
        )

    def compile_document(
        self,
        template_body: str,
        data: Mapping[str, Any] | None,
        output_path: str | Path,
    ) -> Path:
        """Compile and return the output path (router-facing contract)."""
        return Path(self.compile(template_body, data, output_path).output_path)

    def compile_template(
        self,
        template: Template,
        data: Mapping[str, Any] | None,
        output_path: str | Path,
    ) -> CompileOutcome:
        logger.info("Compiling template %s (%s)", template.id, template.name or "unnamed")
        return self.compile(template.body, data, output_path)

    def compile_snippet(self, content: str, output_path: str | Path) -> CompileOutcome:
        """Compile a body fragment wrapped in a minimal document (toolchain self-test)."""
        return self.compile(wrap_snippet(content), {}, output_path)

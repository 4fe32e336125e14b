"""Missing-package detection and on-demand installation through ``tlmgr``.

Log parsing here is deliberately narrow: the only thing read from a
compiler log is the "file not found" signature for ``.sty`` / ``.cls``
files.  Everything else in the log is diagnostic text.
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Iterable

from ..errors import PackageInstallError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Log analysis
# ---------------------------------------------------------------------------

# ! LaTeX Error: File `moderncv.cls' not found.
# ! LaTeX Error: File `fontawesome5.sty' not found.
_MISSING_RE = re.compile(r"File [`'‘]([^`'’\s]+)\.(?:sty|cls)[`'’] not found")

_VALID_NAME_RE = re.compile(r"^[A-Za-z0-9][\w.+-]*$")


def detect_missing(log_text: str) -> list[str]:
    """Return distinct package names reported missing, in first-seen order."""
    seen: dict[str, None] = {}
    for m in _MISSING_RE.finditer(log_text or ""):
        seen.setdefault(m.group(1), None)
    return list(seen)


# ---------------------------------------------------------------------------
# tlmgr output interpretation
# ---------------------------------------------------------------------------

_FAILURE_RE = re.compile(
    r"not present in repository|cannot find package|no installation source|\bfailed\b",
    re.IGNORECASE,
)
# [1/1, ??:??/??:??] install: enumitem [12k]
# tlmgr install: package already present: xcolor
_SUCCESS_RE = re.compile(r"\binstall:\s+\S+|already present|running mktexlsr", re.IGNORECASE)


def install_succeeded(output: str) -> bool:
    """Interpret tlmgr output. Silence or unknown wording counts as failure."""
    if not output or _FAILURE_RE.search(output):
        return False
    return bool(_SUCCESS_RE.search(output))


# ---------------------------------------------------------------------------
# Package manager
# ---------------------------------------------------------------------------


class PackageManager:
    """Thin wrapper over a ``tlmgr`` executable.

    Parameters
    ----------
    tlmgr : str
        Path to the tlmgr executable (co-located with ``pdflatex``).
    timeout : int
        Seconds allowed per package install; mirrors can be slow.
    probe_timeout : int
        Seconds allowed for initialisation commands.
    repository : str | None
        Repository pointer passed to ``tlmgr option repository``.
    usermode : bool
        Install into the user tree (system TeX Live installs).
    """

    def __init__(
        self,
        tlmgr: str,
        *,
        timeout: int = 120,
        probe_timeout: int = 30,
        repository: str | None = None,
        usermode: bool = False,
    ) -> None:
        self.tlmgr = tlmgr
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.repository = repository
        self.usermode = usermode
        self._initialized = False

    def _run(self, args: list[str], timeout: int) -> subprocess.CompletedProcess:
        cmd = [self.tlmgr, *args]
        logger.info("Running: %s", " ".join(cmd))
        return subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )

    def initialize(self) -> None:
        """Set up the user tree and repository pointer. Failures are non-fatal."""
        if self._initialized:
            return
        steps: list[list[str]] = []
        if self.usermode:
            steps.append(["init-usertree"])
        if self.repository:
            steps.append(["option", "repository", self.repository])
        for args in steps:
            try:
                proc = self._run(args, self.probe_timeout)
                if proc.returncode != 0:
                    logger.debug("tlmgr %s exited %d (may already be set up)", args[0], proc.returncode)
            except (subprocess.TimeoutExpired, OSError) as exc:
                logger.debug("tlmgr %s failed: %s", args[0], exc)
        self._initialized = True

    def _install(self, name: str) -> None:
        if not _VALID_NAME_RE.match(name):
            raise PackageInstallError(f"Refusing to install invalid package name {name!r}")
        args = (["--usermode"] if self.usermode else []) + ["install", name]
        try:
            proc = self._run(args, self.timeout)
        except subprocess.TimeoutExpired as exc:
            raise PackageInstallError(f"tlmgr install {name} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise PackageInstallError(f"tlmgr could not be started: {exc}") from exc

        output = proc.stdout or ""
        if not install_succeeded(output):
            raise PackageInstallError(
                f"tlmgr install {name} did not report success (exit {proc.returncode}): "
                f"{output.strip()[-300:]}"
            )

    def install_package(self, name: str) -> bool:
        """Install one package. Returns ``False`` instead of raising."""
        self.initialize()
        try:
            self._install(name)
        except PackageInstallError as exc:
            logger.warning("%s", exc)
            return False
        logger.info("Installed LaTeX package %s", name)
        return True

    def install_many(self, names: Iterable[str]) -> dict[str, bool]:
        """Install every package in *names*; one failure never stops the batch."""
        results: dict[str, bool] = {}
        for name in names:
            if name in results:
                continue
            results[name] = self.install_package(name)
        return results

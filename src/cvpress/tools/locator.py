"""Toolchain discovery: bundled TinyTeX first, then system LaTeX installs.

All functions here are read-only probes.  Nothing is installed and no
directory is created; the only filesystem mutation is adding the
executable bit to a bundled binary that lost it during extraction.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import stat
from pathlib import Path

from ..models import ToolchainStatus

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Search paths
# ---------------------------------------------------------------------------

# Architecture subdirectories under TinyTeX/bin, in preference order
_BUNDLED_ARCH_DIRS: dict[str, list[str]] = {
    "Windows": ["windows"],
    "Darwin": ["universal-darwin", "x86_64-darwin", "arm64-darwin"],
    "Linux": ["x86_64-linux", "aarch64-linux"],
}

_SYSTEM_DIRS: dict[str, list[str]] = {
    "Windows": [
        "C:\\texlive\\bin\\win32",
        "C:\\Program Files\\MiKTeX\\miktex\\bin\\x64",
        "C:\\Program Files (x86)\\MiKTeX\\miktex\\bin",
    ],
    "Darwin": [
        "/Library/TeX/texbin",
        "/usr/texbin",
        "/opt/homebrew/bin",  # Homebrew, Apple Silicon
        "/usr/local/bin",     # Homebrew, Intel
    ],
    "Linux": [
        "/usr/bin",
        "/usr/local/bin",
        "/usr/share/texlive/bin/x86_64-linux",
    ],
}


class ToolchainLocator:
    """Find a usable ``pdflatex`` (or companion tool) for one install directory.

    Parameters
    ----------
    install_dir : str | Path
        Application-owned directory that holds the bundled ``TinyTeX`` tree.
    binary : str
        Executable name without extension.
    system : str | None
        ``platform.system()`` value; injectable for tests.
    """

    def __init__(self, install_dir: str | Path, binary: str = "pdflatex", system: str | None = None) -> None:
        self.install_dir = Path(install_dir)
        self.binary = binary
        self.system = system or platform.system()

    @property
    def is_windows(self) -> bool:
        return self.system == "Windows"

    @property
    def tinytex_root(self) -> Path:
        return self.install_dir / "TinyTeX"

    def _exe(self, name: str) -> str:
        return f"{name}.exe" if self.is_windows else name

    # -- bundled --------------------------------------------------------

    def bundled_candidates(self, name: str | None = None) -> list[Path]:
        """Return candidate bundled paths for *name* in preference order."""
        exe = self._exe(name or self.binary)
        arch_dirs = _BUNDLED_ARCH_DIRS.get(self.system, _BUNDLED_ARCH_DIRS["Linux"])
        return [self.tinytex_root / "bin" / arch / exe for arch in arch_dirs]

    def expected_bundled_path(self) -> Path:
        """Where the installer expects the binary when nothing exists yet."""
        return self.bundled_candidates()[0]

    def find_bundled(self) -> str | None:
        """Return the bundled binary path, or ``None`` if not installed."""
        for candidate in self.bundled_candidates():
            if candidate.is_file():
                logger.debug("Found bundled %s at %s", self.binary, candidate)
                return self._ensure_executable(candidate)
        return None

    def _ensure_executable(self, path: Path) -> str:
        """Add the executable bit on Unix; fall back to the bare command name."""
        if self.is_windows or os.access(path, os.X_OK):
            return str(path)
        try:
            mode = path.stat().st_mode
            path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as exc:
            logger.warning("Cannot make %s executable (%s); using bare %s", path, exc, self.binary)
            return self.binary
        return str(path)

    # -- system ---------------------------------------------------------

    def find_system(self) -> str | None:
        """Return a system-wide binary via ``PATH`` or well-known install paths."""
        exe = self._exe(self.binary)
        found = shutil.which(self.binary) or shutil.which(exe)
        if found:
            return found
        for directory in _SYSTEM_DIRS.get(self.system, []):
            candidate = Path(directory) / exe
            if candidate.is_file():
                return str(candidate)
        return None

    # -- combined -------------------------------------------------------

    def find(self) -> str | None:
        return self.find_bundled() or self.find_system()

    def is_available(self) -> bool:
        return self.find() is not None

    def status(self) -> ToolchainStatus:
        bundled = self.find_bundled()
        system = self.find_system()
        return ToolchainStatus(
            installed=bool(bundled or system),
            system_path=system,
            bundled_path=bundled,
        )

    def find_companion(self, name: str, binary_path: str | None = None) -> str | None:
        """Locate a tool shipped next to *binary_path* (e.g. ``tlmgr``).

        ``tlmgr`` is a batch script on Windows, so ``.bat`` is tried too.
        """
        names = [f"{name}.bat", f"{name}.exe"] if self.is_windows else [name]
        if binary_path:
            parent = Path(binary_path).parent
            if str(parent) not in ("", "."):
                for n in names:
                    candidate = parent / n
                    if candidate.is_file():
                        return str(candidate)
        for n in names:
            found = shutil.which(n)
            if found:
                return found
        return None

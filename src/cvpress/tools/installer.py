"""TinyTeX bootstrapper: resolve, download, extract and verify.

The installer owns ``<install_dir>/TinyTeX`` and the downloaded archive.
``install()`` is the public entry point: it reports progress through a
``(status, percent)`` callback and returns ``False`` (after a final
``percent == -1`` report) instead of raising.  The step methods raise
``DownloadError`` / ``ExtractionError`` / ``BinaryNotFoundError`` and can
be driven individually.

Progress ranges::

    5-10   install directory
    10-15  version lookup
    15-45  download (byte-level when content-length is known)
    45-50  archive size check
    50-70  extraction
    70-100 binary verification
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import httpx

from ..errors import BinaryNotFoundError, DownloadError, ExtractionError, ToolchainInstallError
from ..models import EngineConfig
from .locator import ToolchainLocator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]

_ARCHIVE_EXT = {
    "Windows": ".zip",
    "Darwin": ".tgz",
    "Linux": ".tar.gz",
}


def _noop(status: str, progress: int) -> None:
    pass


def _content_length(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("content-length") or 0)
    except ValueError:
        return 0


class ToolchainInstaller:
    """Download and unpack a versioned TinyTeX distribution."""

    def __init__(
        self,
        config: EngineConfig,
        locator: ToolchainLocator,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.locator = locator
        self.install_dir = locator.install_dir
        self._transport = transport

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.Client:
        return httpx.Client(
            follow_redirects=True,
            timeout=httpx.Timeout(self.config.download_timeout),
            headers={"User-Agent": self.config.user_agent},
            transport=self._transport,
        )

    @property
    def archive_ext(self) -> str:
        return _ARCHIVE_EXT.get(self.locator.system, ".tar.gz")

    def archive_path(self) -> Path:
        return self.install_dir / f"tinytex{self.archive_ext}"

    # ------------------------------------------------------------------
    # Version / URL
    # ------------------------------------------------------------------

    def resolve_version(self) -> str:
        """Return the latest release tag, or the configured fallback version."""
        fallback = self.config.fallback_version
        try:
            with self._client() as client:
                response = client.get(
                    self.config.release_index_url,
                    headers={"Accept": "application/vnd.github+json"},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Release index lookup failed (%s); using %s", exc, fallback)
            return fallback

        tag = payload.get("tag_name") if isinstance(payload, dict) else None
        if not isinstance(tag, str) or not tag.strip():
            logger.warning("Release index response has no tag_name; using %s", fallback)
            return fallback
        logger.info("Latest TinyTeX release: %s", tag)
        return tag.strip()

    def download_url(self, version: str) -> str:
        base = self.config.download_base_url.rstrip("/")
        return f"{base}/{version}/{self.config.distribution}-{version}{self.archive_ext}"

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def clean_previous(self) -> None:
        """Remove an existing TinyTeX tree and stale archive. Failures are logged."""
        tree = self.locator.tinytex_root
        archive = self.archive_path()
        try:
            if tree.exists():
                shutil.rmtree(tree)
            archive.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Cleanup of previous installation failed: %s", exc)

    def download(
        self,
        url: str,
        dest: Path,
        on_progress: Callable[[float], None] | None = None,
    ) -> int:
        """Stream *url* into *dest*, following redirects. Returns bytes written."""
        received = 0
        logger.info("Downloading %s", url)
        try:
            with self._client() as client, client.stream("GET", url) as response:
                if response.history:
                    logger.info("Redirected to %s", response.url)
                if not response.is_success:
                    raise DownloadError(
                        f"Failed to download {url}: server responded with {response.status_code}"
                    )
                total = _content_length(response)
                with open(dest, "wb") as fh:
                    for chunk in response.iter_bytes():
                        fh.write(chunk)
                        received += len(chunk)
                        if total > 0 and on_progress is not None:
                            on_progress(min(received / total * 100, 100.0))
        except httpx.TooManyRedirects as exc:
            dest.unlink(missing_ok=True)
            raise DownloadError(f"Redirect loop while downloading {url}") from exc
        except httpx.HTTPError as exc:
            dest.unlink(missing_ok=True)
            raise DownloadError(f"Failed to download {url}: {exc}") from exc
        except DownloadError:
            dest.unlink(missing_ok=True)
            raise
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise DownloadError(f"Cannot write {dest}: {exc}") from exc

        logger.info("Downloaded %d bytes to %s", received, dest)
        return received

    def verify_archive(self, archive: Path) -> None:
        """Reject missing or obviously truncated downloads."""
        size = archive.stat().st_size if archive.exists() else 0
        if size < self.config.min_archive_bytes:
            raise DownloadError(
                f"Downloaded archive is too small ({size} bytes, "
                f"expected at least {self.config.min_archive_bytes})"
            )

    def _extract_command(self, archive: Path, dest: Path) -> list[str]:
        if archive.name.endswith((".tgz", ".tar.gz")):
            return ["tar", "-xzf", str(archive), "-C", str(dest)]
        if self.locator.is_windows:
            return [
                "powershell",
                "-NoProfile",
                "-Command",
                f"Expand-Archive -Path '{archive}' -DestinationPath '{dest}' -Force",
            ]
        return ["unzip", "-o", str(archive), "-d", str(dest)]

    def extract(self, archive: Path, dest: Path) -> list[Path]:
        """Unpack *archive* into *dest* with the platform archive tool."""
        cmd = self._extract_command(archive, dest)
        logger.info("Extracting: %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.extract_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExtractionError(f"Extraction timed out after {self.config.extract_timeout}s") from exc
        except OSError as exc:
            raise ExtractionError(f"Extraction failed: {exc}") from exc

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip()[-500:]
            raise ExtractionError(f"Extraction failed (exit {proc.returncode}): {detail}")

        extracted = [p for p in dest.iterdir() if p != archive] if dest.is_dir() else []
        if not extracted:
            raise ExtractionError("Extraction completed but no files were extracted")
        logger.debug("Extracted entries: %s", [p.name for p in extracted])
        return extracted

    def verify_binary(self) -> str:
        """Return the executable bundled binary path or raise ``BinaryNotFoundError``."""
        expected = self.locator.expected_bundled_path()
        found = self.locator.find_bundled()
        if found is None:
            raise BinaryNotFoundError(f"Could not find LaTeX binary at {expected}")
        if found == self.locator.binary:
            raise BinaryNotFoundError(f"LaTeX binary under {self.locator.tinytex_root} is not executable")
        return found

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def install(self, on_progress: ProgressCallback | None = None) -> bool:
        """Run the full installation. Never raises for install failures."""
        report = on_progress or _noop
        archive = self.archive_path()
        try:
            report("Preparing for LaTeX installation...", 5)
            try:
                self.install_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ToolchainInstallError(f"Cannot create {self.install_dir}: {exc}") from exc
            report("Installation directory ready", 10)

            version = self.resolve_version()
            url = self.download_url(version)
            report(f"Using TinyTeX {version}", 15)

            self.clean_previous()
            report(f"Downloading TinyTeX for {self.locator.system}...", 15)
            self.download(
                url,
                archive,
                lambda pct: report(f"Downloading TinyTeX: {round(pct)}%", 15 + round(pct * 0.30)),
            )

            report("Verifying download...", 45)
            self.verify_archive(archive)

            report("Extracting TinyTeX archive...", 50)
            self.extract(archive, self.install_dir)
            report("Archive extracted successfully", 70)

            binary = self.verify_binary()
            logger.info("LaTeX binary ready at %s", binary)
            archive.unlink(missing_ok=True)
            report("LaTeX installation complete!", 100)
            return True
        except ToolchainInstallError as exc:
            logger.error("TinyTeX installation failed: %s", exc)
            report(f"Installation failed: {exc}", -1)
            return False

"""Tests for tools/installer.py (network mocked with httpx.MockTransport)."""

from __future__ import annotations

import io
import shutil
import subprocess
import tarfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from cvpress.errors import BinaryNotFoundError, DownloadError, ExtractionError
from cvpress.models import EngineConfig
from cvpress.tools.installer import ToolchainInstaller
from cvpress.tools.locator import ToolchainLocator

INDEX_URL = "https://api.example.test/releases/latest"
BASE_URL = "https://dl.example.test/releases/download"
ARCHIVE_BODY = b"\x1f\x8b" + b"x" * 4096


def _make(tmp_path: Path, handler=None, **overrides) -> ToolchainInstaller:
    config = EngineConfig(
        install_dir=str(tmp_path / "tt"),
        work_dir=str(tmp_path / "work"),
        release_index_url=INDEX_URL,
        download_base_url=BASE_URL,
        min_archive_bytes=1024,
        **overrides,
    )
    locator = ToolchainLocator(config.install_dir, system="Linux")
    transport = httpx.MockTransport(handler) if handler is not None else None
    return ToolchainInstaller(config, locator, transport=transport)


def _release_handler(tag: str = "v2025.10.01"):
    """Serve the release index and a download that goes through one redirect."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == INDEX_URL:
            return httpx.Response(200, json={"tag_name": tag})
        if url.startswith(BASE_URL):
            return httpx.Response(302, headers={"Location": "https://objects.example.test/blob"})
        if url == "https://objects.example.test/blob":
            return httpx.Response(200, content=ARCHIVE_BODY)
        return httpx.Response(404)

    return handler


def _fake_extract(installer: ToolchainInstaller):
    """subprocess.run replacement that lays out a TinyTeX tree."""

    def side_effect(cmd, **kwargs):
        binary = installer.locator.expected_bundled_path()
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_text("#!/bin/sh\n")
        binary.chmod(0o755)
        return MagicMock(returncode=0, stdout="", stderr="")

    return side_effect


# ---------------------------------------------------------------------------
# Version resolution
# ---------------------------------------------------------------------------


class TestResolveVersion:
    def test_latest_tag(self, tmp_path):
        inst = _make(tmp_path, _release_handler("v2026.01.05"))
        assert inst.resolve_version() == "v2026.01.05"

    def test_fallback_on_server_error(self, tmp_path):
        inst = _make(tmp_path, lambda req: httpx.Response(503))
        assert inst.resolve_version() == "v2025.03.10"

    def test_fallback_on_bad_json(self, tmp_path):
        inst = _make(tmp_path, lambda req: httpx.Response(200, content=b"<html>"))
        assert inst.resolve_version() == "v2025.03.10"

    def test_fallback_on_missing_tag(self, tmp_path):
        inst = _make(tmp_path, lambda req: httpx.Response(200, json={"name": "x"}), fallback_version="v1")
        assert inst.resolve_version() == "v1"

    def test_fallback_on_network_error(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        inst = _make(tmp_path, handler)
        assert inst.resolve_version() == "v2025.03.10"

    def test_download_url(self, tmp_path):
        inst = _make(tmp_path)
        assert inst.download_url("v2025.03.10") == f"{BASE_URL}/v2025.03.10/TinyTeX-1-v2025.03.10.tar.gz"

    def test_archive_extension_per_platform(self, tmp_path):
        config = EngineConfig(install_dir=str(tmp_path), work_dir=str(tmp_path))
        for system, ext in (("Windows", ".zip"), ("Darwin", ".tgz"), ("Linux", ".tar.gz")):
            inst = ToolchainInstaller(config, ToolchainLocator(tmp_path, system=system))
            assert inst.archive_path() == tmp_path / f"tinytex{ext}"


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------


class TestDownload:
    def test_follows_redirect_to_final_body(self, tmp_path):
        inst = _make(tmp_path, _release_handler())
        dest = tmp_path / "archive.tar.gz"
        seen: list[float] = []

        written = inst.download(f"{BASE_URL}/v1/TinyTeX-1-v1.tar.gz", dest, seen.append)

        assert written == len(ARCHIVE_BODY)
        assert dest.read_bytes() == ARCHIVE_BODY
        assert seen and seen[-1] == 100.0

    def test_not_found(self, tmp_path):
        inst = _make(tmp_path, lambda req: httpx.Response(404))
        dest = tmp_path / "archive.tar.gz"
        with pytest.raises(DownloadError, match="404"):
            inst.download("https://dl.example.test/missing", dest)
        assert not dest.exists()

    def test_redirect_loop(self, tmp_path):
        def handler(request):
            return httpx.Response(302, headers={"Location": str(request.url)})

        inst = _make(tmp_path, handler)
        with pytest.raises(DownloadError, match="Redirect loop"):
            inst.download("https://dl.example.test/loop", tmp_path / "a.tgz")

    def test_connection_error_removes_partial_file(self, tmp_path):
        def handler(request):
            raise httpx.ReadError("reset", request=request)

        inst = _make(tmp_path, handler)
        dest = tmp_path / "a.tgz"
        dest.write_bytes(b"partial")
        with pytest.raises(DownloadError):
            inst.download("https://dl.example.test/a", dest)
        assert not dest.exists()

    def test_verify_archive_rejects_truncated(self, tmp_path):
        inst = _make(tmp_path)
        small = tmp_path / "small.tgz"
        small.write_bytes(b"x" * 10)
        with pytest.raises(DownloadError, match="too small"):
            inst.verify_archive(small)

    def test_verify_archive_missing(self, tmp_path):
        with pytest.raises(DownloadError):
            _make(tmp_path).verify_archive(tmp_path / "absent.tgz")


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtract:
    def test_command_per_archive_type(self, tmp_path):
        inst = _make(tmp_path)
        assert inst._extract_command(Path("a.tar.gz"), tmp_path)[:2] == ["tar", "-xzf"]
        assert inst._extract_command(Path("a.zip"), tmp_path)[0] == "unzip"

        config = EngineConfig(install_dir=str(tmp_path), work_dir=str(tmp_path))
        win = ToolchainInstaller(config, ToolchainLocator(tmp_path, system="Windows"))
        cmd = win._extract_command(Path("a.zip"), tmp_path)
        assert cmd[0] == "powershell"
        assert "Expand-Archive" in cmd[-1]

    @patch("cvpress.tools.installer.subprocess.run")
    def test_nonzero_exit(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=2, stdout="", stderr="gzip: not in gzip format")
        with pytest.raises(ExtractionError, match="not in gzip format"):
            _make(tmp_path).extract(tmp_path / "a.tar.gz", tmp_path)

    @patch("cvpress.tools.installer.subprocess.run")
    def test_timeout(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="tar", timeout=600)
        with pytest.raises(ExtractionError, match="timed out"):
            _make(tmp_path).extract(tmp_path / "a.tar.gz", tmp_path)

    @patch("cvpress.tools.installer.subprocess.run")
    def test_tool_missing(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("unzip")
        with pytest.raises(ExtractionError):
            _make(tmp_path).extract(tmp_path / "a.zip", tmp_path)

    @patch("cvpress.tools.installer.subprocess.run")
    def test_nothing_extracted(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        dest = tmp_path / "dest"
        dest.mkdir()
        archive = dest / "tinytex.tar.gz"
        archive.write_bytes(b"x")
        with pytest.raises(ExtractionError, match="no files"):
            _make(tmp_path).extract(archive, dest)

    @pytest.mark.skipif(shutil.which("tar") is None, reason="tar not available")
    def test_real_tarball(self, tmp_path):
        archive = tmp_path / "tinytex.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            data = b"#!/bin/sh\n"
            info = tarfile.TarInfo("TinyTeX/bin/x86_64-linux/pdflatex")
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
        dest = tmp_path / "tt"
        dest.mkdir()

        inst = _make(tmp_path)
        entries = inst.extract(archive, dest)

        assert [p.name for p in entries] == ["TinyTeX"]
        assert inst.verify_binary() == str(dest / "TinyTeX" / "bin" / "x86_64-linux" / "pdflatex")


# ---------------------------------------------------------------------------
# Full install
# ---------------------------------------------------------------------------


class TestInstall:
    def test_successful_install_reports_progress(self, tmp_path):
        inst = _make(tmp_path, _release_handler())
        reports: list[tuple[str, int]] = []

        with patch("cvpress.tools.installer.subprocess.run", side_effect=_fake_extract(inst)):
            assert inst.install(lambda s, p: reports.append((s, p))) is True

        percents = [p for _, p in reports]
        assert percents[0] == 5
        assert percents[-1] == 100
        assert percents == sorted(percents)
        assert all(0 <= p <= 100 for p in percents)
        assert any(15 < p <= 45 for p in percents)
        assert reports[-1][0] == "LaTeX installation complete!"
        assert not inst.archive_path().exists()
        assert inst.locator.find_bundled() is not None

    def test_download_url_uses_resolved_version(self, tmp_path):
        requested: list[str] = []
        base = _release_handler("v2026.02.01")

        def handler(request):
            requested.append(str(request.url))
            return base(request)

        inst = _make(tmp_path, handler)
        with patch("cvpress.tools.installer.subprocess.run", side_effect=_fake_extract(inst)):
            inst.install()

        assert f"{BASE_URL}/v2026.02.01/TinyTeX-1-v2026.02.01.tar.gz" in requested

    def test_failure_reports_minus_one(self, tmp_path):
        def handler(request):
            if str(request.url) == INDEX_URL:
                return httpx.Response(200, json={"tag_name": "v1"})
            return httpx.Response(404)

        inst = _make(tmp_path, handler)
        reports: list[tuple[str, int]] = []

        assert inst.install(lambda s, p: reports.append((s, p))) is False
        status, percent = reports[-1]
        assert percent == -1
        assert status.startswith("Installation failed:")
        assert "404" in status

    @patch("cvpress.tools.installer.subprocess.run")
    def test_missing_binary_after_extract(self, mock_run, tmp_path):
        inst = _make(tmp_path, _release_handler())

        def extract_without_binary(cmd, **kwargs):
            (inst.install_dir / "TinyTeX").mkdir(parents=True, exist_ok=True)
            return MagicMock(returncode=0, stdout="", stderr="")

        mock_run.side_effect = extract_without_binary
        reports: list[tuple[str, int]] = []

        assert inst.install(lambda s, p: reports.append((s, p))) is False
        assert "Could not find LaTeX binary" in reports[-1][0]
        with pytest.raises(BinaryNotFoundError):
            inst.verify_binary()

    def test_retry_after_failure_cleans_previous_attempt(self, tmp_path):
        inst = _make(tmp_path, _release_handler())
        stale = inst.locator.tinytex_root / "stale.txt"
        stale.parent.mkdir(parents=True)
        stale.write_text("left over")
        inst.archive_path().write_bytes(b"old")

        with patch("cvpress.tools.installer.subprocess.run", side_effect=_fake_extract(inst)):
            assert inst.install() is True

        assert not stale.exists()
        assert inst.locator.find_bundled() is not None

    def test_clean_previous_without_anything_installed(self, tmp_path):
        inst = _make(tmp_path)
        inst.clean_previous()
        assert not inst.locator.tinytex_root.exists()

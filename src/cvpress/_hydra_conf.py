"""Hydra structured config dataclasses.

These mirror the Pydantic ``EngineConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``EngineConfig`` via
``cli._to_engine_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore

from .models import DEFAULT_COMMON_PACKAGES


@dataclass
class CvpressConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "compile"
    verbose: bool = False
    quiet: bool = False
    template_file: str | None = None
    data_file: str | None = None
    output: str = "output.pdf"
    snippet: str | None = None
    log_file: str | None = None
    packages: list[str] = field(default_factory=list)

    # --- EngineConfig fields (1:1 mapping) ---
    install_dir: str = "${oc.env:CVPRESS_INSTALL_DIR,''}"
    work_dir: str = "${oc.env:CVPRESS_WORK_DIR,''}"
    binary_name: str = "pdflatex"
    latex_binary: str | None = None

    compile_timeout: int = 30
    package_timeout: int = 120
    probe_timeout: int = 30
    download_timeout: int = 60
    extract_timeout: int = 600

    release_index_url: str = "https://api.github.com/repos/rstudio/tinytex-releases/releases/latest"
    download_base_url: str = "https://github.com/rstudio/tinytex-releases/releases/download"
    fallback_version: str = "v2025.03.10"
    distribution: str = "TinyTeX-1"
    user_agent: str = "cvpress"

    min_archive_bytes: int = 1_000_000
    min_pdf_bytes: int = 100

    common_packages: list[str] = field(default_factory=lambda: list(DEFAULT_COMMON_PACKAGES))
    package_repository: str | None = None

    auto_install: bool = False
    keep_attempts: bool = False


# Keys present in CvpressConf that are NOT part of EngineConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "verbose", "quiet", "template_file", "data_file",
    "output", "snippet", "log_file", "packages",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="cvpress_schema", node=CvpressConf)

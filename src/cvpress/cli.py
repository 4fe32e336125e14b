"""CLI entry point using Hydra.

Usage examples:
  cvpress mode=compile template_file=cv.tex data_file=acme.yaml output=build/cv-acme.pdf
  cvpress mode=test snippet='Hello \\textbf{world}' output=test.pdf
  cvpress mode=install
  cvpress mode=status
  cvpress mode=detect log_file=build/document.log
  cvpress mode=packages 'packages=[moderncv,fontawesome5]'
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_env_fallbacks, load_data
from .errors import TerminalCompilationError
from .logging_config import RichCallbacks, console, setup_logging
from .models import CompileOutcome, EngineConfig

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic EngineConfig bridge
# ---------------------------------------------------------------------------


def _to_engine_config(cfg: DictConfig) -> EngineConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``EngineConfig``.

    CLI-only keys (``mode``, ``verbose``, etc.) are stripped before validation.
    Empty paths are resolved from the environment afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    container.pop("hydra", None)
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = EngineConfig.model_validate(container)
    return apply_env_fallbacks(config)


def _make_engine(cfg: DictConfig):
    from .engine import DocumentEngine

    return DocumentEngine(_to_engine_config(cfg), callbacks=RichCallbacks())


def _report_outcome(outcome: CompileOutcome) -> None:
    if outcome.degraded:
        console.print(f"[yellow]PDF generated with degraded stage {outcome.stage.value}: {outcome.output_path}[/]")
        for attempt in outcome.attempts:
            if not attempt.success and attempt.message:
                console.print(f"  [dim]{attempt.stage.value}:[/] {attempt.message}")
    else:
        console.print(f"[green]PDF generated: {outcome.output_path}[/]")


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _compile_mode(cfg: DictConfig) -> None:
    template_file = cfg.get("template_file")
    if not template_file:
        console.print("[red]template_file is required for compile mode[/]")
        sys.exit(1)

    body = Path(template_file).read_text(encoding="utf-8")
    data = load_data(cfg.data_file) if cfg.get("data_file") else {}

    engine = _make_engine(cfg)
    try:
        outcome = engine.compile(body, data, cfg.output)
    except TerminalCompilationError as exc:
        console.print(f"[bold red]{exc}[/]")
        sys.exit(1)
    _report_outcome(outcome)


def _test_mode(cfg: DictConfig) -> None:
    snippet = cfg.get("snippet")
    if not snippet:
        console.print("[red]snippet is required for test mode[/]")
        sys.exit(1)

    engine = _make_engine(cfg)
    try:
        outcome = engine.compile_snippet(snippet, cfg.output)
    except TerminalCompilationError as exc:
        console.print(f"[bold red]{exc}[/]")
        sys.exit(1)
    _report_outcome(outcome)


def _install_mode(cfg: DictConfig) -> None:
    engine = _make_engine(cfg)
    console.print(f"[bold]Installing TinyTeX into {engine.config.install_dir}...[/]")
    if not engine.install():
        status = engine.install_status()
        console.print(f"[bold red]Installation failed:[/] {status.error or status.status}")
        sys.exit(1)
    console.print("[bold green]LaTeX installation complete![/]")


def _status_mode(cfg: DictConfig) -> None:
    engine = _make_engine(cfg)
    status = engine.status()
    console.print(f"  Installed: {'yes' if status.installed else 'no'}")
    console.print(f"  Bundled: {status.bundled_path or '-'}")
    console.print(f"  System: {status.system_path or '-'}")
    if not status.installed:
        sys.exit(1)


def _detect_mode(cfg: DictConfig) -> None:
    from .tools.packages import detect_missing

    log_file = cfg.get("log_file")
    if not log_file:
        console.print("[red]log_file is required for detect mode[/]")
        sys.exit(1)

    missing = detect_missing(Path(log_file).read_text(encoding="utf-8", errors="replace"))
    if not missing:
        console.print("[green]No missing packages found.[/]")
        return
    for name in missing:
        console.print(f"  {name}")


def _packages_mode(cfg: DictConfig) -> None:
    names = list(cfg.get("packages") or [])
    if not names:
        console.print("[red]packages is required for packages mode[/]")
        sys.exit(1)

    engine = _make_engine(cfg)
    results = engine.install_packages(names)
    for name, ok in results.items():
        mark = "[green]OK[/]" if ok else "[red]FAILED[/]"
        console.print(f"  {name}: {mark}")
    if not all(results.values()):
        sys.exit(1)


_MODE_DISPATCH: dict[str, Any] = {
    "compile": _compile_mode,
    "test": _test_mode,
    "install": _install_mode,
    "status": _status_mode,
    "detect": _detect_mode,
    "packages": _packages_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "compile")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter

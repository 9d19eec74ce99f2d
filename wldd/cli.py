from __future__ import annotations

import logging
import platform
import sys
from importlib import metadata
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError

from wldd.config import AppConfig, config_to_snapshot, load_config
from wldd.log import configure_logging
from wldd.model import RunReport
from wldd.reporters.console import render_console
from wldd.reporters.json_report import report_to_json, write_json
from wldd.resolver import SearchPath, default_search_dirs
from wldd.scanner import ScanLimits, scan_paths

log = logging.getLogger(__name__)

app = typer.Typer(add_completion=False)


def _tool_version() -> str:
    try:
        return metadata.version("wldd")
    except metadata.PackageNotFoundError:
        return "0.1.0-dev"


def version_callback(value: bool):
    if value:
        typer.echo(f"wldd version: {_tool_version()}")
        raise typer.Exit()


def _limits_from_cfg(cfg: AppConfig) -> ScanLimits:
    lim = cfg.limits
    return ScanLimits(
        max_file_size_bytes=lim.max_file_size_bytes,
        max_descriptors=lim.max_descriptors,
        max_name_len=lim.max_name_len,
    )


def _validate_dirs(dirs: List[Path]) -> List[Path]:
    out: List[Path] = []
    for d in dirs:
        p = d.expanduser()
        if not p.is_dir():
            raise typer.BadParameter(f"Invalid search directory: {d}", param_hint="'-d' / '--dir'")
        try:
            next(p.iterdir(), None)
        except OSError as e:
            raise typer.BadParameter(f"Cannot list search directory {d}: {e}", param_hint="'-d' / '--dir'")
        out.append(p)
    return out


def build_search_dirs(user_dirs: List[Path], cfg: AppConfig) -> List[Path]:
    """User directories in the order given, then the defaults."""
    dirs = list(user_dirs)
    if cfg.search.use_default_dirs:
        if cfg.search.default_dirs:
            dirs.extend(Path(d).expanduser() for d in cfg.search.default_dirs)
        else:
            dirs.extend(default_search_dirs())
    return dirs


@app.command()
def main(
    files: List[Path] = typer.Argument(..., help="PE files to analyze."),
    dirs: Optional[List[Path]] = typer.Option(
        None, "--dir", "-d", metavar="DIRECTORY", help="Additional directory to search for dependencies (repeatable)."
    ),
    no_default_dirs: bool = typer.Option(False, "--no-default-dirs", help="Search only the -d directories."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config."),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Files analyzed in parallel."),
    as_json: bool = typer.Option(False, "--json", help="Print reports as JSON instead of text."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the JSON report to this file."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="Show version and exit."
    ),
):
    """
    List the DLLs a PE file imports and where each one is found.
    """
    try:
        cfg = load_config(config)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise typer.BadParameter(f"Cannot load config {config}: {e}", param_hint="'--config'")
    if jobs is not None:
        cfg.jobs = jobs
    if log_level:
        cfg.log_level = log_level
    if no_default_dirs:
        cfg.search.use_default_dirs = False
    configure_logging(cfg.log_level)

    user_dirs = _validate_dirs(list(dirs or []))
    search_path = SearchPath.from_dirs(build_search_dirs(user_dirs, cfg))
    log.debug("search path: %s", [str(d) for d in search_path.dirs])

    reports = scan_paths(files, search_path=search_path, limits=_limits_from_cfg(cfg), jobs=cfg.jobs)

    run = RunReport(
        tool={"name": "wldd", "version": _tool_version(), "python": sys.version, "os": platform.system()},
        search_dirs=[str(d) for d in search_path.dirs],
        config_snapshot=config_to_snapshot(cfg),
        files=reports,
    )

    if output is not None:
        write_json(output, run)
    if as_json:
        typer.echo(report_to_json(run))
    else:
        render_console(reports)

    raise typer.Exit(code=0 if run.ok else 1)


if __name__ == "__main__":
    app()

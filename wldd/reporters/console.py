from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.markup import escape

from wldd.model import DependencyEntry, DependencyStatus, FileReport

console = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def _label(dep: DependencyEntry) -> str:
    if dep.status == DependencyStatus.ERROR:
        return f"<{(dep.error or {}).get('code', 'error')}>"
    return dep.name or ""


def _target(dep: DependencyEntry) -> str:
    if dep.status == DependencyStatus.FOUND:
        return escape(dep.found_in or "")
    if dep.status == DependencyStatus.NOT_FOUND:
        return "[red]Not found[/red]"
    return f"[red]{escape((dep.error or {}).get('message', ''))}[/red]"


def render_report(report: FileReport) -> None:
    if report.failed:
        message = (report.error or {}).get("message", "unknown error")
        err_console.print(f"{escape(report.path)}: [red]{escape(message)}[/red]")
        return

    if not report.is_dynamic:
        err_console.print(f"{escape(report.path)}: not a dynamic executable")
        return

    console.print(f"{escape(report.path)}:")
    width = max(len(_label(d)) for d in report.dependencies) if report.dependencies else 0
    for dep in report.dependencies:
        console.print(f"\t{escape(_label(dep).ljust(width))} => {_target(dep)}")
    if report.imports_truncated:
        console.print("\t[yellow](import table truncated; list may be incomplete)[/yellow]")


def render_console(reports: Iterable[FileReport]) -> None:
    for r in reports:
        render_report(r)

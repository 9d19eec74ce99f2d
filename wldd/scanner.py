from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from wldd.imports import DEFAULT_MAX_DESCRIPTORS, DEFAULT_MAX_NAME_LEN, ImportTable, extract_imports
from wldd.model import DependencyEntry, DependencyStatus, FileReport, PipelineState
from wldd.pe import ErrorKind, PeParseError, _err, load_sections, read_headers
from wldd.resolver import SearchPath, resolve

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanLimits:
    max_file_size_bytes: int = 200_000_000
    max_descriptors: int = DEFAULT_MAX_DESCRIPTORS
    max_name_len: int = DEFAULT_MAX_NAME_LEN


class FileReadError(Exception):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def read_file_bytes(path: Path, *, max_bytes: int) -> bytes:
    if not path.exists():
        raise FileReadError(ErrorKind.FILE_ERROR, "No such file or directory")
    if not path.is_file():
        raise FileReadError(ErrorKind.FILE_ERROR, "not regular file")
    try:
        with path.open("rb") as f:
            data = f.read(max_bytes + 1)
    except OSError as e:
        raise FileReadError(ErrorKind.FILE_ERROR, e.strerror or str(e)) from e
    if len(data) > max_bytes:
        raise FileReadError(ErrorKind.FILE_TOO_LARGE, f"File larger than {max_bytes} bytes")
    return data


def _dependency_entries(table: ImportTable, search_path: SearchPath) -> List[DependencyEntry]:
    resolved = iter(resolve(table.names, search_path))
    out: List[DependencyEntry] = []
    for entry in table.entries:
        if entry.name is None:
            out.append(DependencyEntry(index=entry.index, status=DependencyStatus.ERROR, error=entry.issue))
            continue
        dep = next(resolved)
        out.append(
            DependencyEntry(
                index=entry.index,
                name=dep.name,
                status=DependencyStatus.FOUND if dep.found else DependencyStatus.NOT_FOUND,
                found_in=str(dep.found_in) if dep.found_in is not None else None,
            )
        )
    return out


class _Pipeline:
    """One file's linear state machine."""

    def __init__(self, report: FileReport) -> None:
        self.report = report

    def advance(self, state: PipelineState) -> None:
        log.debug("%s: %s -> %s", self.report.path, self.report.state.value, state.value)
        self.report.state = state

    def fail(self, error: dict) -> FileReport:
        log.info("%s: failed in state %s: %s", self.report.path, self.report.state.value, error["message"])
        self.report.error = error
        self.report.state = PipelineState.FAILED
        return self.report


def scan_bytes(
    data: bytes,
    *,
    path: str,
    search_path: SearchPath,
    limits: ScanLimits = ScanLimits(),
) -> FileReport:
    pipeline = _Pipeline(FileReport(path=path))
    report = pipeline.report

    try:
        headers = read_headers(data)
        pipeline.advance(PipelineState.HEADER_VALIDATED)

        image = load_sections(headers)
        report.image = image.summary()
        pipeline.advance(PipelineState.SECTIONS_LOADED)

        table = extract_imports(image, max_descriptors=limits.max_descriptors, max_name_len=limits.max_name_len)
    except PeParseError as e:
        return pipeline.fail(e.to_dict())

    report.imports_truncated = table.truncated
    report.errors.extend(table.errors)
    pipeline.advance(PipelineState.IMPORTS_EXTRACTED)

    report.dependencies = _dependency_entries(table, search_path)
    pipeline.advance(PipelineState.RESOLVED)
    return report


def scan_path(path: Path, *, search_path: SearchPath, limits: ScanLimits = ScanLimits()) -> FileReport:
    try:
        data = read_file_bytes(path, max_bytes=limits.max_file_size_bytes)
    except FileReadError as e:
        return _Pipeline(FileReport(path=str(path))).fail(_err(e.kind, e.message))
    return scan_bytes(data, path=str(path), search_path=search_path, limits=limits)


def scan_paths(
    paths: Sequence[Path],
    *,
    search_path: SearchPath,
    limits: ScanLimits = ScanLimits(),
    jobs: int = 1,
) -> List[FileReport]:
    """Scan files independently; reports come back in input order."""
    if jobs <= 1 or len(paths) <= 1:
        return [scan_path(p, search_path=search_path, limits=limits) for p in paths]
    with ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="wldd") as pool:
        return list(pool.map(lambda p: scan_path(p, search_path=search_path, limits=limits), paths))

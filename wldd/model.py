from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    """
    UTC timestamp in ISO-8601 with 'Z' suffix, seconds precision.
    Example: 2026-01-08T17:12:34Z
    """
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


class PipelineState(str, Enum):
    UNPARSED = "unparsed"
    HEADER_VALIDATED = "header_validated"
    SECTIONS_LOADED = "sections_loaded"
    IMPORTS_EXTRACTED = "imports_extracted"
    RESOLVED = "resolved"
    FAILED = "failed"


class DependencyStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class DependencyEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    name: Optional[str] = None
    status: DependencyStatus
    found_in: Optional[str] = None
    error: Optional[Dict[str, Any]] = None


class FileReport(BaseModel):
    path: str
    state: PipelineState = PipelineState.UNPARSED
    error: Optional[Dict[str, Any]] = None
    image: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[DependencyEntry] = Field(default_factory=list)
    imports_truncated: bool = False
    errors: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.state == PipelineState.FAILED

    @property
    def is_dynamic(self) -> bool:
        return bool(self.dependencies) or self.imports_truncated

    @property
    def ok(self) -> bool:
        """False when anything should make the run exit non-zero."""
        if self.failed or self.imports_truncated:
            return False
        return all(d.status == DependencyStatus.FOUND for d in self.dependencies)


class RunReport(BaseModel):
    schema_version: str = "1.0"
    timestamp_utc: str = Field(default_factory=utc_now_iso)
    tool: Dict[str, Any] = Field(default_factory=dict)
    search_dirs: List[str] = Field(default_factory=list)
    config_snapshot: Dict[str, Any] = Field(default_factory=dict)
    files: List[FileReport] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(f.ok for f in self.files)

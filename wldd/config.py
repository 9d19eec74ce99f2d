from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from wldd.imports import DEFAULT_MAX_DESCRIPTORS, DEFAULT_MAX_NAME_LEN


class Limits(BaseModel):
    max_file_size_bytes: int = Field(default=200_000_000, ge=1)
    max_descriptors: int = Field(default=DEFAULT_MAX_DESCRIPTORS, ge=0)
    max_name_len: int = Field(default=DEFAULT_MAX_NAME_LEN, ge=1)


class SearchCfg(BaseModel):
    # Replaces the SystemRoot-derived defaults when non-empty
    default_dirs: List[str] = Field(default_factory=list)
    use_default_dirs: bool = True


class AppConfig(BaseModel):
    jobs: int = Field(default=4, ge=1)
    log_level: str = "WARNING"
    search: SearchCfg = SearchCfg()
    limits: Limits = Limits()


def load_config(path: Optional[str]) -> AppConfig:
    if not path:
        return AppConfig()
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return AppConfig.model_validate(data or {})


def config_to_snapshot(cfg: AppConfig) -> Dict[str, Any]:
    return cfg.model_dump()

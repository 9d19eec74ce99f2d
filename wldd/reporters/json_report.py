from __future__ import annotations

import json
from pathlib import Path

from wldd.model import RunReport


def report_to_json(run: RunReport) -> str:
    return json.dumps(run.model_dump(mode="json"), indent=2, ensure_ascii=False)


def write_json(path: Path, run: RunReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report_to_json(run), encoding="utf-8")

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

log = logging.getLogger(__name__)


def default_search_dirs(environ: Optional[Mapping[str, str]] = None) -> List[Path]:
    """System directories searched after the user's: %SystemRoot%\\System32, SysWOW64, %SystemRoot%."""
    env = os.environ if environ is None else environ
    root = env.get("SystemRoot") or env.get("SYSTEMROOT")
    if not root:
        return []
    base = Path(root)
    return [base / "System32", base / "SysWOW64", base]


def list_directory(path: Path) -> FrozenSet[str]:
    """Case-folded names of the regular files directly inside path."""
    try:
        entries = list(path.iterdir())
    except FileNotFoundError:
        log.debug("search directory %s does not exist", path)
        return frozenset()
    except OSError as e:
        log.warning("cannot list search directory %s: %s", path, e)
        return frozenset()

    names = set()
    for p in entries:
        try:
            if p.is_file():
                names.add(p.name.casefold())
        except OSError as e:
            log.warning("skipping %s: %s", p, e)
    return frozenset(names)


@dataclass(frozen=True)
class SearchPath:
    """
    Ordered, immutable set of directory listings.
    Built once and shared by every file's resolution step.
    """

    listings: Tuple[Tuple[Path, FrozenSet[str]], ...]

    @classmethod
    def from_dirs(cls, dirs: Iterable[Path]) -> "SearchPath":
        seen = set()
        listings = []
        for d in dirs:
            d = Path(d)
            if d in seen:
                continue
            seen.add(d)
            listings.append((d, list_directory(d)))
        return cls(listings=tuple(listings))

    @property
    def dirs(self) -> List[Path]:
        return [d for d, _ in self.listings]

    def find(self, name: str) -> Optional[Path]:
        key = name.casefold()
        for d, names in self.listings:
            if key in names:
                return d
        return None


@dataclass(frozen=True)
class Dependency:
    name: str
    found_in: Optional[Path]

    @property
    def found(self) -> bool:
        return self.found_in is not None


def resolve(names: Sequence[str], search_path: SearchPath) -> List[Dependency]:
    return [Dependency(name=n, found_in=search_path.find(n)) for n in names]

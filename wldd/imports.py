from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from wldd.pe import ErrorKind, ParsedImage, PeParseError, _err

log = logging.getLogger(__name__)

IMPORT_DESCRIPTOR_SIZE = 20

DEFAULT_MAX_DESCRIPTORS = 4096
DEFAULT_MAX_NAME_LEN = 256


@dataclass(frozen=True)
class ImportEntry:
    index: int
    name_rva: int
    name: Optional[str] = None
    issue: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ImportTable:
    entries: Tuple[ImportEntry, ...] = ()
    truncated: bool = False
    errors: Tuple[Dict[str, Any], ...] = ()

    @property
    def names(self) -> List[str]:
        return [e.name for e in self.entries if e.name is not None]


def _read_c_string(data: bytes, off: int, *, max_len: int) -> Tuple[Optional[str], Optional[str]]:
    """Returns (name, problem); exactly one of them is None."""
    if off < 0 or off >= len(data):
        return None, "name offset outside file"
    end = min(len(data), off + max_len + 1)
    nul = data.find(b"\x00", off, end)
    if nul == -1:
        return None, f"no NUL terminator within {max_len} bytes"
    if nul == off:
        return None, "empty name"
    try:
        return data[off:nul].decode("ascii"), None
    except UnicodeDecodeError:
        return None, "name is not ASCII"


def _read_entry(image: ParsedImage, index: int, name_rva: int, *, max_name_len: int) -> ImportEntry:
    try:
        name_off = image.rva_to_offset(name_rva)
    except PeParseError as e:
        return ImportEntry(
            index=index,
            name_rva=name_rva,
            issue=_err(e.kind, "Import name RVA could not be mapped.", descriptor_index=index, name_rva=name_rva),
        )

    name, problem = _read_c_string(image.data, name_off, max_len=max_name_len)
    if name is None:
        return ImportEntry(
            index=index,
            name_rva=name_rva,
            issue=_err(
                ErrorKind.MALFORMED_NAME,
                f"Import name unreadable: {problem}.",
                descriptor_index=index,
                name_rva=name_rva,
            ),
        )
    return ImportEntry(index=index, name_rva=name_rva, name=name)


def extract_imports(
    image: ParsedImage,
    *,
    max_descriptors: int = DEFAULT_MAX_DESCRIPTORS,
    max_name_len: int = DEFAULT_MAX_NAME_LEN,
) -> ImportTable:
    """
    Walk the Import Directory Table in table order.

    Raises PeParseError(UnmappedRva) when the table itself cannot be located.
    Per-descriptor problems are recorded on the entry and extraction continues.
    """
    directory = image.import_directory
    if directory.size == 0:
        return ImportTable()

    data = image.data
    base_off = image.rva_to_offset(directory.rva)

    entries: List[ImportEntry] = []
    errors: List[Dict[str, Any]] = []
    truncated = False

    # The +1 lets the loop observe the truncation after the last whole descriptor.
    max_iter = max(0, (len(data) - base_off) // IMPORT_DESCRIPTOR_SIZE) + 1
    for index in range(min(max_iter, max_descriptors + 1)):
        desc_off = base_off + index * IMPORT_DESCRIPTOR_SIZE
        if desc_off + IMPORT_DESCRIPTOR_SIZE > len(data):
            truncated = True
            errors.append(
                _err(
                    ErrorKind.TRUNCATED_IMPORT_TABLE,
                    "Import descriptor table ends before its terminator.",
                    desc_off=desc_off,
                    descriptors_read=len(entries),
                )
            )
            break

        fields = struct.unpack_from("<IIIII", data, desc_off)
        if not any(fields):
            break

        if index == max_descriptors:
            truncated = True
            errors.append(
                _err(
                    ErrorKind.TRUNCATED_IMPORT_TABLE,
                    f"Import descriptor count exceeded max_descriptors={max_descriptors}.",
                    max_descriptors=max_descriptors,
                )
            )
            break

        entry = _read_entry(image, index, fields[3], max_name_len=max_name_len)
        if entry.issue is not None:
            log.warning("import descriptor %d: %s", index, entry.issue["message"])
            errors.append(entry.issue)
        entries.append(entry)

    return ImportTable(entries=tuple(entries), truncated=truncated, errors=tuple(errors))

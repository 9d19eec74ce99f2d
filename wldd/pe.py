from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

IMAGE_DOS_SIGNATURE = b"MZ"
IMAGE_NT_SIGNATURE = b"PE\x00\x00"

PE32_MAGIC = 0x10B
PE32P_MAGIC = 0x20B

DOS_HEADER_SIZE = 64
E_LFANEW_OFFSET = 0x3C
COFF_HEADER_SIZE = 20
SECTION_HEADER_SIZE = 40

# Data directory indices
DIR_IMPORT = 1

# Offsets inside the optional header: (NumberOfRvaAndSizes, DataDirectory[0])
_DD_LAYOUT = {
    PE32_MAGIC: (0x5C, 0x60),
    PE32P_MAGIC: (0x6C, 0x70),
}


class ErrorKind(str, Enum):
    NOT_A_PE_FILE = "E_PE_NOT_A_PE_FILE"
    TRUNCATED_HEADER = "E_PE_TRUNCATED_HEADER"
    UNSUPPORTED_FORMAT = "E_PE_UNSUPPORTED_FORMAT"
    TRUNCATED_SECTION_TABLE = "E_PE_TRUNCATED_SECTION_TABLE"
    UNMAPPED_RVA = "E_PE_UNMAPPED_RVA"
    TRUNCATED_IMPORT_TABLE = "E_PE_TRUNCATED_IMPORT_TABLE"
    MALFORMED_NAME = "E_PE_MALFORMED_NAME"
    FILE_ERROR = "E_FILE_ERROR"
    FILE_TOO_LARGE = "E_FILE_TOO_LARGE"


def _err(kind: ErrorKind, message: str, **extra: Any) -> Dict[str, Any]:
    d = {"code": kind.value, "message": message}
    d.update(extra)
    return d


class PeParseError(Exception):
    """Structural failure; no partial result exists for the image."""

    def __init__(self, kind: ErrorKind, message: str, **details: Any) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return _err(self.kind, self.message, **self.details)


def _u16(data: bytes, off: int) -> Optional[int]:
    if off < 0 or off + 2 > len(data):
        return None
    return struct.unpack_from("<H", data, off)[0]


def _u32(data: bytes, off: int) -> Optional[int]:
    if off < 0 or off + 4 > len(data):
        return None
    return struct.unpack_from("<I", data, off)[0]


def _safe_ascii(b: bytes) -> str:
    return b.split(b"\x00", 1)[0].decode("ascii", errors="replace")


@dataclass(frozen=True)
class DataDirectory:
    rva: int
    size: int


@dataclass(frozen=True)
class OptionalHeader32:
    number_of_rva_and_sizes: int
    import_directory: DataDirectory
    magic: int = PE32_MAGIC
    is_pe32_plus: bool = False


@dataclass(frozen=True)
class OptionalHeader64:
    number_of_rva_and_sizes: int
    import_directory: DataDirectory
    magic: int = PE32P_MAGIC
    is_pe32_plus: bool = True


OptionalHeader = Union[OptionalHeader32, OptionalHeader64]


@dataclass(frozen=True)
class SectionHeader:
    name: str
    virtual_address: int
    virtual_size: int
    raw_ptr: int
    raw_size: int

    @property
    def virtual_span(self) -> int:
        # Linkers commonly leave VirtualSize zero; the raw size then bounds the section.
        return self.virtual_size or self.raw_size

    def contains_rva(self, rva: int) -> bool:
        return self.virtual_address <= rva < self.virtual_address + self.virtual_span


@dataclass(frozen=True)
class PeHeaders:
    """Validated DOS/COFF/optional headers, before the section table is read."""

    data: bytes
    e_lfanew: int
    machine: int
    number_of_sections: int
    size_of_optional_header: int
    characteristics: int
    optional: OptionalHeader

    @property
    def section_table_offset(self) -> int:
        return self.e_lfanew + 4 + COFF_HEADER_SIZE + self.size_of_optional_header


@dataclass(frozen=True)
class ParsedImage:
    headers: PeHeaders
    sections: Tuple[SectionHeader, ...]

    @property
    def data(self) -> bytes:
        return self.headers.data

    @property
    def import_directory(self) -> DataDirectory:
        return self.headers.optional.import_directory

    @property
    def is_pe32_plus(self) -> bool:
        return self.headers.optional.is_pe32_plus

    def rva_to_offset(self, rva: int) -> int:
        """
        Translate an RVA through the section containing it.
        The result is not checked against the buffer; callers bounds-check their reads.
        """
        for s in self.sections:
            if not s.contains_rva(rva):
                continue
            delta = rva - s.virtual_address
            if delta >= s.raw_size:
                # Inside the virtual range but past the bytes backed by the file.
                continue
            return s.raw_ptr + delta
        raise PeParseError(ErrorKind.UNMAPPED_RVA, "RVA is not inside any section.", rva=rva)

    def summary(self) -> Dict[str, Any]:
        return {
            "machine": self.headers.machine,
            "is_pe32_plus": self.is_pe32_plus,
            "number_of_sections": len(self.sections),
            "import_table_rva": self.import_directory.rva,
            "import_table_size": self.import_directory.size,
        }


def _read_optional_header(data: bytes, opt_off: int, size_of_optional_header: int) -> OptionalHeader:
    magic = _u16(data, opt_off)
    if magic is None:
        raise PeParseError(ErrorKind.TRUNCATED_HEADER, "Optional header magic lies outside file.", opt_off=opt_off)
    if magic not in _DD_LAYOUT:
        raise PeParseError(ErrorKind.UNSUPPORTED_FORMAT, "Optional header magic not PE32/PE32+.", opt_magic=magic)

    num_rva_rel, dd_rel = _DD_LAYOUT[magic]
    num_rva_and_sizes = 0
    import_dir = DataDirectory(0, 0)

    # A short optional header simply has no import directory entry.
    if size_of_optional_header >= num_rva_rel + 4:
        num = _u32(data, opt_off + num_rva_rel)
        if num is None:
            raise PeParseError(ErrorKind.TRUNCATED_HEADER, "Optional header truncated.", opt_off=opt_off)
        num_rva_and_sizes = num

    entry_rel = dd_rel + DIR_IMPORT * 8
    if num_rva_and_sizes > DIR_IMPORT and entry_rel + 8 <= size_of_optional_header:
        rva = _u32(data, opt_off + entry_rel)
        size = _u32(data, opt_off + entry_rel + 4)
        if rva is None or size is None:
            raise PeParseError(ErrorKind.TRUNCATED_HEADER, "Import data directory lies outside file.", opt_off=opt_off)
        import_dir = DataDirectory(rva, size)

    if magic == PE32P_MAGIC:
        return OptionalHeader64(number_of_rva_and_sizes=num_rva_and_sizes, import_directory=import_dir)
    return OptionalHeader32(number_of_rva_and_sizes=num_rva_and_sizes, import_directory=import_dir)


def read_headers(data: bytes) -> PeHeaders:
    if len(data) < DOS_HEADER_SIZE:
        raise PeParseError(ErrorKind.TRUNCATED_HEADER, "File is smaller than a DOS header.", size=len(data))

    if data[:2] != IMAGE_DOS_SIGNATURE:
        raise PeParseError(ErrorKind.NOT_A_PE_FILE, "Missing MZ signature.")

    e_lfanew = struct.unpack_from("<I", data, E_LFANEW_OFFSET)[0]

    coff_off = e_lfanew + 4
    if coff_off + COFF_HEADER_SIZE > len(data):
        raise PeParseError(ErrorKind.TRUNCATED_HEADER, "e_lfanew points outside file.", e_lfanew=e_lfanew)

    if data[e_lfanew:coff_off] != IMAGE_NT_SIGNATURE:
        raise PeParseError(ErrorKind.NOT_A_PE_FILE, "Missing PE\\0\\0 signature.", e_lfanew=e_lfanew)

    machine, number_of_sections, _ts, _sym_ptr, _sym_count, size_opt, characteristics = struct.unpack_from(
        "<HHIIIHH", data, coff_off
    )

    optional = _read_optional_header(data, coff_off + COFF_HEADER_SIZE, size_opt)

    return PeHeaders(
        data=data,
        e_lfanew=e_lfanew,
        machine=machine,
        number_of_sections=number_of_sections,
        size_of_optional_header=size_opt,
        characteristics=characteristics,
        optional=optional,
    )


def load_sections(headers: PeHeaders) -> ParsedImage:
    data = headers.data
    sect_off = headers.section_table_offset
    count = headers.number_of_sections

    if sect_off + count * SECTION_HEADER_SIZE > len(data):
        raise PeParseError(
            ErrorKind.TRUNCATED_SECTION_TABLE,
            "Section table extends beyond end of file.",
            sect_off=sect_off,
            number_of_sections=count,
        )

    sections = []
    for i in range(count):
        sh_off = sect_off + i * SECTION_HEADER_SIZE
        virtual_size, virtual_address, raw_size, raw_ptr = struct.unpack_from("<IIII", data, sh_off + 8)
        sections.append(
            SectionHeader(
                name=_safe_ascii(data[sh_off : sh_off + 8]),
                virtual_address=virtual_address,
                virtual_size=virtual_size,
                raw_ptr=raw_ptr,
                raw_size=raw_size,
            )
        )

    return ParsedImage(headers=headers, sections=tuple(sections))


def parse_pe_bytes(data: bytes) -> ParsedImage:
    return load_sections(read_headers(data))

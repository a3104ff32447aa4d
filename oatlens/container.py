"""Parsed view of a compiled-code archive.

The descriptor area at the start of the file lists, for every source file,
its classes and for every class its compiled methods together with the
offsets of their code and side tables.  The regions those offsets point at
follow the descriptor area in no particular order and, apart from code and
invocation stubs, carry no length.
"""

from __future__ import annotations

import logging
import zlib
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .byteops import ByteReader, read_u32
from .exceptions import ContainerFormatError, MissingSource, TruncatedReadError
from .regions import RegionKind

LOGGER = logging.getLogger(__name__)

MAGIC = b"oat\n"
VERSION = b"001\x00"


class InstructionSet(IntEnum):
    NONE = 0
    ARM = 1
    THUMB2 = 2
    X86 = 3
    MIPS = 4

    def __str__(self) -> str:
        return {
            InstructionSet.NONE: "None",
            InstructionSet.ARM: "Arm",
            InstructionSet.THUMB2: "Thumb2",
            InstructionSet.X86: "X86",
            InstructionSet.MIPS: "Mips",
        }[self]


class ClassStatus(IntEnum):
    ERROR = -1
    NOT_READY = 0
    IDX = 1
    LOADED = 2
    RESOLVED = 3
    VERIFYING = 4
    VERIFIED = 5
    INITIALIZING = 6
    INITIALIZED = 7

    def __str__(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


def _optional(offset: int) -> Optional[int]:
    return offset if offset != 0 else None


@dataclass
class OatHeader:
    magic: bytes
    version: bytes
    checksum: int
    instruction_set: InstructionSet
    source_file_count: int
    executable_offset: int
    image_file_location_checksum: int
    image_file_location: str
    size: int = 0

    @property
    def magic_text(self) -> str:
        return (self.magic + self.version).decode("ascii", errors="replace").replace("\x00", "")


@dataclass
class CompiledUnit:
    """One compiled method and the offsets of its regions."""

    name: str
    source_method_idx: int
    source_insns_bytes: int
    code_offset: Optional[int]
    frame_size: int
    core_spill_mask: int
    fp_spill_mask: int
    mapping_table_offset: Optional[int] = None
    vmap_table_offset: Optional[int] = None
    gc_map_offset: Optional[int] = None
    invoke_stub_offset: Optional[int] = None
    code_size: int = 0
    invoke_stub_size: int = 0
    raw_code_offset: int = 0

    def region_offsets(self) -> Iterator[Tuple[RegionKind, int]]:
        """Yield ``(kind, offset)`` for every region the unit references."""

        for kind, offset in (
            (RegionKind.CODE, self.code_offset),
            (RegionKind.MAPPING_TABLE, self.mapping_table_offset),
            (RegionKind.VMAP_TABLE, self.vmap_table_offset),
            (RegionKind.GC_MAP, self.gc_map_offset),
            (RegionKind.INVOKE_STUB, self.invoke_stub_offset),
        ):
            if offset is not None:
                yield kind, offset


@dataclass
class ClassRecord:
    descriptor: str
    type_idx: int
    status: ClassStatus
    units: List[CompiledUnit] = field(default_factory=list)


@dataclass
class SourceFile:
    location: str
    location_checksum: int
    source_offset: Optional[int]
    classes: List[ClassRecord] = field(default_factory=list)

    @property
    def present(self) -> bool:
        return self.source_offset is not None

    def iter_units(self) -> Iterator[CompiledUnit]:
        for record in self.classes:
            yield from record.units


@dataclass
class Container:
    """Read-only view of an archive mapped at ``begin``."""

    data: bytes
    header: OatHeader
    source_files: List[SourceFile]
    begin: int = 0
    location: str = "<memory>"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        return self.begin + self.size

    @property
    def instruction_set(self) -> InstructionSet:
        return self.header.instruction_set

    def address_of(self, offset: int) -> int:
        return self.begin + offset

    def iter_units(self) -> Iterator[CompiledUnit]:
        for source in self.source_files:
            yield from source.iter_units()

    def code_offset(self, raw_offset: Optional[int]) -> Optional[int]:
        """Strip the Thumb2 mode bit from a stored code offset."""

        if not raw_offset:
            return None
        if self.instruction_set == InstructionSet.THUMB2:
            return raw_offset & ~0x1
        return raw_offset

    def code_size_at(self, code_offset: Optional[int]) -> int:
        """Return the explicit length stored in the word preceding ``code_offset``."""

        if code_offset is None:
            return 0
        try:
            return read_u32(self.data, code_offset - 4)
        except TruncatedReadError as exc:
            raise ContainerFormatError(
                f"code length for offset 0x{code_offset:08x} unreadable: {exc}"
            ) from exc

    def slice(self, offset: Optional[int], size: int) -> Optional[bytes]:
        if offset is None:
            return None
        return bytes(self.data[offset : offset + size])

    @classmethod
    def from_bytes(cls, data: bytes, *, begin: int = 0, location: str = "<memory>") -> "Container":
        try:
            return _parse(bytes(data), begin=begin, location=location)
        except TruncatedReadError as exc:
            raise ContainerFormatError(f"{location}: truncated descriptor area: {exc}") from exc


def _parse(data: bytes, *, begin: int, location: str) -> Container:
    reader = ByteReader(data)
    magic = reader.take(4)
    if magic != MAGIC:
        raise ContainerFormatError(f"{location}: bad magic {magic!r}")
    version = reader.take(4)
    if version != VERSION:
        raise ContainerFormatError(f"{location}: unsupported version {version!r}")
    checksum = reader.u32()
    isa_value = reader.u32()
    try:
        instruction_set = InstructionSet(isa_value)
    except ValueError as exc:
        raise ContainerFormatError(f"{location}: unknown instruction set {isa_value}") from exc
    header = OatHeader(
        magic=magic,
        version=version,
        checksum=checksum,
        instruction_set=instruction_set,
        source_file_count=reader.u32(),
        executable_offset=reader.u32(),
        image_file_location_checksum=reader.u32(),
        image_file_location=reader.string(),
    )
    header.size = reader.offset

    actual = zlib.adler32(data[header.size :]) & 0xFFFFFFFF
    if actual != checksum:
        LOGGER.warning(
            "%s: checksum mismatch (header 0x%08x, computed 0x%08x)", location, checksum, actual
        )

    thumb = instruction_set == InstructionSet.THUMB2
    source_files: List[SourceFile] = []
    for _ in range(header.source_file_count):
        source = SourceFile(
            location=reader.string(),
            location_checksum=reader.u32(),
            source_offset=_optional(reader.u32()),
        )
        class_count = reader.u32()
        for _ in range(class_count):
            record = ClassRecord(
                descriptor=reader.string(),
                type_idx=reader.u32(),
                status=_class_status(reader.i32(), location),
            )
            method_count = reader.u32()
            for _ in range(method_count):
                record.units.append(_read_unit(reader, data, thumb))
            source.classes.append(record)
        source_files.append(source)

    LOGGER.info(
        "Parsed %s: %d source files, %d compiled units, %d bytes",
        location,
        len(source_files),
        sum(1 for source in source_files for _ in source.iter_units()),
        len(data),
    )
    return Container(data=data, header=header, source_files=source_files, begin=begin, location=location)


def _class_status(value: int, location: str) -> ClassStatus:
    try:
        return ClassStatus(value)
    except ValueError as exc:
        raise ContainerFormatError(f"{location}: unknown class status {value}") from exc


def _read_unit(reader: ByteReader, data: bytes, thumb: bool) -> CompiledUnit:
    name = reader.string()
    source_method_idx = reader.u32()
    source_insns_bytes = reader.u32()
    raw_code = reader.u32()
    unit = CompiledUnit(
        name=name,
        source_method_idx=source_method_idx,
        source_insns_bytes=source_insns_bytes,
        code_offset=None,
        frame_size=reader.u32(),
        core_spill_mask=reader.u32(),
        fp_spill_mask=reader.u32(),
        mapping_table_offset=_optional(reader.u32()),
        vmap_table_offset=_optional(reader.u32()),
        gc_map_offset=_optional(reader.u32()),
        invoke_stub_offset=_optional(reader.u32()),
        raw_code_offset=raw_code,
    )
    if raw_code:
        unit.code_offset = raw_code & ~0x1 if thumb else raw_code
        unit.code_size = read_u32(data, unit.code_offset - 4)
    if unit.invoke_stub_offset is not None:
        unit.invoke_stub_size = read_u32(data, unit.invoke_stub_offset - 4)
    return unit


def open_container(path: Path | str, *, begin: int = 0) -> Container:
    """Load the archive at ``path``; a missing file raises :class:`MissingSource`."""

    path = Path(path)
    if not path.is_file():
        raise MissingSource(str(path), f"Failed to open oat file from {path}")
    return Container.from_bytes(path.read_bytes(), begin=begin, location=str(path))


__all__ = [
    "ClassRecord",
    "ClassStatus",
    "CompiledUnit",
    "Container",
    "InstructionSet",
    "MAGIC",
    "OatHeader",
    "SourceFile",
    "VERSION",
    "open_container",
]

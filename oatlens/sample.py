"""Synthetic archive generator for regression tests.

Tests need containers with precisely known layouts: which regions exist,
where they start, which ones are shared between methods.  This module builds
such archives from plain Python descriptions and reports where every region
ended up.  Identical regions of the same kind are emitted once and shared,
the way the compiler deduplicates code and tables.
"""

from __future__ import annotations

import logging
import struct
import zlib
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .container import MAGIC, VERSION, ClassStatus, InstructionSet
from .regions import RegionKind

LOGGER = logging.getLogger(__name__)

DEFAULT_SOURCE_PAYLOAD = b"dex\n035\x00" + bytes(8)


def encode_mapping_table(
    forward: Sequence[Tuple[int, int]], reverse: Sequence[Tuple[int, int]] = ()
) -> bytes:
    """Encode ``[total][forward][pairs...]`` with counts expressed in pairs."""

    pairs = list(forward) + list(reverse)
    out = struct.pack("<II", len(pairs), len(forward))
    for first, second in pairs:
        out += struct.pack("<II", first, second)
    return out


def encode_vmap_table(registers: Sequence[int]) -> bytes:
    return struct.pack(f"<H{len(registers)}H", len(registers), *registers)


def encode_gc_map(
    entries: Sequence[Tuple[int, Iterable[int]]], register_width: int, pc_width: int = 2
) -> bytes:
    """Encode ``(native_pc_offset, live_registers)`` entries as a GC map."""

    if not 0 < pc_width <= 7:
        raise ValueError(f"pc width must be between 1 and 7 bytes: {pc_width}")
    header = bytes(
        [
            (pc_width & 0x07) | ((register_width & 0x1F) << 3),
            (register_width >> 5) & 0xFF,
            len(entries) & 0xFF,
            (len(entries) >> 8) & 0xFF,
        ]
    )
    body = bytearray()
    for native_pc, live in entries:
        body += native_pc.to_bytes(pc_width, "little")
        bitmap = bytearray(register_width)
        for reg in live:
            if reg >= register_width * 8:
                raise ValueError(f"register v{reg} does not fit a {register_width}-byte bitmap")
            bitmap[reg // 8] |= 1 << (reg % 8)
        body += bitmap
    return header + bytes(body)


@dataclass
class MethodSpec:
    name: str
    code: bytes = b""
    source_method_idx: int = 0
    source_insns_bytes: int = 0
    frame_size: int = 0
    core_spill_mask: int = 0
    fp_spill_mask: int = 0
    mapping_table: Optional[bytes] = None
    vmap_table: Optional[bytes] = None
    gc_map: Optional[bytes] = None
    invoke_stub: Optional[bytes] = None


@dataclass
class ClassSpec:
    descriptor: str
    type_idx: int = 0
    status: ClassStatus = ClassStatus.INITIALIZED
    methods: List[MethodSpec] = field(default_factory=list)

    def add_method(self, name: str, **kwargs) -> MethodSpec:
        method = MethodSpec(name=name, **kwargs)
        self.methods.append(method)
        return method


@dataclass
class SourceFileSpec:
    location: str
    checksum: int = 0
    payload: Optional[bytes] = DEFAULT_SOURCE_PAYLOAD
    classes: List[ClassSpec] = field(default_factory=list)

    def add_class(self, descriptor: str, **kwargs) -> ClassSpec:
        record = ClassSpec(descriptor=descriptor, **kwargs)
        self.classes.append(record)
        return record


@dataclass(frozen=True)
class PlacedRegion:
    kind: RegionKind
    offset: int
    size: int


@dataclass
class BuiltContainer:
    """Bytes of a generated archive plus the placement of each region."""

    data: bytes
    header_size: int
    regions: List[PlacedRegion]
    method_regions: Dict[str, Dict[RegionKind, int]]
    source_offsets: Dict[str, Optional[int]]

    @property
    def size(self) -> int:
        return len(self.data)

    def region_starts(self) -> List[int]:
        return sorted({region.offset for region in self.regions})


def _string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


class ContainerBuilder:
    """Lay out an archive from source file, class and method descriptions."""

    def __init__(
        self,
        instruction_set: InstructionSet = InstructionSet.ARM,
        *,
        image_file_location: str = "",
        image_file_location_checksum: int = 0,
        deduplicate: bool = True,
        alignment: int = 4,
        trailing_padding: int = 0,
    ) -> None:
        self.instruction_set = instruction_set
        self.image_file_location = image_file_location
        self.image_file_location_checksum = image_file_location_checksum
        self.deduplicate = deduplicate
        self.alignment = alignment
        self.trailing_padding = trailing_padding
        self.source_files: List[SourceFileSpec] = []

    def add_source_file(self, location: str, **kwargs) -> SourceFileSpec:
        source = SourceFileSpec(location=location, **kwargs)
        self.source_files.append(source)
        return source

    def _header(self, checksum: int, executable_offset: int) -> bytes:
        return (
            MAGIC
            + VERSION
            + struct.pack(
                "<IIIII",
                checksum,
                int(self.instruction_set),
                len(self.source_files),
                executable_offset,
                self.image_file_location_checksum,
            )
            + _string(self.image_file_location)
        )

    def _descriptors(
        self,
        source_offsets: Dict[int, int],
        method_offsets: Dict[int, Dict[RegionKind, int]],
    ) -> bytes:
        out = bytearray()
        for source in self.source_files:
            out += _string(source.location)
            out += struct.pack(
                "<III", source.checksum, source_offsets.get(id(source), 0), len(source.classes)
            )
            for record in source.classes:
                out += _string(record.descriptor)
                out += struct.pack("<Iii", record.type_idx, int(record.status), len(record.methods))
                for method in record.methods:
                    regions = method_offsets.get(id(method), {})
                    code_offset = regions.get(RegionKind.CODE, 0)
                    if code_offset and self.instruction_set == InstructionSet.THUMB2:
                        code_offset |= 0x1
                    out += _string(method.name)
                    out += struct.pack(
                        "<III", method.source_method_idx, method.source_insns_bytes, code_offset
                    )
                    out += struct.pack(
                        "<IIIIIII",
                        method.frame_size,
                        method.core_spill_mask,
                        method.fp_spill_mask,
                        regions.get(RegionKind.MAPPING_TABLE, 0),
                        regions.get(RegionKind.VMAP_TABLE, 0),
                        regions.get(RegionKind.GC_MAP, 0),
                        regions.get(RegionKind.INVOKE_STUB, 0),
                    )
        return bytes(out)

    def build(self) -> BuiltContainer:
        header_size = len(self._header(0, 0))
        descriptor_size = len(self._descriptors({}, {}))
        cursor = _align(header_size + descriptor_size, self.alignment)

        chunks: List[Tuple[int, bytes]] = []
        regions: List[PlacedRegion] = []
        shared: Dict[Tuple[RegionKind, bytes], int] = {}

        def place(kind: RegionKind, blob: Optional[bytes], *, sized: bool = False) -> Optional[int]:
            nonlocal cursor
            if not blob:
                return None
            key = (kind, blob)
            if self.deduplicate and key in shared:
                return shared[key]
            cursor = _align(cursor, self.alignment)
            if sized:
                chunks.append((cursor, struct.pack("<I", len(blob))))
                cursor += 4
            offset = cursor
            chunks.append((offset, blob))
            cursor += len(blob)
            regions.append(PlacedRegion(kind, offset, len(blob)))
            shared[key] = offset
            return offset

        source_offsets: Dict[int, int] = {}
        for source in self.source_files:
            offset = place(RegionKind.SOURCE_FILE, source.payload)
            if offset is not None:
                source_offsets[id(source)] = offset

        executable_offset = _align(cursor, self.alignment)
        method_offsets: Dict[int, Dict[RegionKind, int]] = {}
        for source in self.source_files:
            for record in source.classes:
                for method in record.methods:
                    placed: Dict[RegionKind, int] = {}
                    for kind, blob, sized in (
                        (RegionKind.MAPPING_TABLE, method.mapping_table, False),
                        (RegionKind.VMAP_TABLE, method.vmap_table, False),
                        (RegionKind.GC_MAP, method.gc_map, False),
                        (RegionKind.CODE, method.code, True),
                        (RegionKind.INVOKE_STUB, method.invoke_stub, True),
                    ):
                        offset = place(kind, blob, sized=sized)
                        if offset is not None:
                            placed[kind] = offset
                    method_offsets[id(method)] = placed

        total = cursor + self.trailing_padding
        data = bytearray(total)
        prefix = self._header(0, executable_offset) + self._descriptors(source_offsets, method_offsets)
        data[: len(prefix)] = prefix
        for offset, blob in chunks:
            data[offset : offset + len(blob)] = blob
        checksum = zlib.adler32(bytes(data[header_size:])) & 0xFFFFFFFF
        data[8:12] = struct.pack("<I", checksum)

        LOGGER.debug("Built synthetic container: %d regions, %d bytes", len(regions), total)
        return BuiltContainer(
            data=bytes(data),
            header_size=header_size,
            regions=regions,
            method_regions={
                method.name: method_offsets[id(method)]
                for source in self.source_files
                for record in source.classes
                for method in record.methods
            },
            source_offsets={
                source.location: source_offsets.get(id(source)) for source in self.source_files
            },
        )


__all__ = [
    "BuiltContainer",
    "ClassSpec",
    "ContainerBuilder",
    "MethodSpec",
    "PlacedRegion",
    "SourceFileSpec",
    "encode_gc_map",
    "encode_mapping_table",
    "encode_vmap_table",
]

"""Decoders for the per-method register and PC tables.

Three compact encodings are handled here:

* vmap tables, whose entries are positionally matched against the set bits
  of a method's core and floating point spill masks,
* PC mapping tables, a single run of pairs split into a native->source half
  and a source->native half by a count field,
* GC maps, a stream of ``(native pc offset, live register bitmap)`` entries.

Every decoder is a pure function of its input bytes.  Absent tables (``None``)
decode to empty results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

from .byteops import iter_set_bits, read_u16, read_u32, read_uint
from .exceptions import (
    MalformedLiveMap,
    MalformedMappingTable,
    MalformedRegisterTable,
    TruncatedReadError,
)

SPILL_MASK_BITS = 32


class RegisterClass(Enum):
    CORE = "r"
    FP = "fr"


@dataclass(frozen=True)
class PhysicalSlot:
    """A physical register a virtual register was promoted to."""

    register_class: RegisterClass
    index: int

    def __str__(self) -> str:
        return f"{self.register_class.value}{self.index}"


@dataclass(frozen=True)
class VmapEntry:
    virtual_register: int
    slot: PhysicalSlot

    def __str__(self) -> str:
        return f"v{self.virtual_register}/{self.slot}"


def iter_spill_positions(core_spill_mask: int, fp_spill_mask: int) -> Iterator[int]:
    """Yield set bit positions of the 64-bit stream ``core`` then ``fp``.

    Core mask bits occupy positions 0..31 and floating point bits 32..63.
    """

    for bit in iter_set_bits(core_spill_mask, SPILL_MASK_BITS):
        yield bit
    for bit in iter_set_bits(fp_spill_mask, SPILL_MASK_BITS):
        yield SPILL_MASK_BITS + bit


def _slot_for_position(position: int) -> PhysicalSlot:
    if position < SPILL_MASK_BITS:
        return PhysicalSlot(RegisterClass.CORE, position)
    return PhysicalSlot(RegisterClass.FP, position - SPILL_MASK_BITS)


def decode_vmap_table(
    blob: Optional[bytes], core_spill_mask: int, fp_spill_mask: int
) -> List[VmapEntry]:
    """Decode a ``u16 count, u16 vreg...`` vmap table against the spill masks.

    Entry ``i`` is bound to the ``(i+1)``-th set bit of the concatenated mask
    stream.
    """

    if blob is None:
        return []
    try:
        count = read_u16(blob, 0)
        registers = [read_u16(blob, 2 + 2 * i) for i in range(count)]
    except TruncatedReadError as exc:
        raise MalformedRegisterTable(f"vmap table truncated: {exc}") from exc

    positions = iter_spill_positions(core_spill_mask, fp_spill_mask)
    entries: List[VmapEntry] = []
    for index, vreg in enumerate(registers):
        position = next(positions, None)
        if position is None:
            raise MalformedRegisterTable(
                f"vmap entry {index} (v{vreg}) has no matching spill mask bit "
                f"(core=0x{core_spill_mask:08x} fp=0x{fp_spill_mask:08x})"
            )
        entries.append(VmapEntry(vreg, _slot_for_position(position)))
    return entries


@dataclass
class MappingTable:
    """Decoded PC mapping table."""

    forward: List[Tuple[int, int]] = field(default_factory=list)
    reverse: List[Tuple[int, int]] = field(default_factory=list)

    def __iter__(self):
        return iter((self.forward, self.reverse))


def decode_mapping_table(blob: Optional[bytes]) -> MappingTable:
    """Split a ``[total][forward][pairs...]`` blob into its two halves.

    ``forward`` holds ``(native_pc_offset, source_pc)`` pairs ordered by native
    PC and ``reverse`` holds ``(source_pc, native_pc_offset)`` pairs ordered by
    source PC.  Both counts are expressed in pairs.
    """

    if blob is None:
        return MappingTable()
    try:
        total = read_u32(blob, 0)
        forward_count = read_u32(blob, 4)
    except TruncatedReadError as exc:
        raise MalformedMappingTable(f"mapping table header truncated: {exc}") from exc
    if forward_count > total:
        raise MalformedMappingTable(
            f"forward pair count {forward_count} exceeds total pair count {total}"
        )
    needed = 8 + total * 8
    if needed > len(blob):
        raise MalformedMappingTable(
            f"{total} pairs need {needed} bytes but only {len(blob)} are available"
        )
    pairs = [(read_u32(blob, 8 + 8 * i), read_u32(blob, 12 + 8 * i)) for i in range(total)]
    return MappingTable(forward=pairs[:forward_count], reverse=pairs[forward_count:])


@dataclass(frozen=True)
class LiveMapEntry:
    native_pc_offset: int
    bitmap: bytes

    def live_registers(self) -> Iterator[int]:
        """Yield the virtual registers whose bit is set."""

        for reg in range(len(self.bitmap) * 8):
            if (self.bitmap[reg // 8] >> (reg % 8)) & 0x01:
                yield reg


@dataclass
class LiveRegisterMap:
    pc_width: int = 0
    register_width: int = 0
    entries: List[LiveMapEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[LiveMapEntry]:
        return iter(self.entries)


GC_MAP_HEADER_SIZE = 4


def decode_gc_map(blob: Optional[bytes]) -> LiveRegisterMap:
    """Decode a native PC offset to live register bitmap table.

    Header layout: the low three bits of byte 0 hold the width of the PC
    field, the remaining bits of bytes 0-1 hold the bitmap width, and bytes
    2-3 hold the entry count.
    """

    if blob is None:
        return LiveRegisterMap()
    if len(blob) < GC_MAP_HEADER_SIZE:
        raise MalformedLiveMap(f"gc map header needs 4 bytes, got {len(blob)}")
    pc_width = blob[0] & 0x07
    register_width = (blob[0] >> 3) | (blob[1] << 5)
    count = blob[2] | (blob[3] << 8)
    entry_width = pc_width + register_width
    needed = GC_MAP_HEADER_SIZE + count * entry_width
    if needed > len(blob):
        raise MalformedLiveMap(
            f"{count} entries of {entry_width} bytes need {needed} bytes "
            f"but only {len(blob)} are available"
        )
    entries: List[LiveMapEntry] = []
    offset = GC_MAP_HEADER_SIZE
    for _ in range(count):
        pc = read_uint(blob, offset, pc_width)
        bitmap = bytes(blob[offset + pc_width : offset + entry_width])
        entries.append(LiveMapEntry(pc, bitmap))
        offset += entry_width
    return LiveRegisterMap(pc_width, register_width, entries)


def describe_spill_mask(spill_mask: int, is_float: bool) -> str:
    """Return `` (r4, r5)`` style text for ``spill_mask`` or ``""`` when empty."""

    if spill_mask == 0:
        return ""
    prefix = RegisterClass.FP.value if is_float else RegisterClass.CORE.value
    names = [f"{prefix}{bit}" for bit in iter_set_bits(spill_mask, SPILL_MASK_BITS)]
    return " (" + ", ".join(names) + ")"


def format_vmap(entries: Sequence[VmapEntry]) -> str:
    return ", ".join(str(entry) for entry in entries)


__all__ = [
    "LiveMapEntry",
    "LiveRegisterMap",
    "MappingTable",
    "PhysicalSlot",
    "RegisterClass",
    "VmapEntry",
    "decode_gc_map",
    "decode_mapping_table",
    "decode_vmap_table",
    "describe_spill_mask",
    "format_vmap",
    "iter_spill_positions",
]

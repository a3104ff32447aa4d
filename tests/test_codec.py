import struct

import pytest

from oatlens.codec import (
    PhysicalSlot,
    RegisterClass,
    decode_gc_map,
    decode_mapping_table,
    decode_vmap_table,
    describe_spill_mask,
    format_vmap,
    iter_spill_positions,
)
from oatlens.exceptions import MalformedLiveMap, MalformedMappingTable, MalformedRegisterTable


def _vmap(*registers: int) -> bytes:
    return struct.pack(f"<H{len(registers)}H", len(registers), *registers)


def test_vmap_entries_follow_core_spill_bits() -> None:
    entries = decode_vmap_table(_vmap(5, 7), 0b0000_0011, 0)

    assert [(e.virtual_register, e.slot) for e in entries] == [
        (5, PhysicalSlot(RegisterClass.CORE, 0)),
        (7, PhysicalSlot(RegisterClass.CORE, 1)),
    ]
    assert format_vmap(entries) == "v5/r0, v7/r1"


def test_vmap_entries_continue_into_fp_mask() -> None:
    entries = decode_vmap_table(_vmap(1, 2, 3), 0x0000_0010, 0b0000_0101)

    assert [str(e) for e in entries] == ["v1/r4", "v2/fr0", "v3/fr2"]


def test_vmap_high_core_register_stays_core() -> None:
    entries = decode_vmap_table(_vmap(9), 0x8000_0000, 0)
    assert str(entries[0]) == "v9/r31"


def test_vmap_exhausting_both_masks_is_malformed() -> None:
    with pytest.raises(MalformedRegisterTable):
        decode_vmap_table(_vmap(1, 2, 3), 0b1, 0b1)


def test_vmap_truncated_table_is_malformed() -> None:
    blob = struct.pack("<HH", 3, 1)
    with pytest.raises(MalformedRegisterTable):
        decode_vmap_table(blob, 0xFF, 0)


def test_absent_tables_decode_to_nothing() -> None:
    assert decode_vmap_table(None, 0xFF, 0) == []
    forward, reverse = decode_mapping_table(None)
    assert forward == [] and reverse == []
    assert len(decode_gc_map(None)) == 0


def test_spill_positions_concatenate_masks() -> None:
    assert list(iter_spill_positions(0b1001, 0b10)) == [0, 3, 33]


def test_mapping_table_splits_at_forward_count() -> None:
    pairs = [(0x10, 3), (0x20, 5), (3, 0x10), (5, 0x20)]
    blob = struct.pack("<II", 4, 2) + b"".join(struct.pack("<II", a, b) for a, b in pairs)

    table = decode_mapping_table(blob)

    assert table.forward == [(0x10, 3), (0x20, 5)]
    assert table.reverse == [(3, 0x10), (5, 0x20)]


def test_mapping_table_ignores_trailing_padding() -> None:
    blob = struct.pack("<IIII", 1, 1, 0x8, 0x1) + b"\x00" * 4
    forward, reverse = decode_mapping_table(blob)
    assert forward == [(0x8, 0x1)]
    assert reverse == []


def test_mapping_table_forward_count_beyond_total_is_malformed() -> None:
    blob = struct.pack("<IIII", 1, 2, 0, 0)
    with pytest.raises(MalformedMappingTable):
        decode_mapping_table(blob)


@pytest.mark.parametrize(
    "blob",
    [
        b"\x01\x00",
        struct.pack("<IIII", 2, 1, 0x4, 0x0),
    ],
)
def test_mapping_table_truncation_is_malformed(blob: bytes) -> None:
    with pytest.raises(MalformedMappingTable):
        decode_mapping_table(blob)


def test_gc_map_entries_and_live_registers() -> None:
    # pc width 1, register width 2 bytes, 2 entries
    header = bytes([0x01 | (2 << 3), 0x00, 0x02, 0x00])
    entries = bytes([0x04, 0b0000_1001, 0b0000_0001, 0x10, 0x00, 0x80])

    live_map = decode_gc_map(header + entries)

    assert live_map.pc_width == 1
    assert live_map.register_width == 2
    assert [entry.native_pc_offset for entry in live_map] == [0x04, 0x10]
    assert list(live_map.entries[0].live_registers()) == [0, 3, 8]
    assert list(live_map.entries[1].live_registers()) == [15]


def test_gc_map_wide_register_bitmap_uses_second_header_byte() -> None:
    register_width = 40
    header = bytes([0x02 | ((register_width & 0x1F) << 3), register_width >> 5, 0x01, 0x00])
    body = (0x1234).to_bytes(2, "little") + bytes(register_width)

    live_map = decode_gc_map(header + body)

    assert live_map.register_width == 40
    assert live_map.entries[0].native_pc_offset == 0x1234
    assert list(live_map.entries[0].live_registers()) == []


@pytest.mark.parametrize(
    "blob",
    [
        b"\x09\x00",
        bytes([0x01 | (1 << 3), 0x00, 0x03, 0x00, 0x04, 0x01]),
    ],
)
def test_gc_map_truncation_is_malformed(blob: bytes) -> None:
    with pytest.raises(MalformedLiveMap):
        decode_gc_map(blob)


def test_describe_spill_mask() -> None:
    assert describe_spill_mask(0, False) == ""
    assert describe_spill_mask(0x00004030, False) == " (r4, r5, r14)"
    assert describe_spill_mask(0b101, True) == " (fr0, fr2)"

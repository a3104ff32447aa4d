import logging
import struct

import pytest

from conftest import HASH_CODE, INIT, NATIVE, NATIVE_CODE, NATIVE_STUB, SHARED_CODE, make_builder
from oatlens.container import ClassStatus, Container, InstructionSet, open_container
from oatlens.exceptions import ContainerFormatError, MissingSource
from oatlens.regions import RegionKind


def test_parse_header_and_descriptors(built) -> None:
    container = Container.from_bytes(built.data)

    header = container.header
    assert header.magic_text == "oat\n001"
    assert header.instruction_set is InstructionSet.ARM
    assert header.source_file_count == 2
    assert header.image_file_location == "/system/framework/boot.art"

    core, missing = container.source_files
    assert core.location == "core.dex"
    assert core.location_checksum == 0x1234ABCD
    assert core.present
    assert not missing.present

    record = core.classes[0]
    assert record.descriptor == "Ljava/lang/Object;"
    assert record.type_idx == 3
    assert record.status is ClassStatus.INITIALIZED
    assert [unit.name for unit in record.units] == [INIT, HASH_CODE, NATIVE]


def test_units_carry_region_offsets_and_explicit_sizes(built) -> None:
    container = Container.from_bytes(built.data)
    init, hash_code, native = container.iter_units()

    regions = built.method_regions[INIT]
    assert init.code_offset == regions[RegionKind.CODE]
    assert init.code_size == len(SHARED_CODE)
    assert init.mapping_table_offset == regions[RegionKind.MAPPING_TABLE]
    assert init.vmap_table_offset == regions[RegionKind.VMAP_TABLE]
    assert init.gc_map_offset == regions[RegionKind.GC_MAP]
    assert init.invoke_stub_offset is None
    assert init.core_spill_mask == 0x30

    assert native.code_size == len(NATIVE_CODE)
    assert native.invoke_stub_size == len(NATIVE_STUB)
    assert native.gc_map_offset is None
    assert dict(native.region_offsets()).keys() == {RegionKind.CODE, RegionKind.INVOKE_STUB}


def test_identical_code_is_shared(built) -> None:
    container = Container.from_bytes(built.data)
    init, hash_code, _ = container.iter_units()

    assert init.code_offset == hash_code.code_offset
    assert init.gc_map_offset == hash_code.gc_map_offset
    assert container.slice(init.code_offset, init.code_size) == SHARED_CODE


def test_thumb2_code_offsets_drop_mode_bit() -> None:
    built = make_builder(InstructionSet.THUMB2).build()
    container = Container.from_bytes(built.data)
    init = next(container.iter_units())

    assert init.raw_code_offset & 1 == 1
    assert init.code_offset == built.method_regions[INIT][RegionKind.CODE]
    assert container.code_offset(init.raw_code_offset) == init.code_offset
    assert container.code_size_at(init.code_offset) == len(SHARED_CODE)


def test_begin_shifts_addresses_only(built) -> None:
    container = Container.from_bytes(built.data, begin=0x70000000)
    assert container.end == 0x70000000 + len(built.data)
    assert container.address_of(0x40) == 0x70000040


def test_bad_magic_is_rejected(built) -> None:
    with pytest.raises(ContainerFormatError):
        Container.from_bytes(b"elf\n" + built.data[4:])


def test_unknown_instruction_set_is_rejected(built) -> None:
    data = built.data[:12] + struct.pack("<I", 99) + built.data[16:]
    with pytest.raises(ContainerFormatError):
        Container.from_bytes(data)


def test_truncated_descriptor_area_is_rejected(built) -> None:
    with pytest.raises(ContainerFormatError):
        Container.from_bytes(built.data[:40])


def test_checksum_mismatch_is_only_logged(built, caplog) -> None:
    data = bytearray(built.data)
    data[-1] ^= 0xFF
    with caplog.at_level(logging.WARNING, logger="oatlens.container"):
        container = Container.from_bytes(bytes(data))
    assert container.header.source_file_count == 2
    assert "checksum mismatch" in caplog.text


def test_open_container_missing_file(tmp_path) -> None:
    with pytest.raises(MissingSource):
        open_container(tmp_path / "absent.oat")


def test_open_container_reads_file(tmp_path, built) -> None:
    path = tmp_path / "boot.oat"
    path.write_bytes(built.data)

    container = open_container(path, begin=0x1000)

    assert container.location == str(path)
    assert container.begin == 0x1000
    assert container.size == len(built.data)


def test_builder_is_part_of_the_public_api() -> None:
    import oatlens
    from oatlens.sample import ContainerBuilder

    assert oatlens.ContainerBuilder is ContainerBuilder
    built = oatlens.ContainerBuilder(InstructionSet.MIPS).build()
    assert oatlens.Container.from_bytes(built.data).header.source_file_count == 0

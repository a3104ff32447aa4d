"""Test configuration ensuring the project package is importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent

root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from oatlens.container import InstructionSet  # noqa: E402
from oatlens.sample import (  # noqa: E402
    BuiltContainer,
    ContainerBuilder,
    encode_gc_map,
    encode_mapping_table,
    encode_vmap_table,
)

INIT = "void java.lang.Object.<init>()"
HASH_CODE = "int java.lang.Object.hashCode()"
NATIVE = "int java.lang.Object.identityHashCodeNative(java.lang.Object)"

SHARED_CODE = bytes(range(0x10, 0x18))
NATIVE_CODE = b"\x01\x02\x03\x04"
NATIVE_STUB = b"\xaa\xbb\xcc\xdd"


def make_builder(instruction_set: InstructionSet = InstructionSet.ARM, **kwargs) -> ContainerBuilder:
    """Two source files: ``core.dex`` with three methods and an absent one."""

    builder = ContainerBuilder(instruction_set, image_file_location="/system/framework/boot.art", **kwargs)
    core = builder.add_source_file("core.dex", checksum=0x1234ABCD)
    record = core.add_class("Ljava/lang/Object;", type_idx=3)
    shared_tables = dict(
        core_spill_mask=0x00000030,
        fp_spill_mask=0,
        mapping_table=encode_mapping_table([(0x4, 0x0), (0x8, 0x2)], [(0x0, 0x4), (0x2, 0x8)]),
        vmap_table=encode_vmap_table([5, 7]),
        gc_map=encode_gc_map([(0x4, [0, 3])], register_width=1),
    )
    record.add_method(INIT, code=SHARED_CODE, source_method_idx=0, source_insns_bytes=4, frame_size=16, **shared_tables)
    record.add_method(HASH_CODE, code=SHARED_CODE, source_method_idx=1, source_insns_bytes=4, frame_size=16, **shared_tables)
    record.add_method(NATIVE, code=NATIVE_CODE, source_method_idx=2, invoke_stub=NATIVE_STUB)
    builder.add_source_file("missing.dex", checksum=0x0BADF00D, payload=None)
    return builder


@pytest.fixture
def built() -> BuiltContainer:
    return make_builder().build()

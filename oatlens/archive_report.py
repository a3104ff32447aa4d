"""Text dump of an archive: header, source files, classes and compiled units."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TextIO

from .codec import (
    decode_gc_map,
    decode_mapping_table,
    decode_vmap_table,
    describe_spill_mask,
    format_vmap,
)
from .config import ReportConfig
from .container import ClassRecord, CompiledUnit, Container, SourceFile
from .disassembler import Disassemble, create_disassembler
from .exceptions import TableDecodeError
from .extents import ExtentRegistry

LOGGER = logging.getLogger(__name__)


class ArchiveReport:
    """Render the oat dump of one container."""

    def __init__(
        self,
        container: Container,
        *,
        config: Optional[ReportConfig] = None,
        disassembler: Optional[Disassemble] = None,
    ) -> None:
        self.container = container
        self.config = config or ReportConfig()
        self.registry = ExtentRegistry.for_container(container)
        if disassembler is None and self.config.disassemble:
            disassembler = create_disassembler(container)
        self.disassembler = disassembler
        self.decode_failures = 0

    def table_bytes(self, offset: Optional[int]) -> Optional[bytes]:
        """Return the bytes of the table at ``offset`` up to its inferred end."""

        if offset is None:
            return None
        return self.container.slice(offset, self.registry.size_of(offset))

    def dump(self, out: TextIO) -> None:
        container = self.container
        header = container.header

        out.write("MAGIC:\n")
        out.write(f"{header.magic_text}\n\n")
        out.write("CHECKSUM:\n")
        out.write(f"0x{header.checksum:08x}\n\n")
        out.write("INSTRUCTION SET:\n")
        out.write(f"{header.instruction_set}\n\n")
        out.write("DEX FILE COUNT:\n")
        out.write(f"{header.source_file_count}\n\n")
        out.write("EXECUTABLE OFFSET:\n")
        out.write(f"0x{header.executable_offset:08x}\n\n")
        out.write("IMAGE FILE LOCATION CHECKSUM:\n")
        out.write(f"0x{header.image_file_location_checksum:08x}\n\n")
        out.write("IMAGE FILE LOCATION:\n")
        location = header.image_file_location
        out.write(location)
        if location and self.config.host_prefix:
            out.write(f" ({self.config.host_prefix}{location})")
        out.write("\n\n")
        out.write("BEGIN:\n")
        out.write(f"0x{container.begin:08x}\n\n")
        out.write("END:\n")
        out.write(f"0x{container.end:08x}\n\n")

        for source in container.source_files:
            self.dump_source_file(out, source)

    def dump_source_file(self, out: TextIO, source: SourceFile) -> None:
        out.write("OAT DEX FILE:\n")
        out.write(f"location: {source.location}\n")
        out.write(f"checksum: 0x{source.location_checksum:08x}\n")
        if not source.present:
            LOGGER.warning("Source file %s not present in %s", source.location, self.container.location)
            out.write("NOT FOUND\n\n")
            return
        for index, record in enumerate(source.classes):
            out.write(f"{index}: {record.descriptor} (type_idx={record.type_idx}) ({record.status})\n")
            self.dump_class(out, record)

    def dump_class(self, out: TextIO, record: ClassRecord) -> None:
        for index, unit in enumerate(record.units):
            self.dump_unit(out, index, unit)

    def dump_unit(self, out: TextIO, index: int, unit: CompiledUnit) -> None:
        address = self.container.address_of
        out.write(f"\t{index}: {unit.name} (dex_method_idx={unit.source_method_idx})\n")
        out.write(f"\t\tframe_size_in_bytes: {unit.frame_size}\n")
        out.write(f"\t\tcore_spill_mask: 0x{unit.core_spill_mask:08x}")
        out.write(describe_spill_mask(unit.core_spill_mask, False))
        out.write(f"\n\t\tfp_spill_mask: 0x{unit.fp_spill_mask:08x}")
        out.write(describe_spill_mask(unit.fp_spill_mask, True))
        out.write(
            f"\n\t\tmapping_table: {_pointer(unit.mapping_table_offset, address)} "
            f"(offset=0x{unit.mapping_table_offset or 0:08x})\n"
        )
        self._guarded(out, unit, "mapping table", lambda: self._mapping_table(unit))
        out.write(
            f"\t\tvmap_table: {_pointer(unit.vmap_table_offset, address)} "
            f"(offset=0x{unit.vmap_table_offset or 0:08x})\n"
        )
        self._guarded(out, unit, "vmap table", lambda: self._vmap_table(unit))
        out.write(
            f"\t\tgc_map: {_pointer(unit.gc_map_offset, address)} "
            f"(offset=0x{unit.gc_map_offset or 0:08x})\n"
        )
        self._guarded(out, unit, "gc map", lambda: self._gc_map(unit))
        out.write(
            f"\t\tCODE: {_pointer(unit.code_offset, address)} "
            f"(offset=0x{unit.raw_code_offset:08x} size={unit.code_size})"
            f"{'...' if unit.code_offset is not None else ''}\n"
        )
        self._code(out, unit.code_offset, unit.code_size)
        out.write(
            f"\t\tINVOKE STUB: {_pointer(unit.invoke_stub_offset, address)} "
            f"(offset=0x{unit.invoke_stub_offset or 0:08x} size={unit.invoke_stub_size})"
            f"{'...' if unit.invoke_stub_offset is not None else ''}\n"
        )
        self._code(out, unit.invoke_stub_offset, unit.invoke_stub_size)

    def _guarded(self, out: TextIO, unit: CompiledUnit, what: str, render: Callable[[], str]) -> None:
        try:
            text = render()
        except TableDecodeError as exc:
            self.decode_failures += 1
            LOGGER.warning("Skipping %s of %s: %s", what, unit.name, exc)
            out.write(f"\t\t\t<malformed {what}: {exc}>\n")
            return
        out.write(text)

    def _mapping_table(self, unit: CompiledUnit) -> str:
        if unit.mapping_table_offset is None or unit.code_offset is None:
            return ""
        table = decode_mapping_table(self.table_bytes(unit.mapping_table_offset))
        code = self.container.address_of(unit.code_offset)
        forward = ", ".join(f"0x{code + native:08x} -> 0x{pc:04x}" for native, pc in table.forward)
        reverse = ", ".join(f"0x{pc:04x} -> 0x{code + native:08x}" for pc, native in table.reverse)
        return f"\t\t{{{forward}}}\n\t\t{{{reverse}}}\n"

    def _vmap_table(self, unit: CompiledUnit) -> str:
        if unit.vmap_table_offset is None:
            return ""
        entries = decode_vmap_table(
            self.table_bytes(unit.vmap_table_offset), unit.core_spill_mask, unit.fp_spill_mask
        )
        return f"\t\t\t{format_vmap(entries)}\n"

    def _gc_map(self, unit: CompiledUnit) -> str:
        if unit.gc_map_offset is None:
            return ""
        live_map = decode_gc_map(self.table_bytes(unit.gc_map_offset))
        code = self.container.address_of(unit.code_offset or 0)
        lines: List[str] = []
        for entry in live_map:
            registers = ", ".join(f"v{reg}" for reg in entry.live_registers())
            line = f"\t\t\t0x{code + entry.native_pc_offset:08x}"
            if registers:
                line += f"  {registers}"
            lines.append(line + "\n")
        return "".join(lines)

    def _code(self, out: TextIO, offset: Optional[int], size: int) -> None:
        if offset is None or size == 0 or self.disassembler is None:
            return
        start = self.container.address_of(offset)
        out.write(self.disassembler(start, start + size))


def _pointer(offset: Optional[int], address: Callable[[int], int]) -> str:
    if offset is None:
        return "0x00000000"
    return f"0x{address(offset):08x}"


__all__ = ["ArchiveReport"]

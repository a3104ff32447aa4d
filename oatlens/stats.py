"""Byte accounting for an image and the archive it references."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TextIO

from .exceptions import AccountingInvariantViolation
from .outliers import OutlierSummary, pretty_size

LOGGER = logging.getLogger(__name__)


def round_up(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


def _percent(part: int, whole: int) -> float:
    if whole == 0:
        return 0.0
    return part / whole * 100


@dataclass
class SizeAndCount:
    bytes: int = 0
    count: int = 0


@dataclass
class ImageStats:
    """Category totals collected while walking an image's objects."""

    oat_file_bytes: int = 0
    file_bytes: int = 0

    header_bytes: int = 0
    object_bytes: int = 0
    alignment_bytes: int = 0

    managed_code_bytes: int = 0
    managed_code_bytes_ignoring_deduplication: int = 0
    managed_to_native_code_bytes: int = 0
    native_to_managed_code_bytes: int = 0
    class_initializer_code_bytes: int = 0
    large_initializer_code_bytes: int = 0
    large_method_code_bytes: int = 0

    gc_map_bytes: int = 0
    pc_mapping_table_bytes: int = 0
    vmap_table_bytes: int = 0

    dex_instruction_bytes: int = 0

    sizes_and_counts: Dict[str, SizeAndCount] = field(default_factory=dict)

    def add_object(self, descriptor: str, object_bytes: int, alignment: int) -> None:
        """Count an object's bytes plus the padding up to ``alignment``."""

        self.object_bytes += object_bytes
        self.alignment_bytes += round_up(object_bytes, alignment) - object_bytes
        entry = self.sizes_and_counts.setdefault(descriptor, SizeAndCount())
        entry.bytes += object_bytes
        entry.count += 1

    def set_header(self, header_bytes: int, alignment: int) -> None:
        self.header_bytes = header_bytes
        self.alignment_bytes += round_up(header_bytes, alignment) - header_bytes

    def check(self) -> None:
        """Raise :class:`AccountingInvariantViolation` unless the totals reconcile."""

        accounted = self.header_bytes + self.object_bytes + self.alignment_bytes
        if accounted != self.file_bytes:
            raise AccountingInvariantViolation(
                f"header_bytes ({self.header_bytes}) + object_bytes ({self.object_bytes}) + "
                f"alignment_bytes ({self.alignment_bytes}) = {accounted}, "
                f"expected file size {self.file_bytes}"
            )
        breakdown = sum(entry.bytes for entry in self.sizes_and_counts.values())
        if breakdown != self.object_bytes:
            raise AccountingInvariantViolation(
                f"per-descriptor object bytes sum to {breakdown}, expected {self.object_bytes}"
            )

    def expansion(self) -> tuple[float, float]:
        if self.dex_instruction_bytes == 0:
            return 0.0, 0.0
        return (
            self.managed_code_bytes / self.dex_instruction_bytes,
            self.managed_code_bytes_ignoring_deduplication / self.dex_instruction_bytes,
        )

    def dump(self, out: TextIO, outliers: Optional[OutlierSummary] = None) -> None:

        out.write(f"\tart_file_bytes = {pretty_size(self.file_bytes)}\n\n")
        out.write("\tart_file_bytes = header_bytes + object_bytes + alignment_bytes\n")
        for name, value in (
            ("header_bytes", self.header_bytes),
            ("object_bytes", self.object_bytes),
            ("alignment_bytes", self.alignment_bytes),
        ):
            out.write(f"\t{name:<15} =  {value:8d} ({_percent(value, self.file_bytes):2.0f}% of art file bytes)\n")
        out.write("\n")

        self.check()

        out.write("\tobject_bytes breakdown:\n")
        for descriptor in sorted(self.sizes_and_counts):
            entry = self.sizes_and_counts[descriptor]
            average = entry.bytes / entry.count
            percent = _percent(entry.bytes, self.object_bytes)
            out.write(
                f"\t{descriptor:>32} {entry.bytes:8d} bytes {entry.count:6d} instances "
                f"({average:4.0f} bytes/instance) {percent:2.0f}% of object_bytes\n"
            )
        out.write("\n")

        code_rows: List[List[tuple[str, int]]] = [
            [
                ("managed_code_bytes", self.managed_code_bytes),
                ("managed_to_native_code_bytes", self.managed_to_native_code_bytes),
                ("native_to_managed_code_bytes", self.native_to_managed_code_bytes),
            ],
            [
                ("class_initializer_code_bytes", self.class_initializer_code_bytes),
                ("large_initializer_code_bytes", self.large_initializer_code_bytes),
                ("large_method_code_bytes", self.large_method_code_bytes),
            ],
        ]
        for group in code_rows:
            for name, value in group:
                out.write(f"\t{name:<28} = {value:8d} ({_percent(value, self.oat_file_bytes):2.0f}% of oat file bytes)\n")
            out.write("\n")

        for name, value in (
            ("gc_map_bytes", self.gc_map_bytes),
            ("pc_mapping_table_bytes", self.pc_mapping_table_bytes),
            ("vmap_table_bytes", self.vmap_table_bytes),
        ):
            out.write(f"\t{name:<22} = {value:7d} ({_percent(value, self.oat_file_bytes):2.0f}% of oat file_bytes)\n")
        out.write("\n")

        deduplicated, ignoring = self.expansion()
        out.write(f"\tdex_instruction_bytes = {self.dex_instruction_bytes}\n")
        out.write(
            f"\tmanaged_code_bytes expansion = {deduplicated:.2f} "
            f"(ignoring deduplication {ignoring:.2f})\n\n"
        )

        if outliers is not None:
            out.write(outliers.to_text())


__all__ = ["ImageStats", "SizeAndCount", "round_up"]

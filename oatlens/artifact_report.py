"""Image dump: per-object summaries, size attribution and outliers.

Objects are visited in walk order.  Methods with compiled code have their
code and side tables attributed through a :class:`~oatlens.ledger.SizeLedger`
so regions shared between methods are counted once, and contribute a
``(size, expansion)`` sample to the outlier report printed with the stats.
"""

from __future__ import annotations

import contextlib
import itertools
import json
import logging
from pathlib import Path
from typing import Callable, ContextManager, Dict, Iterable, List, Optional, TextIO, Tuple

from .archive_report import ArchiveReport
from .config import ReportConfig
from .container import Container, open_container
from .exceptions import MissingSource
from .ledger import SizeLedger
from .outliers import OutlierDetector
from .regions import RegionKind
from .snapshot import (
    IMAGE_ROOT_NAMES,
    FieldValue,
    HeapObject,
    ImageSnapshot,
    MethodInfo,
    ObjectKind,
    ObjectRef,
)
from .stats import ImageStats

LOGGER = logging.getLogger(__name__)

ContainerLoader = Callable[..., Container]


def _format_value(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value} (0x{value & 0xFFFFFFFFFFFFFFFF:x})"
    if isinstance(value, float):
        return f"{value:f}"
    if isinstance(value, str):
        return json.dumps(value)
    return str(value)


class ArtifactReport:
    """Render the image dump of a heap snapshot and its archive."""

    def __init__(
        self,
        snapshot: ImageSnapshot,
        *,
        config: Optional[ReportConfig] = None,
        boot_snapshots: Iterable[ImageSnapshot] = (),
        container_loader: ContainerLoader = open_container,
    ) -> None:
        self.snapshot = snapshot
        self.header = snapshot.header
        self.config = config or ReportConfig()
        self.boot_snapshots = list(boot_snapshots)
        self.container_loader = container_loader
        self.stats = ImageStats()
        self.detector = OutlierDetector(
            cap=self.config.outlier_report_cap,
            size_sweep_start=self.config.size_sweep_start,
            expansion_sweep_start=self.config.expansion_sweep_start,
        )
        self.container: Optional[Container] = None
        self.archive: Optional[ArchiveReport] = None
        self.ledger: Optional[SizeLedger] = None

    def oat_path(self) -> str:
        return self.config.host_prefix + self.header.oat_location

    def dump(self, out: TextIO, *, heap_lock: Optional[ContextManager] = None) -> bool:
        """Write the report; return ``False`` when the archive was not found.

        ``heap_lock`` is held for the whole object walk so the objects being
        attributed cannot change underneath it.
        """

        header = self.header
        out.write("MAGIC:\n")
        out.write(f"{header.magic}\n\n")
        out.write("IMAGE BEGIN:\n")
        out.write(f"0x{header.image_begin:08x}\n\n")
        out.write("OAT CHECKSUM:\n")
        out.write(f"0x{header.oat_checksum:08x}\n\n")
        out.write("OAT BEGIN:\n")
        out.write(f"0x{header.oat_begin:08x}\n\n")
        out.write("OAT END:\n")
        out.write(f"0x{header.oat_end:08x}\n\n")

        out.write("ROOTS:\n")
        for name in IMAGE_ROOT_NAMES:
            address = header.roots.get(name)
            out.write(f"{name}: {'null' if address is None else f'0x{address:08x}'}\n")
        out.write("\n")

        out.write("OAT LOCATION:\n")
        out.write(header.oat_location)
        if self.config.host_prefix:
            out.write(f" ({self.oat_path()})")
        out.write("\n")
        try:
            self.container = self.container_loader(Path(self.oat_path()), begin=header.oat_begin)
        except MissingSource as exc:
            LOGGER.error("Oat file for image %s not found: %s", self.snapshot.location, exc)
            out.write("NOT FOUND\n")
            return False
        out.write("\n")

        self.stats.oat_file_bytes = self.container.size
        self.archive = ArchiveReport(self.container, config=self.config)
        self.ledger = SizeLedger(self.archive.registry)

        out.write("OBJECTS:\n")
        with heap_lock if heap_lock is not None else contextlib.nullcontext():
            for snapshot in [self.snapshot, *self.boot_snapshots]:
                for obj in snapshot.walk():
                    self.visit(out, obj)
                out.write("\n")

        out.write("STATS:\n")
        self.stats.file_bytes = header.file_bytes
        self.stats.set_header(header.header_bytes, self.config.object_alignment)
        self.stats.dump(out, self.detector.finalize())
        out.write("\n")

        self.archive.dump(out)
        return True

    def visit(self, out: TextIO, obj: HeapObject) -> None:
        if not self.header.contains(obj.address):
            return
        self.stats.add_object(obj.descriptor, obj.size, self.config.object_alignment)

        lines: List[str] = [_summary(obj)]
        lines.extend(_field_lines(obj.fields))
        if obj.elements is not None:
            lines.extend(_element_lines(obj.elements, obj.component_type))
        elif obj.statics is not None:
            lines.append("\t\tSTATICS:\n")
            lines.extend(_field_lines(obj.statics))
        if obj.kind is ObjectKind.METHOD and obj.method is not None:
            lines.extend(self._attribute_method(obj, obj.method))
        out.write("".join(lines))

    def _session(self) -> Tuple[Container, SizeLedger]:
        if self.container is None or self.ledger is None:
            raise RuntimeError("objects can only be attributed once dump() has loaded the archive")
        return self.container, self.ledger

    def _code_range(self, method: MethodInfo) -> tuple[Optional[int], int]:
        container, _ = self._session()
        code = container.code_offset(method.code_offset)
        return code, container.code_size_at(code)

    def _attribute_method(self, obj: HeapObject, method: MethodInfo) -> List[str]:
        container, ledger = self._session()
        stats = self.stats

        if method.native:
            stub = ledger.account(RegionKind.INVOKE_STUB, method.invoke_stub_offset)
            if stub.first_occurrence:
                stats.managed_to_native_code_bytes += stub.size
            code_begin, code_size = self._code_range(method)
            code = ledger.account(RegionKind.CODE, code_begin, code_size)
            if code.first_occurrence:
                stats.native_to_managed_code_bytes += code_size
            return []
        if method.runtime_only:
            return []

        source_bytes = method.source_insns_bytes
        stats.dex_instruction_bytes += source_bytes

        gc_map = ledger.account(RegionKind.GC_MAP, method.gc_map_offset)
        if gc_map.first_occurrence:
            stats.gc_map_bytes += gc_map.size
        mapping = ledger.account(RegionKind.MAPPING_TABLE, method.mapping_table_offset)
        if mapping.first_occurrence:
            stats.pc_mapping_table_bytes += mapping.size
        vmap = ledger.account(RegionKind.VMAP_TABLE, method.vmap_table_offset)
        if vmap.first_occurrence:
            stats.vmap_table_bytes += vmap.size
        stub = ledger.account(RegionKind.INVOKE_STUB, method.invoke_stub_offset)
        if stub.first_occurrence:
            stats.native_to_managed_code_bytes += stub.size

        code_begin, code_size = self._code_range(method)
        code = ledger.account(RegionKind.CODE, code_begin, code_size)
        if code.first_occurrence:
            stats.managed_code_bytes += code_size
            if method.constructor:
                if method.static:
                    stats.class_initializer_code_bytes += code_size
                elif source_bytes > self.config.large_constructor_source_bytes:
                    stats.large_initializer_code_bytes += code_size
            elif source_bytes > self.config.large_method_source_bytes:
                stats.large_method_code_bytes += code_size
        stats.managed_code_bytes_ignoring_deduplication += code_size

        begin = container.address_of(code_begin) if code_begin is not None else 0
        lines = [
            f"\t\tOAT CODE: 0x{begin:08x}-0x{begin + code_size:08x}\n",
            f"\t\tSIZE: Dex Instructions={source_bytes} GC={gc_map.size} Mapping={mapping.size}\n",
        ]

        total = (
            source_bytes
            + gc_map.size
            + mapping.size
            + vmap.size
            + stub.size
            + code_size
            + obj.size
        )
        if source_bytes:
            expansion = code_size / source_bytes
        else:
            LOGGER.debug("%s has no source instructions; expansion recorded as 0", method.name)
            expansion = 0.0
        self.detector.add_sample(method.name, total, expansion)
        return lines


def _summary(obj: HeapObject) -> str:
    address = f"0x{obj.address:08x}"
    if obj.kind is ObjectKind.ARRAY:
        return f"{address}: {obj.descriptor} length:{obj.length}\n"
    if obj.kind is ObjectKind.CLASS:
        return f'{address}: java.lang.Class "{obj.label}" ({obj.status})\n'
    if obj.kind is ObjectKind.FIELD:
        return f"{address}: java.lang.reflect.Field {obj.label}\n"
    if obj.kind is ObjectKind.METHOD:
        name = obj.method.name if obj.method is not None else obj.label
        return f"{address}: java.lang.reflect.Method {name}\n"
    if obj.kind is ObjectKind.STRING:
        return f"{address}: java.lang.String {json.dumps(obj.label)}\n"
    return f"{address}: {obj.descriptor}\n"


def _pretty_object_value(value: Optional[ObjectRef], type_descriptor: str) -> str:
    if value is None:
        return f"null   {type_descriptor}\n"
    address = f"0x{value.address:08x}"
    if value.kind is ObjectKind.STRING:
        return f"{address}   String: {json.dumps(value.label)}\n"
    if value.kind is ObjectKind.CLASS:
        return f"{address}   Class: {value.label}\n"
    if value.kind is ObjectKind.FIELD:
        return f"{address}   Field: {value.label}\n"
    if value.kind is ObjectKind.METHOD:
        return f"{address}   Method: {value.label}\n"
    return f"{address}   {value.descriptor}\n"


def _field_lines(values: Dict[str, FieldValue]) -> List[str]:
    lines = []
    for name, value in values.items():
        if isinstance(value, ObjectRef):
            lines.append(f"\t{name}: {_pretty_object_value(value, value.descriptor)}")
        else:
            lines.append(f"\t{name}: {_format_value(value)}\n")
    return lines


def _element_lines(elements: List[Optional[ObjectRef]], component_type: str) -> List[str]:
    """Render array slots, collapsing runs of the same reference to ``i to j:``."""

    lines = []
    index = 0
    for _, group in itertools.groupby(elements, key=lambda ref: None if ref is None else ref.address):
        run = list(group)
        if len(run) == 1:
            prefix = f"\t{index}: "
        else:
            prefix = f"\t{index} to {index + len(run) - 1}: "
        lines.append(prefix + _pretty_object_value(run[0], component_type))
        index += len(run)
    return lines


__all__ = ["ArtifactReport"]

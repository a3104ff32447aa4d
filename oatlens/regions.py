"""Region kinds that make up the length-free part of an archive."""

from __future__ import annotations

from enum import Enum


class RegionKind(Enum):
    """Tag for every kind of region whose extent is inferred."""

    CODE = "code"
    MAPPING_TABLE = "mapping_table"
    VMAP_TABLE = "vmap_table"
    GC_MAP = "gc_map"
    INVOKE_STUB = "invoke_stub"
    SOURCE_FILE = "source_file"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


__all__ = ["RegionKind"]

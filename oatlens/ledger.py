"""Deduplicated byte accounting for regions shared between compiled units."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple

from .extents import ExtentRegistry
from .regions import RegionKind

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    size: int
    first_occurrence: bool


@dataclass
class SizeLedger:
    """Per-report ledger of region sizes keyed by region start offset.

    Identical code and tables are emitted once and shared by every unit that
    needs them, so a region must be counted only the first time any unit
    references it.  ``totals_ignoring_dedup`` sums every reference so the
    ratio between the two shows how much sharing saved.
    """

    registry: ExtentRegistry
    seen: Set[int] = field(default_factory=set)
    totals: Dict[RegionKind, int] = field(default_factory=dict)
    totals_ignoring_dedup: Dict[RegionKind, int] = field(default_factory=dict)

    def size_and_dedup(self, offset: Optional[int]) -> Tuple[int, bool]:
        """Return ``(byte_size, first_occurrence)`` for the region at ``offset``."""

        if offset is None:
            return 0, False
        first = offset not in self.seen
        if first:
            self.seen.add(offset)
        return self.registry.size_of(offset), first

    def account(
        self, kind: RegionKind, offset: Optional[int], size: Optional[int] = None
    ) -> LedgerEntry:
        """Record a reference to a region and update the per-kind totals.

        ``size`` overrides boundary inference for regions whose length is
        stored explicitly; deduplication is still keyed on ``offset``.
        """

        inferred, first = self.size_and_dedup(offset)
        if offset is None:
            return LedgerEntry(0, False)
        if size is None:
            size = inferred
        if first:
            self.totals[kind] = self.totals.get(kind, 0) + size
        else:
            LOGGER.debug("%s at 0x%08x already counted", kind.label, offset)
        self.totals_ignoring_dedup[kind] = self.totals_ignoring_dedup.get(kind, 0) + size
        return LedgerEntry(size, first)

    def total(self, kind: RegionKind) -> int:
        return self.totals.get(kind, 0)

    def total_ignoring_dedup(self, kind: RegionKind) -> int:
        return self.totals_ignoring_dedup.get(kind, 0)

    def expansion(self, kind: RegionKind, denominator: int) -> Tuple[float, float]:
        """Return ``(deduplicated, ignoring_dedup)`` ratios against ``denominator``."""

        if denominator <= 0:
            return 0.0, 0.0
        return (
            self.total(kind) / denominator,
            self.total_ignoring_dedup(kind) / denominator,
        )


__all__ = ["LedgerEntry", "SizeLedger"]

"""Boundary inference for regions that carry no explicit length.

Compiled code and its side tables are laid out back to back without a length
field.  What is known is that every region is followed by some other region,
so keeping a sorted sequence of every region start lets us infer the extent
of a region as the distance to the next registered start.  The container's
end offset is always registered as a closing sentinel so the last region in
the file also has a successor.
"""

from __future__ import annotations

import bisect
import logging
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional

from .exceptions import BoundaryInferenceFailure
from .regions import RegionKind

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .container import Container

LOGGER = logging.getLogger(__name__)


class ExtentRegistry:
    """Sorted set of region starts answering ``size_of`` queries."""

    def __init__(self, end_offset: int, offsets: Iterable[int] = ()) -> None:
        self.end_offset = end_offset
        self._offsets: List[int] = []
        for offset in offsets:
            self.register(offset)

    @classmethod
    def for_container(cls, container: "Container") -> "ExtentRegistry":
        """Register every region start of ``container`` plus the end sentinel."""

        registry = cls(container.size)
        for source in container.source_files:
            if source.source_offset is not None:
                registry.register(source.source_offset, RegionKind.SOURCE_FILE)
            for unit in source.iter_units():
                for kind, offset in unit.region_offsets():
                    registry.register(offset, kind)
        registry.register_sentinel()
        LOGGER.debug(
            "Registered %d region boundaries for %s", len(registry), container.location
        )
        return registry

    def register(self, offset: int, kind: Optional[RegionKind] = None) -> None:
        """Insert ``offset``; registering the same offset twice is a no-op."""

        index = bisect.bisect_left(self._offsets, offset)
        if index < len(self._offsets) and self._offsets[index] == offset:
            return
        self._offsets.insert(index, offset)
        if kind is not None:
            LOGGER.debug("boundary 0x%08x (%s)", offset, kind.label)

    def register_sentinel(self) -> None:
        self.register(self.end_offset)

    def next_boundary(self, start: int) -> Optional[int]:
        index = bisect.bisect_right(self._offsets, start)
        if index == len(self._offsets):
            return None
        return self._offsets[index]

    def size_of(self, start: int) -> int:
        """Return the inferred byte size of the region starting at ``start``."""

        if start < 0 or start > self.end_offset:
            raise BoundaryInferenceFailure(
                f"offset 0x{start:08x} lies outside the container [0, 0x{self.end_offset:08x}]"
            )
        successor = self.next_boundary(start)
        if successor is None:
            raise BoundaryInferenceFailure(
                f"no registered boundary follows offset 0x{start:08x}; "
                "the container is malformed or its end sentinel was never registered"
            )
        return successor - start

    def __contains__(self, offset: object) -> bool:
        if not isinstance(offset, int):
            return False
        index = bisect.bisect_left(self._offsets, offset)
        return index < len(self._offsets) and self._offsets[index] == offset

    def __iter__(self) -> Iterator[int]:
        return iter(self._offsets)

    def __len__(self) -> int:
        return len(self._offsets)


__all__ = ["ExtentRegistry"]

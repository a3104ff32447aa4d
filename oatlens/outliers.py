"""Variance based detection of unusually large or expansive methods."""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

LOGGER = logging.getLogger(__name__)

DEFAULT_REPORT_CAP = 20
DEFAULT_SIZE_SWEEP_START = 100
DEFAULT_EXPANSION_SWEEP_START = 10

_KB = 1024
_MB = 1024 * _KB
_GB = 1024 * _MB


def pretty_size(byte_count: int) -> str:
    """Render ``byte_count`` the way the runtime's size reports do."""

    thresholds = ((16 * _GB, _GB, "GB"), (16 * _MB, _MB, "MB"), (16 * _KB, _KB, "KB"))
    for threshold, unit, suffix in thresholds:
        if byte_count >= threshold:
            return f"{byte_count // unit}{suffix}"
    return f"{byte_count}B"


@dataclass
class OutlierSample:
    unit: str
    total_bytes: int
    expansion: float


@dataclass(frozen=True)
class Outlier:
    unit: str
    value: float
    deviations: int


@dataclass
class MetricOutliers:
    """Reported outliers of one metric plus the qualifying ones left out."""

    reported: List[Outlier] = field(default_factory=list)
    skipped: int = 0

    def thresholds(self) -> List[int]:
        seen: List[int] = []
        for outlier in self.reported:
            if outlier.deviations not in seen:
                seen.append(outlier.deviations)
        return seen


@dataclass
class OutlierSummary:
    size: MetricOutliers = field(default_factory=MetricOutliers)
    expansion: MetricOutliers = field(default_factory=MetricOutliers)

    def to_text(self) -> str:
        lines: List[str] = []
        _render(
            lines,
            self.size,
            "Big methods",
            lambda o: f"{o.unit} requires storage of {pretty_size(int(o.value))}",
            "size",
        )
        _render(
            lines,
            self.expansion,
            "Large expansion methods",
            lambda o: f"{o.unit} expanded code by {o.value:g}",
            "expansion",
        )
        return "".join(lines) + "\n"


def _render(
    lines: List[str],
    metric: MetricOutliers,
    heading: str,
    describe: Callable[[Outlier], str],
    noun: str,
) -> None:
    current = None
    for outlier in metric.reported:
        if outlier.deviations != current:
            current = outlier.deviations
            lines.append(
                f"\n{heading} (size > {current} standard deviations the norm):\n"
            )
        lines.append(f"\t{describe(outlier)}\n")
    if metric.skipped > 0:
        lines.append(
            f"\t... skipped {metric.skipped} methods with {noun} > 1 standard "
            "deviation from the norm\n"
        )


def sweep_outliers(
    values: List[float], units: Sequence[str], start: int, cap: int
) -> MetricOutliers:
    """Report values that sit ``k`` standard deviations above the mean.

    ``k`` sweeps down from ``start`` to 1.  Reported values are zeroed in
    ``values`` so they are never reported twice.  Once ``cap`` values have
    been reported, a further match at ``k > 1`` moves the sweep straight to
    ``k == 1`` where remaining matches are only counted as skipped.
    """

    result = MetricOutliers()
    if len(values) < 2:
        return result
    mean = statistics.fmean(values)
    variance = statistics.variance(values, mean)

    k = start
    while k > 0:
        limit = k * k * variance
        for index, value in enumerate(values):
            if value <= mean:
                continue
            deviation = value - mean
            if deviation * deviation <= limit:
                continue
            if len(result.reported) >= cap:
                if k == 1:
                    result.skipped += 1
                    continue
                LOGGER.debug("outlier cap reached at %d deviations, jumping to 1", k)
                k = 2
                break
            result.reported.append(Outlier(units[index], value, k))
            values[index] = 0
        k -= 1
    return result


class OutlierDetector:
    """Accumulates per-method samples and reports outliers once at the end."""

    def __init__(
        self,
        *,
        cap: int = DEFAULT_REPORT_CAP,
        size_sweep_start: int = DEFAULT_SIZE_SWEEP_START,
        expansion_sweep_start: int = DEFAULT_EXPANSION_SWEEP_START,
    ) -> None:
        self.cap = cap
        self.size_sweep_start = size_sweep_start
        self.expansion_sweep_start = expansion_sweep_start
        self.samples: List[OutlierSample] = []

    def add_sample(self, unit: str, total_bytes: int, expansion: float) -> None:
        self.samples.append(OutlierSample(unit, total_bytes, expansion))

    def __len__(self) -> int:
        return len(self.samples)

    def finalize(self) -> OutlierSummary:
        """Consume the samples and return the outlier summary.

        Reported samples have their metric zeroed, so a second call only
        reports what the first one left behind.
        """

        summary = OutlierSummary()
        if len(self.samples) < 2:
            LOGGER.info("Only %d method samples; skipping outlier report", len(self.samples))
            return summary
        units = [sample.unit for sample in self.samples]

        sizes: List[float] = [sample.total_bytes for sample in self.samples]
        summary.size = sweep_outliers(sizes, units, self.size_sweep_start, self.cap)
        expansions = [sample.expansion for sample in self.samples]
        summary.expansion = sweep_outliers(
            expansions, units, self.expansion_sweep_start, self.cap
        )

        for sample, size, expansion in zip(self.samples, sizes, expansions):
            sample.total_bytes = int(size)
            sample.expansion = expansion
        return summary


__all__ = [
    "MetricOutliers",
    "Outlier",
    "OutlierDetector",
    "OutlierSample",
    "OutlierSummary",
    "pretty_size",
    "sweep_outliers",
]

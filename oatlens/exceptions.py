"""Custom exception hierarchy for the archive inspector."""

from __future__ import annotations


class OatLensError(Exception):
    """Base class for all inspection related errors."""


class TruncatedReadError(OatLensError):
    """Raised when a fixed-width read runs past the end of its buffer."""


class TableDecodeError(OatLensError):
    """Base class for per-unit table decoding failures.

    These are local to a single compiled unit: callers skip the detailed dump
    for that unit and carry on with the rest of the report.
    """


class MalformedRegisterTable(TableDecodeError):
    """Raised when a vmap table outruns its spill masks or its own bytes."""


class MalformedMappingTable(TableDecodeError):
    """Raised when a PC mapping table declares more pairs than it holds."""


class MalformedLiveMap(TableDecodeError):
    """Raised when a GC map's entries extend past the end of the blob."""


class FatalReportError(OatLensError):
    """Base class for errors that abort the whole report."""


class BoundaryInferenceFailure(FatalReportError):
    """Raised when no registered boundary follows a region start."""


class AccountingInvariantViolation(FatalReportError):
    """Raised when category totals do not reconcile with the file size."""


class ContainerFormatError(FatalReportError):
    """Raised when an archive header or descriptor area cannot be parsed."""


class SnapshotFormatError(FatalReportError):
    """Raised when an image snapshot is missing fields or has bad values."""


class MissingSource(OatLensError):
    """Raised when a referenced archive or source file cannot be located."""

    def __init__(self, location: str, message: str | None = None) -> None:
        super().__init__(message or f"not found: {location}")
        self.location = location


__all__ = [
    "OatLensError",
    "TruncatedReadError",
    "TableDecodeError",
    "MalformedRegisterTable",
    "MalformedMappingTable",
    "MalformedLiveMap",
    "FatalReportError",
    "BoundaryInferenceFailure",
    "AccountingInvariantViolation",
    "ContainerFormatError",
    "SnapshotFormatError",
    "MissingSource",
]

"""Read-only inspection of compiled-code archives and the images that use them.

:class:`ContainerBuilder` and the ``encode_*`` helpers write synthetic archives
with known region placement, for testing tools built on this package.
"""

from .archive_report import ArchiveReport
from .artifact_report import ArtifactReport
from .codec import decode_gc_map, decode_mapping_table, decode_vmap_table
from .config import ReportConfig, load_config
from .container import Container, open_container
from .exceptions import (
    AccountingInvariantViolation,
    BoundaryInferenceFailure,
    MalformedLiveMap,
    MalformedMappingTable,
    MalformedRegisterTable,
    MissingSource,
    OatLensError,
)
from .extents import ExtentRegistry
from .ledger import SizeLedger
from .outliers import OutlierDetector
from .regions import RegionKind
from .sample import ContainerBuilder, encode_gc_map, encode_mapping_table, encode_vmap_table

__version__ = "0.1.0"

__all__ = [
    "AccountingInvariantViolation",
    "ArchiveReport",
    "ArtifactReport",
    "BoundaryInferenceFailure",
    "Container",
    "ContainerBuilder",
    "ExtentRegistry",
    "MalformedLiveMap",
    "MalformedMappingTable",
    "MalformedRegisterTable",
    "MissingSource",
    "OatLensError",
    "OutlierDetector",
    "RegionKind",
    "ReportConfig",
    "SizeLedger",
    "decode_gc_map",
    "decode_mapping_table",
    "decode_vmap_table",
    "encode_gc_map",
    "encode_mapping_table",
    "encode_vmap_table",
    "load_config",
    "open_container",
]

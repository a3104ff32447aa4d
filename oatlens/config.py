"""Report configuration loaded from an optional YAML file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

LOGGER = logging.getLogger(__name__)

HOST_PREFIX_ENV = "ANDROID_PRODUCT_OUT"


def _default_host_prefix() -> str:
    return os.environ.get(HOST_PREFIX_ENV, "")


@dataclass(frozen=True)
class ReportConfig:
    """Tunables shared by the archive and image reports."""

    host_prefix: str = field(default_factory=_default_host_prefix)
    object_alignment: int = 8
    # Source byte counts above which a constructor or method is counted as
    # large: roughly 1000 and 4000 basic blocks at 2 bytes per instruction
    # and 2 instructions per block.
    large_constructor_source_bytes: int = 4000
    large_method_source_bytes: int = 16000
    outlier_report_cap: int = 20
    size_sweep_start: int = 100
    expansion_sweep_start: int = 10
    disassemble: bool = True

    def with_overrides(self, **overrides: Any) -> "ReportConfig":
        """Return a copy with every non-``None`` override applied."""

        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values) if values else self


# Smallest accepted value per integer key.
_MINIMUMS = {
    "object_alignment": 1,
    "large_constructor_source_bytes": 0,
    "large_method_source_bytes": 0,
    "outlier_report_cap": 0,
    "size_sweep_start": 0,
    "expansion_sweep_start": 0,
}


def _check(key: str, expected: str, value: Any) -> None:
    if expected == "int":
        # bool is an int subclass; ``true`` is not a byte count.
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Configuration key {key!r} expects an integer, got {value!r}")
        minimum = _MINIMUMS.get(key, 0)
        if value < minimum:
            raise ValueError(f"Configuration key {key!r} must be at least {minimum}, got {value}")
    elif expected == "bool":
        if not isinstance(value, bool):
            raise ValueError(f"Configuration key {key!r} expects true or false, got {value!r}")
    elif expected == "str":
        if not isinstance(value, str):
            raise ValueError(f"Configuration key {key!r} expects a string, got {value!r}")


def config_from_mapping(data: Mapping[str, Any]) -> ReportConfig:
    known = {item.name: item for item in fields(ReportConfig)}
    unknown = sorted(str(key) for key in data if key not in known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
    for key, value in data.items():
        _check(key, known[key].type, value)
    return ReportConfig(**data)


def load_config(path: Optional[Path | str]) -> ReportConfig:
    """Load ``path`` as YAML, returning defaults when no path is given."""

    if path is None:
        return ReportConfig()
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"{path}: invalid YAML: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Expected mapping at root of config: {path}")
    config = config_from_mapping(data)
    LOGGER.debug("Loaded configuration from %s: %s", path, config)
    return config


__all__ = ["HOST_PREFIX_ENV", "ReportConfig", "config_from_mapping", "load_config"]

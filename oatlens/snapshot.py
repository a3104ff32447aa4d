"""Heap snapshots standing in for a live image heap walk.

An image report needs, for every object in the image, its type descriptor,
its size and, for methods, where their compiled code and tables live in the
archive.  A running runtime would supply these by walking its live bitmap
and its large-object space; here they come from a YAML document:

.. code-block:: yaml

    magic: "art\\n000"
    image_begin: 0x60000000
    file_bytes: 4096
    header_bytes: 100
    oat_checksum: 0x1234abcd
    oat_begin: 0x70000000
    oat_end: 0x70100000
    oat_location: /system/framework/boot.oat
    roots:
      kDexCaches: 0x60000100
    objects:
      - address: 0x60000068
        descriptor: java.lang.String
        kind: string
        size: 24
        label: hello
      - address: 0x60000080
        descriptor: java.lang.reflect.Method
        kind: method
        size: 40
        method:
          name: void Foo.bar()
          source_insns_bytes: 20
          code_offset: 0x1000
          gc_map_offset: 0x0f00
      - address: 0x600000a8
        descriptor: java.lang.Object[]
        kind: array
        size: 24
        length: 2
        component_type: java.lang.Object
        elements:
          - {address: 0x60000068, kind: string, descriptor: java.lang.String, label: hello}
          - null
      - address: 0x600000c0
        descriptor: java.lang.Class
        kind: class
        size: 36
        label: Foo
        status: Initialized
        statics:
          count: 3
          INSTANCE: null
    large_objects: []

Field, static and element values are scalars, ``null`` or a reference
mapping with ``address``, ``kind``, ``descriptor`` and ``label``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import yaml

from .exceptions import MissingSource, SnapshotFormatError

LOGGER = logging.getLogger(__name__)

IMAGE_ROOT_NAMES = (
    "kJniStubArray",
    "kAbstractMethodErrorStubArray",
    "kStaticResolutionStubArray",
    "kUnknownMethodResolutionStubArray",
    "kResolutionMethod",
    "kCalleeSaveMethod",
    "kRefsOnlySaveMethod",
    "kRefsAndArgsSaveMethod",
    "kOatLocation",
    "kDexCaches",
    "kClassRoots",
)


class ObjectKind(Enum):
    OBJECT = "object"
    ARRAY = "array"
    CLASS = "class"
    FIELD = "field"
    METHOD = "method"
    STRING = "string"


@dataclass(frozen=True)
class ObjectRef:
    """A reference held in a field, a static or an array slot."""

    address: int
    kind: ObjectKind = ObjectKind.OBJECT
    descriptor: str = "java.lang.Object"
    label: str = ""


FieldValue = Union[None, bool, int, float, str, ObjectRef]


@dataclass
class MethodInfo:
    name: str
    native: bool = False
    abstract: bool = False
    callee_save: bool = False
    resolution: bool = False
    constructor: bool = False
    static: bool = False
    source_insns_bytes: int = 0
    code_offset: Optional[int] = None
    mapping_table_offset: Optional[int] = None
    vmap_table_offset: Optional[int] = None
    gc_map_offset: Optional[int] = None
    invoke_stub_offset: Optional[int] = None

    @property
    def runtime_only(self) -> bool:
        """Abstract, callee-save and resolution methods own no compiled code."""

        return self.abstract or self.callee_save or self.resolution


@dataclass
class HeapObject:
    address: int
    descriptor: str
    size: int
    kind: ObjectKind = ObjectKind.OBJECT
    label: str = ""
    length: int = 0
    status: str = ""
    fields: Dict[str, FieldValue] = field(default_factory=dict)
    method: Optional[MethodInfo] = None
    component_type: str = "java.lang.Object"
    # Object arrays only; ``None`` for primitive arrays and non-arrays.
    elements: Optional[List[Optional[ObjectRef]]] = None
    # Classes only; ``None`` when the class has no static field table.
    statics: Optional[Dict[str, FieldValue]] = None


@dataclass
class ImageHeader:
    magic: str
    image_begin: int
    file_bytes: int
    header_bytes: int
    oat_checksum: int
    oat_begin: int
    oat_end: int
    oat_location: str
    roots: Dict[str, Optional[int]] = field(default_factory=dict)

    def contains(self, address: int) -> bool:
        return self.image_begin <= address < self.image_begin + self.file_bytes


@dataclass
class ImageSnapshot:
    header: ImageHeader
    objects: List[HeapObject] = field(default_factory=list)
    location: str = "<memory>"
    large_objects: List[HeapObject] = field(default_factory=list)

    def walk(self) -> Iterator[HeapObject]:
        """Yield the live objects, then the large-object space."""

        yield from self.objects
        yield from self.large_objects


_HEADER_INTS = ("image_begin", "file_bytes", "header_bytes", "oat_checksum", "oat_begin", "oat_end")
_HEADER_STRS = ("magic", "oat_location")
_METHOD_FIELDS = {item.name: item.type for item in fields(MethodInfo)}
_OFFSET_KEYS = ("code_offset", "mapping_table_offset", "vmap_table_offset", "gc_map_offset", "invoke_stub_offset")


def _require(data: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise SnapshotFormatError(f"{where}: missing required key {key!r}")
    return data[key]


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise SnapshotFormatError(f"{where}: expected a mapping, got {value!r}")
    return value


def _integer(value: Any, where: str, *, minimum: Optional[int] = None) -> int:
    # bool is an int subclass; ``true`` is never a valid address or size.
    if isinstance(value, bool) or not isinstance(value, int):
        raise SnapshotFormatError(f"{where}: expected an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise SnapshotFormatError(f"{where}: {value} is below {minimum}")
    return value


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise SnapshotFormatError(f"{where}: expected a string, got {value!r}")
    return value


def _kind(value: Any, where: str) -> ObjectKind:
    try:
        return ObjectKind(value)
    except ValueError as exc:
        raise SnapshotFormatError(f"{where}: unknown kind {value!r}") from exc


def _ref_from_mapping(data: Any, where: str) -> ObjectRef:
    data = _mapping(data, where)
    return ObjectRef(
        address=_integer(_require(data, "address", where), f"{where}.address", minimum=0),
        kind=_kind(data.get("kind", "object"), f"{where}.kind"),
        descriptor=_string(data.get("descriptor", "java.lang.Object"), f"{where}.descriptor"),
        label=_string(data.get("label", ""), f"{where}.label"),
    )


def _value(value: Any, where: str) -> FieldValue:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return _ref_from_mapping(value, where)


def _values(data: Any, where: str) -> Dict[str, FieldValue]:
    return {str(name): _value(value, f"{where}.{name}") for name, value in _mapping(data, where).items()}


def _method_from_mapping(data: Any, where: str) -> MethodInfo:
    data = _mapping(data, where)
    unknown = sorted(set(data) - set(_METHOD_FIELDS))
    if unknown:
        raise SnapshotFormatError(f"{where}: unknown method keys {', '.join(unknown)}")
    values: Dict[str, Any] = {"name": _string(_require(data, "name", where), f"{where}.name")}
    for key, value in data.items():
        if key == "name":
            continue
        if _METHOD_FIELDS[key] == "bool":
            if not isinstance(value, bool):
                raise SnapshotFormatError(f"{where}.{key}: expected true or false, got {value!r}")
            values[key] = value
        elif value is None:
            values[key] = None
        else:
            values[key] = _integer(value, f"{where}.{key}", minimum=0)
    for key in _OFFSET_KEYS:
        if values.get(key) == 0:
            values[key] = None
    return MethodInfo(**values)


def _object_from_mapping(data: Any, where: str) -> HeapObject:
    data = _mapping(data, where)
    kind = _kind(data.get("kind", "object"), f"{where}.kind")
    method = None
    if kind is ObjectKind.METHOD:
        method = _method_from_mapping(_require(data, "method", where), f"{where}.method")
    elements = None
    if data.get("elements") is not None:
        if kind is not ObjectKind.ARRAY or not isinstance(data["elements"], list):
            raise SnapshotFormatError(f"{where}.elements: only arrays carry an element list")
        elements = [
            None if item is None else _ref_from_mapping(item, f"{where}.elements[{index}]")
            for index, item in enumerate(data["elements"])
        ]
    statics = None
    if data.get("statics") is not None:
        if kind is not ObjectKind.CLASS:
            raise SnapshotFormatError(f"{where}.statics: only classes carry static fields")
        statics = _values(data["statics"], f"{where}.statics")
    length = _integer(data.get("length", len(elements) if elements is not None else 0), f"{where}.length", minimum=0)
    if elements is not None and len(elements) != length:
        raise SnapshotFormatError(f"{where}: length {length} but {len(elements)} elements")
    return HeapObject(
        address=_integer(_require(data, "address", where), f"{where}.address", minimum=0),
        descriptor=_string(_require(data, "descriptor", where), f"{where}.descriptor"),
        size=_integer(_require(data, "size", where), f"{where}.size", minimum=0),
        kind=kind,
        label=str(data.get("label", "")),
        length=length,
        status=str(data.get("status", "")),
        fields=_values(data.get("fields") or {}, f"{where}.fields"),
        method=method,
        component_type=_string(data.get("component_type", "java.lang.Object"), f"{where}.component_type"),
        elements=elements,
        statics=statics,
    )


def _objects(data: Mapping[str, Any], key: str) -> List[HeapObject]:
    items = data.get(key) or []
    if not isinstance(items, list):
        raise SnapshotFormatError(f"{key}: expected a list")
    return [_object_from_mapping(item, f"{key}[{index}]") for index, item in enumerate(items)]


def snapshot_from_mapping(data: Mapping[str, Any], *, location: str = "<memory>") -> ImageSnapshot:
    data = _mapping(data, location)
    values: Dict[str, Any] = {}
    for key in _HEADER_INTS:
        values[key] = _integer(_require(data, key, location), f"{location}: {key}", minimum=0)
    for key in _HEADER_STRS:
        values[key] = _string(_require(data, key, location), f"{location}: {key}")
    roots = _mapping(data.get("roots") or {}, f"{location}: roots")
    header = ImageHeader(
        roots={
            str(name): None if address is None else _integer(address, f"{location}: roots.{name}")
            for name, address in roots.items()
        },
        **values,
    )
    return ImageSnapshot(
        header=header,
        objects=_objects(data, "objects"),
        location=location,
        large_objects=_objects(data, "large_objects"),
    )


def load_snapshot(path: Path | str) -> ImageSnapshot:
    """Load a YAML heap snapshot; a missing file raises :class:`MissingSource`."""

    path = Path(path)
    if not path.is_file():
        raise MissingSource(str(path), f"Failed to open image snapshot {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SnapshotFormatError(f"{path}: invalid YAML: {exc}") from exc
    if not isinstance(data, Mapping):
        raise SnapshotFormatError(f"Expected mapping at root of snapshot: {path}")
    snapshot = snapshot_from_mapping(data, location=str(path))
    LOGGER.info(
        "Loaded %d objects (%d large) from %s", len(snapshot.objects), len(snapshot.large_objects), path
    )
    return snapshot


__all__ = [
    "FieldValue",
    "HeapObject",
    "IMAGE_ROOT_NAMES",
    "ImageHeader",
    "ImageSnapshot",
    "MethodInfo",
    "ObjectKind",
    "ObjectRef",
    "load_snapshot",
    "snapshot_from_mapping",
]

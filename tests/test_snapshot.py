import pytest

from oatlens.exceptions import MissingSource, SnapshotFormatError
from oatlens.snapshot import ObjectKind, ObjectRef, load_snapshot, snapshot_from_mapping


def header(**overrides):
    data = {
        "magic": "art\n000",
        "image_begin": 0x60000000,
        "file_bytes": 0x1000,
        "header_bytes": 100,
        "oat_checksum": 0,
        "oat_begin": 0x70000000,
        "oat_end": 0x70001000,
        "oat_location": "/boot.oat",
    }
    data.update(overrides)
    return data


def string_object(**overrides):
    data = {"address": 0x60000068, "descriptor": "java.lang.String", "kind": "string", "size": 20, "label": "hi"}
    data.update(overrides)
    return data


def test_minimal_snapshot() -> None:
    snapshot = snapshot_from_mapping(header(objects=[string_object()]))

    assert snapshot.header.oat_location == "/boot.oat"
    (obj,) = snapshot.walk()
    assert obj.kind is ObjectKind.STRING
    assert obj.elements is None and obj.statics is None


def test_array_elements_and_references() -> None:
    ref = {"address": 0x60000068, "kind": "string", "descriptor": "java.lang.String", "label": "hi"}
    array = {
        "address": 0x60000080,
        "descriptor": "java.lang.Object[]",
        "kind": "array",
        "size": 24,
        "elements": [ref, None],
    }

    obj = snapshot_from_mapping(header(objects=[array])).objects[0]

    assert obj.length == 2
    assert obj.elements == [ObjectRef(0x60000068, ObjectKind.STRING, "java.lang.String", "hi"), None]


def test_class_statics() -> None:
    klass = {
        "address": 0x60000080,
        "descriptor": "java.lang.Class",
        "kind": "class",
        "size": 36,
        "statics": {"count": 3, "INSTANCE": None},
    }

    obj = snapshot_from_mapping(header(objects=[klass])).objects[0]

    assert obj.statics == {"count": 3, "INSTANCE": None}


def test_large_objects_are_walked_last() -> None:
    snapshot = snapshot_from_mapping(
        header(objects=[string_object()], large_objects=[string_object(address=0x80000000, size=0x4000)])
    )

    assert [obj.address for obj in snapshot.walk()] == [0x60000068, 0x80000000]


@pytest.mark.parametrize(
    "objects",
    [
        [string_object(address="not-a-number")],
        [string_object(size="big")],
        [string_object(size=-1)],
        [string_object(length=True)],
        [string_object(kind="blob")],
        ["not a mapping"],
        [string_object(kind="method", method=5)],
        [string_object(kind="method", method={"name": "f", "native": "yes"})],
        [string_object(kind="method", method={"name": "f", "code_offset": "0x10"})],
        [string_object(kind="method", method={"name": "f", "bogus": 1})],
        [string_object(elements=[None])],
        [string_object(kind="array", elements=[5])],
        [string_object(kind="array", length=3, elements=[None])],
        [string_object(statics={"x": 1})],
        [string_object(fields={"x": [1, 2]})],
        "objects",
    ],
)
def test_malformed_objects_are_rejected(objects) -> None:
    with pytest.raises(SnapshotFormatError):
        snapshot_from_mapping(header(objects=objects))


@pytest.mark.parametrize(
    "overrides",
    [
        {"file_bytes": "4096"},
        {"oat_begin": None},
        {"image_begin": False},
        {"oat_location": 7},
        {"roots": [1]},
        {"roots": {"kDexCaches": "here"}},
    ],
)
def test_malformed_header_is_rejected(overrides) -> None:
    with pytest.raises(SnapshotFormatError):
        snapshot_from_mapping(header(**overrides))


def test_missing_header_key_is_rejected() -> None:
    data = header()
    del data["oat_end"]
    with pytest.raises(SnapshotFormatError, match="oat_end"):
        snapshot_from_mapping(data)


def test_load_snapshot_errors(tmp_path) -> None:
    with pytest.raises(MissingSource):
        load_snapshot(tmp_path / "absent.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("objects: [unclosed\n", encoding="utf-8")
    with pytest.raises(SnapshotFormatError, match="invalid YAML"):
        load_snapshot(broken)

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("42\n", encoding="utf-8")
    with pytest.raises(SnapshotFormatError, match="Expected mapping"):
        load_snapshot(scalar)

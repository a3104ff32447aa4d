import pytest

from oatlens.config import HOST_PREFIX_ENV, ReportConfig, config_from_mapping, load_config


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv(HOST_PREFIX_ENV, raising=False)
    config = load_config(None)

    assert config.host_prefix == ""
    assert config.object_alignment == 8
    assert config.large_constructor_source_bytes == 4000
    assert config.large_method_source_bytes == 16000
    assert config.outlier_report_cap == 20
    assert config.size_sweep_start == 100
    assert config.expansion_sweep_start == 10
    assert config.disassemble is True


def test_host_prefix_from_environment(monkeypatch) -> None:
    monkeypatch.setenv(HOST_PREFIX_ENV, "/out/target/product/generic")
    assert ReportConfig().host_prefix == "/out/target/product/generic"


def test_load_yaml(tmp_path) -> None:
    path = tmp_path / "report.yaml"
    path.write_text("host_prefix: /host\noutlier_report_cap: 5\ndisassemble: false\n", encoding="utf-8")

    config = load_config(path)

    assert config.host_prefix == "/host"
    assert config.outlier_report_cap == 5
    assert config.disassemble is False


def test_empty_yaml_gives_defaults(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path).size_sweep_start == 100


def test_unknown_key_is_rejected() -> None:
    with pytest.raises(ValueError, match="sweep_start"):
        config_from_mapping({"sweep_start": 3})


def test_integer_keys_are_type_checked() -> None:
    with pytest.raises(ValueError, match="object_alignment"):
        config_from_mapping({"object_alignment": "eight"})


def test_invalid_yaml_is_reported(tmp_path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("host_prefix: [unclosed\n", encoding="utf-8")
    with pytest.raises(ValueError, match="invalid YAML"):
        load_config(path)


def test_non_mapping_root_is_rejected(tmp_path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Expected mapping"):
        load_config(path)


def test_overrides_skip_none() -> None:
    config = ReportConfig(host_prefix="/a")

    assert config.with_overrides(host_prefix=None) is config
    updated = config.with_overrides(host_prefix="/b", disassemble=False)
    assert updated.host_prefix == "/b"
    assert updated.disassemble is False
    assert config.host_prefix == "/a"


@pytest.mark.parametrize(
    "data",
    [
        {"object_alignment": 0},
        {"object_alignment": -8},
        {"object_alignment": True},
        {"outlier_report_cap": -1},
        {"size_sweep_start": -1},
        {"expansion_sweep_start": -3},
        {"large_method_source_bytes": -1},
        {"disassemble": "no"},
        {"disassemble": 0},
        {"host_prefix": 5},
        {7: 1},
    ],
)
def test_invalid_values_are_rejected(data) -> None:
    with pytest.raises(ValueError):
        config_from_mapping(data)


def test_zero_cap_and_sweeps_are_allowed() -> None:
    config = config_from_mapping({"outlier_report_cap": 0, "size_sweep_start": 0, "object_alignment": 1})
    assert config.outlier_report_cap == 0
    assert config.object_alignment == 1

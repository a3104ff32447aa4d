import pytest

from oatlens.outliers import OutlierDetector, pretty_size, sweep_outliers


def test_single_large_method_is_reported() -> None:
    detector = OutlierDetector()
    for index, size in enumerate([10, 10, 10, 10, 1000]):
        detector.add_sample(f"m{index}", size, 1.0)

    summary = detector.finalize()

    assert [o.unit for o in summary.size.reported] == ["m4"]
    assert summary.size.reported[0].value == 1000
    assert summary.size.skipped == 0
    assert summary.expansion.reported == []


def test_fewer_than_two_samples_skips_reporting() -> None:
    detector = OutlierDetector()
    detector.add_sample("only", 10_000, 50.0)

    summary = detector.finalize()

    assert summary.size.reported == [] and summary.expansion.reported == []
    assert summary.to_text() == "\n"


def test_cap_limits_reports_and_counts_the_rest_as_skipped() -> None:
    detector = OutlierDetector()
    for index in range(25):
        detector.add_sample(f"big{index}", 100, 1.0)
    for index in range(75):
        detector.add_sample(f"small{index}", 0, 1.0)

    summary = detector.finalize()

    assert len(summary.size.reported) == 20
    assert summary.size.skipped == 5
    assert {o.deviations for o in summary.size.reported} == {1}
    assert all(o.unit.startswith("big") for o in summary.size.reported)


def test_cap_reached_above_one_jumps_straight_to_one() -> None:
    values = [1000.0] * 22 + [0.0] * 378
    units = [f"u{i}" for i in range(len(values))]

    result = sweep_outliers(values, units, start=100, cap=20)

    # All 22 first qualify at four deviations; the 21st match moves the sweep
    # to one deviation where the two left over are only counted.
    assert len(result.reported) == 20
    assert result.thresholds() == [4]
    assert result.skipped == 2


def test_reported_samples_are_zeroed() -> None:
    values = [10.0, 10.0, 10.0, 10.0, 1000.0]
    sweep_outliers(values, ["a", "b", "c", "d", "e"], start=10, cap=20)
    assert values == [10.0, 10.0, 10.0, 10.0, 0]


def test_finalize_consumes_samples() -> None:
    detector = OutlierDetector()
    for index, size in enumerate([10, 10, 10, 10, 1000]):
        detector.add_sample(f"m{index}", size, 1.0)

    detector.finalize()

    assert [sample.total_bytes for sample in detector.samples] == [10, 10, 10, 10, 0]
    assert detector.finalize().size.reported == []


def test_expansion_outliers_and_text() -> None:
    detector = OutlierDetector()
    for index in range(6):
        detector.add_sample(f"m{index}", 100, 1.5)
    detector.add_sample("bloated", 100, 40.0)

    summary = detector.finalize()
    text = summary.to_text()

    assert [o.unit for o in summary.expansion.reported] == ["bloated"]
    assert "Large expansion methods (size > 2 standard deviations the norm):" in text
    assert "\tbloated expanded code by 40\n" in text
    assert "Big methods" not in text


def test_size_text_mentions_skipped_methods() -> None:
    detector = OutlierDetector(cap=1)
    for index in range(3):
        detector.add_sample(f"big{index}", 100, 1.0)
    for index in range(9):
        detector.add_sample(f"small{index}", 0, 1.0)

    text = detector.finalize().to_text()

    assert "\tbig0 requires storage of 100B\n" in text
    assert "\t... skipped 2 methods with size > 1 standard deviation from the norm\n" in text


@pytest.mark.parametrize(
    "byte_count, expected",
    [
        (0, "0B"),
        (16 * 1024 - 1, "16383B"),
        (16 * 1024, "16KB"),
        (20 * 1024 * 1024, "20MB"),
        (17 * 1024 ** 3, "17GB"),
    ],
)
def test_pretty_size(byte_count: int, expected: str) -> None:
    assert pretty_size(byte_count) == expected

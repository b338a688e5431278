from __future__ import annotations

import pytest

from pricetrend.indicators import compute_indicators, indicator_field, moving_average


def test_moving_average_matches_worked_example() -> None:
    assert moving_average([10.0, 20.0, 30.0], 2) == [None, 15.0, 25.0]


@pytest.mark.parametrize("window", [1, 2, 3, 5, 7])
def test_moving_average_is_aligned_trailing_mean(window: int) -> None:
    values = [101.5, 99.25, 100.0, 103.75, 98.5, 97.0, 102.25, 104.0, 105.5, 100.75]

    result = moving_average(values, window)

    assert len(result) == len(values)
    assert result[: window - 1] == [None] * (window - 1)
    for i in range(window - 1, len(values)):
        assert result[i] == sum(values[i - window + 1 : i + 1]) / window


def test_moving_average_short_input_is_all_absent() -> None:
    assert moving_average([1.0, 2.0, 3.0], 30) == [None, None, None]
    assert moving_average([], 5) == []


def test_moving_average_window_of_one_echoes_input() -> None:
    assert moving_average([4.0, 5.0, 6.0], 1) == [4.0, 5.0, 6.0]


def test_moving_average_is_idempotent_and_does_not_mutate_input() -> None:
    values = [3.0, 1.0, 4.0, 1.0, 5.0, 9.0, 2.0, 6.0]
    snapshot = list(values)

    first = moving_average(values, 3)
    second = moving_average(values, 3)

    assert first == second
    assert values == snapshot


def test_moving_average_rejects_non_positive_window() -> None:
    with pytest.raises(ValueError, match="window must be a positive integer"):
        moving_average([1.0, 2.0], 0)


def test_compute_indicators_only_builds_requested_windows() -> None:
    closes = [float(v) for v in range(1, 71)]

    result = compute_indicators(closes, (30,))

    assert set(result) == {30}
    assert result[30][28] is None
    assert result[30][29] == pytest.approx(15.5)


def test_indicator_field_names() -> None:
    assert indicator_field(30) == "ma30"
    assert indicator_field(60) == "ma60"

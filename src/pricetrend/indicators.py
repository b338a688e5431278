from __future__ import annotations

from collections.abc import Iterable, Sequence


def indicator_field(window: int) -> str:
    return f"ma{window}"


def moving_average(values: Sequence[float], window: int) -> list[float | None]:
    """Trailing simple moving average aligned with ``values``.

    Positions before the window is full are ``None``. The window counts
    positions in the sequence, not calendar days.
    """
    if window < 1:
        raise ValueError("window must be a positive integer")

    result: list[float | None] = [None] * len(values)
    for i in range(window - 1, len(values)):
        result[i] = sum(values[i - window + 1 : i + 1]) / window
    return result


def compute_indicators(
    closes: Sequence[float],
    windows: Iterable[int],
) -> dict[int, list[float | None]]:
    return {window: moving_average(closes, window) for window in windows}

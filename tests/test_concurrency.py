"""Tests for bounded batch execution."""

import pytest

from claudekit.concurrency import progress_interval, run_bounded


@pytest.mark.parametrize(
    ("total", "expected"),
    [(0, 1), (5, 1), (20, 1), (100, 5), (1000, 50)],
)
def test_progress_interval(total: int, expected: int) -> None:
    assert progress_interval(total) == expected


def test_run_bounded_preserves_input_order() -> None:
    result = run_bounded([3, 1, 2], lambda n: n * 10, concurrency=3)

    assert result.results == [30, 10, 20]
    assert result.succeeded == 3
    assert result.failed == 0


def test_run_bounded_records_failures_without_aborting() -> None:
    def func(n: int) -> int:
        if n == 2:
            raise OSError("unreadable")
        return n

    result = run_bounded([1, 2, 3], func, concurrency=2)

    assert result.results == [1, None, 3]
    assert result.failed == 1
    assert result.failures[0].item == 2
    assert isinstance(result.failures[0].error, OSError)


def test_run_bounded_reports_final_progress() -> None:
    calls: list[tuple[int, int]] = []

    run_bounded(
        list(range(45)), lambda n: n, concurrency=4, on_progress=lambda c, t: calls.append((c, t))
    )

    # interval is 2 for 45 items, and the last item always reports
    assert calls[-1] == (45, 45)
    assert all(total == 45 for _, total in calls)
    assert len(calls) == 23


def test_run_bounded_empty() -> None:
    result = run_bounded([], lambda n: n, concurrency=4)

    assert result.results == []
    assert result.failures == []

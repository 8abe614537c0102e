# tests/test_pool.py
from __future__ import annotations

import functools
import logging
import sys
import threading
import time

import pytest

from csbench.pool import Outcome, ProgressTracker, WorkerPool, progress_interval


def _ok() -> bool:
    return True


def _fail() -> bool:
    return False


def _boom() -> bool:
    raise RuntimeError("remote call exploded")


@pytest.mark.parametrize("count", [0, 1, 7, 250])
def test_wait_returns_one_outcome_per_task(count: int) -> None:
    pool = WorkerPool(max_workers=4)
    for _ in range(count):
        pool.submit(_ok)

    outcomes = pool.wait()

    assert len(outcomes) == count
    assert all(isinstance(outcome, Outcome) for outcome in outcomes)
    assert all(outcome.success for outcome in outcomes)


def test_every_task_failing_still_yields_all_outcomes() -> None:
    pool = WorkerPool(max_workers=3)
    for index in range(30):
        pool.submit(_boom if index % 2 else _fail)

    outcomes = pool.wait()

    assert len(outcomes) == 30
    assert not any(outcome.success for outcome in outcomes)
    assert all(outcome.duration_s >= 0 for outcome in outcomes)


def test_exception_is_contained_to_its_task(caplog: pytest.LogCaptureFixture) -> None:
    pool = WorkerPool(max_workers=2)
    pool.submit(_ok)
    pool.submit(_boom)
    pool.submit(_ok)

    with caplog.at_level(logging.WARNING, logger="csbench.pool"):
        outcomes = pool.wait()

    assert sorted(outcome.success for outcome in outcomes) == [False, True, True]
    assert "task failed" in caplog.text
    assert "remote call exploded" in caplog.text


def test_truthiness_of_task_result_decides_success() -> None:
    pool = WorkerPool(max_workers=1)
    pool.submit(lambda: {"id": "abc"})
    pool.submit(lambda: None)

    outcomes = pool.wait()

    assert sorted(outcome.success for outcome in outcomes) == [False, True]


def test_concurrency_never_exceeds_ceiling() -> None:
    lock = threading.Lock()
    state = {"running": 0, "peak": 0}

    def task() -> bool:
        with lock:
            state["running"] += 1
            state["peak"] = max(state["peak"], state["running"])
        time.sleep(0.01)
        with lock:
            state["running"] -= 1
        return True

    pool = WorkerPool(max_workers=3)
    for _ in range(24):
        pool.submit(task)
    outcomes = pool.wait()

    assert len(outcomes) == 24
    assert state["peak"] <= 3


def test_tasks_do_run_in_parallel() -> None:
    barrier = threading.Barrier(4, timeout=5)

    def task() -> bool:
        barrier.wait()
        return True

    pool = WorkerPool(max_workers=4)
    for _ in range(4):
        pool.submit(task)

    assert all(outcome.success for outcome in pool.wait())


def test_duration_excludes_queue_wait() -> None:
    pool = WorkerPool(max_workers=1)
    for _ in range(5):
        pool.submit(functools.partial(time.sleep, 0.05))

    outcomes = pool.wait()

    assert len(outcomes) == 5
    assert all(0.04 <= outcome.duration_s < 0.2 for outcome in outcomes)


def test_pool_is_single_use() -> None:
    pool = WorkerPool(max_workers=2)
    pool.submit(_ok)
    pool.wait()

    with pytest.raises(RuntimeError):
        pool.submit(_ok)
    with pytest.raises(RuntimeError):
        pool.wait()


def test_invalid_worker_count() -> None:
    with pytest.raises(ValueError):
        WorkerPool(max_workers=0)


@pytest.mark.parametrize(
    ("total", "interval"),
    [(0, 1), (1, 1), (9, 1), (10, 1), (11, 2), (47, 5), (100, 10), (1001, 101)],
)
def test_progress_interval(total: int, interval: int) -> None:
    assert progress_interval(total) == interval


def test_progress_logs_every_tenth(caplog: pytest.LogCaptureFixture) -> None:
    tracker = ProgressTracker(47, verb="Created", noun="domains")

    with caplog.at_level(logging.INFO, logger="csbench.progress"):
        for _ in range(47):
            tracker.tick()

    messages = [record.getMessage() for record in caplog.records if record.name == "csbench.progress"]
    assert len(messages) == 9
    assert messages[0] == "Created 5 of 47 domains"
    assert messages[-1] == "Created 45 of 47 domains"


def test_progress_small_totals_log_every_task(caplog: pytest.LogCaptureFixture) -> None:
    tracker = ProgressTracker(3, verb="Updated limits for", noun="accounts")

    with caplog.at_level(logging.INFO, logger="csbench.progress"):
        for _ in range(3):
            tracker.tick()

    assert [record.getMessage() for record in caplog.records] == [
        "Updated limits for 1 of 3 accounts",
        "Updated limits for 2 of 3 accounts",
        "Updated limits for 3 of 3 accounts",
    ]


def test_progress_with_zero_total() -> None:
    tracker = ProgressTracker(0)
    assert tracker.interval == 1
    assert tracker.count == 0


def _interrupt() -> bool:
    raise KeyboardInterrupt


def test_exit_inside_a_task_does_not_stop_the_worker() -> None:
    pool = WorkerPool(max_workers=1)
    pool.submit(functools.partial(sys.exit, 1))
    pool.submit(_interrupt)
    for _ in range(4):
        pool.submit(_ok)

    outcomes = pool.wait()

    assert len(outcomes) == 6
    assert sorted(outcome.success for outcome in outcomes) == [False, False, True, True, True, True]


def test_idle_worker_is_reused_before_starting_another() -> None:
    pool = WorkerPool(max_workers=4)
    for _ in range(3):
        done = threading.Event()
        pool.submit(done.set)
        assert done.wait(timeout=5)
        deadline = time.monotonic() + 5
        while pool.idle_workers == 0 and time.monotonic() < deadline:
            time.sleep(0.001)

    assert pool.worker_count == 1
    assert len(pool.wait()) == 3

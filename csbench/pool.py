from __future__ import annotations

import logging
import math
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable

LOGGER = logging.getLogger("csbench.pool")
PROGRESS_LOGGER = logging.getLogger("csbench.progress")

DEFAULT_WORKERS = 10

Task = Callable[[], object]

_STOP = object()


@dataclass(frozen=True)
class Outcome:
    success: bool
    duration_s: float


class WorkerPool:
    """Runs submitted tasks on at most ``max_workers`` threads.

    The pool is single use: submit every task, then call :meth:`wait` once to
    drain the queue and collect one :class:`Outcome` per task. A task that
    raises anything, ``SystemExit`` included, is recorded as a failed outcome
    and the worker moves on to the next task. A new thread is only started
    when every existing worker is busy.
    """

    def __init__(self, max_workers: int = DEFAULT_WORKERS, name: str = "csbench-worker") -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._max_workers = max_workers
        self._name = name
        self._queue: queue.Queue = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._outcomes: list[list[Outcome]] = []
        self._submitted = 0
        self._idle = 0
        self._lock = threading.Lock()
        self._drained = False

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def submitted(self) -> int:
        return self._submitted

    @property
    def worker_count(self) -> int:
        return len(self._threads)

    @property
    def idle_workers(self) -> int:
        return self._idle

    def submit(self, task: Task) -> None:
        if self._drained:
            raise RuntimeError("WorkerPool.submit called after wait()")
        with self._lock:
            if self._idle > 0:
                self._idle -= 1
                spawn = False
            else:
                spawn = len(self._threads) < self._max_workers
        if spawn:
            self._start_worker()
        self._queue.put(task)
        self._submitted += 1

    def wait(self) -> list[Outcome]:
        if self._drained:
            raise RuntimeError("WorkerPool.wait called more than once")
        self._drained = True

        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join()

        results: list[Outcome] = []
        for worker_outcomes in self._outcomes:
            results.extend(worker_outcomes)
        return results

    def _start_worker(self) -> None:
        outcomes: list[Outcome] = []
        self._outcomes.append(outcomes)
        thread = threading.Thread(
            target=self._work,
            args=(outcomes,),
            name=f"{self._name}-{len(self._threads) + 1}",
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def _work(self, outcomes: list[Outcome]) -> None:
        while True:
            task = self._queue.get()
            if task is _STOP:
                return

            started = time.perf_counter()
            success = False
            try:
                success = bool(task())
            except BaseException:  # noqa: BLE001
                LOGGER.warning("task failed", exc_info=True)
            outcomes.append(Outcome(success=success, duration_s=time.perf_counter() - started))
            with self._lock:
                self._idle += 1


def progress_interval(total: int) -> int:
    return max(1, math.ceil(total / 10))


class ProgressTracker:
    """Logs roughly every 10% of submitted tasks."""

    def __init__(self, total: int, verb: str = "Created", noun: str = "") -> None:
        self.total = total
        self.verb = verb
        self.noun = noun
        self.interval = progress_interval(total)
        self.count = 0

    def tick(self) -> None:
        self.count += 1
        if self.count % self.interval == 0:
            message = f"{self.verb} {self.count} of {self.total}"
            if self.noun:
                message = f"{message} {self.noun}"
            PROGRESS_LOGGER.info(message)

"""Bounded-concurrency extraction scheduler: FIFO queue, top-up on completion, order-preserving slots."""

import asyncio
import logging
import math
import os
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Protocol, Sequence, TypeVar

from scenecut.models.entities import TaskFailure

_log = logging.getLogger(__name__)


class IndexedTask(Protocol):
    original_index: int


T = TypeVar("T", bound=IndexedTask)
R = TypeVar("R")

ProgressCallback = Callable[[float, str], None]


def compute_max_concurrency(cores: int, n_tasks: int, *, override: int | None = None) -> int:
    """
    Worker count for n_tasks on a machine with cores CPUs.

    - cores >= 12: clamp(floor(cores * 0.9), 6, 16)
    - 8 <= cores < 12: clamp(floor(cores * 0.8), 4, 10)
    - cores < 8: clamp(floor(cores * 0.6), 2, 6)

    An override replaces the tier value. Either way the result never exceeds n_tasks.
    """
    if n_tasks < 0:
        raise ValueError(f"n_tasks must be non-negative, got {n_tasks}")
    if override is not None:
        if override < 1:
            raise ValueError(f"max_concurrency override must be >= 1, got {override}")
        return min(override, n_tasks)
    cores = max(1, cores)
    if cores >= 12:
        tier = min(16, max(6, math.floor(cores * 0.9)))
    elif cores >= 8:
        tier = min(10, max(4, math.floor(cores * 0.8)))
    else:
        tier = min(6, max(2, math.floor(cores * 0.6)))
    return min(tier, n_tasks)


@dataclass
class SchedulerRun(Generic[R]):
    """
    Outcome of one scheduler run.

    results has one slot per submitted task, indexed by original_index. A slot is None when
    the task failed (see failures) or was never dispatched because the run was cancelled.
    """

    results: list[R | None]
    failures: list[TaskFailure] = field(default_factory=list)
    processed: int = 0
    total: int = 0
    max_concurrency: int = 0
    peak_active: int = 0
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return self.processed - len(self.failures)


def _validate_indices(tasks: Sequence[IndexedTask]) -> None:
    indices = sorted(t.original_index for t in tasks)
    if indices != list(range(len(tasks))):
        raise ValueError("Task original_index values must be a permutation of 0..N-1")


class ExtractionScheduler(Generic[T, R]):
    """
    Runs worker(task) for every task with at most max_concurrency in flight.

    Pending tasks wait in a FIFO queue; the pool is topped up at start and after every
    completion. A raised exception is recorded as a TaskFailure for that slot and never aborts
    the run. Once cancel_event is set nothing further is dispatched; with kill_on_cancel the
    in-flight workers are cancelled as well (the process runner kills their subprocesses).
    """

    def __init__(
        self,
        worker: Callable[[T], Awaitable[R]],
        *,
        max_concurrency: int | None = None,
        cpu_count: int | None = None,
        on_progress: ProgressCallback | None = None,
        on_complete: Callable[[SchedulerRun[R]], None] | None = None,
        cancel_event: asyncio.Event | None = None,
        kill_on_cancel: bool = False,
    ) -> None:
        self._worker = worker
        self._max_concurrency = max_concurrency
        self._cpu_count = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._cancel_event = cancel_event
        self._kill_on_cancel = kill_on_cancel

    def _cancel_requested(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def run(self, tasks: Sequence[T]) -> SchedulerRun[R]:
        tasks = list(tasks)
        total = len(tasks)
        _validate_indices(tasks)
        limit = compute_max_concurrency(self._cpu_count, total, override=self._max_concurrency)
        run: SchedulerRun[R] = SchedulerRun(results=[None] * total, total=total, max_concurrency=limit)
        _log.info("Scheduling %d tasks with max concurrency %d", total, limit)

        pending: deque[T] = deque(tasks)
        in_flight: dict[asyncio.Future, T] = {}
        killed = 0
        cancel_waiter: asyncio.Future | None = None
        if self._cancel_event is not None and self._kill_on_cancel:
            cancel_waiter = asyncio.ensure_future(self._cancel_event.wait())

        def top_up() -> None:
            while pending and len(in_flight) < limit and not self._cancel_requested():
                task = pending.popleft()
                in_flight[asyncio.ensure_future(self._worker(task))] = task
                run.peak_active = max(run.peak_active, len(in_flight))

        try:
            top_up()
            while in_flight:
                waitables = set(in_flight)
                if cancel_waiter is not None:
                    waitables.add(cancel_waiter)
                done, _ = await asyncio.wait(waitables, return_when=asyncio.FIRST_COMPLETED)
                for fut in done:
                    if fut is cancel_waiter:
                        continue
                    task = in_flight.pop(fut)
                    self._record(run, task, fut)
                if cancel_waiter is not None and cancel_waiter.done() and in_flight:
                    _log.warning("Cancellation requested; killing %d in-flight tasks", len(in_flight))
                    for fut in in_flight:
                        fut.cancel()
                    await asyncio.gather(*in_flight, return_exceptions=True)
                    killed = len(in_flight)
                    in_flight.clear()
                top_up()
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()
            for fut in in_flight:
                fut.cancel()

        run.cancelled = bool(pending) or killed > 0
        if run.cancelled:
            _log.warning(
                "Run cancelled: %d/%d processed, %d never dispatched, %d killed",
                run.processed,
                total,
                len(pending),
                killed,
            )
        else:
            _log.info(
                "Run finished: %d/%d succeeded, %d failed (peak concurrency %d)",
                run.succeeded,
                total,
                len(run.failures),
                run.peak_active,
            )
        if self._on_complete is not None:
            self._on_complete(run)
        return run

    def _record(self, run: SchedulerRun[R], task: T, fut: asyncio.Future) -> None:
        run.processed += 1
        idx = task.original_index
        if fut.cancelled():
            run.failures.append(TaskFailure(idx, "Task was cancelled", "CancelledError"))
        elif fut.exception() is not None:
            exc = fut.exception()
            _log.warning("Task %d failed: %s: %s", idx, type(exc).__name__, exc)
            run.failures.append(TaskFailure(idx, str(exc), type(exc).__name__))
        else:
            run.results[idx] = fut.result()
        if self._on_progress is not None:
            self._on_progress(run.processed / run.total, f"Processed {run.processed}/{run.total}")

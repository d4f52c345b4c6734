"""Bounded-concurrency scheduling of extraction tasks."""

from scenecut.workers.scheduler import ExtractionScheduler, SchedulerRun, compute_max_concurrency

__all__ = ["ExtractionScheduler", "SchedulerRun", "compute_max_concurrency"]

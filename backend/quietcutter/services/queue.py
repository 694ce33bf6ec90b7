"""In-process priority job queue.

Jobs run on background worker threads, one at a time with the default worker
count. Priority jobs are inserted ahead of the first standard job rather than
at the very front, so they overtake standard jobs but never other priority
jobs.
"""

import itertools
import logging
import threading
from typing import Callable, List, Optional

from quietcutter.models.jobs import Job

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], None]


def priority_insert_index(jobs: List[Job], priority: bool) -> int:
    """position a new job takes: before the first standard job if priority, else the end"""
    if priority:
        for index, queued in enumerate(jobs):
            if not queued.priority:
                return index
    return len(jobs)


class PriorityJobQueue:
    """FIFO per tier with priority re-insertion and a bounded pool of drain loops"""

    def __init__(self, handler: JobHandler, worker_count: int = 1):
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self._handler = handler
        self._worker_count = worker_count
        self._jobs: List[Job] = []
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._active_workers = 0
        self._running_jobs = 0
        self._thread_ids = itertools.count(1)

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._jobs)

    @property
    def active_workers(self) -> int:
        with self._lock:
            return self._active_workers

    @property
    def running_count(self) -> int:
        with self._lock:
            return self._running_jobs

    def snapshot(self) -> List[int]:
        """file ids of queued jobs in dequeue order"""
        with self._lock:
            return [job.file_id for job in self._jobs]

    def enqueue(self, job: Job) -> int:
        """add a job and start a drain loop if one is free; returns its queue position"""
        with self._lock:
            index = priority_insert_index(self._jobs, job.priority)
            self._jobs.insert(index, job)

            if self._active_workers < self._worker_count:
                self._active_workers += 1
                worker = threading.Thread(
                    target=self._drain,
                    name=f"silence-worker-{next(self._thread_ids)}",
                    daemon=True,
                )
                worker.start()

        logger.info(f"queued file {job.file_id} at position {index} (priority={job.priority})")
        return index

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """block until nothing is queued or running; False on timeout"""
        with self._idle:
            return self._idle.wait_for(
                lambda: not self._jobs and self._active_workers == 0, timeout=timeout
            )

    def _drain(self):
        while True:
            with self._lock:
                if not self._jobs:
                    self._active_workers -= 1
                    self._idle.notify_all()
                    return
                job = self._jobs.pop(0)
                self._running_jobs += 1

            try:
                self._handler(job)
            except Exception:
                # a failed job never stops the queue
                logger.exception(f"job for file {job.file_id} raised, continuing with next job")
            finally:
                with self._lock:
                    self._running_jobs -= 1

import threading
import time
import pytest
from quietcutter.models import Job, OutputFormat
from quietcutter.services.queue import PriorityJobQueue, priority_insert_index


def make_job(file_id, priority=False):
    return Job(
        file_id=file_id,
        source_path=f"/tmp/{file_id}.mp3",
        silence_threshold_db=-40,
        min_silence_duration_ms=500,
        output_format=OutputFormat.MP3,
        priority=priority,
    )


class GatedHandler:
    """records the order jobs run in; the first job blocks until released"""

    def __init__(self, hold_first=True):
        self.order = []
        self.release = threading.Event()
        self.first_started = threading.Event()
        self.hold_first = hold_first
        self.concurrent = 0
        self.max_concurrent = 0
        self._lock = threading.Lock()

    def __call__(self, job):
        with self._lock:
            self.concurrent += 1
            self.max_concurrent = max(self.max_concurrent, self.concurrent)
        try:
            if not self.order and self.hold_first:
                self.order.append(job.file_id)
                self.first_started.set()
                self.release.wait(timeout=10)
            else:
                self.order.append(job.file_id)
                time.sleep(0.01)
        finally:
            with self._lock:
                self.concurrent -= 1


def test_priority_insert_index():
    jobs = [make_job(1, True), make_job(2), make_job(3)]
    assert priority_insert_index(jobs, priority=True) == 1
    assert priority_insert_index(jobs, priority=False) == 3
    assert priority_insert_index([], priority=True) == 0
    assert priority_insert_index([make_job(1, True)], priority=True) == 1


def test_priority_jobs_overtake_standard_jobs_but_not_each_other():
    """S1, P1, S2, P2, S3 queued behind a running job dequeue as P1, P2, S1, S2, S3"""
    handler = GatedHandler()
    queue = PriorityJobQueue(handler)

    queue.enqueue(make_job(0))
    assert handler.first_started.wait(timeout=5)

    for file_id, priority in [(11, False), (21, True), (12, False), (22, True), (13, False)]:
        queue.enqueue(make_job(file_id, priority))

    assert queue.snapshot() == [21, 22, 11, 12, 13]
    assert queue.pending_count == 5
    assert queue.running_count == 1

    handler.release.set()
    assert queue.wait_until_idle(timeout=10)
    assert handler.order == [0, 21, 22, 11, 12, 13]


def test_enqueue_returns_position():
    handler = GatedHandler()
    queue = PriorityJobQueue(handler)
    queue.enqueue(make_job(0))
    assert handler.first_started.wait(timeout=5)

    assert queue.enqueue(make_job(1)) == 0
    assert queue.enqueue(make_job(2)) == 1
    assert queue.enqueue(make_job(3, priority=True)) == 0

    handler.release.set()
    assert queue.wait_until_idle(timeout=10)


def test_single_worker_runs_one_job_at_a_time():
    handler = GatedHandler(hold_first=False)
    queue = PriorityJobQueue(handler)
    for file_id in range(10):
        queue.enqueue(make_job(file_id))

    assert queue.wait_until_idle(timeout=10)
    assert handler.max_concurrent == 1
    assert handler.order == list(range(10))


def test_failed_job_does_not_stop_the_queue():
    ran = []

    def handler(job):
        ran.append(job.file_id)
        if job.file_id == 1:
            raise RuntimeError("boom")

    queue = PriorityJobQueue(handler)
    for file_id in (1, 2, 3):
        queue.enqueue(make_job(file_id))

    assert queue.wait_until_idle(timeout=10)
    assert ran == [1, 2, 3]
    assert queue.active_workers == 0
    assert queue.running_count == 0


def test_worker_count_bounds_concurrency():
    barrier = threading.Barrier(2, timeout=5)
    seen = []

    def handler(job):
        seen.append(job.file_id)
        if job.file_id in (1, 2):
            # both must be running together for the barrier to pass
            barrier.wait()

    queue = PriorityJobQueue(handler, worker_count=2)
    for file_id in (1, 2, 3):
        queue.enqueue(make_job(file_id))

    assert queue.wait_until_idle(timeout=10)
    assert sorted(seen) == [1, 2, 3]
    assert queue.active_workers == 0


def test_concurrent_enqueue_keeps_every_job():
    handler = GatedHandler()
    queue = PriorityJobQueue(handler)
    queue.enqueue(make_job(0))
    assert handler.first_started.wait(timeout=5)

    def submit(start):
        for offset in range(20):
            queue.enqueue(make_job(start + offset, priority=start % 200 == 0))

    threads = [threading.Thread(target=submit, args=(start,)) for start in (100, 200, 300, 400)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    pending = queue.snapshot()
    assert len(pending) == 80
    priority_ids = [i for i in pending if 200 <= i < 220 or 400 <= i < 420]
    # every priority job sits ahead of every standard job
    assert pending[:len(priority_ids)] == priority_ids

    handler.release.set()
    assert queue.wait_until_idle(timeout=10)
    assert len(handler.order) == 81


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        PriorityJobQueue(lambda job: None, worker_count=0)


def test_wait_until_idle_on_empty_queue():
    queue = PriorityJobQueue(lambda job: None)
    assert queue.wait_until_idle(timeout=0.1)

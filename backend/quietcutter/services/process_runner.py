"""
Progress-tracking runner for the external media tool.

Spawns the tool as a child process, reads its stderr while it streams,
turns `time=HH:MM:SS.hh` markers into a 0-99 percentage and hands that to a
throttled callback. A watchdog timer kills the child once it runs past the
timeout. The child is owned by a single context manager and is reaped on
every exit path.
"""

import logging
import math
import re
import subprocess
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from quietcutter.core.config import settings
from quietcutter.core.errors import ProcessFailedError, ProcessTimeoutError

logger = logging.getLogger(__name__)

TIME_MARKER = re.compile(rb"time=(\d{2,}):(\d{2}):(\d{2})\.(\d{2})")
STDERR_TAIL_BYTES = 4096
READ_CHUNK_BYTES = 4096

ProgressCallback = Callable[[int], None]


def parse_last_timestamp(text: bytes) -> Optional[float]:
    """seconds elapsed according to the last time= marker in text, or None"""
    matches = TIME_MARKER.findall(text)
    if not matches:
        return None
    hours, minutes, seconds, hundredths = (int(part) for part in matches[-1])
    return hours * 3600 + minutes * 60 + seconds + hundredths / 100.0


def progress_percent(elapsed_sec: float, total_sec: float) -> int:
    """percentage of total covered so far, capped at 99 until the process exits"""
    # halves round up, 12.5% reports as 13
    return max(0, min(99, math.floor(100 * elapsed_sec / total_sec + 0.5)))


class ProgressThrottle:
    """forwards increasing percentages to a callback at most once per interval"""

    def __init__(self, callback: ProgressCallback, interval_sec: float, clock: Callable[[], float] = time.monotonic):
        self._callback = callback
        self._interval_sec = interval_sec
        self._clock = clock
        self._last_push: Optional[float] = None
        self._last_percent = -1

    @property
    def last_percent(self) -> int:
        return self._last_percent

    def offer(self, percent: int) -> bool:
        if percent <= self._last_percent:
            return False
        now = self._clock()
        if self._last_push is not None and now - self._last_push < self._interval_sec:
            return False

        self._last_push = now
        self._last_percent = percent
        try:
            self._callback(percent)
        except Exception as e:
            # progress is best-effort, never abort the running process over it
            logger.warning(f"progress update failed at {percent}%: {e}")
        return True


@dataclass
class ProcessResult:
    returncode: int
    elapsed_sec: float
    stderr_tail: str


class ProcessRunner:
    """runs one external command at a time per call, with progress and a watchdog"""

    def __init__(
        self,
        timeout_sec: Optional[float] = None,
        throttle_sec: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_sec = settings.PROCESS_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self.throttle_sec = settings.PROGRESS_THROTTLE_SEC if throttle_sec is None else throttle_sec
        self._clock = clock
        self._gauge_lock = threading.Lock()
        self.active_count = 0
        self.peak_active_count = 0
        self.total_runs = 0

    def run(
        self,
        command: str,
        args: List[str],
        total_duration_sec: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessResult:
        """
        run command with args to completion

        progress is only reported when total_duration_sec is known, so a failed
        duration probe never produces misleading numbers.
        raises ProcessTimeoutError when the watchdog fires and ProcessFailedError
        on a non-zero exit or spawn failure.
        """
        cmd = [command, *args]
        throttle = None
        if on_progress is not None and total_duration_sec and total_duration_sec > 0:
            throttle = ProgressThrottle(on_progress, self.throttle_sec, clock=self._clock)

        timed_out = threading.Event()
        tail = bytearray()
        started = time.monotonic()

        logger.info(f"running: {' '.join(cmd)}")
        with self._spawn(cmd) as proc:
            watchdog = threading.Timer(self.timeout_sec, self._expire, args=(proc, timed_out))
            watchdog.daemon = True
            watchdog.start()
            try:
                self._pump_stderr(proc, tail, throttle, total_duration_sec)
                returncode = proc.wait()
            finally:
                watchdog.cancel()

        elapsed = time.monotonic() - started
        stderr_tail = tail.decode("utf-8", errors="replace")

        if timed_out.is_set():
            logger.error(f"{command} killed after {self.timeout_sec:g}s timeout")
            raise ProcessTimeoutError(command, self.timeout_sec)
        if returncode != 0:
            logger.error(f"{command} exited with code {returncode}: {stderr_tail[-500:]}")
            raise ProcessFailedError(command, returncode, stderr_tail)

        return ProcessResult(returncode=returncode, elapsed_sec=elapsed, stderr_tail=stderr_tail)

    @contextmanager
    def _spawn(self, cmd: List[str]) -> Iterator[subprocess.Popen]:
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessFailedError(cmd[0], None, str(e)) from e

        with self._gauge_lock:
            self.active_count += 1
            self.total_runs += 1
            self.peak_active_count = max(self.peak_active_count, self.active_count)
        try:
            yield proc
        finally:
            if proc.poll() is None:
                proc.kill()
            proc.wait()
            proc.stderr.close()
            with self._gauge_lock:
                self.active_count -= 1

    @staticmethod
    def _expire(proc: subprocess.Popen, timed_out: threading.Event):
        if proc.poll() is None:
            timed_out.set()
            proc.kill()

    @staticmethod
    def _pump_stderr(
        proc: subprocess.Popen,
        tail: bytearray,
        throttle: Optional[ProgressThrottle],
        total_duration_sec: Optional[float],
    ):
        pending = b""
        while True:
            chunk = proc.stderr.read1(READ_CHUNK_BYTES)
            if not chunk:
                break

            tail.extend(chunk)
            del tail[:-STDERR_TAIL_BYTES]

            if throttle is None:
                continue

            # ffmpeg ends progress lines with \r, only parse complete ones
            pending += chunk
            cut = max(pending.rfind(b"\r"), pending.rfind(b"\n"))
            if cut < 0:
                pending = pending[-READ_CHUNK_BYTES:]
                continue
            complete, pending = pending[:cut], pending[cut + 1:]

            elapsed = parse_last_timestamp(complete)
            if elapsed is not None:
                throttle.offer(progress_percent(elapsed, total_duration_sec))

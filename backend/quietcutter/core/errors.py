import logging
from typing import Callable, Any, Optional
from functools import wraps
import time

logger = logging.getLogger(__name__)

def retry_with_backoff(max_retries: int = 3, initial_delay: float = 1.0, backoff_factor: float = 2.0):
    """
    decorator to retry a function with exponential backoff

    usage:
        @retry_with_backoff(max_retries=5, initial_delay=0.5)
        def mark_completed(file_id):
            # ... store write that might hit a locked row ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            delay = initial_delay
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.warning(
                            f"{func.__name__} failed (attempt {attempt + 1}/{max_retries}): {str(e)}. "
                            f"retrying in {delay}s..."
                        )
                        time.sleep(delay)
                        delay *= backoff_factor
                    else:
                        logger.error(
                            f"{func.__name__} failed after {max_retries} attempts: {str(e)}"
                        )

            # all retries exhausted
            raise last_exception

        return wrapper
    return decorator


def handle_worker_error(file_id: int, error: Exception):
    """
    centralized error handler for background jobs
    logs the failure with traceback; the status record carries the user-visible state
    """
    logger.error(f"job for file {file_id} failed: {error}", exc_info=error)


class QuietCutterException(Exception):
    """base exception for quietcutter-specific errors"""
    pass


class AdmissionError(QuietCutterException):
    """raised when an upload is rejected before any job is created"""
    status_code = 400


class NoFilesError(AdmissionError):
    def __init__(self):
        super().__init__("No file uploaded")


class UnsupportedMediaError(AdmissionError):
    status_code = 415

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"Only audio and video files are allowed: {filename}")


class FileTooLargeError(AdmissionError):
    status_code = 413

    def __init__(self, size_bytes: int, limit_bytes: int, is_paid: bool):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        tier = "Pro" if is_paid else "free"
        super().__init__(
            f"File exceeds the {limit_bytes // (1024 * 1024)} MB size limit for {tier} accounts"
        )


class BatchUploadNotAllowedError(AdmissionError):
    status_code = 403

    def __init__(self):
        super().__init__("Batch upload is a Pro feature")


class BatchTooLargeError(AdmissionError):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Too many files in one upload ({count}), the maximum is {limit}")


class MediaProcessingError(QuietCutterException):
    """raised when the external media tool fails"""
    pass


class ProcessFailedError(MediaProcessingError):
    def __init__(self, command: str, returncode: Optional[int], stderr_tail: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        if returncode is None:
            message = f"{command} could not be started"
        else:
            message = f"{command} exited with code {returncode}"
        super().__init__(message)


class ProcessTimeoutError(MediaProcessingError):
    def __init__(self, command: str, timeout_sec: float):
        self.command = command
        self.timeout_sec = timeout_sec
        super().__init__(f"{command} timed out after {timeout_sec:g}s")


class ReprocessError(QuietCutterException):
    """raised when a file cannot be resubmitted for processing"""
    status_code = 400


class FileRecordNotFoundError(ReprocessError):
    status_code = 404

    def __init__(self, file_id: int):
        self.file_id = file_id
        super().__init__(f"File {file_id} not found")


class ProjectNotFoundError(ReprocessError):
    status_code = 404

    def __init__(self, project_id: int):
        self.project_id = project_id
        super().__init__(f"Project {project_id} not found")


class SourceUnavailableError(ReprocessError):
    status_code = 410

    def __init__(self, file_id: int):
        self.file_id = file_id
        super().__init__(f"No source available for file {file_id}, please upload it again")


class AlreadyQueuedError(ReprocessError):
    status_code = 409

    def __init__(self, file_id: int, status: str):
        self.file_id = file_id
        super().__init__(f"File {file_id} is already {status}")

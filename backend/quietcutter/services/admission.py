"""Upload admission policy: tier quotas, batch entitlement and free-tier eviction."""

import logging
import os
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from quietcutter.core.config import settings
from quietcutter.core.errors import (
    BatchTooLargeError,
    BatchUploadNotAllowedError,
    FileTooLargeError,
    NoFilesError,
    UnsupportedMediaError,
)
from quietcutter.models.files import FileType, OutputFormat
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.storage_manager import remove_file

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {".mp3", ".wav", ".ogg", ".flac", ".m4a", ".aac", ".opus"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v"}


class AdmissionLimits(BaseModel):
    """per-tier quotas, defaults are read from settings when built"""
    free_max_file_bytes: int = Field(default_factory=lambda: settings.FREE_MAX_FILE_BYTES)
    pro_max_file_bytes: int = Field(default_factory=lambda: settings.PRO_MAX_FILE_BYTES)
    pro_max_batch_files: int = Field(default_factory=lambda: settings.PRO_MAX_BATCH_FILES)
    free_max_projects: int = Field(default_factory=lambda: settings.FREE_MAX_PROJECTS)
    default_output_format: OutputFormat = Field(
        default_factory=lambda: OutputFormat(settings.DEFAULT_OUTPUT_FORMAT)
    )

    def max_file_bytes(self, is_paid: bool) -> int:
        return self.pro_max_file_bytes if is_paid else self.free_max_file_bytes


class AdmissionDecision(BaseModel):
    output_format: OutputFormat
    evict_oldest_project: bool = False
    priority: bool = False


def detect_file_type(filename: str, content_type: Optional[str] = None) -> FileType:
    """classify an upload as audio or video, rejecting anything else"""
    ext = os.path.splitext(filename or "")[1].lower()
    content_type = (content_type or "").lower()

    if content_type.startswith("video/") or ext in VIDEO_EXTENSIONS:
        return FileType.VIDEO
    if content_type.startswith("audio/") or ext in AUDIO_EXTENSIONS:
        return FileType.AUDIO
    raise UnsupportedMediaError(filename)


def check_batch_size(is_paid: bool, file_count: int, limits: Optional[AdmissionLimits] = None):
    """batch entitlement and cap; needs only the count, so it can run before any file is buffered"""
    limits = limits or AdmissionLimits()
    if file_count > 1:
        if not is_paid:
            raise BatchUploadNotAllowedError()
        if file_count > limits.pro_max_batch_files:
            raise BatchTooLargeError(file_count, limits.pro_max_batch_files)


def evaluate_admission(
    is_paid: bool,
    file_sizes: Sequence[int],
    project_count: int,
    requested_format: Optional[OutputFormat] = None,
    limits: Optional[AdmissionLimits] = None,
) -> AdmissionDecision:
    """
    decide whether an upload batch is accepted

    rules are applied in order: size ceiling, batch entitlement and cap,
    free-tier project ceiling (evict, never reject), output format entitlement.
    raises an AdmissionError subclass on rejection.
    """
    limits = limits or AdmissionLimits()

    if not file_sizes:
        raise NoFilesError()

    size_limit = limits.max_file_bytes(is_paid)
    for size in file_sizes:
        if size > size_limit:
            raise FileTooLargeError(size, size_limit, is_paid)

    check_batch_size(is_paid, len(file_sizes), limits)

    evict = not is_paid and project_count >= limits.free_max_projects

    output_format = limits.default_output_format
    if is_paid and requested_format is not None:
        output_format = OutputFormat(requested_format)

    return AdmissionDecision(output_format=output_format, evict_oldest_project=evict, priority=is_paid)


def evict_oldest_project(store: SqlStatusStore, user_id: str) -> Optional[int]:
    """
    delete the user's oldest project with its files on disk and its records

    safe to retry: files already gone from disk are skipped.
    returns the evicted project id, or None when the user has no projects.
    """
    project = store.oldest_project(user_id)
    if not project:
        return None

    records = store.list_project_files(project.id)
    removed: List[str] = []
    for record in records:
        for path in (record.original_file_path, record.processed_file_path):
            if remove_file(path):
                removed.append(path)

    store.delete_project(project.id)
    logger.info(
        f"evicted project {project.id} for user {user_id}: "
        f"{len(records)} file records, {len(removed)} files removed from disk"
    )
    return project.id

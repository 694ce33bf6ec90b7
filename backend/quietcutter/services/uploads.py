"""Upload submission and reprocessing entry points of the pipeline."""

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from quietcutter.core.config import settings
from quietcutter.core.errors import (
    AlreadyQueuedError,
    FileRecordNotFoundError,
    ProjectNotFoundError,
    ReprocessError,
    SourceUnavailableError,
)
from quietcutter.models import FileStatus, FileType, Job, OutputFormat, Project, ProjectFile
from quietcutter.services.admission import (
    AdmissionLimits,
    detect_file_type,
    evaluate_admission,
    evict_oldest_project,
)
from quietcutter.services.log_publisher import publish_log
from quietcutter.services.queue import PriorityJobQueue
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.storage_manager import remove_file

logger = logging.getLogger(__name__)


class UploadSettings(BaseModel):
    """processing settings accepted with an upload; unknown fields are rejected"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    silence_threshold_db: int = Field(
        default=settings.DEFAULT_SILENCE_THRESHOLD_DB, alias="silenceThresholdDb", ge=-100, le=0
    )
    min_silence_duration_ms: int = Field(
        default=settings.DEFAULT_MIN_SILENCE_DURATION_MS, alias="minSilenceDurationMs", ge=0, le=60000
    )
    output_format: OutputFormat = Field(
        default=OutputFormat(settings.DEFAULT_OUTPUT_FORMAT), alias="outputFormat"
    )
    # part of the submit form but never trusted, priority comes from the tier lookup
    is_priority: Optional[bool] = Field(default=None, alias="isPriority")


class SettingsOverride(BaseModel):
    """settings supplied when reprocessing; missing values fall back to stored ones"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    silence_threshold_db: Optional[int] = Field(default=None, alias="silenceThresholdDb", ge=-100, le=0)
    min_silence_duration_ms: Optional[int] = Field(default=None, alias="minSilenceDurationMs", ge=0, le=60000)
    output_format: Optional[OutputFormat] = Field(default=None, alias="outputFormat")


@dataclass
class StagedUpload:
    """an uploaded file buffered to temporary storage, not yet admitted"""
    filename: str
    temp_path: str
    size_bytes: int
    content_type: Optional[str] = None


@dataclass
class SubmissionResult:
    project_id: int
    file_ids: List[int]
    priority: bool
    evicted_project_id: Optional[int] = None


@dataclass
class ProjectReprocessResult:
    project_id: int
    queued_file_ids: List[int] = field(default_factory=list)
    skipped: Dict[int, str] = field(default_factory=dict)


def discard_staged(uploads: List[StagedUpload]):
    for upload in uploads:
        remove_file(upload.temp_path)


def _store_upload(upload: StagedUpload, uploads_dir: str) -> str:
    """move a staged file to permanent upload storage under a unique name"""
    os.makedirs(uploads_dir, exist_ok=True)
    ext = os.path.splitext(upload.filename)[1].lower()
    final_path = os.path.join(uploads_dir, f"{uuid4().hex}{ext}")
    shutil.move(upload.temp_path, final_path)
    return final_path


def _project_name(uploads: List[StagedUpload]) -> str:
    name = os.path.splitext(os.path.basename(uploads[0].filename))[0] or "Untitled"
    if len(uploads) > 1:
        name = f"{name} (+{len(uploads) - 1} more)"
    return name


def submit_upload(
    store: SqlStatusStore,
    queue: PriorityJobQueue,
    user_id: str,
    is_paid: bool,
    uploads: List[StagedUpload],
    upload_settings: UploadSettings,
    limits: Optional[AdmissionLimits] = None,
    uploads_dir: Optional[str] = None,
) -> SubmissionResult:
    """
    admit a batch of staged uploads and queue a job per file

    on any rejection or store error the staged files are removed and no status
    record is left behind. jobs are only queued once every record exists.
    """
    uploads_dir = uploads_dir or settings.UPLOADS_DIR
    stored_paths: List[str] = []
    project: Optional[Project] = None
    evicted_project_id = None
    jobs: List[Job] = []

    try:
        file_types = [detect_file_type(u.filename, u.content_type) for u in uploads]
        project_count = 0 if is_paid else store.count_projects(user_id)
        decision = evaluate_admission(
            is_paid,
            [u.size_bytes for u in uploads],
            project_count,
            requested_format=upload_settings.output_format,
            limits=limits,
        )

        if decision.evict_oldest_project:
            evicted_project_id = evict_oldest_project(store, user_id)

        project = store.create_project(
            user_id=user_id,
            name=_project_name(uploads),
            silence_threshold=upload_settings.silence_threshold_db,
            min_silence_duration=upload_settings.min_silence_duration_ms,
            output_format=decision.output_format,
        )

        for upload, file_type in zip(uploads, file_types):
            stored_path = _store_upload(upload, uploads_dir)
            stored_paths.append(stored_path)
            file_id = store.create_file_record(
                project_id=project.id,
                original_file_name=upload.filename,
                original_file_path=stored_path,
                status=FileStatus.PENDING,
                processing_progress=0,
                silence_threshold=upload_settings.silence_threshold_db,
                min_silence_duration=upload_settings.min_silence_duration_ms,
                output_format=decision.output_format,
                file_type=file_type,
                file_size_bytes=upload.size_bytes,
            )
            jobs.append(Job(
                file_id=file_id,
                source_path=stored_path,
                silence_threshold_db=upload_settings.silence_threshold_db,
                min_silence_duration_ms=upload_settings.min_silence_duration_ms,
                output_format=decision.output_format,
                is_video=file_type == FileType.VIDEO,
                priority=decision.priority,
            ))
    except Exception:
        discard_staged(uploads)
        for path in stored_paths:
            remove_file(path)
        if project is not None:
            try:
                store.delete_project(project.id)
            except Exception as cleanup_error:
                logger.error(f"could not roll back project {project.id}: {cleanup_error}")
        raise

    for job in jobs:
        queue.enqueue(job)

    publish_log('backend', 'INFO', f'📥 accepted {len(jobs)} file(s) for user {user_id}', {
        'project_id': project.id,
        'file_ids': [job.file_id for job in jobs],
        'priority': decision.priority,
    })
    return SubmissionResult(
        project_id=project.id,
        file_ids=[job.file_id for job in jobs],
        priority=decision.priority,
        evicted_project_id=evicted_project_id,
    )


def resolve_settings(
    record: ProjectFile,
    project: Optional[Project],
    overrides: Optional[SettingsOverride],
    is_paid: bool,
    default_format: Optional[OutputFormat] = None,
) -> Tuple[int, int, OutputFormat]:
    """
    settings for a reprocess run: caller overrides, then the owning project's
    current settings, then the file's last-used settings.
    a non-default output format only sticks for paid users.
    """
    base = project if project is not None else record
    threshold = base.silence_threshold
    min_duration = base.min_silence_duration
    output_format = OutputFormat(base.output_format)

    if overrides is not None:
        if overrides.silence_threshold_db is not None:
            threshold = overrides.silence_threshold_db
        if overrides.min_silence_duration_ms is not None:
            min_duration = overrides.min_silence_duration_ms
        if overrides.output_format is not None:
            output_format = overrides.output_format

    if not is_paid:
        output_format = default_format or OutputFormat(settings.DEFAULT_OUTPUT_FORMAT)
    return threshold, min_duration, output_format


def _owned_project(store: SqlStatusStore, record: ProjectFile, user_id: str) -> Optional[Project]:
    project = store.get_project(record.project_id)
    if project is not None and project.user_id != user_id:
        raise FileRecordNotFoundError(record.id)
    return project


def reprocess_file(
    store: SqlStatusStore,
    queue: PriorityJobQueue,
    file_id: int,
    user_id: str,
    is_paid: bool,
    overrides: Optional[SettingsOverride] = None,
) -> Job:
    """
    reset a finished record to pending and queue it again

    the original upload must still be on disk. any previous processed output is
    deleted before the new job is queued.
    """
    record = store.get_file_record(file_id)
    if record is None:
        raise FileRecordNotFoundError(file_id)
    project = _owned_project(store, record, user_id)

    if record.status in (FileStatus.PENDING.value, FileStatus.PROCESSING.value):
        raise AlreadyQueuedError(file_id, record.status)
    if not record.original_file_path or not os.path.exists(record.original_file_path):
        raise SourceUnavailableError(file_id)

    threshold, min_duration, output_format = resolve_settings(record, project, overrides, is_paid)

    claimed = store.claim_for_reprocess(
        file_id,
        processed_file_path=None,
        processed_duration_sec=None,
        processing_time_ms=None,
        silence_threshold=threshold,
        min_silence_duration=min_duration,
        output_format=output_format,
    )
    if not claimed:
        # another request queued it between the status check and the claim
        current = store.get_file_record(file_id)
        if current is None:
            raise FileRecordNotFoundError(file_id)
        raise AlreadyQueuedError(file_id, current.status)

    remove_file(record.processed_file_path)

    job = Job(
        file_id=file_id,
        source_path=record.original_file_path,
        silence_threshold_db=threshold,
        min_silence_duration_ms=min_duration,
        output_format=output_format,
        is_video=record.file_type == FileType.VIDEO.value,
        priority=is_paid,
    )
    queue.enqueue(job)
    logger.info(f"reprocessing file {file_id} (threshold={threshold}dB, min={min_duration}ms, {output_format.value})")
    return job


def reprocess_project(
    store: SqlStatusStore,
    queue: PriorityJobQueue,
    project_id: int,
    user_id: str,
    is_paid: bool,
    overrides: Optional[SettingsOverride] = None,
) -> ProjectReprocessResult:
    """apply new settings to a project, then reprocess each of its files with them"""
    project = store.get_project(project_id)
    if project is None or project.user_id != user_id:
        raise ProjectNotFoundError(project_id)

    if overrides is not None:
        update_project_settings(store, project, overrides, is_paid)

    result = ProjectReprocessResult(project_id=project_id)
    for record in store.list_project_files(project_id):
        try:
            reprocess_file(store, queue, record.id, user_id, is_paid)
            result.queued_file_ids.append(record.id)
        except ReprocessError as e:
            result.skipped[record.id] = str(e)
    return result


def update_project_settings(
    store: SqlStatusStore,
    project: Project,
    overrides: SettingsOverride,
    is_paid: bool,
) -> Project:
    changes = {}
    if overrides.silence_threshold_db is not None:
        changes["silence_threshold"] = overrides.silence_threshold_db
    if overrides.min_silence_duration_ms is not None:
        changes["min_silence_duration"] = overrides.min_silence_duration_ms
    if overrides.output_format is not None and is_paid:
        changes["output_format"] = overrides.output_format
    if not changes:
        return project
    return store.update_project_settings(project.id, **changes)

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from quietcutter.api.deps import get_current_user_id, get_job_queue, get_status_store, get_tier_lookup
from quietcutter.core.errors import ReprocessError
from quietcutter.models import FileStatus, ProjectFile
from quietcutter.services.queue import PriorityJobQueue
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.tiers import TierLookup
from quietcutter.services.uploads import SettingsOverride, reprocess_file
from typing import Optional
import logging
import os

router = APIRouter()
logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
}


def file_to_dict(record: ProjectFile) -> dict:
    return {
        "id": record.id,
        "project_id": record.project_id,
        "original_file_name": record.original_file_name,
        "status": record.status,
        "processing_progress": record.processing_progress,
        "silence_threshold": record.silence_threshold,
        "min_silence_duration": record.min_silence_duration,
        "output_format": record.output_format,
        "file_type": record.file_type,
        "file_size_bytes": record.file_size_bytes,
        "original_duration_sec": record.original_duration_sec,
        "processed_duration_sec": record.processed_duration_sec,
        "processing_time_ms": record.processing_time_ms,
        "has_output": bool(record.processed_file_path),
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }


def get_owned_file(store: SqlStatusStore, file_id: int, user_id: str) -> ProjectFile:
    record = store.get_file_record(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")
    project = store.get_project(record.project_id)
    if project is None or project.user_id != user_id:
        raise HTTPException(status_code=404, detail="File not found")
    return record


@router.get("/{file_id}")
def get_file_status(
    file_id: int,
    user_id: str = Depends(get_current_user_id),
    store: SqlStatusStore = Depends(get_status_store),
):
    """current status record of a file, polled by the UI while processing"""
    return file_to_dict(get_owned_file(store, file_id, user_id))


@router.get("/{file_id}/download")
def download_file(
    file_id: int,
    user_id: str = Depends(get_current_user_id),
    store: SqlStatusStore = Depends(get_status_store),
):
    record = get_owned_file(store, file_id, user_id)

    if record.status != FileStatus.COMPLETED.value or not record.processed_file_path:
        raise HTTPException(status_code=404, detail="Processed file not found")
    if not os.path.exists(record.processed_file_path):
        logger.error(f"processed file missing on disk: {record.processed_file_path}")
        raise HTTPException(status_code=404, detail="Processed file not found")

    stem = os.path.splitext(record.original_file_name)[0]
    return FileResponse(
        record.processed_file_path,
        media_type=MEDIA_TYPES.get(record.output_format, "application/octet-stream"),
        filename=f"{stem}_processed.{record.output_format}",
    )


@router.post("/{file_id}/reprocess", status_code=202)
def reprocess(
    file_id: int,
    overrides: Optional[SettingsOverride] = None,
    user_id: str = Depends(get_current_user_id),
    store: SqlStatusStore = Depends(get_status_store),
    queue: PriorityJobQueue = Depends(get_job_queue),
    tier_lookup: TierLookup = Depends(get_tier_lookup),
):
    """reset a finished file and queue it again, optionally with new settings"""
    is_paid = tier_lookup.is_paid_tier(user_id)
    try:
        job = reprocess_file(store, queue, file_id, user_id, is_paid, overrides)
    except ReprocessError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {
        "id": file_id,
        "status": FileStatus.PENDING.value,
        "silence_threshold": job.silence_threshold_db,
        "min_silence_duration": job.min_silence_duration_ms,
        "output_format": job.output_format.value,
        "priority": job.priority,
    }

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.datastructures import UploadFile
from quietcutter.api.deps import get_current_user_id, get_job_queue, get_status_store, get_tier_lookup
from quietcutter.core.config import settings
from quietcutter.core.errors import AdmissionError
from quietcutter.services.admission import AdmissionLimits, check_batch_size
from quietcutter.services.queue import PriorityJobQueue
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.tiers import TierLookup
from quietcutter.services.uploads import StagedUpload, UploadSettings, discard_staged, submit_upload
import logging
import os
from uuid import uuid4

router = APIRouter()
logger = logging.getLogger(__name__)

FILES_FIELD = "files"
CHUNK_BYTES = 1024 * 1024  # 1 MB


async def stage_upload(file: UploadFile, max_bytes: int) -> StagedUpload:
    """
    buffer an upload to temp storage
    stops writing once the file passes max_bytes, the recorded size is then enough
    for the admission check to reject it
    """
    os.makedirs(settings.UPLOAD_TEMP_DIR, exist_ok=True)
    filename = os.path.basename(file.filename or "upload")
    temp_path = os.path.join(settings.UPLOAD_TEMP_DIR, f"temp_{uuid4().hex}_{filename}")

    total = 0
    with open(temp_path, "wb") as buffer:
        while True:
            chunk = await file.read(CHUNK_BYTES)
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                break
            buffer.write(chunk)

    return StagedUpload(
        filename=filename,
        temp_path=temp_path,
        size_bytes=total,
        content_type=file.content_type,
    )


@router.post("/", status_code=201)
async def upload_files(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    store: SqlStatusStore = Depends(get_status_store),
    queue: PriorityJobQueue = Depends(get_job_queue),
    tier_lookup: TierLookup = Depends(get_tier_lookup),
):
    """accept one or more media files and queue them for silence removal"""
    form = await request.form()
    files = [f for f in form.getlist(FILES_FIELD) if isinstance(f, UploadFile)]
    fields = {key: value for key, value in form.multi_items() if key != FILES_FIELD}

    try:
        upload_settings = UploadSettings.model_validate(fields)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))

    is_paid = await run_in_threadpool(tier_lookup.is_paid_tier, user_id)
    limits = AdmissionLimits()
    max_bytes = limits.max_file_bytes(is_paid)

    # batch count rules need no file contents, check them before buffering
    try:
        check_batch_size(is_paid, len(files), limits)
    except AdmissionError as e:
        logger.info(f"rejected upload from user {user_id}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    staged = []
    try:
        for file in files:
            staged.append(await stage_upload(file, max_bytes))
    except OSError as e:
        discard_staged(staged)
        logger.error(f"failed to buffer upload for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save upload")

    try:
        result = await run_in_threadpool(
            submit_upload, store, queue, user_id, is_paid, staged, upload_settings
        )
    except AdmissionError as e:
        logger.info(f"rejected upload from user {user_id}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"error uploading files for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to upload file")

    return {
        "project_id": result.project_id,
        "file_ids": result.file_ids,
        "status": "pending",
        "priority": result.priority,
        "evicted_project_id": result.evicted_project_id,
    }

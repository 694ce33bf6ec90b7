from fastapi import APIRouter, Depends, HTTPException
from quietcutter.api.deps import get_current_user_id, get_job_queue, get_status_store, get_tier_lookup
from quietcutter.api.v1.files import file_to_dict
from quietcutter.core.errors import ReprocessError
from quietcutter.models import Project
from quietcutter.services.queue import PriorityJobQueue
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.tiers import TierLookup
from quietcutter.services.uploads import SettingsOverride, reprocess_project, update_project_settings
from typing import Optional

router = APIRouter()


def project_to_dict(project: Project, store: SqlStatusStore) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "silence_threshold": project.silence_threshold,
        "min_silence_duration": project.min_silence_duration,
        "output_format": project.output_format,
        "created_at": project.created_at.isoformat() if project.created_at else None,
        "files": [file_to_dict(f) for f in store.list_project_files(project.id)],
    }


def get_owned_project(store: SqlStatusStore, project_id: int, user_id: str) -> Project:
    project = store.get_project(project_id)
    if project is None or project.user_id != user_id:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("/{project_id}")
def get_project(
    project_id: int,
    user_id: str = Depends(get_current_user_id),
    store: SqlStatusStore = Depends(get_status_store),
):
    return project_to_dict(get_owned_project(store, project_id, user_id), store)


@router.patch("/{project_id}/settings")
def patch_project_settings(
    project_id: int,
    overrides: SettingsOverride,
    user_id: str = Depends(get_current_user_id),
    store: SqlStatusStore = Depends(get_status_store),
    tier_lookup: TierLookup = Depends(get_tier_lookup),
):
    """change the settings future reprocessing of this project's files will use"""
    project = get_owned_project(store, project_id, user_id)
    is_paid = tier_lookup.is_paid_tier(user_id)
    project = update_project_settings(store, project, overrides, is_paid)
    return project_to_dict(project, store)


@router.post("/{project_id}/reprocess", status_code=202)
def reprocess_all(
    project_id: int,
    overrides: Optional[SettingsOverride] = None,
    user_id: str = Depends(get_current_user_id),
    store: SqlStatusStore = Depends(get_status_store),
    queue: PriorityJobQueue = Depends(get_job_queue),
    tier_lookup: TierLookup = Depends(get_tier_lookup),
):
    """apply settings to the project and queue every file in it again"""
    is_paid = tier_lookup.is_paid_tier(user_id)
    try:
        result = reprocess_project(store, queue, project_id, user_id, is_paid, overrides)
    except ReprocessError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {
        "project_id": result.project_id,
        "queued_file_ids": result.queued_file_ids,
        "skipped": {str(file_id): reason for file_id, reason in result.skipped.items()},
    }

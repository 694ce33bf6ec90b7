from typing import Optional

from fastapi import Header, HTTPException

from quietcutter.core.config import settings
from quietcutter.core.db import engine
from quietcutter.services.queue import PriorityJobQueue
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.tiers import DbTierLookup, TierLookup

# Lazily built so importing the app never touches the database
_status_store: Optional[SqlStatusStore] = None
_job_queue: Optional[PriorityJobQueue] = None
_tier_lookup: Optional[TierLookup] = None


def get_status_store() -> SqlStatusStore:
    global _status_store
    if _status_store is None:
        _status_store = SqlStatusStore(engine)
    return _status_store


def get_job_queue() -> PriorityJobQueue:
    global _job_queue
    if _job_queue is None:
        from quietcutter.worker import SilenceRemovalJob
        _job_queue = PriorityJobQueue(
            handler=SilenceRemovalJob(get_status_store()),
            worker_count=settings.QUEUE_WORKER_COUNT,
        )
    return _job_queue


def get_tier_lookup() -> TierLookup:
    global _tier_lookup
    if _tier_lookup is None:
        _tier_lookup = DbTierLookup(engine)
    return _tier_lookup


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """identity is resolved upstream by the auth layer and forwarded as X-User-Id"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id

from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from quietcutter.api.deps import get_job_queue, get_status_store
from quietcutter.core.config import settings
from quietcutter.core.db import get_session
from quietcutter.models import ProjectFile
from quietcutter.services.log_publisher import get_redis_client
from quietcutter.services.queue import PriorityJobQueue
from quietcutter.services.status_store import SqlStatusStore
from datetime import datetime, timezone
import shutil

router = APIRouter()

@router.get("/")
def health_check():
    """basic liveness check"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "quietcutter-backend"
    }

@router.get("/ready")
def readiness_check(session: Session = Depends(get_session)):
    """comprehensive readiness check - verifies all dependencies"""
    checks = {}
    all_healthy = True

    # check database
    try:
        session.exec(select(ProjectFile).limit(1))
        checks["database"] = {"status": "healthy", "message": "connected"}
    except Exception as e:
        checks["database"] = {"status": "unhealthy", "message": str(e)}
        all_healthy = False

    # check redis (only used for live log streaming)
    if settings.REDIS_URL:
        try:
            get_redis_client().ping()
            checks["redis"] = {"status": "healthy", "message": "connected"}
        except Exception as e:
            checks["redis"] = {"status": "warning", "message": str(e)}
    else:
        checks["redis"] = {"status": "warning", "message": "not configured"}

    # check media tools
    for tool in (settings.FFMPEG_BIN, settings.FFPROBE_BIN):
        if shutil.which(tool):
            checks[tool] = {"status": "healthy", "message": "found"}
        else:
            checks[tool] = {"status": "unhealthy", "message": "not found on PATH"}
            all_healthy = False

    return {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks
    }

@router.get("/metrics")
def get_metrics(
    store: SqlStatusStore = Depends(get_status_store),
    queue: PriorityJobQueue = Depends(get_job_queue),
):
    """file status counts and queue depth"""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "files": store.count_files_by_status(),
        "queue": {
            "pending": queue.pending_count,
            "running": queue.running_count,
            "active_workers": queue.active_workers,
            "worker_count": queue.worker_count,
        }
    }

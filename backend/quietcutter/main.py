from fastapi import FastAPI
from quietcutter.core import logging_config
from quietcutter.core.db import init_db
from quietcutter.api.deps import get_job_queue, get_status_store
from quietcutter.api.v1 import upload, files, projects, health, admin
from quietcutter.core.config import settings
from quietcutter.services.storage_manager import StorageManager
import os

logger = logging_config.get_logger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

@app.on_event("startup")
def on_startup():
    init_db()
    os.makedirs(settings.UPLOADS_DIR, exist_ok=True)
    os.makedirs(settings.UPLOAD_TEMP_DIR, exist_ok=True)
    os.makedirs(settings.PROCESSED_DIR, exist_ok=True)

    try:
        StorageManager(get_status_store()).run_cleanup()
    except Exception as e:
        logger.error(f"startup storage cleanup failed: {e}")

@app.on_event("shutdown")
def on_shutdown():
    queue = get_job_queue()
    if queue.pending_count or queue.running_count:
        logger.warning(
            f"shutting down with {queue.running_count} running and {queue.pending_count} queued jobs"
        )

@app.get("/")
def read_root():
    return {"message": "Welcome to QuietCutter API"}

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(upload.router, prefix="/api/upload", tags=["upload"])
app.include_router(files.router, prefix="/api/files", tags=["files"])
app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

from fastapi import APIRouter, Depends, HTTPException
from quietcutter.api.deps import get_current_user_id, get_status_store
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.storage_manager import StorageManager

router = APIRouter(dependencies=[Depends(get_current_user_id)])


def get_storage_manager(store: SqlStatusStore = Depends(get_status_store)) -> StorageManager:
    return StorageManager(store)


@router.get("/storage")
def get_storage_stats(manager: StorageManager = Depends(get_storage_manager)):
    """get current storage usage statistics"""
    return manager.get_disk_usage()


@router.post("/storage/cleanup")
def trigger_cleanup(manager: StorageManager = Depends(get_storage_manager)):
    """delete media older than the retention window"""
    try:
        result = manager.run_cleanup()
        return {
            "success": True,
            "result": result
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

import os
import logging
from typing import Optional, Tuple
from datetime import datetime, timedelta, timezone

from quietcutter.core.config import settings

logger = logging.getLogger(__name__)


def remove_file(path: Optional[str]) -> bool:
    """delete a file if it exists; returns True when something was removed"""
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


class StorageManager:
    """keeps uploaded and processed media within the retention window"""

    def __init__(self, store, retention_days: int = settings.FILE_RETENTION_DAYS):
        self.store = store
        self.retention_days = retention_days

    def get_disk_usage(self) -> dict:
        """get current disk usage statistics"""
        uploads_size = self._get_directory_size(settings.UPLOADS_DIR)
        processed_size = self._get_directory_size(settings.PROCESSED_DIR)
        temp_size = self._get_directory_size(settings.UPLOAD_TEMP_DIR)
        total_size = uploads_size + processed_size + temp_size

        return {
            "uploads_gb": uploads_size / (1024**3),
            "processed_gb": processed_size / (1024**3),
            "temp_gb": temp_size / (1024**3),
            "total_gb": total_size / (1024**3),
            "retention_days": self.retention_days,
        }

    def _get_directory_size(self, path: str) -> int:
        """recursively calculate directory size in bytes"""
        total = 0
        try:
            for entry in os.scandir(path):
                if entry.is_file():
                    total += entry.stat().st_size
                elif entry.is_dir():
                    total += self._get_directory_size(entry.path)
        except OSError as e:
            logger.warning(f"error calculating size for {path}: {e}")
        return total

    def cleanup_expired_files(self, now: Optional[datetime] = None) -> Tuple[int, int]:
        """
        delete original and processed files of records older than the retention window
        the records stay, with their paths cleared
        returns: (files_deleted, bytes_freed)
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=self.retention_days)
        files_deleted = 0
        bytes_freed = 0

        for record in self.store.files_created_before(cutoff):
            if not record.original_file_path and not record.processed_file_path:
                continue
            if record.status in ("pending", "processing"):
                # still owned by the queue
                continue

            for path in (record.original_file_path, record.processed_file_path):
                if not path or not os.path.exists(path):
                    continue
                try:
                    size = os.path.getsize(path)
                    if remove_file(path):
                        files_deleted += 1
                        bytes_freed += size
                        logger.info(f"deleted expired file: {path}")
                except OSError as e:
                    logger.error(f"error deleting {path}: {e}")

            self.store.update_file_record(
                record.id, original_file_path=None, processed_file_path=None
            )

        return files_deleted, bytes_freed

    def run_cleanup(self) -> dict:
        """
        run the retention routine
        returns: summary of actions taken
        """
        logger.info("starting storage cleanup...")
        files_deleted, bytes_freed = self.cleanup_expired_files()
        usage = self.get_disk_usage()

        summary = {
            "files_deleted": files_deleted,
            "gb_freed": bytes_freed / (1024**3),
            "current_usage_gb": usage["total_gb"],
        }
        logger.info(f"cleanup complete: deleted {files_deleted} files, freed {summary['gb_freed']:.2f} GB")
        return summary

from abc import ABC, abstractmethod
from datetime import datetime
import logging
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy import update
from sqlmodel import Session, col, select, func

from quietcutter.models import Project, ProjectFile, FileStatus

logger = logging.getLogger(__name__)

# fields the pipeline may push through update_file_record
STATUS_FIELDS = {
    "status",
    "processing_progress",
    "original_file_path",
    "processed_file_path",
    "original_duration_sec",
    "processed_duration_sec",
    "processing_time_ms",
    "file_type",
    "file_size_bytes",
}
# per-file settings rewritten when a file is reprocessed
SETTINGS_FIELDS = {"silence_threshold", "min_silence_duration", "output_format"}
RECORD_FIELDS = STATUS_FIELDS | SETTINGS_FIELDS


class StatusStore(ABC):
    """where file status transitions are pushed; the store is the durable source of truth"""

    @abstractmethod
    def create_file_record(self, **fields) -> int:
        ...

    @abstractmethod
    def update_file_record(self, file_id: int, **fields) -> bool:
        ...

    @abstractmethod
    def get_file_record(self, file_id: int) -> Optional[ProjectFile]:
        ...

    @abstractmethod
    def delete_file_record(self, file_id: int) -> bool:
        ...


def _enum_value(value):
    return getattr(value, "value", value)


class SqlStatusStore(StatusStore):
    """status store backed by the projects / project_files tables"""

    def __init__(self, engine: Engine):
        self._engine = engine

    def _session(self) -> Session:
        return Session(self._engine, expire_on_commit=False)

    # file status records

    def create_file_record(self, **fields) -> int:
        """create a file record in pending state when an upload is admitted"""
        with self._session() as session:
            record = ProjectFile(**{k: _enum_value(v) for k, v in fields.items()})
            session.add(record)
            session.commit()
            session.refresh(record)
            return record.id

    def update_file_record(self, file_id: int, **fields) -> bool:
        """apply a partial update; returns False when the record no longer exists"""
        unknown = set(fields) - RECORD_FIELDS
        if unknown:
            raise ValueError(f"unknown file record fields: {sorted(unknown)}")

        with self._session() as session:
            record = session.get(ProjectFile, file_id)
            if not record:
                logger.warning(f"file record {file_id} not found, dropping update {sorted(fields)}")
                return False

            progress = fields.get("processing_progress")
            staying_in_processing = (
                record.status == FileStatus.PROCESSING.value
                and _enum_value(fields.get("status", record.status)) == FileStatus.PROCESSING.value
            )
            if progress is not None and staying_in_processing and progress < record.processing_progress:
                # progress never moves backwards while processing
                fields = {k: v for k, v in fields.items() if k != "processing_progress"}

            for key, value in fields.items():
                setattr(record, key, _enum_value(value))
            session.add(record)
            session.commit()
            return True

    def claim_for_reprocess(self, file_id: int, **fields) -> bool:
        """
        move a finished record back to pending with progress 0, applying fields
        in the same conditional UPDATE

        returns False when the record is gone or already pending/processing, so of
        two concurrent callers only one ever gets True
        """
        unknown = set(fields) - RECORD_FIELDS
        if unknown:
            raise ValueError(f"unknown file record fields: {sorted(unknown)}")

        values = {k: _enum_value(v) for k, v in fields.items()}
        values["status"] = FileStatus.PENDING.value
        values["processing_progress"] = 0

        with self._session() as session:
            result = session.exec(
                update(ProjectFile)
                .where(col(ProjectFile.id) == file_id)
                .where(col(ProjectFile.status).not_in(
                    [FileStatus.PENDING.value, FileStatus.PROCESSING.value]
                ))
                .values(**values)
            )
            session.commit()
            return result.rowcount == 1

    def get_file_record(self, file_id: int) -> Optional[ProjectFile]:
        with self._session() as session:
            return session.get(ProjectFile, file_id)

    def delete_file_record(self, file_id: int) -> bool:
        with self._session() as session:
            record = session.get(ProjectFile, file_id)
            if not record:
                return False
            session.delete(record)
            session.commit()
            return True

    # projects

    def create_project(self, user_id: str, name: str, silence_threshold: int,
                       min_silence_duration: int, output_format: str) -> Project:
        with self._session() as session:
            project = Project(
                user_id=user_id,
                name=name,
                silence_threshold=silence_threshold,
                min_silence_duration=min_silence_duration,
                output_format=_enum_value(output_format),
            )
            session.add(project)
            session.commit()
            session.refresh(project)
            return project

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._session() as session:
            return session.get(Project, project_id)

    def update_project_settings(self, project_id: int, **fields) -> Optional[Project]:
        unknown = set(fields) - SETTINGS_FIELDS
        if unknown:
            raise ValueError(f"unknown project settings: {sorted(unknown)}")

        with self._session() as session:
            project = session.get(Project, project_id)
            if not project:
                return None
            for key, value in fields.items():
                setattr(project, key, _enum_value(value))
            session.add(project)
            session.commit()
            session.refresh(project)
            return project

    def count_projects(self, user_id: str) -> int:
        with self._session() as session:
            return session.exec(
                select(func.count(Project.id)).where(Project.user_id == user_id)
            ).one()

    def oldest_project(self, user_id: str) -> Optional[Project]:
        with self._session() as session:
            return session.exec(
                select(Project)
                .where(Project.user_id == user_id)
                .order_by(Project.created_at, Project.id)
                .limit(1)
            ).first()

    def list_project_files(self, project_id: int) -> List[ProjectFile]:
        with self._session() as session:
            return list(session.exec(
                select(ProjectFile).where(ProjectFile.project_id == project_id).order_by(ProjectFile.id)
            ).all())

    def delete_project(self, project_id: int) -> bool:
        """delete a project and all of its file records"""
        with self._session() as session:
            project = session.get(Project, project_id)
            if not project:
                return False
            files = session.exec(select(ProjectFile).where(ProjectFile.project_id == project_id)).all()
            for record in files:
                session.delete(record)
            session.delete(project)
            session.commit()
            return True

    # reporting / retention

    def count_files_by_status(self) -> Dict[str, int]:
        with self._session() as session:
            rows = session.exec(
                select(ProjectFile.status, func.count(ProjectFile.id)).group_by(ProjectFile.status)
            ).all()
        counts = {status.value: 0 for status in FileStatus}
        for status, count in rows:
            counts[status] = count
        return counts

    def files_created_before(self, cutoff: datetime) -> List[ProjectFile]:
        with self._session() as session:
            return list(session.exec(
                select(ProjectFile).where(ProjectFile.created_at < cutoff)
            ).all())

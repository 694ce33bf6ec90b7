from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class OutputFormat(str, Enum):
    MP3 = "mp3"
    WAV = "wav"
    FLAC = "flac"


class ProjectFile(SQLModel, table=True):
    """file status record: one per uploaded file, driven by the processing pipeline"""
    __tablename__ = "project_files"
    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    original_file_name: str
    original_file_path: Optional[str] = Field(default=None, nullable=True)
    processed_file_path: Optional[str] = Field(default=None, nullable=True)
    status: str = Field(default=FileStatus.PENDING.value, index=True)  # pending, processing, completed, failed
    silence_threshold: int = Field(default=-40)
    min_silence_duration: int = Field(default=500)
    output_format: str = Field(default=OutputFormat.MP3.value)
    file_type: str = Field(default=FileType.AUDIO.value)  # audio, video
    file_size_bytes: Optional[int] = Field(default=None, nullable=True)
    original_duration_sec: Optional[float] = Field(default=None, nullable=True)
    processed_duration_sec: Optional[float] = Field(default=None, nullable=True)
    processing_time_ms: Optional[int] = Field(default=None, nullable=True)
    processing_progress: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True), index=True)

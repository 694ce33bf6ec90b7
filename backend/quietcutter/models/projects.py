from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from typing import Optional
from quietcutter.models.files import utc_now

class Project(SQLModel, table=True):
    __tablename__ = "projects"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    silence_threshold: int = Field(default=-40)
    min_silence_duration: int = Field(default=500)
    output_format: str = Field(default="mp3")
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True), index=True)

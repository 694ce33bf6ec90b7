from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from typing import Optional
from quietcutter.models.files import utc_now

class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(primary_key=True)
    email: Optional[str] = Field(default=None, nullable=True, unique=True)
    is_pro: bool = Field(default=False)  # kept current by the billing webhook
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))

"""Output entity - one artifact produced by a completed generation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from sigil.core.timezone import utcnow


class FileType(str, Enum):
    """Kind of produced artifact."""

    IMAGE = "image"
    VIDEO = "video"


class Output(SQLModel, table=True):
    """Output is owned by its Generation and created only on completion."""

    __tablename__ = "outputs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    generation_id: UUID = Field(foreign_key="generations.id", index=True, ondelete="CASCADE")
    file_url: str
    file_type: FileType = Field(default=FileType.IMAGE)
    width: int = Field(default=0)
    height: int = Field(default=0)
    duration: Optional[float] = Field(default=None)
    is_approved: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=False), nullable=False)
    )

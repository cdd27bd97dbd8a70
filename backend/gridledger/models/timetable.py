import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, DateTime, Enum as SAEnum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from gridledger.db.base import Base


class TimetableStatus(str, Enum):
    draft = "Draft"
    published = "Published"
    archived = "Archived"


class Timetable(Base):
    """The current, mutable record for one level+section. History hangs off it by id."""

    __tablename__ = "timetables"
    __table_args__ = (UniqueConstraint("level", "section", name="uq_timetables_level_section"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    section: Mapped[str] = mapped_column(String(100), nullable=False)
    grid: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    edit_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    publish_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[TimetableStatus] = mapped_column(
        SAEnum(TimetableStatus, name="timetable_status", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=TimetableStatus.draft,
        index=True,
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

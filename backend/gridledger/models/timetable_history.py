import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from gridledger.db.base import Base


class TimetableHistoryEntry(Base):
    """Append-only record of one accepted edit. Never updated or deleted."""

    __tablename__ = "timetable_history"
    __table_args__ = (
        UniqueConstraint("timetable_id", "history_version", name="uq_timetable_history_version"),
        Index("ix_timetable_history_timetable_version", "timetable_id", "history_version"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timetable_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("timetables.id", ondelete="CASCADE"), nullable=False
    )
    history_version: Mapped[int] = mapped_column(Integer, nullable=False)
    delta: Mapped[dict] = mapped_column(JSON, nullable=False)
    author_id: Mapped[str] = mapped_column(String(100), nullable=False, default="SYSTEM")
    summary: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

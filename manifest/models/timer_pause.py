import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from manifest.models.base import Base


class TimerPause(Base):
    __tablename__ = "timer_pauses"

    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("focus_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))  # null while open

    # Relationships
    session: Mapped["FocusSession"] = relationship(back_populates="pauses")  # noqa: F821

    __table_args__ = (
        Index("ix_timer_pauses_session_started", "session_id", "started_at"),
    )

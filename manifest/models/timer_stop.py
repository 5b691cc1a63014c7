import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from manifest.models.base import Base


class TimerStop(Base):
    __tablename__ = "timer_stops"

    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("focus_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    stopped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    session: Mapped["FocusSession"] = relationship(back_populates="stops")  # noqa: F821

    __table_args__ = (
        Index("ix_timer_stops_session_stopped", "session_id", "stopped_at"),
    )

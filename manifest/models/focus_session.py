import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from manifest.models.base import Base


class FocusSession(Base):
    __tablename__ = "focus_sessions"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    mode: Mapped[str] = mapped_column(String(10), nullable=False, default="focus")  # focus, break
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    planned_minutes: Mapped[int | None] = mapped_column(Integer)
    duration_minutes: Mapped[int | None] = mapped_column(Integer)
    # Running while set; paused when cleared and end_at is still null
    target_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="focus_sessions")  # noqa: F821
    pauses: Mapped[list["TimerPause"]] = relationship(back_populates="session", cascade="all, delete-orphan")  # noqa: F821
    stops: Mapped[list["TimerStop"]] = relationship(back_populates="session", cascade="all, delete-orphan")  # noqa: F821

    __table_args__ = (
        Index("ix_focus_sessions_user_active", "user_id", "end_at", "start_at"),
    )

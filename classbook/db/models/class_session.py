from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class EventType(str, PyEnum):
    regular = "class"
    private = "private"
    block = "block"


class ClassSession(Base):
    """A concrete bookable event, materialized from a schedule or created directly."""

    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("schedule_id", "starts_at", name="uq_class_schedule_start"),
        CheckConstraint("max_students > 0", name="ck_class_max_students_positive"),
        CheckConstraint("starts_at < ends_at", name="ck_class_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"), index=True)
    class_type_id: Mapped[int] = mapped_column(ForeignKey("class_types.id", ondelete="CASCADE"))
    schedule_id: Mapped[int | None] = mapped_column(ForeignKey("schedules.id", ondelete="SET NULL"))
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    max_students: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[EventType] = mapped_column(
        Enum(EventType, values_callable=lambda members: [member.value for member in members]),
        default=EventType.regular,
    )
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False)
    cancelled_reason: Mapped[str | None] = mapped_column(String(255))
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    class_type = relationship("ClassType")
    schedule = relationship("Schedule", back_populates="classes")
    bookings = relationship("Booking", back_populates="class_session")

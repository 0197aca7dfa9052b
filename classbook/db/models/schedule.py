from datetime import date, datetime, time
from enum import Enum as PyEnum
from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Integer, Time, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class DayOfWeek(str, PyEnum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"

    @property
    def weekday(self) -> int:
        return list(DayOfWeek).index(self)


class Schedule(Base):
    """Weekly recurrence template. Never booked directly."""

    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"), index=True)
    class_type_id: Mapped[int] = mapped_column(ForeignKey("class_types.id", ondelete="CASCADE"))
    day_of_week: Mapped[DayOfWeek] = mapped_column(Enum(DayOfWeek), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    max_students: Mapped[int | None] = mapped_column(Integer)
    valid_from: Mapped[date | None] = mapped_column(Date)
    valid_until: Mapped[date | None] = mapped_column(Date)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    class_type = relationship("ClassType")
    classes = relationship("ClassSession", back_populates="schedule")
